from __future__ import annotations

import secrets
import string
from datetime import date, datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from models.rental_models import Lead, Quote, QuoteItem


QUOTE_SUFFIX_ALPHABET = string.digits + string.ascii_uppercase
DEPOSIT_RATE = 0.5
LEAD_STATUS_QUOTE_REQUESTED = "quote_requested"
LEAD_SOURCE_WEBSITE = "website"


def generate_quote_number(created_on: date | None = None) -> str:
    current_date = created_on or date.today()
    suffix = "".join(secrets.choice(QUOTE_SUFFIX_ALPHABET) for _ in range(4))
    return f"Q-{current_date:%Y%m%d}-{suffix}"


def _as_float(value) -> float | None:
    if value is None:
        return None
    return float(value)


def serialize_quote(quote: Quote) -> dict:
    return {
        "id": quote.id,
        "quote_number": quote.quote_number,
        "client_name": quote.client_name,
        "client_email": quote.client_email,
        "client_phone": quote.client_phone,
        "client_company": quote.client_company,
        "start_date": quote.start_date,
        "end_date": quote.end_date,
        "duration_days": quote.duration_days,
        "status": quote.status,
        "pricing": quote.pricing,
        "notes": quote.notes,
        "deposit_required": _as_float(quote.deposit_required),
        "created_at": quote.created_at,
        "updated_at": quote.updated_at,
    }


def serialize_quote_item(item: QuoteItem) -> dict:
    return {
        "id": item.id,
        "quote_id": item.quote_id,
        "equipment_id": item.equipment_id,
        "sku": item.sku,
        "name": item.name,
        "quantity": item.quantity,
        "daily_rate": _as_float(item.daily_rate),
        "total_price": _as_float(item.total_price),
    }


def build_quote(payload, pricing: dict) -> Quote:
    total = float(pricing.get("total") or 0)
    now = datetime.now()
    quote = Quote(
        quote_number=generate_quote_number(),
        client_name=payload.clientName,
        client_email=payload.clientEmail,
        client_phone=payload.clientPhone or None,
        client_company=payload.clientCompany or None,
        start_date=payload.startDate,
        end_date=payload.endDate,
        duration_days=payload.duration,
        status="pending",
        pricing=pricing,
        notes=payload.notes or None,
        deposit_required=round(total * DEPOSIT_RATE, 2),
        created_at=now,
        updated_at=now,
    )
    for item in payload.items:
        quote.QuoteItems.append(
            QuoteItem(
                equipment_id=str(item.equipmentId) if item.equipmentId is not None else None,
                sku=item.sku,
                name=item.name,
                quantity=item.quantity,
                daily_rate=item.dailyRate,
                total_price=item.total,
            )
        )
    return quote


def upsert_lead(
    db: Session,
    name: str,
    email: str,
    phone: str | None,
    company: str | None,
) -> tuple[Lead, bool]:
    existing = db.execute(select(Lead).where(Lead.email == email)).scalars().first()
    now = datetime.now()
    if existing:
        existing.name = name
        existing.phone = phone or existing.phone
        existing.company = company or existing.company
        existing.status = LEAD_STATUS_QUOTE_REQUESTED
        existing.updated_at = now
        return existing, False

    lead = Lead(
        name=name,
        email=email,
        phone=phone or None,
        company=company or None,
        status=LEAD_STATUS_QUOTE_REQUESTED,
        source=LEAD_SOURCE_WEBSITE,
        created_at=now,
        updated_at=now,
    )
    db.add(lead)
    return lead, True


def list_quotes(db: Session, offset: int, limit: int, status: str | None = None) -> tuple[list[Quote], int]:
    count_stmt = select(func.count(Quote.id))
    rows_stmt = select(Quote).order_by(Quote.created_at.desc()).offset(offset).limit(limit)
    if status:
        count_stmt = count_stmt.where(Quote.status == status)
        rows_stmt = rows_stmt.where(Quote.status == status)
    total_count = db.execute(count_stmt).scalar() or 0
    rows = db.execute(rows_stmt).scalars().all()
    return list(rows), int(total_count)


def get_quote_with_items(db: Session, quote_id: str) -> dict | None:
    quote = db.get(Quote, quote_id)
    if not quote:
        return None
    items = db.execute(select(QuoteItem).where(QuoteItem.quote_id == quote_id)).scalars().all()
    payload = serialize_quote(quote)
    payload["items"] = [serialize_quote_item(item) for item in items]
    return payload
