from __future__ import annotations

import math
import re

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from models.rental_models import EquipmentCatalog, EquipmentCategory
from services.inventory_service import serialize_inventory


DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100
AVAILABILITY_IN_HOUSE = "in-house"
AVAILABILITY_PARTNER = "partner"
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _parse_int(raw, default: int) -> int:
    # Leading digits only, so "2abc" reads as 2.
    match = _LEADING_INT.match(str(raw)) if raw is not None else None
    if not match:
        return default
    value = int(match.group(1))
    # Zero falls back to the default rather than clamping.
    return value or default


def resolve_page_window(page, limit) -> tuple[int, int, int]:
    page_num = max(1, _parse_int(page, 1))
    limit_num = min(MAX_PAGE_SIZE, max(1, _parse_int(limit, DEFAULT_PAGE_SIZE)))
    offset = (page_num - 1) * limit_num
    return page_num, limit_num, offset


def build_pagination(page_num: int, limit_num: int, total_count: int, include_links: bool = True) -> dict:
    total_pages = math.ceil(total_count / limit_num) if limit_num else 0
    pagination = {
        "page": page_num,
        "limit": limit_num,
        "totalCount": total_count,
        "totalPages": total_pages,
    }
    if include_links:
        pagination["hasNext"] = page_num < total_pages
        pagination["hasPrev"] = page_num > 1
    return pagination


def resolve_availability(equipment: EquipmentCatalog) -> str:
    in_house = equipment.InHouse[0] if equipment.InHouse else None
    if in_house is not None and int(in_house.quantity_available or 0) > 0:
        return AVAILABILITY_IN_HOUSE
    return AVAILABILITY_PARTNER


def serialize_equipment(equipment: EquipmentCatalog, include_partner: bool = False) -> dict:
    in_house = equipment.InHouse[0] if equipment.InHouse else None
    payload = {
        "id": equipment.id,
        "sku": equipment.sku,
        "name": equipment.name,
        "category": equipment.category,
        "description": equipment.description,
        "daily_rate": float(equipment.daily_rate) if equipment.daily_rate is not None else None,
        "weekly_rate": float(equipment.weekly_rate) if equipment.weekly_rate is not None else None,
        "monthly_rate": float(equipment.monthly_rate) if equipment.monthly_rate is not None else None,
        "image_url": equipment.image_url,
        "partner_id": equipment.partner_id,
        "is_active": bool(equipment.is_active),
        "created_at": equipment.created_at,
        "updated_at": equipment.updated_at,
        "in_house": serialize_inventory(in_house) if in_house is not None else None,
        "availability": resolve_availability(equipment),
    }
    if include_partner:
        partner = equipment.Partner
        payload["partner"] = {
            "name": partner.name,
            "discount_rate": float(partner.discount_rate) if partner.discount_rate is not None else None,
        } if partner else None
    return payload


def serialize_category(category: EquipmentCategory) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
        "display_order": category.display_order,
        "is_active": bool(category.is_active),
        "created_at": category.created_at,
    }


def list_equipment(
    db: Session,
    category: str | None = None,
    search: str | None = None,
    availability: str | None = None,
    page=1,
    limit=DEFAULT_PAGE_SIZE,
) -> dict:
    page_num, limit_num, offset = resolve_page_window(page, limit)

    filters = [EquipmentCatalog.is_active == True]
    if category:
        filters.append(EquipmentCatalog.category == category)
    if search:
        pattern = f"%{search}%"
        filters.append(or_(EquipmentCatalog.name.ilike(pattern), EquipmentCatalog.sku.ilike(pattern)))

    total_count = db.execute(
        select(func.count(EquipmentCatalog.id)).where(*filters)
    ).scalar() or 0
    rows = db.execute(
        select(EquipmentCatalog)
        .options(selectinload(EquipmentCatalog.InHouse))
        .where(*filters)
        .order_by(EquipmentCatalog.name)
        .offset(offset)
        .limit(limit_num)
    ).scalars().all()

    transformed = [serialize_equipment(row) for row in rows]
    # Post-query filter: counts reflect the unfiltered page.
    if availability in {AVAILABILITY_IN_HOUSE, AVAILABILITY_PARTNER}:
        transformed = [item for item in transformed if item["availability"] == availability]

    return {
        "data": transformed,
        "pagination": build_pagination(page_num, limit_num, int(total_count)),
    }


def list_categories(db: Session) -> list[dict]:
    rows = db.execute(
        select(EquipmentCategory)
        .where(EquipmentCategory.is_active == True)
        .order_by(EquipmentCategory.display_order)
    ).scalars().all()
    return [serialize_category(row) for row in rows]


def get_equipment(db: Session, equipment_id: str) -> EquipmentCatalog | None:
    return db.execute(
        select(EquipmentCatalog)
        .options(selectinload(EquipmentCatalog.InHouse), selectinload(EquipmentCatalog.Partner))
        .where(EquipmentCatalog.id == equipment_id)
    ).scalars().first()
