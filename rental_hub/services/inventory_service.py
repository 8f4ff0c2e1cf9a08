from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.rental_models import InHouseInventory
from services.fulfillment_service import InventoryLookup, InventoryRecord, LookupUnavailable


LOGGER = logging.getLogger("rental_hub.inventory")


def _as_float(value) -> float | None:
    if value is None:
        return None
    return float(value)


def serialize_inventory(row: InHouseInventory) -> dict:
    return {
        "id": row.id,
        "catalog_id": row.catalog_id,
        "quantity_owned": row.quantity_owned,
        "quantity_available": row.quantity_available,
        "storage_location": row.storage_location,
        "serial_numbers": list(row.serial_numbers or []),
        "purchase_price": _as_float(row.purchase_price),
        "condition": row.condition,
        "is_active": bool(row.is_active),
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    }


def to_inventory_record(row: InHouseInventory) -> InventoryRecord:
    return InventoryRecord(
        catalog_id=row.catalog_id,
        quantity_available=int(row.quantity_available or 0),
        storage_location=row.storage_location,
        serial_numbers=tuple(str(serial) for serial in (row.serial_numbers or [])),
        is_active=bool(row.is_active),
        quantity_owned=int(row.quantity_owned) if row.quantity_owned is not None else None,
    )


def load_active_inventory(db: Session, equipment_ids: Iterable[str]) -> dict[str, InventoryRecord]:
    distinct_ids = sorted({str(equipment_id) for equipment_id in equipment_ids})
    if not distinct_ids:
        return {}
    rows = db.execute(
        select(InHouseInventory)
        .where(InHouseInventory.catalog_id.in_(distinct_ids))
        .where(InHouseInventory.is_active == True)
        .order_by(InHouseInventory.created_at)
    ).scalars().all()
    records: dict[str, InventoryRecord] = {}
    for row in rows:
        # One record per catalog item; keep the first when duplicates exist.
        records.setdefault(row.catalog_id, to_inventory_record(row))
    return records


def build_inventory_lookup(db: Session, equipment_ids: Iterable[str]) -> InventoryLookup:
    try:
        records = load_active_inventory(db, equipment_ids)
    except SQLAlchemyError as exc:
        db.rollback()
        LOGGER.error("Inventory snapshot failed, routing all lines to partner: %s", exc)
        reason = str(exc)

        def _unavailable(equipment_id: str) -> InventoryRecord | None:
            raise LookupUnavailable(reason)

        return _unavailable
    return records.get


def upsert_inventory(
    db: Session,
    catalog_id: str,
    quantity_owned: int,
    storage_location: str | None,
    serial_numbers: list[str] | None,
    purchase_price: float | None,
) -> tuple[InHouseInventory, bool]:
    existing = db.execute(
        select(InHouseInventory).where(InHouseInventory.catalog_id == catalog_id)
    ).scalars().first()

    now = datetime.now()
    if existing:
        existing.quantity_owned = quantity_owned
        # Available is reset to owned on every upsert.
        existing.quantity_available = quantity_owned
        existing.storage_location = storage_location
        existing.serial_numbers = list(serial_numbers or [])
        existing.purchase_price = purchase_price
        existing.updated_at = now
        return existing, False

    row = InHouseInventory(
        catalog_id=catalog_id,
        quantity_owned=quantity_owned,
        quantity_available=quantity_owned,
        storage_location=storage_location,
        serial_numbers=list(serial_numbers or []),
        purchase_price=purchase_price,
        condition="New",
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    db.add(row)
    return row, True
