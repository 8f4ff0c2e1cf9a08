import logging
import os
from datetime import datetime

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

load_dotenv()

from db.deps import get_db
from models.rental_models import EquipmentCatalog, InHouseInventory
from schemas.inventory import FulfillmentListRequest, InventoryUpdateDto, InventoryUpsertDto
from schemas.quotes import CreateQuoteDto
from services.equipment_service import (
    build_pagination,
    get_equipment,
    list_categories,
    list_equipment,
    resolve_page_window,
    serialize_equipment,
)
from services.fulfillment_service import InvalidInput, RequestedLine, allocate
from services.inventory_service import build_inventory_lookup, serialize_inventory, upsert_inventory
from services.quickbooks_service import (
    QuickBooksError,
    build_authorize_url,
    clear_tokens,
    create_estimate,
    exchange_code,
    get_status,
    is_configured,
)
from services.quote_service import build_quote, get_quote_with_items, list_quotes, serialize_quote, upsert_lead

app = FastAPI(title="Rental Hub API")

LOGGER = logging.getLogger("rental_hub.api")


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in str(raw).split(",") if item.strip()]


_CORS_ALLOW_ORIGINS = _parse_csv_env(
    "CORS_ALLOW_ORIGINS",
    "http://127.0.0.1,http://localhost,http://127.0.0.1:5173,http://localhost:5173",
)
_CORS_ALLOW_CREDENTIALS = str(os.environ.get("CORS_ALLOW_CREDENTIALS", "true")).strip().lower() in {"1", "true", "yes", "on"}
if "*" in _CORS_ALLOW_ORIGINS:
    # Browsers reject wildcard origins with credentials; force safe behavior.
    _CORS_ALLOW_CREDENTIALS = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ALLOW_ORIGINS,
    allow_credentials=_CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"]
)

QB_CONNECTED_PAGE = (
    "<html><body><h1>QuickBooks Connected!</h1><p>You can close this window.</p>"
    "<script>window.close()</script></body></html>"
)


def _map_inventory_field(field: str) -> str:
    mapping = {
        "catalogId": "catalog_id",
        "quantityOwned": "quantity_owned",
        "quantityAvailable": "quantity_available",
        "storageLocation": "storage_location",
        "serialNumbers": "serial_numbers",
        "purchasePrice": "purchase_price",
        "condition": "condition",
    }
    return mapping.get(field, field)


def _store_error(message: str, exc: Exception) -> HTTPException:
    LOGGER.error("%s: %s", message, exc)
    return HTTPException(status_code=500, detail=message)


@app.get("/healthz")
def healthcheck():
    return {"status": "ok"}


@app.get("/api/healthz")
def healthcheck_api(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ok"}
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail=f"db_unavailable: {exc}") from exc


@app.get("/api/equipment")
def get_equipment_list(
    category: str | None = None,
    search: str | None = None,
    availability: str | None = None,
    page: str = "1",
    limit: str = "25",
    db: Session = Depends(get_db),
):
    try:
        return list_equipment(
            db,
            category=category,
            search=search,
            availability=availability,
            page=page,
            limit=limit,
        )
    except SQLAlchemyError as exc:
        raise _store_error("Failed to fetch equipment", exc) from exc


@app.get("/api/equipment/categories")
def get_equipment_categories(db: Session = Depends(get_db)):
    try:
        return {"data": list_categories(db)}
    except SQLAlchemyError as exc:
        raise _store_error("Failed to fetch categories", exc) from exc


@app.get("/api/equipment/{equipment_id}")
def get_equipment_item(equipment_id: str, db: Session = Depends(get_db)):
    try:
        equipment = get_equipment(db, equipment_id)
    except SQLAlchemyError as exc:
        raise _store_error("Failed to fetch equipment", exc) from exc
    if not equipment:
        raise HTTPException(status_code=404, detail="Equipment not found")
    return {"data": serialize_equipment(equipment, include_partner=True)}


@app.get("/api/inventory")
def get_inventory(db: Session = Depends(get_db)):
    try:
        rows = db.execute(
            select(InHouseInventory)
            .options(selectinload(InHouseInventory.Equipment))
            .where(InHouseInventory.is_active == True)
            .order_by(InHouseInventory.created_at.desc())
        ).scalars().all()
    except SQLAlchemyError as exc:
        raise _store_error("Failed to fetch inventory", exc) from exc

    payloads = []
    for row in rows:
        payload = serialize_inventory(row)
        equipment: EquipmentCatalog | None = row.Equipment
        payload["equipment"] = {
            "id": equipment.id,
            "sku": equipment.sku,
            "name": equipment.name,
            "category": equipment.category,
            "daily_rate": float(equipment.daily_rate) if equipment.daily_rate is not None else None,
            "is_active": bool(equipment.is_active),
        } if equipment else None
        payloads.append(payload)
    return {"data": payloads}


@app.post("/api/inventory")
def add_inventory(payload: InventoryUpsertDto, response: Response, db: Session = Depends(get_db)):
    try:
        row, created = upsert_inventory(
            db,
            catalog_id=payload.catalogId,
            quantity_owned=payload.quantityOwned,
            storage_location=payload.storageLocation,
            serial_numbers=payload.serialNumbers,
            purchase_price=payload.purchasePrice,
        )
        db.commit()
        db.refresh(row)
    except SQLAlchemyError as exc:
        db.rollback()
        raise _store_error("Failed to add inventory", exc) from exc

    LOGGER.info("Inventory %s catalog_id=%s owned=%s", "added" if created else "updated", row.catalog_id, row.quantity_owned)
    if created:
        response.status_code = 201
        return {"data": serialize_inventory(row), "message": "Inventory added"}
    return {"data": serialize_inventory(row), "message": "Inventory updated"}


@app.put("/api/inventory/{inventory_id}")
def update_inventory(inventory_id: str, payload: InventoryUpdateDto, db: Session = Depends(get_db)):
    try:
        row = db.get(InHouseInventory, inventory_id)
        if not row:
            raise HTTPException(status_code=404, detail="Inventory item not found")

        for field, value in payload.model_dump(exclude_unset=True).items():
            setattr(row, _map_inventory_field(field), value)
        row.updated_at = datetime.now()

        db.commit()
        db.refresh(row)
    except SQLAlchemyError as exc:
        db.rollback()
        raise _store_error("Failed to update inventory", exc) from exc
    return {"data": serialize_inventory(row)}


@app.post("/api/inventory/fulfillment-lists")
def generate_fulfillment_lists(payload: FulfillmentListRequest, db: Session = Depends(get_db)):
    requested_lines = [
        RequestedLine(
            equipment_id=str(item.equipmentId),
            quantity=item.quantity,
            name=item.name,
            sku=item.sku,
        )
        for item in payload.items
    ]
    try:
        inventory_lookup = build_inventory_lookup(db, [line.equipment_id for line in requested_lines])
        result = allocate(requested_lines, inventory_lookup)
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        raise _store_error("Failed to generate fulfillment lists", exc) from exc

    LOGGER.info(
        "Fulfillment lists generated base=%s partner=%s total=%s",
        result.summary.base_items,
        result.summary.partner_items,
        result.summary.total_items,
    )
    return {"data": result.to_payload()}


@app.post("/api/quotes", status_code=201)
def create_quote(payload: CreateQuoteDto, db: Session = Depends(get_db)):
    if not payload.clientName or not payload.clientEmail or not payload.startDate or not payload.endDate or not payload.items:
        raise HTTPException(status_code=400, detail="Missing required fields")

    pricing = payload.pricing.model_dump()
    quote = build_quote(payload, pricing)
    try:
        db.add(quote)
        db.commit()
        db.refresh(quote)
    except SQLAlchemyError as exc:
        db.rollback()
        raise _store_error("Failed to create quote", exc) from exc
    quote_id, quote_number = quote.id, quote.quote_number

    try:
        upsert_lead(
            db,
            name=payload.clientName,
            email=payload.clientEmail,
            phone=payload.clientPhone,
            company=payload.clientCompany,
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        LOGGER.error("Lead upsert failed quote_number=%s: %s", quote_number, exc)

    qb_estimate = None
    try:
        qb_estimate = create_estimate(db, payload.model_dump(mode="json"))
        LOGGER.info("QB Estimate created id=%s", qb_estimate.get("Id"))
    except Exception as exc:
        # Estimate sync is best-effort; the quote stands on its own.
        db.rollback()
        LOGGER.error("Failed to create QB estimate quote_number=%s: %s", quote_number, exc)

    return {
        "success": True,
        "quote": {
            "id": quote_id,
            "quoteNumber": quote_number,
            "total": pricing.get("total"),
        },
        "qbEstimate": {
            "id": qb_estimate.get("Id"),
            "docNumber": qb_estimate.get("DocNumber"),
        } if qb_estimate else None,
    }


@app.get("/api/quotes")
def get_quotes(
    page: str = "1",
    limit: str = "25",
    status: str | None = None,
    db: Session = Depends(get_db),
):
    page_num, limit_num, offset = resolve_page_window(page, limit)
    try:
        rows, total_count = list_quotes(db, offset=offset, limit=limit_num, status=status)
    except SQLAlchemyError as exc:
        raise _store_error("Failed to fetch quotes", exc) from exc
    return {
        "data": [serialize_quote(row) for row in rows],
        "pagination": build_pagination(page_num, limit_num, total_count, include_links=False),
    }


@app.get("/api/quotes/{quote_id}")
def get_quote(quote_id: str, db: Session = Depends(get_db)):
    try:
        quote = get_quote_with_items(db, quote_id)
    except SQLAlchemyError as exc:
        raise _store_error("Failed to fetch quote", exc) from exc
    if not quote:
        raise HTTPException(status_code=404, detail="Quote not found")
    return {"data": quote}


@app.get("/api/quickbooks/connect")
def quickbooks_connect():
    if not is_configured():
        raise HTTPException(status_code=500, detail="QuickBooks not configured")
    return {"url": build_authorize_url()}


@app.get("/api/quickbooks/callback")
def quickbooks_callback(
    code: str | None = None,
    realm_id: str | None = Query(None, alias="realmId"),
    db: Session = Depends(get_db),
):
    if not code or not realm_id:
        raise HTTPException(status_code=400, detail="Missing code or realmId")
    try:
        exchange_code(db, code, realm_id)
    except (QuickBooksError, SQLAlchemyError) as exc:
        db.rollback()
        raise _store_error("Failed to connect QuickBooks", exc) from exc
    LOGGER.info("QuickBooks connected realm_id=%s", realm_id)
    return HTMLResponse(QB_CONNECTED_PAGE)


@app.get("/api/quickbooks/status")
def quickbooks_status(db: Session = Depends(get_db)):
    return get_status(db)


@app.post("/api/quickbooks/disconnect")
def quickbooks_disconnect(db: Session = Depends(get_db)):
    removed = clear_tokens(db)
    LOGGER.info("QuickBooks disconnected tokens_removed=%s", removed)
    return {"success": True}
