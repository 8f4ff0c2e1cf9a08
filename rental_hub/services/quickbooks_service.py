from __future__ import annotations

import base64
import json
import logging
import os
import secrets
import urllib.error
import urllib.parse
import urllib.request
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from models.rental_models import QuickBooksToken


LOGGER = logging.getLogger("rental_hub.quickbooks")

QB_CLIENT_ID = (os.environ.get("QB_CLIENT_ID") or "").strip()
QB_CLIENT_SECRET = (os.environ.get("QB_CLIENT_SECRET") or "").strip()
QB_REDIRECT_URI = (os.environ.get("QB_REDIRECT_URI") or "http://localhost:3001/api/quickbooks/callback").strip()
QB_ENVIRONMENT = (os.environ.get("QB_ENVIRONMENT") or "sandbox").strip()

QB_BASE_URL = (
    "https://quickbooks.api.intuit.com/v3/company"
    if QB_ENVIRONMENT == "production"
    else "https://sandbox-quickbooks.api.intuit.com/v3/company"
)
QB_TOKEN_URL = "https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer"
QB_AUTHORIZE_URL = "https://appcenter.intuit.com/connect/oauth2"
QB_SCOPE = "com.intuit.quickbooks.accounting"
QB_RENTAL_ITEM_NAME = "OS RENTAL"
QB_DESCRIPTION_LIMIT = 4000
QB_TIMEOUT_SECONDS = 20


class QuickBooksError(RuntimeError):
    pass


def is_configured() -> bool:
    return bool(QB_CLIENT_ID)


def _basic_auth_header() -> str:
    raw = f"{QB_CLIENT_ID}:{QB_CLIENT_SECRET}".encode("utf-8")
    return f"Basic {base64.b64encode(raw).decode('ascii')}"


def _http_json(method: str, url: str, headers: dict[str, str], body: bytes | None = None) -> dict[str, Any]:
    request = urllib.request.Request(url=url, data=body, headers=headers, method=method)
    try:
        with urllib.request.urlopen(request, timeout=QB_TIMEOUT_SECONDS) as response:
            payload = json.loads(response.read().decode("utf-8"))
    except urllib.error.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace") if exc.fp else ""
        raise QuickBooksError(f"QuickBooks HTTP error {exc.code}: {detail}") from exc
    except urllib.error.URLError as exc:
        raise QuickBooksError(f"QuickBooks connection error: {exc.reason}") from exc
    except json.JSONDecodeError as exc:
        raise QuickBooksError("QuickBooks returned invalid JSON") from exc
    if not isinstance(payload, dict):
        raise QuickBooksError("QuickBooks payload is not an object")
    return payload


def _api_headers(access_token: str, with_body: bool = False) -> dict[str, str]:
    headers = {
        "Authorization": f"Bearer {access_token}",
        "Accept": "application/json",
    }
    if with_body:
        headers["Content-Type"] = "application/json"
    return headers


def _token_request(form: dict[str, str]) -> dict[str, Any]:
    return _http_json(
        "POST",
        QB_TOKEN_URL,
        {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
            "Authorization": _basic_auth_header(),
        },
        urllib.parse.urlencode(form).encode("utf-8"),
    )


def build_authorize_url(state: str | None = None) -> str:
    query = urllib.parse.urlencode(
        {
            "client_id": QB_CLIENT_ID,
            "redirect_uri": QB_REDIRECT_URI,
            "response_type": "code",
            "scope": QB_SCOPE,
            "state": state or secrets.token_urlsafe(8),
        }
    )
    return f"{QB_AUTHORIZE_URL}?{query}"


def get_tokens(db: Session) -> QuickBooksToken | None:
    return db.execute(
        select(QuickBooksToken).order_by(QuickBooksToken.created_at.desc()).limit(1)
    ).scalars().first()


def store_tokens(db: Session, tokens: dict[str, Any]) -> QuickBooksToken:
    now = datetime.now()
    row = QuickBooksToken(
        access_token=tokens["access_token"],
        refresh_token=tokens["refresh_token"],
        expires_at=now + timedelta(seconds=int(tokens.get("expires_in") or 0)),
        realm_id=tokens.get("realm_id"),
        created_at=now,
    )
    db.add(row)
    db.commit()
    return row


def clear_tokens(db: Session) -> int:
    result = db.execute(delete(QuickBooksToken))
    db.commit()
    return int(result.rowcount or 0)


def exchange_code(db: Session, code: str, realm_id: str) -> QuickBooksToken:
    tokens = _token_request(
        {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": QB_REDIRECT_URI,
        }
    )
    return store_tokens(db, {**tokens, "realm_id": realm_id})


def refresh_access_token(db: Session, current: QuickBooksToken) -> str:
    tokens = _token_request(
        {
            "grant_type": "refresh_token",
            "refresh_token": current.refresh_token,
        }
    )
    # The provider may omit the refresh token when it is unchanged.
    stored = store_tokens(
        db,
        {
            **tokens,
            "refresh_token": tokens.get("refresh_token") or current.refresh_token,
            "realm_id": tokens.get("realm_id") or current.realm_id,
        },
    )
    LOGGER.info("Refreshed QuickBooks access token realm_id=%s", stored.realm_id)
    return stored.access_token


def get_valid_access_token(db: Session) -> tuple[str, str | None]:
    tokens = get_tokens(db)
    if not tokens:
        raise QuickBooksError("Not connected to QuickBooks")
    if tokens.expires_at < datetime.now():
        return refresh_access_token(db, tokens), tokens.realm_id
    return tokens.access_token, tokens.realm_id


def _query(access_token: str, realm_id: str, statement: str) -> dict[str, Any]:
    url = f"{QB_BASE_URL}/{realm_id}/query?query={urllib.parse.quote(statement)}"
    payload = _http_json("GET", url, _api_headers(access_token))
    return payload.get("QueryResponse") or {}


def _create(access_token: str, realm_id: str, entity: str, body: dict[str, Any]) -> dict[str, Any]:
    url = f"{QB_BASE_URL}/{realm_id}/{entity}"
    data = json.dumps(body).encode("utf-8")
    return _http_json("POST", url, _api_headers(access_token, with_body=True), data)


def _unwrap(payload: dict[str, Any], entity: str) -> dict[str, Any]:
    # Create responses wrap the entity under its type name.
    inner = payload.get(entity)
    return inner if isinstance(inner, dict) else payload


def _escape_query_value(value: str) -> str:
    return (value or "").replace("\\", "\\\\").replace("'", "\\'")


def find_or_create_customer(
    access_token: str,
    realm_id: str,
    name: str,
    email: str,
    phone: str | None = None,
    company: str | None = None,
) -> dict[str, Any]:
    found = _query(
        access_token,
        realm_id,
        f"SELECT * FROM Customer WHERE PrimaryEmailAddr.Address = '{_escape_query_value(email)}'",
    ).get("Customer") or []
    if found:
        return found[0]

    customer: dict[str, Any] = {
        "DisplayName": f"{company} - {name}" if company else name,
        "PrimaryEmailAddr": {"Address": email},
    }
    if phone:
        customer["PrimaryPhone"] = {"FreeFormNumber": phone}
    if company:
        customer["CompanyName"] = company
    return _unwrap(_create(access_token, realm_id, "customer", customer), "Customer")


def find_or_create_rental_item(access_token: str, realm_id: str) -> dict[str, Any]:
    found = _query(
        access_token,
        realm_id,
        f"SELECT * FROM Item WHERE Name = '{QB_RENTAL_ITEM_NAME}'",
    ).get("Item") or []
    if found:
        return found[0]

    item = {
        "Name": QB_RENTAL_ITEM_NAME,
        "Type": "Service",
        "IncomeAccountRef": {"name": "Sales of Product Income", "value": "1"},
        "Taxable": True,
    }
    return _unwrap(_create(access_token, realm_id, "item", item), "Item")


def build_estimate_description(quote: dict[str, Any]) -> str:
    item_descriptions = ", ".join(
        f"{item.get('name')} ({item.get('quantity')} × {item.get('duration') or quote.get('duration')} days)"
        for item in quote.get("items") or []
    )
    description = (
        f"Equipment Rental: {item_descriptions}\n\n"
        f"Rental Period: {quote.get('startDate')} to {quote.get('endDate')} ({quote.get('duration')} days)\n"
    )
    if quote.get("notes"):
        description += f"\nNotes: {quote['notes']}"
    return description[:QB_DESCRIPTION_LIMIT]


def build_estimate(customer_id: str, rental_item_id: str, quote: dict[str, Any]) -> dict[str, Any]:
    pricing = quote.get("pricing") or {}
    subtotal = float(pricing.get("subtotal") or 0)
    tax = float(pricing.get("tax") or 0)
    return {
        "CustomerRef": {"value": customer_id},
        "Line": [
            {
                "DetailType": "SalesItemLineDetail",
                "SalesItemLineDetail": {
                    "ItemRef": {"value": rental_item_id, "name": QB_RENTAL_ITEM_NAME},
                    "Qty": 1,
                    "UnitPrice": subtotal,
                    "TaxCodeRef": {"value": "TAX"},
                },
                "Amount": subtotal,
                "Description": build_estimate_description(quote),
            },
            {
                "DetailType": "SubTotalLineDetail",
                "Amount": tax,
            },
        ],
        "TotalAmt": float(pricing.get("total") or 0),
        "TxnTaxDetail": {"TotalTax": tax},
        "PrivateNote": (
            f"Insurance: ${float(pricing.get('insurance') or 0):.2f}, "
            f"Delivery: ${float(pricing.get('delivery') or 0):.2f}"
        ),
    }


def create_estimate(db: Session, quote: dict[str, Any]) -> dict[str, Any]:
    access_token, realm_id = get_valid_access_token(db)
    if not realm_id:
        raise QuickBooksError("No realm ID found")

    customer = find_or_create_customer(
        access_token,
        realm_id,
        name=quote["clientName"],
        email=quote["clientEmail"],
        phone=quote.get("clientPhone"),
        company=quote.get("clientCompany"),
    )
    rental_item = find_or_create_rental_item(access_token, realm_id)
    estimate = build_estimate(str(customer["Id"]), str(rental_item["Id"]), quote)
    return _unwrap(_create(access_token, realm_id, "estimate", estimate), "Estimate")


def get_status(db: Session) -> dict[str, Any]:
    return {
        "connected": get_tokens(db) is not None,
        "environment": QB_ENVIRONMENT,
    }
