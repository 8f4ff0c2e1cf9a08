import unittest
import urllib.parse
from datetime import datetime, timedelta

from fastapi.testclient import TestClient
from sqlalchemy import func, select

import db_support

import RentalHub as app_module
from models.rental_models import QuickBooksToken
from services import quickbooks_service


class FakeQuickBooksApi:
    def __init__(self, responses=None):
        self.calls = []
        self.responses = list(responses or [])

    def __call__(self, method, url, headers, body=None):
        self.calls.append({"method": method, "url": url, "headers": headers, "body": body})
        if not self.responses:
            raise AssertionError(f"Unexpected QuickBooks call {method} {url}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _quote(**overrides):
    quote = {
        "clientName": "Dana Reyes",
        "clientEmail": "dana@example.com",
        "clientPhone": "555-0100",
        "clientCompany": "Reyes Builders",
        "startDate": "2026-04-01",
        "endDate": "2026-04-05",
        "duration": 4,
        "items": [{"name": "Scissor Lift 19ft", "quantity": 2}],
        "pricing": {"insurance": 156, "delivery": 250, "subtotal": 1966, "tax": 157.28, "total": 2123.28},
        "notes": None,
    }
    quote.update(overrides)
    return quote


class QuickBooksTestCase(unittest.TestCase):
    def setUp(self):
        self.engine, self.factory = db_support.make_session_factory()
        self.db = self.factory()
        self.original_http_json = quickbooks_service._http_json

    def tearDown(self):
        quickbooks_service._http_json = self.original_http_json
        self.db.close()
        self.engine.dispose()

    def install_api(self, *responses) -> FakeQuickBooksApi:
        api = FakeQuickBooksApi(responses)
        quickbooks_service._http_json = api
        return api

    def store_token(self, expires_in_minutes: int, created_offset_minutes: int = 0, realm_id="realm-9"):
        created = datetime.now() + timedelta(minutes=created_offset_minutes)
        self.db.add(
            QuickBooksToken(
                access_token=f"access-{created_offset_minutes}",
                refresh_token=f"refresh-{created_offset_minutes}",
                expires_at=created + timedelta(minutes=expires_in_minutes),
                realm_id=realm_id,
                created_at=created,
            )
        )
        self.db.commit()


class TokenTests(QuickBooksTestCase):
    def test_not_connected_raises(self):
        with self.assertRaises(quickbooks_service.QuickBooksError):
            quickbooks_service.get_valid_access_token(self.db)

    def test_valid_token_uses_newest_row_without_refresh(self):
        self.store_token(expires_in_minutes=60, created_offset_minutes=-30)
        self.store_token(expires_in_minutes=60, created_offset_minutes=-5)
        api = self.install_api()

        token, realm_id = quickbooks_service.get_valid_access_token(self.db)

        self.assertEqual(token, "access--5")
        self.assertEqual(realm_id, "realm-9")
        self.assertEqual(api.calls, [])

    def test_expired_token_is_refreshed_and_keeps_refresh_token(self):
        self.store_token(expires_in_minutes=1, created_offset_minutes=-120)
        api = self.install_api({"access_token": "fresh-access", "expires_in": 3600})

        token, realm_id = quickbooks_service.get_valid_access_token(self.db)

        self.assertEqual(token, "fresh-access")
        self.assertEqual(realm_id, "realm-9")
        call = api.calls[0]
        self.assertEqual(call["url"], quickbooks_service.QB_TOKEN_URL)
        self.assertTrue(call["headers"]["Authorization"].startswith("Basic "))
        form = urllib.parse.parse_qs(call["body"].decode("utf-8"))
        self.assertEqual(form, {"grant_type": ["refresh_token"], "refresh_token": ["refresh--120"]})

        newest = quickbooks_service.get_tokens(self.db)
        self.assertEqual(newest.access_token, "fresh-access")
        self.assertEqual(newest.refresh_token, "refresh--120")
        self.assertEqual(newest.realm_id, "realm-9")

    def test_exchange_code_stores_realm(self):
        api = self.install_api({"access_token": "a1", "refresh_token": "r1", "expires_in": 3600})

        quickbooks_service.exchange_code(self.db, "auth-code", "realm-42")

        form = urllib.parse.parse_qs(api.calls[0]["body"].decode("utf-8"))
        self.assertEqual(form["grant_type"], ["authorization_code"])
        self.assertEqual(form["code"], ["auth-code"])
        stored = quickbooks_service.get_tokens(self.db)
        self.assertEqual((stored.access_token, stored.refresh_token, stored.realm_id), ("a1", "r1", "realm-42"))
        self.assertGreater(stored.expires_at, datetime.now() + timedelta(minutes=50))

    def test_clear_tokens_removes_everything(self):
        self.store_token(expires_in_minutes=60, created_offset_minutes=-10)
        self.store_token(expires_in_minutes=60)

        quickbooks_service.clear_tokens(self.db)

        remaining = self.db.execute(select(func.count(QuickBooksToken.id))).scalar()
        self.assertEqual(remaining, 0)


class EstimateTests(QuickBooksTestCase):
    def test_build_estimate_shape(self):
        estimate = quickbooks_service.build_estimate("cust-1", "item-7", _quote(notes="Gate code 4411"))

        sales_line, tax_line = estimate["Line"]
        self.assertEqual(estimate["CustomerRef"], {"value": "cust-1"})
        self.assertEqual(sales_line["DetailType"], "SalesItemLineDetail")
        self.assertEqual(sales_line["Amount"], 1966.0)
        self.assertEqual(sales_line["SalesItemLineDetail"]["ItemRef"], {"value": "item-7", "name": "OS RENTAL"})
        self.assertEqual(sales_line["SalesItemLineDetail"]["TaxCodeRef"], {"value": "TAX"})
        self.assertIn("Scissor Lift 19ft (2 × 4 days)", sales_line["Description"])
        self.assertIn("Rental Period: 2026-04-01 to 2026-04-05 (4 days)", sales_line["Description"])
        self.assertIn("Notes: Gate code 4411", sales_line["Description"])
        self.assertEqual(tax_line, {"DetailType": "SubTotalLineDetail", "Amount": 157.28})
        self.assertEqual(estimate["TotalAmt"], 2123.28)
        self.assertEqual(estimate["TxnTaxDetail"], {"TotalTax": 157.28})
        self.assertEqual(estimate["PrivateNote"], "Insurance: $156.00, Delivery: $250.00")

    def test_description_is_truncated(self):
        items = [{"name": "X" * 100, "quantity": 1} for _ in range(60)]
        description = quickbooks_service.build_estimate_description(_quote(items=items))
        self.assertEqual(len(description), quickbooks_service.QB_DESCRIPTION_LIMIT)

    def test_create_estimate_reuses_existing_customer_and_item(self):
        self.store_token(expires_in_minutes=60)
        api = self.install_api(
            {"QueryResponse": {"Customer": [{"Id": "58", "DisplayName": "Reyes Builders - Dana Reyes"}]}},
            {"QueryResponse": {"Item": [{"Id": "12", "Name": "OS RENTAL"}]}},
            {"Estimate": {"Id": "145", "DocNumber": "1009"}},
        )

        estimate = quickbooks_service.create_estimate(self.db, _quote())

        self.assertEqual(estimate, {"Id": "145", "DocNumber": "1009"})
        self.assertEqual([call["method"] for call in api.calls], ["GET", "GET", "POST"])
        self.assertIn("/realm-9/query?query=", api.calls[0]["url"])
        self.assertTrue(api.calls[2]["url"].endswith("/realm-9/estimate"))
        self.assertEqual(api.calls[2]["headers"]["Authorization"], "Bearer access-0")

    def test_create_estimate_creates_missing_customer(self):
        self.store_token(expires_in_minutes=60)
        api = self.install_api(
            {"QueryResponse": {}},
            {"Customer": {"Id": "77"}},
            {"QueryResponse": {"Item": [{"Id": "12"}]}},
            {"Estimate": {"Id": "146", "DocNumber": "1010"}},
        )

        quickbooks_service.create_estimate(self.db, _quote())

        created_customer = api.calls[1]
        self.assertTrue(created_customer["url"].endswith("/realm-9/customer"))
        self.assertIn(b'"DisplayName": "Reyes Builders - Dana Reyes"', created_customer["body"])
        self.assertIn(b'"CompanyName": "Reyes Builders"', created_customer["body"])
        self.assertIn(b'"value": "77"', api.calls[3]["body"])

    def test_create_estimate_without_realm_fails(self):
        self.store_token(expires_in_minutes=60, realm_id=None)
        self.install_api()
        with self.assertRaises(quickbooks_service.QuickBooksError):
            quickbooks_service.create_estimate(self.db, _quote())


class QuickBooksRouteTests(QuickBooksTestCase):
    def setUp(self):
        super().setUp()
        app_module.app.dependency_overrides[app_module.get_db] = db_support.override_for(self.factory)
        self.client = TestClient(app_module.app)
        self.original_client_id = quickbooks_service.QB_CLIENT_ID

    def tearDown(self):
        quickbooks_service.QB_CLIENT_ID = self.original_client_id
        app_module.app.dependency_overrides.clear()
        super().tearDown()

    def test_connect_requires_configuration(self):
        quickbooks_service.QB_CLIENT_ID = ""
        response = self.client.get("/api/quickbooks/connect")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["detail"], "QuickBooks not configured")

    def test_connect_returns_authorize_url(self):
        quickbooks_service.QB_CLIENT_ID = "client-abc"
        response = self.client.get("/api/quickbooks/connect")
        self.assertEqual(response.status_code, 200)
        url = urllib.parse.urlparse(response.json()["url"])
        query = urllib.parse.parse_qs(url.query)
        self.assertEqual(url.netloc, "appcenter.intuit.com")
        self.assertEqual(query["client_id"], ["client-abc"])
        self.assertEqual(query["scope"], ["com.intuit.quickbooks.accounting"])
        self.assertEqual(query["response_type"], ["code"])
        self.assertTrue(query["state"][0])

    def test_callback_requires_code_and_realm(self):
        response = self.client.get("/api/quickbooks/callback", params={"code": "abc"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Missing code or realmId")

    def test_callback_stores_tokens_and_reports_connected(self):
        self.install_api({"access_token": "a1", "refresh_token": "r1", "expires_in": 3600})

        response = self.client.get("/api/quickbooks/callback", params={"code": "abc", "realmId": "realm-1"})
        self.assertEqual(response.status_code, 200)
        self.assertIn("QuickBooks Connected!", response.text)

        status = self.client.get("/api/quickbooks/status").json()
        self.assertTrue(status["connected"])
        self.assertEqual(status["environment"], quickbooks_service.QB_ENVIRONMENT)

    def test_callback_failure_is_500(self):
        self.install_api(quickbooks_service.QuickBooksError("QuickBooks HTTP error 400: invalid_grant"))

        response = self.client.get("/api/quickbooks/callback", params={"code": "abc", "realmId": "realm-1"})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["detail"], "Failed to connect QuickBooks")

    def test_disconnect_clears_connection(self):
        self.store_token(expires_in_minutes=60)

        response = self.client.post("/api/quickbooks/disconnect")
        self.assertEqual(response.json(), {"success": True})
        self.assertFalse(self.client.get("/api/quickbooks/status").json()["connected"])


if __name__ == "__main__":
    unittest.main()
