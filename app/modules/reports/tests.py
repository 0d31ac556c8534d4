"""
Tests for the reports API

Covers the book and tax endpoints, CSV export, fault mapping and remote
signing. Data is seeded through the ORM into the in-memory database.
"""

import csv
import io
from datetime import datetime
from decimal import Decimal

import pytest
import requests

from app.main import app
from app.modules.accounting.models import PaymentMethod, Invoice, Expense, ExpenseCategory
from app.modules.reports.routers.books import fault_to_http, get_signing_client
from app.modules.reports.services import (
    ValidationFault, DataIntegrityFault, ConsistencyFault, UpstreamFault
)
from app.modules.reports.signing import (
    RemoteSigningClient, SigningError, SigningNotConfigured, report_digest
)
from app.modules.reports.utils import CSV_HEADERS, format_csv_value


BOOKS_URL = "/api/v1/reports/books"


# ===== FIXTURES =====

@pytest.fixture
def seeded(db):
    db.add_all([
        Invoice(
            store_id=1, code="HD1", total_amount=Decimal("1000000"),
            payment_method=PaymentMethod.CASH, created_at=datetime(2025, 2, 10, 9, 0)
        ),
        Invoice(
            store_id=1, code="HD2", total_amount=Decimal("500000"),
            payment_method=PaymentMethod.CASH, created_at=datetime(2025, 3, 5, 9, 0)
        ),
        Invoice(
            store_id=2, code="XX1", total_amount=Decimal("700000"),
            payment_method=PaymentMethod.CASH, created_at=datetime(2025, 3, 5, 9, 0)
        ),
        Expense(
            store_id=1, date=datetime(2025, 3, 10, 8, 0), amount=Decimal("120000"),
            category=ExpenseCategory.ELECTRICITY, description="Power bill",
            payment_method=PaymentMethod.CASH
        ),
    ])
    db.commit()
    return db


class StubResponse:
    def __init__(self, body, status_code=200):
        self.body = body
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")

    def json(self):
        return self.body


class StubSession:
    """Records posted payloads and replies with a canned response or error"""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


SIGNATURE = {
    "signer_name": "HKD Lan Store",
    "signature_value": "MEUCIQDx",
    "cert_serial": "5401-AB",
    "timestamp": "2025-04-01T08:00:00",
}

SIGN_BODY = {
    "summary": {
        "total_revenue": "500000", "vat_amount": "0", "pit_amount": "0", "total_tax": "0",
        "accumulated_revenue": "1500000", "tax_threshold": "100000000", "is_exempt": True,
    },
    "book_type": "s6",
    "rows": [{"date": "2025-03-01", "balance": "1000000"}],
}


@pytest.fixture
def signing_session():
    session = StubSession(response=StubResponse(SIGNATURE))
    app.dependency_overrides[get_signing_client] = lambda: RemoteSigningClient(
        base_url="http://signer.local", api_key="secret", session=session
    )
    yield session
    app.dependency_overrides.pop(get_signing_client, None)


# ===== BOOK ENDPOINTS =====

class TestBookEndpoints:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_cash_book(self, client, seeded, auth_headers):
        response = client.get(BOOKS_URL, params={"month": 3, "year": 2025, "book": "s6"}, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["book_type"] == "s6"
        assert [Decimal(r["balance"]) for r in data["rows"]] == [
            Decimal("1000000"), Decimal("1500000"), Decimal("1380000")
        ]
        assert data["rows"][0]["date"] == "2025-03-01"
        assert data["rows"][2]["description"] == "Power bill"

    def test_summary_is_scoped_to_token_store(self, client, seeded, make_headers):
        response = client.get(
            BOOKS_URL, params={"month": 3, "year": 2025, "book": "s1"}, headers=make_headers(store_id=2)
        )

        assert response.status_code == 200
        data = response.json()
        assert [r["code"] for r in data["rows"]] == ["XX1"]
        assert Decimal(data["summary"]["accumulated_revenue"]) == Decimal("700000")
        assert data["summary"]["is_exempt"] is True

    def test_unknown_book(self, client, auth_headers):
        response = client.get(BOOKS_URL, params={"month": 3, "year": 2025, "book": "s9"}, headers=auth_headers)
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "unknown_book"

    def test_month_out_of_range(self, client, auth_headers):
        response = client.get(BOOKS_URL, params={"month": 13, "year": 2025, "book": "s1"}, headers=auth_headers)
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "invalid_period"

    def test_defaults_to_current_month(self, client, auth_headers):
        response = client.get(BOOKS_URL, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["book_type"] == "s1"

    def test_tax_summary(self, client, seeded, auth_headers):
        response = client.get("/api/v1/reports/tax", params={"month": 3, "year": 2025}, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["summary"]["total_revenue"]) == Decimal("500000")
        assert [i["code"] for i in data["invoices"]] == ["HD2"]

    def test_requires_token(self, client):
        response = client.get(BOOKS_URL)
        assert response.status_code in (401, 403)

    def test_rejects_bad_token(self, client):
        response = client.get(BOOKS_URL, headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_token_without_store(self, client, make_headers):
        response = client.get(BOOKS_URL, headers=make_headers(store_id=None))
        assert response.status_code == 400


# ===== CSV EXPORT =====

class TestCsvExport:

    def test_cash_book_csv(self, client, seeded, auth_headers):
        response = client.get(
            BOOKS_URL, params={"month": 3, "year": 2025, "book": "s6", "export": "csv"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "s6_store1_2025_03.csv" in response.headers["content-disposition"]

        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows[0] == list(CSV_HEADERS["s6"].values())
        assert rows[1][0] == "2025-03-01"
        assert Decimal(rows[-1][-1]) == Decimal("1380000")

    def test_empty_book_has_header_row(self, client, auth_headers):
        response = client.get(
            BOOKS_URL, params={"month": 3, "year": 2025, "book": "s5", "export": "csv"}, headers=auth_headers
        )
        assert response.status_code == 200
        assert response.text.strip() == ",".join(CSV_HEADERS["s5"].values())

    def test_every_book_has_headers(self):
        assert set(CSV_HEADERS) == {f"s{i}" for i in range(1, 8)}

    def test_decimal_written_plainly(self):
        assert format_csv_value(Decimal("1E+7")) == "10000000"
        assert format_csv_value(None) == ""
        assert format_csv_value(datetime(2025, 3, 1).date()) == "2025-03-01"


# ===== FAULT MAPPING =====

class TestFaultMapping:

    @pytest.mark.parametrize("fault,status_code", [
        (ValidationFault("bad month", code="invalid_period"), 422),
        (DataIntegrityFault("missing date"), 409),
        (ConsistencyFault("moved"), 409),
        (UpstreamFault("db down"), 503),
    ])
    def test_status_per_fault(self, fault, status_code):
        error = fault_to_http(fault)
        assert error.status_code == status_code
        assert error.detail == {"code": fault.code, "message": fault.message}


# ===== SIGNING =====

class TestSigning:

    def test_digest_ignores_key_order(self):
        assert report_digest({"a": 1, "b": Decimal("2.50")}) == report_digest({"b": Decimal("2.50"), "a": 1})

    def test_sign_posts_digest(self):
        session = StubSession(response=StubResponse(SIGNATURE))
        client = RemoteSigningClient(base_url="http://signer.local/", api_key="secret", timeout=3, session=session)
        report = {"book_type": "s6", "rows": []}

        result = client.sign(report, store_id=1)

        call = session.calls[0]
        assert call["url"] == "http://signer.local/signing/remote"
        assert call["json"]["digest"] == report_digest(report)
        assert call["headers"]["Authorization"] == "Bearer secret"
        assert call["timeout"] == 3
        assert result["cert_serial"] == "5401-AB"
        assert result["digest"] == report_digest(report)

    def test_not_configured(self):
        with pytest.raises(SigningNotConfigured):
            RemoteSigningClient(base_url="", session=StubSession()).sign({}, store_id=1)

    def test_incomplete_response(self):
        session = StubSession(response=StubResponse({"signer_name": "x"}))
        with pytest.raises(SigningError):
            RemoteSigningClient(base_url="http://signer.local", session=session).sign({}, store_id=1)

    def test_sign_endpoint(self, client, auth_headers, signing_session):
        response = client.post("/api/v1/reports/sign", json=SIGN_BODY, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["signer_name"] == "HKD Lan Store"
        assert signing_session.calls[0]["json"]["store_id"] == 1

    def test_sign_endpoint_upstream_failure(self, client, auth_headers, signing_session):
        signing_session.error = requests.ConnectionError("connection refused")
        body = {
            "summary": {
                "total_revenue": "0", "vat_amount": "0", "pit_amount": "0", "total_tax": "0",
                "accumulated_revenue": "0", "tax_threshold": "100000000", "is_exempt": True,
            },
            "book_type": "s1",
        }
        response = client.post("/api/v1/reports/sign", json=body, headers=auth_headers)
        assert response.status_code == 502

    def test_sign_requires_bookkeeper(self, client, make_headers, signing_session):
        response = client.post("/api/v1/reports/sign", json=SIGN_BODY, headers=make_headers(role="viewer"))
        assert response.status_code == 403
