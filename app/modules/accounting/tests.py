"""
Tests for the accounting entries module

Covers import receipts (totals, stock, store scoping), expenses, tax
payments and salary payments, and that recorded entries show up in the
ledger reports.
"""

from decimal import Decimal

import pytest

from app.modules.accounting.models import (
    Product, ImportReceipt, Expense, TaxPayment, SalaryPayment, PaymentMethod, TaxType
)
from app.modules.accounting.schemas import SalaryPaymentCreate


# ===== FIXTURES =====

@pytest.fixture
def products(db):
    rice = Product(store_id=1, name="Rice", unit="kg", current_stock=5)
    soap = Product(store_id=1, name="Soap", current_stock=0)
    foreign = Product(store_id=2, name="Foreign", current_stock=0)
    db.add_all([rice, soap, foreign])
    db.flush()
    ids = {"rice": rice.id, "soap": soap.id, "foreign": foreign.id}
    db.commit()
    return ids


@pytest.fixture
def import_data(products):
    return {
        "code": "NK-0001",
        "supplier": "Acme Wholesale",
        "import_date": "2025-03-01T08:00:00",
        "items": [
            {"product_id": products["rice"], "quantity": 10, "import_price": "18000"},
            {"product_id": products["soap"], "quantity": 4, "import_price": "12500.50"},
        ],
    }


# ===== IMPORT RECEIPTS =====

class TestImportReceipts:

    def test_create_import_receipt(self, client, db, auth_headers, import_data, products):
        response = client.post("/api/v1/accounting/imports", json=import_data, headers=auth_headers)

        assert response.status_code == 201
        data = response.json()
        assert Decimal(data["total_amount"]) == Decimal("230002.00")
        assert data["store_id"] == 1
        assert len(data["items"]) == 2

        db.expire_all()
        rice = db.get(Product, products["rice"])
        soap = db.get(Product, products["soap"])
        assert rice.current_stock == 15
        assert rice.price_in == Decimal("18000")
        assert soap.current_stock == 4
        db.rollback()

    def test_product_of_other_store_is_not_found(self, client, db, auth_headers, import_data, products):
        import_data["items"].append({"product_id": products["foreign"], "quantity": 1, "import_price": "10"})

        response = client.post("/api/v1/accounting/imports", json=import_data, headers=auth_headers)

        assert response.status_code == 404
        assert db.query(ImportReceipt).count() == 0
        db.rollback()

    def test_stock_untouched_when_rejected(self, client, db, auth_headers, import_data, products):
        import_data["items"].append({"product_id": 9999, "quantity": 1, "import_price": "10"})

        client.post("/api/v1/accounting/imports", json=import_data, headers=auth_headers)

        assert db.get(Product, products["rice"]).current_stock == 5
        db.rollback()

    @pytest.mark.parametrize("item", [
        {"quantity": 0, "import_price": "10"},
        {"quantity": 2, "import_price": "-1"},
        {"quantity": 3, "import_price": "10.005"},
    ])
    def test_invalid_items(self, client, auth_headers, import_data, products, item):
        import_data["items"] = [{"product_id": products["rice"], **item}]
        response = client.post("/api/v1/accounting/imports", json=import_data, headers=auth_headers)
        assert response.status_code == 422

    def test_sub_cent_price_does_not_change_stock(self, client, db, auth_headers, import_data, products):
        import_data["items"][0]["import_price"] = "18000.005"

        response = client.post("/api/v1/accounting/imports", json=import_data, headers=auth_headers)

        assert response.status_code == 422
        assert db.query(ImportReceipt).count() == 0
        assert db.get(Product, products["rice"]).current_stock == 5
        db.rollback()

    def test_duplicate_products_rejected(self, client, auth_headers, import_data, products):
        import_data["items"].append({"product_id": products["rice"], "quantity": 1, "import_price": "10"})
        response = client.post("/api/v1/accounting/imports", json=import_data, headers=auth_headers)
        assert response.status_code == 422

    def test_viewer_cannot_record(self, client, make_headers, import_data):
        response = client.post("/api/v1/accounting/imports", json=import_data, headers=make_headers(role="viewer"))
        assert response.status_code == 403


# ===== EXPENSES AND TAX PAYMENTS =====

class TestExpensesAndTaxes:

    def test_expense_defaults_to_cash(self, client, db, auth_headers):
        response = client.post(
            "/api/v1/accounting/expenses",
            json={"date": "2025-03-10T08:00:00", "amount": "120000", "category": "electricity"},
            headers=auth_headers
        )

        assert response.status_code == 201
        assert response.json()["payment_method"] == "CASH"
        assert db.query(Expense).filter(Expense.store_id == 1).count() == 1
        db.rollback()

    def test_expense_amount_must_be_positive(self, client, auth_headers):
        response = client.post(
            "/api/v1/accounting/expenses",
            json={"date": "2025-03-10T08:00:00", "amount": "0"},
            headers=auth_headers
        )
        assert response.status_code == 422

    def test_expense_amount_limited_to_cents(self, client, auth_headers):
        response = client.post(
            "/api/v1/accounting/expenses",
            json={"date": "2025-03-10T08:00:00", "amount": "120000.125"},
            headers=auth_headers
        )
        assert response.status_code == 422

    def test_expense_cannot_be_on_credit(self, client, auth_headers):
        response = client.post(
            "/api/v1/accounting/expenses",
            json={"date": "2025-03-10T08:00:00", "amount": "10", "payment_method": "DEBT"},
            headers=auth_headers
        )
        assert response.status_code == 422

    def test_tax_payment_defaults_to_transfer(self, client, db, auth_headers):
        response = client.post(
            "/api/v1/accounting/tax-payments",
            json={"date": "2025-03-20T00:00:00", "amount": "300000", "tax_type": "vat", "description": "Q1"},
            headers=auth_headers
        )

        assert response.status_code == 201
        payment = db.query(TaxPayment).one()
        assert payment.payment_method == PaymentMethod.TRANSFER
        assert payment.tax_type == TaxType.VAT
        db.rollback()

    def test_recorded_expense_reaches_cash_book(self, client, auth_headers):
        client.post(
            "/api/v1/accounting/expenses",
            json={"date": "2025-03-10T08:00:00", "amount": "120000", "reference_code": "EL-03"},
            headers=auth_headers
        )

        response = client.get(
            "/api/v1/reports/books", params={"month": 3, "year": 2025, "book": "s6"}, headers=auth_headers
        )

        rows = response.json()["rows"]
        assert rows[-1]["document"] == "EL-03"
        assert Decimal(rows[-1]["balance"]) == Decimal("-120000")


# ===== SALARIES =====

class TestSalaries:

    def test_total_is_base_plus_bonus_minus_deduction(self, client, db, auth_headers):
        response = client.post(
            "/api/v1/accounting/salaries",
            json={
                "month": 3, "year": 2025, "employee_name": "Minh",
                "base_salary": "5000000", "bonus": "500000", "deduction": "200000",
                "payment_date": "2025-03-31",
            },
            headers=auth_headers
        )

        assert response.status_code == 201
        assert Decimal(response.json()["total_amount"]) == Decimal("5300000")
        assert db.query(SalaryPayment).one().payment_date.day == 31
        db.rollback()

    def test_negative_total_rejected(self):
        with pytest.raises(ValueError):
            SalaryPaymentCreate(
                month=3, year=2025, employee_name="Minh",
                base_salary=Decimal("100"), deduction=Decimal("101")
            )

    def test_defaults(self):
        salary = SalaryPaymentCreate(month=3, year=2025, employee_name="Minh", base_salary=Decimal("100"))
        assert salary.bonus == 0
        assert salary.deduction == 0
        assert salary.payment_date is None
        assert salary.total_amount == Decimal("100")

    def test_month_out_of_range(self, client, auth_headers):
        response = client.post(
            "/api/v1/accounting/salaries",
            json={"month": 13, "year": 2025, "employee_name": "Minh", "base_salary": "1"},
            headers=auth_headers
        )
        assert response.status_code == 422


# ===== PACKAGE =====

def test_accounting_is_a_regular_package():
    import app.modules.accounting as accounting
    assert accounting.__file__.endswith("__init__.py")
