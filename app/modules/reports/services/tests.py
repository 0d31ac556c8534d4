"""
Tests for the ledger & tax-reporting engine

Covers:
- Tax policy thresholds and rounding
- Import receipt channel classification
- Ledger merging, ordering and tenant isolation
- Opening and running balances (continuity, conservation, channel partition)
- Every book s1..s7
- Snapshot consistency and data-access faults
- The SQL Transaction Query against SQLite, including a read snapshot
  that holds while another connection commits
"""

from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.database.database import Base
from app.modules.accounting.models import (
    PaymentMethod, Product, Customer, Invoice, InvoiceItem, ImportReceipt, ImportReceiptItem,
    Expense, ExpenseCategory, TaxPayment, TaxType, SalaryPayment
)
from app.modules.reports.services import (
    LedgerReportService, SqlTransactionQuery,
    ValidationFault, DataIntegrityFault, ConsistencyFault, UpstreamFault
)
from app.modules.reports.services.base import SqlTransactionSnapshot
from app.modules.reports.services.books import closing_balance
from app.modules.reports.services.ledger import (
    LedgerMerger, SourceBundle, accumulate_balances, classify_import_channel, sort_entries
)
from app.modules.reports.services.records import (
    Channel, SourceKind, Window, ReportPeriod, LineItem, ProductInfo,
    SalesRecord, ImportRecord, ExpenseRecord, TaxPaymentRecord, SalaryRecord
)
from app.modules.reports.services.tax_policy import resolve_tax_policy, tax_threshold
from app.modules.reports.signing import report_digest


STORE = 1
OTHER_STORE = 2


# ===== FAKE TRANSACTION QUERY =====

class FakeLedgerSource:
    """In-memory transaction sources; every write bumps the version"""

    def __init__(self):
        self.sales = []
        self.imports = []
        self.expenses = []
        self.tax_payments = []
        self.salaries = []
        self.products = {}
        self.version = 0
        self.snapshots_opened = 0
        self.leak_tenants = False
        self.failing = set()
        self.after_first_read = None
        self.sales_reads = []

    def write(self, kind, record):
        getattr(self, kind).append(record)
        self.version += 1
        return record

    @contextmanager
    def snapshot(self):
        self.snapshots_opened += 1
        yield FakeSnapshot(self)


class FakeSnapshot:
    def __init__(self, source):
        self.source = source
        self.version = source.version
        self.reads = 0

    def _read(self, name, records, store_id):
        if name in self.source.failing:
            raise UpstreamFault(f"Data access failed while reading {name}")
        self.reads += 1
        if self.reads == 1 and self.source.after_first_read:
            hook, self.source.after_first_read = self.source.after_first_read, None
            hook()
        if self.source.leak_tenants:
            return list(records)
        return [r for r in records if r.store_id == store_id]

    def sales(self, store_id, window, channel=None, with_details=True):
        self.source.sales_reads.append(with_details)
        rows = [
            s for s in self._read("sales", self.source.sales, store_id)
            if window.contains(s.created_at) and (channel is None or channel.matches(s.payment_method))
        ]
        return sorted(rows, key=lambda s: (s.created_at, s.id))

    def revenue_total(self, store_id, window):
        return sum(
            (s.total_amount for s in self._read("sales", self.source.sales, store_id) if window.contains(s.created_at)),
            Decimal("0")
        )

    def imports(self, store_id, window):
        rows = [r for r in self._read("imports", self.source.imports, store_id) if window.contains(r.import_date)]
        return sorted(rows, key=lambda r: (r.import_date, r.id))

    def expenses(self, store_id, window, channel=None):
        rows = [
            e for e in self._read("expenses", self.source.expenses, store_id)
            if window.contains(e.date) and (channel is None or channel.matches(e.payment_method))
        ]
        return sorted(rows, key=lambda e: (e.date, e.id))

    def tax_payments(self, store_id, window, channel=None):
        rows = [
            t for t in self._read("tax_payments", self.source.tax_payments, store_id)
            if window.contains(t.date) and (channel is None or channel.matches(t.payment_method))
        ]
        return sorted(rows, key=lambda t: (t.date, t.id))

    def salaries(self, store_id, month, year):
        return [
            s for s in self._read("salaries", self.source.salaries, store_id)
            if s.month == month and s.year == year
        ]

    def products(self, store_id, product_ids):
        return {pid: self.source.products[pid] for pid in set(product_ids) if pid in self.source.products}

    def verify(self):
        if self.source.version != self.version:
            raise ConsistencyFault("Source data changed while the report was built", code="snapshot_lost")


# ===== RECORD BUILDERS =====

def sale(id, when, amount, method=PaymentMethod.CASH, store_id=STORE, customer=None, items=()):
    return SalesRecord(
        id=id, store_id=store_id, code=f"HD{id:04d}", created_at=when,
        total_amount=Decimal(amount), payment_method=method, customer_name=customer, items=tuple(items)
    )


def expense(id, when, amount, method=PaymentMethod.CASH, store_id=STORE, category="rent", description=None, ref=None):
    return ExpenseRecord(
        id=id, store_id=store_id, date=when, amount=Decimal(amount), category=category,
        payment_method=method, description=description, reference_code=ref
    )


def tax_payment(id, when, amount, method=PaymentMethod.TRANSFER, store_id=STORE, tax_type="vat", description=None):
    return TaxPaymentRecord(
        id=id, store_id=store_id, date=when, amount=Decimal(amount), tax_type=tax_type,
        payment_method=method, description=description
    )


def receipt(id, when, amount, store_id=STORE, supplier="Acme", items=()):
    return ImportRecord(
        id=id, store_id=store_id, code=f"NK{id:04d}", import_date=when,
        total_amount=Decimal(amount), supplier=supplier, items=tuple(items)
    )


def service_for(source):
    return LedgerReportService(source, min_year=2000, max_year=2100)


@pytest.fixture
def source():
    return FakeLedgerSource()


@pytest.fixture
def cash_scenario(source):
    """1,000,000 cash carried in; a 500,000 cash sale on Mar 5 and a 120,000 cash expense on Mar 10"""
    source.write("sales", sale(1, datetime(2025, 2, 14, 9, 0), "1000000"))
    source.write("sales", sale(2, datetime(2025, 3, 5, 10, 30), "500000"))
    source.write("expenses", expense(1, datetime(2025, 3, 10, 8, 0), "120000"))
    return source


# ===== TAX POLICY =====

class TestTaxPolicy:

    def test_threshold_by_year(self):
        assert tax_threshold(2025) == Decimal("100000000")
        assert tax_threshold(2026) == Decimal("200000000")

    def test_exempt_at_threshold(self):
        policy = resolve_tax_policy(2025, Decimal("100000000"))
        assert policy.is_exempt
        assert policy.vat_for(Decimal("1000000")) == 0
        assert policy.pit_for(Decimal("1000000")) == 0

    def test_taxable_one_cent_above_threshold(self):
        policy = resolve_tax_policy(2025, Decimal("100000000.01"))
        assert not policy.is_exempt
        assert policy.vat_rate == Decimal("0.01")
        assert policy.pit_rate == Decimal("0.005")

    def test_2026_threshold_doubles(self):
        assert resolve_tax_policy(2026, Decimal("150000000")).is_exempt
        assert not resolve_tax_policy(2026, Decimal("200000000.01")).is_exempt

    def test_invoice_tax_just_above_threshold(self):
        policy = resolve_tax_policy(2025, Decimal("100000001"))
        assert policy.vat_for(Decimal("1000000")) == Decimal("10000")
        assert policy.pit_for(Decimal("1000000")) == Decimal("5000")

    def test_rounds_half_up_to_whole_units(self):
        policy = resolve_tax_policy(2025, Decimal("100000001"))
        assert policy.pit_for(Decimal("100")) == Decimal("1")
        assert policy.vat_for(Decimal("149")) == Decimal("1")


# ===== RECORDS =====

class TestRecords:

    def test_float_amount_rejected(self):
        with pytest.raises(DataIntegrityFault) as exc:
            SalesRecord(
                id=1, store_id=STORE, code="HD1", created_at=datetime(2025, 3, 1),
                total_amount=10.5, payment_method=PaymentMethod.CASH
            )
        assert exc.value.code == "invalid_amount"

    def test_missing_date_rejected(self):
        with pytest.raises(DataIntegrityFault) as exc:
            expense(1, None, "1000")
        assert exc.value.code == "missing_field"

    def test_zero_quantity_line_rejected(self):
        with pytest.raises(DataIntegrityFault) as exc:
            LineItem(product_id=1, quantity=0, unit_price=Decimal("10"))
        assert exc.value.code == "invalid_quantity"

    def test_salary_requires_bonus_and_deduction(self):
        with pytest.raises(DataIntegrityFault):
            SalaryRecord(
                id=1, store_id=STORE, month=3, year=2025, employee_name="An",
                base_salary=Decimal("5000000"), bonus=None, deduction=Decimal("0"),
                total_amount=Decimal("5000000"), payment_date=datetime(2025, 3, 31)
            )

    def test_import_total_must_match_lines(self):
        with pytest.raises(DataIntegrityFault) as exc:
            receipt(1, datetime(2025, 3, 1), "1000", items=[LineItem(10, 2, Decimal("400"))])
        assert exc.value.code == "invalid_total"

    def test_import_without_lines_is_header_only(self):
        assert receipt(1, datetime(2025, 3, 1), "1000").items == ()

    def test_salary_total_must_match_components(self):
        with pytest.raises(DataIntegrityFault) as exc:
            SalaryRecord(
                id=1, store_id=STORE, month=3, year=2025, employee_name="An",
                base_salary=Decimal("5000000"), bonus=Decimal("500000"), deduction=Decimal("200000"),
                total_amount=Decimal("9000000"), payment_date=datetime(2025, 3, 31)
            )
        assert exc.value.code == "invalid_total"

    def test_negative_bonus_rejected(self):
        with pytest.raises(DataIntegrityFault) as exc:
            SalaryRecord(
                id=1, store_id=STORE, month=3, year=2025, employee_name="An",
                base_salary=Decimal("5000000"), bonus=Decimal("-100"), deduction=Decimal("0"),
                total_amount=Decimal("4999900"), payment_date=datetime(2025, 3, 31)
            )
        assert exc.value.code == "invalid_amount"

    def test_period_covers_whole_month(self):
        period = ReportPeriod(store_id=STORE, month=2, year=2024)
        assert period.start == datetime(2024, 2, 1)
        assert period.end == datetime(2024, 2, 29, 23, 59, 59, 999999)
        assert period.window.contains(datetime(2024, 2, 29, 23, 0))
        assert not period.prior_window.contains(datetime(2024, 2, 1))

    def test_period_rejects_bad_month(self):
        with pytest.raises(ValidationFault):
            ReportPeriod(store_id=STORE, month=13, year=2025)


# ===== LEDGER MERGER =====

class TestLedgerMerger:

    def test_import_channel_classification(self):
        assert classify_import_channel(Decimal("20000000")) is Channel.TRANSFER
        assert classify_import_channel(Decimal("19999999")) is Channel.CASH

    def test_same_instant_entries_keep_source_order(self):
        when = datetime(2025, 3, 5, 12, 0)
        bundle = SourceBundle(
            sales=[sale(1, when, "100")],
            expenses=[expense(1, when, "10")],
            tax_payments=[tax_payment(1, when, "5", method=PaymentMethod.CASH)],
            imports=[receipt(1, when, "50")],
        )
        merger = LedgerMerger(STORE)
        entries = sort_entries(reversed(merger.merge(bundle, Channel.CASH)))
        assert [e.source_kind for e in entries] == [
            SourceKind.SALE, SourceKind.EXPENSE, SourceKind.TAX_PAYMENT, SourceKind.IMPORT
        ]

    def test_debt_sales_move_no_money(self):
        bundle = SourceBundle(sales=[sale(1, datetime(2025, 3, 5), "100", method=PaymentMethod.DEBT)])
        merger = LedgerMerger(STORE)
        assert merger.merge(bundle, Channel.CASH) == []
        assert merger.merge(bundle, Channel.TRANSFER) == []

    def test_foreign_record_rejected(self):
        bundle = SourceBundle(expenses=[expense(1, datetime(2025, 3, 5), "100", store_id=OTHER_STORE)])
        with pytest.raises(DataIntegrityFault) as exc:
            LedgerMerger(STORE).merge(bundle, Channel.CASH)
        assert exc.value.code == "tenant_mismatch"

    def test_document_fallbacks(self):
        bundle = SourceBundle(
            expenses=[expense(7, datetime(2025, 3, 5), "100")],
            tax_payments=[tax_payment(9, datetime(2025, 3, 6), "40", method=PaymentMethod.CASH)],
        )
        entries = LedgerMerger(STORE).merge(bundle, Channel.CASH)
        assert [e.document for e in entries] == ["PC7", "NT9"]
        assert entries[0].description == "rent"
        assert entries[1].description == "Tax payment: vat"

    def test_every_entry_moves_money_one_way(self):
        bundle = SourceBundle(
            sales=[sale(1, datetime(2025, 3, 1), "300"), sale(2, datetime(2025, 3, 2), "0")],
            expenses=[expense(1, datetime(2025, 3, 3), "20")],
            imports=[receipt(1, datetime(2025, 3, 4), "0")],
        )
        for entry in LedgerMerger(STORE).merge(bundle, Channel.CASH):
            assert (entry.inflow > 0) != (entry.outflow > 0)

    def test_running_balance_starts_with_opening_marker(self):
        entries = LedgerMerger(STORE).merge(
            SourceBundle(sales=[sale(1, datetime(2025, 3, 5), "100")]), Channel.CASH
        )
        rows = accumulate_balances(Decimal("-50"), entries, datetime(2025, 3, 1))
        assert rows[0].entry.source_kind is SourceKind.OPENING
        assert rows[0].balance_after == Decimal("-50")
        assert rows[1].balance_after == Decimal("50")


# ===== CASH AND BANK BOOKS =====

class TestMoneyBooks:

    def test_cash_book_scenario(self, cash_scenario):
        report = service_for(cash_scenario).build_report(STORE, 3, 2025, "s6")
        rows = report["rows"]

        assert report["book_type"] == "s6"
        assert [r["balance"] for r in rows] == [Decimal("1000000"), Decimal("1500000"), Decimal("1380000")]
        assert rows[0]["description"] == "Opening balance"
        assert rows[1]["inflow"] == Decimal("500000")
        assert rows[2]["outflow"] == Decimal("120000")
        assert closing_balance(rows) == Decimal("1380000")

    def test_opening_balance_equals_previous_closing(self, source):
        source.write("sales", sale(1, datetime(2025, 1, 20), "400000"))
        source.write("expenses", expense(1, datetime(2025, 2, 3), "150000"))
        source.write("sales", sale(2, datetime(2025, 2, 28, 23, 59), "90000"))
        source.write("imports", receipt(1, datetime(2025, 3, 1, 0, 0), "60000"))
        service = service_for(source)

        for book in ("s6", "s7"):
            february = service.build_report(STORE, 2, 2025, book)["rows"]
            march = service.build_report(STORE, 3, 2025, book)["rows"]
            assert march[0]["balance"] == closing_balance(february)

    def test_conservation(self, source):
        source.write("sales", sale(1, datetime(2025, 2, 10), "700000"))
        source.write("sales", sale(2, datetime(2025, 3, 2), "250000", method=PaymentMethod.TRANSFER))
        source.write("sales", sale(3, datetime(2025, 3, 3), "80000"))
        source.write("expenses", expense(1, datetime(2025, 3, 4), "30000"))
        source.write("tax_payments", tax_payment(1, datetime(2025, 3, 5), "12000"))
        source.write("imports", receipt(1, datetime(2025, 3, 6), "25000000"))
        service = service_for(source)

        for book in ("s6", "s7"):
            rows = service.build_report(STORE, 3, 2025, book)["rows"]
            movement = sum(r["inflow"] for r in rows) - sum(r["outflow"] for r in rows)
            assert movement == closing_balance(rows) - rows[0]["balance"]

    def test_channel_partition(self, source):
        source.write("sales", sale(1, datetime(2025, 3, 2), "100000"))
        source.write("sales", sale(2, datetime(2025, 3, 2), "200000", method=PaymentMethod.TRANSFER))
        source.write("expenses", expense(1, datetime(2025, 3, 3), "5000", method=PaymentMethod.TRANSFER, ref="EX1"))
        source.write("tax_payments", tax_payment(1, datetime(2025, 3, 4), "7000", method=PaymentMethod.CASH))
        source.write("imports", receipt(1, datetime(2025, 3, 5), "20000000"))
        source.write("imports", receipt(2, datetime(2025, 3, 6), "19999999"))
        service = service_for(source)

        cash = {r["document"] for r in service.build_report(STORE, 3, 2025, "s6")["rows"][1:]}
        bank = {r["document"] for r in service.build_report(STORE, 3, 2025, "s7")["rows"][1:]}

        assert cash & bank == set()
        assert cash | bank == {"HD0001", "HD0002", "EX1", "NT1", "NK0001", "NK0002"}
        assert "NK0001" in bank
        assert "NK0002" in cash

    def test_negative_opening_balance_is_reported(self, source):
        source.write("expenses", expense(1, datetime(2025, 2, 1), "90000"))
        rows = service_for(source).build_report(STORE, 3, 2025, "s6")["rows"]
        assert rows == [{
            "date": datetime(2025, 3, 1).date(),
            "document": None,
            "description": "Opening balance",
            "inflow": Decimal("0"),
            "outflow": Decimal("0"),
            "balance": Decimal("-90000"),
        }]

    def test_identical_requests_give_identical_reports(self, cash_scenario):
        service = service_for(cash_scenario)
        first = service.build_report(STORE, 3, 2025, "s6")
        second = service.build_report(STORE, 3, 2025, "s6")
        assert first == second
        assert report_digest(first) == report_digest(second)


# ===== OTHER BOOKS =====

class TestBooks:

    def test_revenue_book(self, source):
        source.write("sales", sale(1, datetime(2025, 2, 1), "100000000"))
        source.write("sales", sale(2, datetime(2025, 3, 8), "1000000", customer="Lan"))
        source.write("sales", sale(3, datetime(2025, 3, 9), "200000"))

        report = service_for(source).build_report(STORE, 3, 2025, "s1")
        summary = report["summary"]

        assert summary["accumulated_revenue"] == Decimal("101200000")
        assert summary["is_exempt"] is False
        assert summary["total_revenue"] == Decimal("1200000")
        assert summary["vat_amount"] == Decimal("12000")
        assert summary["pit_amount"] == Decimal("6000")
        assert summary["total_tax"] == Decimal("18000")
        assert summary["tax_threshold"] == Decimal("100000000")

        rows = report["rows"]
        assert [r["buyer"] for r in rows] == ["Lan", "Walk-in customer"]
        assert rows[0]["vat"] == Decimal("10000")
        assert rows[0]["pit"] == Decimal("5000")
        assert rows[1]["return_amount"] == Decimal("0")

    def test_accumulated_revenue_stops_at_period_end(self, source):
        source.write("sales", sale(1, datetime(2025, 3, 8), "1000"))
        source.write("sales", sale(2, datetime(2025, 4, 1), "99999999999"))
        summary = service_for(source).build_report(STORE, 3, 2025, "s1")["summary"]
        assert summary["accumulated_revenue"] == Decimal("1000")
        assert summary["is_exempt"] is True
        assert summary["total_tax"] == 0

    def test_inventory_book_tracks_stock_per_product(self, source):
        source.products = {10: ProductInfo(10, "Rice", "kg"), 11: ProductInfo(11, "Soap")}
        when = datetime(2025, 3, 3, 9, 0)
        source.write("sales", sale(1, when, "50000", items=[LineItem(10, 2, Decimal("25000"))]))
        source.write("imports", receipt(1, when, "300000", items=[
            LineItem(10, 10, Decimal("20000")), LineItem(11, 5, Decimal("20000"))
        ]))
        source.write("sales", sale(2, datetime(2025, 3, 4), "30000", items=[
            LineItem(11, 1, Decimal("15000")), LineItem(99, 1, Decimal("15000"))
        ]))

        rows = service_for(source).build_report(STORE, 3, 2025, "s2")["rows"]

        assert [(r["product_name"], r["quantity_in"], r["quantity_out"], r["stock"]) for r in rows] == [
            ("Rice", 10, 0, 10),
            ("Soap", 5, 0, 5),
            ("Rice", 0, 2, 8),
            ("Soap", 0, 1, 4),
            ("Unknown product", 0, 1, -1),
        ]
        assert rows[0]["unit"] == "kg"
        assert rows[1]["unit"] == "pcs"
        assert rows[0]["description"] == "Goods received: Rice"
        assert rows[2]["description"] == "Goods issued: Rice"

    def test_expense_book(self, source):
        source.write("expenses", expense(1, datetime(2025, 3, 2), "400000", description="March rent", ref="R-03"))
        source.write("expenses", expense(2, datetime(2025, 3, 9), "80000", method=PaymentMethod.TRANSFER, category="water"))

        rows = service_for(source).build_report(STORE, 3, 2025, "s3")["rows"]

        assert [(r["document"], r["description"], r["outflow"]) for r in rows] == [
            ("R-03", "March rent", Decimal("400000")),
            ("PC2", "water", Decimal("80000")),
        ]
        assert all(r["inflow"] == 0 for r in rows)

    def test_tax_book(self, source):
        source.write("tax_payments", tax_payment(1, datetime(2025, 3, 20), "300000", description="Q1 VAT"))
        rows = service_for(source).build_report(STORE, 3, 2025, "s4")["rows"]
        assert rows == [{
            "date": datetime(2025, 3, 20).date(),
            "document": "NT1",
            "description": "vat - Q1 VAT",
            "tax_type": "vat",
            "outflow": Decimal("300000"),
        }]

    def test_salary_book_reads_payroll_month(self, source):
        for id, month in ((1, 3), (2, 4)):
            source.write("salaries", SalaryRecord(
                id=id, store_id=STORE, month=month, year=2025, employee_name=f"Employee {id}",
                base_salary=Decimal("5000000"), bonus=Decimal("500000"), deduction=Decimal("200000"),
                total_amount=Decimal("5300000"), payment_date=datetime(2025, month, 28)
            ))

        rows = service_for(source).build_report(STORE, 3, 2025, "s5")["rows"]

        assert len(rows) == 1
        assert rows[0]["employee_name"] == "Employee 1"
        assert rows[0]["total"] == Decimal("5300000")


# ===== REPORT SERVICE =====

class TestLedgerReportService:

    @pytest.mark.parametrize("store_id,month,year,book,code", [
        (STORE, 0, 2025, "s1", "invalid_period"),
        (STORE, 13, 2025, "s1", "invalid_period"),
        (STORE, 3, 1999, "s1", "invalid_period"),
        (STORE, 3, 2101, "s1", "invalid_period"),
        (STORE, 3, 2025, "s8", "unknown_book"),
        (0, 3, 2025, "s1", "invalid_store"),
    ])
    def test_invalid_requests_fail_before_data_access(self, source, store_id, month, year, book, code):
        with pytest.raises(ValidationFault) as exc:
            service_for(source).build_report(store_id, month, year, book)
        assert exc.value.code == code
        assert source.snapshots_opened == 0

    def test_concurrent_write_aborts_report(self, cash_scenario):
        cash_scenario.after_first_read = lambda: cash_scenario.write(
            "sales", sale(99, datetime(2025, 3, 6), "1")
        )
        with pytest.raises(ConsistencyFault) as exc:
            service_for(cash_scenario).build_report(STORE, 3, 2025, "s6")
        assert exc.value.code == "snapshot_lost"

    def test_data_access_failure_surfaces_once(self, cash_scenario):
        cash_scenario.failing = {"expenses"}
        with pytest.raises(UpstreamFault):
            service_for(cash_scenario).build_report(STORE, 3, 2025, "s3")

    def test_foreign_rows_abort_report(self, source):
        source.write("sales", sale(1, datetime(2025, 3, 2), "100", store_id=OTHER_STORE))
        source.leak_tenants = True
        with pytest.raises(DataIntegrityFault) as exc:
            service_for(source).build_report(STORE, 3, 2025, "s1")
        assert exc.value.code == "tenant_mismatch"

    def test_one_snapshot_per_report(self, cash_scenario):
        service_for(cash_scenario).build_report(STORE, 3, 2025, "s7")
        assert cash_scenario.snapshots_opened == 1

    def test_money_book_reads_sale_headers_only(self, cash_scenario):
        service_for(cash_scenario).build_report(STORE, 3, 2025, "s6")
        # Period rows with details, then opening replay and money-book rows without
        assert cash_scenario.sales_reads == [True, False, False]

    def test_tax_summary_lists_invoices(self, cash_scenario):
        result = service_for(cash_scenario).build_tax_summary(STORE, 3, 2025)
        assert result["summary"]["total_revenue"] == Decimal("500000")
        assert [r["code"] for r in result["invoices"]] == ["HD0002"]


# ===== SQL TRANSACTION QUERY =====

def seed_march(db):
    rice = Product(store_id=STORE, name="Rice", unit="kg", current_stock=0)
    other = Product(store_id=OTHER_STORE, name="Other", current_stock=0)
    lan = Customer(store_id=STORE, name="Lan")
    db.add_all([rice, other, lan])
    db.flush()

    db.add_all([
        Invoice(
            store_id=STORE, code="HD1", customer_id=lan.id, total_amount=Decimal("1000000"),
            payment_method=PaymentMethod.CASH, created_at=datetime(2025, 2, 10, 9, 0)
        ),
        Invoice(
            store_id=STORE, code="HD2", total_amount=Decimal("500000"),
            payment_method=PaymentMethod.CASH, created_at=datetime(2025, 3, 5, 9, 0),
            items=[InvoiceItem(product_id=rice.id, quantity=2, price=Decimal("250000"))]
        ),
        Invoice(
            store_id=OTHER_STORE, code="XX1", total_amount=Decimal("999"),
            payment_method=PaymentMethod.CASH, created_at=datetime(2025, 3, 6, 9, 0)
        ),
        Expense(
            store_id=STORE, date=datetime(2025, 3, 10, 8, 0), amount=Decimal("120000"),
            category=ExpenseCategory.RENT, payment_method=PaymentMethod.CASH
        ),
        TaxPayment(
            store_id=STORE, date=datetime(2025, 3, 15), amount=Decimal("30000"),
            tax_type=TaxType.LICENSE, payment_method=PaymentMethod.TRANSFER, reference_code="LT-1"
        ),
        ImportReceipt(
            store_id=STORE, code="NK1", supplier="Acme", import_date=datetime(2025, 3, 1, 7, 0),
            total_amount=Decimal("20000000"),
            items=[ImportReceiptItem(product_id=rice.id, quantity=10, import_price=Decimal("2000000"))]
        ),
        SalaryPayment(
            store_id=STORE, month=3, year=2025, employee_name="Minh", base_salary=Decimal("5000000"),
            bonus=Decimal("0"), deduction=Decimal("0"), total_amount=Decimal("5000000"),
            payment_date=datetime(2025, 3, 31)
        ),
    ])
    db.commit()


class TestSqlTransactionQuery:

    def test_cash_book_from_database(self, db):
        seed_march(db)
        rows = LedgerReportService(SqlTransactionQuery(db)).build_report(STORE, 3, 2025, "s6")["rows"]
        assert [r["balance"] for r in rows] == [Decimal("1000000"), Decimal("1500000"), Decimal("1380000")]

    def test_bank_book_from_database(self, db):
        seed_march(db)
        rows = LedgerReportService(SqlTransactionQuery(db)).build_report(STORE, 3, 2025, "s7")["rows"]
        assert [r["document"] for r in rows] == [None, "NK1", "LT-1"]
        assert closing_balance(rows) == Decimal("-20030000")

    def test_inventory_book_from_database(self, db):
        seed_march(db)
        rows = LedgerReportService(SqlTransactionQuery(db)).build_report(STORE, 3, 2025, "s2")["rows"]
        assert [(r["product_name"], r["stock"]) for r in rows] == [("Rice", 10), ("Rice", 8)]

    def test_other_store_rows_are_not_read(self, db):
        seed_march(db)
        report = LedgerReportService(SqlTransactionQuery(db)).build_report(STORE, 3, 2025, "s1")
        assert [r["code"] for r in report["rows"]] == ["HD2"]
        assert report["summary"]["accumulated_revenue"] == Decimal("1500000")

    def test_salary_book_from_database(self, db):
        seed_march(db)
        rows = LedgerReportService(SqlTransactionQuery(db)).build_report(STORE, 3, 2025, "s5")["rows"]
        assert [(r["employee_name"], r["total"]) for r in rows] == [("Minh", Decimal("5000000"))]

    def test_refuses_to_join_open_transaction(self, db):
        db.query(Product).all()
        with pytest.raises(ConsistencyFault) as exc:
            with SqlTransactionQuery(db).snapshot():
                pass
        assert exc.value.code == "snapshot_unavailable"

    def test_snapshot_lost_when_transaction_ends_early(self, db):
        seed_march(db)
        with SqlTransactionQuery(db).snapshot() as snapshot:
            snapshot.sales(STORE, Window())
            db.commit()
            with pytest.raises(ConsistencyFault):
                snapshot.verify()

    def test_database_errors_become_upstream_fault(self):
        class BrokenSession:
            def query(self, *args, **kwargs):
                raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        with pytest.raises(UpstreamFault):
            SqlTransactionSnapshot(BrokenSession(), None).expenses(STORE, Window())

    def test_sales_without_details_skip_items_and_customer(self, db):
        seed_march(db)
        with SqlTransactionQuery(db).snapshot() as snapshot:
            detailed = snapshot.sales(STORE, Window())
            headers = snapshot.sales(STORE, Window(), with_details=False)

        assert [s.code for s in headers] == [s.code for s in detailed] == ["HD1", "HD2"]
        assert detailed[0].customer_name == "Lan"
        assert len(detailed[1].items) == 1
        assert all(s.items == () and s.customer_name is None for s in headers)


@pytest.fixture
def file_engines(tmp_path):
    """Reader and writer engines on one WAL-mode SQLite file"""
    url = f"sqlite:///{tmp_path / 'ledger.db'}"
    writer = create_engine(url, connect_args={"timeout": 1})
    reader = create_engine(url, connect_args={"timeout": 1})
    with writer.connect() as conn:
        conn.exec_driver_sql("PRAGMA journal_mode=WAL")
    Base.metadata.create_all(bind=writer)
    try:
        yield reader, writer
    finally:
        reader.dispose()
        writer.dispose()


class TestSqliteSnapshot:

    def test_sale_committed_mid_report_is_not_seen(self, file_engines, monkeypatch):
        reader, writer = file_engines
        with Session(writer) as session:
            seed_march(session)

        revenue_total = SqlTransactionSnapshot.revenue_total

        def revenue_total_then_write(self, store_id, window):
            total = revenue_total(self, store_id, window)
            with Session(writer) as session:
                session.add(Invoice(
                    store_id=STORE, code="HD3", total_amount=Decimal("700000"),
                    payment_method=PaymentMethod.CASH, created_at=datetime(2025, 3, 20, 9, 0)
                ))
                session.commit()
            return total

        monkeypatch.setattr(SqlTransactionSnapshot, "revenue_total", revenue_total_then_write)

        with Session(reader) as session:
            report = LedgerReportService(SqlTransactionQuery(session)).build_report(STORE, 3, 2025, "s6")

        rows = report["rows"]
        assert [r["document"] for r in rows][:2] == [None, "HD2"]
        assert "HD3" not in [r["document"] for r in rows]
        assert sum(r["inflow"] for r in rows[1:]) == report["summary"]["total_revenue"] == Decimal("500000")
        assert closing_balance(rows) == Decimal("1380000")

        monkeypatch.undo()
        with Session(reader) as session:
            report = LedgerReportService(SqlTransactionQuery(session)).build_report(STORE, 3, 2025, "s6")
        assert "HD3" in [r["document"] for r in report["rows"]]
