"""
Typed records consumed and produced by the ledger engine.

Source records are built once per fetch from ORM rows (or from fakes in
tests) and validated on construction: a record with a missing date, amount
or store aborts the report instead of being coerced to a default.
"""

import calendar
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from app.modules.accounting.models import PaymentMethod
from .errors import DataIntegrityFault, ValidationFault


ZERO = Decimal("0")


class Channel(str, Enum):
    """Money channel a movement goes through"""
    CASH = "CASH"
    TRANSFER = "TRANSFER"

    def matches(self, method: PaymentMethod) -> bool:
        return method.value == self.value


class SourceKind(str, Enum):
    """Where a ledger entry came from"""
    OPENING = "opening"
    SALE = "sale"
    EXPENSE = "expense"
    TAX_PAYMENT = "tax_payment"
    IMPORT = "import"


class BookType(str, Enum):
    REVENUE = "s1"
    INVENTORY = "s2"
    EXPENSE = "s3"
    TAX = "s4"
    SALARY = "s5"
    CASH = "s6"
    BANK = "s7"


def _require(record, kind: str, *names: str) -> None:
    for name in names:
        if getattr(record, name) is None:
            raise DataIntegrityFault(
                f"{kind} {getattr(record, 'id', '?')} is missing required field '{name}'",
                code="missing_field",
            )


def _require_amount(record, kind: str, name: str, positive: bool = False) -> None:
    value = getattr(record, name)
    if isinstance(value, float) or not isinstance(value, (Decimal, int)):
        raise DataIntegrityFault(
            f"{kind} {record.id} has a non-decimal {name}: {value!r}",
            code="invalid_amount",
        )
    if value < 0 or (positive and value == 0):
        raise DataIntegrityFault(
            f"{kind} {record.id} has an out-of-range {name}: {value}",
            code="invalid_amount",
        )


@dataclass(frozen=True)
class LineItem:
    product_id: int
    quantity: int
    unit_price: Decimal

    def __post_init__(self):
        _require(self, "line item", "product_id", "quantity", "unit_price")
        if self.quantity <= 0:
            raise DataIntegrityFault(
                f"line item for product {self.product_id} has quantity {self.quantity}",
                code="invalid_quantity",
            )


@dataclass(frozen=True)
class SalesRecord:
    id: int
    store_id: int
    code: str
    created_at: datetime
    total_amount: Decimal
    payment_method: PaymentMethod
    customer_name: Optional[str] = None
    items: Tuple[LineItem, ...] = ()

    def __post_init__(self):
        _require(self, "sale", "store_id", "created_at", "total_amount", "payment_method")
        _require_amount(self, "sale", "total_amount")


@dataclass(frozen=True)
class ImportRecord:
    id: int
    store_id: int
    code: Optional[str]
    import_date: datetime
    total_amount: Decimal
    supplier: Optional[str] = None
    note: Optional[str] = None
    items: Tuple[LineItem, ...] = ()

    def __post_init__(self):
        _require(self, "import receipt", "store_id", "import_date", "total_amount")
        _require_amount(self, "import receipt", "total_amount")
        # Header-only reads carry no line items
        if self.items:
            lines_total = sum((item.quantity * item.unit_price for item in self.items), Decimal("0"))
            if lines_total != self.total_amount:
                raise DataIntegrityFault(
                    f"import receipt {self.id} totals {self.total_amount} but its lines sum to {lines_total}",
                    code="invalid_total",
                )


@dataclass(frozen=True)
class ExpenseRecord:
    id: int
    store_id: int
    date: datetime
    amount: Decimal
    category: str
    payment_method: PaymentMethod
    description: Optional[str] = None
    reference_code: Optional[str] = None

    def __post_init__(self):
        _require(self, "expense", "store_id", "date", "amount", "payment_method")
        _require_amount(self, "expense", "amount", positive=True)


@dataclass(frozen=True)
class TaxPaymentRecord:
    id: int
    store_id: int
    date: datetime
    amount: Decimal
    tax_type: str
    payment_method: PaymentMethod
    description: Optional[str] = None
    reference_code: Optional[str] = None

    def __post_init__(self):
        _require(self, "tax payment", "store_id", "date", "amount", "payment_method")
        _require_amount(self, "tax payment", "amount", positive=True)


@dataclass(frozen=True)
class SalaryRecord:
    id: int
    store_id: int
    month: int
    year: int
    employee_name: str
    base_salary: Decimal
    bonus: Decimal
    deduction: Decimal
    total_amount: Decimal
    payment_date: datetime

    def __post_init__(self):
        _require(
            self, "salary payment",
            "store_id", "month", "year", "base_salary", "bonus", "deduction", "total_amount", "payment_date",
        )
        for name in ("base_salary", "bonus", "deduction", "total_amount"):
            _require_amount(self, "salary payment", name)
        if self.base_salary + self.bonus - self.deduction != self.total_amount:
            raise DataIntegrityFault(
                f"salary payment {self.id} totals {self.total_amount}, expected "
                f"{self.base_salary} + {self.bonus} - {self.deduction}",
                code="invalid_total",
            )


@dataclass(frozen=True)
class ProductInfo:
    id: int
    name: str
    unit: Optional[str] = None


@dataclass(frozen=True)
class LedgerEntry:
    """One dated money movement; exactly one of inflow/outflow is non-zero"""
    date: datetime
    document: Optional[str]
    description: str
    inflow: Decimal
    outflow: Decimal
    source_kind: SourceKind

    @property
    def net(self) -> Decimal:
        return self.inflow - self.outflow


@dataclass(frozen=True)
class BalanceRow:
    entry: LedgerEntry
    balance_after: Decimal


@dataclass(frozen=True)
class Window:
    """Date window for a fetch; start=None means unbounded in the past"""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    end_inclusive: bool = True

    def contains(self, moment: datetime) -> bool:
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None:
            return moment <= self.end if self.end_inclusive else moment < self.end
        return True


@dataclass(frozen=True)
class ReportPeriod:
    store_id: int
    month: int
    year: int
    start: datetime = field(init=False)
    end: datetime = field(init=False)

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise ValidationFault(f"month must be between 1 and 12, got {self.month}", code="invalid_period")
        last_day = calendar.monthrange(self.year, self.month)[1]
        object.__setattr__(self, "start", datetime(self.year, self.month, 1))
        object.__setattr__(
            self, "end",
            datetime(self.year, self.month, last_day) + timedelta(days=1) - timedelta(microseconds=1),
        )

    @property
    def window(self) -> Window:
        return Window(self.start, self.end, end_inclusive=True)

    @property
    def prior_window(self) -> Window:
        """Everything strictly before the period, used to replay the opening balance"""
        return Window(None, self.start, end_inclusive=False)

    @property
    def year_to_date_window(self) -> Window:
        return Window(datetime(self.year, 1, 1), self.end, end_inclusive=True)
