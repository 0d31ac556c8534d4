"""
Cash and bank ledger construction.

- LedgerMerger turns sales, expenses, tax payments and import receipts of one
  store into dated inflow/outflow entries for one channel.
- OpeningBalanceCalculator replays everything strictly before a period.
- accumulate_balances walks the ordered entries and carries the balance.

Import receipts have no payment method. Receipts of 20,000,000 or more are
settled by bank transfer, smaller ones in cash; the same rule is used for the
opening replay and for the period rows.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Sequence

from .base import TransactionSnapshot
from .errors import DataIntegrityFault
from .records import (
    ZERO, Channel, SourceKind, Window, LedgerEntry, BalanceRow,
    SalesRecord, ImportRecord, ExpenseRecord, TaxPaymentRecord,
)

logger = logging.getLogger(__name__)


IMPORT_BANK_THRESHOLD = Decimal("20000000")

# Same-instant entries keep this source order
SOURCE_ORDER = {
    SourceKind.OPENING: 0,
    SourceKind.SALE: 1,
    SourceKind.EXPENSE: 2,
    SourceKind.TAX_PAYMENT: 3,
    SourceKind.IMPORT: 4,
}

OPENING_DESCRIPTION = "Opening balance"


def classify_import_channel(total_amount: Decimal) -> Channel:
    """Channel an import receipt is paid through, by amount"""
    return Channel.TRANSFER if total_amount >= IMPORT_BANK_THRESHOLD else Channel.CASH


def ensure_store(record, store_id: int, kind: str) -> None:
    """Reject a record fetched for the wrong store"""
    if record.store_id != store_id:
        logger.error(f"{kind} {record.id} belongs to store {record.store_id}, report is for store {store_id}")
        raise DataIntegrityFault(
            f"{kind} {record.id} does not belong to store {store_id}",
            code="tenant_mismatch",
        )


def sort_entries(entries: Iterable[LedgerEntry]) -> List[LedgerEntry]:
    """Date ascending; ties by source kind, then by input order"""
    return sorted(entries, key=lambda e: (e.date, SOURCE_ORDER[e.source_kind]))


@dataclass(frozen=True)
class SourceBundle:
    """Raw records of one store for one window"""
    sales: Sequence[SalesRecord] = ()
    expenses: Sequence[ExpenseRecord] = ()
    tax_payments: Sequence[TaxPaymentRecord] = ()
    imports: Sequence[ImportRecord] = ()


class LedgerMerger:
    """Builds channel ledger entries for one store"""

    def __init__(self, store_id: int):
        self.store_id = store_id

    def _check_store(self, record, kind: str) -> None:
        ensure_store(record, self.store_id, kind)

    def fetch(self, snapshot: TransactionSnapshot, window: Window, channel: Channel) -> SourceBundle:
        """Read every money-moving source for the window through one snapshot"""
        return SourceBundle(
            sales=snapshot.sales(self.store_id, window, channel, with_details=False),
            expenses=snapshot.expenses(self.store_id, window, channel),
            tax_payments=snapshot.tax_payments(self.store_id, window, channel),
            imports=snapshot.imports(self.store_id, window),
        )

    def merge(self, bundle: SourceBundle, channel: Channel) -> List[LedgerEntry]:
        """
        Convert a bundle into ledger entries for a channel.

        Returns entries in source order (sales, expenses, tax payments,
        imports); use sort_entries for chronological order.
        """
        label = "cash" if channel is Channel.CASH else "transfer"
        entries: List[LedgerEntry] = []

        for sale in bundle.sales:
            self._check_store(sale, "sale")
            # Zero-value sales move no money
            if not channel.matches(sale.payment_method) or sale.total_amount == 0:
                continue
            entries.append(LedgerEntry(
                date=sale.created_at,
                document=sale.code,
                description=f"Sales receipt ({label})",
                inflow=sale.total_amount,
                outflow=ZERO,
                source_kind=SourceKind.SALE,
            ))

        for expense in bundle.expenses:
            self._check_store(expense, "expense")
            if not channel.matches(expense.payment_method):
                continue
            entries.append(LedgerEntry(
                date=expense.date,
                document=expense.reference_code or f"PC{expense.id}",
                description=expense.description or expense.category or "Expense",
                inflow=ZERO,
                outflow=expense.amount,
                source_kind=SourceKind.EXPENSE,
            ))

        for payment in bundle.tax_payments:
            self._check_store(payment, "tax payment")
            if not channel.matches(payment.payment_method):
                continue
            entries.append(LedgerEntry(
                date=payment.date,
                document=payment.reference_code or f"NT{payment.id}",
                description=f"Tax payment: {payment.tax_type}",
                inflow=ZERO,
                outflow=payment.amount,
                source_kind=SourceKind.TAX_PAYMENT,
            ))

        for receipt in bundle.imports:
            self._check_store(receipt, "import receipt")
            if receipt.total_amount == 0 or classify_import_channel(receipt.total_amount) is not channel:
                continue
            entries.append(LedgerEntry(
                date=receipt.import_date,
                document=receipt.code or f"NK{receipt.id}",
                description=f"Goods purchase ({receipt.supplier or 'supplier'})",
                inflow=ZERO,
                outflow=receipt.total_amount,
                source_kind=SourceKind.IMPORT,
            ))

        return entries

    def collect(self, snapshot: TransactionSnapshot, window: Window, channel: Channel) -> List[LedgerEntry]:
        """Fetch, merge and order the entries of a window"""
        return sort_entries(self.merge(self.fetch(snapshot, window, channel), channel))


class OpeningBalanceCalculator:
    """Balance carried into a period, replayed from all prior activity"""

    def __init__(self, snapshot: TransactionSnapshot, store_id: int):
        self.snapshot = snapshot
        self.merger = LedgerMerger(store_id)

    def compute(self, channel: Channel, period_start: datetime) -> Decimal:
        # Negative results are reported as-is
        prior = Window(None, period_start, end_inclusive=False)
        entries = self.merger.merge(self.merger.fetch(self.snapshot, prior, channel), channel)
        return sum((e.inflow for e in entries), ZERO) - sum((e.outflow for e in entries), ZERO)


def opening_marker(opening_balance: Decimal, opened_at: datetime) -> BalanceRow:
    entry = LedgerEntry(
        date=opened_at,
        document=None,
        description=OPENING_DESCRIPTION,
        inflow=ZERO,
        outflow=ZERO,
        source_kind=SourceKind.OPENING,
    )
    return BalanceRow(entry=entry, balance_after=opening_balance)


def accumulate_balances(
    opening_balance: Decimal,
    entries: Sequence[LedgerEntry],
    opened_at: datetime
) -> List[BalanceRow]:
    """
    Running balance over chronologically sorted entries.

    The first row is always the opening marker; every following row carries
    the previous balance plus its inflow minus its outflow.
    """
    rows = [opening_marker(opening_balance, opened_at)]
    balance = opening_balance
    for entry in entries:
        balance = balance + entry.inflow - entry.outflow
        rows.append(BalanceRow(entry=entry, balance_after=balance))
    return rows
