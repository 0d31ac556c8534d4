"""
Book assembly for the monthly household-business ledgers.

s1 revenue, s2 inventory, s3 expenses, s4 tax payments, s5 salaries,
s6 cash book, s7 bank book. Every book reads through the snapshot handed in
by the report facade and returns plain row dicts.
"""

import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence

from .base import TransactionSnapshot
from .ledger import (
    LedgerMerger, OpeningBalanceCalculator, accumulate_balances, ensure_store
)
from .records import ZERO, BookType, Channel, ReportPeriod, SalesRecord
from .tax_policy import TaxPolicy

logger = logging.getLogger(__name__)


WALK_IN_CUSTOMER = "Walk-in customer"
UNKNOWN_PRODUCT = "Unknown product"
DEFAULT_UNIT = "pcs"

BOOK_CHANNELS = {
    BookType.CASH: Channel.CASH,
    BookType.BANK: Channel.TRANSFER,
}


class BookAssembler:
    """Shapes the rows of one book for one store and period"""

    def __init__(
        self,
        snapshot: TransactionSnapshot,
        period: ReportPeriod,
        policy: TaxPolicy,
        period_sales: Optional[Sequence[SalesRecord]] = None
    ):
        self.snapshot = snapshot
        self.period = period
        self.policy = policy
        self.store_id = period.store_id
        self._period_sales = period_sales

    @property
    def period_sales(self) -> Sequence[SalesRecord]:
        if self._period_sales is None:
            self._period_sales = self.snapshot.sales(self.store_id, self.period.window)
        return self._period_sales

    def assemble(self, book_type: BookType) -> List[Dict[str, Any]]:
        builders: Dict[BookType, Callable[[], List[Dict[str, Any]]]] = {
            BookType.REVENUE: self.revenue_book,
            BookType.INVENTORY: self.inventory_book,
            BookType.EXPENSE: self.expense_book,
            BookType.TAX: self.tax_book,
            BookType.SALARY: self.salary_book,
        }
        if book_type in BOOK_CHANNELS:
            rows = self.money_book(BOOK_CHANNELS[book_type])
        else:
            rows = builders[book_type]()
        logger.debug(f"Assembled {book_type.value} for store {self.store_id}: {len(rows)} rows")
        return rows

    # ===== S1: REVENUE =====

    def revenue_book(self) -> List[Dict[str, Any]]:
        """One row per invoice with the VAT and PIT it carries under the year's policy"""
        rows = []
        for sale in self.period_sales:
            ensure_store(sale, self.store_id, "sale")
            rows.append({
                "date": sale.created_at.date(),
                "code": sale.code,
                "description": "Sales of goods and services",
                "buyer": sale.customer_name or WALK_IN_CUSTOMER,
                "revenue": sale.total_amount,
                "return_amount": ZERO,
                "vat": self.policy.vat_for(sale.total_amount),
                "pit": self.policy.pit_for(sale.total_amount),
            })
        return rows

    # ===== S2: INVENTORY =====

    def inventory_book(self) -> List[Dict[str, Any]]:
        """
        One row per received or sold line item with a per-product running stock.

        Stock starts at zero for every product: no opening-stock snapshot is
        kept, so the stock column covers the movements of this period only.
        """
        movements = []
        for receipt in self.snapshot.imports(self.store_id, self.period.window):
            ensure_store(receipt, self.store_id, "import receipt")
            for item in receipt.items:
                movements.append((receipt.import_date, 0, receipt.code or f"NK{receipt.id}", item, item.quantity, 0))

        for sale in self.period_sales:
            ensure_store(sale, self.store_id, "sale")
            for item in sale.items:
                movements.append((sale.created_at, 1, sale.code, item, 0, item.quantity))

        # Receipts before sales on the same instant, then input order
        movements.sort(key=lambda m: (m[0], m[1]))

        products = self.snapshot.products(self.store_id, {m[3].product_id for m in movements})

        stock: Dict[int, int] = {}
        rows = []
        for moment, _, code, item, quantity_in, quantity_out in movements:
            product = products.get(item.product_id)
            name = product.name if product else UNKNOWN_PRODUCT
            stock[item.product_id] = stock.get(item.product_id, 0) + quantity_in - quantity_out
            rows.append({
                "date": moment.date(),
                "code": code,
                "description": f"{'Goods received' if quantity_in else 'Goods issued'}: {name}",
                "product_id": item.product_id,
                "product_name": name,
                "unit": (product.unit if product and product.unit else DEFAULT_UNIT),
                "quantity_in": quantity_in,
                "quantity_out": quantity_out,
                "stock": stock[item.product_id],
            })
        return rows

    # ===== S3: EXPENSES =====

    def expense_book(self) -> List[Dict[str, Any]]:
        rows = []
        for expense in self.snapshot.expenses(self.store_id, self.period.window):
            ensure_store(expense, self.store_id, "expense")
            rows.append({
                "date": expense.date.date(),
                "document": expense.reference_code or f"PC{expense.id}",
                "description": expense.description or expense.category,
                "category": expense.category,
                "inflow": ZERO,
                "outflow": expense.amount,
            })
        return rows

    # ===== S4: TAX PAYMENTS =====

    def tax_book(self) -> List[Dict[str, Any]]:
        rows = []
        for payment in self.snapshot.tax_payments(self.store_id, self.period.window):
            ensure_store(payment, self.store_id, "tax payment")
            description = payment.tax_type
            if payment.description:
                description = f"{payment.tax_type} - {payment.description}"
            rows.append({
                "date": payment.date.date(),
                "document": payment.reference_code or f"NT{payment.id}",
                "description": description,
                "tax_type": payment.tax_type,
                "outflow": payment.amount,
            })
        return rows

    # ===== S5: SALARIES =====

    def salary_book(self) -> List[Dict[str, Any]]:
        """Payroll run of the period's month; no running balance"""
        rows = []
        for salary in self.snapshot.salaries(self.store_id, self.period.month, self.period.year):
            ensure_store(salary, self.store_id, "salary payment")
            rows.append({
                "payment_date": salary.payment_date.date(),
                "employee_name": salary.employee_name,
                "base_salary": salary.base_salary,
                "bonus": salary.bonus,
                "deduction": salary.deduction,
                "total": salary.total_amount,
            })
        return rows

    # ===== S6 / S7: CASH AND BANK =====

    def money_book(self, channel: Channel) -> List[Dict[str, Any]]:
        """Opening balance, period entries and the running balance after each"""
        opening = OpeningBalanceCalculator(self.snapshot, self.store_id).compute(channel, self.period.start)
        entries = LedgerMerger(self.store_id).collect(self.snapshot, self.period.window, channel)
        if opening < 0:
            logger.warning(
                f"Store {self.store_id} opens {self.period.month}/{self.period.year} "
                f"with a negative {channel.value} balance: {opening}"
            )

        return [
            {
                "date": row.entry.date.date(),
                "document": row.entry.document,
                "description": row.entry.description,
                "inflow": row.entry.inflow,
                "outflow": row.entry.outflow,
                "balance": row.balance_after,
            }
            for row in accumulate_balances(opening, entries, self.period.start)
        ]


def closing_balance(rows: List[Dict[str, Any]]) -> Decimal:
    """Balance after the last row of a cash or bank book"""
    return rows[-1]["balance"] if rows else ZERO
