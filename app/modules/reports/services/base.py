"""
Transaction Query: the single data-access seam of the ledger engine.

The engine reads every source through one snapshot so that the prior-period
replay and the period rows of a report agree with each other. The SQL
implementation pins one database transaction at a snapshot isolation level
and checks at the end that the same transaction is still open. Tests swap
in an in-memory implementation of the same protocol.
"""

import logging
from contextlib import contextmanager
from decimal import Decimal
from functools import wraps
from typing import ContextManager, Dict, Iterable, Iterator, List, Optional, Protocol

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from app.core.config import settings
from app.modules.accounting.models import (
    Invoice, ImportReceipt, Expense, TaxPayment, SalaryPayment, Product, PaymentMethod
)
from .errors import ConsistencyFault, UpstreamFault
from .records import (
    Channel, Window, LineItem, ProductInfo,
    SalesRecord, ImportRecord, ExpenseRecord, TaxPaymentRecord, SalaryRecord,
)

logger = logging.getLogger(__name__)


class TransactionSnapshot(Protocol):
    """Read-consistent view over one store's transaction sources"""

    def sales(
        self, store_id: int, window: Window, channel: Optional[Channel] = None, with_details: bool = True
    ) -> List[SalesRecord]: ...

    def revenue_total(self, store_id: int, window: Window) -> Decimal: ...

    def imports(self, store_id: int, window: Window) -> List[ImportRecord]: ...

    def expenses(self, store_id: int, window: Window, channel: Optional[Channel] = None) -> List[ExpenseRecord]: ...

    def tax_payments(self, store_id: int, window: Window, channel: Optional[Channel] = None) -> List[TaxPaymentRecord]: ...

    def salaries(self, store_id: int, month: int, year: int) -> List[SalaryRecord]: ...

    def products(self, store_id: int, product_ids: Iterable[int]) -> Dict[int, ProductInfo]: ...

    def verify(self) -> None:
        """Raise ConsistencyFault if the reads did not all come from one snapshot"""
        ...


class TransactionQuery(Protocol):
    def snapshot(self) -> ContextManager[TransactionSnapshot]: ...


def _upstream(method):
    """Surface any database error as a single UpstreamFault"""
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as e:
            logger.error(f"Transaction query {method.__name__} failed: {e}")
            raise UpstreamFault(f"Data access failed while reading {method.__name__}") from e
    return wrapper


class SqlTransactionSnapshot:
    """SQLAlchemy reads bound to one pinned transaction"""

    def __init__(self, db: Session, transaction):
        self.db = db
        self._transaction = transaction

    def _apply_window(self, query, date_field, window: Window):
        """Apply a date window filter to a query"""
        if window.start is not None:
            query = query.filter(date_field >= window.start)
        if window.end is not None:
            query = query.filter(date_field <= window.end if window.end_inclusive else date_field < window.end)
        return query

    def _apply_channel(self, query, method_field, channel: Optional[Channel]):
        if channel is not None:
            query = query.filter(method_field == PaymentMethod(channel.value))
        return query

    @_upstream
    def sales(
        self, store_id: int, window: Window, channel: Optional[Channel] = None, with_details: bool = True
    ) -> List[SalesRecord]:
        """
        Invoices of the window in (created_at, id) order.

        with_details=False skips line items and customers; money books only
        need the header amounts.
        """
        query = self.db.query(Invoice).filter(Invoice.store_id == store_id)
        if with_details:
            query = query.options(
                selectinload(Invoice.items),
                joinedload(Invoice.customer),
            )
        query = self._apply_window(query, Invoice.created_at, window)
        query = self._apply_channel(query, Invoice.payment_method, channel)

        records = []
        for inv in query.order_by(Invoice.created_at, Invoice.id).all():
            customer_name = None
            items = ()
            if with_details:
                customer_name = inv.customer.name if inv.customer else None
                items = tuple(
                    LineItem(item.product_id, item.quantity, item.price)
                    for item in sorted(inv.items, key=lambda i: i.id)
                )
            records.append(SalesRecord(
                id=inv.id,
                store_id=inv.store_id,
                code=inv.code,
                created_at=inv.created_at,
                total_amount=inv.total_amount,
                payment_method=inv.payment_method,
                customer_name=customer_name,
                items=items,
            ))
        return records

    @_upstream
    def revenue_total(self, store_id: int, window: Window) -> Decimal:
        query = self.db.query(func.sum(Invoice.total_amount)).filter(Invoice.store_id == store_id)
        query = self._apply_window(query, Invoice.created_at, window)
        total = query.scalar()
        return Decimal(str(total)) if total is not None else Decimal("0")

    @_upstream
    def imports(self, store_id: int, window: Window) -> List[ImportRecord]:
        query = self.db.query(ImportReceipt).options(
            selectinload(ImportReceipt.items)
        ).filter(ImportReceipt.store_id == store_id)
        query = self._apply_window(query, ImportReceipt.import_date, window)

        return [
            ImportRecord(
                id=rec.id,
                store_id=rec.store_id,
                code=rec.code,
                import_date=rec.import_date,
                total_amount=rec.total_amount,
                supplier=rec.supplier,
                note=rec.note,
                items=tuple(
                    LineItem(item.product_id, item.quantity, item.import_price)
                    for item in sorted(rec.items, key=lambda i: i.id)
                ),
            )
            for rec in query.order_by(ImportReceipt.import_date, ImportReceipt.id).all()
        ]

    @_upstream
    def expenses(self, store_id: int, window: Window, channel: Optional[Channel] = None) -> List[ExpenseRecord]:
        query = self.db.query(Expense).filter(Expense.store_id == store_id)
        query = self._apply_window(query, Expense.date, window)
        query = self._apply_channel(query, Expense.payment_method, channel)

        return [
            ExpenseRecord(
                id=e.id,
                store_id=e.store_id,
                date=e.date,
                amount=e.amount,
                category=e.category.value if e.category else None,
                payment_method=e.payment_method,
                description=e.description,
                reference_code=e.reference_code,
            )
            for e in query.order_by(Expense.date, Expense.id).all()
        ]

    @_upstream
    def tax_payments(self, store_id: int, window: Window, channel: Optional[Channel] = None) -> List[TaxPaymentRecord]:
        query = self.db.query(TaxPayment).filter(TaxPayment.store_id == store_id)
        query = self._apply_window(query, TaxPayment.date, window)
        query = self._apply_channel(query, TaxPayment.payment_method, channel)

        return [
            TaxPaymentRecord(
                id=t.id,
                store_id=t.store_id,
                date=t.date,
                amount=t.amount,
                tax_type=t.tax_type.value if t.tax_type else None,
                payment_method=t.payment_method,
                description=t.description,
                reference_code=t.reference_code,
            )
            for t in query.order_by(TaxPayment.date, TaxPayment.id).all()
        ]

    @_upstream
    def salaries(self, store_id: int, month: int, year: int) -> List[SalaryRecord]:
        rows = self.db.query(SalaryPayment).filter(
            SalaryPayment.store_id == store_id,
            SalaryPayment.month == month,
            SalaryPayment.year == year
        ).order_by(SalaryPayment.created_at, SalaryPayment.id).all()

        return [
            SalaryRecord(
                id=s.id,
                store_id=s.store_id,
                month=s.month,
                year=s.year,
                employee_name=s.employee_name,
                base_salary=s.base_salary,
                bonus=s.bonus,
                deduction=s.deduction,
                total_amount=s.total_amount,
                payment_date=s.payment_date,
            )
            for s in rows
        ]

    @_upstream
    def products(self, store_id: int, product_ids: Iterable[int]) -> Dict[int, ProductInfo]:
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        rows = self.db.query(Product).filter(
            Product.store_id == store_id,
            Product.id.in_(ids)
        ).all()
        return {p.id: ProductInfo(p.id, p.name, p.unit) for p in rows}

    def verify(self) -> None:
        current = self.db.get_transaction()
        if current is not self._transaction or not current.is_active:
            raise ConsistencyFault(
                "The report transaction ended before all reads completed",
                code="snapshot_lost",
            )


class SqlTransactionQuery:
    """Opens snapshot transactions on a SQLAlchemy session"""

    SNAPSHOT_LEVELS = {"REPEATABLE READ", "SERIALIZABLE"}

    def __init__(self, db: Session, isolation_level: Optional[str] = None):
        self.db = db
        self.isolation_level = isolation_level

    def _requested_level(self) -> str:
        if self.isolation_level:
            return self.isolation_level
        # SQLite only knows SERIALIZABLE and READ UNCOMMITTED
        if self.db.get_bind().dialect.name == "sqlite":
            return "SERIALIZABLE"
        return settings.REPORT_SNAPSHOT_ISOLATION

    @contextmanager
    def snapshot(self) -> Iterator[SqlTransactionSnapshot]:
        if self.db.in_transaction():
            raise ConsistencyFault(
                "Session already has an open transaction; a snapshot cannot be pinned",
                code="snapshot_unavailable",
            )

        level = self._requested_level()
        try:
            connection = self.db.connection(execution_options={"isolation_level": level})
            actual = connection.get_isolation_level()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Could not open report snapshot: {e}")
            raise UpstreamFault("Data access failed while opening the report snapshot") from e

        if actual not in self.SNAPSHOT_LEVELS:
            self.db.rollback()
            raise ConsistencyFault(
                f"Database isolation level {actual} cannot guarantee a consistent snapshot",
                code="snapshot_unavailable",
            )

        if connection.dialect.name == "sqlite":
            # pysqlite only emits BEGIN before writes, so plain reads would autocommit
            try:
                connection.exec_driver_sql("BEGIN")
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Could not begin SQLite read transaction: {e}")
                raise UpstreamFault("Data access failed while opening the report snapshot") from e

        logger.debug(f"Report snapshot opened at isolation level {actual}")
        try:
            yield SqlTransactionSnapshot(self.db, self.db.get_transaction())
        finally:
            # Read-only: nothing to commit
            self.db.rollback()
