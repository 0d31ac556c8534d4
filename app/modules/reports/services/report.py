"""
Ledger Report Service

Single entry point of the ledger & tax-reporting engine. Validates the
request, opens one snapshot on the Transaction Query, builds the tax
summary and the requested book, and verifies the snapshot before
returning. Any fault aborts the whole report.
"""

import logging
from typing import Any, Dict, Optional, Sequence, Tuple

from app.core.config import settings
from .base import TransactionQuery, TransactionSnapshot
from .books import BookAssembler
from .errors import LedgerReportError, ValidationFault
from .records import ZERO, BookType, ReportPeriod, SalesRecord
from .tax_policy import TaxPolicy, resolve_tax_policy

logger = logging.getLogger(__name__)


class LedgerReportService:
    """Builds monthly accounting books for one store"""

    def __init__(
        self,
        query: TransactionQuery,
        min_year: Optional[int] = None,
        max_year: Optional[int] = None
    ):
        self.query = query
        self.min_year = min_year if min_year is not None else settings.REPORT_MIN_YEAR
        self.max_year = max_year if max_year is not None else settings.REPORT_MAX_YEAR

    def _validate_period(self, store_id: int, month: int, year: int) -> ReportPeriod:
        if not isinstance(store_id, int) or store_id <= 0:
            raise ValidationFault(f"Invalid store id: {store_id!r}", code="invalid_store")
        if not isinstance(year, int) or not self.min_year <= year <= self.max_year:
            raise ValidationFault(
                f"year must be between {self.min_year} and {self.max_year}, got {year}",
                code="invalid_period",
            )
        if not isinstance(month, int):
            raise ValidationFault(f"month must be an integer, got {month!r}", code="invalid_period")
        return ReportPeriod(store_id=store_id, month=month, year=year)

    def _validate_book(self, book_type) -> BookType:
        try:
            return BookType(book_type)
        except ValueError:
            raise ValidationFault(
                f"Unknown book type {book_type!r}; expected one of "
                f"{', '.join(b.value for b in BookType)}",
                code="unknown_book",
            )

    def _build_summary(
        self,
        snapshot: TransactionSnapshot,
        period: ReportPeriod,
        period_sales: Sequence[SalesRecord]
    ) -> Tuple[Dict[str, Any], TaxPolicy]:
        """Monthly revenue and tax figures plus progress towards the yearly threshold"""
        total_revenue = sum((sale.total_amount for sale in period_sales), ZERO)
        accumulated = snapshot.revenue_total(period.store_id, period.year_to_date_window)
        policy = resolve_tax_policy(period.year, accumulated)

        summary = {
            "total_revenue": total_revenue,
            "vat_amount": policy.vat_for(total_revenue),
            "pit_amount": policy.pit_for(total_revenue),
            "total_tax": policy.total_tax_for(total_revenue),
            "accumulated_revenue": accumulated,
            "tax_threshold": policy.threshold_amount,
            "is_exempt": policy.is_exempt,
        }
        return summary, policy

    def _run(self, period: ReportPeriod, book: BookType) -> Dict[str, Any]:
        with self.query.snapshot() as snapshot:
            period_sales = snapshot.sales(period.store_id, period.window)
            summary, policy = self._build_summary(snapshot, period, period_sales)
            rows = BookAssembler(snapshot, period, policy, period_sales).assemble(book)
            snapshot.verify()

        return {
            "summary": summary,
            "book_type": book.value,
            "rows": rows,
        }

    def build_report(self, store_id: int, month: int, year: int, book_type: str) -> Dict[str, Any]:
        """
        Build one book for one store and month.

        Args:
            store_id: Store (tenant) the report is scoped to
            month: 1-12
            year: Calendar year
            book_type: s1..s7

        Returns:
            Dict with summary, book_type and rows

        Raises:
            LedgerReportError: any validation, integrity, consistency or
                upstream fault; no partial report is returned
        """
        try:
            period = self._validate_period(store_id, month, year)
            book = self._validate_book(book_type)
        except ValidationFault as e:
            logger.warning(f"Rejected report request for store {store_id}: {e.message}")
            raise

        logger.info(f"Building {book.value} for store {store_id}, {month}/{year}")
        try:
            return self._run(period, book)
        except LedgerReportError as e:
            logger.error(f"Report {book.value} for store {store_id} {month}/{year} aborted: [{e.code}] {e.message}")
            raise

    def build_tax_summary(self, store_id: int, month: int, year: int) -> Dict[str, Any]:
        """Tax summary with the invoices of the month"""
        report = self.build_report(store_id, month, year, BookType.REVENUE.value)
        return {
            "summary": report["summary"],
            "invoices": report["rows"],
        }

