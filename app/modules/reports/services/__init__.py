"""
Services package for Reports module

Exports the ledger report facade, its data-access seam and its faults.
"""

from .base import SqlTransactionQuery, TransactionQuery, TransactionSnapshot
from .errors import (
    LedgerReportError,
    ValidationFault,
    DataIntegrityFault,
    ConsistencyFault,
    UpstreamFault,
)
from .report import LedgerReportService

__all__ = [
    "LedgerReportService",
    "SqlTransactionQuery",
    "TransactionQuery",
    "TransactionSnapshot",
    "LedgerReportError",
    "ValidationFault",
    "DataIntegrityFault",
    "ConsistencyFault",
    "UpstreamFault",
]
