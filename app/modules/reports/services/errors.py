"""
Faults raised while building a ledger report.

Every fault aborts the whole report; callers receive exactly one of these
and never a partially built book.
"""

from typing import Any, Dict, Optional


class LedgerReportError(Exception):
    """Base class for report faults"""

    code = "report_error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ValidationFault(LedgerReportError):
    """Malformed period or unknown book type; raised before any data access"""

    code = "invalid_request"


class DataIntegrityFault(LedgerReportError):
    """A source record is incomplete or belongs to another store"""

    code = "missing_field"


class ConsistencyFault(LedgerReportError):
    """Reads of one report did not come from one snapshot"""

    code = "snapshot_lost"


class UpstreamFault(LedgerReportError):
    """The data-access layer failed"""

    code = "upstream_unavailable"
