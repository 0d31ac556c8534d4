"""
Accounting Books Router

Monthly books s1..s7, the tax summary and remote signing of an assembled
report. Engine faults are returned as {"detail": {"code", "message"}}.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from ..services import (
    LedgerReportService,
    SqlTransactionQuery,
    LedgerReportError,
    ValidationFault,
    DataIntegrityFault,
    ConsistencyFault,
    UpstreamFault,
)
from ..schemas import (
    LedgerReportResponse,
    TaxSummaryResponse,
    SignReportRequest,
    SignatureResponse,
    ErrorResponse,
)
from ..signing import RemoteSigningClient, SigningError, SigningNotConfigured
from ..utils import create_csv_response, csv_filename, CSV_HEADERS


router = APIRouter(
    prefix="/reports",
    tags=["Reports"],
    responses={
        409: {"model": ErrorResponse, "description": "Inconsistent or incomplete source data"},
        503: {"model": ErrorResponse, "description": "Data store unavailable"},
    }
)

FAULT_STATUS = {
    ValidationFault: status.HTTP_422_UNPROCESSABLE_ENTITY,
    DataIntegrityFault: status.HTTP_409_CONFLICT,
    ConsistencyFault: status.HTTP_409_CONFLICT,
    UpstreamFault: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def fault_to_http(error: LedgerReportError) -> HTTPException:
    status_code = FAULT_STATUS.get(type(error), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return HTTPException(status_code=status_code, detail=error.to_dict())


def get_report_service(db: Session = Depends(get_db)) -> LedgerReportService:
    return LedgerReportService(SqlTransactionQuery(db))


def get_signing_client() -> RemoteSigningClient:
    return RemoteSigningClient()


@router.get("/books", response_model=None)
async def get_book(
    month: Optional[int] = Query(None, description="Month 1-12 (default: current month)"),
    year: Optional[int] = Query(None, description="Year (default: current year)"),
    book: str = Query("s1", description="Book code s1..s7"),
    export: Optional[str] = Query(None, pattern="^(csv)$", description="Export format: csv"),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    service: LedgerReportService = Depends(get_report_service)
):
    """
    Monthly accounting book for the caller's store.

    - **s1** revenue, **s2** inventory, **s3** expenses, **s4** tax payments,
      **s5** salaries, **s6** cash book, **s7** bank book
    - **export=csv** returns the rows as a CSV attachment
    """
    today = date.today()
    month = month if month is not None else today.month
    year = year if year is not None else today.year

    try:
        report = service.build_report(auth_context.store_id, month, year, book)
    except LedgerReportError as e:
        raise fault_to_http(e)

    if export == "csv":
        filename = csv_filename(report["book_type"], auth_context.store_id, month, year)
        return create_csv_response(report["rows"], filename, CSV_HEADERS[report["book_type"]])

    return LedgerReportResponse(**report)


@router.get("/tax", response_model=TaxSummaryResponse)
async def get_tax_summary(
    month: Optional[int] = Query(None, description="Month 1-12 (default: current month)"),
    year: Optional[int] = Query(None, description="Year (default: current year)"),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role()),
    service: LedgerReportService = Depends(get_report_service)
):
    """Revenue, VAT and PIT of the month with the invoices behind them."""
    today = date.today()
    try:
        return service.build_tax_summary(
            auth_context.store_id,
            month if month is not None else today.month,
            year if year is not None else today.year
        )
    except LedgerReportError as e:
        raise fault_to_http(e)


@router.post("/sign", response_model=SignatureResponse)
def sign_report(
    report: SignReportRequest,
    auth_context: AuthContext = Depends(AuthDependencies.require_bookkeeper()),
    client: RemoteSigningClient = Depends(get_signing_client)
):
    """Sign an assembled report with the store's remote certificate."""
    try:
        return client.sign(report.model_dump(mode="json"), auth_context.store_id)
    except SigningNotConfigured as e:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, str(e))
    except SigningError as e:
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, str(e))
