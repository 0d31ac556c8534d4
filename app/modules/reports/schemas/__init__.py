"""
Pydantic schemas for Reports module

Response models for the book and tax endpoints and the signing request.
Row payloads differ per book and are passed through as dictionaries.
"""

from decimal import Decimal
from typing import Any, Dict, List

from pydantic import BaseModel, Field, field_validator


class ReportSummary(BaseModel):
    """Monthly revenue and tax figures of a store"""
    total_revenue: Decimal = Field(description="Revenue of the month")
    vat_amount: Decimal = Field(description="VAT on the month's revenue, whole currency units")
    pit_amount: Decimal = Field(description="PIT on the month's revenue, whole currency units")
    total_tax: Decimal
    accumulated_revenue: Decimal = Field(description="Revenue from January 1 to the end of the month")
    tax_threshold: Decimal = Field(description="Yearly revenue threshold below which no tax is due")
    is_exempt: bool


class LedgerReportResponse(BaseModel):
    summary: ReportSummary
    book_type: str
    rows: List[Dict[str, Any]]


class TaxSummaryResponse(BaseModel):
    summary: ReportSummary
    invoices: List[Dict[str, Any]]


class SignReportRequest(BaseModel):
    """An assembled report to sign"""
    summary: ReportSummary
    book_type: str = Field(..., description="Book code s1..s7")
    rows: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator('book_type')
    @classmethod
    def validate_book_type(cls, v):
        if v not in {f"s{i}" for i in range(1, 8)}:
            raise ValueError('book_type must be one of s1..s7')
        return v


class SignatureResponse(BaseModel):
    signer_name: str
    signature_value: str
    cert_serial: str
    timestamp: str
    digest: str = Field(description="Hex SHA-256 of the canonical report JSON")


class ErrorDetail(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    detail: ErrorDetail
