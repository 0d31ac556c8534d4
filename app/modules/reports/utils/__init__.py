"""
Utilities for Reports module

Provides CSV export of the accounting books and value formatting.
"""

import csv
import io
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List

from fastapi import Response


def create_csv_response(
    data: List[Dict[str, Any]],
    filename: str,
    headers: Dict[str, str] = None
) -> Response:
    """
    Create a CSV response from a list of dictionaries.

    Args:
        data: List of row dictionaries
        filename: Name for the CSV file
        headers: Optional mapping of field names to CSV headers

    Returns:
        FastAPI Response with CSV content
    """
    if not data:
        # Empty book still gets its header row
        csv_content = ""
        if headers:
            csv_content = ",".join(headers.values()) + "\r\n"
    else:
        output = io.StringIO()

        fieldnames = list(headers.keys()) if headers else list(data[0].keys())
        csv_headers = list(headers.values()) if headers else fieldnames

        writer = csv.DictWriter(output, fieldnames=fieldnames, extrasaction="ignore")
        writer.writerow(dict(zip(fieldnames, csv_headers)))

        for row in data:
            writer.writerow({key: format_csv_value(row.get(key)) for key in fieldnames})

        csv_content = output.getvalue()
        output.close()

    return Response(
        content=csv_content,
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename={filename}",
            "Content-Type": "text/csv; charset=utf-8"
        }
    )


def format_csv_value(value: Any) -> str:
    """
    Format a value for CSV export.

    Decimals are written as plain strings (never scientific notation),
    dates as ISO-8601.
    """
    if value is None:
        return ""
    elif isinstance(value, bool):
        return "Yes" if value else "No"
    elif isinstance(value, Decimal):
        return format(value, "f")
    elif isinstance(value, (date, datetime)):
        return value.isoformat()
    else:
        return str(value)


def csv_filename(book_type: str, store_id: int, month: int, year: int) -> str:
    return f"{book_type}_store{store_id}_{year}_{month:02d}.csv"


_MONEY_BOOK_HEADERS = {
    "date": "Date",
    "document": "Document",
    "description": "Description",
    "inflow": "Inflow",
    "outflow": "Outflow",
    "balance": "Balance",
}


# Column headers per book, in output order
CSV_HEADERS = {
    "s1": {
        "date": "Date",
        "code": "Invoice",
        "description": "Description",
        "buyer": "Buyer",
        "revenue": "Revenue",
        "return_amount": "Returns",
        "vat": "VAT",
        "pit": "PIT",
    },
    "s2": {
        "date": "Date",
        "code": "Document",
        "description": "Description",
        "product_id": "Product ID",
        "product_name": "Product",
        "unit": "Unit",
        "quantity_in": "Quantity In",
        "quantity_out": "Quantity Out",
        "stock": "Stock",
    },
    "s3": {
        "date": "Date",
        "document": "Document",
        "description": "Description",
        "category": "Category",
        "inflow": "Inflow",
        "outflow": "Outflow",
    },
    "s4": {
        "date": "Date",
        "document": "Document",
        "description": "Description",
        "tax_type": "Tax Type",
        "outflow": "Amount Paid",
    },
    "s5": {
        "payment_date": "Payment Date",
        "employee_name": "Employee",
        "base_salary": "Base Salary",
        "bonus": "Bonus",
        "deduction": "Deduction",
        "total": "Total",
    },
    "s6": _MONEY_BOOK_HEADERS,
    "s7": _MONEY_BOOK_HEADERS,
}
