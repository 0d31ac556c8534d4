"""
Router for accounting entries

Endpoints that record the sources of the ledger reports. All endpoints
require authentication and are scoped to the store in the token.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext

from app.modules.accounting.service import AccountingEntryService
from app.modules.accounting.schemas import (
    ImportReceiptCreate, ImportReceiptOut,
    ExpenseCreate, ExpenseOut,
    TaxPaymentCreate, TaxPaymentOut,
    SalaryPaymentCreate, SalaryPaymentOut
)

router = APIRouter(
    prefix="/accounting",
    tags=["Accounting"],
    responses={404: {"description": "Not found"}}
)


@router.post("/imports", response_model=ImportReceiptOut, status_code=status.HTTP_201_CREATED)
async def create_import_receipt(
    receipt_data: ImportReceiptCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_bookkeeper())
):
    """
    Record goods received

    - **items**: product, quantity and unit import price per line
    - Stock and latest purchase price of each product are updated
    """
    return AccountingEntryService(db).create_import_receipt(receipt_data, auth_context.store_id)


@router.post("/expenses", response_model=ExpenseOut, status_code=status.HTTP_201_CREATED)
async def create_expense(
    expense_data: ExpenseCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_bookkeeper())
):
    return AccountingEntryService(db).create_expense(expense_data, auth_context.store_id)


@router.post("/tax-payments", response_model=TaxPaymentOut, status_code=status.HTTP_201_CREATED)
async def create_tax_payment(
    payment_data: TaxPaymentCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_bookkeeper())
):
    return AccountingEntryService(db).create_tax_payment(payment_data, auth_context.store_id)


@router.post("/salaries", response_model=SalaryPaymentOut, status_code=status.HTTP_201_CREATED)
async def create_salary_payment(
    salary_data: SalaryPaymentCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_bookkeeper())
):
    """Record one employee's pay for a payroll month"""
    return AccountingEntryService(db).create_salary_payment(salary_data, auth_context.store_id)
