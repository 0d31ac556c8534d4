"""
Pydantic schemas for the accounting entries of a store

Import receipts, expenses, tax payments and salary payments. Amounts are
Decimal end to end; floats are never used for money.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List
from datetime import date, datetime

from app.modules.accounting.models import PaymentMethod, ExpenseCategory, TaxType


# ===== IMPORT RECEIPTS =====

class ImportItemCreate(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0, description="Units received")
    import_price: Decimal = Field(..., ge=0, max_digits=15, decimal_places=2, description="Unit purchase price")


class ImportReceiptCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    supplier: Optional[str] = Field(None, max_length=200)
    import_date: datetime
    note: Optional[str] = None
    items: List[ImportItemCreate] = Field(..., min_length=1)

    @field_validator('items')
    @classmethod
    def validate_unique_products(cls, v):
        product_ids = [item.product_id for item in v]
        if len(product_ids) != len(set(product_ids)):
            raise ValueError('Each product may appear only once per receipt')
        return v


class ImportItemOut(BaseModel):
    id: int
    product_id: int
    quantity: int
    import_price: Decimal

    class Config:
        from_attributes = True


class ImportReceiptOut(BaseModel):
    id: int
    store_id: int
    code: str
    supplier: Optional[str]
    import_date: datetime
    total_amount: Decimal
    note: Optional[str]
    items: List[ImportItemOut]

    class Config:
        from_attributes = True


# ===== EXPENSES =====

class ExpenseCreate(BaseModel):
    date: datetime
    amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    category: ExpenseCategory = ExpenseCategory.OTHER
    description: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    reference_code: Optional[str] = Field(None, max_length=50)

    @field_validator('payment_method')
    @classmethod
    def validate_money_channel(cls, v):
        if v == PaymentMethod.DEBT:
            raise ValueError('Expenses are paid in cash or by transfer')
        return v


class ExpenseOut(BaseModel):
    id: int
    store_id: int
    date: datetime
    amount: Decimal
    category: ExpenseCategory
    description: Optional[str]
    payment_method: PaymentMethod
    reference_code: Optional[str]

    class Config:
        from_attributes = True


# ===== TAX PAYMENTS =====

class TaxPaymentCreate(BaseModel):
    date: datetime
    amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    tax_type: TaxType
    description: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.TRANSFER
    reference_code: Optional[str] = Field(None, max_length=50)

    @field_validator('payment_method')
    @classmethod
    def validate_money_channel(cls, v):
        if v == PaymentMethod.DEBT:
            raise ValueError('Taxes are paid in cash or by transfer')
        return v


class TaxPaymentOut(BaseModel):
    id: int
    store_id: int
    date: datetime
    amount: Decimal
    tax_type: TaxType
    description: Optional[str]
    payment_method: PaymentMethod
    reference_code: Optional[str]

    class Config:
        from_attributes = True


# ===== SALARIES =====

class SalaryPaymentCreate(BaseModel):
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)
    employee_name: str = Field(..., min_length=1, max_length=200)
    base_salary: Decimal = Field(..., ge=0, max_digits=15, decimal_places=2)
    bonus: Decimal = Field(Decimal("0"), ge=0, max_digits=15, decimal_places=2)
    deduction: Decimal = Field(Decimal("0"), ge=0, max_digits=15, decimal_places=2)
    payment_date: Optional[date] = None

    @model_validator(mode='after')
    def validate_total(self):
        if self.base_salary + self.bonus - self.deduction < 0:
            raise ValueError('Deduction cannot exceed base salary plus bonus')
        return self

    @property
    def total_amount(self) -> Decimal:
        return self.base_salary + self.bonus - self.deduction


class SalaryPaymentOut(BaseModel):
    id: int
    store_id: int
    month: int
    year: int
    employee_name: str
    base_salary: Decimal
    bonus: Decimal
    deduction: Decimal
    total_amount: Decimal
    payment_date: datetime

    class Config:
        from_attributes = True
