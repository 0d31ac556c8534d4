"""
SQLAlchemy models for the accounting sources of a store

Tables read by the ledger & tax-reporting engine:
- Sales invoices and their line items (written by POS checkout)
- Import receipts (goods received from suppliers)
- Expenses, tax payments and salary payments (accounting entries)
- Products and customers (lookups)

Every table carries store_id; the store is the unit of data isolation.
"""

from app.database.database import Base
from sqlalchemy import Column, String, DateTime, ForeignKey, Numeric, Enum, Integer, Text, CheckConstraint
from sqlalchemy.orm import relationship
from app.common.mixins import BaseMixin
import enum


# ===== ENUMS =====

class PaymentMethod(enum.Enum):
    """How a sale was settled"""
    CASH = "CASH"           # Cash drawer
    TRANSFER = "TRANSFER"   # Bank transfer / card
    DEBT = "DEBT"           # Sold on credit, no money moved yet


class ExpenseCategory(enum.Enum):
    ELECTRICITY = "electricity"
    WATER = "water"
    RENT = "rent"
    MATERIALS = "materials"
    GOODS_IMPORT = "goods_import"
    MARKETING = "marketing"
    OTHER = "other"


class TaxType(enum.Enum):
    VAT = "vat"
    PIT = "pit"
    LICENSE = "license"
    OTHER = "other"


# ===== LOOKUPS =====

class Product(Base, BaseMixin):
    """Products sold and received by the store"""
    __tablename__ = "products"

    name = Column(String(200), nullable=False)
    unit = Column(String(20), nullable=True)
    current_stock = Column(Integer, nullable=False, default=0)
    price_in = Column(Numeric(15, 2), nullable=True)  # Latest import price


class Customer(Base, BaseMixin):
    __tablename__ = "customers"

    name = Column(String(200), nullable=False)


# ===== SALES =====

class Invoice(Base, BaseMixin):
    """
    Sales invoice issued at checkout.

    created_at is the moment of sale and drives every date filter on sales.
    """
    __tablename__ = "invoices"

    code = Column(String(50), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    total_amount = Column(Numeric(15, 2), nullable=False)
    payment_method = Column(Enum(PaymentMethod), nullable=False, default=PaymentMethod.CASH)

    customer = relationship("Customer")
    items = relationship("InvoiceItem", back_populates="invoice", cascade="all, delete-orphan")


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(15, 2), nullable=False)

    invoice = relationship("Invoice", back_populates="items")


# ===== GOODS RECEIVED =====

class ImportReceipt(Base, BaseMixin):
    """
    Goods received from a supplier.

    Receipts carry no payment method: the cash/bank channel is derived from
    the total amount when building the cash and bank books.
    """
    __tablename__ = "import_receipts"

    code = Column(String(50), nullable=False, index=True)
    supplier = Column(String(200), nullable=True)
    import_date = Column(DateTime, nullable=False, index=True)
    total_amount = Column(Numeric(15, 2), nullable=False)
    note = Column(Text, nullable=True)

    items = relationship("ImportReceiptItem", back_populates="receipt", cascade="all, delete-orphan")


class ImportReceiptItem(Base):
    __tablename__ = "import_receipt_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    receipt_id = Column(Integer, ForeignKey("import_receipts.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    import_price = Column(Numeric(15, 2), nullable=False)

    receipt = relationship("ImportReceipt", back_populates="items")
    product = relationship("Product")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_import_item_quantity_positive"),
    )


# ===== ACCOUNTING ENTRIES =====

class Expense(Base, BaseMixin):
    """Operating expense voucher"""
    __tablename__ = "expenses"

    date = Column(DateTime, nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    category = Column(Enum(ExpenseCategory), nullable=False, default=ExpenseCategory.OTHER)
    description = Column(Text, nullable=True)
    payment_method = Column(Enum(PaymentMethod), nullable=False, default=PaymentMethod.CASH)
    reference_code = Column(String(50), nullable=True)


class TaxPayment(Base, BaseMixin):
    """Tax paid to the authority"""
    __tablename__ = "tax_payments"

    date = Column(DateTime, nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    tax_type = Column(Enum(TaxType), nullable=False)
    description = Column(Text, nullable=True)
    payment_method = Column(Enum(PaymentMethod), nullable=False, default=PaymentMethod.TRANSFER)
    reference_code = Column(String(50), nullable=True)


class SalaryPayment(Base, BaseMixin):
    """One employee's pay for one payroll run (month, year)"""
    __tablename__ = "salary_payments"

    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    employee_name = Column(String(200), nullable=False)
    base_salary = Column(Numeric(15, 2), nullable=False)
    bonus = Column(Numeric(15, 2), nullable=False, default=0)
    deduction = Column(Numeric(15, 2), nullable=False, default=0)
    total_amount = Column(Numeric(15, 2), nullable=False)
    payment_date = Column(DateTime, nullable=False)

    __table_args__ = (
        CheckConstraint("month BETWEEN 1 AND 12", name="ck_salary_month_range"),
    )
