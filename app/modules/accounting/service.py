"""
Accounting entry service

Writes the records the ledger reports read: goods received, expenses, tax
payments and salary payments. Every write is scoped to the caller's store
and committed in one transaction.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Dict

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.modules.accounting.models import (
    Product, ImportReceipt, ImportReceiptItem, Expense, TaxPayment, SalaryPayment
)
from app.modules.accounting.schemas import (
    ImportReceiptCreate, ExpenseCreate, TaxPaymentCreate, SalaryPaymentCreate
)

logger = logging.getLogger(__name__)


class AccountingEntryService:
    """Records accounting entries for one store"""

    def __init__(self, db: Session):
        self.db = db

    def _commit(self, entity, label: str):
        try:
            self.db.commit()
            self.db.refresh(entity)
            return entity
        except IntegrityError as e:
            self.db.rollback()
            logger.error(f"Integrity error saving {label}: {e}")
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Could not save {label}: conflicting or invalid data"
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error saving {label}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error saving {label}"
            )

    def create_import_receipt(self, receipt_data: ImportReceiptCreate, store_id: int) -> ImportReceipt:
        """
        Record goods received from a supplier.

        The receipt total is the sum of quantity x import price. Each
        product's stock is increased and its latest purchase price updated
        in the same transaction.
        """
        product_ids = [item.product_id for item in receipt_data.items]
        products: Dict[int, Product] = {
            p.id: p for p in self.db.query(Product).filter(
                Product.store_id == store_id,
                Product.id.in_(product_ids)
            ).all()
        }

        missing = [pid for pid in product_ids if pid not in products]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Products not found in this store: {', '.join(str(pid) for pid in missing)}"
            )

        total = sum((item.quantity * item.import_price for item in receipt_data.items), Decimal("0"))

        receipt = ImportReceipt(
            store_id=store_id,
            code=receipt_data.code,
            supplier=receipt_data.supplier,
            import_date=receipt_data.import_date,
            total_amount=total,
            note=receipt_data.note,
        )
        for item in receipt_data.items:
            receipt.items.append(ImportReceiptItem(
                product_id=item.product_id,
                quantity=item.quantity,
                import_price=item.import_price,
            ))
            product = products[item.product_id]
            product.current_stock = (product.current_stock or 0) + item.quantity
            product.price_in = item.import_price

        self.db.add(receipt)
        receipt = self._commit(receipt, "import receipt")
        logger.info(f"Import receipt {receipt.code} recorded for store {store_id}: total {total}")
        return receipt

    def create_expense(self, expense_data: ExpenseCreate, store_id: int) -> Expense:
        expense = Expense(store_id=store_id, **expense_data.model_dump())
        self.db.add(expense)
        return self._commit(expense, "expense")

    def create_tax_payment(self, payment_data: TaxPaymentCreate, store_id: int) -> TaxPayment:
        payment = TaxPayment(store_id=store_id, **payment_data.model_dump())
        self.db.add(payment)
        return self._commit(payment, "tax payment")

    def create_salary_payment(self, salary_data: SalaryPaymentCreate, store_id: int) -> SalaryPayment:
        """Total is base salary plus bonus minus deduction; paid today unless a date is given"""
        paid_on = salary_data.payment_date or date.today()
        salary = SalaryPayment(
            store_id=store_id,
            month=salary_data.month,
            year=salary_data.year,
            employee_name=salary_data.employee_name,
            base_salary=salary_data.base_salary,
            bonus=salary_data.bonus,
            deduction=salary_data.deduction,
            total_amount=salary_data.total_amount,
            payment_date=datetime(paid_on.year, paid_on.month, paid_on.day),
        )
        self.db.add(salary)
        return self._commit(salary, "salary payment")
