"""
Accounting Module

Write path for the sources the ledger reports read: import receipts with
their line items, operating expenses, tax payments and salary payments.
Money is Decimal with two decimal places throughout.

Components:
- models.py -> SQLAlchemy tables for invoices, receipts, expenses, taxes,
  salaries, products and customers
- schemas.py -> Pydantic create and output models
- service.py -> AccountingEntryService
- router.py -> /accounting endpoints
"""
