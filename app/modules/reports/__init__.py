"""
Reports Module

Monthly accounting books of a household business store and the taxes due
on its revenue. The module creates no tables of its own: it reads sales,
import receipts, expenses, tax payments and salaries recorded by the
accounting module.

Books:
- s1 revenue, s2 inventory, s3 expenses, s4 tax payments, s5 salaries
- s6 cash book and s7 bank book with opening and running balances

Architecture Pattern: Service Layer
- routers/ -> FastAPI endpoints
- services/ -> ledger engine and data access through one snapshot
- schemas/ -> Pydantic response and request models
- utils/ -> CSV export
- signing.py -> remote signing client
"""

from .routers import books_router

__all__ = ["books_router"]
