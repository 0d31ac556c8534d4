"""
Common mixins for store-scoped models
"""
from sqlalchemy import Column, DateTime, Integer
from sqlalchemy.sql import func


class StoreMixin:
    """Mixin for multi-tenant models; every row belongs to exactly one store"""

    store_id = Column(Integer, nullable=False, index=True)


class TimestampMixin:
    """Mixin for models that need timestamp tracking"""

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)


class BaseMixin(StoreMixin, TimestampMixin):
    """Combines store scoping and timestamps for the accounting tables"""

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
