"""
Common mixins for ledger models
"""
from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func


class EventMixin:
    """Mixin for append-only ledger events.

    ``created_at`` is assigned from the injected clock by the service that
    appends the event; ``(created_at, id)`` is the replay order.
    """

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_by = Column(String(100), nullable=True)


class TimestampMixin:
    """Mixin for projection rows that need timestamp tracking"""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
