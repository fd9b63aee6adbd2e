"""
Inventory snapshot model.

``InventoryItem`` is a materialized view over ``inventory_movements``: the
movement log is the source of truth and ``raw_stock`` must always equal its
fold.
"""

from posledger.database.database import Base
from posledger.common.mixins import TimestampMixin
from sqlalchemy import Column, String, Boolean, DateTime, Numeric, Integer
from decimal import Decimal


class InventoryItem(Base, TimestampMixin):
    __tablename__ = "inventory_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(String(100), nullable=False, unique=True, index=True)
    product_name = Column(String(255), nullable=True)
    raw_stock = Column(Numeric(14, 3), nullable=False, default=Decimal("0"))
    min_stock = Column(Numeric(14, 3), nullable=False, default=Decimal("0"))
    track_inventory = Column(Boolean, nullable=False, default=True)
    last_movement_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def current_stock(self) -> Decimal:
        """Stock for display, never below zero."""
        raw = self.raw_stock or Decimal("0")
        return raw if raw > 0 else Decimal("0")

    @property
    def is_low_stock(self) -> bool:
        return bool(self.track_inventory) and self.current_stock <= (self.min_stock or Decimal("0"))
