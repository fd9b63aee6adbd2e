from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from posledger.modules.events.models import InventoryMovementType, TransferDirection


class ProductRegister(BaseModel):
    """Start (or update) inventory tracking for a product."""
    product_name: Optional[str] = Field(None, max_length=255)
    min_stock: Decimal = Field(default=Decimal("0"), ge=0)
    track_inventory: bool = True
    initial_stock: Optional[Decimal] = Field(None, ge=0, description="Recorded as an AJUSTE movement")


class InventoryMovementCreate(BaseModel):
    type: InventoryMovementType
    quantity: Decimal = Field(..., ge=0, description="Moved quantity, or the target stock for AJUSTE")
    reason: Optional[str] = Field(None, max_length=255)
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    branch_id: Optional[str] = None
    register_id: Optional[str] = None
    transfer_direction: Optional[TransferDirection] = None


class StockSet(BaseModel):
    new_stock: Decimal = Field(..., ge=0)
    reason: Optional[str] = Field(None, max_length=255)


class InventoryMovementOut(BaseModel):
    id: int
    product_id: str
    type: InventoryMovementType
    quantity: Decimal
    transfer_direction: Optional[TransferDirection] = None
    reason: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    branch_id: Optional[str] = None
    register_id: Optional[str] = None
    created_at: datetime
    created_by: Optional[str] = None

    model_config = {"from_attributes": True}


class StockOut(BaseModel):
    product_id: str
    product_name: Optional[str] = None
    current_stock: Decimal = Field(description="Stock for display, clamped at zero")
    raw_stock: Decimal = Field(description="Unclamped fold of the movement log")
    min_stock: Decimal
    track_inventory: bool
    is_low_stock: bool
    last_movement_at: Optional[datetime] = None


class KardexEntry(BaseModel):
    """One Kardex row: the movement plus the running balance after it."""
    movement_id: int
    created_at: datetime
    type: InventoryMovementType
    quantity: Decimal
    transfer_direction: Optional[TransferDirection] = None
    reason: Optional[str] = None
    reference: Optional[str] = None
    created_by: Optional[str] = None
    balance_before: Decimal
    balance_after: Decimal
    displayed_balance: Decimal


class KardexOut(BaseModel):
    product_id: str
    product_name: Optional[str] = None
    current_stock: Decimal
    entries: List[KardexEntry]
