from datetime import datetime
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from posledger.common.clock import Clock, get_clock
from posledger.database.database import get_db
from posledger.modules.events.models import InventoryMovementType
from posledger.modules.inventory.models import InventoryItem
from posledger.modules.inventory.service import InventoryLedger
from posledger.modules.inventory.schemas import (
    ProductRegister, InventoryMovementCreate, InventoryMovementOut, StockSet,
    StockOut, KardexOut
)


inventory_router = APIRouter(prefix="/inventory", tags=["Inventory"])


def get_inventory_ledger(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> InventoryLedger:
    return InventoryLedger(db, clock)


def _stock_to_output(item: InventoryItem) -> StockOut:
    return StockOut(
        product_id=item.product_id,
        product_name=item.product_name,
        current_stock=item.current_stock,
        raw_stock=item.raw_stock,
        min_stock=item.min_stock,
        track_inventory=item.track_inventory,
        is_low_stock=item.is_low_stock,
        last_movement_at=item.last_movement_at,
    )


@inventory_router.put("/products/{product_id}", response_model=StockOut)
async def register_product(
    product_id: str,
    data: ProductRegister,
    ledger: InventoryLedger = Depends(get_inventory_ledger)
):
    """Enable (or update) inventory tracking for a product."""
    item = ledger.register_product(
        product_id,
        product_name=data.product_name,
        min_stock=data.min_stock,
        track_inventory=data.track_inventory,
        initial_stock=data.initial_stock,
    )
    return _stock_to_output(item)


@inventory_router.post(
    "/products/{product_id}/movements",
    response_model=InventoryMovementOut,
    status_code=status.HTTP_201_CREATED
)
async def apply_movement(
    product_id: str,
    data: InventoryMovementCreate,
    ledger: InventoryLedger = Depends(get_inventory_ledger)
):
    return ledger.apply_movement(
        product_id,
        data.type,
        data.quantity,
        reason=data.reason,
        reference=data.reference,
        notes=data.notes,
        branch_id=data.branch_id,
        register_id=data.register_id,
        transfer_direction=data.transfer_direction,
    )


@inventory_router.put("/products/{product_id}/stock", response_model=InventoryMovementOut)
async def set_stock(product_id: str, data: StockSet, ledger: InventoryLedger = Depends(get_inventory_ledger)):
    """Quick adjust to an absolute stock value."""
    return ledger.set_stock(product_id, data.new_stock, reason=data.reason)


@inventory_router.get("/products/{product_id}/stock", response_model=StockOut)
async def get_stock(product_id: str, ledger: InventoryLedger = Depends(get_inventory_ledger)):
    """Stock derived from the movement log."""
    output = _stock_to_output(ledger.get_item(product_id))
    output.raw_stock = ledger.raw_stock(product_id)
    output.current_stock = ledger.current_stock(product_id)
    output.is_low_stock = ledger.is_low_stock(product_id)
    return output


@inventory_router.get("/products/{product_id}/kardex", response_model=KardexOut)
async def get_kardex(
    product_id: str,
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    type: Optional[InventoryMovementType] = Query(None),
    limit: Optional[int] = Query(None, ge=0),
    ledger: InventoryLedger = Depends(get_inventory_ledger)
):
    item = ledger.get_item(product_id)
    return KardexOut(
        product_id=product_id,
        product_name=item.product_name,
        current_stock=ledger.current_stock(product_id),
        entries=ledger.kardex(product_id, start=start, end=end, type=type, limit=limit),
    )


@inventory_router.get("/low-stock", response_model=List[StockOut])
async def low_stock(ledger: InventoryLedger = Depends(get_inventory_ledger)):
    return [_stock_to_output(item) for item in ledger.low_stock_items()]
