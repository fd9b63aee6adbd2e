"""
Inventory movement ledger (Kardex).

Stock is never stored as the source of truth: it is the fold of the product's
movements in (created_at, id) order, starting from zero.

    ENTRADA        stock += quantity
    SALIDA         stock -= quantity   (may go negative in storage)
    AJUSTE         stock  = quantity   (new baseline)
    TRANSFERENCIA  += or -= depending on the transfer direction

``InventoryItem.raw_stock`` caches the fold and is updated in the same
transaction as each append. Movements are never rejected for insufficient
stock; negative raw stock is kept and clamped to zero for display unless the
ledger is built with ``clamp_on_persist=True``, in which case the fold clamps
after every step.
"""

import logging
from decimal import Decimal
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from posledger.common.clock import Clock, SystemClock, as_utc
from posledger.common.exceptions import ValidationError, NotFoundError
from posledger.common.money import ZERO, to_quantity
from posledger.core.config import settings
from posledger.modules.events.models import InventoryMovement, InventoryMovementType, TransferDirection
from posledger.modules.events.store import EventStore
from posledger.modules.inventory.models import InventoryItem
from posledger.modules.inventory.schemas import KardexEntry

logger = logging.getLogger(__name__)


def clamp_stock(value: Decimal) -> Decimal:
    return value if value > 0 else ZERO


def step_stock(stock: Decimal, movement: InventoryMovement, default_direction: TransferDirection) -> Decimal:
    """Stock after applying one movement."""
    quantity = movement.quantity
    if movement.type == InventoryMovementType.ENTRADA:
        return stock + quantity
    if movement.type == InventoryMovementType.SALIDA:
        return stock - quantity
    if movement.type == InventoryMovementType.AJUSTE:
        return quantity
    if movement.type == InventoryMovementType.TRANSFERENCIA:
        direction = movement.transfer_direction or default_direction
        return stock - quantity if direction == TransferDirection.OUT else stock + quantity
    raise ValueError(f"Unknown movement type: {movement.type}")


def fold_stock(
    movements: Iterable[InventoryMovement],
    default_direction: TransferDirection = TransferDirection.IN,
    clamp: bool = False,
    start: Decimal = ZERO
) -> Decimal:
    stock = start
    for movement in movements:
        stock = step_stock(stock, movement, default_direction)
        if clamp:
            stock = clamp_stock(stock)
    return stock


class InventoryLedger:
    """Service for the per-product movement log and its stock snapshot."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        store: Optional[EventStore] = None,
        transfer_direction: Optional[TransferDirection] = None,
        clamp_on_persist: Optional[bool] = None
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.store = store or EventStore(db, self.clock)
        self.transfer_direction = TransferDirection(
            transfer_direction or settings.INVENTORY_TRANSFER_DIRECTION
        )
        self.clamp_on_persist = (
            settings.INVENTORY_CLAMP_ON_PERSIST if clamp_on_persist is None else clamp_on_persist
        )

    # ===== PRODUCTS =====

    def register_product(
        self,
        product_id: str,
        product_name: Optional[str] = None,
        min_stock: Decimal = ZERO,
        track_inventory: bool = True,
        initial_stock: Optional[Decimal] = None,
        created_by: Optional[str] = None
    ) -> InventoryItem:
        """Create or update the product's snapshot row. Initial stock is written as an AJUSTE."""
        if not product_id or not str(product_id).strip():
            raise ValidationError("product_id is required", field="product_id")

        min_stock = to_quantity(min_stock if min_stock is not None else ZERO)
        if min_stock < 0:
            raise ValidationError("min_stock cannot be negative", field="min_stock")

        try:
            item = self.db.query(InventoryItem).filter(
                InventoryItem.product_id == product_id
            ).with_for_update().first()

            if not item:
                item = InventoryItem(product_id=product_id, raw_stock=ZERO)
                self.db.add(item)

            if product_name is not None:
                item.product_name = product_name
            item.min_stock = min_stock
            item.track_inventory = track_inventory
            self.db.flush()

            if initial_stock is not None:
                self.apply_movement(
                    product_id,
                    InventoryMovementType.AJUSTE,
                    initial_stock,
                    reason="Initial stock",
                    created_by=created_by,
                    commit=False,
                )

            self.db.commit()
            self.db.refresh(item)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Inventory tracking for {product_id}: track={track_inventory}, min={min_stock}")
        return item

    def find_item(self, product_id: str) -> Optional[InventoryItem]:
        return self.db.query(InventoryItem).filter(InventoryItem.product_id == product_id).first()

    def get_item(self, product_id: str) -> InventoryItem:
        item = self.find_item(product_id)
        if not item:
            raise NotFoundError("Product", product_id)
        return item

    # ===== MOVEMENTS =====

    def apply_movement(
        self,
        product_id: str,
        type: InventoryMovementType,
        quantity: Decimal,
        reason: Optional[str] = None,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
        branch_id: Optional[str] = None,
        register_id: Optional[str] = None,
        created_by: Optional[str] = None,
        transfer_direction: Optional[TransferDirection] = None,
        commit: bool = True
    ) -> InventoryMovement:
        """Append a movement and update the snapshot in the same transaction."""
        try:
            type = InventoryMovementType(type)
        except ValueError:
            raise ValidationError(f"Invalid movement type: {type}", field="type")

        if quantity is None:
            raise ValidationError("quantity is required", field="quantity")
        quantity = to_quantity(quantity)
        if type == InventoryMovementType.AJUSTE:
            if quantity < 0:
                raise ValidationError("Adjusted stock cannot be negative", field="quantity")
        elif quantity <= 0:
            raise ValidationError("Quantity must be greater than 0", field="quantity")

        direction = None
        if type == InventoryMovementType.TRANSFERENCIA:
            direction = TransferDirection(transfer_direction or self.transfer_direction)

        try:
            item = self.db.query(InventoryItem).filter(
                InventoryItem.product_id == product_id
            ).with_for_update().first()
            if not item:
                raise NotFoundError("Product", product_id, f"Product {product_id} is not registered in inventory")

            movement = InventoryMovement(
                product_id=product_id,
                type=type,
                quantity=quantity,
                transfer_direction=direction,
                reason=reason,
                reference=reference,
                notes=notes,
                branch_id=branch_id,
                register_id=register_id,
            )
            movement.created_at = self._next_timestamp(item)
            self.store.append(movement, created_by=created_by)

            stock = step_stock(item.raw_stock or ZERO, movement, self.transfer_direction)
            if self.clamp_on_persist:
                stock = clamp_stock(stock)
            item.raw_stock = to_quantity(stock)
            item.last_movement_at = movement.created_at

            self.db.flush()
            if commit:
                self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"{type.value} {quantity} applied to {product_id}; stock {stock}")
        if stock < 0:
            logger.warning(f"Product {product_id} has negative stock ({stock})")
        return movement

    def _next_timestamp(self, item: InventoryItem) -> datetime:
        """Clock time, never earlier than the product's last movement."""
        now = as_utc(self.clock.now())
        last = as_utc(item.last_movement_at)
        if last is not None and last > now:
            logger.warning(f"Clock behind last movement of {item.product_id} ({now} < {last}); using {last}")
            return last
        return now

    def set_stock(
        self,
        product_id: str,
        new_stock: Decimal,
        reason: Optional[str] = None,
        created_by: Optional[str] = None,
        **kwargs
    ) -> InventoryMovement:
        """Quick adjust: an AJUSTE movement to the given stock."""
        return self.apply_movement(
            product_id,
            InventoryMovementType.AJUSTE,
            new_stock,
            reason=reason or "Stock adjustment",
            created_by=created_by,
            **kwargs
        )

    def list_movements(self, product_id: str) -> List[InventoryMovement]:
        return self.store.list_for(InventoryMovement, product_id=product_id)

    # ===== DERIVED STOCK =====

    def _fold(self, movements: Iterable[InventoryMovement]) -> Decimal:
        return to_quantity(fold_stock(movements, self.transfer_direction, clamp=self.clamp_on_persist))

    def raw_stock(self, product_id: str) -> Decimal:
        """Fold of every movement, not clamped for display."""
        self.get_item(product_id)
        return self._fold(self.list_movements(product_id))

    def current_stock(self, product_id: str) -> Decimal:
        return clamp_stock(self.raw_stock(product_id))

    def stock_as_of(self, movement_id: int, product_id: str) -> Decimal:
        """Raw stock right after the given movement."""
        self.get_item(product_id)
        movements = self.list_movements(product_id)
        for index, movement in enumerate(movements):
            if movement.id == movement_id:
                return self._fold(movements[:index + 1])
        raise NotFoundError("Inventory movement", movement_id,
                            f"Movement {movement_id} does not belong to product {product_id}")

    def kardex(
        self,
        product_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        type: Optional[InventoryMovementType] = None,
        limit: Optional[int] = None
    ) -> List[KardexEntry]:
        """
        Movements in replay order with the running balance after each one.

        Balances are folded from the origin of the log, so an AJUSTE outside
        the requested window still sets the baseline. ``limit`` keeps the most
        recent rows.
        """
        self.get_item(product_id)
        movements = self.list_movements(product_id)

        selected = None
        if start is not None or end is not None or type is not None:
            filters = {"product_id": product_id}
            if type is not None:
                filters["type"] = InventoryMovementType(type)
            selected = {m.id for m in self.store.list_between(InventoryMovement, start, end, **filters)}

        entries = []
        stock = ZERO
        for movement in movements:
            before = stock
            stock = step_stock(stock, movement, self.transfer_direction)
            if self.clamp_on_persist:
                stock = clamp_stock(stock)
            if selected is not None and movement.id not in selected:
                continue
            entries.append(KardexEntry(
                movement_id=movement.id,
                created_at=movement.created_at,
                type=movement.type,
                quantity=movement.quantity,
                transfer_direction=movement.transfer_direction,
                reason=movement.reason,
                reference=movement.reference,
                created_by=movement.created_by,
                balance_before=to_quantity(before),
                balance_after=to_quantity(stock),
                displayed_balance=to_quantity(clamp_stock(stock)),
            ))

        if limit is not None and limit >= 0:
            entries = entries[-limit:] if limit else []
        return entries

    # ===== LOW STOCK =====

    def is_low_stock(self, product_id: str) -> bool:
        item = self.get_item(product_id)
        return bool(item.track_inventory) and self.current_stock(product_id) <= item.min_stock

    def low_stock_items(self) -> List[InventoryItem]:
        return self.db.query(InventoryItem).filter(
            InventoryItem.track_inventory.is_(True),
            InventoryItem.raw_stock <= InventoryItem.min_stock
        ).order_by(InventoryItem.product_id).all()

    # ===== SNAPSHOT INTEGRITY =====

    def verify_snapshot(self, product_id: str) -> bool:
        item = self.get_item(product_id)
        folded = self.raw_stock(product_id)
        if to_quantity(item.raw_stock) != folded:
            logger.warning(f"Snapshot mismatch for {product_id}: stored {item.raw_stock}, log {folded}")
            return False
        return True

    def rebuild_snapshot(self, product_id: str) -> Decimal:
        """Overwrite the cached stock with the fold of the log."""
        item = self.get_item(product_id)
        folded = self.raw_stock(product_id)
        try:
            item.raw_stock = folded
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"Snapshot for {product_id} rebuilt: {folded}")
        return folded
