"""
Servicio de checkout

Compone PaymentAllocator, ShiftManager, CreditLedger e InventoryLedger para
registrar una venta completa:

1. Resolver el turno abierto de la caja.
2. Calcular renglones y repartir el pago.
3. En una sola transacción: registrar la venta, emitir el crédito por el
   faltante (si lo hay) y acumular en el turno.
4. Después, una SALIDA de inventario por cada renglón con inventario. Los
   fallos de inventario se registran como advertencias; la venta no se revierte.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from posledger.common.clock import Clock, SystemClock
from posledger.common.exceptions import ValidationError, NotFoundError
from posledger.common.money import ZERO, to_money, to_quantity, money_gt
from posledger.modules.credits.models import ClientCredit
from posledger.modules.credits.service import CreditLedger
from posledger.modules.events.models import Sale, SaleLine, InventoryMovementType
from posledger.modules.events.store import EventStore
from posledger.modules.inventory.service import InventoryLedger
from posledger.modules.payments.allocator import PaymentAllocator
from posledger.modules.payments.schemas import CreditAccount, PaymentAllocation
from posledger.modules.sales.schemas import SaleItem
from posledger.modules.shifts.service import ShiftManager

logger = logging.getLogger(__name__)


@dataclass
class CheckoutResult:
    sale: Sale
    allocation: PaymentAllocation
    credit: Optional[ClientCredit] = None
    warnings: List[str] = field(default_factory=list)


class CheckoutService:
    """Venta completa sobre el turno abierto de una caja"""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        inventory: Optional[InventoryLedger] = None
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.store = EventStore(db, self.clock)
        self.credits = CreditLedger(db, self.clock, self.store)
        self.shifts = ShiftManager(db, self.clock, self.store, self.credits)
        self.inventory = inventory or InventoryLedger(db, self.clock, self.store)
        self.allocator = PaymentAllocator()

    def checkout(
        self,
        branch_id: str,
        register_id: str,
        items: List[SaleItem],
        tender,
        deposit_subtotal: Decimal = ZERO,
        client_id: Optional[str] = None,
        client_name: Optional[str] = None,
        credit_limit: Optional[Decimal] = None,
        folio: Optional[str] = None,
        created_by: Optional[str] = None
    ) -> CheckoutResult:
        shift = self.shifts.get_active_shift(branch_id, register_id)
        if not shift:
            raise NotFoundError(
                "Turno", f"{branch_id}/{register_id}",
                f"No hay turno abierto para la caja {register_id} de la sucursal {branch_id}"
            )

        if not items:
            raise ValidationError("La venta no tiene productos", field="items")

        lines = []
        for item in items:
            quantity = to_quantity(item.quantity)
            if quantity <= 0:
                raise ValidationError(f"Cantidad inválida para {item.product_id}", field="quantity")
            unit_price = to_money(item.unit_price)
            lines.append(SaleLine(
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=quantity,
                unit_price=unit_price,
                subtotal=to_money(quantity * unit_price),
            ))
        subtotal = to_money(sum((line.subtotal for line in lines), ZERO))

        credit_account = None
        if client_id and credit_limit is not None:
            credit_account = CreditAccount(
                client_id=client_id,
                credit_limit=to_money(credit_limit),
                pending_balance=self.credits.pending_balance(client_id),
            )

        allocation = self.allocator.allocate(subtotal, tender, deposit_subtotal, credit_account)

        sale = Sale.from_allocation(
            allocation, lines=lines, folio=folio, client_id=client_id, client_name=client_name
        )

        credit = None
        try:
            self.shifts.record_sale(shift.id, sale, created_by=created_by, commit=False)
            if money_gt(allocation.credit_amount, ZERO):
                credit = self.credits.issue(
                    client_id,
                    allocation.credit_amount,
                    source_sale_id=sale.id,
                    shift_id=shift.id,
                    notes=f"Venta {sale.folio}",
                    credit_limit=credit_limit,
                    commit=False,
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        warnings = self._apply_inventory(sale, lines, branch_id, register_id, created_by)
        return CheckoutResult(sale=sale, allocation=allocation, credit=credit, warnings=warnings)

    def _apply_inventory(self, sale: Sale, lines: List[SaleLine], branch_id, register_id, created_by) -> List[str]:
        warnings = []
        folio = sale.folio

        for line in lines:
            product_id = line.product_id
            item = self.inventory.find_item(product_id)
            if not item or not item.track_inventory:
                continue

            try:
                self.inventory.apply_movement(
                    product_id,
                    InventoryMovementType.SALIDA,
                    line.quantity,
                    reason="Venta",
                    reference=folio,
                    branch_id=branch_id,
                    register_id=register_id,
                    created_by=created_by,
                )
            except Exception as e:
                message = f"No se pudo descontar inventario de {product_id} (venta {folio}): {e}"
                logger.warning(message, exc_info=True)
                warnings.append(message)
                continue

            stock = self.inventory.get_item(product_id).raw_stock
            if stock < 0:
                message = f"Stock negativo para {product_id} tras la venta {folio}: {stock}"
                logger.warning(message)
                warnings.append(message)

        return warnings
