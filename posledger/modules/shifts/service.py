"""
Servicio de turnos de caja (ShiftManager)

Máquina de estados por (sucursal, caja): NONE -> OPEN -> CLOSED, con
OPEN -> CANCELLED como terminal alterno. Cada operación registra el evento
en el EventStore y lo acumula en los totales del turno dentro de la misma
transacción; el turno se lee con FOR UPDATE para serializar escrituras
concurrentes.

Arqueo:
    expected_cash = initial_cash + total_cash + total_cash_movements
                    + total_credit_payments_cash
    difference    = final_cash - expected_cash   (+ sobrante, - faltante)
"""

import logging
from dataclasses import dataclass, fields
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from posledger.common.clock import Clock, SystemClock
from posledger.common.exceptions import ValidationError, ConflictError, NotFoundError
from posledger.common.money import ZERO, to_money, money_gt, money_eq
from posledger.modules.credits.service import CreditLedger
from posledger.modules.events.models import (
    CashMovement, CashMovementReversal, CashMovementType, CreditPayment,
    CreditPaymentMethod, Sale, ShiftSnapshot, ShiftSnapshotKind
)
from posledger.modules.events.store import EventStore
from posledger.modules.shifts.models import (
    CashRegisterShift, RegisterCounter, ShiftStatus, MONEY_TOTAL_FIELDS
)

logger = logging.getLogger(__name__)


# ===== TOTALES =====

@dataclass
class ShiftTotals:
    """Totales acumulados de un turno (mismos nombres que las columnas del turno)"""
    total_cash: Decimal = ZERO
    total_card: Decimal = ZERO
    total_transfer: Decimal = ZERO
    total_other: Decimal = ZERO
    total_cash_movements: Decimal = ZERO
    total_credit_payments_cash: Decimal = ZERO
    total_credit_payments_card: Decimal = ZERO
    total_credit_payments_other: Decimal = ZERO
    total_credits_issued: Decimal = ZERO
    sales_count: int = 0
    sales_amount: Decimal = ZERO

    @classmethod
    def of(cls, shift: CashRegisterShift) -> "ShiftTotals":
        return cls(**{f.name: getattr(shift, f.name) for f in fields(cls)})


def apply_sale(totals, sale: Sale) -> None:
    """Acumula una venta. Efectivo neto de cambio y crédito; regalo en otros."""
    totals.total_cash = to_money(totals.total_cash + sale.cash_amount)
    totals.total_card = to_money(totals.total_card + sale.card_amount)
    totals.total_transfer = to_money(totals.total_transfer + sale.transfer_amount)
    totals.total_other = to_money(totals.total_other + sale.other_amount)
    totals.total_credits_issued = to_money(totals.total_credits_issued + sale.credit_amount)
    totals.sales_amount = to_money(totals.sales_amount + sale.total)
    totals.sales_count = totals.sales_count + 1


def apply_cash_movement(totals, movement: CashMovement) -> None:
    totals.total_cash_movements = to_money(totals.total_cash_movements + movement.signed_amount)


def apply_cash_movement_reversal(totals, movement: CashMovement) -> None:
    totals.total_cash_movements = to_money(totals.total_cash_movements - movement.signed_amount)


CREDIT_PAYMENT_BUCKETS = {
    CreditPaymentMethod.CASH: "total_credit_payments_cash",
    CreditPaymentMethod.CARD: "total_credit_payments_card",
    CreditPaymentMethod.TRANSFER: "total_credit_payments_other",
    CreditPaymentMethod.OTHER: "total_credit_payments_other",
}


def apply_credit_payment(totals, payment: CreditPayment) -> None:
    bucket = CREDIT_PAYMENT_BUCKETS[payment.payment_method or CreditPaymentMethod.CASH]
    setattr(totals, bucket, to_money(getattr(totals, bucket) + payment.amount))


def expected_cash(shift) -> Decimal:
    """Efectivo esperado en caja. Función pura de los totales."""
    return to_money(
        shift.initial_cash
        + shift.total_cash
        + shift.total_cash_movements
        + shift.total_credit_payments_cash
    )


def reconcile(shift, final_cash: Decimal) -> Tuple[Decimal, Decimal]:
    """(expected_cash, difference) para el efectivo contado"""
    expected = expected_cash(shift)
    return expected, to_money(to_money(final_cash) - expected)


def shift_payload(shift: CashRegisterShift) -> dict:
    """Copia serializable de los totales del turno"""
    payload = {
        "shift_number": shift.shift_number,
        "status": shift.status.value,
        "initial_cash": str(to_money(shift.initial_cash)),
        "sales_count": shift.sales_count,
    }
    for field in MONEY_TOTAL_FIELDS:
        payload[field] = str(to_money(getattr(shift, field)))
    for field in ("final_cash", "expected_cash", "difference"):
        value = getattr(shift, field)
        payload[field] = str(to_money(value)) if value is not None else None
    return payload


# ===== SERVICIO =====

class ShiftManager:
    """Apertura, registro de eventos y cierre de turnos de caja"""

    expected_cash = staticmethod(expected_cash)
    reconcile = staticmethod(reconcile)

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        store: Optional[EventStore] = None,
        credits: Optional[CreditLedger] = None
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.store = store or EventStore(db, self.clock)
        self.credits = credits or CreditLedger(db, self.clock, self.store)

    # ===== APERTURA =====

    def open_shift(
        self,
        branch_id: str,
        register_id: str,
        cashier_name: Optional[str] = None,
        initial_cash: Decimal = ZERO,
        opened_by: Optional[str] = None
    ) -> CashRegisterShift:
        """
        Abrir un turno.

        Falla con ConflictError si la caja ya tiene un turno abierto. El número
        de turno sale del contador de la caja y nunca se reutiliza.
        """
        branch_id = (branch_id or "").strip()
        register_id = (register_id or "").strip()
        if not branch_id:
            raise ValidationError("La sucursal es requerida", field="branch_id")
        if not register_id:
            raise ValidationError("La caja es requerida", field="register_id")

        initial_cash = to_money(initial_cash if initial_cash is not None else ZERO)
        if initial_cash < 0:
            raise ValidationError("El efectivo inicial no puede ser negativo", field="initial_cash")

        active = self.get_active_shift(branch_id, register_id)
        if active:
            logger.warning(f"Intento de abrir turno con turno {active.id} abierto en {branch_id}/{register_id}")
            raise ConflictError(
                f"Ya existe un turno abierto ({active.shift_number}) para la caja {register_id} de la sucursal {branch_id}"
            )

        try:
            shift = CashRegisterShift(
                branch_id=branch_id,
                register_id=register_id,
                shift_number=self._next_shift_number(branch_id, register_id),
                status=ShiftStatus.OPEN,
                cashier_name=cashier_name,
                initial_cash=initial_cash,
                start_time=self.clock.now(),
                opened_by=opened_by,
            )
            for field in MONEY_TOTAL_FIELDS:
                setattr(shift, field, ZERO)
            shift.sales_count = 0

            self.db.add(shift)
            self.db.flush()
            self._snapshot(shift, ShiftSnapshotKind.OPENED, opened_by)
            self.db.commit()
            self.db.refresh(shift)

        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Apertura concurrente rechazada en {branch_id}/{register_id}: {e}")
            raise ConflictError(f"Ya existe un turno abierto para la caja {register_id} de la sucursal {branch_id}")
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Turno {shift.shift_number} abierto en {branch_id}/{register_id} "
            f"con ${initial_cash} (id={shift.id})"
        )
        return shift

    def _next_shift_number(self, branch_id: str, register_id: str) -> int:
        counter = self.db.query(RegisterCounter).filter(
            RegisterCounter.branch_id == branch_id,
            RegisterCounter.register_id == register_id
        ).with_for_update().first()

        if not counter:
            counter = RegisterCounter(branch_id=branch_id, register_id=register_id, last_shift_number=0)
            self.db.add(counter)

        counter.last_shift_number = (counter.last_shift_number or 0) + 1
        self.db.flush()
        return counter.last_shift_number

    # ===== EVENTOS DEL TURNO =====

    def record_sale(self, shift_id: int, sale: Sale, created_by: Optional[str] = None, commit: bool = True) -> Sale:
        """Registrar una venta ya resuelta y acumularla en los buckets del turno."""
        try:
            shift = self._get_open_shift_for_update(shift_id)

            sale.shift_id = shift.id
            sale.branch_id = shift.branch_id
            sale.register_id = shift.register_id
            if not sale.folio:
                sale.folio = f"{shift.shift_number}-{shift.sales_count + 1:05d}"

            self.store.append(sale, created_by=created_by)
            apply_sale(shift, sale)
            self.db.flush()
            if commit:
                self.db.commit()

        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Venta rechazada en turno {shift_id}: {e}")
            raise ConflictError(f"El folio {sale.folio} ya existe en la caja")
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Venta {sale.folio} por ${sale.total} ({sale.payment_kind.value}) en turno {shift_id}")
        return sale

    def record_cash_movement(
        self,
        shift_id: int,
        type: CashMovementType,
        amount: Decimal,
        reason: str,
        notes: Optional[str] = None,
        created_by: Optional[str] = None
    ) -> CashMovement:
        """Entrada o salida manual de efectivo. No se valida saldo negativo."""
        try:
            type = CashMovementType(type)
        except ValueError:
            raise ValidationError(f"Tipo de movimiento inválido: {type}", field="type")

        amount = to_money(amount)
        if not money_gt(amount, ZERO):
            raise ValidationError("El monto debe ser mayor a 0", field="amount")
        if not reason or not reason.strip():
            raise ValidationError("El motivo es requerido", field="reason")

        try:
            shift = self._get_open_shift_for_update(shift_id)
            movement = CashMovement(
                shift_id=shift.id,
                type=type,
                amount=amount,
                reason=reason.strip(),
                notes=notes,
            )
            self.store.append(movement, created_by=created_by)
            apply_cash_movement(shift, movement)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Movimiento de caja {type.value} ${amount} en turno {shift_id}: {reason}")
        return movement

    def delete_cash_movement(
        self,
        movement_id: int,
        reason: Optional[str] = None,
        deleted_by: Optional[str] = None
    ) -> CashMovementReversal:
        """
        Anular un movimiento de caja.

        Solo con el turno abierto. El movimiento se conserva y se registra una
        reversión que compensa el total de movimientos.
        """
        movement = self.store.get(CashMovement, movement_id)
        if not movement:
            raise NotFoundError("Movimiento de caja", movement_id)

        try:
            shift = self._lock_shift(movement.shift_id)
            if shift.status != ShiftStatus.OPEN:
                raise ConflictError(
                    f"Solo se pueden eliminar movimientos de un turno abierto (turno {shift.id} {shift.status.value})"
                )
            if movement.is_reversed:
                raise ConflictError(f"El movimiento {movement_id} ya fue eliminado")

            reversal = CashMovementReversal(
                movement_id=movement.id,
                shift_id=shift.id,
                reason=reason,
            )
            self.store.append(reversal, created_by=deleted_by)
            apply_cash_movement_reversal(shift, movement)
            self.db.commit()

        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Reversión duplicada del movimiento {movement_id}: {e}")
            raise ConflictError(f"El movimiento {movement_id} ya fue eliminado")
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Movimiento de caja {movement_id} anulado en turno {shift.id}")
        return reversal

    def record_credit_payment(
        self,
        shift_id: int,
        credit_id: int,
        amount: Decimal,
        payment_method: CreditPaymentMethod = CreditPaymentMethod.CASH,
        notes: Optional[str] = None,
        created_by: Optional[str] = None
    ) -> CreditPayment:
        """Abono a un crédito recibido en el turno. Afecta caja, no ventas."""
        try:
            shift = self._get_open_shift_for_update(shift_id)
            payment = self.credits.pay(
                credit_id,
                amount,
                payment_method=payment_method or CreditPaymentMethod.CASH,
                shift_id=shift.id,
                notes=notes,
                created_by=created_by,
                commit=False,
            )
            apply_credit_payment(shift, payment)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        return payment

    # ===== CIERRE / CANCELACIÓN =====

    def close_shift(
        self,
        shift_id: int,
        final_cash: Decimal,
        notes: Optional[str] = None,
        closed_by: Optional[str] = None
    ) -> CashRegisterShift:
        """
        Cerrar el turno con el efectivo contado.

        Calcula expected_cash y difference y congela el turno. Un segundo
        cierre falla con ConflictError.
        """
        if final_cash is None:
            raise ValidationError("El efectivo final es requerido", field="final_cash")
        final_cash = to_money(final_cash)
        if final_cash < 0:
            raise ValidationError("El efectivo final no puede ser negativo", field="final_cash")

        try:
            shift = self._lock_shift(shift_id)
            if shift.status != ShiftStatus.OPEN:
                raise ConflictError(f"El turno {shift_id} ya está {shift.status.value}")

            expected, difference = reconcile(shift, final_cash)
            shift.final_cash = final_cash
            shift.expected_cash = expected
            shift.difference = difference
            shift.status = ShiftStatus.CLOSED
            shift.end_time = self.clock.now()
            shift.closed_by = closed_by
            if notes is not None:
                shift.notes = notes

            self._snapshot(shift, ShiftSnapshotKind.CLOSED, closed_by)
            self.db.commit()
            self.db.refresh(shift)

        except Exception:
            self.db.rollback()
            raise

        if money_eq(difference, ZERO):
            logger.info(f"Turno {shift_id} cerrado sin diferencias (esperado ${expected})")
        else:
            logger.warning(
                f"Turno {shift_id} cerrado con diferencia ${difference} "
                f"(esperado ${expected}, contado ${final_cash})"
            )
        return shift

    def cancel_shift(
        self,
        shift_id: int,
        notes: Optional[str] = None,
        cancelled_by: Optional[str] = None
    ) -> CashRegisterShift:
        """Cancelar un turno abierto sin ventas. El efectivo esperado queda congelado."""
        try:
            shift = self._lock_shift(shift_id)
            if shift.status != ShiftStatus.OPEN:
                raise ConflictError(f"Solo se pueden cancelar turnos abiertos (turno {shift_id} {shift.status.value})")

            has_sales = shift.sales_count > 0 or self.db.query(Sale.id).filter(
                Sale.shift_id == shift.id
            ).first() is not None
            if has_sales:
                raise ConflictError(f"No se puede cancelar el turno {shift_id}: tiene ventas registradas")

            shift.expected_cash = expected_cash(shift)
            shift.status = ShiftStatus.CANCELLED
            shift.end_time = self.clock.now()
            shift.closed_by = cancelled_by
            if notes is not None:
                shift.notes = notes

            self._snapshot(shift, ShiftSnapshotKind.CANCELLED, cancelled_by)
            self.db.commit()
            self.db.refresh(shift)

        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Turno {shift_id} cancelado")
        return shift

    # ===== CONSULTAS =====

    def get_active_shift(self, branch_id: str, register_id: str) -> Optional[CashRegisterShift]:
        return self.db.query(CashRegisterShift).filter(
            CashRegisterShift.branch_id == branch_id,
            CashRegisterShift.register_id == register_id,
            CashRegisterShift.status == ShiftStatus.OPEN
        ).first()

    def get_shift(self, shift_id: int) -> CashRegisterShift:
        shift = self.db.query(CashRegisterShift).filter(CashRegisterShift.id == shift_id).first()
        if not shift:
            raise NotFoundError("Turno", shift_id)
        return shift

    def list_cash_movements(self, shift_id: int, include_reversed: bool = False) -> List[CashMovement]:
        self.get_shift(shift_id)
        query = self.db.query(CashMovement).filter(CashMovement.shift_id == shift_id)
        if not include_reversed:
            query = query.filter(~CashMovement.reversal.has())
        return query.order_by(CashMovement.created_at, CashMovement.id).all()

    def list_sales(self, shift_id: int) -> List[Sale]:
        self.get_shift(shift_id)
        return self.store.list_for(Sale, shift_id=shift_id)

    # ===== AUDITORÍA =====

    def recompute_totals(self, shift_id: int) -> ShiftTotals:
        """Totales recalculados desde los eventos crudos del turno."""
        self.get_shift(shift_id)
        totals = ShiftTotals()

        for sale in self.store.list_for(Sale, shift_id=shift_id):
            apply_sale(totals, sale)

        for movement in self.store.list_for(CashMovement, shift_id=shift_id):
            apply_cash_movement(totals, movement)

        for reversal in self.store.list_for(CashMovementReversal, shift_id=shift_id):
            apply_cash_movement_reversal(totals, reversal.movement)

        for payment in self.store.list_for(CreditPayment, shift_id=shift_id):
            apply_credit_payment(totals, payment)

        return totals

    def verify_shift(self, shift_id: int) -> List[str]:
        """Campos cuyo total acumulado no coincide con el recálculo (vacío si cuadra)."""
        shift = self.get_shift(shift_id)
        stored = ShiftTotals.of(shift)
        recomputed = self.recompute_totals(shift_id)

        mismatches = []
        for f in fields(ShiftTotals):
            if f.name == "sales_count":
                if stored.sales_count != recomputed.sales_count:
                    mismatches.append(f.name)
            elif not money_eq(getattr(stored, f.name), getattr(recomputed, f.name)):
                mismatches.append(f.name)

        if mismatches:
            logger.warning(f"Turno {shift_id} no cuadra con sus eventos: {', '.join(mismatches)}")
        return mismatches

    # ===== HELPERS =====

    def _lock_shift(self, shift_id: int) -> CashRegisterShift:
        shift = self.db.query(CashRegisterShift).filter(
            CashRegisterShift.id == shift_id
        ).with_for_update().first()
        if not shift:
            raise NotFoundError("Turno", shift_id)
        return shift

    def _get_open_shift_for_update(self, shift_id: int) -> CashRegisterShift:
        shift = self.db.query(CashRegisterShift).filter(
            CashRegisterShift.id == shift_id,
            CashRegisterShift.status == ShiftStatus.OPEN
        ).with_for_update().first()
        if not shift:
            raise NotFoundError("Turno", shift_id, f"No hay turno abierto con id {shift_id}")
        return shift

    def _snapshot(self, shift: CashRegisterShift, kind: ShiftSnapshotKind, created_by: Optional[str]) -> ShiftSnapshot:
        return self.store.append(
            ShiftSnapshot(shift_id=shift.id, kind=kind, payload=shift_payload(shift)),
            created_by=created_by,
        )
