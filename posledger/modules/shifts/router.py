"""
Router FastAPI para turnos de caja

Adaptador delgado: desempaca los schemas, llama a ShiftManager y devuelve el
resultado. Los errores del ledger se traducen a códigos HTTP en main.py.
"""

from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.orm import Session
from typing import Optional, List

from posledger.common.clock import Clock, get_clock
from posledger.database.database import get_db
from posledger.modules.credits.schemas import CreditPaymentOut
from posledger.modules.shifts.service import ShiftManager
from posledger.modules.shifts.schemas import (
    ShiftOpen, ShiftClose, ShiftCancel, ShiftOut, ShiftVerification,
    CashMovementCreate, CashMovementDelete, CashMovementOut, CashMovementReversalOut,
    CreditPaymentCreate
)


shifts_router = APIRouter(prefix="/shifts", tags=["Shifts"])


def get_shift_manager(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> ShiftManager:
    return ShiftManager(db, clock)


# ===== TURNOS =====

@shifts_router.post("", response_model=ShiftOut, status_code=status.HTTP_201_CREATED)
async def open_shift(data: ShiftOpen, manager: ShiftManager = Depends(get_shift_manager)):
    """Abrir un turno. 409 si la caja ya tiene un turno abierto."""
    return manager.open_shift(
        data.branch_id,
        data.register_id,
        cashier_name=data.cashier_name,
        initial_cash=data.initial_cash,
        opened_by=data.opened_by,
    )


@shifts_router.get("/active", response_model=Optional[ShiftOut])
async def get_active_shift(
    branch_id: str = Query(..., description="Sucursal"),
    register_id: str = Query(..., description="Caja"),
    manager: ShiftManager = Depends(get_shift_manager)
):
    return manager.get_active_shift(branch_id, register_id)


@shifts_router.get("/{shift_id}", response_model=ShiftOut)
async def get_shift(shift_id: int = Path(...), manager: ShiftManager = Depends(get_shift_manager)):
    return manager.get_shift(shift_id)


@shifts_router.post("/{shift_id}/close", response_model=ShiftOut)
async def close_shift(shift_id: int, data: ShiftClose, manager: ShiftManager = Depends(get_shift_manager)):
    """Cerrar el turno con arqueo"""
    return manager.close_shift(shift_id, data.final_cash, notes=data.notes, closed_by=data.closed_by)


@shifts_router.post("/{shift_id}/cancel", response_model=ShiftOut)
async def cancel_shift(shift_id: int, data: ShiftCancel, manager: ShiftManager = Depends(get_shift_manager)):
    return manager.cancel_shift(shift_id, notes=data.notes, cancelled_by=data.cancelled_by)


@shifts_router.get("/{shift_id}/verify", response_model=ShiftVerification)
async def verify_shift(shift_id: int, manager: ShiftManager = Depends(get_shift_manager)):
    """Comparar los totales acumulados contra el recálculo desde los eventos"""
    mismatches = manager.verify_shift(shift_id)
    return ShiftVerification(shift_id=shift_id, consistent=not mismatches, mismatched_fields=mismatches)


# ===== MOVIMIENTOS DE CAJA =====

@shifts_router.post(
    "/{shift_id}/cash-movements",
    response_model=CashMovementOut,
    status_code=status.HTTP_201_CREATED
)
async def record_cash_movement(
    shift_id: int,
    data: CashMovementCreate,
    manager: ShiftManager = Depends(get_shift_manager)
):
    return manager.record_cash_movement(
        shift_id,
        data.type,
        data.amount,
        data.reason,
        notes=data.notes,
        created_by=data.created_by,
    )


@shifts_router.get("/{shift_id}/cash-movements", response_model=List[CashMovementOut])
async def list_cash_movements(
    shift_id: int,
    include_reversed: bool = Query(False, description="Incluir movimientos anulados"),
    manager: ShiftManager = Depends(get_shift_manager)
):
    return manager.list_cash_movements(shift_id, include_reversed=include_reversed)


@shifts_router.post("/cash-movements/{movement_id}/delete", response_model=CashMovementReversalOut)
async def delete_cash_movement(
    movement_id: int,
    data: CashMovementDelete,
    manager: ShiftManager = Depends(get_shift_manager)
):
    """Anular un movimiento (solo con el turno abierto); el original se conserva"""
    return manager.delete_cash_movement(movement_id, reason=data.reason, deleted_by=data.deleted_by)


# ===== ABONOS A CRÉDITO =====

@shifts_router.post(
    "/{shift_id}/credit-payments",
    response_model=CreditPaymentOut,
    status_code=status.HTTP_201_CREATED
)
async def record_credit_payment(
    shift_id: int,
    data: CreditPaymentCreate,
    manager: ShiftManager = Depends(get_shift_manager)
):
    return manager.record_credit_payment(
        shift_id,
        data.credit_id,
        data.amount,
        payment_method=data.payment_method,
        notes=data.notes,
        created_by=data.created_by,
    )
