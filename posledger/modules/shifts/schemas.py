"""
Schemas Pydantic para turnos de caja

Incluye:
- Apertura, cierre y cancelación de turnos
- Movimientos manuales de caja
- Abonos a crédito recibidos en el turno
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from posledger.modules.events.models import CashMovementType, CreditPaymentMethod
from posledger.modules.shifts.models import ShiftStatus


# ===== TURNOS =====

class ShiftOpen(BaseModel):
    """Schema para abrir un turno"""
    branch_id: str = Field(..., min_length=1, max_length=50, description="Sucursal")
    register_id: str = Field(..., min_length=1, max_length=50, description="Caja")
    cashier_name: Optional[str] = Field(None, max_length=100, description="Nombre del cajero")
    initial_cash: Decimal = Field(default=Decimal("0"), ge=0, description="Fondo inicial")
    opened_by: Optional[str] = Field(None, max_length=100)


class ShiftClose(BaseModel):
    """Schema para cerrar un turno (arqueo)"""
    final_cash: Decimal = Field(..., ge=0, description="Efectivo contado al cierre")
    notes: Optional[str] = Field(None, max_length=500, description="Notas de cierre")
    closed_by: Optional[str] = Field(None, max_length=100)


class ShiftCancel(BaseModel):
    notes: Optional[str] = Field(None, max_length=500)
    cancelled_by: Optional[str] = Field(None, max_length=100)


class ShiftOut(BaseModel):
    """Schema de respuesta para turnos"""
    id: int
    branch_id: str
    register_id: str
    shift_number: int
    status: ShiftStatus
    cashier_name: Optional[str] = None
    initial_cash: Decimal
    start_time: datetime
    end_time: Optional[datetime] = None

    total_cash: Decimal
    total_card: Decimal
    total_transfer: Decimal
    total_other: Decimal
    total_cash_movements: Decimal
    total_credit_payments_cash: Decimal
    total_credit_payments_card: Decimal
    total_credit_payments_other: Decimal
    total_credits_issued: Decimal
    sales_count: int
    sales_amount: Decimal

    final_cash: Optional[Decimal] = None
    expected_cash: Optional[Decimal] = None
    difference: Optional[Decimal] = None
    notes: Optional[str] = None
    opened_by: Optional[str] = None
    closed_by: Optional[str] = None

    model_config = {"from_attributes": True}


class ShiftVerification(BaseModel):
    shift_id: int
    consistent: bool
    mismatched_fields: List[str] = Field(default_factory=list)


# ===== MOVIMIENTOS DE CAJA =====

class CashMovementCreate(BaseModel):
    """Schema para registrar una entrada o salida de efectivo"""
    type: CashMovementType = Field(..., description="ENTRADA o SALIDA")
    amount: Decimal = Field(..., gt=0, description="Monto (siempre positivo)")
    reason: str = Field(..., min_length=1, max_length=255, description="Motivo")
    notes: Optional[str] = Field(None, max_length=500)
    created_by: Optional[str] = Field(None, max_length=100)


class CashMovementDelete(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)
    deleted_by: Optional[str] = Field(None, max_length=100)


class CashMovementOut(BaseModel):
    id: int
    shift_id: int
    type: CashMovementType
    amount: Decimal
    reason: str
    notes: Optional[str] = None
    is_reversed: bool = False
    created_at: datetime
    created_by: Optional[str] = None

    model_config = {"from_attributes": True}


class CashMovementReversalOut(BaseModel):
    id: int
    movement_id: int
    shift_id: int
    reason: Optional[str] = None
    created_at: datetime
    created_by: Optional[str] = None

    model_config = {"from_attributes": True}


# ===== ABONOS A CRÉDITO =====

class CreditPaymentCreate(BaseModel):
    """Abono a un crédito recibido en la caja"""
    credit_id: int
    amount: Decimal = Field(..., gt=0)
    payment_method: CreditPaymentMethod = Field(default=CreditPaymentMethod.CASH)
    notes: Optional[str] = Field(None, max_length=500)
    created_by: Optional[str] = Field(None, max_length=100)
