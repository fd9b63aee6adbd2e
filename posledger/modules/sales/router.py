"""
Router FastAPI para ventas
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from posledger.common.clock import Clock, get_clock
from posledger.database.database import get_db
from posledger.modules.sales.service import CheckoutService
from posledger.modules.sales.schemas import CheckoutRequest, CheckoutResponse, SaleOut
from posledger.modules.shifts.service import ShiftManager


sales_router = APIRouter(prefix="/sales", tags=["Sales"])


@sales_router.post("/checkout", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
async def checkout(
    data: CheckoutRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """
    Registrar una venta en el turno abierto de la caja.

    - 404 si la caja no tiene turno abierto
    - 400 si el pago no cuadra (depósito, mixto)
    - 422 si el efectivo no alcanza y el cliente no tiene crédito suficiente

    Las discrepancias de inventario se devuelven en ``warnings``.
    """
    result = CheckoutService(db, clock).checkout(
        data.branch_id,
        data.register_id,
        data.items,
        data.tender,
        deposit_subtotal=data.deposit_subtotal,
        client_id=data.client_id,
        client_name=data.client_name,
        credit_limit=data.credit_limit,
        folio=data.folio,
        created_by=data.created_by,
    )
    return CheckoutResponse(
        sale=SaleOut.model_validate(result.sale),
        allocation=result.allocation,
        credit_id=result.credit.id if result.credit else None,
        warnings=result.warnings,
    )


@sales_router.get("/shift/{shift_id}", response_model=List[SaleOut])
async def list_shift_sales(shift_id: int, db: Session = Depends(get_db), clock: Clock = Depends(get_clock)):
    return ShiftManager(db, clock).list_sales(shift_id)
