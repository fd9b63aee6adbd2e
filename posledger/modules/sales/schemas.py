"""
Schemas Pydantic para ventas (checkout)
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from posledger.modules.events.models import PaymentKind
from posledger.modules.payments.schemas import Tender, PaymentAllocation


class SaleItem(BaseModel):
    """Renglón de venta tal como lo arma la caja"""
    product_id: str = Field(..., min_length=1, max_length=100)
    product_name: Optional[str] = Field(None, max_length=255)
    quantity: Decimal = Field(..., gt=0, description="Cantidad (admite fracciones para granel)")
    unit_price: Decimal = Field(..., ge=0, description="Precio unitario")


class CheckoutRequest(BaseModel):
    branch_id: str = Field(..., min_length=1, max_length=50)
    register_id: str = Field(..., min_length=1, max_length=50)
    items: List[SaleItem] = Field(..., min_length=1)
    tender: Tender
    deposit_subtotal: Decimal = Field(default=Decimal("0"), ge=0, description="Depósito de envases (solo efectivo)")
    client_id: Optional[str] = Field(None, max_length=100)
    client_name: Optional[str] = Field(None, max_length=255)
    credit_limit: Optional[Decimal] = Field(None, ge=0, description="Límite de crédito del cliente")
    folio: Optional[str] = Field(None, max_length=50)
    created_by: Optional[str] = Field(None, max_length=100)


class SaleLineOut(BaseModel):
    product_id: str
    product_name: Optional[str] = None
    quantity: Decimal
    unit_price: Decimal
    subtotal: Decimal

    model_config = {"from_attributes": True}


class SaleOut(BaseModel):
    id: int
    folio: str
    branch_id: str
    register_id: str
    shift_id: int
    subtotal: Decimal
    deposit_amount: Decimal
    total: Decimal
    payment_kind: PaymentKind
    cash_amount: Decimal
    card_amount: Decimal
    transfer_amount: Decimal
    other_amount: Decimal
    credit_amount: Decimal
    amount_received: Optional[Decimal] = None
    change_given: Decimal
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    created_at: datetime
    created_by: Optional[str] = None
    lines: List[SaleLineOut] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class CheckoutResponse(BaseModel):
    sale: SaleOut
    allocation: PaymentAllocation
    credit_id: Optional[int] = None
    warnings: List[str] = Field(default_factory=list, description="Discrepancias de inventario (la venta se conserva)")
