"""
Schemas Pydantic para créditos de clientes
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from posledger.modules.credits.models import CreditStatus
from posledger.modules.events.models import CreditPaymentMethod


class CreditPaymentOut(BaseModel):
    id: int
    credit_id: int
    amount: Decimal
    payment_method: CreditPaymentMethod
    shift_id: Optional[int] = None
    notes: Optional[str] = None
    created_at: datetime
    created_by: Optional[str] = None

    model_config = {"from_attributes": True}


class ClientCreditOut(BaseModel):
    id: int
    client_id: str
    original_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    status: CreditStatus
    source_sale_id: int
    shift_id: Optional[int] = None
    notes: Optional[str] = None
    issued_at: datetime
    paid_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ClientCreditDetail(ClientCreditOut):
    payments: List[CreditPaymentOut] = Field(default_factory=list)


class ClientCreditSummary(BaseModel):
    """Saldo pendiente del cliente"""
    client_id: str
    total_pending: Decimal = Field(description="Suma de saldos PENDING y PARTIALLY_PAID")
    pending_count: int
    credits: List[ClientCreditOut] = Field(default_factory=list)


class AvailableCredit(BaseModel):
    client_id: str
    credit_limit: Decimal
    available_credit: Decimal
