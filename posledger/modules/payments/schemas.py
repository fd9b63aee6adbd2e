"""
Schemas Pydantic para pagos

El tender es una unión cerrada discriminada por ``kind``. Se resuelve una sola
vez en la frontera (router o checkout) y nunca se vuelve a interpretar desde
cadenas de texto.
"""

from pydantic import BaseModel, Field
from typing import Annotated, Optional, Union, Literal
from decimal import Decimal

from posledger.modules.events.models import PaymentKind


# ===== TENDERS =====

class CashTender(BaseModel):
    """Pago en efectivo. Sin amount_received se asume pago exacto."""
    kind: Literal["CASH"] = "CASH"
    amount_received: Optional[Decimal] = Field(None, ge=0, description="Efectivo recibido del cliente")


class CardTender(BaseModel):
    kind: Literal["CARD"] = "CARD"


class TransferTender(BaseModel):
    kind: Literal["TRANSFER"] = "TRANSFER"


class GiftTender(BaseModel):
    """Regalo: el total se registra para auditoría, sin efecto en caja."""
    kind: Literal["GIFT"] = "GIFT"


class MixedTender(BaseModel):
    """Efectivo + tarjeta"""
    kind: Literal["MIXED"] = "MIXED"
    cash_amount: Decimal = Field(..., ge=0, description="Parte en efectivo")
    card_amount: Decimal = Field(..., ge=0, description="Parte con tarjeta")


Tender = Annotated[
    Union[CashTender, CardTender, TransferTender, GiftTender, MixedTender],
    Field(discriminator="kind"),
]


# ===== CRÉDITO =====

class CreditAccount(BaseModel):
    """Cuenta de crédito del cliente al momento de la venta"""
    client_id: str = Field(..., min_length=1)
    credit_limit: Decimal = Field(..., ge=0)
    pending_balance: Decimal = Field(default=Decimal("0"), ge=0, description="Saldo pendiente de créditos abiertos")

    @property
    def available_credit(self) -> Decimal:
        return self.credit_limit - self.pending_balance


# ===== RESULTADO =====

class PaymentAllocation(BaseModel):
    """Reparto del total de una venta en buckets de tender"""
    kind: PaymentKind
    subtotal: Decimal
    deposit: Decimal = Decimal("0")
    total: Decimal
    cash_for_deposit: Decimal = Decimal("0")
    cash_for_products: Decimal = Decimal("0")
    card_for_products: Decimal = Decimal("0")
    transfer_amount: Decimal = Decimal("0")
    other_amount: Decimal = Decimal("0")
    amount_received: Optional[Decimal] = None
    change: Decimal = Decimal("0")
    credit_amount: Decimal = Decimal("0")
    client_id: Optional[str] = None

    @property
    def cash_total(self) -> Decimal:
        """Efectivo que queda en caja"""
        return self.cash_for_deposit + self.cash_for_products
