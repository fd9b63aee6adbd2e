"""
Modelos SQLAlchemy para créditos de clientes (fiado)

Un crédito nace de la parte no pagada de una venta en efectivo. Solo cambian
paid_amount, remaining_amount, status y paid_at, y únicamente al aplicar un
CreditPayment.
"""

from posledger.database.database import Base
from posledger.common.mixins import TimestampMixin
from posledger.modules.events.models import CreditPayment
from sqlalchemy import Column, String, DateTime, ForeignKey, Numeric, Enum, Text, Integer, UniqueConstraint
from sqlalchemy.orm import relationship
from decimal import Decimal
import enum


class CreditStatus(str, enum.Enum):
    """Estados del crédito"""
    PENDING = "PENDING"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"


OUTSTANDING_STATUSES = (CreditStatus.PENDING, CreditStatus.PARTIALLY_PAID)

MUTABLE_CREDIT_FIELDS = ("paid_amount", "remaining_amount", "status", "paid_at", "updated_at")


class ClientCredit(Base, TimestampMixin):
    """Crédito otorgado a un cliente por una venta"""
    __tablename__ = "client_credits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(String(100), nullable=False, index=True)
    original_amount = Column(Numeric(15, 2), nullable=False)
    paid_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    remaining_amount = Column(Numeric(15, 2), nullable=False)
    status = Column(Enum(CreditStatus), nullable=False, default=CreditStatus.PENDING, index=True)
    source_sale_id = Column(Integer, ForeignKey("sales.id"), nullable=False, unique=True)
    shift_id = Column(Integer, ForeignKey("cash_register_shifts.id"), nullable=True, index=True)
    notes = Column(Text, nullable=True)
    issued_at = Column(DateTime(timezone=True), nullable=False, index=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    payments = relationship(
        CreditPayment,
        order_by=(CreditPayment.created_at, CreditPayment.id),
        viewonly=True,
    )

    @property
    def is_outstanding(self) -> bool:
        return self.status in OUTSTANDING_STATUSES


class ClientCreditAccount(Base):
    """
    Fila por cliente que se bloquea (FOR UPDATE) al emitir un crédito, para que
    dos cajas no difieran faltantes del mismo cliente a la vez.
    """
    __tablename__ = "client_credit_accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(String(100), nullable=False)
    credit_limit = Column(Numeric(15, 2), nullable=True)
    last_issued_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("client_id", name="uq_client_credit_account"),
    )
