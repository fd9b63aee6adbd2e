"""
Modelos SQLAlchemy de los eventos del ledger (append-only)

Cada fila es un hecho inmutable. Los totales del turno y el stock de cada
producto son proyecciones que se recalculan reproduciendo estos eventos en
orden (created_at, id):
- CashMovement / CashMovementReversal: entradas y salidas manuales de caja
- Sale / SaleLine: ventas con el tender ya resuelto en montos por bucket
- CreditPayment: abonos a créditos de clientes
- InventoryMovement: movimientos de Kardex
- ShiftSnapshot: copia de los totales del turno en cada transición de estado
"""

from posledger.database.database import Base
from posledger.common.mixins import EventMixin
from sqlalchemy import Column, String, ForeignKey, Numeric, Enum, Text, Integer, JSON, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from decimal import Decimal
import enum


# ===== ENUMS =====

class CashMovementType(str, enum.Enum):
    """Tipos de movimiento manual de caja"""
    ENTRADA = "ENTRADA"   # Ingreso de efectivo (fondo, cambio)
    SALIDA = "SALIDA"     # Retiro de efectivo (gasto, retiro)


class PaymentKind(str, enum.Enum):
    """Variantes cerradas del tender de una venta"""
    CASH = "CASH"
    CARD = "CARD"
    TRANSFER = "TRANSFER"
    GIFT = "GIFT"         # Regalo: se audita el total, no entra a caja
    MIXED = "MIXED"       # Efectivo + tarjeta


class CreditPaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CARD = "CARD"
    TRANSFER = "TRANSFER"
    OTHER = "OTHER"


class InventoryMovementType(str, enum.Enum):
    ENTRADA = "ENTRADA"              # stock += quantity
    SALIDA = "SALIDA"                # stock -= quantity
    AJUSTE = "AJUSTE"                # stock = quantity
    TRANSFERENCIA = "TRANSFERENCIA"  # según transfer_direction


class TransferDirection(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"


class ShiftSnapshotKind(str, enum.Enum):
    OPENED = "OPENED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


# ===== EVENTOS DE CAJA =====

class CashMovement(Base, EventMixin):
    """
    Movimiento manual de efectivo dentro de un turno abierto.

    El monto siempre es positivo; el signo lo da el tipo.
    """
    __tablename__ = "cash_movements"

    shift_id = Column(Integer, ForeignKey("cash_register_shifts.id"), nullable=False, index=True)
    type = Column(Enum(CashMovementType), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    reason = Column(String(255), nullable=False)
    notes = Column(Text, nullable=True)

    reversal = relationship("CashMovementReversal", uselist=False, back_populates="movement")

    @property
    def signed_amount(self) -> Decimal:
        if self.type == CashMovementType.SALIDA:
            return -abs(self.amount)
        return abs(self.amount)

    @property
    def is_reversed(self) -> bool:
        return self.reversal is not None


class CashMovementReversal(Base, EventMixin):
    """Anulación de un movimiento de caja. El movimiento original se conserva."""
    __tablename__ = "cash_movement_reversals"

    movement_id = Column(Integer, ForeignKey("cash_movements.id"), nullable=False, unique=True)
    shift_id = Column(Integer, ForeignKey("cash_register_shifts.id"), nullable=False, index=True)
    reason = Column(String(255), nullable=True)

    movement = relationship("CashMovement", back_populates="reversal")


# ===== VENTAS =====

class Sale(Base, EventMixin):
    """
    Venta registrada en un turno.

    El tender se guarda ya resuelto: ``payment_kind`` más los montos que
    afectan cada bucket del turno. ``cash_amount`` es el efectivo neto que
    queda en caja (sin cambio y sin la parte diferida a crédito).
    """
    __tablename__ = "sales"

    folio = Column(String(50), nullable=False)
    branch_id = Column(String(50), nullable=False, index=True)
    register_id = Column(String(50), nullable=False, index=True)
    shift_id = Column(Integer, ForeignKey("cash_register_shifts.id"), nullable=False, index=True)

    subtotal = Column(Numeric(15, 2), nullable=False)
    deposit_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    total = Column(Numeric(15, 2), nullable=False)

    payment_kind = Column(Enum(PaymentKind), nullable=False)
    cash_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    card_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    transfer_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    other_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    credit_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    amount_received = Column(Numeric(15, 2), nullable=True)
    change_given = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))

    client_id = Column(String(100), nullable=True, index=True)
    client_name = Column(String(255), nullable=True)

    lines = relationship("SaleLine", back_populates="sale", order_by="SaleLine.id")

    __table_args__ = (
        UniqueConstraint("branch_id", "register_id", "folio", name="uq_sale_register_folio"),
    )

    @classmethod
    def from_allocation(cls, allocation, lines=None, folio=None, client_id=None, client_name=None):
        """Construye la venta (sin persistir) a partir de un PaymentAllocation."""
        return cls(
            folio=folio,
            subtotal=allocation.subtotal,
            deposit_amount=allocation.deposit,
            total=allocation.total,
            payment_kind=PaymentKind(allocation.kind),
            cash_amount=allocation.cash_total,
            card_amount=allocation.card_for_products,
            transfer_amount=allocation.transfer_amount,
            other_amount=allocation.other_amount,
            credit_amount=allocation.credit_amount,
            amount_received=allocation.amount_received,
            change_given=allocation.change,
            client_id=client_id,
            client_name=client_name,
            lines=list(lines or []),
        )


class SaleLine(Base):
    """Renglón de venta. Se persiste junto con la venta."""
    __tablename__ = "sale_lines"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sale_id = Column(Integer, ForeignKey("sales.id"), nullable=False, index=True)
    product_id = Column(String(100), nullable=False, index=True)
    product_name = Column(String(255), nullable=True)
    quantity = Column(Numeric(14, 3), nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)
    subtotal = Column(Numeric(15, 2), nullable=False)

    sale = relationship("Sale", back_populates="lines")


# ===== CRÉDITOS =====

class CreditPayment(Base, EventMixin):
    """Abono a un crédito. Sin método se asume efectivo."""
    __tablename__ = "credit_payments"

    credit_id = Column(Integer, ForeignKey("client_credits.id"), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    payment_method = Column(Enum(CreditPaymentMethod), nullable=False, default=CreditPaymentMethod.CASH)
    shift_id = Column(Integer, ForeignKey("cash_register_shifts.id"), nullable=True, index=True)
    notes = Column(Text, nullable=True)


# ===== INVENTARIO =====

class InventoryMovement(Base, EventMixin):
    """
    Movimiento de Kardex.

    Para AJUSTE ``quantity`` es el stock resultante; para el resto es la
    cantidad movida (siempre positiva). ``transfer_direction`` queda fijado al
    registrar una TRANSFERENCIA para que la reproducción sea estable.
    """
    __tablename__ = "inventory_movements"

    product_id = Column(String(100), ForeignKey("inventory_items.product_id"), nullable=False)
    type = Column(Enum(InventoryMovementType), nullable=False)
    quantity = Column(Numeric(14, 3), nullable=False)
    transfer_direction = Column(Enum(TransferDirection), nullable=True)
    reason = Column(String(255), nullable=True)
    reference = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    branch_id = Column(String(50), nullable=True)
    register_id = Column(String(50), nullable=True)

    __table_args__ = (
        Index("ix_inventory_movements_product_order", "product_id", "created_at", "id"),
    )


# ===== AUDITORÍA DE TURNOS =====

class ShiftSnapshot(Base, EventMixin):
    """Copia de los totales del turno en cada transición (apertura, cierre, cancelación)"""
    __tablename__ = "shift_snapshots"

    shift_id = Column(Integer, ForeignKey("cash_register_shifts.id"), nullable=False, index=True)
    kind = Column(Enum(ShiftSnapshotKind), nullable=False)
    payload = Column(JSON, nullable=False)
