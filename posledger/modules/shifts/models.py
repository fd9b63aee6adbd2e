"""
Modelos SQLAlchemy para turnos de caja

- CashRegisterShift: turno de una caja (apertura, totales acumulados, arqueo)
- RegisterCounter: contador de número de turno por (sucursal, caja)

Solo puede existir un turno OPEN por (sucursal, caja); lo garantiza un índice
único parcial además de la validación en el servicio.
"""

from posledger.database.database import Base
from posledger.common.mixins import TimestampMixin
from sqlalchemy import Column, String, DateTime, Numeric, Enum, Text, Integer, UniqueConstraint, Index, text
from decimal import Decimal
import enum


# ===== ENUMS =====

class ShiftStatus(str, enum.Enum):
    """Estados del turno"""
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = (ShiftStatus.CLOSED, ShiftStatus.CANCELLED)

MONEY_TOTAL_FIELDS = (
    "total_cash",
    "total_card",
    "total_transfer",
    "total_other",
    "total_cash_movements",
    "total_credit_payments_cash",
    "total_credit_payments_card",
    "total_credit_payments_other",
    "total_credits_issued",
    "sales_amount",
)


# ===== MODELOS =====

class CashRegisterShift(Base, TimestampMixin):
    """
    Turno de caja registradora

    Los totales son la proyección de los eventos del turno (ventas,
    movimientos de caja y abonos a crédito). Al cerrar se congelan
    expected_cash y difference; después el registro ya no puede modificarse.
    """
    __tablename__ = "cash_register_shifts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    branch_id = Column(String(50), nullable=False, index=True)
    register_id = Column(String(50), nullable=False, index=True)
    shift_number = Column(Integer, nullable=False)
    status = Column(Enum(ShiftStatus), nullable=False, default=ShiftStatus.OPEN, index=True)
    cashier_name = Column(String(100), nullable=True)

    initial_cash = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)

    # Totales por tender (ventas)
    total_cash = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    total_card = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    total_transfer = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    total_other = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))

    # Movimientos manuales (neto) y abonos a crédito, separados de las ventas
    total_cash_movements = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    total_credit_payments_cash = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    total_credit_payments_card = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    total_credit_payments_other = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))
    total_credits_issued = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))

    sales_count = Column(Integer, nullable=False, default=0)
    sales_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0"))

    # Arqueo
    final_cash = Column(Numeric(15, 2), nullable=True)
    expected_cash = Column(Numeric(15, 2), nullable=True)
    difference = Column(Numeric(15, 2), nullable=True)

    notes = Column(Text, nullable=True)
    opened_by = Column(String(100), nullable=True)
    closed_by = Column(String(100), nullable=True)

    __table_args__ = (
        UniqueConstraint("branch_id", "register_id", "shift_number", name="uq_shift_register_number"),
        Index(
            "uq_open_shift_per_register",
            "branch_id",
            "register_id",
            unique=True,
            postgresql_where=text("status = 'OPEN'"),
            sqlite_where=text("status = 'OPEN'"),
        ),
    )

    @property
    def is_open(self) -> bool:
        return self.status == ShiftStatus.OPEN

    @property
    def total_credit_payments(self) -> Decimal:
        return (
            (self.total_credit_payments_cash or Decimal("0"))
            + (self.total_credit_payments_card or Decimal("0"))
            + (self.total_credit_payments_other or Decimal("0"))
        )


class RegisterCounter(Base):
    """Último número de turno asignado por caja. Los números nunca se reutilizan."""
    __tablename__ = "register_counters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    branch_id = Column(String(50), nullable=False)
    register_id = Column(String(50), nullable=False)
    last_shift_number = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("branch_id", "register_id", name="uq_register_counter"),
    )
