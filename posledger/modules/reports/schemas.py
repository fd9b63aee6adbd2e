"""
Schemas for the reporting module
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from posledger.modules.events.models import PaymentKind, CashMovementType
from posledger.modules.shifts.models import ShiftStatus


class ShiftHeader(BaseModel):
    id: int
    branch_id: str
    register_id: str
    shift_number: int
    status: ShiftStatus
    cashier_name: Optional[str] = None
    initial_cash: Decimal
    start_time: datetime
    end_time: Optional[datetime] = None
    opened_by: Optional[str] = None
    closed_by: Optional[str] = None
    notes: Optional[str] = None

    model_config = {"from_attributes": True}


class TenderTotals(BaseModel):
    cash: Decimal = Decimal("0")
    card: Decimal = Decimal("0")
    transfer: Decimal = Decimal("0")
    other: Decimal = Decimal("0")


class SalesStatistics(BaseModel):
    sales_count: int = 0
    total_amount: Decimal = Decimal("0")
    average_ticket: Decimal = Decimal("0")


class PaymentMethodBreakdown(BaseModel):
    kind: PaymentKind
    count: int = 0
    total: Decimal = Decimal("0")
    cash: Decimal = Decimal("0")
    card: Decimal = Decimal("0")
    transfer: Decimal = Decimal("0")
    other: Decimal = Decimal("0")
    credit: Decimal = Decimal("0")


class CashMovementsSummary(BaseModel):
    entradas: Decimal = Decimal("0")
    salidas: Decimal = Decimal("0")
    net: Decimal = Decimal("0")
    count: int = 0
    reversed_count: int = 0


class CreditsInfo(BaseModel):
    issued_total: Decimal = Decimal("0")
    issued_count: int = 0
    payments_cash: Decimal = Decimal("0")
    payments_card: Decimal = Decimal("0")
    payments_other: Decimal = Decimal("0")
    payments_total: Decimal = Decimal("0")
    payments_count: int = 0


class ShiftSummary(BaseModel):
    """Per-shift audit summary"""
    shift: ShiftHeader
    totals: TenderTotals
    statistics: SalesStatistics
    payment_methods: List[PaymentMethodBreakdown] = Field(default_factory=list)
    cash_movements: CashMovementsSummary
    credits: CreditsInfo
    expected_cash: Decimal = Field(description="Live for an open shift, frozen otherwise")
    final_cash: Optional[Decimal] = None
    difference: Optional[Decimal] = None


class ShiftListItem(ShiftHeader):
    sales_count: int
    sales_amount: Decimal
    expected_cash: Optional[Decimal] = None
    final_cash: Optional[Decimal] = None
    difference: Optional[Decimal] = None


class CashMovementHistoryItem(BaseModel):
    id: int
    shift_id: int
    branch_id: str
    register_id: str
    type: CashMovementType
    amount: Decimal
    reason: str
    notes: Optional[str] = None
    reversed: bool = False
    created_at: datetime
    created_by: Optional[str] = None
