"""
Read-only reporting over shifts, cash movements, sales and credit activity.

Nothing here writes; every figure is either read from the shift projection
or aggregated from the event tables.
"""

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from posledger.common.exceptions import NotFoundError
from posledger.common.money import ZERO, to_money
from posledger.modules.credits.models import ClientCredit
from posledger.modules.events.models import (
    CashMovement, CashMovementType, CreditPayment, CreditPaymentMethod, PaymentKind, Sale
)
from posledger.modules.reports.schemas import (
    ShiftSummary, ShiftHeader, TenderTotals, SalesStatistics, PaymentMethodBreakdown,
    CashMovementsSummary, CreditsInfo, ShiftListItem, CashMovementHistoryItem
)
from posledger.modules.shifts.models import CashRegisterShift, ShiftStatus
from posledger.modules.shifts.service import expected_cash


class ReportingFacade:
    """Reporting service for cash register shifts"""

    def __init__(self, db: Session):
        self.db = db

    def _get_shift(self, shift_id: int) -> CashRegisterShift:
        shift = self.db.query(CashRegisterShift).filter(CashRegisterShift.id == shift_id).first()
        if not shift:
            raise NotFoundError("Turno", shift_id)
        return shift

    def shift_summary(self, shift_id: int) -> ShiftSummary:
        """
        Full summary of a shift.

        Includes per-tender totals, sales statistics, the payment method
        breakdown (mixed sales split into cash and card), manual cash movements
        (reversed ones excluded), credit activity and the reconciliation
        figures.
        """
        shift = self._get_shift(shift_id)

        sales = self.db.query(Sale).filter(Sale.shift_id == shift_id).order_by(Sale.created_at, Sale.id).all()
        movements = self.db.query(CashMovement).filter(
            CashMovement.shift_id == shift_id
        ).order_by(CashMovement.created_at, CashMovement.id).all()
        payments = self.db.query(CreditPayment).filter(
            CreditPayment.shift_id == shift_id
        ).order_by(CreditPayment.created_at, CreditPayment.id).all()
        issued = self.db.query(ClientCredit).filter(ClientCredit.shift_id == shift_id).all()

        sales_total = to_money(sum((s.total for s in sales), ZERO))
        statistics = SalesStatistics(
            sales_count=len(sales),
            total_amount=sales_total,
            average_ticket=to_money(sales_total / len(sales)) if sales else ZERO,
        )

        expected = shift.expected_cash if shift.status != ShiftStatus.OPEN else expected_cash(shift)

        return ShiftSummary(
            shift=ShiftHeader.model_validate(shift),
            totals=TenderTotals(
                cash=shift.total_cash,
                card=shift.total_card,
                transfer=shift.total_transfer,
                other=shift.total_other,
            ),
            statistics=statistics,
            payment_methods=self._payment_breakdown(sales),
            cash_movements=self._cash_movements_summary(movements),
            credits=self._credits_info(issued, payments),
            expected_cash=expected if expected is not None else expected_cash(shift),
            final_cash=shift.final_cash,
            difference=shift.difference,
        )

    def _payment_breakdown(self, sales: List[Sale]) -> List[PaymentMethodBreakdown]:
        breakdown: Dict[PaymentKind, PaymentMethodBreakdown] = {}
        for sale in sales:
            row = breakdown.setdefault(sale.payment_kind, PaymentMethodBreakdown(kind=sale.payment_kind))
            row.count += 1
            row.total = to_money(row.total + sale.total)
            row.cash = to_money(row.cash + sale.cash_amount)
            row.card = to_money(row.card + sale.card_amount)
            row.transfer = to_money(row.transfer + sale.transfer_amount)
            row.other = to_money(row.other + sale.other_amount)
            row.credit = to_money(row.credit + sale.credit_amount)
        return [breakdown[kind] for kind in PaymentKind if kind in breakdown]

    def _cash_movements_summary(self, movements: List[CashMovement]) -> CashMovementsSummary:
        summary = CashMovementsSummary()
        for movement in movements:
            if movement.is_reversed:
                summary.reversed_count += 1
                continue
            summary.count += 1
            if movement.type == CashMovementType.ENTRADA:
                summary.entradas = to_money(summary.entradas + movement.amount)
            else:
                summary.salidas = to_money(summary.salidas + movement.amount)
        summary.net = to_money(summary.entradas - summary.salidas)
        return summary

    def _credits_info(self, issued: List[ClientCredit], payments: List[CreditPayment]) -> CreditsInfo:
        info = CreditsInfo(
            issued_total=to_money(sum((c.original_amount for c in issued), ZERO)),
            issued_count=len(issued),
            payments_count=len(payments),
        )
        for payment in payments:
            method = payment.payment_method or CreditPaymentMethod.CASH
            if method == CreditPaymentMethod.CASH:
                info.payments_cash = to_money(info.payments_cash + payment.amount)
            elif method == CreditPaymentMethod.CARD:
                info.payments_card = to_money(info.payments_card + payment.amount)
            else:
                info.payments_other = to_money(info.payments_other + payment.amount)
        info.payments_total = to_money(info.payments_cash + info.payments_card + info.payments_other)
        return info

    def list_shifts(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        branch_id: Optional[str] = None,
        register_id: Optional[str] = None,
        status: Optional[ShiftStatus] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[ShiftListItem]:
        """Shifts whose start_time falls in the range, newest first."""
        query = self.db.query(CashRegisterShift)
        if start is not None:
            query = query.filter(CashRegisterShift.start_time >= start)
        if end is not None:
            query = query.filter(CashRegisterShift.start_time <= end)
        if branch_id:
            query = query.filter(CashRegisterShift.branch_id == branch_id)
        if register_id:
            query = query.filter(CashRegisterShift.register_id == register_id)
        if status is not None:
            query = query.filter(CashRegisterShift.status == ShiftStatus(status))

        query = query.order_by(CashRegisterShift.start_time.desc(), CashRegisterShift.id.desc())
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        shifts = query.all()
        return [ShiftListItem.model_validate(shift) for shift in shifts]

    def cash_movements_history(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        register_id: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[CashMovementHistoryItem]:
        query = self.db.query(CashMovement, CashRegisterShift).join(
            CashRegisterShift, CashMovement.shift_id == CashRegisterShift.id
        )
        if start is not None:
            query = query.filter(CashMovement.created_at >= start)
        if end is not None:
            query = query.filter(CashMovement.created_at <= end)
        if register_id:
            query = query.filter(CashRegisterShift.register_id == register_id)

        query = query.order_by(CashMovement.created_at.desc(), CashMovement.id.desc())
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        rows = query.all()
        return [
            CashMovementHistoryItem(
                id=movement.id,
                shift_id=movement.shift_id,
                branch_id=shift.branch_id,
                register_id=shift.register_id,
                type=movement.type,
                amount=movement.amount,
                reason=movement.reason,
                notes=movement.notes,
                reversed=movement.is_reversed,
                created_at=movement.created_at,
                created_by=movement.created_by,
            )
            for movement, shift in rows
        ]

    def sales_by_tender(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        branch_id: Optional[str] = None
    ) -> List[PaymentMethodBreakdown]:
        query = self.db.query(Sale)
        if start is not None:
            query = query.filter(Sale.created_at >= start)
        if end is not None:
            query = query.filter(Sale.created_at <= end)
        if branch_id:
            query = query.filter(Sale.branch_id == branch_id)
        return self._payment_breakdown(query.order_by(Sale.created_at, Sale.id).all())
