"""
Tests for shift reporting.
"""

import pytest
from decimal import Decimal

from posledger.common.exceptions import NotFoundError
from posledger.modules.events.models import CashMovementType, PaymentKind
from posledger.modules.payments.schemas import CashTender, CardTender
from posledger.modules.reports.service import ReportingFacade
from posledger.modules.sales.schemas import SaleItem
from posledger.modules.sales.service import CheckoutService
from posledger.modules.shifts.models import ShiftStatus
from posledger.modules.shifts.service import ShiftManager


def _items(price):
    return [SaleItem(product_id="SERV-1", quantity=Decimal("1"), unit_price=Decimal(price))]


@pytest.fixture
def manager(db, clock):
    return ShiftManager(db, clock)


@pytest.fixture
def busy_shift(db, clock, manager):
    """Cash, card and credit sales, two cash movements (one reversed) and a credit payment."""
    shift = manager.open_shift("SUC-1", "CAJA-1", initial_cash=Decimal("1000"))
    checkout = CheckoutService(db, clock)

    checkout.checkout("SUC-1", "CAJA-1", _items("150"), CashTender())
    checkout.checkout("SUC-1", "CAJA-1", _items("100"), CardTender())
    result = checkout.checkout(
        "SUC-1", "CAJA-1", _items("300"), CashTender(amount_received=Decimal("100")),
        client_id="C-1", credit_limit=Decimal("500"),
    )

    manager.record_cash_movement(shift.id, CashMovementType.ENTRADA, Decimal("50"), "Cambio")
    mistake = manager.record_cash_movement(shift.id, CashMovementType.SALIDA, Decimal("20"), "Error")
    manager.delete_cash_movement(mistake.id)
    manager.record_credit_payment(shift.id, result.credit.id, Decimal("80"))
    return shift


class TestShiftSummary:

    def test_summary_of_open_shift(self, db, busy_shift):
        summary = ReportingFacade(db).shift_summary(busy_shift.id)

        assert summary.totals.cash == Decimal("250")
        assert summary.totals.card == Decimal("100")
        assert summary.statistics.sales_count == 3
        assert summary.statistics.total_amount == Decimal("550")
        assert summary.statistics.average_ticket == Decimal("183.33")
        assert summary.expected_cash == Decimal("1380")
        assert summary.difference is None

    def test_payment_breakdown(self, db, busy_shift):
        breakdown = ReportingFacade(db).shift_summary(busy_shift.id).payment_methods

        assert [row.kind for row in breakdown] == [PaymentKind.CASH, PaymentKind.CARD]
        cash = breakdown[0]
        assert cash.count == 2
        assert cash.total == Decimal("450")
        assert cash.cash == Decimal("250")
        assert cash.credit == Decimal("200")

    def test_reversed_movements_are_excluded(self, db, busy_shift):
        movements = ReportingFacade(db).shift_summary(busy_shift.id).cash_movements

        assert movements.entradas == Decimal("50")
        assert movements.salidas == Decimal("0")
        assert movements.net == Decimal("50")
        assert movements.count == 1
        assert movements.reversed_count == 1

    def test_credit_activity(self, db, busy_shift):
        credits = ReportingFacade(db).shift_summary(busy_shift.id).credits

        assert credits.issued_total == Decimal("200")
        assert credits.issued_count == 1
        assert credits.payments_cash == Decimal("80")
        assert credits.payments_total == Decimal("80")

    def test_closed_shift_uses_frozen_figures(self, db, manager, busy_shift):
        manager.close_shift(busy_shift.id, Decimal("1375"))

        summary = ReportingFacade(db).shift_summary(busy_shift.id)

        assert summary.shift.status == ShiftStatus.CLOSED
        assert summary.expected_cash == Decimal("1380")
        assert summary.final_cash == Decimal("1375")
        assert summary.difference == Decimal("-5")

    def test_unknown_shift(self, db):
        with pytest.raises(NotFoundError):
            ReportingFacade(db).shift_summary(999)


class TestListings:

    def test_list_shifts_newest_first(self, db, manager):
        first = manager.open_shift("SUC-1", "CAJA-1")
        manager.close_shift(first.id, Decimal("0"))
        second = manager.open_shift("SUC-1", "CAJA-1")
        other = manager.open_shift("SUC-2", "CAJA-1")

        reports = ReportingFacade(db)

        assert [s.id for s in reports.list_shifts()] == [other.id, second.id, first.id]
        assert [s.id for s in reports.list_shifts(branch_id="SUC-1")] == [second.id, first.id]
        assert [s.id for s in reports.list_shifts(status=ShiftStatus.CLOSED)] == [first.id]
        assert [s.id for s in reports.list_shifts(limit=1, offset=1)] == [second.id]

    def test_cash_movements_history_flags_reversals(self, db, busy_shift):
        history = ReportingFacade(db).cash_movements_history(register_id="CAJA-1")

        assert [(m.type, m.reversed) for m in history] == [
            (CashMovementType.SALIDA, True),
            (CashMovementType.ENTRADA, False),
        ]
        assert ReportingFacade(db).cash_movements_history(register_id="CAJA-9") == []

    def test_sales_by_tender(self, db, busy_shift):
        rows = ReportingFacade(db).sales_by_tender(branch_id="SUC-1")

        assert {row.kind: row.total for row in rows} == {
            PaymentKind.CASH: Decimal("450"),
            PaymentKind.CARD: Decimal("100"),
        }


class TestReportEndpoints:

    def test_summary_endpoint(self, client, busy_shift):
        response = client.get(f"/api/v1/reports/shifts/{busy_shift.id}/summary")

        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["expected_cash"]) == Decimal("1380")
        assert body["cash_movements"]["reversed_count"] == 1

    def test_summary_of_unknown_shift(self, client):
        response = client.get("/api/v1/reports/shifts/999/summary")

        assert response.status_code == 404

    def test_list_shifts_endpoint(self, client, busy_shift):
        response = client.get("/api/v1/reports/shifts", params={"status": "OPEN"})

        assert response.status_code == 200
        assert [s["id"] for s in response.json()] == [busy_shift.id]
