"""
Tests para el módulo de turnos de caja

Tests que cubren:
- Apertura con un solo turno abierto por caja y numeración de turnos
- Acumulación de ventas por tender, movimientos de caja y abonos a crédito
- Arqueo al cierre (sobrante y faltante) y cierre único
- Cancelación de turnos sin ventas
- Anulación de movimientos de caja mediante reversión
- Recálculo y verificación de totales desde los eventos
- Endpoints HTTP y mapeo de errores
"""

import pytest
from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from posledger.common.exceptions import ValidationError, ConflictError, NotFoundError
from posledger.modules.credits.models import CreditStatus
from posledger.modules.events.models import (
    CashMovementType, CreditPaymentMethod, Sale, SaleLine, ShiftSnapshot, ShiftSnapshotKind
)
from posledger.modules.payments.allocator import PaymentAllocator
from posledger.modules.payments.schemas import (
    CashTender, CardTender, GiftTender, MixedTender, TransferTender, CreditAccount
)
from posledger.modules.shifts.models import CashRegisterShift, ShiftStatus
from posledger.modules.shifts.service import ShiftManager


# ===== FIXTURES =====

@pytest.fixture
def manager(db, clock):
    return ShiftManager(db, clock)


@pytest.fixture
def shift(manager):
    """Turno abierto con $1000 de fondo"""
    return manager.open_shift("SUC-1", "CAJA-1", cashier_name="Ana", initial_cash=Decimal("1000"))


def make_sale(subtotal, tender, deposit="0", credit_account=None):
    allocation = PaymentAllocator().allocate(Decimal(subtotal), tender, Decimal(deposit), credit_account)
    line = SaleLine(
        product_id="P-1",
        product_name="Refresco",
        quantity=Decimal("1"),
        unit_price=allocation.subtotal,
        subtotal=allocation.subtotal,
    )
    return Sale.from_allocation(allocation, lines=[line])


# ===== APERTURA =====

class TestOpenShift:
    """Tests de apertura de turno"""

    def test_open_shift(self, shift):
        assert shift.status == ShiftStatus.OPEN
        assert shift.shift_number == 1
        assert shift.initial_cash == Decimal("1000")
        assert shift.total_cash == Decimal("0")
        assert shift.sales_count == 0

    def test_second_open_on_same_register_conflicts(self, manager, shift):
        with pytest.raises(ConflictError):
            manager.open_shift("SUC-1", "CAJA-1", initial_cash=Decimal("0"))

    def test_other_register_can_open(self, manager, shift):
        other = manager.open_shift("SUC-1", "CAJA-2")

        assert other.status == ShiftStatus.OPEN
        assert other.shift_number == 1

    def test_shift_numbers_are_not_reused(self, manager, shift):
        manager.close_shift(shift.id, Decimal("1000"))
        second = manager.open_shift("SUC-1", "CAJA-1")

        assert second.shift_number == 2

    def test_negative_initial_cash_rejected(self, manager):
        with pytest.raises(ValidationError):
            manager.open_shift("SUC-1", "CAJA-1", initial_cash=Decimal("-1"))

    def test_blank_register_rejected(self, manager):
        with pytest.raises(ValidationError):
            manager.open_shift("SUC-1", "  ")

    def test_database_rejects_second_open_row(self, db, clock, shift):
        """El índice parcial impide dos turnos OPEN aunque se salte la validación"""
        db.add(CashRegisterShift(
            branch_id="SUC-1",
            register_id="CAJA-1",
            shift_number=99,
            status=ShiftStatus.OPEN,
            start_time=clock.now(),
        ))
        with pytest.raises(IntegrityError):
            db.flush()
        db.rollback()

    def test_open_appends_snapshot(self, db, shift):
        snapshot = db.query(ShiftSnapshot).filter(ShiftSnapshot.shift_id == shift.id).one()

        assert snapshot.kind == ShiftSnapshotKind.OPENED
        assert snapshot.payload["initial_cash"] == "1000.00"

    def test_get_active_shift(self, manager, shift):
        assert manager.get_active_shift("SUC-1", "CAJA-1").id == shift.id
        assert manager.get_active_shift("SUC-1", "CAJA-9") is None


# ===== EVENTOS DEL TURNO =====

class TestShiftEvents:
    """Tests de ventas, movimientos de caja y abonos"""

    def test_cash_sale_goes_to_cash_bucket_net_of_change(self, manager, shift):
        manager.record_sale(shift.id, make_sale("150", CashTender(amount_received=Decimal("200"))))

        shift = manager.get_shift(shift.id)
        assert shift.total_cash == Decimal("150")
        assert shift.sales_count == 1
        assert shift.sales_amount == Decimal("150")

    def test_tender_buckets(self, manager, shift):
        manager.record_sale(shift.id, make_sale("100", CardTender()))
        manager.record_sale(shift.id, make_sale("40", TransferTender()))
        manager.record_sale(shift.id, make_sale("25", GiftTender()))
        manager.record_sale(shift.id, make_sale("80", MixedTender(
            cash_amount=Decimal("30"), card_amount=Decimal("70")
        ), deposit="20"))

        shift = manager.get_shift(shift.id)
        assert shift.total_card == Decimal("170")
        assert shift.total_transfer == Decimal("40")
        assert shift.total_other == Decimal("25")
        assert shift.total_cash == Decimal("30")
        assert shift.sales_count == 4
        assert shift.sales_amount == Decimal("265")

    def test_sale_gets_folio(self, manager, shift):
        sale = manager.record_sale(shift.id, make_sale("10", CashTender()))

        assert sale.folio == "1-00001"
        assert sale.branch_id == "SUC-1"

    def test_sale_on_unknown_shift(self, manager):
        with pytest.raises(NotFoundError):
            manager.record_sale(999, make_sale("10", CashTender()))

    def test_cash_movements_are_signed(self, manager, shift):
        manager.record_cash_movement(shift.id, CashMovementType.ENTRADA, Decimal("200"), "Fondo extra")
        manager.record_cash_movement(shift.id, CashMovementType.SALIDA, Decimal("50"), "Pago proveedor")

        assert manager.get_shift(shift.id).total_cash_movements == Decimal("150")

    def test_cash_movement_may_leave_negative_balance(self, manager, shift):
        manager.record_cash_movement(shift.id, "SALIDA", Decimal("5000"), "Retiro a banco")

        assert manager.get_shift(shift.id).total_cash_movements == Decimal("-5000")

    @pytest.mark.parametrize("amount,reason", [
        (Decimal("0"), "Cambio"),
        (Decimal("-10"), "Cambio"),
        (Decimal("10"), "   "),
    ])
    def test_cash_movement_validation(self, manager, shift, amount, reason):
        with pytest.raises(ValidationError):
            manager.record_cash_movement(shift.id, CashMovementType.ENTRADA, amount, reason)

    def test_cash_movement_on_closed_shift(self, manager, shift):
        manager.close_shift(shift.id, Decimal("1000"))

        with pytest.raises(NotFoundError):
            manager.record_cash_movement(shift.id, CashMovementType.ENTRADA, Decimal("10"), "Cambio")

    def test_credit_payment_goes_to_method_bucket(self, manager, shift):
        credit = manager.credits.issue("C-1", Decimal("300"), source_sale_id=1)

        manager.record_credit_payment(shift.id, credit.id, Decimal("100"))
        manager.record_credit_payment(shift.id, credit.id, Decimal("50"), payment_method=CreditPaymentMethod.CARD)

        shift = manager.get_shift(shift.id)
        assert shift.total_credit_payments_cash == Decimal("100")
        assert shift.total_credit_payments_card == Decimal("50")
        assert shift.sales_amount == Decimal("0")
        assert manager.credits.get_credit(credit.id).status == CreditStatus.PARTIALLY_PAID

    def test_rejected_credit_payment_leaves_shift_untouched(self, manager, shift):
        credit = manager.credits.issue("C-1", Decimal("100"), source_sale_id=1)

        with pytest.raises(ValidationError):
            manager.record_credit_payment(shift.id, credit.id, Decimal("150"))

        assert manager.get_shift(shift.id).total_credit_payments_cash == Decimal("0")
        assert manager.credits.get_credit(credit.id).remaining_amount == Decimal("100")


# ===== ANULACIÓN DE MOVIMIENTOS =====

class TestDeleteCashMovement:
    """Tests de anulación de movimientos de caja"""

    def test_reversal_compensates_total(self, manager, shift):
        movement = manager.record_cash_movement(shift.id, CashMovementType.SALIDA, Decimal("80"), "Gasto")

        manager.delete_cash_movement(movement.id, reason="Capturado por error")

        assert manager.get_shift(shift.id).total_cash_movements == Decimal("0")
        assert manager.list_cash_movements(shift.id) == []
        assert len(manager.list_cash_movements(shift.id, include_reversed=True)) == 1

    def test_double_delete_conflicts(self, manager, shift):
        movement = manager.record_cash_movement(shift.id, CashMovementType.ENTRADA, Decimal("80"), "Cambio")
        manager.delete_cash_movement(movement.id)

        with pytest.raises(ConflictError):
            manager.delete_cash_movement(movement.id)

    def test_delete_after_close_conflicts(self, manager, shift):
        movement = manager.record_cash_movement(shift.id, CashMovementType.ENTRADA, Decimal("80"), "Cambio")
        manager.close_shift(shift.id, Decimal("1080"))

        with pytest.raises(ConflictError):
            manager.delete_cash_movement(movement.id)

    def test_delete_unknown_movement(self, manager):
        with pytest.raises(NotFoundError):
            manager.delete_cash_movement(12345)


# ===== CIERRE =====

class TestCloseShift:
    """Tests de arqueo y cierre"""

    def test_reconciliation_scenario(self, manager, shift):
        """Fondo 1000, venta en efectivo 150, salida 50, contado 1095"""
        manager.record_sale(shift.id, make_sale("150", CashTender()))
        manager.record_cash_movement(shift.id, CashMovementType.SALIDA, Decimal("50"), "Retiro")

        closed = manager.close_shift(shift.id, Decimal("1095"), closed_by="supervisor")

        assert closed.status == ShiftStatus.CLOSED
        assert closed.expected_cash == Decimal("1100")
        assert closed.difference == Decimal("-5")
        assert closed.end_time is not None

    def test_surplus_is_positive(self, manager, shift):
        closed = manager.close_shift(shift.id, Decimal("1012.50"))

        assert closed.difference == Decimal("12.50")

    def test_credit_payments_and_credit_sales_in_expected_cash(self, manager, shift):
        account = CreditAccount(client_id="C-1", credit_limit=Decimal("500"))
        manager.record_sale(shift.id, make_sale(
            "300", CashTender(amount_received=Decimal("100")), credit_account=account
        ))
        credit = manager.credits.issue("C-2", Decimal("80"), source_sale_id=77)
        manager.record_credit_payment(shift.id, credit.id, Decimal("80"))

        assert manager.expected_cash(manager.get_shift(shift.id)) == Decimal("1180")
        assert manager.get_shift(shift.id).total_credits_issued == Decimal("200")

    def test_close_twice_conflicts(self, manager, shift):
        manager.close_shift(shift.id, Decimal("1000"))

        with pytest.raises(ConflictError):
            manager.close_shift(shift.id, Decimal("1000"))

    def test_close_unknown_shift(self, manager):
        with pytest.raises(NotFoundError):
            manager.close_shift(999, Decimal("0"))

    def test_negative_final_cash_rejected(self, manager, shift):
        with pytest.raises(ValidationError):
            manager.close_shift(shift.id, Decimal("-1"))

    def test_close_appends_snapshot(self, db, manager, shift):
        manager.close_shift(shift.id, Decimal("990"))

        snapshot = db.query(ShiftSnapshot).filter(
            ShiftSnapshot.shift_id == shift.id,
            ShiftSnapshot.kind == ShiftSnapshotKind.CLOSED
        ).one()
        assert snapshot.payload["difference"] == "-10.00"
        assert snapshot.payload["status"] == "CLOSED"

    def test_reconcile_is_pure(self, manager, shift):
        shift = manager.get_shift(shift.id)

        assert manager.reconcile(shift, Decimal("1000")) == manager.reconcile(shift, Decimal("1000"))
        assert manager.get_shift(shift.id).status == ShiftStatus.OPEN


# ===== CANCELACIÓN =====

class TestCancelShift:
    """Tests de cancelación"""

    def test_cancel_without_sales(self, manager, shift):
        cancelled = manager.cancel_shift(shift.id, notes="Apertura por error")

        assert cancelled.status == ShiftStatus.CANCELLED
        assert cancelled.expected_cash == Decimal("1000")
        assert manager.get_active_shift("SUC-1", "CAJA-1") is None

    def test_cancel_with_sales_conflicts(self, manager, shift):
        manager.record_sale(shift.id, make_sale("10", CashTender()))

        with pytest.raises(ConflictError):
            manager.cancel_shift(shift.id)

    def test_cancel_closed_shift_conflicts(self, manager, shift):
        manager.close_shift(shift.id, Decimal("1000"))

        with pytest.raises(ConflictError):
            manager.cancel_shift(shift.id)


# ===== AUDITORÍA =====

class TestVerifyShift:
    """Tests de recálculo desde eventos"""

    def test_recompute_matches_running_totals(self, manager, shift):
        manager.record_sale(shift.id, make_sale("150", CashTender()))
        movement = manager.record_cash_movement(shift.id, CashMovementType.ENTRADA, Decimal("20"), "Cambio")
        manager.record_cash_movement(shift.id, CashMovementType.SALIDA, Decimal("5"), "Garrafón")
        manager.delete_cash_movement(movement.id)

        totals = manager.recompute_totals(shift.id)

        assert totals.total_cash == Decimal("150")
        assert totals.total_cash_movements == Decimal("-5")
        assert totals.sales_count == 1
        assert manager.verify_shift(shift.id) == []

    def test_verify_detects_tampering(self, db, manager, shift):
        manager.record_sale(shift.id, make_sale("150", CashTender()))
        db.execute(text("UPDATE cash_register_shifts SET total_cash = 0 WHERE id = :id"), {"id": shift.id})
        db.commit()

        assert manager.verify_shift(shift.id) == ["total_cash"]


# ===== HTTP =====

class TestShiftEndpoints:
    """Tests de endpoints y mapeo de errores"""

    def test_open_and_close_over_http(self, client):
        response = client.post("/api/v1/shifts", json={
            "branch_id": "SUC-1", "register_id": "CAJA-1", "initial_cash": "1000"
        })
        assert response.status_code == 201
        shift_id = response.json()["id"]

        response = client.post(f"/api/v1/shifts/{shift_id}/cash-movements", json={
            "type": "SALIDA", "amount": "50", "reason": "Retiro"
        })
        assert response.status_code == 201

        response = client.post(f"/api/v1/shifts/{shift_id}/close", json={"final_cash": "950"})
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "CLOSED"
        assert Decimal(body["expected_cash"]) == Decimal("950")
        assert Decimal(body["difference"]) == Decimal("0")

    def test_second_open_returns_409(self, client):
        payload = {"branch_id": "SUC-1", "register_id": "CAJA-1"}
        client.post("/api/v1/shifts", json=payload)

        response = client.post("/api/v1/shifts", json=payload)

        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"

    def test_unknown_shift_returns_404(self, client):
        response = client.get("/api/v1/shifts/999")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_active_shift_lookup(self, client):
        client.post("/api/v1/shifts", json={"branch_id": "SUC-1", "register_id": "CAJA-1"})

        response = client.get("/api/v1/shifts/active", params={"branch_id": "SUC-1", "register_id": "CAJA-1"})

        assert response.status_code == 200
        assert response.json()["register_id"] == "CAJA-1"

    def test_delete_movement_over_http(self, client):
        shift_id = client.post("/api/v1/shifts", json={"branch_id": "S", "register_id": "C"}).json()["id"]
        movement_id = client.post(f"/api/v1/shifts/{shift_id}/cash-movements", json={
            "type": "ENTRADA", "amount": "30", "reason": "Cambio"
        }).json()["id"]

        response = client.post(f"/api/v1/shifts/cash-movements/{movement_id}/delete", json={})
        assert response.status_code == 200

        response = client.post(f"/api/v1/shifts/cash-movements/{movement_id}/delete", json={})
        assert response.status_code == 409
