"""
Tests for the inventory movement ledger (Kardex).
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import text

from posledger.common.clock import FixedClock
from posledger.common.exceptions import ValidationError, NotFoundError
from posledger.modules.events.models import InventoryMovementType, TransferDirection
from posledger.modules.inventory.service import InventoryLedger


START = datetime(2024, 2, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def ledger(db, clock):
    return InventoryLedger(db, clock, transfer_direction=TransferDirection.IN, clamp_on_persist=False)


@pytest.fixture
def product(ledger):
    return ledger.register_product("P-1", product_name="Cuaderno", min_stock=Decimal("2"), initial_stock=Decimal("10"))


class TestMovements:

    def test_stock_follows_the_log(self, ledger, product):
        ledger.apply_movement("P-1", InventoryMovementType.SALIDA, Decimal("3"))
        assert ledger.raw_stock("P-1") == Decimal("7")

        ledger.apply_movement("P-1", InventoryMovementType.AJUSTE, Decimal("20"))
        assert ledger.raw_stock("P-1") == Decimal("20")

        ledger.apply_movement("P-1", InventoryMovementType.SALIDA, Decimal("25"))
        assert ledger.raw_stock("P-1") == Decimal("-5")
        assert ledger.current_stock("P-1") == Decimal("0")

    def test_snapshot_matches_fold(self, ledger, product):
        ledger.apply_movement("P-1", InventoryMovementType.ENTRADA, Decimal("4.5"))
        ledger.apply_movement("P-1", InventoryMovementType.SALIDA, Decimal("1.25"))

        item = ledger.get_item("P-1")
        assert item.raw_stock == Decimal("13.25")
        assert ledger.verify_snapshot("P-1") is True

    def test_initial_stock_is_an_adjustment(self, ledger, product):
        movements = ledger.list_movements("P-1")

        assert len(movements) == 1
        assert movements[0].type == InventoryMovementType.AJUSTE
        assert movements[0].reason == "Initial stock"

    def test_transfer_uses_configured_direction(self, db, clock, product):
        inbound = InventoryLedger(db, clock, transfer_direction=TransferDirection.IN)
        inbound.apply_movement("P-1", InventoryMovementType.TRANSFERENCIA, Decimal("5"))
        assert inbound.raw_stock("P-1") == Decimal("15")

        outbound = InventoryLedger(db, clock, transfer_direction=TransferDirection.OUT)
        movement = outbound.apply_movement("P-1", InventoryMovementType.TRANSFERENCIA, Decimal("2"))
        assert movement.transfer_direction == TransferDirection.OUT

        # direction is stored on each movement
        assert inbound.raw_stock("P-1") == Decimal("13")

    def test_explicit_transfer_direction(self, ledger, product):
        ledger.apply_movement(
            "P-1", InventoryMovementType.TRANSFERENCIA, Decimal("4"), transfer_direction=TransferDirection.OUT
        )

        assert ledger.raw_stock("P-1") == Decimal("6")

    def test_clamp_on_persist(self, db, clock, product):
        ledger = InventoryLedger(db, clock, clamp_on_persist=True)

        ledger.apply_movement("P-1", InventoryMovementType.SALIDA, Decimal("15"))
        ledger.apply_movement("P-1", InventoryMovementType.ENTRADA, Decimal("3"))

        assert ledger.raw_stock("P-1") == Decimal("3")
        assert ledger.get_item("P-1").raw_stock == Decimal("3")

    def test_zero_adjustment_allowed(self, ledger, product):
        ledger.set_stock("P-1", Decimal("0"))

        assert ledger.raw_stock("P-1") == Decimal("0")

    @pytest.mark.parametrize("type,quantity", [
        (InventoryMovementType.ENTRADA, Decimal("0")),
        (InventoryMovementType.SALIDA, Decimal("-1")),
        (InventoryMovementType.AJUSTE, Decimal("-1")),
        ("DEVOLUCION", Decimal("1")),
    ])
    def test_invalid_movements(self, ledger, product, type, quantity):
        with pytest.raises(ValidationError):
            ledger.apply_movement("P-1", type, quantity)

    def test_unknown_product(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.apply_movement("NOPE", InventoryMovementType.ENTRADA, Decimal("1"))

    def test_stock_as_of(self, ledger, product):
        first = ledger.apply_movement("P-1", InventoryMovementType.SALIDA, Decimal("3"))
        ledger.apply_movement("P-1", InventoryMovementType.ENTRADA, Decimal("30"))

        assert ledger.stock_as_of(first.id, "P-1") == Decimal("7")

    def test_lagging_terminal_clock_replays_last(self, db):
        ahead = InventoryLedger(db, FixedClock(start=START + timedelta(minutes=5)), clamp_on_persist=False)
        behind = InventoryLedger(db, FixedClock(start=START), clamp_on_persist=False)

        ahead.register_product("P-1", initial_stock=Decimal("10"))
        ahead.apply_movement("P-1", InventoryMovementType.SALIDA, Decimal("3"))
        adjustment = behind.apply_movement("P-1", InventoryMovementType.AJUSTE, Decimal("20"))

        assert behind.verify_snapshot("P-1") is True
        assert behind.raw_stock("P-1") == Decimal("20")
        assert behind.kardex("P-1")[-1].movement_id == adjustment.id


class TestKardex:

    @pytest.fixture
    def timed(self, db):
        clock = FixedClock(start=START, tick=timedelta(hours=1))
        ledger = InventoryLedger(db, clock, transfer_direction=TransferDirection.IN, clamp_on_persist=False)
        ledger.register_product("P-1", initial_stock=Decimal("10"))                  # 09:00
        ledger.apply_movement("P-1", InventoryMovementType.SALIDA, Decimal("3"))     # 10:00
        ledger.apply_movement("P-1", InventoryMovementType.AJUSTE, Decimal("20"))    # 11:00
        ledger.apply_movement("P-1", InventoryMovementType.SALIDA, Decimal("25"))    # 12:00
        return ledger

    def test_running_balances(self, timed):
        entries = timed.kardex("P-1")

        assert [e.balance_after for e in entries] == [Decimal("10"), Decimal("7"), Decimal("20"), Decimal("-5")]
        assert [e.balance_before for e in entries] == [Decimal("0"), Decimal("10"), Decimal("7"), Decimal("20")]
        assert entries[-1].displayed_balance == Decimal("0")

    def test_window_keeps_balances_from_origin(self, timed):
        entries = timed.kardex("P-1", start=START + timedelta(hours=2))

        assert [e.type for e in entries] == [InventoryMovementType.AJUSTE, InventoryMovementType.SALIDA]
        assert entries[0].balance_before == Decimal("7")
        assert entries[1].balance_after == Decimal("-5")

    def test_filter_by_type(self, timed):
        entries = timed.kardex("P-1", type=InventoryMovementType.SALIDA)

        assert [e.balance_after for e in entries] == [Decimal("7"), Decimal("-5")]

    def test_limit_keeps_most_recent(self, timed):
        entries = timed.kardex("P-1", limit=2)

        assert [e.balance_after for e in entries] == [Decimal("20"), Decimal("-5")]


class TestLowStockAndSnapshot:

    def test_low_stock(self, ledger, product):
        ledger.register_product("P-2", min_stock=Decimal("5"), initial_stock=Decimal("3"), track_inventory=False)
        ledger.apply_movement("P-1", InventoryMovementType.SALIDA, Decimal("8"))

        assert ledger.is_low_stock("P-1") is True
        assert ledger.is_low_stock("P-2") is False
        assert [i.product_id for i in ledger.low_stock_items()] == ["P-1"]

    def test_rebuild_after_tampering(self, db, ledger, product):
        db.execute(text("UPDATE inventory_items SET raw_stock = 99 WHERE product_id = 'P-1'"))
        db.commit()

        assert ledger.verify_snapshot("P-1") is False
        assert ledger.rebuild_snapshot("P-1") == Decimal("10")
        assert ledger.verify_snapshot("P-1") is True


class TestInventoryEndpoints:

    def test_register_move_and_read(self, client):
        response = client.put("/api/v1/inventory/products/P-9", json={
            "product_name": "Lápiz", "min_stock": "1", "initial_stock": "10"
        })
        assert response.status_code == 200

        response = client.post("/api/v1/inventory/products/P-9/movements", json={
            "type": "SALIDA", "quantity": "25"
        })
        assert response.status_code == 201

        body = client.get("/api/v1/inventory/products/P-9/stock").json()
        assert Decimal(body["raw_stock"]) == Decimal("-15")
        assert Decimal(body["current_stock"]) == Decimal("0")
        assert body["is_low_stock"] is True

        kardex = client.get("/api/v1/inventory/products/P-9/kardex").json()
        assert len(kardex["entries"]) == 2
        assert Decimal(kardex["entries"][-1]["displayed_balance"]) == Decimal("0")

    def test_unknown_product_returns_404(self, client):
        response = client.get("/api/v1/inventory/products/NOPE/kardex")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_invalid_movement_returns_400(self, client):
        client.put("/api/v1/inventory/products/P-9", json={})

        response = client.post("/api/v1/inventory/products/P-9/movements", json={
            "type": "ENTRADA", "quantity": "0"
        })

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
