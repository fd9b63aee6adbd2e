"""
Tests para el EventStore y la inmutabilidad de los eventos

Cubre:
- Asignación de created_at desde el reloj inyectado
- Orden de reproducción (created_at, id), incluido el desempate por id
- Rechazo de UPDATE/DELETE sobre eventos, turnos cerrados y créditos
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from posledger.common.clock import FixedClock
from posledger.common.exceptions import ImmutableRecordError
from posledger.modules.credits.service import CreditLedger
from posledger.modules.events.models import CashMovement, CashMovementType, ShiftSnapshot, ShiftSnapshotKind
from posledger.modules.events.store import EventStore
from posledger.modules.shifts.models import CashRegisterShift
from posledger.modules.shifts.service import ShiftManager


# ===== FIXTURES =====

@pytest.fixture
def shift(db, clock):
    return ShiftManager(db, clock).open_shift("SUC-1", "CAJA-1", initial_cash=Decimal("500"))


def _movement(shift_id, amount="10", reason="Cambio"):
    return CashMovement(shift_id=shift_id, type=CashMovementType.ENTRADA, amount=Decimal(amount), reason=reason)


# ===== TESTS =====

class TestEventStore:
    """Tests de append y lectura ordenada"""

    def test_append_assigns_id_and_created_at(self, db, clock, shift):
        store = EventStore(db, clock)

        event = store.append(_movement(shift.id), created_by="cajero")

        assert event.id is not None
        assert event.created_at is not None
        assert event.created_by == "cajero"

    def test_append_rejects_already_persisted_event(self, db, clock, shift):
        store = EventStore(db, clock)
        event = store.append(_movement(shift.id))

        with pytest.raises(ValueError):
            store.append(event)

    def test_append_rejects_non_event(self, db, clock, shift):
        with pytest.raises(TypeError):
            EventStore(db, clock).append(shift)

    def test_list_orders_by_created_at_before_id(self, db, shift):
        clock = FixedClock(start=datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))
        store = EventStore(db, clock)

        late = store.append(_movement(shift.id, reason="tarde"))
        clock.set(datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc))
        early = store.append(_movement(shift.id, reason="temprano"))
        db.commit()

        ordered = store.list_for(CashMovement, shift_id=shift.id)

        assert [m.id for m in ordered] == [early.id, late.id]

    def test_equal_timestamps_fall_back_to_id(self, db, shift):
        store = EventStore(db, FixedClock(tick=timedelta(0)))

        ids = [store.append(_movement(shift.id, reason=f"m{i}")).id for i in range(3)]
        db.commit()

        assert [m.id for m in store.list_for(CashMovement, shift_id=shift.id)] == ids

    def test_list_between_bounds_are_inclusive(self, db, shift):
        start = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        clock = FixedClock(start=start, tick=timedelta(minutes=1))
        store = EventStore(db, clock)
        events = [store.append(_movement(shift.id, reason=f"m{i}")) for i in range(4)]
        db.commit()

        found = store.list_between(
            CashMovement,
            start + timedelta(minutes=1),
            start + timedelta(minutes=2),
            shift_id=shift.id
        )

        assert [m.id for m in found] == [events[1].id, events[2].id]


class TestImmutability:
    """Tests de los listeners de inmutabilidad"""

    def test_event_update_is_rejected(self, db, clock, shift):
        movement = EventStore(db, clock).append(_movement(shift.id))
        db.commit()

        movement.amount = Decimal("999")
        with pytest.raises(ImmutableRecordError):
            db.flush()
        db.rollback()

        assert db.get(CashMovement, movement.id).amount == Decimal("10")

    def test_event_delete_is_rejected(self, db, clock, shift):
        movement = EventStore(db, clock).append(_movement(shift.id))
        db.commit()

        db.delete(movement)
        with pytest.raises(ImmutableRecordError):
            db.flush()
        db.rollback()

    def test_snapshot_is_immutable(self, db, shift):
        snapshot = db.query(ShiftSnapshot).filter(ShiftSnapshot.shift_id == shift.id).one()
        assert snapshot.kind == ShiftSnapshotKind.OPENED

        snapshot.payload = {"total_cash": "0"}
        with pytest.raises(ImmutableRecordError):
            db.flush()
        db.rollback()

    def test_open_shift_can_be_updated(self, db, shift):
        shift.cashier_name = "Ana"
        db.commit()

        assert db.get(CashRegisterShift, shift.id).cashier_name == "Ana"

    def test_closed_shift_is_frozen(self, db, clock, shift):
        ShiftManager(db, clock).close_shift(shift.id, Decimal("500"))

        shift = db.get(CashRegisterShift, shift.id)
        shift.final_cash = Decimal("1")
        with pytest.raises(ImmutableRecordError):
            db.flush()
        db.rollback()

    def test_shift_delete_is_rejected(self, db, shift):
        db.delete(shift)
        with pytest.raises(ImmutableRecordError):
            db.flush()
        db.rollback()

    def test_credit_amount_fields_are_protected(self, db, clock, shift):
        credit = CreditLedger(db, clock).issue("C-1", Decimal("100"), source_sale_id=1, shift_id=shift.id)

        credit.original_amount = Decimal("1")
        with pytest.raises(ImmutableRecordError):
            db.flush()
        db.rollback()
