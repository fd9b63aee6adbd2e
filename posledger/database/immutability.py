"""
ORM-level immutability for the ledger.

SQLAlchemy fires ``before_update`` / ``before_delete`` mapper events during
flush, before any SQL reaches the database. The listeners below reject:

    Entity                 | Rule
    -----------------------|----------------------------------------------
    ledger events          | never updated, never deleted
    CashRegisterShift      | frozen once it left OPEN; never deleted
    ClientCredit           | only paid/remaining/status/paid_at change;
                           | never deleted

Raising ``ImmutableRecordError`` aborts the flush; the caller rolls back.

Call once at startup, after models are imported:

    from posledger.database.immutability import register_immutability_listeners
    register_immutability_listeners()
"""

import logging

from sqlalchemy import event, inspect, select
from sqlalchemy.orm import object_session

from posledger.common.exceptions import ImmutableRecordError

logger = logging.getLogger(__name__)


def _changed_columns(target):
    """Column attributes with pending changes (relationship changes are ignored)."""
    state = inspect(target)
    changed = []
    for column_attr in state.mapper.column_attrs:
        if state.attrs[column_attr.key].history.has_changes():
            changed.append(column_attr.key)
    return changed


def _has_net_changes(target) -> bool:
    # before_update also fires for dirty instances without column changes
    session = object_session(target)
    if session is not None and not session.is_modified(target, include_collections=False):
        return False
    return bool(_changed_columns(target))


def _reject(entity: str, target, action: str, field: str = None):
    logger.error(
        f"Bloqueado intento de {action} {entity} {target.id}"
        + (f" (campo {field})" if field else "")
    )
    raise ImmutableRecordError(entity, target.id, action=action)


# ===== EVENTOS =====

def _check_event_update(mapper, connection, target):
    if _has_net_changes(target):
        changed = _changed_columns(target)
        _reject(type(target).__name__, target, "modificar", changed[0] if changed else None)


def _check_event_delete(mapper, connection, target):
    _reject(type(target).__name__, target, "eliminar")


# ===== TURNOS =====

def _check_shift_update(mapper, connection, target):
    """A shift can transition OPEN -> CLOSED/CANCELLED once; afterwards it is frozen."""
    from posledger.modules.shifts.models import CashRegisterShift, TERMINAL_STATUSES

    if not _has_net_changes(target):
        return

    table = CashRegisterShift.__table__
    persisted_status = connection.execute(
        select(table.c.status).where(table.c.id == target.id)
    ).scalar_one_or_none()

    if persisted_status in TERMINAL_STATUSES:
        _reject("CashRegisterShift", target, "modificar", _changed_columns(target)[0])


def _check_shift_delete(mapper, connection, target):
    _reject("CashRegisterShift", target, "eliminar")


# ===== CRÉDITOS =====

def _check_credit_update(mapper, connection, target):
    from posledger.modules.credits.models import MUTABLE_CREDIT_FIELDS

    if not _has_net_changes(target):
        return

    for field in _changed_columns(target):
        if field not in MUTABLE_CREDIT_FIELDS:
            _reject("ClientCredit", target, "modificar", field)


def _check_credit_delete(mapper, connection, target):
    _reject("ClientCredit", target, "eliminar")


def _listeners():
    from posledger.modules.events.store import EVENT_MODELS
    from posledger.modules.events.models import SaleLine
    from posledger.modules.shifts.models import CashRegisterShift
    from posledger.modules.credits.models import ClientCredit

    pairs = []
    for model in EVENT_MODELS + (SaleLine,):
        pairs.append((model, "before_update", _check_event_update))
        pairs.append((model, "before_delete", _check_event_delete))
    pairs.append((CashRegisterShift, "before_update", _check_shift_update))
    pairs.append((CashRegisterShift, "before_delete", _check_shift_delete))
    pairs.append((ClientCredit, "before_update", _check_credit_update))
    pairs.append((ClientCredit, "before_delete", _check_credit_delete))
    return pairs


def register_immutability_listeners():
    """Register the listeners. Safe to call more than once."""
    for target, name, fn in _listeners():
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)


def unregister_immutability_listeners():
    """Remove the listeners (tests only)."""
    for target, name, fn in _listeners():
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
