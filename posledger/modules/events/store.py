"""
EventStore: persistencia append-only de los eventos del ledger.

No contiene reglas de negocio. Asigna ``created_at`` desde el reloj inyectado,
agrega el evento a la sesión y hace flush para obtener el id; el commit lo
decide el servicio que orquesta la operación.
"""

import logging
from datetime import datetime
from typing import List, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from posledger.common.clock import Clock, SystemClock
from posledger.common.exceptions import NotFoundError
from posledger.modules.events.models import (
    CashMovement, CashMovementReversal, Sale, CreditPayment,
    InventoryMovement, ShiftSnapshot
)

logger = logging.getLogger(__name__)

EVENT_MODELS = (CashMovement, CashMovementReversal, Sale, CreditPayment, InventoryMovement, ShiftSnapshot)

E = TypeVar("E")


class EventStore:
    """Escritura exclusiva de eventos crudos y lectura ordenada por (created_at, id)"""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or SystemClock()

    def append(self, event: E, created_by: Optional[str] = None) -> E:
        if not isinstance(event, EVENT_MODELS):
            raise TypeError(f"{type(event).__name__} no es un evento del ledger")
        if event.id is not None:
            raise ValueError(f"{type(event).__name__} {event.id} ya fue registrado")

        if event.created_at is None:
            event.created_at = self.clock.now()
        if created_by is not None:
            event.created_by = created_by

        self.db.add(event)
        self.db.flush()
        logger.debug(f"Evento {type(event).__name__} {event.id} registrado")
        return event

    def get(self, model: Type[E], event_id: int) -> Optional[E]:
        return self.db.query(model).filter(model.id == event_id).first()

    def get_or_404(self, model: Type[E], event_id: int, entity: Optional[str] = None) -> E:
        event = self.get(model, event_id)
        if not event:
            raise NotFoundError(entity or model.__name__, event_id)
        return event

    def list_for(self, model: Type[E], **filters) -> List[E]:
        """Eventos que cumplen los filtros de igualdad, en orden de reproducción."""
        query = self.db.query(model)
        for field, value in filters.items():
            query = query.filter(getattr(model, field) == value)
        return query.order_by(model.created_at, model.id).all()

    def list_between(
        self,
        model: Type[E],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        **filters
    ) -> List[E]:
        """Eventos con start <= created_at <= end (límites opcionales)."""
        query = self.db.query(model)
        if start is not None:
            query = query.filter(model.created_at >= start)
        if end is not None:
            query = query.filter(model.created_at <= end)
        for field, value in filters.items():
            if value is not None:
                query = query.filter(getattr(model, field) == value)
        return query.order_by(model.created_at, model.id).all()
