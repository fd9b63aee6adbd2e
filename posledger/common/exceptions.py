"""
Typed exceptions for the ledger engine.

Every error carries a machine-readable ``code`` class attribute and keeps its
context as attributes, so callers (and the HTTP adapter) branch on the type,
never on the message.

    PosLedgerError
    +-- ValidationError          malformed or out-of-range input
    +-- ConflictError            state-machine violation
    |   +-- ImmutableRecordError attempt to edit or delete ledger history
    +-- NotFoundError            unknown shift / credit / product / movement
    +-- InsufficientFundsError   cash shortfall exceeds available credit
"""

from decimal import Decimal
from typing import Any, Optional


class PosLedgerError(Exception):
    """Base exception for all ledger errors."""

    code: str = "POS_LEDGER_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(PosLedgerError):
    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class ConflictError(PosLedgerError):
    code: str = "CONFLICT"


class ImmutableRecordError(ConflictError):
    code: str = "IMMUTABLE_RECORD"

    def __init__(self, entity: str, entity_id: Any, action: str = "modificar"):
        self.entity = entity
        self.entity_id = entity_id
        self.action = action
        super().__init__(f"No se puede {action} {entity} {entity_id}: el registro es inmutable")


class NotFoundError(PosLedgerError):
    code: str = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any, message: Optional[str] = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message or f"{entity} no encontrado: {entity_id}")


class InsufficientFundsError(PosLedgerError):
    code: str = "INSUFFICIENT_FUNDS"

    def __init__(self, shortfall: Decimal, available: Decimal, message: Optional[str] = None):
        self.shortfall = shortfall
        self.available = available
        super().__init__(
            message
            or f"Faltante de ${shortfall} excede el crédito disponible (${available})"
        )
