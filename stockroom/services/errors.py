"""
Erreurs métier du service d'inventaire.

Chaque opération renvoie une valeur ou lève UNE de ces erreurs.
Toutes sont récupérables à l'échelle de l'opération.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterable, Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class InventoryError(Exception):
    """Base de toutes les erreurs métier."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(InventoryError):
    pass


class DuplicateSerial(InventoryError):
    def __init__(self, serial_numbers: Iterable[str], message: str | None = None):
        self.serial_numbers = sorted(set(serial_numbers))
        super().__init__(
            message or f"Serial number already registered: {', '.join(self.serial_numbers)}"
        )


class ReferentialConflict(InventoryError):
    pass


class InsufficientStock(InventoryError):
    def __init__(self, available: int):
        self.available = available
        super().__init__(f"Insufficient stock (available={available})")


class NotFound(InventoryError):
    pass


class UnrecognizedFormat(InventoryError):
    pass


class EmptyResult(InventoryError):
    pass


class PermissionDenied(InventoryError):
    pass


class AuthenticationError(InventoryError):
    pass


class GatewayError(InventoryError):
    pass


@contextmanager
def gateway_errors(db: Session, action: str) -> Iterator[None]:
    """
    Traduit toute erreur SQLAlchemy en GatewayError.

    La session est rollback, l'erreur loguée puis relancée (jamais avalée).
    Les erreurs métier levées dans le bloc passent telles quelles,
    après rollback de ce qui n'a pas été commité.
    """
    try:
        yield
    except InventoryError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Gateway failure during %s", action)
        raise GatewayError(f"Unexpected storage failure during {action}") from exc
