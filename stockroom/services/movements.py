"""
Mouvements de stock (entrée / sortie).

Enregistrer un mouvement NE modifie PAS Equipment.quantity : la quantité
est maintenue indépendamment. apply_movement_to_stock() est l'opération
séparée (admin) qui répercute un mouvement sur le stock, de façon atomique.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Select, select, update
from sqlalchemy.orm import Session

from stockroom.app.db.base import utcnow
from stockroom.app.db.models.core_types import MovementKind
from stockroom.app.db.models.models_v1 import Equipment, Movement, UserProfile
from stockroom.services.access import ActingIdentity, Capability, require_capability
from stockroom.services.errors import (
    InsufficientStock,
    NotFound,
    ValidationError,
    gateway_errors,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MovementRecord:
    id: int
    equipment_id: int
    equipment_name: str | None
    serial_number: str | None
    kind: MovementKind
    quantity: int
    happened_at: datetime
    user_id: str
    user_name: str | None
    notes: str | None
    stock_applied_at: datetime | None


def _parse_kind(kind: MovementKind | str) -> MovementKind:
    try:
        return MovementKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown movement kind: {kind}") from None


def _current_quantity(db: Session, equipment_id: int) -> int | None:
    # lecture fraîche en base, pas l'objet en cache dans la session
    return db.execute(select(Equipment.quantity).where(Equipment.id == equipment_id)).scalar_one_or_none()


def movement_history_stmt() -> Select:
    """Mouvements + nom d'équipement + nom du responsable (LEFT JOIN)."""
    return (
        select(
            Movement,
            Equipment.name.label("equipment_name"),
            Equipment.serial_number.label("serial_number"),
            UserProfile.display_name.label("user_name"),
        )
        .outerjoin(Equipment, Equipment.id == Movement.equipment_id)
        .outerjoin(UserProfile, UserProfile.id == Movement.user_id)
        .order_by(Movement.happened_at.desc(), Movement.id.desc())
    )


def to_record(movement: Movement, equipment_name, serial_number, user_name) -> MovementRecord:
    return MovementRecord(
        id=int(movement.id),
        equipment_id=int(movement.equipment_id),
        equipment_name=equipment_name,
        serial_number=serial_number,
        kind=movement.kind,
        quantity=movement.quantity,
        happened_at=movement.happened_at,
        user_id=movement.user_id,
        user_name=user_name,
        notes=movement.notes,
        stock_applied_at=movement.stock_applied_at,
    )


def record_movement(
    db: Session,
    actor: ActingIdentity,
    *,
    equipment_id: int,
    kind: MovementKind | str,
    quantity: int,
    notes: str | None = None,
) -> Movement:
    """
    Vérifie puis insère (check-then-act, sans verrou).

    Deux sorties concurrentes peuvent passer la vérification toutes les deux :
    course connue et acceptée, voir apply_movement_to_stock().
    """
    require_capability(actor, Capability.record_movement)

    kind = _parse_kind(kind)
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("Quantity must be greater than zero")

    with gateway_errors(db, "record_movement"):
        available = _current_quantity(db, equipment_id)
        if available is None:
            raise NotFound(f"Equipment {equipment_id} not found")

        if kind is MovementKind.outflow and quantity > available:
            raise InsufficientStock(available)

        movement = Movement(
            equipment_id=equipment_id,
            kind=kind,
            quantity=quantity,
            notes=(notes or "").strip() or None,
            happened_at=utcnow(),
            user_id=actor.user_id,
        )
        db.add(movement)
        db.commit()
        db.refresh(movement)

    logger.info(
        "Movement %s recorded: %s %d on equipment %s by %s",
        movement.id,
        kind.value,
        quantity,
        equipment_id,
        actor.user_id,
    )
    return movement


def apply_movement_to_stock(db: Session, actor: ActingIdentity, movement_id: int) -> Equipment:
    require_capability(actor, Capability.apply_movement)

    with gateway_errors(db, "apply_movement_to_stock"):
        movement = db.get(Movement, movement_id)
        if movement is None:
            raise NotFound(f"Movement {movement_id} not found")

        now = utcnow()
        marked = db.execute(
            update(Movement)
            .where(Movement.id == movement_id)
            .where(Movement.stock_applied_at.is_(None))
            .values(stock_applied_at=now)
            .execution_options(synchronize_session=False)
        )
        if marked.rowcount == 0:
            raise ValidationError(f"Movement {movement_id} was already applied to stock")

        # décrément conditionnel : la base refuse de passer sous zéro
        stmt = update(Equipment).where(Equipment.id == movement.equipment_id)
        if movement.kind is MovementKind.outflow:
            stmt = stmt.where(Equipment.quantity >= movement.quantity).values(
                quantity=Equipment.quantity - movement.quantity, updated_at=now
            )
        else:
            stmt = stmt.values(quantity=Equipment.quantity + movement.quantity, updated_at=now)

        result = db.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount == 0:
            available = _current_quantity(db, movement.equipment_id)
            if available is None:
                raise NotFound(f"Equipment {movement.equipment_id} not found")
            raise InsufficientStock(available)

        db.commit()
        equipment = db.get(Equipment, movement.equipment_id)
        db.refresh(equipment)

    logger.info("Movement %s applied to equipment %s stock by %s", movement_id, equipment.id, actor.user_id)
    return equipment


def list_movements(
    db: Session,
    actor: ActingIdentity,
    *,
    kind: MovementKind | str | None = None,
    equipment_id: int | None = None,
) -> list[MovementRecord]:
    require_capability(actor, Capability.read_inventory)

    stmt = movement_history_stmt()
    if kind is not None:
        stmt = stmt.where(Movement.kind == _parse_kind(kind))
    if equipment_id is not None:
        stmt = stmt.where(Movement.equipment_id == equipment_id)

    with gateway_errors(db, "list_movements"):
        rows = db.execute(stmt).all()
    return [to_record(*row) for row in rows]
