from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from stockroom.app.api.deps import get_acting_identity, get_db
from stockroom.app.db.models.core_types import MovementKind
from stockroom.app.schemas.inventory import EquipmentRead, MovementRead
from stockroom.services.access import ActingIdentity
from stockroom.services import movements

router = APIRouter(prefix="/movements")


class MovementCreate(BaseModel):
    equipment_id: int
    kind: MovementKind
    quantity: int = Field(gt=0)
    notes: str | None = None


@router.get("", response_model=list[MovementRead])
def list_movements(
    kind: MovementKind | None = None,
    equipment_id: int | None = None,
    db: Session = Depends(get_db),
    actor: ActingIdentity = Depends(get_acting_identity),
):
    return movements.list_movements(db, actor, kind=kind, equipment_id=equipment_id)


@router.post("", response_model=MovementRead, status_code=201)
def record_movement(
    payload: MovementCreate,
    db: Session = Depends(get_db),
    actor: ActingIdentity = Depends(get_acting_identity),
):
    """
    Enregistre le mouvement. Le stock de l'équipement n'est PAS modifié :
    voir POST /movements/{id}/apply.
    """
    return movements.record_movement(
        db,
        actor,
        equipment_id=payload.equipment_id,
        kind=payload.kind,
        quantity=payload.quantity,
        notes=payload.notes,
    )


@router.post("/{movement_id}/apply", response_model=EquipmentRead)
def apply_movement(
    movement_id: int,
    db: Session = Depends(get_db),
    actor: ActingIdentity = Depends(get_acting_identity),
):
    return movements.apply_movement_to_stock(db, actor, movement_id)
