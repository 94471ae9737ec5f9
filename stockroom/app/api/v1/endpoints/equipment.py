from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from stockroom.app.api.deps import get_acting_identity, get_db
from stockroom.app.schemas.inventory import EquipmentRead
from stockroom.services.access import ActingIdentity
from stockroom.services import inventory
from stockroom.services.inventory import EquipmentDraft

router = APIRouter(prefix="/equipment")


# ---------- Schemas ----------
class EquipmentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    serial_number: str = Field(min_length=1, max_length=128)
    category_id: int
    quantity: int = Field(ge=1)
    acquisition_date: date
    description: str | None = None


class EquipmentUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    serial_number: str | None = Field(default=None, min_length=1, max_length=128)
    category_id: int | None = None
    quantity: int | None = Field(default=None, ge=0)
    acquisition_date: date | None = None
    description: str | None = None


class EquipmentBulkCreate(BaseModel):
    items: list[EquipmentCreate] = Field(min_length=1)


# ---------- Endpoints ----------
@router.get("", response_model=list[EquipmentRead])
def list_equipment(
    category_id: int | None = None,
    db: Session = Depends(get_db),
    actor: ActingIdentity = Depends(get_acting_identity),
):
    return inventory.list_equipment(db, actor, category_id=category_id)


@router.get("/{equipment_id}", response_model=EquipmentRead)
def get_equipment(
    equipment_id: int,
    db: Session = Depends(get_db),
    actor: ActingIdentity = Depends(get_acting_identity),
):
    return inventory.get_equipment(db, actor, equipment_id)


@router.post("", response_model=EquipmentRead, status_code=201)
def create_equipment(
    payload: EquipmentCreate,
    db: Session = Depends(get_db),
    actor: ActingIdentity = Depends(get_acting_identity),
):
    return inventory.create_equipment(db, actor, **payload.model_dump())


@router.post("/bulk", response_model=list[EquipmentRead], status_code=201)
def bulk_create_equipment(
    payload: EquipmentBulkCreate,
    db: Session = Depends(get_db),
    actor: ActingIdentity = Depends(get_acting_identity),
):
    drafts = [EquipmentDraft(**item.model_dump()) for item in payload.items]
    return inventory.bulk_create_equipment(db, actor, drafts)


@router.patch("/{equipment_id}", response_model=EquipmentRead)
def update_equipment(
    equipment_id: int,
    payload: EquipmentUpdate,
    db: Session = Depends(get_db),
    actor: ActingIdentity = Depends(get_acting_identity),
):
    return inventory.update_equipment(db, actor, equipment_id, payload.model_dump(exclude_unset=True))


@router.delete("/{equipment_id}", status_code=204)
def delete_equipment(
    equipment_id: int,
    db: Session = Depends(get_db),
    actor: ActingIdentity = Depends(get_acting_identity),
):
    inventory.delete_equipment(db, actor, equipment_id)
    return Response(status_code=204)
