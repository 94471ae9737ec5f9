from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from stockroom.app.api.deps import get_acting_identity, get_db
from stockroom.app.schemas.inventory import CategoryRead
from stockroom.services.access import ActingIdentity
from stockroom.services import inventory

router = APIRouter(prefix="/categories")


# ---------- Schemas ----------
class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None


class CategoryUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None


# ---------- Endpoints ----------
@router.get("", response_model=list[CategoryRead])
def list_categories(
    db: Session = Depends(get_db),
    actor: ActingIdentity = Depends(get_acting_identity),
):
    return inventory.list_categories(db, actor)


@router.post("", response_model=CategoryRead, status_code=201)
def create_category(
    payload: CategoryCreate,
    db: Session = Depends(get_db),
    actor: ActingIdentity = Depends(get_acting_identity),
):
    return inventory.create_category(db, actor, name=payload.name, description=payload.description)


@router.patch("/{category_id}", response_model=CategoryRead)
def update_category(
    category_id: int,
    payload: CategoryUpdate,
    db: Session = Depends(get_db),
    actor: ActingIdentity = Depends(get_acting_identity),
):
    # seuls les champs envoyés sont modifiés
    return inventory.update_category(db, actor, category_id, payload.model_dump(exclude_unset=True))


@router.delete("/{category_id}", status_code=204)
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    actor: ActingIdentity = Depends(get_acting_identity),
):
    inventory.delete_category(db, actor, category_id)
    return Response(status_code=204)
