from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from stockroom.app.api.deps import get_acting_identity, get_db, get_identity_provider
from stockroom.app.db.models.core_types import Role
from stockroom.app.schemas.inventory import ProfileRead
from stockroom.services.access import ActingIdentity
from stockroom.services.identity import IdentityProvider
from stockroom.services import users

router = APIRouter(prefix="/users")


class UserAccountRead(BaseModel):
    id: str
    display_name: str
    role: Role
    email: str
    created_at: datetime

    class Config:
        from_attributes = True


@router.get("/me")
def whoami(actor: ActingIdentity = Depends(get_acting_identity)):
    return {"user_id": actor.user_id, "role": actor.role, "display_name": actor.display_name}


@router.get("", response_model=list[UserAccountRead])
def list_users(
    db: Session = Depends(get_db),
    actor: ActingIdentity = Depends(get_acting_identity),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    return users.list_users(db, actor, identity)


@router.post("/{user_id}/promote", response_model=ProfileRead)
def promote_user(
    user_id: str,
    db: Session = Depends(get_db),
    actor: ActingIdentity = Depends(get_acting_identity),
):
    return users.promote_user(db, actor, user_id)


@router.post("/{user_id}/demote", response_model=ProfileRead)
def demote_user(
    user_id: str,
    db: Session = Depends(get_db),
    actor: ActingIdentity = Depends(get_acting_identity),
):
    return users.demote_user(db, actor, user_id)
