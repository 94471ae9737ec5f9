from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockroom.app.db.models.core_types import Role
from stockroom.app.db.models.models_v1 import UserProfile
from stockroom.services.access import ActingIdentity, Capability, require_capability
from stockroom.services.errors import NotFound, ValidationError, gateway_errors
from stockroom.services.identity import IdentityProvider

logger = logging.getLogger(__name__)

EMAIL_UNAVAILABLE = "E-mail não disponível"


@dataclass(frozen=True)
class UserAccount:
    id: str
    display_name: str
    role: Role
    email: str
    created_at: datetime


def get_profile(db: Session, user_id: str) -> UserProfile | None:
    with gateway_errors(db, "get_profile"):
        return db.get(UserProfile, user_id)


def list_users(db: Session, actor: ActingIdentity, identity: IdentityProvider) -> list[UserAccount]:
    require_capability(actor, Capability.manage_users)

    with gateway_errors(db, "list_users"):
        profiles = list(db.execute(select(UserProfile).order_by(UserProfile.display_name)).scalars())

    emails = identity.list_user_emails()
    return [
        UserAccount(
            id=p.id,
            display_name=p.display_name,
            role=p.role,
            email=emails.get(p.id) or EMAIL_UNAVAILABLE,
            created_at=p.created_at,
        )
        for p in profiles
    ]


def set_user_role(
    db: Session,
    actor: ActingIdentity,
    target_id: str,
    new_role: Role | str,
) -> UserProfile:
    require_capability(actor, Capability.manage_users)

    try:
        new_role = Role(new_role)
    except ValueError:
        raise ValidationError(f"Unknown role: {new_role}") from None

    with gateway_errors(db, "set_user_role"):
        profile = db.get(UserProfile, target_id)
        if profile is None:
            raise NotFound(f"User {target_id} not found")
        profile.role = new_role
        db.commit()
        db.refresh(profile)

    logger.info("User %s role set to %s by %s", target_id, new_role.value, actor.user_id)
    return profile


def promote_user(db: Session, actor: ActingIdentity, target_id: str) -> UserProfile:
    return set_user_role(db, actor, target_id, Role.admin)


def demote_user(db: Session, actor: ActingIdentity, target_id: str) -> UserProfile:
    return set_user_role(db, actor, target_id, Role.user)
