from __future__ import annotations

from typing import Generator

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from stockroom.app.db.session import SessionLocal
from stockroom.services.access import ActingIdentity
from stockroom.services.errors import AuthenticationError
from stockroom.services.identity import IdentityProvider, SupabaseIdentityProvider
from stockroom.services.users import get_profile


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_identity_provider() -> IdentityProvider:
    return SupabaseIdentityProvider.from_settings()


def _bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise AuthenticationError("Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Authorization header must be 'Bearer <token>'")
    return token.strip()


def get_acting_identity(
    authorization: str | None = Header(default=None),
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> ActingIdentity:
    """Jeton -> id fournisseur d'identité -> ligne profiles -> rôle."""
    user_id = identity.resolve_user_id(_bearer_token(authorization))

    profile = get_profile(db, user_id)
    if profile is None:
        raise AuthenticationError("No profile for this user")

    return ActingIdentity(user_id=profile.id, role=profile.role, display_name=profile.display_name)
