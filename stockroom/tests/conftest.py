import os
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stockroom.app.db.base import Base
from stockroom.app.db.models import models_v1  # noqa: F401
from stockroom.app.db.models.core_types import Role
from stockroom.app.db.models.models_v1 import Category, Equipment, UserProfile
from stockroom.services.access import ActingIdentity

ADMIN_ID = "00000000-0000-0000-0000-00000000a001"
USER_ID = "00000000-0000-0000-0000-00000000u001"


def _make_engine():
    url = os.getenv("TEST_DATABASE_URL")
    if url:
        return create_engine(url, pool_pre_ping=True)
    # une seule connexion partagée : la base :memory: vit avec elle
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture(scope="function")
def db_session() -> Session:
    """
    Session DB isolée par test.

    SQLite en mémoire par défaut (base neuve à chaque test).
    Avec TEST_DATABASE_URL, schéma créé puis supprimé autour du test.
    """
    engine = _make_engine()
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


# ---------- Identités ----------
@pytest.fixture
def admin_profile(db_session) -> UserProfile:
    profile = UserProfile(id=ADMIN_ID, display_name="Ana Admin", role=Role.admin)
    db_session.add(profile)
    db_session.commit()
    return profile


@pytest.fixture
def user_profile(db_session) -> UserProfile:
    profile = UserProfile(id=USER_ID, display_name="Bruno User", role=Role.user)
    db_session.add(profile)
    db_session.commit()
    return profile


@pytest.fixture
def admin(admin_profile) -> ActingIdentity:
    return ActingIdentity(user_id=admin_profile.id, role=Role.admin, display_name=admin_profile.display_name)


@pytest.fixture
def user(user_profile) -> ActingIdentity:
    return ActingIdentity(user_id=user_profile.id, role=Role.user, display_name=user_profile.display_name)


# ---------- Factories ----------
@pytest.fixture
def make_category(db_session):
    def _make(name: str = "Laptops", description: str | None = None) -> Category:
        category = Category(name=name, description=description)
        db_session.add(category)
        db_session.commit()
        return category

    return _make


@pytest.fixture
def make_equipment(db_session):
    counter = {"n": 0}

    def _make(category: Category, *, name: str = "Dell XPS", serial_number: str | None = None, quantity: int = 10):
        counter["n"] += 1
        equipment = Equipment(
            name=name,
            serial_number=serial_number or f"SN-{counter['n']:04d}",
            category_id=category.id,
            quantity=quantity,
            acquisition_date=date(2024, 1, 15),
        )
        db_session.add(equipment)
        db_session.commit()
        return equipment

    return _make
