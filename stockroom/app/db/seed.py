from __future__ import annotations

import logging
import os

from sqlalchemy import func, select

from stockroom.app.core.config import settings
from stockroom.app.db.session import SessionLocal
from stockroom.app.db.models.models_v1 import Category, UserProfile
from stockroom.app.db.models.core_types import Role

logger = logging.getLogger(__name__)


def run_seed(admin_id: str | None = None, admin_name: str = "Administrador"):
    """
    1) catégorie par défaut (celle utilisée par l'import quand la cellule est vide)
    2) profil admin, si l'id fournisseur d'identité est donné (SEED_ADMIN_ID)
    """
    admin_id = admin_id or os.getenv("SEED_ADMIN_ID")
    db = SessionLocal()
    try:
        name = settings.DEFAULT_CATEGORY_NAME
        category = db.scalar(select(Category).where(func.lower(Category.name) == name.lower()))
        if not category:
            db.add(Category(name=name, description="Categoria padrão"))
            db.commit()

        if admin_id:
            profile = db.get(UserProfile, admin_id)
            if not profile:
                db.add(UserProfile(id=admin_id, display_name=admin_name, role=Role.admin))
            else:
                profile.role = Role.admin
            db.commit()

        logger.info("Seed OK: category=%s admin=%s", name, admin_id or "-")
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_seed()
