from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from stockroom.app.db.base import utcnow
from stockroom.app.db.models.models_v1 import Category, Equipment
from stockroom.services.access import ActingIdentity, Capability, require_capability
from stockroom.services.errors import (
    DuplicateSerial,
    NotFound,
    ReferentialConflict,
    ValidationError,
    gateway_errors,
)

logger = logging.getLogger(__name__)

CATEGORY_FIELDS = frozenset({"name", "description"})
EQUIPMENT_FIELDS = frozenset(
    {"name", "serial_number", "category_id", "quantity", "acquisition_date", "description"}
)


@dataclass(frozen=True)
class EquipmentDraft:
    name: str | None
    serial_number: str | None
    category_id: int | None
    quantity: int | None
    acquisition_date: date | None
    description: str | None = None


# ---------- Helpers ----------
def _clean(value: Any) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _check_quantity(quantity: Any, *, minimum: int) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Quantity must be an integer")
    if quantity < minimum:
        raise ValidationError(f"Quantity must be at least {minimum}")
    return quantity


def _validate_draft(draft: EquipmentDraft) -> EquipmentDraft:
    name = _clean(draft.name)
    serial_number = _clean(draft.serial_number)
    if not name:
        raise ValidationError("Name is required")
    if not serial_number:
        raise ValidationError("Serial number is required")
    if draft.category_id is None:
        raise ValidationError("Category is required")
    if draft.acquisition_date is None:
        raise ValidationError("Acquisition date is required")
    quantity = _check_quantity(draft.quantity, minimum=1)

    return EquipmentDraft(
        name=name,
        serial_number=serial_number,
        category_id=int(draft.category_id),
        quantity=quantity,
        acquisition_date=draft.acquisition_date,
        description=_clean(draft.description),
    )


def _draft_from_mapping(item: Mapping[str, Any]) -> EquipmentDraft:
    # clé absente = None : _validate_draft signale le champ manquant
    unknown = set(item) - EQUIPMENT_FIELDS
    if unknown:
        raise ValidationError(f"Unknown equipment fields: {', '.join(sorted(unknown))}")
    return EquipmentDraft(**{key: item.get(key) for key in EQUIPMENT_FIELDS})


def _ensure_categories_exist(db: Session, category_ids: Iterable[int]) -> None:
    wanted = {int(cid) for cid in category_ids}
    found = set(db.execute(select(Category.id).where(Category.id.in_(wanted))).scalars())
    missing = sorted(wanted - found)
    if missing:
        raise ValidationError(f"Unknown category: {', '.join(str(cid) for cid in missing)}")


def serial_number_taken(db: Session, serial_number: str, *, exclude_id: int | None = None) -> bool:
    stmt = select(Equipment.id).where(Equipment.serial_number == serial_number)
    if exclude_id is not None:
        stmt = stmt.where(Equipment.id != exclude_id)
    return db.execute(stmt.limit(1)).first() is not None


def commit_or_duplicate(db: Session, serial_numbers: Sequence[str]) -> None:
    # la contrainte unique en base reste l'arbitre final
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Storage rejected serial numbers %s: %s", list(serial_numbers), exc.orig)
        raise DuplicateSerial(serial_numbers) from exc


def _get_category(db: Session, category_id: int) -> Category:
    category = db.get(Category, category_id)
    if category is None:
        raise NotFound(f"Category {category_id} not found")
    return category


def _get_equipment(db: Session, equipment_id: int) -> Equipment:
    equipment = db.get(Equipment, equipment_id)
    if equipment is None:
        raise NotFound(f"Equipment {equipment_id} not found")
    return equipment


# ---------- CATEGORIES ----------
def list_categories(db: Session, actor: ActingIdentity) -> list[Category]:
    require_capability(actor, Capability.read_inventory)
    with gateway_errors(db, "list_categories"):
        return list(db.execute(select(Category).order_by(Category.name)).scalars())


def find_category_by_name(db: Session, name: str) -> Category | None:
    return (
        db.execute(
            select(Category)
            .where(func.lower(Category.name) == name.strip().lower())
            .order_by(Category.id.asc())
            .limit(1)
        )
        .scalars()
        .first()
    )


def create_category(
    db: Session,
    actor: ActingIdentity,
    *,
    name: str | None,
    description: str | None = None,
) -> Category:
    require_capability(actor, Capability.manage_categories)

    name = _clean(name)
    if not name:
        raise ValidationError("Category name is required")

    with gateway_errors(db, "create_category"):
        category = Category(name=name, description=_clean(description))
        db.add(category)
        db.commit()
        db.refresh(category)

    logger.info("Category %s created (%s) by %s", category.id, category.name, actor.user_id)
    return category


def update_category(
    db: Session,
    actor: ActingIdentity,
    category_id: int,
    fields: Mapping[str, Any],
) -> Category:
    require_capability(actor, Capability.manage_categories)

    unknown = set(fields) - CATEGORY_FIELDS
    if unknown:
        raise ValidationError(f"Unknown category fields: {', '.join(sorted(unknown))}")

    with gateway_errors(db, "update_category"):
        category = _get_category(db, category_id)

        if "name" in fields:
            name = _clean(fields["name"])
            if not name:
                raise ValidationError("Category name is required")
            category.name = name
        if "description" in fields:
            category.description = _clean(fields["description"])

        db.commit()
        db.refresh(category)
    return category


def delete_category(db: Session, actor: ActingIdentity, category_id: int) -> None:
    require_capability(actor, Capability.manage_categories)

    with gateway_errors(db, "delete_category"):
        category = _get_category(db, category_id)

        # existence, pas un COUNT : on s'arrête au premier équipement trouvé
        in_use = db.execute(
            select(Equipment.id).where(Equipment.category_id == category_id).limit(1)
        ).first()
        if in_use is not None:
            raise ReferentialConflict(
                f"Category {category_id} still has equipment attached and cannot be deleted"
            )

        db.delete(category)
        db.commit()

    logger.info("Category %s deleted by %s", category_id, actor.user_id)


# ---------- EQUIPMENT ----------
def get_equipment(db: Session, actor: ActingIdentity, equipment_id: int) -> Equipment:
    require_capability(actor, Capability.read_inventory)
    with gateway_errors(db, "get_equipment"):
        equipment = (
            db.execute(
                select(Equipment)
                .options(joinedload(Equipment.category))
                .where(Equipment.id == equipment_id)
            )
            .scalars()
            .first()
        )
    if equipment is None:
        raise NotFound(f"Equipment {equipment_id} not found")
    return equipment


def list_equipment(
    db: Session,
    actor: ActingIdentity,
    *,
    category_id: int | None = None,
) -> list[Equipment]:
    require_capability(actor, Capability.read_inventory)

    stmt = select(Equipment).options(joinedload(Equipment.category)).order_by(Equipment.name)
    if category_id is not None:
        stmt = stmt.where(Equipment.category_id == category_id)

    with gateway_errors(db, "list_equipment"):
        return list(db.execute(stmt).scalars())


def create_equipment(
    db: Session,
    actor: ActingIdentity,
    *,
    name: str | None,
    serial_number: str | None,
    category_id: int | None,
    quantity: int | None,
    acquisition_date: date | None,
    description: str | None = None,
) -> Equipment:
    require_capability(actor, Capability.mutate_equipment)

    draft = _validate_draft(
        EquipmentDraft(
            name=name,
            serial_number=serial_number,
            category_id=category_id,
            quantity=quantity,
            acquisition_date=acquisition_date,
            description=description,
        )
    )

    with gateway_errors(db, "create_equipment"):
        _ensure_categories_exist(db, [draft.category_id])
        if serial_number_taken(db, draft.serial_number):
            raise DuplicateSerial([draft.serial_number])

        equipment = Equipment(
            name=draft.name,
            serial_number=draft.serial_number,
            category_id=draft.category_id,
            quantity=draft.quantity,
            acquisition_date=draft.acquisition_date,
            description=draft.description,
        )
        db.add(equipment)
        commit_or_duplicate(db, [draft.serial_number])
        db.refresh(equipment)

    logger.info("Equipment %s created (serial=%s) by %s", equipment.id, equipment.serial_number, actor.user_id)
    return equipment


def update_equipment(
    db: Session,
    actor: ActingIdentity,
    equipment_id: int,
    fields: Mapping[str, Any],
) -> Equipment:
    require_capability(actor, Capability.mutate_equipment)

    unknown = set(fields) - EQUIPMENT_FIELDS
    if unknown:
        raise ValidationError(f"Unknown equipment fields: {', '.join(sorted(unknown))}")

    with gateway_errors(db, "update_equipment"):
        equipment = _get_equipment(db, equipment_id)
        changes: dict[str, Any] = {}

        for key in ("name", "serial_number"):
            if key in fields:
                value = _clean(fields[key])
                if not value:
                    raise ValidationError(f"{key.replace('_', ' ').capitalize()} is required")
                changes[key] = value

        if "category_id" in fields:
            if fields["category_id"] is None:
                raise ValidationError("Category is required")
            _ensure_categories_exist(db, [fields["category_id"]])
            changes["category_id"] = int(fields["category_id"])

        if "quantity" in fields:
            changes["quantity"] = _check_quantity(fields["quantity"], minimum=0)

        if "acquisition_date" in fields:
            if fields["acquisition_date"] is None:
                raise ValidationError("Acquisition date is required")
            changes["acquisition_date"] = fields["acquisition_date"]

        if "description" in fields:
            changes["description"] = _clean(fields["description"])

        # doublon vérifié seulement si le numéro de série change
        new_serial = changes.get("serial_number")
        if new_serial is not None and new_serial != equipment.serial_number:
            if serial_number_taken(db, new_serial, exclude_id=equipment.id):
                raise DuplicateSerial([new_serial])

        for key, value in changes.items():
            setattr(equipment, key, value)
        equipment.updated_at = utcnow()

        commit_or_duplicate(db, [equipment.serial_number])
        db.refresh(equipment)

    logger.info("Equipment %s updated (%s) by %s", equipment_id, ", ".join(sorted(changes)), actor.user_id)
    return equipment


def delete_equipment(db: Session, actor: ActingIdentity, equipment_id: int) -> None:
    require_capability(actor, Capability.delete_equipment)

    with gateway_errors(db, "delete_equipment"):
        equipment = _get_equipment(db, equipment_id)
        # les mouvements historiques restent (référence orpheline)
        db.delete(equipment)
        db.commit()

    logger.info("Equipment %s deleted by %s", equipment_id, actor.user_id)


def bulk_create_equipment(
    db: Session,
    actor: ActingIdentity,
    items: Sequence[EquipmentDraft | Mapping[str, Any]],
) -> list[Equipment]:
    """
    Création en lot, tout ou rien.

    1. validation de chaque item
    2. doublons de numéro de série DANS le lot
    3. doublons contre la base (une seule requête IN)
    4. un seul INSERT multi-lignes
    """
    require_capability(actor, Capability.mutate_equipment)

    if not items:
        raise ValidationError("No equipment to create")

    drafts: list[EquipmentDraft] = []
    for index, item in enumerate(items, start=1):
        try:
            if isinstance(item, Mapping):
                item = _draft_from_mapping(item)
            drafts.append(_validate_draft(item))
        except ValidationError as exc:
            raise ValidationError(f"Item {index}: {exc.message}") from exc

    serial_numbers = [d.serial_number for d in drafts]
    repeated = [serial for serial, count in Counter(serial_numbers).items() if count > 1]
    if repeated:
        raise DuplicateSerial(
            repeated,
            message=f"Duplicate serial numbers in batch: {', '.join(sorted(repeated))}",
        )

    with gateway_errors(db, "bulk_create_equipment"):
        _ensure_categories_exist(db, {d.category_id for d in drafts})

        existing = (
            db.execute(select(Equipment.serial_number).where(Equipment.serial_number.in_(serial_numbers)))
            .scalars()
            .all()
        )
        if existing:
            raise DuplicateSerial(existing)

        rows = [
            Equipment(
                name=d.name,
                serial_number=d.serial_number,
                category_id=d.category_id,
                quantity=d.quantity,
                acquisition_date=d.acquisition_date,
                description=d.description,
            )
            for d in drafts
        ]
        db.add_all(rows)
        commit_or_duplicate(db, serial_numbers)
        for row in rows:
            db.refresh(row)

    logger.info("Bulk created %d equipment rows by %s", len(rows), actor.user_id)
    return rows
