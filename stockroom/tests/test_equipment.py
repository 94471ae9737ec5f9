from datetime import date, datetime, timezone

import pytest

from stockroom.app.db.models.models_v1 import Movement
from stockroom.app.db.models.core_types import MovementKind
from stockroom.services import inventory
from stockroom.services.errors import DuplicateSerial, NotFound, PermissionDenied, ValidationError
from stockroom.services.inventory import (
    create_equipment,
    delete_equipment,
    get_equipment,
    list_equipment,
    serial_number_taken,
    update_equipment,
)


def _create(db, actor, category, **overrides):
    fields = dict(
        name="Dell XPS",
        serial_number="XPS-001",
        category_id=category.id,
        quantity=10,
        acquisition_date=date(2024, 3, 1),
    )
    fields.update(overrides)
    return create_equipment(db, actor, **fields)


def test_create_equipment_trims_fields(db_session, admin, make_category):
    category = make_category()
    equipment = _create(db_session, admin, category, name="  Dell XPS  ", serial_number=" XPS-001 ", description="")

    assert equipment.id is not None
    assert equipment.name == "Dell XPS"
    assert equipment.serial_number == "XPS-001"
    assert equipment.description is None
    assert get_equipment(db_session, admin, equipment.id).category.name == "Laptops"


def test_duplicate_serial_number_is_rejected_once(db_session, admin, make_category):
    category = make_category()
    _create(db_session, admin, category)

    with pytest.raises(DuplicateSerial) as excinfo:
        _create(db_session, admin, category, name="Other laptop")

    assert excinfo.value.serial_numbers == ["XPS-001"]
    assert len(list_equipment(db_session, admin)) == 1


@pytest.mark.parametrize(
    "overrides",
    [
        {"name": " "},
        {"serial_number": None},
        {"quantity": 0},
        {"quantity": "3"},
        {"acquisition_date": None},
        {"category_id": 12345},
    ],
)
def test_create_equipment_validation(db_session, admin, make_category, overrides):
    category = make_category()
    with pytest.raises(ValidationError):
        _create(db_session, admin, category, **overrides)


def test_regular_user_cannot_create_or_delete(db_session, user, make_category, make_equipment):
    category = make_category()
    equipment = make_equipment(category)

    with pytest.raises(PermissionDenied):
        _create(db_session, user, category, serial_number="NEW-1")
    with pytest.raises(PermissionDenied):
        delete_equipment(db_session, user, equipment.id)


def test_list_equipment_filters_by_category(db_session, admin, make_category, make_equipment):
    laptops = make_category("Laptops")
    monitors = make_category("Monitores")
    make_equipment(laptops, name="Dell XPS")
    make_equipment(monitors, name="LG 27")

    assert [e.name for e in list_equipment(db_session, admin, category_id=monitors.id)] == ["LG 27"]
    assert len(list_equipment(db_session, admin)) == 2


def test_update_keeps_own_serial_and_rejects_taken_one(db_session, admin, make_category, make_equipment):
    category = make_category()
    first = make_equipment(category, serial_number="A-1")
    make_equipment(category, serial_number="B-2")

    # même numéro que soi-même : pas un doublon
    updated = update_equipment(db_session, admin, first.id, {"serial_number": "A-1", "quantity": 0})
    assert updated.quantity == 0
    assert updated.updated_at is not None

    with pytest.raises(DuplicateSerial):
        update_equipment(db_session, admin, first.id, {"serial_number": "B-2"})

    assert serial_number_taken(db_session, "B-2")
    assert not serial_number_taken(db_session, "A-1", exclude_id=first.id)


def test_update_rejects_negative_quantity_and_unknown_fields(db_session, admin, make_category, make_equipment):
    equipment = make_equipment(make_category())

    with pytest.raises(ValidationError):
        update_equipment(db_session, admin, equipment.id, {"quantity": -1})
    with pytest.raises(ValidationError):
        update_equipment(db_session, admin, equipment.id, {"owner": "me"})
    with pytest.raises(NotFound):
        update_equipment(db_session, admin, 999, {"name": "x"})


def test_delete_equipment_leaves_movement_history(db_session, admin, make_category, make_equipment):
    equipment = make_equipment(make_category())
    db_session.add(
        Movement(
            equipment_id=equipment.id,
            kind=MovementKind.inflow,
            quantity=2,
            happened_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
            user_id=admin.user_id,
        )
    )
    db_session.commit()

    delete_equipment(db_session, admin, equipment.id)

    with pytest.raises(NotFound):
        get_equipment(db_session, admin, equipment.id)
    assert db_session.query(Movement).count() == 1


def test_storage_constraint_reports_duplicate_when_precheck_misses(
    db_session, admin, make_category, monkeypatch
):
    """
    GIVEN
    - le pré-contrôle du numéro de série ne voit rien (course entre deux requêtes)

    THEN
    - la contrainte unique en base lève DuplicateSerial
    - la session reste utilisable
    """
    category = make_category()
    _create(db_session, admin, category)

    monkeypatch.setattr(inventory, "serial_number_taken", lambda *args, **kwargs: False)

    with pytest.raises(DuplicateSerial) as excinfo:
        _create(db_session, admin, category, name="Race")
    assert excinfo.value.serial_numbers == ["XPS-001"]

    other = _create(db_session, admin, category, serial_number="XPS-002")
    assert {e.serial_number for e in list_equipment(db_session, admin)} == {"XPS-001", "XPS-002"}
    assert other.id is not None
