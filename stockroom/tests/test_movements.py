from datetime import date

import pytest

from stockroom.app.db.models.core_types import MovementKind, Role
from stockroom.app.db.models.models_v1 import Equipment, Movement
from stockroom.services.access import ActingIdentity
from stockroom.services.errors import InsufficientStock, NotFound, PermissionDenied, ValidationError
from stockroom.services.inventory import create_category, create_equipment, delete_equipment
from stockroom.services.movements import apply_movement_to_stock, list_movements, record_movement


@pytest.fixture
def xps(db_session, admin):
    laptops = create_category(db_session, admin, name="Laptops")
    return create_equipment(
        db_session,
        admin,
        name="Dell XPS",
        serial_number="SN001",
        category_id=laptops.id,
        quantity=5,
        acquisition_date=date(2024, 2, 1),
    )


def _stock(db_session, equipment_id):
    db_session.expire_all()
    return db_session.get(Equipment, equipment_id).quantity


def test_laptop_outflows_do_not_touch_stock(db_session, user, xps):
    """
    GIVEN
    - Laptops / Dell XPS SN001, quantité 5
    - deux sorties de 3

    THEN
    - les deux passent (3 <= 5) : la quantité n'est pas décrémentée
    - une sortie de 6 échoue et annonce available == 5
    """
    record_movement(db_session, user, equipment_id=xps.id, kind=MovementKind.outflow, quantity=3)
    record_movement(db_session, user, equipment_id=xps.id, kind=MovementKind.outflow, quantity=3)
    assert _stock(db_session, xps.id) == 5

    with pytest.raises(InsufficientStock) as excinfo:
        record_movement(db_session, user, equipment_id=xps.id, kind=MovementKind.outflow, quantity=6)
    assert excinfo.value.available == 5


def test_outflow_equal_to_stock_succeeds(db_session, user, xps):
    movement = record_movement(db_session, user, equipment_id=xps.id, kind="outflow", quantity=5, notes="  ")
    assert movement.id is not None
    assert movement.notes is None
    assert movement.user_id == user.user_id
    assert movement.stock_applied_at is None


def test_inflow_has_no_upper_bound(db_session, user, xps):
    movement = record_movement(db_session, user, equipment_id=xps.id, kind="inflow", quantity=500)
    assert movement.kind is MovementKind.inflow


@pytest.mark.parametrize("quantity", [0, -2, "3", True])
def test_record_movement_rejects_bad_quantity(db_session, user, xps, quantity):
    with pytest.raises(ValidationError):
        record_movement(db_session, user, equipment_id=xps.id, kind="inflow", quantity=quantity)


def test_record_movement_rejects_unknown_kind_and_equipment(db_session, user, xps):
    with pytest.raises(ValidationError):
        record_movement(db_session, user, equipment_id=xps.id, kind="transfer", quantity=1)
    with pytest.raises(NotFound):
        record_movement(db_session, user, equipment_id=999, kind="inflow", quantity=1)


def test_list_movements_newest_first_with_names(db_session, admin, user, xps):
    first = record_movement(db_session, user, equipment_id=xps.id, kind="inflow", quantity=2)
    second = record_movement(db_session, admin, equipment_id=xps.id, kind="outflow", quantity=1)

    records = list_movements(db_session, user)
    assert [r.id for r in records] == [second.id, first.id]
    assert records[0].equipment_name == "Dell XPS"
    assert records[0].serial_number == "SN001"
    assert records[0].user_name == "Ana Admin"
    assert records[1].user_name == "Bruno User"

    assert [r.id for r in list_movements(db_session, user, kind="inflow")] == [first.id]


def test_history_survives_equipment_deletion(db_session, admin, xps):
    movement = record_movement(db_session, admin, equipment_id=xps.id, kind="inflow", quantity=1)
    delete_equipment(db_session, admin, xps.id)

    (record,) = list_movements(db_session, admin)
    assert record.id == movement.id
    assert record.equipment_name is None


# ---------- apply_movement_to_stock ----------
def test_apply_outflow_decrements_stock_once(db_session, admin, xps):
    movement = record_movement(db_session, admin, equipment_id=xps.id, kind="outflow", quantity=3)

    equipment = apply_movement_to_stock(db_session, admin, movement.id)
    assert equipment.quantity == 2

    with pytest.raises(ValidationError):
        apply_movement_to_stock(db_session, admin, movement.id)
    assert _stock(db_session, xps.id) == 2


def test_apply_inflow_increments_stock(db_session, admin, xps):
    movement = record_movement(db_session, admin, equipment_id=xps.id, kind="inflow", quantity=4)
    assert apply_movement_to_stock(db_session, admin, movement.id).quantity == 9


def test_apply_refuses_to_go_below_zero(db_session, admin, xps):
    # deux sorties enregistrées contre le même stock de 5
    first = record_movement(db_session, admin, equipment_id=xps.id, kind="outflow", quantity=3)
    second = record_movement(db_session, admin, equipment_id=xps.id, kind="outflow", quantity=3)

    apply_movement_to_stock(db_session, admin, first.id)
    with pytest.raises(InsufficientStock) as excinfo:
        apply_movement_to_stock(db_session, admin, second.id)

    assert excinfo.value.available == 2
    assert _stock(db_session, xps.id) == 2
    # rollback : le mouvement refusé n'est pas marqué comme appliqué
    db_session.expire_all()
    assert db_session.get(Movement, second.id).stock_applied_at is None


def test_only_admin_applies_movements(db_session, user, xps):
    movement = record_movement(db_session, user, equipment_id=xps.id, kind="inflow", quantity=1)
    with pytest.raises(PermissionDenied):
        apply_movement_to_stock(db_session, user, movement.id)
    with pytest.raises(NotFound):
        apply_movement_to_stock(db_session, ActingIdentity(user_id="x", role=Role.admin), 999)
