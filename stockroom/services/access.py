"""
Politique d'accès.

Un rôle = un ensemble de capacités. Les services appellent
require_capability() à chaque entrée, même si l'UI filtre déjà.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from stockroom.app.db.models.core_types import Role
from stockroom.services.errors import PermissionDenied


class Capability(str, enum.Enum):
    read_inventory = "read_inventory"
    record_movement = "record_movement"
    export_movements = "export_movements"
    create_order = "create_order"
    mutate_equipment = "mutate_equipment"
    delete_equipment = "delete_equipment"
    import_equipment = "import_equipment"
    apply_movement = "apply_movement"
    manage_categories = "manage_categories"
    manage_users = "manage_users"


USER_CAPABILITIES = frozenset(
    {
        Capability.read_inventory,
        Capability.record_movement,
        Capability.export_movements,
        Capability.create_order,
    }
)

ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.admin: frozenset(Capability),
    Role.user: USER_CAPABILITIES,
}


@dataclass(frozen=True)
class ActingIdentity:
    user_id: str
    role: Role
    display_name: str | None = None


def has_capability(role: Role | str | None, capability: Capability) -> bool:
    if role is None:
        return False
    try:
        role = Role(role)
    except ValueError:
        return False
    return capability in ROLE_CAPABILITIES.get(role, frozenset())


def can_mutate_equipment(role: Role | str | None) -> bool:
    return has_capability(role, Capability.mutate_equipment)


def can_delete_equipment(role: Role | str | None) -> bool:
    return has_capability(role, Capability.delete_equipment)


def can_manage_users(role: Role | str | None) -> bool:
    return has_capability(role, Capability.manage_users)


def can_manage_categories(role: Role | str | None) -> bool:
    return has_capability(role, Capability.manage_categories)


def require_capability(actor: ActingIdentity | None, capability: Capability) -> ActingIdentity:
    if actor is None:
        raise PermissionDenied("No acting identity")
    if not has_capability(actor.role, capability):
        role = getattr(actor.role, "value", actor.role)
        raise PermissionDenied(f"Role '{role}' cannot {capability.value}")
    return actor
