"""
Procurement service.

Les commandes (Order) sont un simple registre d'achat : AUCUN lien
automatique avec le stock d'équipements.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, joinedload

from stockroom.app.core.config import settings
from stockroom.app.db.models.models_v1 import Order
from stockroom.services.access import ActingIdentity, Capability, require_capability
from stockroom.services.errors import ValidationError, gateway_errors

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {
    "manufacturer": Order.manufacturer,
    "acquisition_date": Order.acquisition_date,
    "tracking_code": Order.tracking_code,
    "created_at": Order.created_at,
}


@dataclass(frozen=True)
class OrderPage:
    items: list[Order]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.page_size) if self.page_size else 0


def create_order(
    db: Session,
    actor: ActingIdentity,
    *,
    manufacturer: str | None,
    acquisition_date: date | None,
    tracking_code: str | None = None,
) -> Order:
    require_capability(actor, Capability.create_order)

    manufacturer = (manufacturer or "").strip()
    if not manufacturer:
        raise ValidationError("Manufacturer is required")
    if acquisition_date is None:
        raise ValidationError("Acquisition date is required")

    with gateway_errors(db, "create_order"):
        order = Order(
            manufacturer=manufacturer,
            acquisition_date=acquisition_date,
            tracking_code=(tracking_code or "").strip() or None,
            created_by=actor.user_id,
        )
        db.add(order)
        db.commit()
        db.refresh(order)

    logger.info("Order %s created (%s) by %s", order.id, order.manufacturer, actor.user_id)
    return order


def list_orders(
    db: Session,
    actor: ActingIdentity,
    *,
    manufacturer: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    search: str | None = None,
    sort_field: str = "created_at",
    ascending: bool = False,
    page: int = 0,
    page_size: int | None = None,
) -> OrderPage:
    require_capability(actor, Capability.read_inventory)

    if page_size is None:
        page_size = settings.ORDERS_PAGE_SIZE
    if sort_field not in SORTABLE_FIELDS:
        raise ValidationError(f"Cannot sort orders by '{sort_field}'")
    if page < 0 or page_size < 1:
        raise ValidationError("Invalid page")

    stmt = select(Order)
    if manufacturer:
        stmt = stmt.where(Order.manufacturer.ilike(f"%{manufacturer.strip()}%"))
    if date_from is not None:
        stmt = stmt.where(Order.acquisition_date >= date_from)
    if date_to is not None:
        stmt = stmt.where(Order.acquisition_date <= date_to)
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(Order.tracking_code.ilike(pattern), Order.manufacturer.ilike(pattern)))

    column = SORTABLE_FIELDS[sort_field]
    ordered = stmt.order_by(column.asc() if ascending else column.desc(), Order.id.asc())

    with gateway_errors(db, "list_orders"):
        total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        items = list(
            db.execute(
                ordered.options(joinedload(Order.creator))
                .offset(page * page_size)
                .limit(page_size)
            ).scalars()
        )

    return OrderPage(items=items, total=int(total), page=page, page_size=page_size)
