from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from stockroom.app.api.deps import get_acting_identity, get_db
from stockroom.app.db.models.models_v1 import Order
from stockroom.app.schemas.inventory import OrderPageRead, OrderRead
from stockroom.services.access import ActingIdentity
from stockroom.services import procurement

router = APIRouter(prefix="/orders")


class OrderCreate(BaseModel):
    manufacturer: str = Field(min_length=1, max_length=255)
    acquisition_date: date
    tracking_code: str | None = Field(default=None, max_length=128)


def _to_read(order: Order) -> OrderRead:
    return OrderRead(
        id=order.id,
        manufacturer=order.manufacturer,
        acquisition_date=order.acquisition_date,
        tracking_code=order.tracking_code,
        created_by=order.created_by,
        creator_name=order.creator.display_name if order.creator else None,
        created_at=order.created_at,
    )


@router.get("", response_model=OrderPageRead)
def list_orders(
    manufacturer: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    search: str | None = None,
    sort: str = "created_at",
    ascending: bool = False,
    page: int = 0,
    page_size: int | None = None,
    db: Session = Depends(get_db),
    actor: ActingIdentity = Depends(get_acting_identity),
):
    result = procurement.list_orders(
        db,
        actor,
        manufacturer=manufacturer,
        date_from=date_from,
        date_to=date_to,
        search=search,
        sort_field=sort,
        ascending=ascending,
        page=page,
        page_size=page_size,
    )
    return OrderPageRead(
        items=[_to_read(o) for o in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
    )


@router.post("", response_model=OrderRead, status_code=201)
def create_order(
    payload: OrderCreate,
    db: Session = Depends(get_db),
    actor: ActingIdentity = Depends(get_acting_identity),
):
    order = procurement.create_order(
        db,
        actor,
        manufacturer=payload.manufacturer,
        acquisition_date=payload.acquisition_date,
        tracking_code=payload.tracking_code,
    )
    return _to_read(order)
