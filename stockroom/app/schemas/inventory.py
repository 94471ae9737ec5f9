from datetime import date, datetime

from pydantic import BaseModel

from stockroom.app.db.models.core_types import MovementKind, Role


class CategoryRead(BaseModel):
    id: int
    name: str
    description: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class CategoryRef(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class EquipmentRead(BaseModel):
    id: int
    name: str
    serial_number: str
    category_id: int
    category: CategoryRef | None = None
    quantity: int
    acquisition_date: date
    description: str | None = None
    created_at: datetime
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class MovementRead(BaseModel):
    id: int
    equipment_id: int
    equipment_name: str | None = None  # None si l'équipement a été supprimé
    serial_number: str | None = None
    kind: MovementKind
    quantity: int
    happened_at: datetime
    user_id: str
    user_name: str | None = None
    notes: str | None = None
    stock_applied_at: datetime | None = None

    class Config:
        from_attributes = True


class ProfileRead(BaseModel):
    id: str
    display_name: str
    role: Role
    created_at: datetime

    class Config:
        from_attributes = True


class OrderRead(BaseModel):
    id: int
    manufacturer: str
    acquisition_date: date
    tracking_code: str | None = None
    created_by: str
    creator_name: str | None = None
    created_at: datetime


class OrderPageRead(BaseModel):
    items: list[OrderRead]
    total: int
    page: int
    page_size: int
    total_pages: int
