from __future__ import annotations

from datetime import datetime, date

from sqlalchemy import (
    String,
    BigInteger,
    DateTime,
    Date,
    ForeignKey,
    Integer,
    Text,
    Enum,
    UniqueConstraint,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockroom.app.db.base import Base, BigIntPK, utcnow
from stockroom.app.db.models.core_types import Role, MovementKind


# ---------- AUTH ----------
class UserProfile(Base):
    __tablename__ = "profiles"
    # même id que l'utilisateur côté fournisseur d'identité (uuid)
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[Role] = mapped_column(Enum(Role, name="role"), default=Role.user, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=utcnow)


# ---------- MASTER DATA ----------
class Category(Base):
    __tablename__ = "categories"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Equipment(Base):
    __tablename__ = "equipment"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    serial_number: Mapped[str] = mapped_column(String(128), nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    acquisition_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    category: Mapped[Category] = relationship()

    __table_args__ = (
        UniqueConstraint("serial_number", name="uq_equipment_serial_number"),
        CheckConstraint("quantity >= 0", name="ck_equipment_quantity_nonneg"),
    )


# ---------- INVENTORY ----------
class Movement(Base):
    __tablename__ = "movements"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    # pas de FK : supprimer un équipement laisse l'historique orphelin
    equipment_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    kind: Mapped[MovementKind] = mapped_column(Enum(MovementKind, name="movement_kind"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    happened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    user_id: Mapped[str] = mapped_column(ForeignKey("profiles.id", ondelete="RESTRICT"), nullable=False)

    stock_applied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    user: Mapped[UserProfile] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_movement_qty_pos"),
        Index("ix_movements_equipment_time", "equipment_id", "happened_at"),
    )


# ---------- PROCUREMENT ----------
class Order(Base):
    __tablename__ = "orders"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    manufacturer: Mapped[str] = mapped_column(String(255), nullable=False)
    acquisition_date: Mapped[date] = mapped_column(Date, nullable=False)
    tracking_code: Mapped[str | None] = mapped_column(String(128), index=True)
    created_by: Mapped[str] = mapped_column(ForeignKey("profiles.id", ondelete="RESTRICT"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    creator: Mapped[UserProfile] = relationship()
