import datetime as dt
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base

# Grantee id that means "visible to everyone"; never a real user row.
EVERYONE = 0


class PermissionType(str, Enum):
    view = "View"


PERMISSION_TYPE_ENUM = SAEnum(
    PermissionType,
    name="permissiontype",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    budgets: Mapped[list["Budget"]] = relationship("Budget", back_populates="owner")

    __table_args__ = (CheckConstraint("username != ''", name="ck_users_username"),)


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    budgets: Mapped[list["Budget"]] = relationship(
        "Budget", back_populates="category"
    )


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)

    owner: Mapped["User"] = relationship("User", back_populates="budgets")
    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="budgets"
    )

    __table_args__ = (
        Index("ix_budgets_user_date", "user_id", "date"),
        CheckConstraint("amount_cents >= 0", name="ck_budgets_amount_positive"),
    )


class Permission(Base):
    __tablename__ = "permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    budget_id: Mapped[int] = mapped_column(ForeignKey("budgets.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=EVERYONE)
    permission_type: Mapped[PermissionType] = mapped_column(
        PERMISSION_TYPE_ENUM, nullable=False, default=PermissionType.view
    )

    __table_args__ = (
        UniqueConstraint("budget_id", "user_id", name="uq_permission_budget_grantee"),
    )
