# File: civiceye/models/user.py
# Project: civiceye-backend

from __future__ import annotations
from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import String, Boolean, DateTime, Enum, func
from sqlalchemy.orm import Mapped, mapped_column
from civiceye.db.base import Base

class UserRole(PyEnum):
    super_admin = "super_admin"
    admin = "admin"
    staff = "staff"
    citizen = "citizen"

ADMIN_ROLES = (UserRole.admin, UserRole.super_admin)

class User(Base):
    """Accounts are owned by the auth service; this table is only read here."""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    avatar: Mapped[str | None] = mapped_column(String(500), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, native_enum=False, length=20), nullable=False, default=UserRole.citizen
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES
