"""
SQLAlchemy model for the User entity
Project: Supply Ledger (healthcare supplies ERP)

Users are referenced as document creators and as audit log actors. Their role
determines the capabilities granted to them (see core.permissions).
"""

from __future__ import annotations
from enum import Enum
import uuid

from sqlalchemy import Boolean, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from supply_ledger.models import Base
from supply_ledger.models.mixins import TimestampMixin


class UserRole(str, Enum):
    """User roles."""
    ADMIN = "admin"
    ACCOUNTANT = "accountant"
    SALES = "sales"
    STOCK_CONTROLLER = "stock_controller"
    VIEWER = "viewer"


class User(Base, TimestampMixin):
    """
    System user.

    Attributes:
        id: UUID primary key
        company_id: Company the user works for
        email: Unique email
        full_name: Display name
        role: One of UserRole
        is_active: Disabled users cannot authenticate
    """

    __tablename__ = "users"

    # Primary key UUID
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        doc="UUID primary key",
    )

    company_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True,
        doc="Company the user belongs to",
    )

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        doc="Unique email",
    )

    full_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        doc="Full name",
    )

    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=UserRole.VIEWER.value,
        doc="User role",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        doc="False for disabled users",
    )

    __table_args__ = (
        Index("ix_users_email", "email"),
        Index("ix_users_role", "role"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
