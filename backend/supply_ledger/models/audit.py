"""
SQLAlchemy model for audit logs
Project: Supply Ledger (healthcare supplies ERP)
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from supply_ledger.models import Base
from supply_ledger.models.mixins import TimestampMixin, UUIDMixin


class AuditLog(Base, UUIDMixin, TimestampMixin):
    """
    Audit trail entry.

    Deletions store a full snapshot of the record and its children in `details`
    so that a deleted document can be reconstructed.
    """

    __tablename__ = "audit_logs"

    company_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("companies.id", ondelete="SET NULL"), nullable=True, index=True
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    action: Mapped[str] = mapped_column(String(20), nullable=False, doc="e.g. DELETE")
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, doc="e.g. invoice")
    entity_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True, doc="Snapshot")

    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
    )

    def __repr__(self) -> str:
        return f"AuditLog(action={self.action!r}, entity={self.entity_type}:{self.entity_id})"
