"""Organisation and employee models."""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from absence_engine.models.base import Base, JSONType, TimestampMixin, UpdatedAtMixin

DEFAULT_LONG_TERM_DAYS = 28


class Organisation(Base, TimestampMixin, UpdatedAtMixin):
    """Multi-tenant container."""

    __tablename__ = "organisation"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")
    settings: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    __table_args__ = (
        CheckConstraint(
            "status IN ('ACTIVE', 'SUSPENDED', 'DEACTIVATED')",
            name="organisation_status_check",
        ),
    )

    @property
    def long_term_days(self) -> int:
        """Absence length after which a case counts as long-term."""
        thresholds = (self.settings or {}).get("absenceTriggerThresholds") or {}
        return int(thresholds.get("longTermDays", DEFAULT_LONG_TERM_DAYS))


class Employee(Base, TimestampMixin):
    """Employee within an organisation.

    Only the fields the engine needs are mapped: identity for alerts and
    the reporting line used to find the manager to notify.
    """

    __tablename__ = "employee"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    organisation_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("organisation.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    manager_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("employee.id", ondelete="SET NULL"),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")

    @property
    def display_name(self) -> str:
        """First name plus last initial."""
        initial = self.last_name[:1] if self.last_name else ""
        return f"{self.first_name} {initial}".strip()
