"""Milestone catalog and per-case milestone action models."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from absence_engine.models.base import Base, TimestampMixin, UpdatedAtMixin


class MilestoneConfig(Base, TimestampMixin, UpdatedAtMixin):
    """Milestone definition.

    organisation_id is NULL for system defaults and set for an
    organisation override of the same milestone_key.
    """

    __tablename__ = "milestone_config"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    organisation_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("organisation.id", ondelete="CASCADE"),
        nullable=True,
    )
    milestone_key: Mapped[str] = mapped_column(String(50), nullable=False)
    label: Mapped[str] = mapped_column(String(100), nullable=False)
    day_offset: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    is_default: Mapped[bool] = mapped_column(default=False, nullable=False)
    created_by: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "organisation_id", "milestone_key", name="uq_milestone_config_org_key"
        ),
        # NULLs are distinct in the constraint above, so defaults need their own index
        Index(
            "uq_milestone_config_default_key",
            "milestone_key",
            unique=True,
            postgresql_where=text("organisation_id IS NULL"),
            sqlite_where=text("organisation_id IS NULL"),
        ),
        CheckConstraint("day_offset >= 1", name="milestone_config_offset_positive"),
    )


class MilestoneAction(Base, TimestampMixin, UpdatedAtMixin):
    """Per-case instantiation of one effective catalog entry."""

    __tablename__ = "milestone_action"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    organisation_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("organisation.id", ondelete="CASCADE"),
        nullable=False,
    )
    sickness_case_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("sickness_case.id", ondelete="CASCADE"),
        nullable=False,
    )
    milestone_key: Mapped[str] = mapped_column(String(50), nullable=False)
    action_type: Mapped[str] = mapped_column(String(30), nullable=False, default="MILESTONE")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    completed_by: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "sickness_case_id", "milestone_key", name="uq_milestone_action_case_key"
        ),
        CheckConstraint(
            "status IN ('PENDING', 'IN_PROGRESS', 'COMPLETED')",
            name="milestone_action_status_check",
        ),
        Index("ix_milestone_action_org_status_due", "organisation_id", "status", "due_date"),
    )
