"""Trigger rule and alert models."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from absence_engine.models.base import Base, TimestampMixin, UpdatedAtMixin


class TriggerConfig(Base, TimestampMixin, UpdatedAtMixin):
    """Organisation-defined absence threshold rule."""

    __tablename__ = "trigger_config"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    organisation_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("organisation.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    trigger_type: Mapped[str] = mapped_column(String(30), nullable=False)
    threshold_value: Mapped[int] = mapped_column(Integer, nullable=False)
    period_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_by: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "trigger_type IN ('FREQUENCY', 'BRADFORD_FACTOR', 'DURATION')",
            name="trigger_config_type_check",
        ),
        CheckConstraint("threshold_value >= 1", name="trigger_config_threshold_positive"),
        Index("ix_trigger_config_org_active", "organisation_id", "is_active"),
    )


class TriggerAlert(Base, TimestampMixin):
    """A recorded threshold breach.

    Immutable apart from the acknowledgement stamp. The unique constraint on
    (trigger_config_id, sickness_case_id) is the authoritative dedup guard.
    """

    __tablename__ = "trigger_alert"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    organisation_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("organisation.id", ondelete="CASCADE"),
        nullable=False,
    )
    trigger_config_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("trigger_config.id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    sickness_case_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("sickness_case.id", ondelete="SET NULL"),
        nullable=True,
    )
    triggered_value: Mapped[int] = mapped_column(Integer, nullable=False)
    acknowledged_by: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)
    acknowledged_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint(
            "trigger_config_id", "sickness_case_id", name="uq_trigger_alert_config_case"
        ),
        Index("ix_trigger_alert_org_ack", "organisation_id", "acknowledged_at"),
        Index("ix_trigger_alert_employee", "employee_id"),
    )

    @property
    def is_acknowledged(self) -> bool:
        return self.acknowledged_at is not None
