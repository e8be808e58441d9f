"""Sickness case and transition log models."""

from __future__ import annotations

from datetime import date
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from absence_engine.models.base import Base, TimestampMixin, UpdatedAtMixin

CASE_STATUSES = (
    "REPORTED",
    "TRACKING",
    "FIT_NOTE_RECEIVED",
    "RTW_SCHEDULED",
    "RTW_COMPLETED",
    "CLOSED",
)

ABSENCE_TYPES = (
    "musculoskeletal",
    "mental_health",
    "respiratory",
    "surgical",
    "other",
)


def _in_list(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


class SicknessCase(Base, TimestampMixin, UpdatedAtMixin):
    """One tracked sickness absence for one employee.

    Status only changes through the workflow service; dates change only
    through explicit date updates, which recompute working_days_lost.
    """

    __tablename__ = "sickness_case"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    organisation_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("organisation.id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    reported_by: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="REPORTED")
    absence_type: Mapped[str] = mapped_column(String(50), nullable=False)
    absence_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    absence_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    working_days_lost: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_long_term: Mapped[bool] = mapped_column(default=False, nullable=False)
    notes_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(_in_list("status", CASE_STATUSES), name="sickness_case_status_check"),
        CheckConstraint(
            _in_list("absence_type", ABSENCE_TYPES), name="sickness_case_absence_type_check"
        ),
        CheckConstraint(
            "absence_end_date IS NULL OR absence_end_date >= absence_start_date",
            name="sickness_case_dates_ordered",
        ),
        CheckConstraint(
            "(absence_end_date IS NULL) = (working_days_lost IS NULL)",
            name="sickness_case_working_days_derived",
        ),
        Index("ix_sickness_case_org", "organisation_id"),
        Index("ix_sickness_case_employee", "employee_id"),
        Index("ix_sickness_case_status", "status"),
    )

    @property
    def is_closed(self) -> bool:
        return self.status == "CLOSED"


class CaseTransition(Base, TimestampMixin):
    """Append-only lifecycle log entry.

    from_status is NULL for the creation pseudo-transition into REPORTED.
    """

    __tablename__ = "case_transition"

    id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    sickness_case_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("sickness_case.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    to_status: Mapped[str] = mapped_column(String(30), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    performed_by: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
