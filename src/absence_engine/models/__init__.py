"""ORM models for the absence engine."""

from absence_engine.models.audit import AuditEvent
from absence_engine.models.base import Base, TimestampMixin, UpdatedAtMixin, utcnow
from absence_engine.models.milestones import MilestoneAction, MilestoneConfig
from absence_engine.models.organisation import Employee, Organisation
from absence_engine.models.sickness import (
    ABSENCE_TYPES,
    CASE_STATUSES,
    CaseTransition,
    SicknessCase,
)
from absence_engine.models.triggers import TriggerAlert, TriggerConfig

__all__ = [
    "ABSENCE_TYPES",
    "AuditEvent",
    "Base",
    "CASE_STATUSES",
    "CaseTransition",
    "Employee",
    "MilestoneAction",
    "MilestoneConfig",
    "Organisation",
    "SicknessCase",
    "TimestampMixin",
    "TriggerAlert",
    "TriggerConfig",
    "UpdatedAtMixin",
    "utcnow",
]
