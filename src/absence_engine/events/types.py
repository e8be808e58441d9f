"""Domain event types for absence case operations.

All events are:
- Immutable (frozen dataclasses)
- Typed with explicit payloads
- Traceable via metadata

Events carry identifiers and dates only. Free-text notes and absence
details never appear in a payload, so handlers that fan out to
notifications cannot leak health information.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    CASE = "case"
    MILESTONE = "milestone"
    TRIGGER = "trigger"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    organisation_id: UUID
    correlation_id: UUID  # Links related events
    actor_id: UUID | None  # User or system that triggered
    actor_type: str  # 'user' or 'system'
    source_service: str  # Service that emitted
    version: int = 1

    @classmethod
    def create(
        cls,
        organisation_id: UUID,
        actor_id: UUID | None = None,
        correlation_id: UUID | None = None,
        actor_type: str | None = None,
        source_service: str = "absence_engine",
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=datetime.now(timezone.utc),
            organisation_id=organisation_id,
            correlation_id=correlation_id or uuid4(),
            actor_id=actor_id,
            actor_type=actor_type or ("user" if actor_id else "system"),
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        return _serialize_dict(asdict(self))

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


def _serialize_dict(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: _serialize_dict(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_serialize_dict(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Enum):
        return obj.value
    return obj


# =============================================================================
# Case Events
# =============================================================================


@dataclass(frozen=True)
class SicknessReported(DomainEvent):
    """A new sickness case was created."""

    sickness_case_id: UUID
    employee_id: UUID
    absence_start_date: date

    @property
    def category(self) -> EventCategory:
        return EventCategory.CASE


@dataclass(frozen=True)
class CaseTransitioned(DomainEvent):
    """A case moved between lifecycle statuses."""

    sickness_case_id: UUID
    employee_id: UUID
    action: str
    from_status: str
    to_status: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.CASE


@dataclass(frozen=True)
class RtwScheduled(DomainEvent):
    """A return-to-work meeting was scheduled for a case."""

    sickness_case_id: UUID
    employee_id: UUID

    @property
    def category(self) -> EventCategory:
        return EventCategory.CASE


# =============================================================================
# Milestone Events
# =============================================================================


@dataclass(frozen=True)
class MilestoneActionCompleted(DomainEvent):
    """A milestone action was marked complete."""

    milestone_action_id: UUID
    sickness_case_id: UUID
    milestone_key: str
    completed_by: UUID | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.MILESTONE


# =============================================================================
# Trigger Events
# =============================================================================


@dataclass(frozen=True)
class TriggerBreached(DomainEvent):
    """An absence threshold rule was breached and an alert recorded."""

    trigger_alert_id: UUID
    trigger_config_id: UUID
    employee_id: UUID
    sickness_case_id: UUID | None
    trigger_type: str
    threshold_value: int
    triggered_value: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.TRIGGER
