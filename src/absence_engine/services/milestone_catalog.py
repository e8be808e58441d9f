"""Milestone catalog: built-in defaults, catalog merge and timeline math.

Everything here is pure. Catalog entries are duck-typed: anything with
``milestone_key``, ``label``, ``day_offset``, ``description`` and
``is_active`` attributes works, so ORM rows and the built-in
``MilestoneDefinition`` records merge the same way.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Any, Iterable, Sequence
from uuid import UUID


class TimelineStatus(str, Enum):
    """Temporal status of a milestone relative to today."""

    OVERDUE = "OVERDUE"
    DUE_TODAY = "DUE_TODAY"
    UPCOMING = "UPCOMING"


class MilestoneActionType(str, Enum):
    """Kind of management action a milestone asks for."""

    NOTIFICATION = "NOTIFICATION"
    PROMPT = "PROMPT"
    TRANSITION = "TRANSITION"
    ESCALATION = "ESCALATION"
    REVIEW = "REVIEW"
    MILESTONE = "MILESTONE"


class ActionStatus(str, Enum):
    """Milestone action status values."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


@dataclass(frozen=True)
class MilestoneDefinition:
    """A built-in default milestone."""

    milestone_key: str
    label: str
    day_offset: int
    description: str | None = None
    is_active: bool = True
    organisation_id: UUID | None = None
    id: UUID | None = None

    @property
    def is_default(self) -> bool:
        return True


def _evaluation(week: int) -> MilestoneDefinition:
    return MilestoneDefinition(
        f"WEEK_{week}", f"Week {week} - Evaluation", week * 7, "Scheduled evaluation meeting"
    )


DEFAULT_MILESTONES: tuple[MilestoneDefinition, ...] = (
    MilestoneDefinition(
        "DAY_1",
        "Day 1 - Absence Reported",
        1,
        "Initial absence notification to employee, manager, and HR",
    ),
    MilestoneDefinition(
        "DAY_3",
        "Day 3 - GP Visit Reminder",
        3,
        "Remind employee about GP visit and fit note requirements",
    ),
    MilestoneDefinition(
        "DAY_7",
        "Day 7 - Long-Term Transition",
        7,
        "Case transitions to long-term; prompt for fit note upload and expected return date",
    ),
    MilestoneDefinition(
        "WEEK_2", "Week 2 - Check-in", 14, "Check-in prompt and fit note renewal reminder"
    ),
    MilestoneDefinition("WEEK_3", "Week 3 - Fit Note Renewal", 21, "Fit note renewal reminder"),
    MilestoneDefinition(
        "WEEK_4",
        "Week 4 - GP/OH Report Request",
        28,
        "Prompt HR/manager to request GP or occupational health report",
    ),
    MilestoneDefinition("WEEK_6", "Week 6 - Plan of Action", 42, "Prompt creation of a Plan of Action"),
    MilestoneDefinition("WEEK_10", "Week 10 - First Evaluation", 70, "First evaluation meeting"),
    *(_evaluation(week) for week in range(14, 51, 4)),
    MilestoneDefinition(
        "WEEK_52", "Week 52 - Capability Review", 364, "Formal capability review trigger"
    ),
)

MILESTONE_ACTION_TYPES: dict[str, str] = {
    "DAY_1": MilestoneActionType.NOTIFICATION.value,
    "DAY_3": MilestoneActionType.NOTIFICATION.value,
    "DAY_7": MilestoneActionType.TRANSITION.value,
    "WEEK_2": MilestoneActionType.PROMPT.value,
    "WEEK_3": MilestoneActionType.PROMPT.value,
    "WEEK_4": MilestoneActionType.PROMPT.value,
    "WEEK_6": MilestoneActionType.PROMPT.value,
    **{f"WEEK_{week}": MilestoneActionType.ESCALATION.value for week in range(10, 51, 4)},
    "WEEK_52": MilestoneActionType.REVIEW.value,
}


def action_type_for(milestone_key: str) -> str:
    """Action type for a milestone key; custom keys get MILESTONE."""
    return MILESTONE_ACTION_TYPES.get(milestone_key, MilestoneActionType.MILESTONE.value)


def merge_effective_catalog(
    defaults: Iterable[Any],
    overrides: Iterable[Any],
    include_inactive: bool = False,
) -> list[Any]:
    """Merge organisation overrides over system defaults.

    Builds a key map seeded with ``defaults`` and replaces any key that has
    an override. Override-only keys are added as custom milestones. The
    result is filtered to active entries unless ``include_inactive`` and
    sorted by day offset, then key.
    """
    by_key: dict[str, Any] = {entry.milestone_key: entry for entry in defaults}
    for entry in overrides:
        by_key[entry.milestone_key] = entry

    merged = [
        entry for entry in by_key.values() if include_inactive or entry.is_active
    ]
    merged.sort(key=lambda entry: (entry.day_offset, entry.milestone_key))
    return merged


def due_date_for(start_date: date, day_offset: int) -> date:
    """Date-only due date: start plus offset calendar days."""
    return start_date + timedelta(days=day_offset)


def classify(due_date: date, today: date) -> TimelineStatus:
    if due_date < today:
        return TimelineStatus.OVERDUE
    if due_date == today:
        return TimelineStatus.DUE_TODAY
    return TimelineStatus.UPCOMING


@dataclass(frozen=True)
class TimelineEntry:
    """One projected milestone on a case timeline."""

    milestone_key: str
    label: str
    day_offset: int
    description: str | None
    due_date: date
    status: TimelineStatus


def compute_timeline(
    start_date: date,
    catalog: Sequence[Any],
    today: date,
) -> list[TimelineEntry]:
    """Project each catalog entry onto a case start date."""
    entries = []
    for entry in catalog:
        due = due_date_for(start_date, entry.day_offset)
        entries.append(
            TimelineEntry(
                milestone_key=entry.milestone_key,
                label=entry.label,
                day_offset=entry.day_offset,
                description=entry.description,
                due_date=due,
                status=classify(due, today),
            )
        )
    return entries
