"""Domain events for the absence engine."""

from absence_engine.events.emitter import AsyncEventBatch, AsyncEventEmitter
from absence_engine.events.types import (
    CaseTransitioned,
    DomainEvent,
    EventCategory,
    EventMetadata,
    MilestoneActionCompleted,
    RtwScheduled,
    SicknessReported,
    TriggerBreached,
)

__all__ = [
    "AsyncEventBatch",
    "AsyncEventEmitter",
    "CaseTransitioned",
    "DomainEvent",
    "EventCategory",
    "EventMetadata",
    "MilestoneActionCompleted",
    "RtwScheduled",
    "SicknessReported",
    "TriggerBreached",
]
