"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from absence_engine.services.milestone_catalog import TimelineStatus


# ============================================================================
# Sickness case schemas
# ============================================================================

AbsenceType = Literal["musculoskeletal", "mental_health", "respiratory", "surgical", "other"]
ActionName = Literal[
    "acknowledge",
    "receive_fit_note",
    "schedule_rtw",
    "complete_rtw",
    "close_case",
    "reopen",
]


class SicknessCaseCreate(BaseModel):
    """Schema for reporting a new absence."""

    employee_id: UUID
    absence_type: AbsenceType
    absence_start_date: date
    absence_end_date: date | None = None
    notes: str | None = Field(default=None, max_length=5000)

    @model_validator(mode="after")
    def check_dates(self) -> "SicknessCaseCreate":
        if self.absence_end_date and self.absence_end_date < self.absence_start_date:
            raise ValueError("absence_end_date must not be before absence_start_date")
        return self


class SicknessCaseResponse(BaseModel):
    """Schema for sickness case response. Notes are never included."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organisation_id: UUID
    employee_id: UUID
    reported_by: UUID
    status: str
    absence_type: str
    absence_start_date: date
    absence_end_date: date | None = None
    working_days_lost: int | None = None
    is_long_term: bool
    created_at: datetime
    updated_at: datetime


class SicknessCaseDetail(SicknessCaseResponse):
    """Case with decrypted notes and the actions legal from its status."""

    notes: str | None = None
    available_actions: list[str] = Field(default_factory=list)


class SicknessCaseCreated(BaseModel):
    case: SicknessCaseResponse
    milestone_action_count: int
    alert_count: int


class EndDateUpdate(BaseModel):
    absence_end_date: date | None


class TransitionRequest(BaseModel):
    """Schema for applying a workflow action."""

    action: ActionName
    notes: str | None = Field(default=None, max_length=2000)


class CaseTransitionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    sickness_case_id: UUID
    from_status: str | None = None
    to_status: str
    action: str
    performed_by: UUID
    notes: str | None = None
    created_at: datetime


# ============================================================================
# Milestone schemas
# ============================================================================


class MilestoneConfigResponse(BaseModel):
    """Effective catalog entry. id is null for built-in defaults not yet seeded."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID | None = None
    organisation_id: UUID | None = None
    milestone_key: str
    label: str
    day_offset: int
    description: str | None = None
    is_active: bool
    is_default: bool


class MilestoneConfigUpsert(BaseModel):
    """Schema for creating or updating an organisation override."""

    milestone_key: str = Field(min_length=1, max_length=50)
    label: str = Field(min_length=3, max_length=100)
    day_offset: int = Field(ge=1)
    description: str | None = None
    is_active: bool = True


class TimelineEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    milestone_key: str
    label: str
    day_offset: int
    description: str | None = None
    due_date: date
    status: TimelineStatus


class MilestoneActionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organisation_id: UUID
    sickness_case_id: UUID
    milestone_key: str
    action_type: str
    status: str
    due_date: date
    completed_by: UUID | None = None
    completed_at: datetime | None = None
    notes: str | None = None


class MilestoneActionUpdate(BaseModel):
    status: Literal["PENDING", "IN_PROGRESS", "COMPLETED"]
    notes: str | None = Field(default=None, max_length=2000)
    completed_at: datetime | None = None


class MilestoneActionUpdateResponse(BaseModel):
    action: MilestoneActionResponse
    case_status: str | None = None
    transition_applied: str | None = None


# ============================================================================
# Trigger schemas
# ============================================================================

TriggerTypeName = Literal["FREQUENCY", "BRADFORD_FACTOR", "DURATION"]


class TriggerConfigCreate(BaseModel):
    name: str = Field(min_length=3, max_length=100)
    trigger_type: TriggerTypeName
    threshold_value: int = Field(ge=1)
    period_days: int | None = Field(default=None, ge=1)
    is_active: bool = True


class TriggerConfigUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=3, max_length=100)
    trigger_type: TriggerTypeName | None = None
    threshold_value: int | None = Field(default=None, ge=1)
    period_days: int | None = Field(default=None, ge=1)
    is_active: bool | None = None


class TriggerConfigResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organisation_id: UUID
    name: str
    trigger_type: str
    threshold_value: int
    period_days: int | None = None
    is_active: bool
    created_by: UUID
    created_at: datetime
    updated_at: datetime


class TriggerAlertResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organisation_id: UUID
    trigger_config_id: UUID
    employee_id: UUID
    sickness_case_id: UUID | None = None
    triggered_value: int
    acknowledged_by: UUID | None = None
    acknowledged_at: datetime | None = None
    created_at: datetime


class BradfordFactorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    score: int
    spells: int
    total_days: int
    risk_level: str


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
