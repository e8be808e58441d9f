"""Sickness case API endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from absence_engine.api.dependencies import ActorId, Codec, DbSession, Emitter, OrganisationId
from absence_engine.api.schemas import (
    CaseTransitionResponse,
    EndDateUpdate,
    ErrorResponse,
    MilestoneActionResponse,
    SicknessCaseCreate,
    SicknessCaseCreated,
    SicknessCaseDetail,
    SicknessCaseResponse,
    TimelineEntryResponse,
    TransitionRequest,
)
from absence_engine.config import get_settings
from absence_engine.database import unit_of_work
from absence_engine.models import SicknessCase
from absence_engine.services.milestone_service import MilestoneService
from absence_engine.services.sickness_case_service import SicknessCaseService
from absence_engine.services.state_machine import CaseStateMachine
from absence_engine.services.workflow_service import WorkflowService

router = APIRouter(prefix="/sickness-cases", tags=["sickness-cases"])

CaseId = Annotated[UUID, Path()]


def _case_service(db, emitter=None, codec=None) -> SicknessCaseService:
    return SicknessCaseService(
        db, emitter=emitter, codec=codec, region=get_settings().bank_holiday_region
    )


def _detail(case: SicknessCase, notes: str | None) -> SicknessCaseDetail:
    return SicknessCaseDetail(
        **SicknessCaseResponse.model_validate(case).model_dump(),
        notes=notes,
        available_actions=CaseStateMachine.get_available_actions(case.status),
    )


# ============================================================================
# Case CRUD
# ============================================================================


@router.post(
    "",
    response_model=SicknessCaseCreated,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def report_absence(
    db: DbSession,
    organisation_id: OrganisationId,
    actor_id: ActorId,
    emitter: Emitter,
    codec: Codec,
    payload: SicknessCaseCreate,
) -> SicknessCaseCreated:
    """Open a case, generate its milestone actions and evaluate triggers."""
    async with unit_of_work(db, emitter):
        created = await _case_service(db, emitter, codec).create_case(
            organisation_id=organisation_id,
            employee_id=payload.employee_id,
            reported_by=actor_id,
            absence_type=payload.absence_type,
            absence_start_date=payload.absence_start_date,
            absence_end_date=payload.absence_end_date,
            notes=payload.notes,
        )

    return SicknessCaseCreated(
        case=SicknessCaseResponse.model_validate(created.case),
        milestone_action_count=len(created.actions),
        alert_count=len(created.alerts),
    )


@router.get("", response_model=list[SicknessCaseResponse])
async def list_cases(
    db: DbSession,
    organisation_id: OrganisationId,
    employee_id: UUID | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> list[SicknessCaseResponse]:
    """List cases for an organisation, newest absence first."""
    cases = await _case_service(db).list_cases(organisation_id, employee_id, status_filter)
    return [SicknessCaseResponse.model_validate(c) for c in cases]


@router.get(
    "/{case_id}",
    response_model=SicknessCaseDetail,
    responses={404: {"model": ErrorResponse}},
)
async def get_case(
    db: DbSession,
    organisation_id: OrganisationId,
    codec: Codec,
    case_id: CaseId,
) -> SicknessCaseDetail:
    service = _case_service(db, codec=codec)
    case = await service.get_case(case_id, organisation_id)
    return _detail(case, service.get_notes(case))


@router.patch(
    "/{case_id}/end-date",
    response_model=SicknessCaseResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def update_end_date(
    db: DbSession,
    organisation_id: OrganisationId,
    actor_id: ActorId,
    emitter: Emitter,
    case_id: CaseId,
    payload: EndDateUpdate,
) -> SicknessCaseResponse:
    """Set or change the end date; working days and triggers are recomputed."""
    async with unit_of_work(db, emitter):
        case, _ = await _case_service(db, emitter).update_end_date(
            case_id, organisation_id, payload.absence_end_date, actor_id
        )
    return SicknessCaseResponse.model_validate(case)


# ============================================================================
# Workflow
# ============================================================================


@router.post(
    "/{case_id}/transitions",
    response_model=SicknessCaseResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def transition_case(
    db: DbSession,
    organisation_id: OrganisationId,
    actor_id: ActorId,
    emitter: Emitter,
    case_id: CaseId,
    payload: TransitionRequest,
) -> SicknessCaseResponse:
    """Apply a workflow action to a case."""
    async with unit_of_work(db, emitter):
        case = await WorkflowService(db, emitter).transition(
            case_id, payload.action, actor_id, organisation_id, notes=payload.notes
        )
    return SicknessCaseResponse.model_validate(case)


@router.get(
    "/{case_id}/transitions",
    response_model=list[CaseTransitionResponse],
    responses={404: {"model": ErrorResponse}},
)
async def list_transitions(
    db: DbSession,
    organisation_id: OrganisationId,
    case_id: CaseId,
) -> list[CaseTransitionResponse]:
    transitions = await WorkflowService(db).get_transitions(case_id, organisation_id)
    return [CaseTransitionResponse.model_validate(t) for t in transitions]


# ============================================================================
# Timeline and milestone actions
# ============================================================================


@router.get(
    "/{case_id}/timeline",
    response_model=list[TimelineEntryResponse],
    responses={404: {"model": ErrorResponse}},
)
async def get_timeline(
    db: DbSession,
    organisation_id: OrganisationId,
    case_id: CaseId,
    today: date | None = None,
) -> list[TimelineEntryResponse]:
    """Projected milestone due dates with OVERDUE / DUE_TODAY / UPCOMING status."""
    entries = await MilestoneService(db).get_case_timeline(case_id, organisation_id, today)
    return [TimelineEntryResponse.model_validate(e) for e in entries]


@router.get(
    "/{case_id}/milestone-actions",
    response_model=list[MilestoneActionResponse],
    responses={404: {"model": ErrorResponse}},
)
async def list_milestone_actions(
    db: DbSession,
    organisation_id: OrganisationId,
    case_id: CaseId,
) -> list[MilestoneActionResponse]:
    actions = await MilestoneService(db).list_actions(case_id, organisation_id)
    return [MilestoneActionResponse.model_validate(a) for a in actions]
