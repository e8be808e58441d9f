"""Milestone catalog and milestone action API endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Response, status

from absence_engine.api.dependencies import ActorId, DbSession, Emitter, OrganisationId
from absence_engine.api.schemas import (
    ErrorResponse,
    MilestoneActionResponse,
    MilestoneActionUpdate,
    MilestoneActionUpdateResponse,
    MilestoneConfigResponse,
    MilestoneConfigUpsert,
)
from absence_engine.database import unit_of_work
from absence_engine.services.milestone_service import MilestoneService
from absence_engine.services.milestone_workflow import MilestoneWorkflowService

router = APIRouter(tags=["milestones"])


# ============================================================================
# Catalog
# ============================================================================


@router.get("/milestones", response_model=list[MilestoneConfigResponse])
async def list_milestones(
    db: DbSession,
    organisation_id: OrganisationId,
    include_inactive: bool = False,
) -> list[MilestoneConfigResponse]:
    """Effective milestone catalog for the organisation."""
    catalog = await MilestoneService(db).get_effective_milestones(
        organisation_id, include_inactive=include_inactive
    )
    return [MilestoneConfigResponse.model_validate(entry) for entry in catalog]


@router.put(
    "/milestones",
    response_model=MilestoneConfigResponse,
    responses={422: {"model": ErrorResponse}},
)
async def upsert_milestone(
    db: DbSession,
    organisation_id: OrganisationId,
    actor_id: ActorId,
    payload: MilestoneConfigUpsert,
) -> MilestoneConfigResponse:
    """Create or update the organisation's override for a milestone key."""
    async with unit_of_work(db):
        config = await MilestoneService(db).upsert_org_milestone(
            organisation_id, payload.model_dump(), actor_id
        )
    return MilestoneConfigResponse.model_validate(config)


@router.delete(
    "/milestones/{config_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def reset_milestone(
    db: DbSession,
    organisation_id: OrganisationId,
    actor_id: ActorId,
    config_id: Annotated[UUID, Path()],
) -> Response:
    """Delete an organisation override, reverting the key to its default."""
    async with unit_of_work(db):
        await MilestoneService(db).reset_to_default(config_id, organisation_id, actor_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Milestone actions
# ============================================================================


@router.get("/milestone-actions/outstanding", response_model=list[MilestoneActionResponse])
async def list_outstanding_actions(
    db: DbSession,
    organisation_id: OrganisationId,
    today: date | None = None,
) -> list[MilestoneActionResponse]:
    actions = await MilestoneService(db).list_outstanding(organisation_id, today)
    return [MilestoneActionResponse.model_validate(a) for a in actions]


@router.get("/milestone-actions/overdue", response_model=list[MilestoneActionResponse])
async def list_overdue_actions(
    db: DbSession,
    organisation_id: OrganisationId,
    today: date | None = None,
) -> list[MilestoneActionResponse]:
    actions = await MilestoneService(db).list_overdue(organisation_id, today)
    return [MilestoneActionResponse.model_validate(a) for a in actions]


@router.patch(
    "/milestone-actions/{action_id}",
    response_model=MilestoneActionUpdateResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def update_milestone_action(
    db: DbSession,
    organisation_id: OrganisationId,
    actor_id: ActorId,
    emitter: Emitter,
    action_id: Annotated[UUID, Path()],
    payload: MilestoneActionUpdate,
) -> MilestoneActionUpdateResponse:
    """Update an action; completing some milestones also advances the case."""
    async with unit_of_work(db, emitter):
        outcome = await MilestoneWorkflowService(db, emitter).update_action(
            action_id,
            organisation_id,
            payload.status,
            actor_id,
            notes=payload.notes,
            completed_at=payload.completed_at,
        )

    return MilestoneActionUpdateResponse(
        action=MilestoneActionResponse.model_validate(outcome.action),
        case_status=outcome.case_status,
        transition_applied=outcome.transition_applied,
    )


@router.post(
    "/milestone-actions/{action_id}/reset",
    response_model=MilestoneActionResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def reset_milestone_action(
    db: DbSession,
    organisation_id: OrganisationId,
    action_id: Annotated[UUID, Path()],
) -> MilestoneActionResponse:
    """Undo progress on an action while its case is still open."""
    async with unit_of_work(db):
        action = await MilestoneService(db).reset_to_pending(action_id, organisation_id)
    return MilestoneActionResponse.model_validate(action)
