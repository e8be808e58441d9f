"""Trigger rule, alert and Bradford Factor API endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from absence_engine.api.dependencies import ActorId, DbSession, OrganisationId
from absence_engine.api.schemas import (
    BradfordFactorResponse,
    ErrorResponse,
    TriggerAlertResponse,
    TriggerConfigCreate,
    TriggerConfigResponse,
    TriggerConfigUpdate,
)
from absence_engine.database import unit_of_work
from absence_engine.models import Employee
from absence_engine.services.bradford import BradfordFactorService
from absence_engine.services.errors import NotFoundError
from absence_engine.services.trigger_service import TriggerService

router = APIRouter(tags=["triggers"])


# ============================================================================
# Trigger configuration
# ============================================================================


@router.get("/triggers", response_model=list[TriggerConfigResponse])
async def list_triggers(
    db: DbSession,
    organisation_id: OrganisationId,
    active_only: bool = False,
) -> list[TriggerConfigResponse]:
    configs = await TriggerService(db).list_configs(organisation_id, active_only=active_only)
    return [TriggerConfigResponse.model_validate(c) for c in configs]


@router.post(
    "/triggers",
    response_model=TriggerConfigResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
async def create_trigger(
    db: DbSession,
    organisation_id: OrganisationId,
    actor_id: ActorId,
    payload: TriggerConfigCreate,
) -> TriggerConfigResponse:
    async with unit_of_work(db):
        config = await TriggerService(db).create_config(
            organisation_id, payload.model_dump(), actor_id
        )
    return TriggerConfigResponse.model_validate(config)


@router.get(
    "/triggers/{config_id}",
    response_model=TriggerConfigResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_trigger(
    db: DbSession,
    organisation_id: OrganisationId,
    config_id: Annotated[UUID, Path()],
) -> TriggerConfigResponse:
    config = await TriggerService(db).get_config(config_id, organisation_id)
    return TriggerConfigResponse.model_validate(config)


@router.patch(
    "/triggers/{config_id}",
    response_model=TriggerConfigResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def update_trigger(
    db: DbSession,
    organisation_id: OrganisationId,
    actor_id: ActorId,
    config_id: Annotated[UUID, Path()],
    payload: TriggerConfigUpdate,
) -> TriggerConfigResponse:
    async with unit_of_work(db):
        config = await TriggerService(db).update_config(
            config_id, organisation_id, payload.model_dump(exclude_unset=True), actor_id
        )
    return TriggerConfigResponse.model_validate(config)


# ============================================================================
# Alerts
# ============================================================================


@router.get("/trigger-alerts", response_model=list[TriggerAlertResponse])
async def list_alerts(
    db: DbSession,
    organisation_id: OrganisationId,
    employee_id: UUID | None = None,
    unacknowledged: bool = False,
) -> list[TriggerAlertResponse]:
    alerts = await TriggerService(db).list_alerts(
        organisation_id, employee_id=employee_id, unacknowledged_only=unacknowledged
    )
    return [TriggerAlertResponse.model_validate(a) for a in alerts]


@router.post(
    "/trigger-alerts/{alert_id}/acknowledge",
    response_model=TriggerAlertResponse,
    responses={404: {"model": ErrorResponse}},
)
async def acknowledge_alert(
    db: DbSession,
    organisation_id: OrganisationId,
    actor_id: ActorId,
    alert_id: Annotated[UUID, Path()],
) -> TriggerAlertResponse:
    """Acknowledge an alert. Repeating the call re-stamps it."""
    async with unit_of_work(db):
        alert = await TriggerService(db).acknowledge_alert(alert_id, actor_id, organisation_id)
    return TriggerAlertResponse.model_validate(alert)


# ============================================================================
# Bradford Factor
# ============================================================================


@router.get(
    "/employees/{employee_id}/bradford-factor",
    response_model=BradfordFactorResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_bradford_factor(
    db: DbSession,
    organisation_id: OrganisationId,
    employee_id: Annotated[UUID, Path()],
    today: date | None = None,
) -> BradfordFactorResponse:
    employee = await db.get(Employee, employee_id)
    if employee is None or employee.organisation_id != organisation_id:
        raise NotFoundError("Employee", employee_id)

    result = await BradfordFactorService(db).calculate(employee_id, today)
    return BradfordFactorResponse(
        employee_id=employee_id,
        score=result.score,
        spells=result.spells,
        total_days=result.total_days,
        risk_level=result.risk_level,
    )
