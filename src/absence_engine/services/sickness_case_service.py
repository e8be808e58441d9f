"""Sickness case service - case creation, retrieval and date updates.

Status changes are not handled here; they go through WorkflowService.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from absence_engine.events import AsyncEventEmitter, EventMetadata, SicknessReported
from absence_engine.models import (
    ABSENCE_TYPES,
    CaseTransition,
    Employee,
    MilestoneAction,
    SicknessCase,
    TriggerAlert,
)
from absence_engine.services.audit import AuditService
from absence_engine.services.encryption import FieldCodec, get_field_codec
from absence_engine.services.errors import NotFoundError, ValidationError
from absence_engine.services.milestone_service import MilestoneService
from absence_engine.services.state_machine import INITIAL_STATUS, REPORT_ACTION
from absence_engine.services.trigger_service import TriggerService
from absence_engine.services.working_days import DEFAULT_REGION, count_working_days
from absence_engine.services.workflow_service import WorkflowService

logger = logging.getLogger(__name__)


@dataclass
class CaseCreated:
    """Result of opening a case."""

    case: SicknessCase
    actions: list[MilestoneAction]
    alerts: list[TriggerAlert]


class SicknessCaseService:
    """Service for sickness case records.

    Operations:
    - create_case: open a case, generate its milestones, evaluate triggers
    - get_case / get_notes: load a case and decrypt its notes
    - list_cases: organisation or employee listings
    - update_end_date: set or change the end date and re-evaluate triggers
    """

    def __init__(
        self,
        session: AsyncSession,
        emitter: AsyncEventEmitter | None = None,
        codec: FieldCodec | None = None,
        region: str = DEFAULT_REGION,
    ):
        self.session = session
        self.emitter = emitter
        self._codec = codec
        self.region = region
        self.audit = AuditService(session)
        self.milestones = MilestoneService(session, emitter)
        self.triggers = TriggerService(session, emitter)
        self.workflow = WorkflowService(session, emitter)

    @property
    def codec(self) -> FieldCodec:
        if self._codec is None:
            self._codec = get_field_codec()
        return self._codec

    def _working_days(self, start: date, end: date | None) -> int | None:
        if end is None:
            return None
        if end < start:
            raise ValidationError(
                "absence_end_date must not be before absence_start_date", "absence_end_date"
            )
        return count_working_days(start, end, self.region)

    async def create_case(
        self,
        organisation_id: UUID,
        employee_id: UUID,
        reported_by: UUID,
        absence_type: str,
        absence_start_date: date,
        absence_end_date: date | None = None,
        notes: str | None = None,
        today: date | None = None,
    ) -> CaseCreated:
        """Open a case in REPORTED.

        Writes the case, its creation transition, and its milestone actions
        in the caller's transaction, then evaluates trigger rules.
        """
        employee = await self.session.get(Employee, employee_id)
        if employee is None or employee.organisation_id != organisation_id:
            raise NotFoundError("Employee", employee_id)
        if absence_type not in ABSENCE_TYPES:
            raise ValidationError(f"Unknown absence type '{absence_type}'", "absence_type")

        working_days_lost = self._working_days(absence_start_date, absence_end_date)

        case = SicknessCase(
            organisation_id=organisation_id,
            employee_id=employee_id,
            reported_by=reported_by,
            status=INITIAL_STATUS,
            absence_type=absence_type,
            absence_start_date=absence_start_date,
            absence_end_date=absence_end_date,
            working_days_lost=working_days_lost,
            notes_encrypted=self.codec.encrypt(notes) if notes else None,
        )
        self.session.add(case)
        await self.session.flush()

        self.session.add(
            CaseTransition(
                sickness_case_id=case.id,
                from_status=None,
                to_status=INITIAL_STATUS,
                action=REPORT_ACTION,
                performed_by=reported_by,
            )
        )
        actions = await self.milestones.generate_actions(case)
        await self.workflow.refresh_long_term_flag(case, today)

        await self.audit.record(
            actor_id=reported_by,
            organisation_id=organisation_id,
            action="sickness_case.create",
            entity="sickness_case",
            entity_id=case.id,
            metadata={
                "employee_id": employee_id,
                "absence_type": absence_type,
                "absence_start_date": absence_start_date,
                "absence_end_date": absence_end_date,
            },
        )

        if self.emitter is not None:
            await self.emitter.emit(
                SicknessReported(
                    metadata=EventMetadata.create(organisation_id, actor_id=reported_by),
                    sickness_case_id=case.id,
                    employee_id=employee_id,
                    absence_start_date=absence_start_date,
                )
            )

        alerts = await self.triggers.evaluate(employee_id, organisation_id, case.id, today)
        logger.info(
            "Opened case %s for employee %s with %d milestone actions",
            case.id,
            employee_id,
            len(actions),
        )
        return CaseCreated(case=case, actions=actions, alerts=alerts)

    async def get_case(self, case_id: UUID, organisation_id: UUID) -> SicknessCase:
        case = await self.session.get(SicknessCase, case_id)
        if case is None or case.organisation_id != organisation_id:
            raise NotFoundError("Sickness case", case_id)
        return case

    def get_notes(self, case: SicknessCase) -> str | None:
        """Decrypted notes for a case."""
        if not case.notes_encrypted:
            return None
        return self.codec.decrypt(case.notes_encrypted)

    async def list_cases(
        self,
        organisation_id: UUID,
        employee_id: UUID | None = None,
        status: str | None = None,
    ) -> list[SicknessCase]:
        query = select(SicknessCase).where(SicknessCase.organisation_id == organisation_id)
        if employee_id is not None:
            query = query.where(SicknessCase.employee_id == employee_id)
        if status is not None:
            query = query.where(SicknessCase.status == status)
        result = await self.session.execute(
            query.order_by(SicknessCase.absence_start_date.desc())
        )
        return list(result.scalars().all())

    async def update_end_date(
        self,
        case_id: UUID,
        organisation_id: UUID,
        end_date: date | None,
        user_id: UUID,
        today: date | None = None,
    ) -> tuple[SicknessCase, list[TriggerAlert]]:
        """Set, change or clear the end date and recompute working days lost.

        Duration and frequency totals may change, so trigger rules are
        evaluated again afterwards.
        """
        case = await self.get_case(case_id, organisation_id)
        case.working_days_lost = self._working_days(case.absence_start_date, end_date)
        case.absence_end_date = end_date
        await self.session.flush()
        await self.workflow.refresh_long_term_flag(case, today)

        await self.audit.record(
            actor_id=user_id,
            organisation_id=organisation_id,
            action="sickness_case.update",
            entity="sickness_case",
            entity_id=case.id,
            metadata={"end_date": end_date, "working_days_lost": case.working_days_lost},
        )

        alerts = await self.triggers.evaluate(case.employee_id, organisation_id, case.id, today)
        return case, alerts

    async def get_transitions(
        self,
        case_id: UUID,
        organisation_id: UUID,
    ) -> list[CaseTransition]:
        return await self.workflow.get_transitions(case_id, organisation_id)
