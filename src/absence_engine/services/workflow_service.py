"""Workflow service - the single entry point for case status changes."""

from __future__ import annotations

import logging
from datetime import date
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from absence_engine.events import (
    AsyncEventEmitter,
    CaseTransitioned,
    EventMetadata,
    RtwScheduled,
)
from absence_engine.models import CaseTransition, Organisation, SicknessCase, utcnow
from absence_engine.models.organisation import DEFAULT_LONG_TERM_DAYS
from absence_engine.services.audit import AuditService
from absence_engine.services.errors import InvalidTransitionError, NotFoundError
from absence_engine.services.state_machine import CaseStateMachine, SicknessAction

logger = logging.getLogger(__name__)


def compute_is_long_term(case: SicknessCase, long_term_days: int, today: date) -> bool:
    """Whether a case has reached the organisation's long-term threshold.

    Ongoing cases compare calendar days since the start; finished cases
    compare working days lost.
    """
    if case.absence_end_date is None:
        return (today - case.absence_start_date).days >= long_term_days
    return (case.working_days_lost or 0) >= long_term_days


class WorkflowService:
    """Validates and applies sickness case transitions.

    Each transition updates the status with a conditional UPDATE keyed on
    the expected current status, appends a CaseTransition row and records
    an audit event, all in the caller's transaction.
    """

    def __init__(self, session: AsyncSession, emitter: AsyncEventEmitter | None = None):
        self.session = session
        self.emitter = emitter
        self.audit = AuditService(session)

    async def get_case(self, case_id: UUID, organisation_id: UUID) -> SicknessCase:
        case = await self.session.get(SicknessCase, case_id)
        if case is None or case.organisation_id != organisation_id:
            raise NotFoundError("Sickness case", case_id)
        return case

    async def transition(
        self,
        case_id: UUID,
        action: str,
        actor_id: UUID,
        organisation_id: UUID,
        notes: str | None = None,
        today: date | None = None,
    ) -> SicknessCase:
        """Apply an action to a case.

        Raises NotFoundError for missing or foreign cases and
        InvalidTransitionError if the action is illegal for the current
        status or the status changed underneath this request.
        """
        case = await self.get_case(case_id, organisation_id)
        from_status = case.status
        to_status = CaseStateMachine.validate_action(from_status, action)
        action = SicknessAction(action).value

        result = await self.session.execute(
            update(SicknessCase)
            .where(
                SicknessCase.id == case_id,
                SicknessCase.status == from_status,
            )
            .values(status=to_status, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(case)

        if result.rowcount == 0:
            raise InvalidTransitionError(
                case.status,
                action,
                f"case status changed from '{from_status}' during the transition",
            )

        self.session.add(
            CaseTransition(
                sickness_case_id=case.id,
                from_status=from_status,
                to_status=to_status,
                action=action,
                performed_by=actor_id,
                notes=notes,
            )
        )
        await self.session.flush()

        await self.audit.record(
            actor_id=actor_id,
            organisation_id=organisation_id,
            action="sickness_case.transition",
            entity="sickness_case",
            entity_id=case.id,
            metadata={
                "from_status": from_status,
                "to_status": to_status,
                "action": action,
                "notes": "(provided)" if notes else None,
            },
        )

        await self.refresh_long_term_flag(case, today)

        if self.emitter is not None:
            metadata = EventMetadata.create(organisation_id, actor_id=actor_id)
            await self.emitter.emit(
                CaseTransitioned(
                    metadata=metadata,
                    sickness_case_id=case.id,
                    employee_id=case.employee_id,
                    action=action,
                    from_status=from_status,
                    to_status=to_status,
                )
            )
            if action == SicknessAction.SCHEDULE_RTW.value:
                await self.emitter.emit(
                    RtwScheduled(
                        metadata=metadata,
                        sickness_case_id=case.id,
                        employee_id=case.employee_id,
                    )
                )

        logger.info("Case %s: %s -> %s (%s)", case.id, from_status, to_status, action)
        return case

    async def refresh_long_term_flag(
        self,
        case: SicknessCase,
        today: date | None = None,
    ) -> bool:
        """Recompute is_long_term against the organisation threshold."""
        organisation = await self.session.get(Organisation, case.organisation_id)
        threshold = organisation.long_term_days if organisation else DEFAULT_LONG_TERM_DAYS
        should_be = compute_is_long_term(case, threshold, today or date.today())
        if should_be != case.is_long_term:
            case.is_long_term = should_be
            await self.session.flush()
        return should_be

    async def get_available_actions(self, case_id: UUID, organisation_id: UUID) -> list[str]:
        case = await self.get_case(case_id, organisation_id)
        return CaseStateMachine.get_available_actions(case.status)

    async def get_transitions(
        self,
        case_id: UUID,
        organisation_id: UUID,
    ) -> list[CaseTransition]:
        """Chronological transition log for a case."""
        await self.get_case(case_id, organisation_id)
        result = await self.session.execute(
            select(CaseTransition)
            .where(CaseTransition.sickness_case_id == case_id)
            .order_by(CaseTransition.created_at)
        )
        return list(result.scalars().all())
