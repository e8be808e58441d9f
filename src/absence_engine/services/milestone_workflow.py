"""Coordinates milestone completion with case transitions.

Completing certain milestones implies a lifecycle step. The mapping below
is declarative and consulted only here, so neither the state machine nor
the milestone service knows about the other.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from absence_engine.events import AsyncEventEmitter
from absence_engine.models import MilestoneAction
from absence_engine.services.errors import AbsenceEngineError
from absence_engine.services.milestone_catalog import ActionStatus
from absence_engine.services.milestone_service import MilestoneService
from absence_engine.services.state_machine import CaseStateMachine, SicknessAction
from absence_engine.services.workflow_service import WorkflowService

logger = logging.getLogger(__name__)

# milestone_key -> case action applied when the milestone is completed
MILESTONE_TRANSITIONS: dict[str, str] = {
    "DAY_1": SicknessAction.ACKNOWLEDGE.value,
    "DAY_7": SicknessAction.RECEIVE_FIT_NOTE.value,
}


@dataclass
class MilestoneUpdate:
    """Outcome of a milestone action update."""

    action: MilestoneAction
    case_status: str | None = None
    transition_applied: str | None = None


class MilestoneWorkflowService:
    """Updates milestone actions and applies any implied case transition."""

    def __init__(self, session: AsyncSession, emitter: AsyncEventEmitter | None = None):
        self.session = session
        self.milestones = MilestoneService(session, emitter)
        self.workflow = WorkflowService(session, emitter)

    async def update_action(
        self,
        action_id: UUID,
        organisation_id: UUID,
        status: str,
        user_id: UUID,
        notes: str | None = None,
        completed_at: datetime | None = None,
        today: date | None = None,
    ) -> MilestoneUpdate:
        if status == ActionStatus.COMPLETED.value:
            return await self.complete_milestone(
                action_id, organisation_id, user_id, notes, completed_at, today
            )
        action = await self.milestones.update_action_status(
            action_id, organisation_id, status, completed_by=user_id, notes=notes
        )
        return MilestoneUpdate(action=action)

    async def complete_milestone(
        self,
        action_id: UUID,
        organisation_id: UUID,
        user_id: UUID,
        notes: str | None = None,
        completed_at: datetime | None = None,
        today: date | None = None,
    ) -> MilestoneUpdate:
        """Mark an action complete, then attempt its mapped transition.

        The transition runs in a savepoint and only when it is legal for the
        case's current status. Its failure is logged and leaves the
        completed action in place.
        """
        action = await self.milestones.update_action_status(
            action_id,
            organisation_id,
            ActionStatus.COMPLETED.value,
            completed_by=user_id,
            notes=notes,
            completed_at=completed_at,
        )
        outcome = MilestoneUpdate(action=action)

        mapped = MILESTONE_TRANSITIONS.get(action.milestone_key)
        if mapped is None:
            return outcome

        case = await self.workflow.get_case(action.sickness_case_id, organisation_id)
        outcome.case_status = case.status
        if not CaseStateMachine.can_apply(case.status, mapped):
            logger.debug(
                "Skipping %s for case %s in status %s", mapped, case.id, case.status
            )
            return outcome

        try:
            async with self.session.begin_nested():
                case = await self.workflow.transition(
                    case.id,
                    mapped,
                    user_id,
                    organisation_id,
                    notes=f"Applied on completion of milestone {action.milestone_key}",
                    today=today,
                )
        except (AbsenceEngineError, SQLAlchemyError):
            logger.exception(
                "Transition %s after milestone %s failed for case %s",
                mapped,
                action.milestone_key,
                action.sickness_case_id,
            )
            await self.session.refresh(action)
            return outcome

        outcome.case_status = case.status
        outcome.transition_applied = mapped
        return outcome
