"""Milestone service - catalog resolution, case timelines and milestone actions."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from absence_engine.events import AsyncEventEmitter, EventMetadata, MilestoneActionCompleted
from absence_engine.models import MilestoneAction, MilestoneConfig, SicknessCase, utcnow
from absence_engine.services.audit import AuditService
from absence_engine.services.errors import (
    InvalidOverrideError,
    NotFoundError,
    ValidationError,
)
from absence_engine.services.milestone_catalog import (
    DEFAULT_MILESTONES,
    ActionStatus,
    TimelineEntry,
    action_type_for,
    compute_timeline,
    due_date_for,
    merge_effective_catalog,
)
from absence_engine.services.state_machine import SicknessStatus

logger = logging.getLogger(__name__)

_CONFIG_FIELDS = ("label", "day_offset", "description", "is_active")


def validate_milestone_data(data: dict[str, Any]) -> None:
    """Validate an organisation milestone override payload."""
    key = data.get("milestone_key") or ""
    if not 1 <= len(key) <= 50:
        raise ValidationError("milestone_key must be 1 to 50 characters", "milestone_key")

    label = data.get("label") or ""
    if not 3 <= len(label) <= 100:
        raise ValidationError("label must be 3 to 100 characters", "label")

    day_offset = data.get("day_offset")
    if not isinstance(day_offset, int) or isinstance(day_offset, bool) or day_offset < 1:
        raise ValidationError("day_offset must be a whole number of at least 1", "day_offset")


class MilestoneService:
    """Service for the milestone timeline engine.

    Operations:
    - get_effective_milestones: defaults merged with organisation overrides
    - get_case_timeline: read-only projection of due dates for a case
    - generate_actions: one PENDING action per effective milestone
    - update_action_status / reset_to_pending: manager progress on actions
    - upsert_org_milestone / reset_to_default: organisation override CRUD
    """

    def __init__(self, session: AsyncSession, emitter: AsyncEventEmitter | None = None):
        self.session = session
        self.emitter = emitter
        self.audit = AuditService(session)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def list_default_configs(self) -> list[MilestoneConfig]:
        result = await self.session.execute(
            select(MilestoneConfig).where(MilestoneConfig.organisation_id.is_(None))
        )
        return list(result.scalars().all())

    async def list_org_overrides(self, organisation_id: UUID) -> list[MilestoneConfig]:
        result = await self.session.execute(
            select(MilestoneConfig).where(MilestoneConfig.organisation_id == organisation_id)
        )
        return list(result.scalars().all())

    async def get_effective_milestones(
        self,
        organisation_id: UUID,
        include_inactive: bool = False,
    ) -> list[Any]:
        """Resolve the organisation's effective catalog.

        Falls back to the built-in defaults when no default rows are seeded.
        """
        defaults: list[Any] = await self.list_default_configs()
        if not defaults:
            defaults = list(DEFAULT_MILESTONES)
        overrides = await self.list_org_overrides(organisation_id)
        return merge_effective_catalog(defaults, overrides, include_inactive=include_inactive)

    async def seed_defaults(self) -> int:
        """Insert any missing system default rows. Returns the number added."""
        existing = {config.milestone_key for config in await self.list_default_configs()}
        added = 0
        for definition in DEFAULT_MILESTONES:
            if definition.milestone_key in existing:
                continue
            self.session.add(
                MilestoneConfig(
                    organisation_id=None,
                    milestone_key=definition.milestone_key,
                    label=definition.label,
                    day_offset=definition.day_offset,
                    description=definition.description,
                    is_active=True,
                    is_default=True,
                )
            )
            added += 1
        await self.session.flush()
        return added

    # ------------------------------------------------------------------
    # Timeline
    # ------------------------------------------------------------------

    async def _load_case(self, case_id: UUID, organisation_id: UUID) -> SicknessCase:
        case = await self.session.get(SicknessCase, case_id)
        if case is None or case.organisation_id != organisation_id:
            raise NotFoundError("Sickness case", case_id)
        return case

    async def get_case_timeline(
        self,
        case_id: UUID,
        organisation_id: UUID,
        today: date | None = None,
    ) -> list[TimelineEntry]:
        """Project the effective catalog onto a case. Reads no action rows."""
        case = await self._load_case(case_id, organisation_id)
        catalog = await self.get_effective_milestones(organisation_id)
        return compute_timeline(case.absence_start_date, catalog, today or date.today())

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def _actions_for_case(self, case_id: UUID) -> list[MilestoneAction]:
        result = await self.session.execute(
            select(MilestoneAction)
            .where(MilestoneAction.sickness_case_id == case_id)
            .order_by(MilestoneAction.due_date, MilestoneAction.milestone_key)
        )
        return list(result.scalars().all())

    async def generate_actions(self, case: SicknessCase) -> list[MilestoneAction]:
        """Create one PENDING action per effective milestone.

        Runs inside the caller's transaction. Due dates are fixed here and
        never move if the catalog changes later. Returns the existing
        actions if the case already has them.
        """
        existing = await self._actions_for_case(case.id)
        if existing:
            return existing

        catalog = await self.get_effective_milestones(case.organisation_id)
        actions = [
            MilestoneAction(
                organisation_id=case.organisation_id,
                sickness_case_id=case.id,
                milestone_key=entry.milestone_key,
                action_type=action_type_for(entry.milestone_key),
                status=ActionStatus.PENDING.value,
                due_date=due_date_for(case.absence_start_date, entry.day_offset),
            )
            for entry in catalog
        ]
        self.session.add_all(actions)
        await self.session.flush()

        logger.debug("Generated %d milestone actions for case %s", len(actions), case.id)
        return sorted(actions, key=lambda a: (a.due_date, a.milestone_key))

    async def list_actions(self, case_id: UUID, organisation_id: UUID) -> list[MilestoneAction]:
        await self._load_case(case_id, organisation_id)
        return await self._actions_for_case(case_id)

    async def list_outstanding(
        self,
        organisation_id: UUID,
        today: date | None = None,
    ) -> list[MilestoneAction]:
        """PENDING or IN_PROGRESS actions due on or before today."""
        today = today or date.today()
        result = await self.session.execute(
            select(MilestoneAction)
            .where(
                MilestoneAction.organisation_id == organisation_id,
                MilestoneAction.status.in_(
                    [ActionStatus.PENDING.value, ActionStatus.IN_PROGRESS.value]
                ),
                MilestoneAction.due_date <= today,
            )
            .order_by(MilestoneAction.due_date, MilestoneAction.milestone_key)
        )
        return list(result.scalars().all())

    async def list_overdue(
        self,
        organisation_id: UUID,
        today: date | None = None,
    ) -> list[MilestoneAction]:
        """PENDING actions whose due date has passed."""
        today = today or date.today()
        result = await self.session.execute(
            select(MilestoneAction)
            .where(
                MilestoneAction.organisation_id == organisation_id,
                MilestoneAction.status == ActionStatus.PENDING.value,
                MilestoneAction.due_date < today,
            )
            .order_by(MilestoneAction.due_date, MilestoneAction.milestone_key)
        )
        return list(result.scalars().all())

    async def get_action(self, action_id: UUID, organisation_id: UUID) -> MilestoneAction:
        action = await self.session.get(MilestoneAction, action_id)
        if action is None or action.organisation_id != organisation_id:
            raise NotFoundError("Milestone action", action_id)
        return action

    async def update_action_status(
        self,
        action_id: UUID,
        organisation_id: UUID,
        status: str,
        completed_by: UUID | None = None,
        notes: str | None = None,
        completed_at: datetime | None = None,
    ) -> MilestoneAction:
        """Move an action to a new status.

        Completing stamps completed_by and completed_at (default now).
        Completing an already-completed action keeps the original stamp and
        only merges in new notes. PENDING is handled as a reset.
        """
        try:
            status = ActionStatus(status).value
        except ValueError:
            raise ValidationError(f"Unknown milestone action status '{status}'", "status")

        if status == ActionStatus.PENDING.value:
            return await self.reset_to_pending(action_id, organisation_id)

        action = await self.get_action(action_id, organisation_id)
        was_completed = action.status == ActionStatus.COMPLETED.value

        action.status = status
        if status == ActionStatus.COMPLETED.value:
            if not was_completed:
                action.completed_by = completed_by
                action.completed_at = completed_at or utcnow()
        else:
            action.completed_by = None
            action.completed_at = None
        if notes is not None:
            action.notes = notes
        await self.session.flush()

        if status == ActionStatus.COMPLETED.value and not was_completed and self.emitter:
            await self.emitter.emit(
                MilestoneActionCompleted(
                    metadata=EventMetadata.create(organisation_id, actor_id=completed_by),
                    milestone_action_id=action.id,
                    sickness_case_id=action.sickness_case_id,
                    milestone_key=action.milestone_key,
                    completed_by=completed_by,
                )
            )
        return action

    async def reset_to_pending(self, action_id: UUID, organisation_id: UUID) -> MilestoneAction:
        """Undo progress on an action. Refused once the parent case is closed."""
        action = await self.get_action(action_id, organisation_id)
        case = await self._load_case(action.sickness_case_id, organisation_id)
        if case.status == SicknessStatus.CLOSED.value:
            raise ValidationError("Cannot reset a milestone action on a closed case", "status")

        action.status = ActionStatus.PENDING.value
        action.completed_by = None
        action.completed_at = None
        action.notes = None
        await self.session.flush()
        return action

    # ------------------------------------------------------------------
    # Organisation overrides
    # ------------------------------------------------------------------

    async def get_config(self, config_id: UUID, organisation_id: UUID) -> MilestoneConfig:
        """Load a config visible to the organisation (its own rows or defaults)."""
        config = await self.session.get(MilestoneConfig, config_id)
        if config is None or config.organisation_id not in (None, organisation_id):
            raise NotFoundError("Milestone config", config_id)
        return config

    async def upsert_org_milestone(
        self,
        organisation_id: UUID,
        data: dict[str, Any],
        user_id: UUID,
    ) -> MilestoneConfig:
        """Update the organisation's override for a key, or create one."""
        validate_milestone_data(data)
        data = {"is_active": True, "description": None, **data}

        result = await self.session.execute(
            select(MilestoneConfig).where(
                MilestoneConfig.organisation_id == organisation_id,
                MilestoneConfig.milestone_key == data["milestone_key"],
            )
        )
        config = result.scalar_one_or_none()

        if config is not None:
            for field in _CONFIG_FIELDS:
                setattr(config, field, data[field])
            action = "milestone_config.update"
        else:
            config = MilestoneConfig(
                organisation_id=organisation_id,
                milestone_key=data["milestone_key"],
                is_default=False,
                created_by=user_id,
                **{field: data[field] for field in _CONFIG_FIELDS},
            )
            self.session.add(config)
            action = "milestone_config.create"
        await self.session.flush()

        await self.audit.record(
            actor_id=user_id,
            organisation_id=organisation_id,
            action=action,
            entity="milestone_config",
            entity_id=config.id,
            metadata={
                "milestone_key": config.milestone_key,
                "day_offset": config.day_offset,
                "is_active": config.is_active,
            },
        )
        return config

    async def reset_to_default(
        self,
        config_id: UUID,
        organisation_id: UUID,
        user_id: UUID,
    ) -> None:
        """Delete an organisation override so its key reverts to the default."""
        config = await self.session.get(MilestoneConfig, config_id)
        if config is None:
            raise NotFoundError("Milestone config", config_id)
        if config.is_default or config.organisation_id is None:
            raise InvalidOverrideError("Cannot delete a system default milestone config")
        if config.organisation_id != organisation_id:
            raise InvalidOverrideError("Milestone config does not belong to this organisation")

        milestone_key = config.milestone_key
        await self.session.delete(config)
        await self.session.flush()

        await self.audit.record(
            actor_id=user_id,
            organisation_id=organisation_id,
            action="milestone_config.reset",
            entity="milestone_config",
            entity_id=config_id,
            metadata={"milestone_key": milestone_key},
        )
