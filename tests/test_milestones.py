"""Tests for the milestone catalog, timelines and milestone actions."""

from datetime import date, timedelta
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from absence_engine.events import MilestoneActionCompleted
from absence_engine.models import MilestoneConfig
from absence_engine.services.errors import InvalidOverrideError, NotFoundError, ValidationError
from absence_engine.services.milestone_catalog import (
    DEFAULT_MILESTONES,
    MilestoneDefinition,
    TimelineStatus,
    action_type_for,
    compute_timeline,
    merge_effective_catalog,
)
from absence_engine.services.milestone_service import MilestoneService, validate_milestone_data
from absence_engine.services.milestone_workflow import MilestoneWorkflowService
from absence_engine.services.workflow_service import WorkflowService

from .conftest import TODAY


def _action(actions, key):
    return next(a for a in actions if a.milestone_key == key)


class TestDefaultCatalog:
    """Test the built-in milestone catalog."""

    def test_catalog_shape(self):
        keys = [m.milestone_key for m in DEFAULT_MILESTONES]
        assert len(keys) == 19
        assert len(set(keys)) == 19
        assert keys[:3] == ["DAY_1", "DAY_3", "DAY_7"]
        assert keys[-1] == "WEEK_52"

    def test_offsets(self):
        offsets = {m.milestone_key: m.day_offset for m in DEFAULT_MILESTONES}
        assert offsets["DAY_1"] == 1
        assert offsets["WEEK_4"] == 28
        assert offsets["WEEK_10"] == 70
        assert offsets["WEEK_14"] == 98
        assert offsets["WEEK_50"] == 350
        assert offsets["WEEK_52"] == 364

    def test_action_types(self):
        assert action_type_for("DAY_1") == "NOTIFICATION"
        assert action_type_for("DAY_7") == "TRANSITION"
        assert action_type_for("WEEK_6") == "PROMPT"
        assert action_type_for("WEEK_30") == "ESCALATION"
        assert action_type_for("WEEK_52") == "REVIEW"
        assert action_type_for("CUSTOM_OH") == "MILESTONE"


class TestEffectiveCatalog:
    """Test merging organisation overrides over defaults."""

    def test_override_replaces_default(self):
        override = MilestoneDefinition("DAY_3", "Day 3 - Call employee", 2)

        merged = merge_effective_catalog(DEFAULT_MILESTONES, [override])

        assert len(merged) == 19
        assert _action(merged, "DAY_3") is override
        assert [m.milestone_key for m in merged][:3] == ["DAY_1", "DAY_3", "DAY_7"]

    def test_inactive_override_hides_key(self):
        override = MilestoneDefinition("WEEK_3", "Week 3 - Disabled", 21, is_active=False)

        merged = merge_effective_catalog(DEFAULT_MILESTONES, [override])
        assert "WEEK_3" not in [m.milestone_key for m in merged]

        merged = merge_effective_catalog(DEFAULT_MILESTONES, [override], include_inactive=True)
        assert "WEEK_3" in [m.milestone_key for m in merged]

    def test_override_only_key_is_added(self):
        custom = MilestoneDefinition("DAY_5", "Day 5 - OH referral", 5)

        merged = merge_effective_catalog(DEFAULT_MILESTONES, [custom])

        keys = [m.milestone_key for m in merged]
        assert len(keys) == 20
        assert keys.index("DAY_5") == keys.index("DAY_7") - 1

    def test_ties_sorted_by_key(self):
        merged = merge_effective_catalog(
            [MilestoneDefinition("B_KEY", "Beta", 4), MilestoneDefinition("A_KEY", "Alpha", 4)],
            [],
        )
        assert [m.milestone_key for m in merged] == ["A_KEY", "B_KEY"]


class TestTimeline:
    """Test due date projection and status classification."""

    def test_due_today_boundary(self):
        entries = compute_timeline(date(2024, 1, 1), DEFAULT_MILESTONES, date(2024, 1, 2))

        day_1 = _action(entries, "DAY_1")
        assert day_1.due_date == date(2024, 1, 2)
        assert day_1.status == TimelineStatus.DUE_TODAY
        assert _action(entries, "DAY_3").status == TimelineStatus.UPCOMING

    def test_overdue_after_due_date(self):
        entries = compute_timeline(date(2024, 1, 1), DEFAULT_MILESTONES, date(2024, 1, 8))

        assert _action(entries, "DAY_1").status == TimelineStatus.OVERDUE
        assert _action(entries, "DAY_3").status == TimelineStatus.OVERDUE
        assert _action(entries, "DAY_7").status == TimelineStatus.DUE_TODAY
        assert _action(entries, "WEEK_2").status == TimelineStatus.UPCOMING

    def test_due_dates_are_calendar_days(self):
        """Weekends and bank holidays do not shift due dates."""
        entries = compute_timeline(date(2023, 12, 22), DEFAULT_MILESTONES, date(2023, 12, 22))
        assert _action(entries, "DAY_3").due_date == date(2023, 12, 25)

    async def test_case_timeline_uses_overrides(
        self, session, open_case, organisation, actor_id
    ):
        created = await open_case(start=date(2024, 3, 1))
        service = MilestoneService(session)
        await service.upsert_org_milestone(
            organisation.id,
            {"milestone_key": "DAY_3", "label": "Day 3 - Call employee", "day_offset": 2},
            actor_id,
        )

        entries = await service.get_case_timeline(created.case.id, organisation.id, TODAY)
        assert _action(entries, "DAY_3").due_date == date(2024, 3, 3)
        assert _action(entries, "DAY_3").label == "Day 3 - Call employee"

    async def test_case_timeline_other_organisation(
        self, session, open_case, other_organisation
    ):
        created = await open_case()

        with pytest.raises(NotFoundError):
            await MilestoneService(session).get_case_timeline(
                created.case.id, other_organisation.id
            )


class TestMilestoneConfigs:
    """Test seeding and organisation override management."""

    async def test_seed_defaults_is_idempotent(self, session):
        service = MilestoneService(session)

        assert await service.seed_defaults() == 19
        assert await service.seed_defaults() == 0
        assert len(await service.list_default_configs()) == 19

    async def test_effective_catalog_from_seeded_rows(self, session, organisation):
        service = MilestoneService(session)
        await service.seed_defaults()

        catalog = await service.get_effective_milestones(organisation.id)
        assert [c.milestone_key for c in catalog] == [m.milestone_key for m in DEFAULT_MILESTONES]
        assert all(c.id is not None for c in catalog)

    async def test_upsert_creates_then_updates(self, session, organisation, actor_id):
        service = MilestoneService(session)
        data = {"milestone_key": "WEEK_2", "label": "Week 2 - Call", "day_offset": 12}

        created = await service.upsert_org_milestone(organisation.id, data, actor_id)
        updated = await service.upsert_org_milestone(
            organisation.id, {**data, "day_offset": 15, "is_active": False}, actor_id
        )

        assert updated.id == created.id
        assert updated.day_offset == 15
        assert updated.is_active is False
        assert updated.is_default is False
        assert len(await service.list_org_overrides(organisation.id)) == 1

    @pytest.mark.parametrize(
        "data",
        [
            {"milestone_key": "", "label": "Valid label", "day_offset": 3},
            {"milestone_key": "DAY_3", "label": "No", "day_offset": 3},
            {"milestone_key": "DAY_3", "label": "Valid label", "day_offset": 0},
            {"milestone_key": "DAY_3", "label": "Valid label", "day_offset": "3"},
        ],
    )
    def test_invalid_override_payloads(self, data):
        with pytest.raises(ValidationError):
            validate_milestone_data(data)

    async def test_table_rejects_day_zero_offset(self, session, organisation):
        """The table enforces the same minimum offset as the service."""
        session.add(
            MilestoneConfig(
                organisation_id=organisation.id,
                milestone_key="DAY_0",
                label="Same-day call",
                day_offset=0,
            )
        )

        with pytest.raises(IntegrityError):
            await session.flush()

    async def test_reset_to_default_reverts_key(self, session, organisation, actor_id):
        service = MilestoneService(session)
        config = await service.upsert_org_milestone(
            organisation.id,
            {"milestone_key": "DAY_3", "label": "Day 3 - Call", "day_offset": 2},
            actor_id,
        )

        await service.reset_to_default(config.id, organisation.id, actor_id)

        catalog = await service.get_effective_milestones(organisation.id)
        assert _action(catalog, "DAY_3").day_offset == 3
        assert await service.list_org_overrides(organisation.id) == []

    async def test_reset_refuses_default_row(self, session, organisation, actor_id):
        service = MilestoneService(session)
        await service.seed_defaults()
        default = (await service.list_default_configs())[0]

        with pytest.raises(InvalidOverrideError):
            await service.reset_to_default(default.id, organisation.id, actor_id)

    async def test_reset_refuses_other_organisation(
        self, session, organisation, other_organisation, actor_id
    ):
        service = MilestoneService(session)
        config = await service.upsert_org_milestone(
            other_organisation.id,
            {"milestone_key": "DAY_3", "label": "Day 3 - Call", "day_offset": 2},
            actor_id,
        )

        with pytest.raises(InvalidOverrideError):
            await service.reset_to_default(config.id, organisation.id, actor_id)

    async def test_reset_unknown_config(self, session, organisation, actor_id):
        with pytest.raises(NotFoundError):
            await MilestoneService(session).reset_to_default(uuid4(), organisation.id, actor_id)

    async def test_get_config_hides_other_organisation(
        self, session, organisation, other_organisation, actor_id
    ):
        service = MilestoneService(session)
        config = await service.upsert_org_milestone(
            other_organisation.id,
            {"milestone_key": "DAY_3", "label": "Day 3 - Call", "day_offset": 2},
            actor_id,
        )

        with pytest.raises(NotFoundError):
            await service.get_config(config.id, organisation.id)
        assert (await service.get_config(config.id, other_organisation.id)).id == config.id


class TestMilestoneActions:
    """Test generated actions and their status changes."""

    async def test_actions_generated_pending(self, open_case):
        created = await open_case(start=date(2024, 3, 1))

        assert all(a.status == "PENDING" for a in created.actions)
        day_7 = _action(created.actions, "DAY_7")
        assert day_7.due_date == date(2024, 3, 8)
        assert day_7.action_type == "TRANSITION"

    async def test_generate_is_idempotent(self, session, open_case, organisation):
        created = await open_case()
        service = MilestoneService(session)

        again = await service.generate_actions(created.case)

        assert sorted(a.id for a in again) == sorted(a.id for a in created.actions)
        assert len(await service.list_actions(created.case.id, organisation.id)) == 19

    async def test_due_dates_fixed_after_catalog_change(
        self, session, open_case, organisation, actor_id
    ):
        created = await open_case(start=date(2024, 3, 1))
        service = MilestoneService(session)

        await service.upsert_org_milestone(
            organisation.id,
            {"milestone_key": "DAY_3", "label": "Day 3 - Later call", "day_offset": 10},
            actor_id,
        )

        actions = await service.list_actions(created.case.id, organisation.id)
        assert _action(actions, "DAY_3").due_date == date(2024, 3, 4)

    async def test_new_cases_use_overrides(self, session, open_case, organisation, actor_id):
        service = MilestoneService(session)
        await service.upsert_org_milestone(
            organisation.id,
            {"milestone_key": "WEEK_3", "label": "Week 3 - Off", "day_offset": 21, "is_active": False},
            actor_id,
        )
        await service.upsert_org_milestone(
            organisation.id,
            {"milestone_key": "OH_REFERRAL", "label": "OH referral", "day_offset": 10},
            actor_id,
        )

        created = await open_case()

        keys = {a.milestone_key for a in created.actions}
        assert "WEEK_3" not in keys
        assert "OH_REFERRAL" in keys
        assert _action(created.actions, "OH_REFERRAL").action_type == "MILESTONE"

    async def test_complete_stamps_once(
        self, session, emitter, recorded_events, open_case, organisation, actor_id
    ):
        created = await open_case()
        service = MilestoneService(session, emitter)
        action = _action(created.actions, "DAY_3")

        first = await service.update_action_status(
            action.id, organisation.id, "COMPLETED", completed_by=actor_id
        )
        stamped_at = first.completed_at
        other_user = uuid4()
        second = await service.update_action_status(
            action.id, organisation.id, "COMPLETED", completed_by=other_user, notes="Follow-up"
        )

        assert second.completed_by == actor_id
        assert second.completed_at == stamped_at
        assert second.notes == "Follow-up"
        completed = [e for e in recorded_events if isinstance(e, MilestoneActionCompleted)]
        assert len(completed) == 1
        assert completed[0].milestone_key == "DAY_3"

    async def test_in_progress_clears_completion(self, session, open_case, organisation, actor_id):
        created = await open_case()
        service = MilestoneService(session)
        action = _action(created.actions, "WEEK_2")

        await service.update_action_status(
            action.id, organisation.id, "COMPLETED", completed_by=actor_id
        )
        action = await service.update_action_status(action.id, organisation.id, "IN_PROGRESS")

        assert action.status == "IN_PROGRESS"
        assert action.completed_at is None
        assert action.completed_by is None

    async def test_unknown_status_rejected(self, session, open_case, organisation):
        created = await open_case()

        with pytest.raises(ValidationError):
            await MilestoneService(session).update_action_status(
                created.actions[0].id, organisation.id, "DONE"
            )

    async def test_reset_to_pending(self, session, open_case, organisation, actor_id):
        created = await open_case()
        service = MilestoneService(session)
        action = _action(created.actions, "WEEK_2")
        await service.update_action_status(
            action.id, organisation.id, "COMPLETED", completed_by=actor_id, notes="Done"
        )

        action = await service.reset_to_pending(action.id, organisation.id)

        assert action.status == "PENDING"
        assert action.completed_at is None
        assert action.notes is None

    async def test_reset_refused_on_closed_case(self, session, open_case, organisation, actor_id):
        created = await open_case()
        workflow = WorkflowService(session)
        await workflow.transition(created.case.id, "acknowledge", actor_id, organisation.id)
        await workflow.transition(created.case.id, "close_case", actor_id, organisation.id)

        with pytest.raises(ValidationError):
            await MilestoneService(session).reset_to_pending(
                created.actions[0].id, organisation.id
            )

    async def test_outstanding_and_overdue(self, session, open_case, organisation, actor_id):
        created = await open_case(start=date(2024, 3, 1))
        service = MilestoneService(session)
        await service.update_action_status(
            _action(created.actions, "DAY_1").id, organisation.id, "IN_PROGRESS"
        )

        # DAY_1 due 2 Mar, DAY_3 due 4 Mar, DAY_7 due 8 Mar
        outstanding = await service.list_outstanding(organisation.id, TODAY)
        overdue = await service.list_overdue(organisation.id, TODAY)

        assert [a.milestone_key for a in outstanding] == ["DAY_1", "DAY_3"]
        assert overdue == []

        overdue = await service.list_overdue(organisation.id, TODAY + timedelta(days=1))
        assert [a.milestone_key for a in overdue] == ["DAY_3"]


class TestMilestoneWorkflow:
    """Test transitions implied by completing milestones."""

    async def test_day_1_acknowledges_case(
        self, session, emitter, open_case, organisation, actor_id
    ):
        created = await open_case()
        service = MilestoneWorkflowService(session, emitter)

        outcome = await service.update_action(
            _action(created.actions, "DAY_1").id, organisation.id, "COMPLETED", actor_id
        )

        assert outcome.action.status == "COMPLETED"
        assert outcome.transition_applied == "acknowledge"
        assert outcome.case_status == "TRACKING"

    async def test_day_7_records_fit_note(self, session, open_case, organisation, actor_id):
        created = await open_case()
        await WorkflowService(session).transition(
            created.case.id, "acknowledge", actor_id, organisation.id
        )

        outcome = await MilestoneWorkflowService(session).complete_milestone(
            _action(created.actions, "DAY_7").id, organisation.id, actor_id
        )

        assert outcome.transition_applied == "receive_fit_note"
        assert outcome.case_status == "FIT_NOTE_RECEIVED"

    async def test_illegal_mapped_transition_skipped(
        self, session, open_case, organisation, actor_id
    ):
        """DAY_7 on a REPORTED case completes the action but leaves the case."""
        created = await open_case()

        outcome = await MilestoneWorkflowService(session).complete_milestone(
            _action(created.actions, "DAY_7").id, organisation.id, actor_id
        )

        assert outcome.action.status == "COMPLETED"
        assert outcome.transition_applied is None
        assert outcome.case_status == "REPORTED"

    async def test_unmapped_milestone(self, session, open_case, organisation, actor_id):
        created = await open_case()

        outcome = await MilestoneWorkflowService(session).update_action(
            _action(created.actions, "DAY_3").id, organisation.id, "COMPLETED", actor_id
        )

        assert outcome.action.status == "COMPLETED"
        assert outcome.transition_applied is None
        assert outcome.case_status is None

    async def test_failed_transition_keeps_completion(
        self, session, open_case, organisation, actor_id, monkeypatch
    ):
        created = await open_case()
        service = MilestoneWorkflowService(session)

        async def fail(*args, **kwargs):
            raise ValidationError("transition unavailable")

        monkeypatch.setattr(service.workflow, "transition", fail)

        outcome = await service.complete_milestone(
            _action(created.actions, "DAY_1").id, organisation.id, actor_id
        )

        assert outcome.action.status == "COMPLETED"
        assert outcome.transition_applied is None
        assert outcome.case_status == "REPORTED"

    async def test_pending_goes_through_reset(self, session, open_case, organisation, actor_id):
        created = await open_case()
        service = MilestoneWorkflowService(session)
        action_id = _action(created.actions, "DAY_3").id
        await service.update_action(action_id, organisation.id, "COMPLETED", actor_id)

        outcome = await service.update_action(action_id, organisation.id, "PENDING", actor_id)

        assert outcome.action.status == "PENDING"
        assert outcome.action.completed_by is None


def test_default_configs_table_has_partial_unique_index():
    index_names = {index.name for index in MilestoneConfig.__table__.indexes}
    assert "uq_milestone_config_default_key" in index_names
