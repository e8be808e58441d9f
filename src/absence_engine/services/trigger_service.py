"""Trigger service - threshold rule evaluation and deduplicated alerts."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from absence_engine.events import AsyncEventEmitter, EventMetadata, TriggerBreached
from absence_engine.models import SicknessCase, TriggerAlert, TriggerConfig, utcnow
from absence_engine.services.audit import AuditService
from absence_engine.services.bradford import BradfordFactorService
from absence_engine.services.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_PERIOD_DAYS = 365


class TriggerType(str, Enum):
    """Threshold rule types."""

    FREQUENCY = "FREQUENCY"
    BRADFORD_FACTOR = "BRADFORD_FACTOR"
    DURATION = "DURATION"


# Rule types that only make sense over a rolling window
PERIOD_REQUIRED = {TriggerType.FREQUENCY.value, TriggerType.DURATION.value}

_CONFIG_FIELDS = ("name", "trigger_type", "threshold_value", "period_days", "is_active")


def validate_trigger_data(data: dict[str, Any]) -> None:
    """Validate a complete trigger rule payload."""
    name = data.get("name") or ""
    if not 3 <= len(name) <= 100:
        raise ValidationError("name must be 3 to 100 characters", "name")

    trigger_type = data.get("trigger_type")
    if trigger_type not in {t.value for t in TriggerType}:
        raise ValidationError(f"Unknown trigger type '{trigger_type}'", "trigger_type")

    threshold = data.get("threshold_value")
    if not isinstance(threshold, int) or isinstance(threshold, bool) or threshold < 1:
        raise ValidationError("threshold_value must be at least 1", "threshold_value")

    period_days = data.get("period_days")
    if period_days is not None and (not isinstance(period_days, int) or period_days < 1):
        raise ValidationError("period_days must be at least 1", "period_days")
    if trigger_type in PERIOD_REQUIRED and period_days is None:
        raise ValidationError(
            "period_days is required for FREQUENCY and DURATION triggers", "period_days"
        )


class TriggerService:
    """Service for the trigger and alert evaluator.

    Operations:
    - evaluate: score an employee against every active rule
    - fire_alert: record a breach at most once per (rule, case)
    - acknowledge_alert: idempotent acknowledgement
    - create_config / update_config: rule CRUD
    """

    def __init__(self, session: AsyncSession, emitter: AsyncEventEmitter | None = None):
        self.session = session
        self.emitter = emitter
        self.audit = AuditService(session)
        self.bradford = BradfordFactorService(session)

    # ------------------------------------------------------------------
    # Rule configuration
    # ------------------------------------------------------------------

    async def list_configs(
        self,
        organisation_id: UUID,
        active_only: bool = False,
    ) -> list[TriggerConfig]:
        query = select(TriggerConfig).where(TriggerConfig.organisation_id == organisation_id)
        if active_only:
            query = query.where(TriggerConfig.is_active.is_(True))
        result = await self.session.execute(query.order_by(TriggerConfig.created_at))
        return list(result.scalars().all())

    async def get_config(self, config_id: UUID, organisation_id: UUID) -> TriggerConfig:
        config = await self.session.get(TriggerConfig, config_id)
        if config is None or config.organisation_id != organisation_id:
            raise NotFoundError("Trigger config", config_id)
        return config

    async def create_config(
        self,
        organisation_id: UUID,
        data: dict[str, Any],
        user_id: UUID,
    ) -> TriggerConfig:
        data = {"period_days": None, "is_active": True, **data}
        validate_trigger_data(data)

        config = TriggerConfig(
            organisation_id=organisation_id,
            created_by=user_id,
            **{field: data[field] for field in _CONFIG_FIELDS},
        )
        self.session.add(config)
        await self.session.flush()

        await self.audit.record(
            actor_id=user_id,
            organisation_id=organisation_id,
            action="trigger_config.create",
            entity="trigger_config",
            entity_id=config.id,
            metadata={field: data[field] for field in _CONFIG_FIELDS},
        )
        return config

    async def update_config(
        self,
        config_id: UUID,
        organisation_id: UUID,
        data: dict[str, Any],
        user_id: UUID,
    ) -> TriggerConfig:
        """Apply a partial update; the merged rule must still be valid."""
        config = await self.get_config(config_id, organisation_id)
        merged = {field: getattr(config, field) for field in _CONFIG_FIELDS}
        merged.update({k: v for k, v in data.items() if k in _CONFIG_FIELDS})
        validate_trigger_data(merged)

        for field in _CONFIG_FIELDS:
            setattr(config, field, merged[field])
        await self.session.flush()

        await self.audit.record(
            actor_id=user_id,
            organisation_id=organisation_id,
            action="trigger_config.update",
            entity="trigger_config",
            entity_id=config.id,
            metadata={k: v for k, v in data.items() if k in _CONFIG_FIELDS},
        )
        return config

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def _cases_since(self, employee_id: UUID, cutoff: date) -> list[SicknessCase]:
        result = await self.session.execute(
            select(SicknessCase).where(
                SicknessCase.employee_id == employee_id,
                SicknessCase.absence_start_date > cutoff,
            )
        )
        return list(result.scalars().all())

    async def observe(self, config: TriggerConfig, employee_id: UUID, today: date) -> int:
        """Compute the value a rule compares against its threshold."""
        if config.trigger_type == TriggerType.BRADFORD_FACTOR.value:
            return (await self.bradford.calculate(employee_id, today)).score

        cutoff = today - timedelta(days=config.period_days or DEFAULT_PERIOD_DAYS)
        cases = await self._cases_since(employee_id, cutoff)
        if config.trigger_type == TriggerType.FREQUENCY.value:
            return len(cases)
        if config.trigger_type == TriggerType.DURATION.value:
            return sum(case.working_days_lost or 0 for case in cases)
        raise ValueError(f"Unsupported trigger type {config.trigger_type}")

    async def evaluate(
        self,
        employee_id: UUID,
        organisation_id: UUID,
        sickness_case_id: UUID | None,
        today: date | None = None,
    ) -> list[TriggerAlert]:
        """Evaluate every active rule for an employee.

        Each rule runs in its own savepoint, so a failing rule is logged and
        skipped without aborting the surrounding transaction.
        Returns the alerts created by this call.
        """
        today = today or date.today()
        created: list[TriggerAlert] = []

        for config in await self.list_configs(organisation_id, active_only=True):
            try:
                async with self.session.begin_nested():
                    value = await self.observe(config, employee_id, today)
                    if value < config.threshold_value:
                        continue
                    alert = await self.fire_alert(config, employee_id, sickness_case_id, value)
                if alert is not None:
                    created.append(alert)
            except Exception:
                logger.exception(
                    "Error evaluating trigger %s for employee %s", config.id, employee_id
                )

        return created

    async def _find_alert(
        self,
        config_id: UUID,
        sickness_case_id: UUID | None,
    ) -> TriggerAlert | None:
        query = select(TriggerAlert).where(TriggerAlert.trigger_config_id == config_id)
        if sickness_case_id is None:
            query = query.where(TriggerAlert.sickness_case_id.is_(None))
        else:
            query = query.where(TriggerAlert.sickness_case_id == sickness_case_id)
        result = await self.session.execute(query)
        return result.scalars().first()

    async def fire_alert(
        self,
        config: TriggerConfig,
        employee_id: UUID,
        sickness_case_id: UUID | None,
        triggered_value: int,
    ) -> TriggerAlert | None:
        """Record a breach.

        Returns None without side effects if an alert already exists for
        this (rule, case) pair. The lookup is a fast path; the unique
        constraint decides races.
        """
        if await self._find_alert(config.id, sickness_case_id) is not None:
            return None

        alert = TriggerAlert(
            organisation_id=config.organisation_id,
            trigger_config_id=config.id,
            employee_id=employee_id,
            sickness_case_id=sickness_case_id,
            triggered_value=triggered_value,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(alert)
        except IntegrityError:
            logger.info(
                "Alert for trigger %s and case %s already exists", config.id, sickness_case_id
            )
            return None

        await self.audit.record(
            actor_id=None,
            organisation_id=config.organisation_id,
            action="trigger_alert.create",
            entity="trigger_alert",
            entity_id=alert.id,
            metadata={
                "trigger_config_id": config.id,
                "trigger_name": config.name,
                "trigger_type": config.trigger_type,
                "employee_id": employee_id,
                "sickness_case_id": sickness_case_id,
                "triggered_value": triggered_value,
                "threshold_value": config.threshold_value,
            },
        )

        if self.emitter is not None:
            await self.emitter.emit(
                TriggerBreached(
                    metadata=EventMetadata.create(config.organisation_id),
                    trigger_alert_id=alert.id,
                    trigger_config_id=config.id,
                    employee_id=employee_id,
                    sickness_case_id=sickness_case_id,
                    trigger_type=config.trigger_type,
                    threshold_value=config.threshold_value,
                    triggered_value=triggered_value,
                )
            )

        logger.info(
            "Trigger %s breached for employee %s (value %d, threshold %d)",
            config.id,
            employee_id,
            triggered_value,
            config.threshold_value,
        )
        return alert

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    async def get_alert(self, alert_id: UUID, organisation_id: UUID) -> TriggerAlert:
        alert = await self.session.get(TriggerAlert, alert_id)
        if alert is None or alert.organisation_id != organisation_id:
            raise NotFoundError("Trigger alert", alert_id)
        return alert

    async def list_alerts(
        self,
        organisation_id: UUID,
        employee_id: UUID | None = None,
        unacknowledged_only: bool = False,
    ) -> list[TriggerAlert]:
        query = select(TriggerAlert).where(TriggerAlert.organisation_id == organisation_id)
        if employee_id is not None:
            query = query.where(TriggerAlert.employee_id == employee_id)
        if unacknowledged_only:
            query = query.where(TriggerAlert.acknowledged_at.is_(None))
        result = await self.session.execute(query.order_by(TriggerAlert.created_at.desc()))
        return list(result.scalars().all())

    async def count_unacknowledged(self, organisation_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(TriggerAlert)
            .where(
                TriggerAlert.organisation_id == organisation_id,
                TriggerAlert.acknowledged_at.is_(None),
            )
        )
        return result.scalar_one()

    async def acknowledge_alert(
        self,
        alert_id: UUID,
        user_id: UUID,
        organisation_id: UUID,
    ) -> TriggerAlert:
        """Stamp an alert as acknowledged.

        Acknowledging twice re-stamps the actor and time rather than failing.
        """
        alert = await self.get_alert(alert_id, organisation_id)
        alert.acknowledged_by = user_id
        alert.acknowledged_at = utcnow()
        await self.session.flush()

        await self.audit.record(
            actor_id=user_id,
            organisation_id=organisation_id,
            action="trigger_alert.acknowledge",
            entity="trigger_alert",
            entity_id=alert.id,
        )
        return alert
