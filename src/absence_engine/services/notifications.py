"""Privacy-checked notifications.

Notification content must never reveal health details. Context passed to a
notifier is reduced to a whitelist of safe fields and every value is
checked against forbidden patterns before anything is delivered.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from absence_engine.events import (
    AsyncEventEmitter,
    DomainEvent,
    RtwScheduled,
    SicknessReported,
    TriggerBreached,
)
from absence_engine.models import Employee, Organisation

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    SICKNESS_REPORTED = "SICKNESS_REPORTED"
    FIT_NOTE_EXPIRING = "FIT_NOTE_EXPIRING"
    RTW_SCHEDULED = "RTW_SCHEDULED"
    TRIGGER_BREACHED = "TRIGGER_BREACHED"


SUBJECTS: dict[str, str] = {
    NotificationKind.SICKNESS_REPORTED.value: "Action required: A team member has reported an absence",
    NotificationKind.FIT_NOTE_EXPIRING.value: "Reminder: Action needed - document expiring soon",
    NotificationKind.RTW_SCHEDULED.value: "Update: A meeting has been scheduled",
    NotificationKind.TRIGGER_BREACHED.value: "Action required: Review pending item",
}

SAFE_FIELDS = frozenset(
    {
        "organisationName",
        "actionRequired",
        "dateRange",
        "departmentName",
        "notificationType",
        "dueDate",
        "dayCount",
        "roleName",
        "caseUrl",
    }
)

FORBIDDEN_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"diagnosis",
        r"condition",
        r"illness",
        r"symptom",
        r"medication",
        r"treatment",
        r"disability",
        r"medical",
        r"health\s*(?:issue|problem|concern|status|record|data)",
        r"sick(?:ness)?\s*(?:detail|reason|cause)",
        r"absent(?:ee)?\s*reason",
    )
)


class NotificationPrivacyError(ValueError):
    """Raised when notification content matches a forbidden pattern."""

    def __init__(self, violations: list[str]):
        self.violations = violations
        super().__init__(
            f"Notification privacy violation: {'; '.join(violations)}. Notification NOT sent."
        )


@dataclass(frozen=True)
class Recipient:
    email: str
    employee_id: UUID | None = None


@dataclass(frozen=True)
class NotificationMessage:
    kind: str
    subject: str
    body: str
    context: dict[str, str]


def filter_safe_fields(context: dict[str, Any]) -> dict[str, str]:
    """Drop any field not on the whitelist and stringify the rest."""
    dropped = sorted(set(context) - SAFE_FIELDS)
    if dropped:
        logger.debug("Dropping unsafe notification fields: %s", ", ".join(dropped))
    return {k: str(v) for k, v in context.items() if k in SAFE_FIELDS and v is not None}


def find_violations(text: str) -> list[str]:
    return [p.pattern for p in FORBIDDEN_PATTERNS if p.search(text)]


def build_message(kind: str, context: dict[str, Any]) -> NotificationMessage:
    """Build a message from safe fields only, refusing forbidden content."""
    kind = NotificationKind(kind).value
    safe = filter_safe_fields(context)
    subject = SUBJECTS[kind]
    body = "\n".join(f"{key}: {value}" for key, value in sorted(safe.items()))

    violations = [f"subject contains {v}" for v in find_violations(subject)]
    violations += [f"body contains {v}" for v in find_violations(body)]
    if violations:
        raise NotificationPrivacyError(violations)

    return NotificationMessage(kind=kind, subject=subject, body=body, context=safe)


def format_date(value: date) -> str:
    """Long UK date, e.g. '8 January 2024'."""
    return f"{value.day} {value:%B %Y}"


class Notifier(Protocol):
    """Outbound notification interface."""

    async def notify(self, recipient: Recipient, kind: str, context: dict[str, Any]) -> None:
        ...


class BaseNotifier:
    """Validates content, then hands the message to ``deliver``."""

    async def notify(self, recipient: Recipient, kind: str, context: dict[str, Any]) -> None:
        message = build_message(kind, context)
        await self.deliver(recipient, message)

    async def deliver(self, recipient: Recipient, message: NotificationMessage) -> None:
        raise NotImplementedError


class LoggingNotifier(BaseNotifier):
    """Notifier that logs instead of sending email."""

    async def deliver(self, recipient: Recipient, message: NotificationMessage) -> None:
        logger.info("Notification %s to %s: %s", message.kind, recipient.email, message.subject)


class NotificationHandler:
    """Turns committed domain events into notifications.

    Each handler opens its own session, since events are dispatched after
    the originating transaction has committed. Failures are logged and
    never propagated.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Notifier,
        app_url: str,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.app_url = app_url.rstrip("/")

    def register(self, emitter: AsyncEventEmitter) -> None:
        emitter.on(SicknessReported, self.on_sickness_reported)
        emitter.on(RtwScheduled, self.on_rtw_scheduled)
        emitter.on(TriggerBreached, self.on_trigger_breached)

    def _case_url(self, case_id: UUID) -> str:
        return f"{self.app_url}/sickness/{case_id}"

    async def _load(
        self, session: AsyncSession, event: DomainEvent, employee_id: UUID
    ) -> tuple[Employee | None, Employee | None, str]:
        employee = await session.get(Employee, employee_id)
        manager = None
        if employee is not None and employee.manager_id is not None:
            manager = await session.get(Employee, employee.manager_id)
        organisation = await session.get(Organisation, event.metadata.organisation_id)
        org_name = organisation.name if organisation else "Your Organisation"
        return employee, manager, org_name

    async def _send(self, recipient: Employee | None, kind: str, context: dict[str, Any]) -> None:
        if recipient is None or not recipient.email:
            logger.info("No recipient address for %s notification; skipping", kind)
            return
        await self.notifier.notify(
            Recipient(email=recipient.email, employee_id=recipient.id), kind, context
        )

    async def on_sickness_reported(self, event: SicknessReported) -> None:
        try:
            async with self.session_factory() as session:
                _, manager, org_name = await self._load(session, event, event.employee_id)
            await self._send(
                manager,
                NotificationKind.SICKNESS_REPORTED.value,
                {
                    "notificationType": NotificationKind.SICKNESS_REPORTED.value,
                    "organisationName": org_name,
                    "dateRange": f"From {format_date(event.absence_start_date)}",
                    "actionRequired": "Review and acknowledge the absence report",
                    "caseUrl": self._case_url(event.sickness_case_id),
                },
            )
        except Exception:
            logger.exception("Failed to send sickness reported notification")

    async def on_rtw_scheduled(self, event: RtwScheduled) -> None:
        try:
            async with self.session_factory() as session:
                employee, _, org_name = await self._load(session, event, event.employee_id)
            await self._send(
                employee,
                NotificationKind.RTW_SCHEDULED.value,
                {
                    "notificationType": NotificationKind.RTW_SCHEDULED.value,
                    "organisationName": org_name,
                    "actionRequired": "A return to work meeting has been scheduled",
                    "caseUrl": self._case_url(event.sickness_case_id),
                },
            )
        except Exception:
            logger.exception("Failed to send RTW scheduled notification")

    async def on_trigger_breached(self, event: TriggerBreached) -> None:
        try:
            async with self.session_factory() as session:
                _, manager, org_name = await self._load(session, event, event.employee_id)
            context: dict[str, Any] = {
                "notificationType": NotificationKind.TRIGGER_BREACHED.value,
                "organisationName": org_name,
                "actionRequired": "Review the absence trigger alert",
            }
            if event.trigger_type == "DURATION":
                context["dayCount"] = event.triggered_value
            await self._send(manager, NotificationKind.TRIGGER_BREACHED.value, context)
        except Exception:
            logger.exception("Failed to send trigger alert notification")
