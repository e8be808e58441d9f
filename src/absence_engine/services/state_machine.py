"""Sickness case state machine with transition validation."""

from __future__ import annotations

from enum import Enum
from typing import Iterable

from absence_engine.services.errors import InvalidTransitionError


class SicknessStatus(str, Enum):
    """Sickness case status values."""

    REPORTED = "REPORTED"
    TRACKING = "TRACKING"
    FIT_NOTE_RECEIVED = "FIT_NOTE_RECEIVED"
    RTW_SCHEDULED = "RTW_SCHEDULED"
    RTW_COMPLETED = "RTW_COMPLETED"
    CLOSED = "CLOSED"


class SicknessAction(str, Enum):
    """Actions a caller can apply to a case."""

    ACKNOWLEDGE = "acknowledge"
    RECEIVE_FIT_NOTE = "receive_fit_note"
    SCHEDULE_RTW = "schedule_rtw"
    COMPLETE_RTW = "complete_rtw"
    CLOSE_CASE = "close_case"
    REOPEN = "reopen"


# Action recorded on the creation pseudo-transition into REPORTED
REPORT_ACTION = "report"
INITIAL_STATUS = SicknessStatus.REPORTED.value


def _value(item: str) -> str:
    return item.value if isinstance(item, Enum) else item


class CaseStateMachine:
    """State machine for sickness case status transitions.

    Allowed transitions:
    - REPORTED → TRACKING (acknowledge)
    - TRACKING → FIT_NOTE_RECEIVED (receive_fit_note)
    - TRACKING → RTW_SCHEDULED (schedule_rtw)
    - TRACKING → CLOSED (close_case)
    - FIT_NOTE_RECEIVED → RTW_SCHEDULED (schedule_rtw)
    - FIT_NOTE_RECEIVED → CLOSED (close_case)
    - RTW_SCHEDULED → RTW_COMPLETED (complete_rtw)
    - RTW_COMPLETED → CLOSED (close_case)
    - CLOSED → TRACKING (reopen)
    """

    # {from_status: {action: to_status}}, in display order
    TRANSITIONS: dict[str, dict[str, str]] = {
        SicknessStatus.REPORTED.value: {
            SicknessAction.ACKNOWLEDGE.value: SicknessStatus.TRACKING.value,
        },
        SicknessStatus.TRACKING.value: {
            SicknessAction.RECEIVE_FIT_NOTE.value: SicknessStatus.FIT_NOTE_RECEIVED.value,
            SicknessAction.SCHEDULE_RTW.value: SicknessStatus.RTW_SCHEDULED.value,
            SicknessAction.CLOSE_CASE.value: SicknessStatus.CLOSED.value,
        },
        SicknessStatus.FIT_NOTE_RECEIVED.value: {
            SicknessAction.SCHEDULE_RTW.value: SicknessStatus.RTW_SCHEDULED.value,
            SicknessAction.CLOSE_CASE.value: SicknessStatus.CLOSED.value,
        },
        SicknessStatus.RTW_SCHEDULED.value: {
            SicknessAction.COMPLETE_RTW.value: SicknessStatus.RTW_COMPLETED.value,
        },
        SicknessStatus.RTW_COMPLETED.value: {
            SicknessAction.CLOSE_CASE.value: SicknessStatus.CLOSED.value,
        },
        SicknessStatus.CLOSED.value: {
            SicknessAction.REOPEN.value: SicknessStatus.TRACKING.value,
        },
    }

    @classmethod
    def get_available_actions(cls, status: str) -> list[str]:
        """Actions legal from ``status``; empty for unknown statuses."""
        return list(cls.TRANSITIONS.get(_value(status), {}))

    @classmethod
    def next_status(cls, status: str, action: str) -> str | None:
        """Status reached by applying ``action``, or None if illegal."""
        return cls.TRANSITIONS.get(_value(status), {}).get(_value(action))

    @classmethod
    def can_apply(cls, status: str, action: str) -> bool:
        """Check if an action is legal from a status."""
        return cls.next_status(status, action) is not None

    @classmethod
    def validate_action(cls, status: str, action: str) -> str:
        """Validate an action and return the resulting status.

        Raises InvalidTransitionError naming the legal actions when the
        action cannot be applied.
        """
        status = _value(status)
        action = _value(action)
        if action not in {a.value for a in SicknessAction}:
            raise InvalidTransitionError(status, action, "unknown action")

        to_status = cls.next_status(status, action)
        if to_status is None:
            available = cls.get_available_actions(status)
            reason = (
                f"allowed actions are {', '.join(available)}"
                if available
                else "no actions are allowed"
            )
            raise InvalidTransitionError(status, action, reason)
        return to_status

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        """Check if a status only allows reopening."""
        return cls.get_available_actions(status) == [SicknessAction.REOPEN.value]

    @classmethod
    def is_valid_walk(cls, statuses: Iterable[str]) -> bool:
        """Check that a sequence of to-statuses is a legal walk from REPORTED.

        A leading REPORTED entry (the creation pseudo-transition) is allowed.
        """
        current = INITIAL_STATUS
        for index, status in enumerate(statuses):
            status = _value(status)
            if index == 0 and status == INITIAL_STATUS:
                continue
            reachable = cls.TRANSITIONS.get(current, {}).values()
            if status not in reachable:
                return False
            current = status
        return True
