"""Absence engine services."""

from absence_engine.services.errors import (
    AbsenceEngineError,
    InvalidOverrideError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from absence_engine.services.state_machine import CaseStateMachine, SicknessAction, SicknessStatus
from absence_engine.services.workflow_service import WorkflowService
from absence_engine.services.milestone_service import MilestoneService
from absence_engine.services.milestone_workflow import MilestoneWorkflowService
from absence_engine.services.trigger_service import TriggerService
from absence_engine.services.bradford import BradfordFactorService
from absence_engine.services.sickness_case_service import SicknessCaseService

__all__ = [
    "AbsenceEngineError",
    "BradfordFactorService",
    "CaseStateMachine",
    "InvalidOverrideError",
    "InvalidTransitionError",
    "MilestoneService",
    "MilestoneWorkflowService",
    "NotFoundError",
    "SicknessAction",
    "SicknessCaseService",
    "SicknessStatus",
    "TriggerService",
    "ValidationError",
    "WorkflowService",
]
