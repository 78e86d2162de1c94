"""
Wizard sessions: Session Directory + Workflow Controllers
"""

from .definitions import (
    ALL_WORKFLOWS,
    FREE_QUESTION,
    NUTRITION_PLAN,
    PROFILE_EDIT,
    REGISTRATION,
    WATER_QUANTITY,
    WORKOUT_PLAN,
)
from .directory import SessionDirectory
from .models import AdvanceResult, Session, WizardEvent, WizardEventType
from .workflow import (
    FINALIZE,
    NONE_SENTINEL,
    Edge,
    Step,
    WorkflowController,
    WorkflowDefinition,
    toggle_member,
)

__all__ = [
    "ALL_WORKFLOWS",
    "REGISTRATION",
    "WORKOUT_PLAN",
    "NUTRITION_PLAN",
    "PROFILE_EDIT",
    "WATER_QUANTITY",
    "FREE_QUESTION",
    "SessionDirectory",
    "Session",
    "WizardEvent",
    "WizardEventType",
    "AdvanceResult",
    "WorkflowDefinition",
    "WorkflowController",
    "Step",
    "Edge",
    "FINALIZE",
    "NONE_SENTINEL",
    "toggle_member",
]
