"""
XFX Invoice Hub - Submission Stage Machine

Deterministic stage/event transition table for one invoice submission.
Pure data and lookups; the orchestrator drives it.

Stages:
- start: workflow not yet triggered
- awaiting-upload: resume address received, waiting for the XML document
- submitting: document sent, waiting for the engine's business result
- awaiting-confirmation: result received, confirmation pending
- resolved: terminal outcome known (check `errored` for success vs failure)
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple, Any


class Stage(str, Enum):
    START = "start"
    AWAITING_UPLOAD = "awaiting-upload"
    SUBMITTING = "submitting"
    AWAITING_CONFIRMATION = "awaiting-confirmation"
    RESOLVED = "resolved"


class StageEvent(str, Enum):
    """Events that move a session between stages."""
    ON_TRIGGER_ACCEPTED = "on_trigger_accepted"
    ON_TRIGGER_FAILED = "on_trigger_failed"
    ON_SUBMIT = "on_submit"
    ON_ACK = "on_ack"
    ON_RESULT_ACCEPTED = "on_result_accepted"
    ON_RESULT_REJECTED = "on_result_rejected"
    ON_CONFIRMATION_ELAPSED = "on_confirmation_elapsed"
    ON_FINALIZED = "on_finalized"


# Format: {current_stage: {event: next_stage}}
STAGE_TRANSITIONS: Dict[str, Dict[str, str]] = {
    Stage.START.value: {
        StageEvent.ON_TRIGGER_ACCEPTED.value: Stage.AWAITING_UPLOAD.value,
        StageEvent.ON_TRIGGER_FAILED.value: Stage.START.value,
    },
    Stage.AWAITING_UPLOAD.value: {
        StageEvent.ON_SUBMIT.value: Stage.SUBMITTING.value,
        StageEvent.ON_FINALIZED.value: Stage.RESOLVED.value,
    },
    Stage.SUBMITTING.value: {
        StageEvent.ON_ACK.value: Stage.SUBMITTING.value,
        StageEvent.ON_RESULT_ACCEPTED.value: Stage.AWAITING_CONFIRMATION.value,
        StageEvent.ON_RESULT_REJECTED.value: Stage.AWAITING_CONFIRMATION.value,
        StageEvent.ON_FINALIZED.value: Stage.RESOLVED.value,
    },
    Stage.AWAITING_CONFIRMATION.value: {
        StageEvent.ON_CONFIRMATION_ELAPSED.value: Stage.RESOLVED.value,
        StageEvent.ON_FINALIZED.value: Stage.RESOLVED.value,
    },
    Stage.RESOLVED.value: {
        StageEvent.ON_FINALIZED.value: Stage.RESOLVED.value,
    },
}


def can_transition(current_stage: str, event: str) -> Tuple[bool, Optional[str], str]:
    """
    Check if `event` is valid in `current_stage`.

    Returns:
        (can_transition, next_stage, reason)
    """
    current_key = current_stage.value if isinstance(current_stage, Stage) else current_stage
    event_key = event.value if isinstance(event, StageEvent) else event

    stage_transitions = STAGE_TRANSITIONS.get(current_key)
    if stage_transitions is None:
        return (False, None, f"No transitions defined for stage '{current_key}'")

    next_stage = stage_transitions.get(event_key)
    if next_stage is None:
        valid_events = list(stage_transitions.keys())
        return (False, None, f"Event '{event_key}' not valid for stage '{current_key}'. Valid: {valid_events}")

    return (True, next_stage, "Transition allowed")


class StageHistoryEntry:
    """Represents a single stage change (or blocked change) in a session."""

    def __init__(
        self,
        from_stage: Optional[str],
        to_stage: str,
        event: str,
        reason: Optional[str] = None
    ):
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.from_stage = from_stage
        self.to_stage = to_stage
        self.event = event
        self.reason = reason

    def to_dict(self) -> Dict:
        return {
            "timestamp": self.timestamp,
            "from_stage": self.from_stage,
            "to_stage": self.to_stage,
            "event": self.event,
            "reason": self.reason,
        }


# =============================================================================
# STEP STATUSES (sidebar view of a session)
# =============================================================================

STEP_DEFINITIONS = [
    ("start", "Start Process", "Initiate your XFX process", "play"),
    ("upload", "Upload Invoice", "Provide xml file", "upload"),
    ("products", "Sending invoice", "Accessing XFX API", "package"),
    ("issues", "Invoice Processing", "Waiting for receiving confirmation", "message-square"),
    ("resolution", "Invoice Processed", "Status of invoice", "check-circle"),
]

_STAGE_ORDER = [
    Stage.START.value,
    Stage.AWAITING_UPLOAD.value,
    Stage.SUBMITTING.value,
    Stage.AWAITING_CONFIRMATION.value,
    Stage.RESOLVED.value,
]


def _step_status(index: int, stage: str, errored: bool) -> str:
    current = _STAGE_ORDER.index(stage)
    # The last two steps show the business outcome
    if errored and index >= 3:
        return "error"
    if index == current:
        return "current"
    if index < current:
        return "completed"
    return "pending"


def build_step_statuses(stage: str, has_resume_address: bool, errored: bool) -> List[Dict[str, Any]]:
    """
    Step list for a presentation layer. Only the start step is listed until
    the engine has handed out a resume address.
    """
    stage = stage.value if isinstance(stage, Stage) else stage
    definitions = STEP_DEFINITIONS if has_resume_address else STEP_DEFINITIONS[:1]

    return [
        {
            "id": step_id,
            "title": title,
            "description": description,
            "icon": icon,
            "status": _step_status(index, stage, errored),
        }
        for index, (step_id, title, description, icon) in enumerate(definitions)
    ]
