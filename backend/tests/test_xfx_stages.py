"""
Unit tests for the XFX submission stage machine.
Tests the transition table in services/xfx/xfx_stages.py
"""

from services.xfx.xfx_stages import (
    Stage,
    StageEvent,
    StageHistoryEntry,
    STAGE_TRANSITIONS,
    can_transition,
    build_step_statuses,
)


class TestStage:
    """Test stage enum values."""

    def test_all_stages_defined(self):
        expected = ['start', 'awaiting-upload', 'submitting', 'awaiting-confirmation', 'resolved']
        assert [s.value for s in Stage] == expected

    def test_every_stage_has_transitions(self):
        for stage in Stage:
            assert stage.value in STAGE_TRANSITIONS


class TestStageTransitions:
    """Test the transition rules."""

    def test_trigger_accepted(self):
        can, next_stage, _ = can_transition(Stage.START.value, StageEvent.ON_TRIGGER_ACCEPTED.value)
        assert can is True
        assert next_stage == Stage.AWAITING_UPLOAD.value

    def test_trigger_failed_stays_at_start(self):
        can, next_stage, _ = can_transition(Stage.START.value, StageEvent.ON_TRIGGER_FAILED.value)
        assert can is True
        assert next_stage == Stage.START.value

    def test_submit_from_awaiting_upload(self):
        can, next_stage, _ = can_transition(Stage.AWAITING_UPLOAD.value, StageEvent.ON_SUBMIT.value)
        assert can is True
        assert next_stage == Stage.SUBMITTING.value

    def test_ack_keeps_submitting(self):
        can, next_stage, _ = can_transition(Stage.SUBMITTING.value, StageEvent.ON_ACK.value)
        assert can is True
        assert next_stage == Stage.SUBMITTING.value

    def test_results_move_to_confirmation(self):
        for event in (StageEvent.ON_RESULT_ACCEPTED, StageEvent.ON_RESULT_REJECTED):
            can, next_stage, _ = can_transition(Stage.SUBMITTING.value, event.value)
            assert can is True
            assert next_stage == Stage.AWAITING_CONFIRMATION.value

    def test_confirmation_elapsed_resolves(self):
        can, next_stage, _ = can_transition(
            Stage.AWAITING_CONFIRMATION.value, StageEvent.ON_CONFIRMATION_ELAPSED.value
        )
        assert can is True
        assert next_stage == Stage.RESOLVED.value

    def test_finalize_forces_resolved(self):
        for stage in (Stage.AWAITING_UPLOAD, Stage.SUBMITTING, Stage.AWAITING_CONFIRMATION, Stage.RESOLVED):
            can, next_stage, _ = can_transition(stage.value, StageEvent.ON_FINALIZED.value)
            assert can is True
            assert next_stage == Stage.RESOLVED.value

    def test_cannot_submit_from_start(self):
        can, next_stage, reason = can_transition(Stage.START.value, StageEvent.ON_SUBMIT.value)
        assert can is False
        assert next_stage is None
        assert "not valid" in reason

    def test_cannot_finalize_from_start(self):
        can, _, _ = can_transition(Stage.START.value, StageEvent.ON_FINALIZED.value)
        assert can is False

    def test_resolved_is_terminal(self):
        can, _, _ = can_transition(Stage.RESOLVED.value, StageEvent.ON_SUBMIT.value)
        assert can is False

    def test_accepts_enum_members(self):
        can, next_stage, _ = can_transition(Stage.START, StageEvent.ON_TRIGGER_ACCEPTED)
        assert can is True
        assert next_stage == Stage.AWAITING_UPLOAD.value

    def test_unknown_stage(self):
        can, _, reason = can_transition("archived", StageEvent.ON_SUBMIT.value)
        assert can is False
        assert "No transitions" in reason


class TestStageHistoryEntry:

    def test_to_dict(self):
        entry = StageHistoryEntry(
            from_stage=Stage.START.value,
            to_stage=Stage.AWAITING_UPLOAD.value,
            event=StageEvent.ON_TRIGGER_ACCEPTED.value,
        )
        data = entry.to_dict()
        assert data["from_stage"] == "start"
        assert data["to_stage"] == "awaiting-upload"
        assert data["event"] == "on_trigger_accepted"
        assert data["reason"] is None
        assert data["timestamp"]


class TestStepStatuses:
    """Sidebar step list derived from a session."""

    def test_only_start_step_before_resume_address(self):
        steps = build_step_statuses(Stage.START.value, has_resume_address=False, errored=False)
        assert [s["id"] for s in steps] == ["start"]
        assert steps[0]["status"] == "current"

    def test_progress_while_submitting(self):
        steps = build_step_statuses(Stage.SUBMITTING.value, has_resume_address=True, errored=False)
        assert [s["status"] for s in steps] == ["completed", "completed", "current", "pending", "pending"]

    def test_resolved_success(self):
        steps = build_step_statuses(Stage.RESOLVED.value, has_resume_address=True, errored=False)
        assert [s["status"] for s in steps] == ["completed"] * 4 + ["current"]

    def test_errored_marks_outcome_steps(self):
        steps = build_step_statuses(Stage.RESOLVED.value, has_resume_address=True, errored=True)
        assert steps[3]["status"] == "error"
        assert steps[4]["status"] == "error"
        assert steps[2]["status"] == "completed"
