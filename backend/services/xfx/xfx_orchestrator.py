"""
XFX Invoice Hub - Submission Orchestrator

Drives one invoice through the n8n / XFX submission workflow:

1. start():    trigger the workflow, receive the resume address
2. submit():   upload the XML invoice to the resume address
3. (engine):   ack-only replies wait for a pushed result or a later poll
4. finalize(): optional completion call, may arm the second-stage poll

The orchestrator owns the WorkflowSession. Callers read it through
snapshot() and change it only through the command methods. Network failures
never escape: they become event log entries, and the session is always left
in a well-defined stage.

Concurrency model: single asyncio loop. One network call may be in flight per
session; overlapping commands are ignored. UI pacing delays and the status
poll are tracked in `pending_timers` and cancelled together on teardown.
"""

import asyncio
import copy
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from .xfx_config import XFXConfig, load_xfx_config
from .xfx_log import EventLog, FailureKind, Severity
from .xfx_transport import XFXTransport, MultipartBody, TransportError, TransportErrorKind
from .xfx_classifier import (
    NormalizedResult,
    classify_response,
    extract_resume_address,
    is_final_submission_status,
    merge_reply,
    summarize_final_response,
)
from .xfx_stages import (
    Stage,
    StageEvent,
    StageHistoryEntry,
    can_transition,
    build_step_statuses,
)

logger = logging.getLogger(__name__)

TRANSPORT_FAILURE_KINDS = {
    TransportErrorKind.NETWORK.value: FailureKind.NETWORK_UNREACHABLE,
    TransportErrorKind.HTTP.value: FailureKind.HTTP_FAILURE,
    TransportErrorKind.PARSE.value: FailureKind.MALFORMED_RESPONSE,
}


@dataclass
class UploadedDocument:
    """The XML invoice picked by the user."""
    name: str
    content: bytes
    content_type: str = "application/xml"

    @property
    def size(self) -> int:
        return len(self.content)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "size": self.size, "type": self.content_type}


@dataclass
class WorkflowSession:
    """State of one invoice submission attempt."""
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    stage: str = Stage.START.value
    resume_address: Optional[str] = None
    uploaded_document: Optional[UploadedDocument] = None
    last_result: Optional[NormalizedResult] = None
    final_response: Any = None
    errored: bool = False
    pending_timers: Set[Any] = field(default_factory=set)
    in_flight: Optional[str] = None
    polling_address: Optional[str] = None
    torn_down: bool = False
    history: List[Dict] = field(default_factory=list)
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def mark_errored(self):
        # Sticky for the lifetime of the session
        self.errored = True


def _format_received_date(value: str) -> str:
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except (ValueError, AttributeError):
        return value
    return parsed.strftime("%Y-%m-%d %H:%M:%S %Z").strip()


class XFXOrchestrator:
    """
    Workflow orchestrator for XFX invoice submission.

    Usage:
        orchestrator = XFXOrchestrator()
        await orchestrator.start()
        orchestrator.set_document(UploadedDocument("invoice.xml", content))
        await orchestrator.submit()
        state = orchestrator.snapshot()
        ...
        await orchestrator.teardown()
    """

    def __init__(
        self,
        config: Optional[XFXConfig] = None,
        transport: Optional[XFXTransport] = None
    ):
        self.config = config or load_xfx_config()
        self.transport = transport or XFXTransport.from_config(self.config)
        self._new_session()

    def _new_session(self):
        self.session = WorkflowSession()
        self.event_log = EventLog(session_id=self.session.session_id)
        self._final_status_seen = False

        self.event_log.info("Waiting for XFX workflow to start...")
        self.event_log.success("XFX portal initialized")
        self.event_log.info("Ready to process invoices")

    # =========================================================================
    # READ-ONLY VIEW
    # =========================================================================

    @property
    def stage(self) -> str:
        return self.session.stage

    @property
    def is_processing(self) -> bool:
        return self.session.in_flight is not None

    def snapshot(self) -> Dict[str, Any]:
        """Copy of the session for presentation layers."""
        session = self.session
        return {
            "session_id": session.session_id,
            "stage": session.stage,
            "resume_address": session.resume_address,
            "document": session.uploaded_document.to_dict() if session.uploaded_document else None,
            "last_result": copy.deepcopy(session.last_result.to_dict()) if session.last_result else None,
            "final_response": copy.deepcopy(session.final_response),
            "ksef_summary": summarize_final_response(session.final_response),
            "errored": session.errored,
            "is_processing": session.in_flight is not None,
            "polling_address": session.polling_address,
            "pending_timers": len(session.pending_timers),
            "torn_down": session.torn_down,
            "steps": build_step_statuses(
                session.stage, bool(session.resume_address), session.errored
            ),
            "history": list(session.history),
            "logs": [entry.to_dict() for entry in self.event_log.entries()],
            "created_at": session.created_at,
        }

    # =========================================================================
    # COMMANDS
    # =========================================================================

    async def start(self) -> None:
        """Trigger the workflow and wait for its resume address."""
        session = self.session
        if not self._can_run("start"):
            return
        if session.stage != Stage.START.value:
            self._trace_precondition("start", f"stage is '{session.stage}'")
            return

        trigger_url = self.config.trigger_url
        session.in_flight = "start"
        self.event_log.info(f"Triggering n8n workflow at: {trigger_url}")
        try:
            result = await self.transport.send(trigger_url, {
                "action": self.config.trigger_action,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            })
        finally:
            session.in_flight = None

        if not self._is_current(session):
            return

        if not result.ok:
            self._log_transport_failure("Error triggering workflow", result.error)
            self._advance(session, StageEvent.ON_TRIGGER_FAILED, reason=result.error.detail)
            return

        resume_address = extract_resume_address(result.data)
        if not resume_address:
            self.event_log.error(
                "Error triggering workflow: malformed response, no resumeUrl received from n8n",
                FailureKind.MALFORMED_RESPONSE
            )
            self._advance(session, StageEvent.ON_TRIGGER_FAILED, reason="missing resume address")
            return

        if session.resume_address is None:
            session.resume_address = resume_address
        self.event_log.success("Workflow triggered successfully")
        self.event_log.info(f"Resume URL received: {session.resume_address}")
        self._advance(session, StageEvent.ON_TRIGGER_ACCEPTED)

    def set_document(self, document: Optional[UploadedDocument]) -> None:
        """Attach or clear the invoice document. No network call."""
        session = self.session
        if session.torn_down:
            self._trace_precondition("set_document", "session torn down")
            return

        session.uploaded_document = document
        if document is not None:
            self.event_log.success(f"File uploaded: {document.name}")
        else:
            self.event_log.info("File removed")

    async def submit(self) -> None:
        """Upload the document to the resume address and handle the reply."""
        session = self.session
        if not self._can_run("submit"):
            return
        if session.uploaded_document is None or not session.resume_address:
            self._trace_precondition("submit", "document or resume address missing")
            return
        if session.stage != Stage.AWAITING_UPLOAD.value:
            self._trace_precondition("submit", f"stage is '{session.stage}'")
            return

        document = session.uploaded_document
        session.in_flight = "submit"
        try:
            self._advance(session, StageEvent.ON_SUBMIT)
            self.event_log.info("Processing invoice...")
            self.event_log.info(f"Sending file to n8n workflow: {session.resume_address}")
            body = MultipartBody(
                fields=self.config.upload_fields(),
                files={"file": (document.name, document.content, document.content_type)},
            )
            result = await self.transport.send(session.resume_address, body)
        finally:
            session.in_flight = None

        if not self._is_current(session):
            return

        if not result.ok:
            self._log_transport_failure(
                "Error sending invoice",
                result.error,
                network_hint="Please check if the n8n workflow tunnel is running."
            )
            self._conclude_with_error(session)
            return

        self.event_log.success("Invoice sent successfully to n8n")
        self._handle_submission_reply(session, result.data)

    def receive_result(self, payload: Any) -> None:
        """Handle a result pushed by the engine after an ack-only reply."""
        session = self.session
        if session.torn_down:
            self._trace_precondition("receive_result", "session torn down")
            return
        if session.stage != Stage.SUBMITTING.value or session.in_flight:
            self._trace_precondition("receive_result", f"stage is '{session.stage}'")
            return
        # Only an ack-only reply leaves the session waiting for a push
        if session.last_result is not None and not session.last_result.is_ack:
            self._trace_precondition(
                "receive_result", f"result already received ({session.last_result.outcome})"
            )
            return

        self.event_log.info("XFX API response pushed by n8n")
        self._handle_submission_reply(session, payload)

    async def finalize(self) -> None:
        """Send the completion marker and force the terminal stage."""
        session = self.session
        if not self._can_run("finalize"):
            return
        if not session.resume_address:
            self._trace_precondition("finalize", "no resume address")
            return

        session.in_flight = "finalize"
        self.event_log.info("Calling n8n webhook...")
        try:
            result = await self.transport.send(
                session.resume_address, self.config.finalize_payload()
            )
        finally:
            session.in_flight = None

        if not self._is_current(session):
            return

        if not result.ok:
            self._log_transport_failure("Error calling webhook", result.error)
            return

        session.final_response = result.data
        session.last_result = classify_response(result.data)
        self.event_log.success(
            f"Webhook response received: {json.dumps(result.data, default=str)}"
        )
        if session.last_result.is_error:
            session.mark_errored()
            self.event_log.error(
                f"Error from XFX API: {session.last_result.error_message}",
                FailureKind.BUSINESS_ERROR
            )

        self._cancel_timers(session, stage_timers_only=True)
        self._advance(session, StageEvent.ON_FINALIZED)
        self._maybe_arm_poll(session.last_result)

    def poll_second_stage(self, secondary_address: str, interval_ms: Optional[int] = None):
        """
        Check the second-stage status every `interval_ms` until teardown.
        Must be called from a running event loop.
        """
        session = self.session
        if session.torn_down:
            self._trace_precondition("poll_second_stage", "session torn down")
            return None
        if session.polling_address:
            logger.debug("Second-stage poll already active for %s", session.polling_address)
            return None

        if interval_ms is None:
            interval_ms = self.config.poll_interval_ms
        if interval_ms <= 0:
            self._trace_precondition("poll_second_stage", f"invalid interval {interval_ms} ms")
            return None

        session.polling_address = secondary_address
        self.event_log.info(
            f"Polling submission status at {secondary_address} every {interval_ms} ms"
        )

        task = asyncio.get_running_loop().create_task(
            self._poll_loop(session, secondary_address, interval_ms / 1000.0)
        )
        session.pending_timers.add(task)
        task.add_done_callback(session.pending_timers.discard)
        return task

    async def teardown(self) -> None:
        """Cancel every pending timer and freeze the session and its log."""
        session = self.session
        if session.torn_down:
            return

        cancelled = self._cancel_timers(session)
        session.torn_down = True
        self.event_log.close()

        current = asyncio.current_task()
        tasks = [t for t in cancelled if isinstance(t, asyncio.Task) and t is not current]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        logger.info(
            "XFX session %s torn down at stage %s (%d timers cancelled)",
            session.session_id, session.stage, len(cancelled)
        )

    async def reset(self) -> None:
        """Tear the current session down and begin a fresh one."""
        await self.teardown()
        self._new_session()

    # =========================================================================
    # REPLY HANDLING
    # =========================================================================

    def _handle_submission_reply(self, session: WorkflowSession, data: Any):
        result = classify_response(data)
        session.last_result = result

        if result.is_ack:
            if result.ack_marker:
                self.event_log.info("Workflow started, waiting for XFX API response...")
            else:
                self.event_log.info("Waiting for XFX API response...")
            self._advance(session, StageEvent.ON_ACK)
            self._maybe_arm_poll(result)
            return

        if result.is_success:
            self.event_log.success("XFX API response received successfully!")
            self.event_log.info(f"XFX Tracking ID: {result.tracking_id}")
            self.event_log.info(f"Invoice Number: {result.invoice_number}")
            if result.external_tracking_id:
                self.event_log.info(f"External Tracking ID: {result.external_tracking_id}")
            if result.date_received:
                self.event_log.info(f"Date Received: {_format_received_date(result.date_received)}")
            self._schedule(self.config.visual_delay_seconds, self._enter_confirmation)
            return

        session.mark_errored()
        self.event_log.error(
            f"Error from XFX API: {result.error_message}", FailureKind.BUSINESS_ERROR
        )
        if result.error_code:
            self.event_log.error(f"Error code: {result.error_code}")
        if result.internal_track_id:
            self.event_log.error(f"Internal Track ID: {result.internal_track_id}")
        if result.timestamp:
            self.event_log.error(f"Timestamp: {result.timestamp}")
        self._conclude_with_error(session)

    def _conclude_with_error(self, session: WorkflowSession):
        session.mark_errored()
        self._advance(session, StageEvent.ON_RESULT_REJECTED)
        self._schedule(self.config.visual_delay_seconds, self._resolve)

    def _enter_confirmation(self, session: WorkflowSession):
        if self._advance(session, StageEvent.ON_RESULT_ACCEPTED):
            self.event_log.info("Invoice processing step started")
            self._schedule(self.config.visual_delay_seconds, self._resolve)

    def _resolve(self, session: WorkflowSession):
        if not self._advance(session, StageEvent.ON_CONFIRMATION_ELAPSED):
            return
        if session.errored:
            self.event_log.error("Invoice processing unsuccessful")
        else:
            self.event_log.success("Invoice processing completed")

    def _maybe_arm_poll(self, result: Optional[NormalizedResult]):
        if result is None or not result.secondary_address or not result.status:
            return
        if result.status.lower() != self.config.stage2_status_marker.lower():
            return
        self.poll_second_stage(result.secondary_address)

    async def _poll_loop(self, session: WorkflowSession, address: str, interval: float):
        while self._is_current(session):
            await asyncio.sleep(interval)
            if not self._is_current(session):
                break

            result = await self.transport.send(address, {"action": "checkStatus"})
            if not self._is_current(session):
                break

            if not result.ok:
                self._log_transport_failure(
                    "Status check failed", result.error, severity=Severity.WARNING
                )
                continue

            reply = classify_response(result.data)
            previous = session.final_response
            if previous is None and session.last_result is not None:
                previous = session.last_result.raw
            session.final_response = merge_reply(previous, result.data)
            session.last_result = classify_response(session.final_response)

            status = session.last_result.submission_status
            self.event_log.info(f"Status check: ksefSubmissionStatus={status or 'unknown'}")

            if reply.is_error:
                session.mark_errored()
                self.event_log.error(
                    f"Error from XFX API: {reply.error_message}", FailureKind.BUSINESS_ERROR
                )

            if is_final_submission_status(status):
                if self.config.stop_poll_on_final_status:
                    self.event_log.info(f"Final KSeF status {status} received, polling stopped")
                    break
                if not self._final_status_seen:
                    self._final_status_seen = True
                    self.event_log.warning(
                        f"Final KSeF status {status} received; polling continues until teardown"
                    )

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _is_current(self, session: WorkflowSession) -> bool:
        return session is self.session and not session.torn_down

    def _can_run(self, operation: str) -> bool:
        session = self.session
        if session.torn_down:
            self._trace_precondition(operation, "session torn down")
            return False
        if session.in_flight:
            self._trace_precondition(operation, f"'{session.in_flight}' already in flight")
            return False
        return True

    def _trace_precondition(self, operation: str, reason: str):
        logger.debug(
            "%s: %s ignored for session %s (%s)",
            FailureKind.PRECONDITION_NOT_MET.value, operation, self.session.session_id, reason
        )

    def _advance(self, session: WorkflowSession, event: StageEvent, reason: Optional[str] = None) -> bool:
        """Apply a stage transition and record it. Returns False if blocked."""
        event_key = event.value if isinstance(event, StageEvent) else event
        allowed, next_stage, why = can_transition(session.stage, event_key)

        if not allowed:
            logger.warning(
                "Blocked stage transition: session=%s, stage=%s, event=%s, reason=%s",
                session.session_id, session.stage, event_key, why
            )
            session.history.append(StageHistoryEntry(
                from_stage=session.stage,
                to_stage=session.stage,
                event=event_key,
                reason=f"Transition blocked: {why}"
            ).to_dict())
            return False

        session.history.append(StageHistoryEntry(
            from_stage=session.stage,
            to_stage=next_stage,
            event=event_key,
            reason=reason
        ).to_dict())
        if next_stage != session.stage:
            logger.info(
                "Stage transition: session=%s, %s -> %s (event=%s)",
                session.session_id, session.stage, next_stage, event_key
            )
        session.stage = next_stage
        return True

    def _schedule(self, delay: float, callback):
        """Run `callback(session)` after `delay` seconds unless torn down first."""
        session = self.session
        loop = asyncio.get_running_loop()

        def fire():
            session.pending_timers.discard(handle)
            if self._is_current(session):
                callback(session)

        handle = loop.call_later(delay, fire)
        session.pending_timers.add(handle)
        return handle

    def _cancel_timers(self, session: WorkflowSession, stage_timers_only: bool = False) -> List[Any]:
        cancelled = []
        for handle in list(session.pending_timers):
            if stage_timers_only and isinstance(handle, asyncio.Task):
                continue
            handle.cancel()
            session.pending_timers.discard(handle)
            cancelled.append(handle)
        return cancelled

    def _log_transport_failure(
        self,
        prefix: str,
        error: TransportError,
        severity: Severity = Severity.ERROR,
        network_hint: Optional[str] = None
    ):
        category = TRANSPORT_FAILURE_KINDS.get(error.kind, FailureKind.NETWORK_UNREACHABLE)

        if error.kind == TransportErrorKind.HTTP.value:
            body = (error.body_text or "").strip()[:200]
            message = f"{prefix}: server returned HTTP {error.status_code}"
            if body:
                message += f" - {body}"
        elif error.kind == TransportErrorKind.PARSE.value:
            body = (error.body_text or "").strip()[:200]
            message = f"{prefix}: response is not valid data - {body}"
        else:
            message = f"{prefix}: could not reach server ({error.detail})"
            if network_hint:
                message += f". {network_hint}"

        self.event_log.append(message, severity, category)
