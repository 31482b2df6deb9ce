"""
XFX Invoice Hub - Workflow Reply Classifier

Classifies a decoded workflow engine reply as ack, success or error and
extracts normalized fields. The engine's schema has drifted over time, so
every field is looked up through an alias list and the first non-empty value
wins.

Classification order (first match wins):
1. any error field present            -> error
2. tracking id AND invoice number     -> success
3. known acknowledgement marker       -> ack (with marker)
4. anything else                      -> ack (raw payload only)

Arrays are reduced to their first element; later elements are ignored.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

# Field aliases, in order of preference
TRACKING_ID_ALIASES = ("xfxTrackingId", "id")
INVOICE_NUMBER_ALIASES = ("invoiceNo", "number")
EXTERNAL_TRACKING_ID_ALIASES = ("externalTrackingId",)
DATE_RECEIVED_ALIASES = ("dateReceivedUtc",)
ERROR_MESSAGE_ALIASES = ("errorMessage",)
ERROR_CODE_ALIASES = ("errorCode",)
INTERNAL_TRACK_ID_ALIASES = ("internalTrackID", "internalTrackId")
TIMESTAMP_ALIASES = ("timestamp",)
RESUME_ADDRESS_ALIASES = ("resumeUrl", "webhookUrl")
SECONDARY_ADDRESS_ALIASES = ("resumeUrlStage2",)
STATUS_ALIASES = ("status",)
SUBMISSION_STATUS_ALIASES = ("ksefSubmissionStatus",)

# Fields whose presence marks a reply as an error
ERROR_FIELDS = ("error", "errorMessage", "errorCode")

ACK_MARKERS = ("Workflow was started",)

# KSeF statuses after which the engine has nothing more to report
FINAL_SUBMISSION_STATUSES = ("ACCEPTED", "REJECTED", "COMPLETED", "FAILED")

# Display fields for the terminal KSeF result
KSEF_SUMMARY_FIELDS = (
    "ksefNumber",
    "number",
    "totalAmount",
    "currencyCode",
    "issueDate",
    "subject1Name",
    "subject1VatNumber",
    "processingMode",
    "dateReceivedUtc",
    "qrCode",
    "ksefDate",
    "saleDate",
    "schemaVersion",
)


class Outcome(str, Enum):
    ACK = "ack"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class NormalizedResult:
    """Classifier output. `raw` always keeps the original payload."""
    outcome: str
    raw: Any = None
    tracking_id: Optional[str] = None
    invoice_number: Optional[str] = None
    external_tracking_id: Optional[str] = None
    date_received: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    internal_track_id: Optional[str] = None
    timestamp: Optional[str] = None
    ack_marker: Optional[str] = None
    secondary_address: Optional[str] = None
    status: Optional[str] = None
    submission_status: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.outcome == Outcome.ERROR.value

    @property
    def is_success(self) -> bool:
        return self.outcome == Outcome.SUCCESS.value

    @property
    def is_ack(self) -> bool:
        return self.outcome == Outcome.ACK.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome,
            "tracking_id": self.tracking_id,
            "invoice_number": self.invoice_number,
            "external_tracking_id": self.external_tracking_id,
            "date_received": self.date_received,
            "error_message": self.error_message,
            "error_code": self.error_code,
            "internal_track_id": self.internal_track_id,
            "timestamp": self.timestamp,
            "ack_marker": self.ack_marker,
            "secondary_address": self.secondary_address,
            "status": self.status,
            "submission_status": self.submission_status,
            "raw": self.raw,
        }


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def first_present(payload: Dict[str, Any], aliases: Sequence[str]) -> Optional[Any]:
    """First non-empty value among `aliases`, or None."""
    for alias in aliases:
        value = payload.get(alias)
        if not _is_empty(value):
            return value
    return None


def first_element(body: Any) -> Any:
    """Reduce an array reply to its first element."""
    if isinstance(body, list):
        return body[0] if body else None
    return body


def has_error_field(payload: Dict[str, Any]) -> bool:
    """
    `error` counts when truthy (so `"error": false` is not an error);
    `errorMessage` / `errorCode` count when non-empty.
    """
    if payload.get("error"):
        return True
    return any(not _is_empty(payload.get(name)) for name in ERROR_FIELDS if name != "error")


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def classify_response(body: Any) -> NormalizedResult:
    """Classify a decoded reply body."""
    payload = first_element(body)

    if not isinstance(payload, dict):
        return NormalizedResult(outcome=Outcome.ACK.value, raw=body)

    common = dict(
        raw=body,
        timestamp=_as_text(first_present(payload, TIMESTAMP_ALIASES)),
        secondary_address=_as_text(first_present(payload, SECONDARY_ADDRESS_ALIASES)),
        status=_as_text(first_present(payload, STATUS_ALIASES)),
        submission_status=_as_text(first_present(payload, SUBMISSION_STATUS_ALIASES)),
    )

    if has_error_field(payload):
        message = first_present(payload, ERROR_MESSAGE_ALIASES)
        if message is None and isinstance(payload.get("error"), str):
            message = payload["error"]
        return NormalizedResult(
            outcome=Outcome.ERROR.value,
            error_message=_as_text(message) or "Unknown error",
            error_code=_as_text(first_present(payload, ERROR_CODE_ALIASES)),
            internal_track_id=_as_text(first_present(payload, INTERNAL_TRACK_ID_ALIASES)),
            **common
        )

    tracking_id = first_present(payload, TRACKING_ID_ALIASES)
    invoice_number = first_present(payload, INVOICE_NUMBER_ALIASES)
    if tracking_id is not None and invoice_number is not None:
        return NormalizedResult(
            outcome=Outcome.SUCCESS.value,
            tracking_id=_as_text(tracking_id),
            invoice_number=_as_text(invoice_number),
            external_tracking_id=_as_text(first_present(payload, EXTERNAL_TRACKING_ID_ALIASES)),
            date_received=_as_text(first_present(payload, DATE_RECEIVED_ALIASES)),
            **common
        )

    message = payload.get("message")
    if message in ACK_MARKERS:
        return NormalizedResult(outcome=Outcome.ACK.value, ack_marker=message, **common)

    return NormalizedResult(outcome=Outcome.ACK.value, **common)


def extract_resume_address(body: Any) -> Optional[str]:
    """Resume address from a trigger reply, if any."""
    payload = first_element(body)
    if not isinstance(payload, dict):
        return None
    return _as_text(first_present(payload, RESUME_ADDRESS_ALIASES))


def is_final_submission_status(status: Optional[str]) -> bool:
    return bool(status) and status.upper() in FINAL_SUBMISSION_STATUSES


def merge_reply(previous: Any, reply: Any) -> Dict[str, Any]:
    """Shallow-merge a status reply into the last known result."""
    base = first_element(previous)
    update = first_element(reply)
    merged = dict(base) if isinstance(base, dict) else {}
    if isinstance(update, dict):
        merged.update(update)
    return merged


def summarize_final_response(body: Any) -> List[Dict[str, Any]]:
    """
    Display fields for each terminal KSeF result.
    Unlike classification, every element of an array is summarized.
    """
    if body is None:
        return []
    items = body if isinstance(body, list) else [body]

    summaries = []
    for item in items:
        if not isinstance(item, dict):
            continue
        summary = {name: item.get(name) for name in KSEF_SUMMARY_FIELDS}
        summary["ksefSubmissionStatus"] = item.get("ksefSubmissionStatus") or "SUBMITTED"
        summaries.append(summary)
    return summaries
