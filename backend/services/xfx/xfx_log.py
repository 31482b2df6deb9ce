"""
XFX Invoice Hub - Submission Event Log

Append-only, ordered record of what happened during one submission session.
Entries are displayed in insertion order and are never reordered or
deduplicated. Every entry is mirrored to the Python logger.
"""

import itertools
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, List, Optional

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    """Severity of an event log entry."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class FailureKind(str, Enum):
    """
    Failure classes attached to error entries.
    PRECONDITION_NOT_MET is only ever traced on the Python logger.
    """
    NETWORK_UNREACHABLE = "NetworkUnreachable"   # no response received
    HTTP_FAILURE = "HttpFailure"                 # status outside 2xx
    MALFORMED_RESPONSE = "MalformedResponse"     # 2xx, body not usable
    BUSINESS_ERROR = "BusinessError"             # body classified as error
    PRECONDITION_NOT_MET = "PreconditionNotMet"  # command issued too early


_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


@dataclass
class LogEntry:
    """A single event log line."""
    id: int
    timestamp: str
    message: str
    severity: str = Severity.INFO.value
    category: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class EventLog:
    """
    Ordered event sink for one session.

    Once closed, appends are dropped so nothing is recorded after teardown.
    """

    def __init__(self, session_id: Optional[str] = None):
        self.session_id = session_id
        self._entries: List[LogEntry] = []
        self._ids = itertools.count(1)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def append(
        self,
        message: str,
        severity: Severity = Severity.INFO,
        category: Optional[FailureKind] = None
    ) -> Optional[LogEntry]:
        """Append an entry. Returns None if the log is closed."""
        if self._closed:
            logger.debug("Dropped log entry after teardown: %s", message)
            return None

        severity = Severity(severity)
        entry = LogEntry(
            id=next(self._ids),
            timestamp=datetime.now(timezone.utc).isoformat(),
            message=message,
            severity=severity.value,
            category=FailureKind(category).value if category else None,
        )
        self._entries.append(entry)

        logger.log(
            _LOG_LEVELS[severity],
            "[xfx %s] %s",
            self.session_id or "-", message
        )
        return entry

    def info(self, message: str) -> Optional[LogEntry]:
        return self.append(message, Severity.INFO)

    def success(self, message: str) -> Optional[LogEntry]:
        return self.append(message, Severity.SUCCESS)

    def warning(self, message: str, category: Optional[FailureKind] = None) -> Optional[LogEntry]:
        return self.append(message, Severity.WARNING, category)

    def error(self, message: str, category: Optional[FailureKind] = None) -> Optional[LogEntry]:
        return self.append(message, Severity.ERROR, category)

    def entries(self, since: int = 0) -> List[LogEntry]:
        """Entries with id greater than `since`, in display order."""
        return [e for e in self._entries if e.id > since]

    def close(self):
        self._closed = True

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))
