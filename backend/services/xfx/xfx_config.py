"""
XFX Invoice Hub - Submission Configuration

All deployment parameters for the XFX submission workflow are read from
environment variables. The server loads `.env` before this module is imported.

Relay modes:
- direct: call the workflow engine addresses as-is
- cors_proxy: prefix every address with XFX_CORS_PROXY_URL
- forwarding: POST everything to XFX_FORWARDING_URL, which relays to the target
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Tuple


class RelayMode(str, Enum):
    """How outbound calls reach the workflow engine."""
    DIRECT = "direct"
    CORS_PROXY = "cors_proxy"
    FORWARDING = "forwarding"


class FinalizeVariant(str, Enum):
    """Completion marker sent by finalize(), per deployment."""
    FINALRESPONSE = "finalresponse"   # {"finalresponse": "success"}
    COMPLETE = "complete"             # {"action": "complete"}


# =============================================================================
# CONFIGURATION
# =============================================================================

XFX_TRIGGER_URL = os.environ.get(
    "XFX_TRIGGER_URL",
    "http://localhost:5678/webhook/invoice-postman"
)
XFX_TRIGGER_ACTION = os.environ.get("XFX_TRIGGER_ACTION", "start_process")

XFX_RELAY_MODE = os.environ.get("XFX_RELAY_MODE", RelayMode.DIRECT.value).lower()
XFX_CORS_PROXY_URL = os.environ.get("XFX_CORS_PROXY_URL", "https://cors-anywhere.herokuapp.com/")
XFX_FORWARDING_URL = os.environ.get("XFX_FORWARDING_URL", "")
XFX_FORWARDING_FIELD = os.environ.get("XFX_FORWARDING_FIELD", "resumeUrl")

XFX_REQUEST_TIMEOUT = float(os.environ.get("XFX_REQUEST_TIMEOUT", "30"))

# UI pacing between the success/error reply and the next stage
XFX_VISUAL_DELAY_SECONDS = float(os.environ.get("XFX_VISUAL_DELAY_SECONDS", "3"))

# Second-stage status poll
XFX_POLL_INTERVAL_MS = int(os.environ.get("XFX_POLL_INTERVAL_MS", "5000"))
XFX_STAGE2_STATUS_MARKER = os.environ.get("XFX_STAGE2_STATUS_MARKER", "processing")
XFX_STOP_POLL_ON_FINAL_STATUS = os.environ.get(
    "XFX_STOP_POLL_ON_FINAL_STATUS", "false"
).lower() in ("true", "1", "yes")

XFX_FINALIZE_VARIANT = os.environ.get(
    "XFX_FINALIZE_VARIANT", FinalizeVariant.FINALRESPONSE.value
).lower()

XFX_ACCEPTED_EXTENSIONS = tuple(
    ext.strip().lower()
    for ext in os.environ.get("XFX_ACCEPTED_EXTENSIONS", ".xml").split(",")
    if ext.strip()
)

XFX_ACCEPTED_CONTENT_TYPES = ("text/xml", "application/xml")

XFX_DEFAULT_HEADERS = {
    "ngrok-skip-browser-warning": "true",
    "User-Agent": "XFX-Invoice-Hub/1.0",
}


@dataclass
class XFXConfig:
    """Resolved settings for one orchestrator instance."""
    trigger_url: str = XFX_TRIGGER_URL
    trigger_action: str = XFX_TRIGGER_ACTION
    relay_mode: str = RelayMode.DIRECT.value
    cors_proxy_url: str = XFX_CORS_PROXY_URL
    forwarding_url: str = XFX_FORWARDING_URL
    forwarding_field: str = XFX_FORWARDING_FIELD
    request_timeout: float = XFX_REQUEST_TIMEOUT
    visual_delay_seconds: float = XFX_VISUAL_DELAY_SECONDS
    poll_interval_ms: int = XFX_POLL_INTERVAL_MS
    stage2_status_marker: str = XFX_STAGE2_STATUS_MARKER
    stop_poll_on_final_status: bool = XFX_STOP_POLL_ON_FINAL_STATUS
    finalize_variant: str = FinalizeVariant.FINALRESPONSE.value
    accepted_extensions: Tuple[str, ...] = XFX_ACCEPTED_EXTENSIONS
    default_headers: Dict[str, str] = field(default_factory=lambda: dict(XFX_DEFAULT_HEADERS))

    def finalize_payload(self) -> Dict[str, str]:
        if self.finalize_variant == FinalizeVariant.COMPLETE.value:
            return {"action": "complete"}
        return {"finalresponse": "success"}

    def upload_fields(self) -> Dict[str, str]:
        """Extra multipart fields sent alongside the file."""
        if self.relay_mode == RelayMode.FORWARDING.value:
            # The forwarding relay adds the target address itself
            return {}
        return {"action": "process_invoice"}


def load_xfx_config() -> XFXConfig:
    """Build the config from the current environment."""
    relay_mode = XFX_RELAY_MODE
    if relay_mode not in [m.value for m in RelayMode]:
        relay_mode = RelayMode.DIRECT.value

    finalize_variant = XFX_FINALIZE_VARIANT
    if finalize_variant not in [v.value for v in FinalizeVariant]:
        finalize_variant = FinalizeVariant.FINALRESPONSE.value

    return XFXConfig(relay_mode=relay_mode, finalize_variant=finalize_variant)


def is_accepted_document(
    file_name: str,
    content_type: str = None,
    extensions: Tuple[str, ...] = XFX_ACCEPTED_EXTENSIONS
) -> bool:
    """Check if an uploaded file looks like an XML invoice."""
    if content_type and content_type.lower() in XFX_ACCEPTED_CONTENT_TYPES:
        return True
    name = (file_name or "").lower()
    return any(name.endswith(ext) for ext in extensions)
