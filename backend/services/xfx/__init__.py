"""
XFX Invoice Hub - Invoice Submission Workflow

Walks a user through submitting an XML invoice to a remote n8n workflow that
forwards it to the XFX / KSeF tax API.

Components:
- xfx_config.py: Environment-driven deployment settings
- xfx_log.py: Ordered, user-facing event log
- xfx_transport.py: httpx adapter with direct / CORS proxy / forwarding relays
- xfx_classifier.py: Reply classification and field normalization
- xfx_stages.py: Stage transition table and step statuses
- xfx_orchestrator.py: Session state, commands, timers and polling

Usage:
    from services.xfx import XFXOrchestrator, UploadedDocument

    orchestrator = XFXOrchestrator()
    await orchestrator.start()
    orchestrator.set_document(UploadedDocument("invoice.xml", xml_bytes))
    await orchestrator.submit()
"""

from .xfx_config import XFXConfig, RelayMode, FinalizeVariant, load_xfx_config, is_accepted_document
from .xfx_log import EventLog, LogEntry, Severity, FailureKind
from .xfx_transport import (
    XFXTransport,
    TransportResult,
    TransportError,
    TransportErrorKind,
    MultipartBody,
    DirectRelay,
    CorsProxyRelay,
    ForwardingRelay,
    build_relay,
)
from .xfx_classifier import (
    NormalizedResult,
    Outcome,
    classify_response,
    extract_resume_address,
    summarize_final_response,
)
from .xfx_stages import Stage, StageEvent, can_transition, build_step_statuses
from .xfx_orchestrator import XFXOrchestrator, WorkflowSession, UploadedDocument

__all__ = [
    'XFXConfig',
    'RelayMode',
    'FinalizeVariant',
    'load_xfx_config',
    'is_accepted_document',
    'EventLog',
    'LogEntry',
    'Severity',
    'FailureKind',
    'XFXTransport',
    'TransportResult',
    'TransportError',
    'TransportErrorKind',
    'MultipartBody',
    'DirectRelay',
    'CorsProxyRelay',
    'ForwardingRelay',
    'build_relay',
    'NormalizedResult',
    'Outcome',
    'classify_response',
    'extract_resume_address',
    'summarize_final_response',
    'Stage',
    'StageEvent',
    'can_transition',
    'build_step_statuses',
    'XFXOrchestrator',
    'WorkflowSession',
    'UploadedDocument',
]
