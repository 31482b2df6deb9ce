"""
XFX Invoice Hub - Submission Router

HTTP surface for the invoice submission orchestrator. Every command returns
the session snapshot so a client can re-render from a single response.
"""

from fastapi import APIRouter, HTTPException, Query, UploadFile, File, Body
from typing import Optional, Any
from pydantic import BaseModel, Field
import logging

from services.xfx import XFXOrchestrator, UploadedDocument, is_accepted_document

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/xfx", tags=["xfx"])

# Orchestrator - set by main app
orchestrator: Optional[XFXOrchestrator] = None

MAX_DOCUMENT_BYTES = 10 * 1024 * 1024


def set_orchestrator(instance: XFXOrchestrator):
    global orchestrator
    orchestrator = instance


def get_orchestrator() -> XFXOrchestrator:
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="XFX orchestrator not initialized")
    return orchestrator


# ==================== MODELS ====================

class PollRequest(BaseModel):
    secondary_address: str
    interval_ms: Optional[int] = Field(None, gt=0)


# ==================== SESSION ENDPOINTS ====================

@router.get("/session")
async def get_session():
    """Current session snapshot."""
    return get_orchestrator().snapshot()


@router.get("/logs")
async def get_logs(since: int = Query(0, ge=0)):
    """Event log entries newer than `since`."""
    orch = get_orchestrator()
    entries = orch.event_log.entries(since=since)
    return {
        "session_id": orch.session.session_id,
        "logs": [e.to_dict() for e in entries],
        "last_id": entries[-1].id if entries else since,
    }


@router.post("/reset")
async def reset_session():
    """Discard the current session and begin a new one."""
    orch = get_orchestrator()
    await orch.reset()
    return orch.snapshot()


# ==================== COMMAND ENDPOINTS ====================

@router.post("/start")
async def start_workflow():
    """Trigger the n8n workflow."""
    orch = get_orchestrator()
    await orch.start()
    return orch.snapshot()


@router.put("/document")
async def upload_document(file: UploadFile = File(...)):
    """Attach the XML invoice to the session."""
    if not is_accepted_document(file.filename, file.content_type):
        raise HTTPException(status_code=415, detail="Please upload an XML file")

    content = await file.read()
    if len(content) > MAX_DOCUMENT_BYTES:
        raise HTTPException(status_code=400, detail="File too large (max 10MB)")

    orch = get_orchestrator()
    orch.set_document(UploadedDocument(
        name=file.filename,
        content=content,
        content_type=file.content_type or "application/xml"
    ))
    return orch.snapshot()


@router.delete("/document")
async def remove_document():
    """Clear the attached invoice."""
    orch = get_orchestrator()
    orch.set_document(None)
    return orch.snapshot()


@router.post("/submit")
async def submit_invoice():
    """Send the attached invoice to the workflow."""
    orch = get_orchestrator()
    await orch.submit()
    return orch.snapshot()


@router.post("/finalize")
async def finalize_workflow():
    """Send the completion marker to the workflow."""
    orch = get_orchestrator()
    await orch.finalize()
    return orch.snapshot()


@router.post("/poll")
async def start_polling(request: PollRequest):
    """Begin polling a second-stage status address."""
    orch = get_orchestrator()
    orch.poll_second_stage(request.secondary_address, request.interval_ms)
    return orch.snapshot()


@router.post("/callback")
async def receive_callback(payload: Any = Body(...)):
    """Result pushed by n8n after an ack-only reply."""
    orch = get_orchestrator()
    logger.info("XFX callback received for session %s", orch.session.session_id)
    orch.receive_result(payload)
    return orch.snapshot()
