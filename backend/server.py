"""
XFX Invoice Hub - Main Server

Entry point. Routes are organized in /routes/.
"""

from dotenv import load_dotenv
load_dotenv()  # Load .env file before any os.environ calls

from fastapi import FastAPI, APIRouter
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import os
import logging

# Configure logging
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# ==================== ROUTERS ====================
from routes import xfx

# ==================== SERVICES ====================
from services.xfx import XFXOrchestrator, load_xfx_config


# ==================== LIFESPAN ====================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logger.info("Starting XFX Invoice Hub...")

    config = load_xfx_config()
    orchestrator = XFXOrchestrator(config=config)
    xfx.set_orchestrator(orchestrator)
    logger.info(
        "XFX orchestrator ready (trigger=%s, relay=%s)",
        config.trigger_url, config.relay_mode
    )

    yield

    # Shutdown
    logger.info("Shutting down XFX Invoice Hub...")
    await orchestrator.teardown()


# ==================== APP SETUP ====================
app = FastAPI(
    title="XFX Invoice Hub",
    description="XML invoice submission through the n8n / XFX workflow",
    version="1.0.0",
    lifespan=lifespan
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API Router with /api prefix
api_router = APIRouter(prefix="/api")
api_router.include_router(xfx.router)
app.include_router(api_router)


# ==================== ROOT ENDPOINTS ====================
@app.get("/")
async def root():
    return {
        "service": "XFX Invoice Hub",
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/api/health")
async def health():
    return {
        "status": "healthy",
        "service": "xfx-invoice-hub"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8001")))
