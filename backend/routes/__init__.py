"""
XFX Invoice Hub - Routes Package

API routers for the Invoice Hub.
"""

from .xfx import router as xfx_router, set_orchestrator as set_xfx_orchestrator

__all__ = [
    'xfx_router', 'set_xfx_orchestrator',
]
