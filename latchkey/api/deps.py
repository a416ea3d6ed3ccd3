"""Shared FastAPI dependencies.

The orchestrator and settings are built once by ``create_app`` and hung
off ``app.state``; routes reach them through these callables.
"""

from fastapi import Request

from latchkey.passkey.orchestrator import PasskeyOrchestrator
from latchkey.settings import Settings


def get_app_settings(request: Request) -> Settings:
    """Settings the running app was created with."""
    return request.app.state.settings


def get_orchestrator(request: Request) -> PasskeyOrchestrator:
    """Passkey orchestrator shared by all requests of this app."""
    return request.app.state.orchestrator
