"""WebAuthn passkey routes.

Registration flow:
1. POST /register/challenge -> returns challenge
2. POST /register/verify    -> stores credential

Authentication flow:
1. POST /login/challenge -> returns challenge + allowed credential IDs
2. POST /login/verify    -> returns verification result

Failures are raised as ``PasskeyError`` subclasses and rendered by the
app's exception handlers (400 bad request or rejected assertion,
404 unknown account or credential, 410 missing/expired challenge).
"""

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from latchkey.api.deps import get_app_settings, get_orchestrator
from latchkey.passkey.orchestrator import PasskeyOrchestrator
from latchkey.settings import Settings

router = APIRouter(tags=["Passkey"])

# Storage keys are prefix + username and the kv key column holds 255 chars
MAX_USERNAME_LENGTH = 128


# =============================================================================
# Request Schemas
# =============================================================================


class ChallengeRequest(BaseModel):
    """Challenge request for either ceremony."""

    username: str = Field(default="", max_length=MAX_USERNAME_LENGTH)


class RegisterVerifyRequest(BaseModel):
    """WebAuthn registration response from the browser."""

    username: str = Field(default="", max_length=MAX_USERNAME_LENGTH)
    registration: dict[str, Any] | None = None


class LoginVerifyRequest(BaseModel):
    """WebAuthn authentication response from the browser."""

    username: str = Field(default="", max_length=MAX_USERNAME_LENGTH)
    authentication: dict[str, Any] | None = None


def expected_origin(request: Request, settings: Settings) -> str:
    """Origin the assertion must have been produced for.

    A configured ``webauthn_origin`` wins; otherwise the request's
    ``Origin`` header; otherwise the origin the request was addressed to.
    """
    if settings.webauthn_origin:
        return settings.webauthn_origin
    origin = request.headers.get("origin")
    if origin:
        return origin
    return f"{request.url.scheme}://{request.url.netloc}"


# =============================================================================
# Registration Endpoints
# =============================================================================


@router.post("/register/challenge")
async def register_challenge(
    body: ChallengeRequest,
    orchestrator: PasskeyOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Issue a registration challenge for ``navigator.credentials.create()``."""
    challenge = await orchestrator.request_registration_challenge(body.username)
    return {"challenge": challenge}


@router.post("/register/verify")
async def register_verify(
    body: RegisterVerifyRequest,
    request: Request,
    orchestrator: PasskeyOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    """Verify a registration response and enroll the credential."""
    credential = await orchestrator.verify_registration(
        body.username,
        body.registration,
        expected_origin(request, settings),
    )
    return {"status": "ok", "credentialId": credential.credential_id}


# =============================================================================
# Authentication Endpoints
# =============================================================================


@router.post("/login/challenge")
async def login_challenge(
    body: ChallengeRequest,
    orchestrator: PasskeyOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Issue a login challenge for ``navigator.credentials.get()``."""
    issued = await orchestrator.request_authentication_challenge(body.username)
    return {"challenge": issued.challenge, "credentialIds": issued.credential_ids}


@router.post("/login/verify")
async def login_verify(
    body: LoginVerifyRequest,
    request: Request,
    orchestrator: PasskeyOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    """Verify a login assertion and return the verifier's result."""
    result = await orchestrator.verify_authentication(
        body.username,
        body.authentication,
        expected_origin(request, settings),
    )
    return result.to_dict()
