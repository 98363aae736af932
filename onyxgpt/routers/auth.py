"""
Auth API: sign-up, sign-in, anonymous session and sign-out, proxied to the
configured auth provider.

Provider failures are surfaced as 401 AUTH_FAILED envelopes with the
provider's message; they are never swallowed.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request

from onyxgpt.auth import AuthError, AuthProvider, AuthSession
from onyxgpt.dependencies import get_auth_provider, get_bearer_token
from onyxgpt.engine import ErrorEnvelope, read_json_body

router = APIRouter(prefix="/auth", tags=["auth"])

SIGN_UP_PENDING_MESSAGE = "Check your email for a verification link!"


def _provider_or_error(provider: Optional[AuthProvider]) -> AuthProvider:
    if provider is None:
        raise ErrorEnvelope(
            status_code=503,
            code="AUTH_NOT_CONFIGURED",
            message="Authentication provider is not configured",
        )
    return provider


def _credentials(payload: Any) -> Dict[str, str]:
    errors = []
    fields: Dict[str, str] = {}
    for name in ("email", "password"):
        value = payload.get(name) if isinstance(payload, dict) else None
        if not isinstance(value, str) or not value:
            errors.append({"path": [name], "message": "Field required"})
        else:
            fields[name] = value
    if errors:
        raise ErrorEnvelope(
            status_code=422,
            code="VALIDATION_ERROR",
            message="Invalid credentials",
            details=errors,
        )
    return fields


def _session_body(session: AuthSession) -> Dict[str, Any]:
    return {
        "access_token": session.access_token,
        "refresh_token": session.refresh_token,
        "expires_at": session.expires_at,
        "user": {
            "id": session.user.id,
            "email": session.user.email,
            "is_anonymous": session.user.is_anonymous,
        },
    }


def _auth_failed(exc: AuthError) -> ErrorEnvelope:
    return ErrorEnvelope(status_code=401, code="AUTH_FAILED", message=str(exc))


@router.post("/signup")
async def post_signup(
    request: Request,
    provider: Optional[AuthProvider] = Depends(get_auth_provider),
) -> Dict[str, Any]:
    auth = _provider_or_error(provider)
    payload = await read_json_body(request)
    creds = _credentials(payload)
    redirect_to = payload.get("redirect_to") if isinstance(payload.get("redirect_to"), str) else None
    try:
        session = auth.sign_up(creds["email"], creds["password"], redirect_to=redirect_to)
    except AuthError as exc:
        raise _auth_failed(exc) from exc
    if session is None:
        return {"session": None, "message": SIGN_UP_PENDING_MESSAGE}
    return {"session": _session_body(session), "message": None}


@router.post("/signin")
async def post_signin(
    request: Request,
    provider: Optional[AuthProvider] = Depends(get_auth_provider),
) -> Dict[str, Any]:
    auth = _provider_or_error(provider)
    creds = _credentials(await read_json_body(request))
    try:
        session = auth.sign_in(creds["email"], creds["password"])
    except AuthError as exc:
        raise _auth_failed(exc) from exc
    return {"session": _session_body(session)}


@router.post("/anonymous")
async def post_anonymous(
    provider: Optional[AuthProvider] = Depends(get_auth_provider),
) -> Dict[str, Any]:
    auth = _provider_or_error(provider)
    try:
        session = auth.sign_in_anonymously()
    except AuthError as exc:
        raise _auth_failed(exc) from exc
    return {"session": _session_body(session)}


@router.post("/signout")
async def post_signout(
    request: Request,
    provider: Optional[AuthProvider] = Depends(get_auth_provider),
) -> Dict[str, Any]:
    auth = _provider_or_error(provider)
    token = get_bearer_token(request)
    if not token:
        raise ErrorEnvelope(status_code=401, code="UNAUTHORIZED", message="Missing session token")
    try:
        auth.sign_out(token)
    except AuthError as exc:
        raise _auth_failed(exc) from exc
    return {"ok": True}
