from __future__ import annotations

from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Request

from .auth import AuthError, AuthProvider, AuthUser, SessionState, build_auth_provider, guard_route
from .clients import AIClient, build_client
from .config import get_settings
from .vision import VisionAnalyzer

SUPABASE_AUDIENCE = "authenticated"


def get_client() -> Optional[AIClient]:
    """
    Dependency returning the active AI client, or None when not configured.

    Tests rely on this function name to override the client with a
    RecordingClient/RaisingClient via FastAPI's dependency_overrides.
    """

    return build_client()


def get_vision_analyzer(client: Optional[AIClient] = Depends(get_client)) -> VisionAnalyzer:
    return VisionAnalyzer(client)


def get_auth_provider() -> Optional[AuthProvider]:
    return build_auth_provider()


def get_bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        return token or None
    return None


def _verify_supabase_token(token: str, secret: str) -> Dict[str, Any]:
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=SUPABASE_AUDIENCE,
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("Session expired, please sign in again") from exc
    except jwt.PyJWTError as exc:
        raise AuthError("Invalid or expired session token") from exc

    if not claims.get("sub"):
        raise AuthError("Missing user id in token")
    return claims


def session_state_for(request: Request) -> SessionState:
    """
    Resolve the session state for a request from its bearer token.

    No token means a resolved, signed-out state; a bad token raises AuthError.
    """
    settings = get_settings()
    state = SessionState()
    token = get_bearer_token(request)
    if not token:
        state.resolve(None)
        return state
    claims = _verify_supabase_token(token, settings.supabase_jwt_secret or "")
    state.user = AuthUser(
        id=str(claims["sub"]),
        email=claims.get("email") or None,
        is_anonymous=bool(claims.get("is_anonymous", False)),
    )
    state.loading = False
    return state


def enforce_auth(request: Request) -> Optional[AuthUser]:
    """
    Auth guard used by the chat, vision and settings endpoints.

    Priority:
    - If AUTH_TOKEN is set, accept only that bearer token (local dev/tests).
    - Otherwise, if SUPABASE_JWT_SECRET is set, require a valid Supabase
      access token.
    - If neither is configured, authentication is effectively disabled.
    """
    settings = get_settings()
    if settings.auth_token:
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            raise AuthError("Missing or invalid Authorization header")
        supplied = auth_header.split(" ", 1)[1].strip()
        if supplied != settings.auth_token:
            raise AuthError("Invalid bearer token")
        return None

    if settings.supabase_jwt_secret:
        state = session_state_for(request)
        user = guard_route(state, request.url.path)
        if user is None:
            raise AuthError("Missing session token")
        return user

    # No auth configured: allow through for dev/tests.
    return None
