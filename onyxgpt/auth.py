"""
Authentication collaborator.

Wraps the hosted auth service (Supabase GoTrue REST API) behind a small
provider interface, and holds the reactive ``{user, loading}`` session state
used to gate the chat routes. Auth failures are never swallowed: every
provider error becomes an ``AuthError`` carrying the provider's message.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional

import httpx

from .config import get_settings

PROTECTED_PATHS = ("/chat",)
SIGN_IN_REQUIRED_MESSAGE = "You must be signed in to access the chat."


class AuthError(RuntimeError):
    """Raised when authentication fails."""


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: Optional[str] = None
    is_anonymous: bool = False

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AuthUser":
        user_id = payload.get("id") or payload.get("sub")
        if not user_id:
            raise AuthError("Missing user id in auth response")
        return cls(
            id=str(user_id),
            email=payload.get("email") or None,
            is_anonymous=bool(payload.get("is_anonymous", False)),
        )


@dataclass(frozen=True)
class AuthSession:
    access_token: str
    user: AuthUser
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None


class AuthProvider:
    """Abstract auth provider interface."""

    def sign_up(self, email: str, password: str, *, redirect_to: Optional[str] = None) -> Optional[AuthSession]:  # pragma: no cover - interface only
        raise NotImplementedError

    def sign_in(self, email: str, password: str) -> AuthSession:  # pragma: no cover - interface only
        raise NotImplementedError

    def sign_in_anonymously(self) -> AuthSession:  # pragma: no cover - interface only
        raise NotImplementedError

    def sign_out(self, access_token: str) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    def get_user(self, access_token: str) -> AuthUser:  # pragma: no cover - interface only
        raise NotImplementedError


class SupabaseAuthProvider(AuthProvider):
    """
    Supabase GoTrue client over httpx.

    ``transport`` lets tests plug in ``httpx.MockTransport``.
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        *,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=f"{url.rstrip('/')}/auth/v1",
            headers={"apikey": anon_key, "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else None
        try:
            resp = self._client.request(method, path, json=json, params=params, headers=headers)
        except httpx.HTTPError as exc:
            raise AuthError(f"Auth service unreachable: {exc}") from exc

        if resp.status_code >= 400:
            raise AuthError(_error_message(resp))
        if not resp.content:
            return {}
        try:
            data = resp.json()
        except ValueError as exc:
            raise AuthError("Auth service returned an invalid response") from exc
        return data if isinstance(data, dict) else {}

    def _session_from(self, data: Dict[str, Any]) -> AuthSession:
        token = data.get("access_token")
        if not token:
            raise AuthError("Auth response did not include a session")
        return AuthSession(
            access_token=str(token),
            refresh_token=data.get("refresh_token"),
            expires_at=data.get("expires_at"),
            user=AuthUser.from_payload(data.get("user") or {}),
        )

    def sign_up(self, email: str, password: str, *, redirect_to: Optional[str] = None) -> Optional[AuthSession]:
        """
        Register a user. Returns None when the project requires email
        confirmation (no session is issued until the link is followed).
        """
        params = {"redirect_to": redirect_to} if redirect_to else None
        data = self._request("POST", "/signup", json={"email": email, "password": password}, params=params)
        if data.get("access_token"):
            return self._session_from(data)
        return None

    def sign_in(self, email: str, password: str) -> AuthSession:
        data = self._request(
            "POST",
            "/token",
            json={"email": email, "password": password},
            params={"grant_type": "password"},
        )
        return self._session_from(data)

    def sign_in_anonymously(self) -> AuthSession:
        return self._session_from(self._request("POST", "/signup", json={}))

    def sign_out(self, access_token: str) -> None:
        self._request("POST", "/logout", access_token=access_token)

    def get_user(self, access_token: str) -> AuthUser:
        return AuthUser.from_payload(self._request("GET", "/user", access_token=access_token))


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("msg", "error_description", "message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return f"Auth request failed with status {resp.status_code}"


@lru_cache(maxsize=4)
def _supabase_provider(url: str, anon_key: str) -> SupabaseAuthProvider:
    """One provider (and one connection pool) per project URL and key."""
    return SupabaseAuthProvider(url, anon_key)


def build_auth_provider() -> Optional[AuthProvider]:
    """Return the configured provider, or None when SUPABASE_URL/ANON_KEY are unset."""
    settings = get_settings()
    if not settings.supabase_url or not settings.supabase_anon_key:
        return None
    return _supabase_provider(settings.supabase_url, settings.supabase_anon_key)


@dataclass
class SessionState:
    """
    Reactive session state: ``loading`` stays True until the first session
    lookup resolves, after which ``user`` is authoritative.
    """

    user: Optional[AuthUser] = None
    loading: bool = True

    def resolve(self, session: Optional[AuthSession]) -> None:
        self.user = session.user if session else None
        self.loading = False


def is_protected(path: str) -> bool:
    path = path.rstrip("/")
    return any(path == p or path.startswith(p + "/") for p in PROTECTED_PATHS)


def guard_route(state: SessionState, path: str) -> Optional[AuthUser]:
    """
    Gate a route on the session state.

    Returns None while the session is still loading, the user when signed in
    or when the path is public, and raises AuthError for a protected path once
    loading has finished without a session.
    """
    if state.loading:
        return None
    if state.user is None and is_protected(path):
        raise AuthError(SIGN_IN_REQUIRED_MESSAGE)
    return state.user
