from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from .config import get_settings
from .models import InferenceRequest

OPENROUTER_API_URL = "https://openrouter.ai/api/v1/chat/completions"


class AIClient:
    """
    Interface of the external AI client.

    ``chat`` is the image-understanding surface, ``complete`` the text
    completion surface. Implementations may return plain values or
    awaitables; callers handle both.
    """

    def chat(
        self,
        prompt: str,
        image_url: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> Any:  # pragma: no cover - interface only
        raise NotImplementedError

    def complete(self, request: InferenceRequest) -> Any:  # pragma: no cover - interface only
        raise NotImplementedError


def supports(client: Any, capability: str) -> bool:
    """True when ``client`` is configured and exposes a callable ``capability``."""
    if client is None:
        return False
    return callable(getattr(client, capability, None))


def _part_text(part: Any) -> str:
    if isinstance(part, str):
        return part
    if isinstance(part, Mapping):
        message = part.get("message")
        candidates = [
            part.get("text"),
            part.get("delta"),
            message.get("content") if isinstance(message, Mapping) else None,
        ]
    else:
        message = getattr(part, "message", None)
        candidates = [
            getattr(part, "text", None),
            getattr(part, "delta", None),
            getattr(message, "content", None),
        ]
    for candidate in candidates:
        if isinstance(candidate, str):
            return candidate
    return ""


async def coerce_response_text(response: Any) -> str:
    """
    Reduce whatever the client returned to plain text.

    Streams (async iterables of parts) are concatenated and stripped, lists of
    parts are joined, objects and mappings contribute their ``text``.
    Anything else becomes "".
    """
    if response is None:
        return ""
    if isinstance(response, str):
        return response
    if hasattr(response, "__aiter__"):
        chunks = []
        async for part in response:
            chunks.append(_part_text(part))
        return "".join(chunks).strip()
    if isinstance(response, (list, tuple)):
        return "".join(_part_text(part) for part in response)
    if isinstance(response, Mapping):
        text = response.get("text")
    else:
        text = getattr(response, "text", None)
    if isinstance(text, str):
        return text
    return ""


class StubAIClient(AIClient):
    """Deterministic client for local development and tests. No network."""

    def chat(
        self,
        prompt: str,
        image_url: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> str:
        model = (options or {}).get("model", "stub")
        return f"[{model}] stub analysis of {image_url or 'no image'}: {prompt}"

    def complete(self, request: InferenceRequest) -> str:
        last_user = next(
            (m.content for m in reversed(request.messages) if m.role == "user"),
            "",
        )
        return f"stub reply: {last_user[:200]}"


class OpenRouterAIClient(AIClient):
    """
    OpenRouter client: one API key, many models (OpenAI, Claude, Gemini, etc.).
    """

    def __init__(self, api_key: str, model: Optional[str] = None, timeout: float = 60.0) -> None:
        self.api_key = api_key
        self.model = model or "openai/gpt-4o-mini"
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _post(self, body: Dict[str, Any]) -> str:  # pragma: no cover - network
        import httpx

        async with httpx.AsyncClient(timeout=self.timeout) as http:
            resp = await http.post(OPENROUTER_API_URL, headers=self._headers(), json=body)
            resp.raise_for_status()
            data = resp.json()
        return data["choices"][0]["message"]["content"] or ""

    async def chat(
        self,
        prompt: str,
        image_url: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> str:  # pragma: no cover - network
        content: List[Dict[str, Any]] = [{"type": "text", "text": prompt}]
        if image_url:
            content.append({"type": "image_url", "image_url": {"url": image_url}})
        body = {
            "model": (options or {}).get("model") or self.model,
            "messages": [{"role": "user", "content": content}],
        }
        return await self._post(body)

    async def complete(self, request: InferenceRequest) -> str:  # pragma: no cover - network
        return await self._post(request.model_dump())


def build_client() -> Optional[AIClient]:
    """
    Factory that chooses the concrete client implementation.

    Returns None when AI_PROVIDER=none; consumers treat that as "not configured".
    """
    settings = get_settings()
    if settings.provider_name == "none":
        return None
    if settings.provider_name == "openrouter":
        api_key = settings.openrouter_api_key
        if not api_key:
            return StubAIClient()
        return OpenRouterAIClient(api_key=api_key, model=settings.openrouter_model)

    return StubAIClient()
