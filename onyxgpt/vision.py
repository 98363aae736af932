"""
Vision request adapter.

Runs one image-understanding call against the injected AI client, records the
outcome in the telemetry log and always hands back text. Failures never
propagate past this boundary: the caller gets "" and the log gets the error.
"""

from __future__ import annotations

import inspect
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from .clients import AIClient, coerce_response_text, supports
from .telemetry import Clock, create_call_logger

logger = logging.getLogger("onyxgpt")

VISION_METHOD = "ai.chat (vision)"
DEFAULT_VISION_PROMPT = "What do you see?"
DEFAULT_VISION_MODEL = "gpt-5-nano"


class VisionAnalyzer:
    """Image analysis over an explicitly injected client (None = not configured)."""

    def __init__(self, client: Optional[AIClient], *, clock: Optional[Clock] = None) -> None:
        self.client = client
        self._clock = clock
        self._in_flight = 0

    @property
    def available(self) -> bool:
        return supports(self.client, "chat")

    @property
    def is_analyzing(self) -> bool:
        return self._in_flight > 0

    @contextmanager
    def _busy(self) -> Iterator[None]:
        self._in_flight += 1
        try:
            yield
        finally:
            self._in_flight -= 1

    async def analyze_image(
        self,
        image_url: str,
        prompt: str = DEFAULT_VISION_PROMPT,
        model: str = DEFAULT_VISION_MODEL,
    ) -> str:
        if not self.available:
            logger.warning("AI client not configured; vision analysis unavailable")
            return ""

        params = {"prompt": prompt, "imageUrl": image_url, "model": model}
        with self._busy():
            call_logger = create_call_logger(self._clock)
            try:
                raw = self.client.chat(prompt, image_url, {"model": model})  # type: ignore[union-attr]
                if inspect.isawaitable(raw):
                    raw = await raw
                text = await coerce_response_text(raw)
            except Exception as exc:
                logger.warning("vision analysis failed model=%s: %s", model, exc)
                call_logger.log_error(VISION_METHOD, params, exc)
                return ""
            call_logger.log_success(VISION_METHOD, params, text)
            return text
