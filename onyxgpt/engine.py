from __future__ import annotations

import inspect
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse

from .clients import AIClient, coerce_response_text, supports
from .config import get_settings
from .models import MAX_BATCH_MESSAGES, MAX_MESSAGE_CHARS, InferenceRequest, Message, TriggerDescriptor
from .telemetry import Clock, create_call_logger
from .trigger_catalog import detect_triggers
from .validation import validate_inference_request

logger = logging.getLogger("onyxgpt")

CHAT_METHOD = "chat.completions"


class ErrorEnvelope(Exception):
    """
    Custom exception used internally to simplify control flow.

    Route handlers convert this into the standardized error envelope.
    """

    def __init__(self, status_code: int, code: str, message: str, details: Any = None):
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)


def new_request_id() -> str:
    return str(uuid.uuid4())


def build_error_envelope(
    *,
    request_id: str,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> Tuple[int, Dict[str, Any]]:
    body = {
        "error": {
            "code": code,
            "message": message,
            "details": details,
        },
        "meta": {
            "request_id": request_id,
            "service": get_settings().service_name,
        },
    }
    return status_code, body


def error_response(status_code: int, code: str, message: str, details: Any = None) -> JSONResponse:
    _, body = build_error_envelope(
        request_id=new_request_id(),
        status_code=status_code,
        code=code,
        message=message,
        details=details,
    )
    return JSONResponse(status_code=status_code, content=body)


async def read_json_body(request: Request) -> Any:
    """Parse the request body as JSON, handling malformed JSON explicitly."""
    try:
        body_bytes = await request.body()
    except Exception:
        raise ErrorEnvelope(
            status_code=400,
            code="MALFORMED_REQUEST",
            message="Failed to read request body",
        )

    try:
        return json.loads(body_bytes.decode("utf-8") or "null")
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ErrorEnvelope(
            status_code=400,
            code="MALFORMED_REQUEST",
            message="Request body must be valid JSON",
            details={"message": str(exc)},
        ) from exc


@dataclass
class CompletionResult:
    content: str
    model: str
    available: bool = True
    triggers: List[TriggerDescriptor] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "model": self.model,
            "available": self.available,
            "triggers": [t.model_dump() for t in self.triggers],
        }


def _with_trigger_prompt(request: InferenceRequest, system_prompt: str) -> InferenceRequest:
    if len(request.messages) >= MAX_BATCH_MESSAGES:
        logger.warning("message batch is full; sending without trigger system prompt")
        return request
    system = Message(role="system", content=system_prompt[:MAX_MESSAGE_CHARS])
    return request.model_copy(update={"messages": [system, *request.messages]})


async def run_completion(
    payload: Any,
    client: Optional[AIClient],
    *,
    clock: Optional[Clock] = None,
) -> CompletionResult:
    """
    Pre-send pipeline for one chat turn.

    1) Validate the request body (raises ValidationError with every violation).
    2) Detect triggers in the latest user message and prepend their system prompt.
    3) Call the client's completion surface, logging the outcome.

    Client failures are logged and produce an empty reply; they never raise.
    """
    request = validate_inference_request(payload)

    last_user = next((m.content for m in reversed(request.messages) if m.role == "user"), "")
    triggers: List[TriggerDescriptor] = []
    if last_user:
        detection = detect_triggers(last_user)
        triggers = detection.triggers
        if triggers:
            request = _with_trigger_prompt(request, detection.system_prompt)

    if not supports(client, "complete"):
        logger.warning("AI client not configured; chat completion unavailable")
        return CompletionResult(content="", model=request.model, available=False, triggers=triggers)

    params = {
        "model": request.model,
        "temperature": request.temperature,
        "max_tokens": request.max_tokens,
        "message_count": len(request.messages),
    }
    call_logger = create_call_logger(clock)
    try:
        raw = client.complete(request)  # type: ignore[union-attr]
        if inspect.isawaitable(raw):
            raw = await raw
        content = await coerce_response_text(raw)
    except Exception as exc:
        logger.warning("chat completion failed model=%s: %s", request.model, exc)
        call_logger.log_error(CHAT_METHOD, params, exc)
        return CompletionResult(content="", model=request.model, triggers=triggers)

    call_logger.log_success(CHAT_METHOD, params, content)
    return CompletionResult(content=content, model=request.model, triggers=triggers)
