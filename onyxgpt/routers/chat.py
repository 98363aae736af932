"""
Chat API: the pre-send pipeline, trigger detection and the vision adapter.

Every route here sits behind the session guard. Client failures come back as
an empty result (never a 5xx); validation failures as a 422 envelope.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError as PydanticValidationError

from onyxgpt import trigger_catalog
from onyxgpt.clients import AIClient
from onyxgpt.config import get_settings
from onyxgpt.dependencies import enforce_auth, get_client, get_vision_analyzer
from onyxgpt.engine import ErrorEnvelope, read_json_body, run_completion
from onyxgpt.models import Trigger
from onyxgpt.trigger_catalog import TriggerExistsError, detect_triggers
from onyxgpt.validation import validate_message
from onyxgpt.vision import DEFAULT_VISION_PROMPT, VisionAnalyzer

router = APIRouter(prefix="/chat", tags=["chat"])


def _require_object(payload: Any) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise ErrorEnvelope(
            status_code=422,
            code="VALIDATION_ERROR",
            message="Request body must be a JSON object",
            details=[{"path": [], "message": "Expected an object"}],
        )
    return payload


@router.post("/completions")
async def post_completions(
    request: Request,
    client: Optional[AIClient] = Depends(get_client),
) -> Dict[str, Any]:
    """
    Validate an InferenceRequest body and run it through the client.
    Returns { content, model, available, triggers }.
    """
    enforce_auth(request)
    payload = await read_json_body(request)
    result = await run_completion(payload, client)
    return result.to_dict()


@router.post("/triggers/detect")
async def post_detect_triggers(request: Request) -> Dict[str, Any]:
    """Body: { "message": { role, content } } or { "content": "..." }."""
    enforce_auth(request)
    payload = _require_object(await read_json_body(request))
    raw_message = payload.get("message")
    if raw_message is None:
        raw_message = {"role": "user", "content": payload.get("content")}
    message = validate_message(raw_message)
    detection = detect_triggers(message.content)
    return {
        "system_prompt": detection.system_prompt,
        "triggers": [t.model_dump() for t in detection.triggers],
    }


@router.post("/vision")
async def post_vision(
    request: Request,
    analyzer: VisionAnalyzer = Depends(get_vision_analyzer),
) -> Dict[str, Any]:
    """
    Body: { image_url, prompt?, model? }. Returns { text, available }.
    An unavailable client or a failed call both yield text "".
    """
    enforce_auth(request)
    payload = _require_object(await read_json_body(request))
    image_url = payload.get("image_url")
    if not isinstance(image_url, str) or not image_url.strip():
        raise ErrorEnvelope(
            status_code=422,
            code="VALIDATION_ERROR",
            message="image_url is required",
            details=[{"path": ["image_url"], "message": "Field required"}],
        )
    prompt = payload.get("prompt") or DEFAULT_VISION_PROMPT
    model = payload.get("model") or get_settings().vision_model
    text = await analyzer.analyze_image(image_url, str(prompt), str(model))
    return {"text": text, "available": analyzer.available}


@router.get("/triggers")
async def list_triggers(request: Request) -> Dict[str, Any]:
    enforce_auth(request)
    triggers = trigger_catalog.get_all_triggers()
    return {"triggers": [t.model_dump() for t in triggers]}


@router.post("/triggers")
async def add_custom_trigger(request: Request) -> Dict[str, Any]:
    enforce_auth(request)
    payload = _require_object(await read_json_body(request))
    try:
        trigger = Trigger.model_validate(payload)
    except PydanticValidationError as exc:
        raise ErrorEnvelope(
            status_code=422,
            code="VALIDATION_ERROR",
            message="Invalid trigger",
            details=[{"path": list(e["loc"]), "message": e["msg"]} for e in exc.errors(include_url=False)],
        ) from exc
    try:
        added = trigger_catalog.add_trigger(trigger)
    except TriggerExistsError as exc:
        raise ErrorEnvelope(status_code=409, code="TRIGGER_EXISTS", message=str(exc)) from exc
    return {"trigger": added.model_dump()}


@router.post("/triggers/reset")
async def reset_triggers(request: Request) -> Dict[str, Any]:
    enforce_auth(request)
    trigger_catalog.reset_to_built_in()
    return {"ok": True}


@router.post("/triggers/{name}/toggle")
async def toggle_trigger(name: str, request: Request) -> Dict[str, Any]:
    enforce_auth(request)
    if not trigger_catalog.toggle_trigger(name):
        raise ErrorEnvelope(status_code=404, code="NOT_FOUND", message=f"Trigger not found: {name}")
    return {"ok": True}


@router.delete("/triggers/{name}")
async def delete_custom_trigger(name: str, request: Request) -> Dict[str, Any]:
    enforce_auth(request)
    trigger_catalog.delete_trigger(name)
    return {"ok": True}
