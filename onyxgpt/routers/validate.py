"""
Validation API: POST /validate/{message,messages,request,settings,trigger}.

Contract: 200 + { value } with defaults applied; 422 VALIDATION_ERROR envelope
listing every violation in error.details.
"""

from __future__ import annotations

from typing import Any, Callable, Dict

from fastapi import APIRouter, Request

from onyxgpt.engine import ErrorEnvelope, read_json_body
from onyxgpt.validation import (
    ValidationResult,
    parse_inference_request,
    parse_message,
    parse_message_batch,
    parse_settings,
    parse_trigger,
)

router = APIRouter(prefix="/validate", tags=["validation"])

_PARSERS: Dict[str, Callable[[Any], ValidationResult[Any]]] = {
    "message": parse_message,
    "messages": parse_message_batch,
    "request": parse_inference_request,
    "settings": parse_settings,
    "trigger": parse_trigger,
}


def _dump(value: Any) -> Any:
    if isinstance(value, list):
        return [_dump(item) for item in value]
    if hasattr(value, "model_dump"):
        return value.model_dump(by_alias=True, exclude_none=True)
    return value


@router.post("/{contract}")
async def validate_contract(contract: str, request: Request) -> Dict[str, Any]:
    parser = _PARSERS.get(contract)
    if parser is None:
        raise ErrorEnvelope(
            status_code=404,
            code="NOT_FOUND",
            message=f"Unknown contract: {contract}",
            details={"contracts": sorted(_PARSERS)},
        )

    payload = await read_json_body(request)
    result = parser(payload)
    if not result.ok:
        raise ErrorEnvelope(
            status_code=422,
            code="VALIDATION_ERROR",
            message=result.label,
            details=result.errors,
        )
    return {"value": _dump(result.value)}
