"""
Settings API: GET /settings, PUT /settings.

PUT validates the full payload before anything is written; a 422 response
means the stored settings are unchanged.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from onyxgpt.dependencies import enforce_auth
from onyxgpt.engine import read_json_body
from onyxgpt.storage import settings_store

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("")
async def get_settings_route(request: Request) -> Dict[str, Any]:
    enforce_auth(request)
    return settings_store.load_settings().model_dump(by_alias=True, exclude_none=True)


@router.put("")
async def put_settings_route(request: Request) -> Dict[str, Any]:
    enforce_auth(request)
    payload = await read_json_body(request)
    saved = settings_store.save_settings(payload)
    return saved.model_dump(by_alias=True, exclude_none=True)
