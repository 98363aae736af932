"""
Settings store: the user's AppSettings persisted as camelCase JSON under one
key of the key-value store. Writes are validated first, so a malformed
payload never reaches storage.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

from onyxgpt.models import AppSettings
from onyxgpt.storage import kv_store
from onyxgpt.validation import parse_settings, validate_settings

logger = logging.getLogger("onyxgpt")

SETTINGS_KEY = "ai_studio_settings"

DEFAULT_SETTINGS: Dict[str, Any] = {
    "textModel": "gpt-5-nano",
    "imageModel": "flux",
    "temperature": 0.7,
    "maxTokens": 2000,
    "enableWebSearch": False,
    "enableDeepSearch": False,
    "enableDebugLogs": False,
    "themeColor": "217 91% 60%",
    "accentColor": "217 91% 60%",
    "backgroundColor": "0 0% 0%",
    "provider": "puter",
}


def default_settings() -> AppSettings:
    return validate_settings(DEFAULT_SETTINGS)


def load_settings() -> AppSettings:
    """Return stored settings, or the factory defaults when absent or unreadable."""
    raw = kv_store.get_item(SETTINGS_KEY)
    if not raw:
        return default_settings()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning("stored settings are not valid JSON, using defaults: %s", exc)
        return default_settings()
    result = parse_settings(data)
    if not result.ok:
        logger.warning("stored settings failed validation, using defaults: %s", result.errors)
        return default_settings()
    return result.unwrap()


def save_settings(payload: Any) -> AppSettings:
    """Validate ``payload`` and persist it. Raises ValidationError without writing."""
    settings = validate_settings(payload)
    kv_store.set_item(SETTINGS_KEY, settings.model_dump_json(by_alias=True, exclude_none=True))
    return settings
