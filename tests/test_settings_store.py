from __future__ import annotations

import json

import pytest

from onyxgpt.storage import kv_store, settings_store
from onyxgpt.validation import ValidationError


def test_load_returns_defaults_when_nothing_stored():
    settings = settings_store.load_settings()
    assert settings == settings_store.default_settings()
    assert settings.text_model == "gpt-5-nano"
    assert settings.streaming_enabled is True


def test_save_persists_camel_case_json():
    settings_store.save_settings(
        {"textModel": "m1", "imageModel": "m2", "temperature": 1, "maxTokens": 500, "incognitoMode": True}
    )
    stored = json.loads(kv_store.get_item(settings_store.SETTINGS_KEY))
    assert stored["textModel"] == "m1"
    assert stored["incognitoMode"] is True
    assert settings_store.load_settings().incognito_mode is True


def test_invalid_save_leaves_store_untouched():
    with pytest.raises(ValidationError):
        settings_store.save_settings({"textModel": "m1"})
    assert kv_store.get_item(settings_store.SETTINGS_KEY) is None


@pytest.mark.parametrize("raw", ["{broken", json.dumps({"textModel": ""})])
def test_unreadable_stored_settings_fall_back_to_defaults(raw):
    kv_store.set_item(settings_store.SETTINGS_KEY, raw)
    assert settings_store.load_settings() == settings_store.default_settings()
