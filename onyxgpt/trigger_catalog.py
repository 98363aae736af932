"""
Trigger catalog and detector.

Built-in triggers ship as YAML (onyxgpt/triggers/builtin.yaml). The user's
edited list persists in the key-value store under ``onyxgpt_triggers``;
entries there override built-ins with the same (case-insensitive) name.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Tuple

import yaml
from pydantic import ValidationError as PydanticValidationError

from .models import Trigger, TriggerDescriptor, TriggerMetadata
from .storage import kv_store

logger = logging.getLogger("onyxgpt")

TRIGGERS_DIR = Path(__file__).parent / "triggers"
BUILTIN_TRIGGERS_FILE = TRIGGERS_DIR / "builtin.yaml"
STORAGE_KEY = "onyxgpt_triggers"
DEFAULT_INSTRUCTION = "default means Respond helpfully, truthfully, and concisely."
PROMPT_SUFFIX = "\n\nFor"

_TAG_RE = re.compile(r"<([A-Za-z0-9_]+)>")


class TriggerLoadError(RuntimeError):
    """Raised when the built-in trigger catalog cannot be loaded."""


class TriggerExistsError(ValueError):
    """Raised when adding a trigger whose name is already taken."""


@dataclass
class TriggerDetection:
    system_prompt: str
    triggers: List[TriggerDescriptor] = field(default_factory=list)

    @property
    def names(self) -> List[str]:
        return [t.name for t in self.triggers]


def _read_builtin_yaml() -> List[Dict[str, Any]]:
    if not BUILTIN_TRIGGERS_FILE.exists():
        raise TriggerLoadError(f"Trigger catalog not found: {BUILTIN_TRIGGERS_FILE}")

    with BUILTIN_TRIGGERS_FILE.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict) or not isinstance(data.get("triggers"), list):
        raise TriggerLoadError("Trigger catalog YAML must contain a 'triggers' list")
    return data["triggers"]


@lru_cache(maxsize=1)
def _builtin_triggers() -> Tuple[Trigger, ...]:
    try:
        return tuple(Trigger.model_validate(raw) for raw in _read_builtin_yaml())
    except PydanticValidationError as exc:
        raise TriggerLoadError(f"Invalid built-in trigger: {exc}") from exc


def load_builtin_triggers() -> List[Trigger]:
    return [t.model_copy() for t in _builtin_triggers()]


def _stored_triggers() -> List[Trigger]:
    raw = kv_store.get_item(STORAGE_KEY)
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning("%s is not valid JSON, using built-in triggers: %s", STORAGE_KEY, exc)
        return []
    if not isinstance(data, list):
        return []
    stored: List[Trigger] = []
    for item in data:
        try:
            stored.append(Trigger.model_validate(item))
        except PydanticValidationError:
            logger.warning("skipping malformed stored trigger: %r", item)
    return stored


def get_all_triggers() -> List[Trigger]:
    """Built-ins merged with the stored list; stored entries win by lowercase name."""
    merged: Dict[str, Trigger] = {}
    for trigger in load_builtin_triggers():
        merged[trigger.trigger.lower()] = trigger
    for trigger in _stored_triggers():
        merged[trigger.trigger.lower()] = trigger
    return list(merged.values())


def save_triggers(triggers: List[Trigger]) -> None:
    kv_store.set_item(STORAGE_KEY, json.dumps([t.model_dump() for t in triggers]))


def add_trigger(trigger: Trigger) -> Trigger:
    triggers = get_all_triggers()
    name = trigger.trigger.lower()
    if any(t.trigger.lower() == name for t in triggers):
        raise TriggerExistsError(f"Trigger already exists: {trigger.trigger}")
    added = trigger.model_copy(update={"custom": True})
    triggers.append(added)
    save_triggers(triggers)
    return added


def toggle_trigger(name: str) -> bool:
    """Flip the enabled flag; returns False when no trigger has that name."""
    triggers = get_all_triggers()
    for index, trigger in enumerate(triggers):
        if trigger.trigger.lower() == name.lower():
            triggers[index] = trigger.model_copy(update={"enabled": not trigger.enabled})
            save_triggers(triggers)
            return True
    return False


def delete_trigger(name: str) -> None:
    """Delete a custom trigger. Built-ins are never removed."""
    triggers = get_all_triggers()
    kept = [t for t in triggers if t.trigger.lower() != name.lower() or not t.custom]
    save_triggers(kept)


def reset_to_built_in() -> None:
    save_triggers(load_builtin_triggers())


def _tag_for(trigger: Trigger) -> str:
    match = _TAG_RE.search(trigger.system_instruction)
    if match:
        return match.group(1)
    return re.sub(r"[^a-z0-9]+", "_", trigger.trigger.lower()).strip("_") or "trigger"


def to_descriptor(trigger: Trigger) -> TriggerDescriptor:
    return TriggerDescriptor(
        tag=_tag_for(trigger)[:50],
        name=trigger.trigger[:100],
        category=trigger.category,
        instruction=trigger.system_instruction,
        metadata=TriggerMetadata(
            purpose=trigger.example or trigger.system_instruction,
            context_used="user message",
            influence_scope="system prompt",
        ),
    )


def detect_triggers(user_message: str) -> TriggerDetection:
    """
    Find enabled triggers mentioned as whole words in ``user_message`` and
    build the system prompt that instructs the model about each of them.
    """
    instructions: List[str] = []
    detected: List[TriggerDescriptor] = []
    for trigger in get_all_triggers():
        if not trigger.enabled:
            continue
        pattern = r"\b" + re.escape(trigger.trigger.lower()) + r"\b"
        if re.search(pattern, user_message, flags=re.IGNORECASE):
            detected.append(to_descriptor(trigger))
            instructions.append(f"{trigger.trigger} means {trigger.system_instruction}")

    if instructions:
        system_prompt = " ".join(instructions) + PROMPT_SUFFIX
    else:
        system_prompt = DEFAULT_INSTRUCTION + PROMPT_SUFFIX
    return TriggerDetection(system_prompt=system_prompt, triggers=detected)
