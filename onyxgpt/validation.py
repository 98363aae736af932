"""
Validation layer.

Every surface that accepts untrusted data (settings form, pre-send pipeline,
HTTP routes) goes through the functions below before anything reaches the AI
client or the settings store.

Two flavours are exposed for each contract:

- ``parse_*`` returns a ``ValidationResult`` and never raises for bad input;
- ``validate_*`` returns the parsed value or raises ``ValidationError``.

In both cases every violated constraint is reported, not just the first one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .models import AppSettings, InferenceRequest, Message, MessageBatch, TriggerDescriptor

T = TypeVar("T")


class ValidationError(ValueError):
    """Raised when input violates one or more field constraints."""

    def __init__(self, label: str, errors: List[Dict[str, Any]]):
        self.label = label
        self.errors = errors
        summary = ", ".join(_format_error(err) for err in errors)
        super().__init__(f"{label}: {summary}")


@dataclass
class ValidationResult(Generic[T]):
    """Outcome of a parse: either a value or the full list of violations."""

    label: str
    value: Optional[T] = None
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def unwrap(self) -> T:
        if self.errors:
            raise ValidationError(self.label, self.errors)
        return self.value  # type: ignore[return-value]


def _format_error(err: Dict[str, Any]) -> str:
    path = ".".join(str(part) for part in err.get("path") or [])
    if path:
        return f"{path}: {err['message']}"
    return str(err["message"])


def _collect_errors(exc: PydanticValidationError) -> List[Dict[str, Any]]:
    errors: List[Dict[str, Any]] = []
    for err in exc.errors(include_url=False):
        errors.append(
            {
                "path": list(err.get("loc") or ()),
                "message": err.get("msg", "Invalid value"),
            }
        )
    return errors


_message_adapter: TypeAdapter[Message] = TypeAdapter(Message)
_batch_adapter: TypeAdapter[List[Message]] = TypeAdapter(MessageBatch)
_request_adapter: TypeAdapter[InferenceRequest] = TypeAdapter(InferenceRequest)
_settings_adapter: TypeAdapter[AppSettings] = TypeAdapter(AppSettings)
_trigger_adapter: TypeAdapter[TriggerDescriptor] = TypeAdapter(TriggerDescriptor)


def _parse(adapter: TypeAdapter[Any], label: str, value: Any) -> ValidationResult[Any]:
    try:
        parsed = adapter.validate_python(value)
    except PydanticValidationError as exc:
        return ValidationResult(label=label, errors=_collect_errors(exc))
    return ValidationResult(label=label, value=parsed)


def parse_message(value: Any) -> ValidationResult[Message]:
    return _parse(_message_adapter, "Invalid message", value)


def parse_message_batch(value: Any) -> ValidationResult[List[Message]]:
    return _parse(_batch_adapter, "Invalid messages", value)


def parse_inference_request(value: Any) -> ValidationResult[InferenceRequest]:
    return _parse(_request_adapter, "Invalid request", value)


def parse_settings(value: Any) -> ValidationResult[AppSettings]:
    return _parse(_settings_adapter, "Invalid settings", value)


def parse_trigger(value: Any) -> ValidationResult[TriggerDescriptor]:
    return _parse(_trigger_adapter, "Invalid trigger", value)


def validate_message(value: Any) -> Message:
    """Return a well-formed Message or raise with every violated constraint."""
    return parse_message(value).unwrap()


def validate_message_batch(value: Any) -> List[Message]:
    """Validate 1-100 messages; order is preserved and nothing is deduplicated."""
    return parse_message_batch(value).unwrap()


def validate_inference_request(value: Any) -> InferenceRequest:
    """
    Validate a completions request body.

    Omitted ``temperature`` and ``max_tokens`` come back filled with their
    defaults (0.7 and 2000). Re-validating the dumped result yields the same
    value.
    """
    return parse_inference_request(value).unwrap()


def validate_settings(value: Any) -> AppSettings:
    """Validate settings; omitted booleans and taskMode receive their defaults."""
    return parse_settings(value).unwrap()


def validate_trigger(value: Any) -> TriggerDescriptor:
    return parse_trigger(value).unwrap()
