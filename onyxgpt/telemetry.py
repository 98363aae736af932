"""
API-call telemetry.

Every call made to the external AI client leaves one entry in a capped,
newest-first sequence persisted under the ``app_logs`` key of the key-value
store. The log is debug data: nothing in the chat flow depends on it.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from jsonschema import Draft7Validator

from .models import APICallLogEntry
from .storage import kv_store

logger = logging.getLogger("onyxgpt")

LOG_KEY = "app_logs"
MAX_LOG_ENTRIES = 500
MAX_RESPONSE_CHARS = 500
TRUNCATION_MARKER = "..."
REDACTED = "[REDACTED]"
SENSITIVE_KEYS = ("password", "apikey", "api_key", "token", "auth", "secret", "access_token")

LOG_ENTRY_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["id", "type", "message", "timestamp", "details"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "type": {"type": "string"},
        "message": {"type": "string"},
        "timestamp": {"type": "integer"},
        "details": {"type": "object"},
    },
}

_entry_validator = Draft7Validator(LOG_ENTRY_SCHEMA)

# Single writer for the read-modify-write of the persisted sequence.
_write_lock = threading.Lock()

Clock = Callable[[], int]


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class CallRecord:
    """A fully-formed call outcome, ready to be recorded."""

    method: str
    params: Any
    duration: int
    start_time: int
    success: bool
    response: Any = None
    error: Optional[str] = None


def _new_log_id(timestamp: int) -> str:
    return f"{timestamp}-{uuid.uuid4().hex[:8]}"


def _redact(params: Any) -> Any:
    if not isinstance(params, Mapping):
        return params
    cleaned: Dict[str, Any] = {}
    for key, value in params.items():
        lowered = str(key).lower()
        if any(sensitive in lowered for sensitive in SENSITIVE_KEYS):
            cleaned[str(key)] = REDACTED
        else:
            cleaned[str(key)] = value
    return cleaned


def _decode_logs(raw: Optional[str]) -> List[Dict[str, Any]]:
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning("%s is not valid JSON, starting a fresh log: %s", LOG_KEY, exc)
        return []
    if not isinstance(data, list):
        logger.warning("%s must hold a JSON array, starting a fresh log", LOG_KEY)
        return []
    entries = [item for item in data if _entry_validator.is_valid(item)]
    skipped = len(data) - len(entries)
    if skipped:
        logger.warning("skipped %d malformed entries in %s", skipped, LOG_KEY)
    return entries


def record_call(record: CallRecord, *, clock: Clock = now_ms) -> Dict[str, Any]:
    """
    Build a log entry for ``record``, prepend it and keep the newest 500.

    This is the only write path into the log. The whole read-modify-write runs
    under the module lock and inside one IMMEDIATE transaction.
    """
    timestamp = clock()
    details: Dict[str, Any] = {
        "method": record.method,
        "params": _redact(record.params),
        "success": record.success,
        "duration": record.duration,
        "start_time": record.start_time,
    }
    if record.success:
        details["response"] = record.response
    else:
        details["error"] = record.error

    entry = APICallLogEntry(
        id=_new_log_id(timestamp),
        message=f"API call: {record.method}",
        timestamp=timestamp,
        details=details,
    ).model_dump()

    with _write_lock:
        with kv_store.transaction() as conn:
            logs = _decode_logs(kv_store.read_value(conn, LOG_KEY))
            updated = [entry, *logs][:MAX_LOG_ENTRIES]
            kv_store.write_value(conn, LOG_KEY, json.dumps(updated, default=str))

    logger.debug(
        "api call method=%s success=%s duration_ms=%d",
        record.method,
        record.success,
        record.duration,
    )
    return entry


def get_logs(limit: Optional[int] = None, log_type: Optional[str] = None) -> List[Dict[str, Any]]:
    """Return stored entries, newest first, optionally filtered by type."""
    logs = _decode_logs(kv_store.get_item(LOG_KEY))
    if log_type:
        logs = [entry for entry in logs if entry.get("type") == log_type]
    if limit is not None:
        logs = logs[: max(0, limit)]
    return logs


def export_logs() -> str:
    return json.dumps(get_logs(), indent=2)


def _truncate_response(response: Any) -> Any:
    if isinstance(response, str) and len(response) > MAX_RESPONSE_CHARS:
        return response[:MAX_RESPONSE_CHARS] + TRUNCATION_MARKER
    return response


def _error_message(error: Any) -> str:
    if isinstance(error, Mapping):
        message = error.get("message")
    else:
        message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(error)


class CallLogger:
    """
    Records the outcome of one external call.

    The start timestamp is captured when the logger is created, so durations
    include anything the caller does between creating the logger and making
    the call. Create it immediately before the call.
    """

    def __init__(self, clock: Clock = now_ms):
        self._clock = clock
        self.start_time = clock()

    def _elapsed(self) -> int:
        return max(0, self._clock() - self.start_time)

    def _record(self, record: CallRecord) -> Optional[Dict[str, Any]]:
        try:
            return record_call(record, clock=self._clock)
        except sqlite3.Error as exc:
            logger.warning("could not record api call method=%s: %s", record.method, exc)
            return None

    def log_success(self, method: str, params: Any, response: Any) -> Optional[Dict[str, Any]]:
        return self._record(
            CallRecord(
                method=method,
                params=params,
                duration=self._elapsed(),
                start_time=self.start_time,
                success=True,
                response=_truncate_response(response),
            )
        )

    def log_error(self, method: str, params: Any, error: Any) -> Optional[Dict[str, Any]]:
        return self._record(
            CallRecord(
                method=method,
                params=params,
                duration=self._elapsed(),
                start_time=self.start_time,
                success=False,
                error=_error_message(error),
            )
        )


def create_call_logger(clock: Optional[Clock] = None) -> CallLogger:
    return CallLogger(clock=clock or now_ms)
