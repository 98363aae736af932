"""
Data models for the OnyxGPT core.

Defines Message, InferenceRequest, AppSettings, TriggerDescriptor, Trigger and
APICallLogEntry. Do not duplicate these definitions elsewhere; the validation
layer in `onyxgpt.validation` is the only place that parses untrusted input
into them.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr

MAX_MESSAGE_CHARS = 10_000
MAX_BATCH_MESSAGES = 100
MAX_MODEL_NAME_CHARS = 255
MAX_TOKENS_LIMIT = 100_000

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2000

Role = Literal["user", "assistant", "system"]
TaskMode = Literal["standard", "reasoning", "research", "creative"]
ProviderName = Literal["puter", "openrouter"]
TriggerCategory = Literal[
    "Reasoning & Analysis",
    "Research & Information",
    "Planning & Organization",
    "Communication & Style",
]


class Message(BaseModel):
    """A single chat turn. Frozen once validated."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: Annotated[StrictStr, Field(min_length=1, max_length=MAX_MESSAGE_CHARS)]


MessageBatch = Annotated[List[Message], Field(min_length=1, max_length=MAX_BATCH_MESSAGES)]


class InferenceRequest(BaseModel):
    """Completions-style request body sent to the AI client."""

    messages: MessageBatch
    model: Annotated[StrictStr, Field(min_length=1, max_length=MAX_MODEL_NAME_CHARS)]
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0, le=2, strict=True)
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, ge=1, le=MAX_TOKENS_LIMIT, strict=True)


class AppSettings(BaseModel):
    """
    User-configurable settings.

    Field names are snake_case in Python; the persisted and wire form uses the
    camelCase aliases (`textModel`, `maxTokens`, ...); input is only accepted
    under those names. Dump with ``by_alias=True, exclude_none=True``.
    """

    text_model: Annotated[StrictStr, Field(min_length=1, alias="textModel")]
    image_model: Annotated[StrictStr, Field(min_length=1, alias="imageModel")]
    temperature: float = Field(ge=0, le=2, strict=True)
    max_tokens: int = Field(alias="maxTokens", ge=1, le=MAX_TOKENS_LIMIT, strict=True)
    enable_web_search: StrictBool = Field(default=False, alias="enableWebSearch")
    enable_deep_search: StrictBool = Field(default=False, alias="enableDeepSearch")
    enable_debug_logs: StrictBool = Field(default=False, alias="enableDebugLogs")
    streaming_enabled: StrictBool = Field(default=True, alias="streamingEnabled")
    incognito_mode: StrictBool = Field(default=False, alias="incognitoMode")
    # Optional keys may be omitted but not sent as null.
    theme_color: StrictStr = Field(default=None, alias="themeColor")
    accent_color: StrictStr = Field(default=None, alias="accentColor")
    background_color: StrictStr = Field(default=None, alias="backgroundColor")
    sidebar_color: StrictStr = Field(default=None, alias="sidebarColor")
    task_mode: TaskMode = Field(default="standard", alias="taskMode")
    provider: ProviderName = None
    custom_openrouter_key: StrictStr = Field(default=None, alias="customOpenRouterKey")


class TriggerMetadata(BaseModel):
    purpose: StrictStr
    context_used: StrictStr
    influence_scope: StrictStr


class TriggerDescriptor(BaseModel):
    """A detected directive attached read-only to a user message."""

    model_config = ConfigDict(frozen=True)

    tag: Annotated[StrictStr, Field(min_length=1, max_length=50)]
    name: Annotated[StrictStr, Field(min_length=1, max_length=100)]
    category: Annotated[StrictStr, Field(min_length=1)]
    instruction: Annotated[StrictStr, Field(min_length=1)]
    metadata: TriggerMetadata


class Trigger(BaseModel):
    """Catalog definition of a trigger (built-in YAML or user-defined)."""

    trigger: Annotated[StrictStr, Field(min_length=1, max_length=100)]
    category: TriggerCategory
    system_instruction: Annotated[StrictStr, Field(min_length=1)]
    example: str = ""
    enabled: StrictBool = True
    custom: StrictBool = False


class APICallLogEntry(BaseModel):
    """One telemetry record of a call made to the external AI client."""

    id: str
    type: Literal["api"] = "api"
    message: str
    timestamp: int  # epoch millis
    details: Dict[str, Any]
