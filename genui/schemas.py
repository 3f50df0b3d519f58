"""Request/response models: the contract between engine and clients."""

import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from genui.conversation import ConversationEvent, ConversationState
from genui.document import ActionSlot
from genui.pricing import UsageInfo


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatMessage(_Model):
    role: Literal["system", "user", "assistant"] = "user"
    content: str = ""


class ChatRequest(_Model):
    """A message turn or a state-machine event on a thread.

    Exactly one of ``message`` / ``event`` is required. Without
    ``thread_id`` a new thread is created.
    """

    thread_id: str | None = None
    message: str | None = None
    event: ConversationEvent | None = None

    @model_validator(mode="after")
    def message_or_event(self) -> "ChatRequest":
        if (self.message is None or not self.message.strip()) == (self.event is None):
            raise ValueError("Provide exactly one of 'message' or 'event'")
        return self


class ProxyRequest(_Model):
    messages: list[ChatMessage] = Field(min_length=1)


class ThreadCreateRequest(_Model):
    thread_id: str | None = None


class ActionDispatchRequest(_Model):
    action: ActionSlot


class ThreadSummary(_Model):
    thread_id: str
    created_at: datetime
    updated_at: datetime
    turn_count: int
    state: ConversationState


# ---------------------------------------------------------------------------
# OpenAI-compatible chat completions
#
# Wire names are snake_case, as OpenAI clients expect. The parsed document
# travels in ``genui`` in its canonical camelCase form.
# ---------------------------------------------------------------------------


def completion_id() -> str:
    return f"chatcmpl-{uuid.uuid4().hex}"


def unix_now() -> int:
    return int(datetime.now(timezone.utc).timestamp())


class CompletionRequest(BaseModel):
    model: str | None = None
    messages: list[ChatMessage] = Field(min_length=1)
    stream: bool = False
    temperature: float | None = Field(default=None, ge=0, le=2)
    max_tokens: int | None = Field(default=None, gt=0)
    top_p: float | None = Field(default=None, gt=0, le=1)
    user: str | None = None

    def sampling_options(self) -> dict[str, Any]:
        """Sampling settings the caller set, to bind onto the chat model."""
        options = {"temperature": self.temperature, "max_tokens": self.max_tokens, "top_p": self.top_p}
        return {k: v for k, v in options.items() if v is not None}


class CompletionMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str = ""


class CompletionChoice(BaseModel):
    index: int = 0
    message: CompletionMessage
    finish_reason: str | None = "stop"


class CompletionResponse(BaseModel):
    id: str = Field(default_factory=completion_id)
    object: Literal["chat.completion"] = "chat.completion"
    created: int = Field(default_factory=unix_now)
    model: str
    choices: list[CompletionChoice]
    usage: UsageInfo | None = None
    genui: dict[str, Any] | None = None


class ChunkDelta(BaseModel):
    role: str | None = None
    content: str | None = None


class ChunkChoice(BaseModel):
    index: int = 0
    delta: ChunkDelta = Field(default_factory=ChunkDelta)
    finish_reason: str | None = None


class CompletionChunk(BaseModel):
    id: str
    object: Literal["chat.completion.chunk"] = "chat.completion.chunk"
    created: int
    model: str
    choices: list[ChunkChoice]


class CompletionError(BaseModel):
    message: str
    type: str = "invalid_request_error"
    param: str | None = None
    code: str | None = None


class CompletionErrorResponse(BaseModel):
    error: CompletionError
