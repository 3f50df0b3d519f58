"""Conversation state machine and in-memory store.

Multi-step flows (collect input, confirm, execute) are an explicit state
per conversation driven by typed events:

    idle ──(form shown)──▶ awaitingInput ──FormSubmitted──▶ awaitingConfirmation
      ▲                        │                                 │
      └──────ActionCancelled───┘◀───ActionConfirmed / Cancelled──┘

Turns that render a form or a confirmation set the state directly;
``transition`` handles the client events.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from genui.document import ComponentAction, ResponseDocument

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class ConversationPhase(str, Enum):
    IDLE = "idle"
    AWAITING_INPUT = "awaitingInput"
    AWAITING_CONFIRMATION = "awaitingConfirmation"


class ConversationState(_Model):
    phase: ConversationPhase = ConversationPhase.IDLE
    entity: str | None = None
    submit_action: ComponentAction | None = None
    pending_action: ComponentAction | None = None


class FormSubmitted(_Model):
    kind: Literal["formSubmitted"] = "formSubmitted"
    data: dict[str, Any] = Field(default_factory=dict)


class ActionConfirmed(_Model):
    kind: Literal["actionConfirmed"] = "actionConfirmed"


class ActionCancelled(_Model):
    kind: Literal["actionCancelled"] = "actionCancelled"


ConversationEvent = Annotated[
    Union[FormSubmitted, ActionConfirmed, ActionCancelled],
    Field(discriminator="kind"),
]


class InvalidTransitionError(ValueError):
    """Event not accepted in the conversation's current phase."""


IDLE = ConversationState()


def awaiting_input(entity: str | None, submit_action: ComponentAction) -> ConversationState:
    return ConversationState(
        phase=ConversationPhase.AWAITING_INPUT,
        entity=entity,
        submit_action=submit_action,
    )


def awaiting_confirmation(entity: str | None, pending_action: ComponentAction) -> ConversationState:
    return ConversationState(
        phase=ConversationPhase.AWAITING_CONFIRMATION,
        entity=entity,
        pending_action=pending_action,
    )


def transition(state: ConversationState, event: FormSubmitted | ActionConfirmed | ActionCancelled) -> ConversationState:
    """Next state for ``event``. Raises InvalidTransitionError for pairs the
    machine does not define."""
    match (state.phase, event):
        case (ConversationPhase.AWAITING_INPUT, FormSubmitted(data=data)) if state.submit_action is not None:
            pending = state.submit_action.model_copy(update={"payload": dict(data)})
            return awaiting_confirmation(state.entity, pending)
        case (ConversationPhase.AWAITING_CONFIRMATION, ActionConfirmed()):
            return IDLE.model_copy()
        case (ConversationPhase.AWAITING_INPUT | ConversationPhase.AWAITING_CONFIRMATION, ActionCancelled()):
            return IDLE.model_copy()
        case _:
            raise InvalidTransitionError(
                f"Event '{event.kind}' is not valid in phase '{state.phase.value}'"
            )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class Turn(_Model):
    role: Literal["user", "assistant"]
    text: str | None = None
    document: ResponseDocument | None = None
    timestamp: datetime = Field(default_factory=_now)


class Conversation(_Model):
    id: str
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    turns: list[Turn] = Field(default_factory=list)
    state: ConversationState = Field(default_factory=ConversationState)


class InMemoryConversationStore:
    """Conversations keyed by id. Single event loop; no locking."""

    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}

    def create(self, conversation_id: str | None = None) -> Conversation:
        conversation = Conversation(id=conversation_id or str(uuid.uuid4()))
        self._conversations[conversation.id] = conversation
        logger.info(f"Created conversation {conversation.id}")
        return conversation

    def get(self, conversation_id: str) -> Conversation | None:
        return self._conversations.get(conversation_id)

    def _require(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise ValueError(f"Conversation '{conversation_id}' not found")
        return conversation

    def append(self, conversation_id: str, *turns: Turn) -> None:
        conversation = self._require(conversation_id)
        conversation.turns.extend(turns)
        conversation.updated_at = _now()

    def get_state(self, conversation_id: str) -> ConversationState:
        return self._require(conversation_id).state

    def set_state(self, conversation_id: str, state: ConversationState) -> None:
        conversation = self._require(conversation_id)
        conversation.state = state
        conversation.updated_at = _now()

    def delete(self, conversation_id: str) -> bool:
        return self._conversations.pop(conversation_id, None) is not None

    def list(self) -> list[Conversation]:
        return sorted(self._conversations.values(), key=lambda c: c.updated_at, reverse=True)

    def prune(self, max_age: timedelta) -> int:
        """Drop conversations idle for longer than ``max_age``."""
        cutoff = _now() - max_age
        stale = [cid for cid, c in self._conversations.items() if c.updated_at < cutoff]
        for cid in stale:
            del self._conversations[cid]
        if stale:
            logger.info(f"Pruned {len(stale)} idle conversation(s)")
        return len(stale)

    def __len__(self) -> int:
        return len(self._conversations)
