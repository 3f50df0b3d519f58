"""Response document model: the typed structure streamed to UI clients.

A document is a list of thinking steps, a list of content blocks (text or
component) and a free-form metadata map. Producers (the builder, the parser)
only ever append to the two lists, so any serialized prefix of a turn is a
valid document on its own.

Canonical encoding is camelCase JSON; optional fields that are unset are
omitted rather than written as ``null``.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    SerializerFunctionWrapHandler,
    Tag,
    field_validator,
    model_serializer,
)
from pydantic.alias_generators import to_camel

HttpVerb = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]


class _Model(BaseModel):
    """Shared config: camelCase aliases, construction by field name, and
    ``None`` elision for the fields listed in ``omit_when_none``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    omit_when_none: ClassVar[tuple[str, ...]] = ()

    @model_serializer(mode="wrap")
    def _drop_unset(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        data = handler(self)
        for name in self.omit_when_none:
            for key in (name, to_camel(name)):
                if key in data and data[key] is None:
                    del data[key]
        return data


class ThinkingStatus(str, Enum):
    ACTIVE = "active"
    COMPLETE = "complete"


class ThinkingStep(_Model):
    """A user-visible progress marker. Status only moves active → complete."""

    omit_when_none = ("timestamp",)

    message: str = ""
    status: ThinkingStatus = ThinkingStatus.ACTIVE
    timestamp: datetime | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _lower_status(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class ComponentAction(_Model):
    """A client-executable HTTP call. Everything needed to perform it is
    embedded here; nothing is looked up server-side later."""

    omit_when_none = ("payload", "confirm_message")

    endpoint: str
    method: HttpVerb = "POST"
    payload: Any = None
    confirm_message: str | None = None

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class DismissAction(_Model):
    """Closes the component on the client; performs no call."""

    omit_when_none = ("message",)

    kind: Literal["dismiss"] = "dismiss"
    message: str | None = None

    @field_validator("kind", mode="before")
    @classmethod
    def _lower_kind(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


def _action_tag(value: Any) -> str:
    if isinstance(value, dict):
        kind = value.get("kind")
        return "dismiss" if isinstance(kind, str) and kind.lower() == "dismiss" else "call"
    return "dismiss" if isinstance(value, DismissAction) else "call"


ActionSlot = Annotated[
    Union[
        Annotated[DismissAction, Tag("dismiss")],
        Annotated[ComponentAction, Tag("call")],
    ],
    Discriminator(_action_tag),
]


class ComponentActions(_Model):
    """Named action slots on a component. Only populated slots serialize."""

    omit_when_none = ("on_confirm", "on_cancel", "on_submit", "on_row_click", "on_click")

    on_confirm: ActionSlot | None = None
    on_cancel: ActionSlot | None = None
    on_submit: ActionSlot | None = None
    on_row_click: ActionSlot | None = None
    on_click: ActionSlot | None = None

    def is_empty(self) -> bool:
        return all(
            getattr(self, name) is None
            for name in ("on_confirm", "on_cancel", "on_submit", "on_row_click", "on_click")
        )


# ---------------------------------------------------------------------------
# Content blocks
# ---------------------------------------------------------------------------


class TextBlock(_Model):
    type: Literal["text"] = "text"
    value: str = ""


class ComponentBlock(_Model):
    """A UI component keyed by ``component_type``; ``props`` is arbitrary JSON
    handed to the renderer as-is."""

    omit_when_none = ("actions",)

    type: Literal["component"] = "component"
    component_type: str = ""
    props: Any = Field(default_factory=dict)
    actions: ComponentActions | None = None


ContentBlock = Annotated[Union[TextBlock, ComponentBlock], Field(discriminator="type")]


class ResponseDocument(_Model):
    """Root document. Valid at any prefix of its construction."""

    thinking: list[ThinkingStep] = Field(default_factory=list)
    content: list[ContentBlock] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> str:
        """Compact canonical JSON (camelCase, unset optionals omitted)."""
        return self.model_dump_json(by_alias=True)

    @property
    def is_fallback(self) -> bool:
        return bool(self.metadata.get("fallback"))
