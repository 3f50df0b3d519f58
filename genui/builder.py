"""Response builder: append-only accumulator for one turn's document.

One builder belongs to one turn and is never shared between tasks. Every
``add_*`` call copies its arguments to plain JSON values, so a partial
build taken earlier in the turn is never rewritten by later caller
mutation; only the last thinking step's status may change afterwards.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel
from pydantic_core import to_jsonable_python

from genui.components import ComponentType, is_component_type
from genui.document import (
    ComponentActions,
    ComponentBlock,
    ResponseDocument,
    TextBlock,
    ThinkingStatus,
    ThinkingStep,
)

logger = logging.getLogger(__name__)

DOCUMENT_VERSION = "1.0"


def _to_json_value(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    return to_jsonable_python(value, by_alias=True)


def _status(value: ThinkingStatus | str) -> ThinkingStatus:
    return ThinkingStatus(value.lower() if isinstance(value, str) else value)


class ResponseBuilder:
    def __init__(self) -> None:
        self._doc = ResponseDocument()

    # -- thinking ---------------------------------------------------------

    def add_thinking(self, message: str, status: ThinkingStatus | str = ThinkingStatus.ACTIVE) -> None:
        self._doc.thinking.append(
            ThinkingStep(
                message=message,
                status=_status(status),
                timestamp=datetime.now(timezone.utc),
            )
        )

    def complete_last_thinking(self, status: ThinkingStatus | str = ThinkingStatus.COMPLETE) -> None:
        """Set the newest step's status. No-op without steps; a step never
        moves back from complete to active."""
        if not self._doc.thinking:
            return
        status = _status(status)
        last = self._doc.thinking[-1]
        if last.status == ThinkingStatus.COMPLETE and status == ThinkingStatus.ACTIVE:
            logger.debug(f"Ignoring status downgrade for thinking step '{last.message}'")
            return
        last.status = status

    # -- content ----------------------------------------------------------

    def add_text(self, value: str) -> None:
        self._doc.content.append(TextBlock(value=value))

    def add_component(self, component_type: ComponentType | str, props: Any = None) -> None:
        self._doc.content.append(self._component(component_type, props, None))

    def add_component_with_actions(
        self,
        component_type: ComponentType | str,
        props: Any,
        actions: ComponentActions | dict[str, Any],
    ) -> None:
        """Append a component whose follow-up calls are fully embedded."""
        self._doc.content.append(self._component(component_type, props, actions))

    @staticmethod
    def _component(
        component_type: ComponentType | str,
        props: Any,
        actions: ComponentActions | dict[str, Any] | None,
    ) -> ComponentBlock:
        name = component_type.value if isinstance(component_type, ComponentType) else component_type
        if not is_component_type(name):
            raise ValueError(
                f"Unknown component type '{name}'. "
                f"Available: {[c.value for c in ComponentType]}"
            )

        embedded = None
        if actions is not None:
            embedded = ComponentActions.model_validate(_to_json_value(actions))
            if embedded.is_empty():
                embedded = None

        return ComponentBlock(
            component_type=name,
            props={} if props is None else _to_json_value(props),
            actions=embedded,
        )

    # -- metadata ---------------------------------------------------------

    def add_metadata(self, key: str, value: Any) -> None:
        self._doc.metadata[key] = _to_json_value(value)

    # -- output -----------------------------------------------------------

    def build(self) -> str:
        """Stamp ``timestamp`` and ``version`` and serialize. Safe to call again;
        each call refreshes the timestamp."""
        self._doc.metadata["timestamp"] = datetime.now(timezone.utc).isoformat()
        self._doc.metadata["version"] = DOCUMENT_VERSION
        return self._doc.to_json()

    def build_partial(self) -> str:
        return self._doc.to_json()

    def snapshot(self) -> ResponseDocument:
        """Deep copy of the document as it stands."""
        return self._doc.model_copy(deep=True)
