"""LangGraph shared state: flows between nodes during one turn."""

from typing import Any

from typing_extensions import TypedDict

from genui.analyzer import DataShape, Intent
from genui.decision import ComponentDecision


class TurnState(TypedDict, total=False):
    """State passed through every node in the graph.

    utterance:  the user's message for this turn.
    intent:     classification from the analyze node.
    entity:     configured entity the utterance refers to, if any.
    data:       value returned by the data-fetch collaborator.
    shape:      structural classification of ``data``.
    decision:   component chosen for the response.
    error:      data-fetch failure message; ends the graph early.
    """

    utterance: str
    intent: Intent
    entity: str | None
    data: Any
    shape: DataShape
    decision: ComponentDecision
    error: str | None
