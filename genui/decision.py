"""Component decision engine.

Maps (intent, data shape, data) to a component type with a fixed priority
table. The same table is rendered into the system prompt from
``genui.prompts.COMPONENT_GUIDELINES``; tests hold the two in lock-step.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from genui.analyzer import DataShape, DataShapeKind, Intent, IntentType, is_empty_data
from genui.components import TEXT_ONLY, ComponentType

_CHART_INTENTS = {IntentType.ANALYZE, IntentType.COMPARE}
_BROWSE_INTENTS = {IntentType.VIEW, IntentType.SEARCH}


class ComponentDecision(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    component_type: str
    reasoning: str = ""
    recommended_props: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_text_only(self) -> bool:
        return self.component_type == TEXT_ONLY


def decide(intent: Intent, shape: DataShape, data: Any) -> ComponentDecision:
    """Pick the component for a turn. Pure and total; first matching rule wins."""
    if intent.requires_input:
        return ComponentDecision(
            component_type=ComponentType.FORM.value,
            reasoning="User needs to provide input",
        )

    if is_empty_data(data):
        return ComponentDecision(
            component_type=TEXT_ONLY,
            reasoning="No data to display",
        )

    kind = shape.kind

    if kind == DataShapeKind.SINGLE_RECORD:
        return ComponentDecision(
            component_type=ComponentType.CARD.value,
            reasoning="Single record best displayed as a card",
            recommended_props={"layout": "detailed"},
        )

    if kind == DataShapeKind.TIME_SERIES and intent.type in _CHART_INTENTS:
        return ComponentDecision(
            component_type=ComponentType.CHART.value,
            reasoning="Time series data with analysis intent",
            recommended_props={"chartType": "line"},
        )

    if kind == DataShapeKind.AGGREGATED and intent.type in _CHART_INTENTS:
        return ComponentDecision(
            component_type=ComponentType.CHART.value,
            reasoning="Aggregated data best shown as a bar chart",
            recommended_props={"chartType": "bar"},
        )

    if kind == DataShapeKind.COLLECTION and intent.type in _BROWSE_INTENTS:
        if shape.has_many_columns:
            return ComponentDecision(
                component_type=ComponentType.TABLE.value,
                reasoning="Collection with many fields best shown as a table",
                recommended_props={"sortable": True, "filterable": True},
            )
        return ComponentDecision(
            component_type=ComponentType.LIST.value,
            reasoning="Simple collection best shown as a list",
            recommended_props={"layout": "grid"},
        )

    if kind == DataShapeKind.HIERARCHICAL:
        return ComponentDecision(
            component_type=ComponentType.LIST.value,
            reasoning="Hierarchical data shown as a nested list",
            recommended_props={"layout": "nested"},
        )

    return ComponentDecision(
        component_type=ComponentType.CARD.value,
        reasoning="Default card display",
    )
