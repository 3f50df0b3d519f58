"""Intent & data-shape analyzer.

Intent comes from the chat model when it answers with parseable JSON and
from a keyword table otherwise. Data shape is a structural heuristic over
the fetched JSON value: it looks only at container kinds and generic
field-name substrings, so it is best-effort and can be fooled by unusual
field names.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any

from langchain_core.messages import HumanMessage
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from genui.components import is_record, to_field_list
from genui.llm import extract_content
from genui.parser import strip_fences
from genui.prompts import INTENT_PROMPT

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel

logger = logging.getLogger(__name__)


class IntentType(str, Enum):
    VIEW = "View"
    ANALYZE = "Analyze"
    COMPARE = "Compare"
    SEARCH = "Search"
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"
    UNKNOWN = "Unknown"


class DataShapeKind(str, Enum):
    SINGLE_RECORD = "SingleRecord"
    COLLECTION = "Collection"
    TIME_SERIES = "TimeSeries"
    AGGREGATED = "Aggregated"
    HIERARCHICAL = "Hierarchical"
    UNKNOWN = "Unknown"


class Intent(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    type: IntentType = IntentType.UNKNOWN
    requires_input: bool = False
    parameters: dict[str, Any] = Field(default_factory=dict)


class DataShape(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    kind: DataShapeKind = DataShapeKind.UNKNOWN
    has_many_columns: bool = False
    has_time_component: bool = False
    is_aggregated: bool = False
    record_count: int = 0
    fields: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Intent
# ---------------------------------------------------------------------------

# Checked in order; first match wins.
_KEYWORD_RULES: tuple[tuple[tuple[str, ...], IntentType, bool], ...] = (
    (("add", "create", "new"), IntentType.CREATE, True),
    (("update", "edit", "modify"), IntentType.UPDATE, True),
    (("delete", "remove"), IntentType.DELETE, False),
    (("compare", "vs", "versus"), IntentType.COMPARE, False),
    (("analyze", "trend", "pattern", "performance", "top", "best"), IntentType.ANALYZE, False),
    (("search", "find", "filter"), IntentType.SEARCH, False),
)


def fallback_intent(utterance: str | None) -> Intent:
    """Keyword classification. Substring match on the lowercased text;
    anything unmatched is a View."""
    lower = (utterance or "").lower()
    for keywords, intent_type, requires_input in _KEYWORD_RULES:
        if any(k in lower for k in keywords):
            return Intent(type=intent_type, requires_input=requires_input)
    return Intent(type=IntentType.VIEW)


def _parse_intent_type(value: Any) -> IntentType:
    if isinstance(value, str):
        for member in IntentType:
            if member.value.upper() == value.strip().upper():
                return member
    return IntentType.UNKNOWN


def parse_intent(text: str) -> Intent:
    """Decode the model's classification JSON.

    Raises ValueError when the text is not a JSON object.
    """
    data = json.loads(strip_fences(text))
    if not isinstance(data, dict):
        raise ValueError(f"Intent response is not a JSON object: {type(data).__name__}")

    lookup = {k.lower(): v for k, v in data.items() if isinstance(k, str)}
    parameters = lookup.get("parameters")
    return Intent(
        type=_parse_intent_type(lookup.get("intenttype")),
        requires_input=lookup.get("requiresinput") is True,
        parameters=parameters if isinstance(parameters, dict) else {},
    )


async def analyze_intent(utterance: str, llm: BaseChatModel | None = None) -> Intent:
    """Classify ``utterance``; never raises.

    The model's answer wins whenever it decodes. Without a model, or on any
    call or decode failure, the keyword table decides.
    """
    if llm is None:
        logger.info("No chat model configured, using keyword intent analysis")
        return fallback_intent(utterance)

    try:
        response = await llm.ainvoke([HumanMessage(content=INTENT_PROMPT.format(utterance=utterance))])
        intent = parse_intent(extract_content(response.content))
    except Exception as e:
        logger.warning(f"Failed to parse LLM intent analysis, using keyword fallback: {e}")
        return fallback_intent(utterance)

    logger.info(f"Intent: {intent.type.value} (requires_input={intent.requires_input})")
    return intent


# ---------------------------------------------------------------------------
# Data shape
# ---------------------------------------------------------------------------

_TIME_MARKERS = ("date", "time", "timestamp")
_AGGREGATE_MARKERS = ("total", "sum", "count", "average", "avg")
_MANY_COLUMNS = 4


def _is_collection(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def analyze_data_shape(value: Any) -> DataShape:
    """Classify a fetched value by structure.

    - None, primitives and other non-record values: Unknown.
    - Empty collection: Collection with record_count 0.
    - One-element collection, or a single record: SingleRecord.
    - Otherwise the first element's field names decide: a time-like name
      with more than two records is a TimeSeries, an aggregate-like name is
      Aggregated, anything else a Collection.

    Hierarchical is never inferred; callers that know their data is a tree
    construct that shape themselves.
    """
    if _is_collection(value):
        items = list(value)
        if not items:
            return DataShape(kind=DataShapeKind.COLLECTION, record_count=0)

        first_fields = tuple(name for name, _ in to_field_list(items[0]))
        if len(items) == 1:
            return DataShape(kind=DataShapeKind.SINGLE_RECORD, record_count=1, fields=first_fields)

        lowered = [name.lower() for name in first_fields]
        has_time = any(m in name for name in lowered for m in _TIME_MARKERS)
        aggregated = any(m in name for name in lowered for m in _AGGREGATE_MARKERS)

        if has_time and len(items) > 2:
            kind = DataShapeKind.TIME_SERIES
        elif aggregated:
            kind = DataShapeKind.AGGREGATED
        else:
            kind = DataShapeKind.COLLECTION

        return DataShape(
            kind=kind,
            has_many_columns=len(first_fields) > _MANY_COLUMNS,
            has_time_component=has_time,
            is_aggregated=aggregated,
            record_count=len(items),
            fields=first_fields,
        )

    if is_record(value):
        fields = tuple(name for name, _ in to_field_list(value))
        return DataShape(kind=DataShapeKind.SINGLE_RECORD, record_count=1, fields=fields)

    return DataShape(kind=DataShapeKind.UNKNOWN)


def is_empty_data(value: Any) -> bool:
    """None, or a collection/mapping with no entries."""
    if value is None:
        return True
    if _is_collection(value) or isinstance(value, Mapping):
        return len(value) == 0
    return False
