"""LangGraph node functions for one turn: analyze, fetch, decide.

Collaborators are not captured at build time; every node reads them from
``config["configurable"]``:

    llm:         chat model for intent classification, or None
    fetch_data:  ``async (DataQuery) -> JSON value``
    entities:    list of ``EntityConfig`` the utterance may refer to
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from genui.analyzer import IntentType, analyze_data_shape, analyze_intent
from genui.decision import decide
from genui.pipeline.state import TurnState
from genui.tools import tool_for_source

if TYPE_CHECKING:
    from langchain_core.runnables import RunnableConfig

    from genui.config import EntityConfig

logger = logging.getLogger(__name__)

_TOP_N_RE = re.compile(r"\btop\s+(\d+)\b", re.IGNORECASE)


class DataQuery(BaseModel):
    """What the data-fetch collaborator is asked for."""

    entity: str
    filter: str = ""
    limit: int | None = None


async def fetch_entity_data(query: DataQuery, entities: list[EntityConfig]) -> Any:
    """Default data-fetch collaborator: run the tool serving the entity's source."""
    entity = next((e for e in entities if e.name == query.entity), None)
    if entity is None:
        raise ValueError(f"Entity '{query.entity}' not found")
    tool = tool_for_source(entity.source.kind)
    return await tool.ainvoke(query.model_dump())


def _configurable(config: RunnableConfig) -> dict[str, Any]:
    return config.get("configurable", {}) if config else {}


def _limit_for(utterance: str, parameters: dict[str, Any]) -> int | None:
    limit = parameters.get("limit")
    if isinstance(limit, int) and not isinstance(limit, bool):
        return limit
    match = _TOP_N_RE.search(utterance)
    return int(match.group(1)) if match else None


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


async def analyze_node(state: TurnState, config: RunnableConfig) -> dict:
    configurable = _configurable(config)
    utterance = state["utterance"]
    intent = await analyze_intent(utterance, configurable.get("llm"))

    entity = None
    requested = intent.parameters.get("entity")
    for candidate in configurable.get("entities", []):
        if isinstance(requested, str) and candidate.name.lower() == requested.lower():
            entity = candidate.name
            break
    if entity is None:
        entity = next((e.name for e in configurable.get("entities", []) if e.matches(utterance)), None)

    logger.info(f"Analyzed turn: intent={intent.type.value}, entity={entity}")
    return {"intent": intent, "entity": entity}


async def fetch_node(state: TurnState, config: RunnableConfig) -> dict:
    entity = state.get("entity")
    if entity is None:
        logger.info("No entity matched, nothing to fetch")
        return {"data": None, "shape": analyze_data_shape(None)}

    fetch_data = _configurable(config)["fetch_data"]
    parameters = state["intent"].parameters
    query = DataQuery(
        entity=entity,
        filter=parameters.get("filter") if isinstance(parameters.get("filter"), str) else "",
        limit=_limit_for(state["utterance"], parameters),
    )

    try:
        data = await fetch_data(query)
    except Exception as e:
        logger.error(f"Data fetch for '{entity}' failed: {e}", exc_info=True)
        return {"error": str(e) or type(e).__name__}

    return {"data": data, "shape": analyze_data_shape(data)}


async def decide_node(state: TurnState) -> dict:
    data = state.get("data")
    shape = state.get("shape") or analyze_data_shape(data)
    decision = decide(state["intent"], shape, data)
    logger.info(f"Decision: {decision.component_type} ({decision.reasoning})")
    return {"shape": shape, "decision": decision}


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


def route_after_analyze(state: TurnState) -> str:
    """Create turns collect input first; there is nothing to fetch."""
    if state["intent"].type == IntentType.CREATE:
        return "decide"
    return "fetch"


def route_after_fetch(state: TurnState) -> str:
    return "__error__" if state.get("error") else "decide"
