"""Graph builder: wires the turn nodes into a LangGraph StateGraph.

    START → [analyze] → conditional (route_after_analyze)
      → "fetch"  → [fetch] → conditional (route_after_fetch)
                      → "decide"    → [decide] → END
                      → "__error__" → END
      → "decide" → [decide] → END
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import TYPE_CHECKING

from langgraph.graph import END, StateGraph

from genui.pipeline.nodes import (
    analyze_node,
    decide_node,
    fetch_node,
    route_after_analyze,
    route_after_fetch,
)
from genui.pipeline.state import TurnState

if TYPE_CHECKING:
    from langgraph.graph.state import CompiledStateGraph

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def build_graph() -> CompiledStateGraph:
    """Build and compile the turn graph. Compiled once; collaborators are
    per-run configuration, so the graph is shared by all turns."""
    graph = StateGraph(TurnState)

    graph.add_node("analyze", analyze_node)
    graph.add_node("fetch", fetch_node)
    graph.add_node("decide", decide_node)

    graph.set_entry_point("analyze")
    graph.add_conditional_edges(
        "analyze",
        route_after_analyze,
        {"fetch": "fetch", "decide": "decide"},
    )
    graph.add_conditional_edges(
        "fetch",
        route_after_fetch,
        {"decide": "decide", "__error__": END},
    )
    graph.add_edge("decide", END)

    logger.info("Built turn graph: analyze → fetch → decide")
    return graph.compile()
