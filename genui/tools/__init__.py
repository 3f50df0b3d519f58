"""Tool registry: name-based lookup for the data-fetch LangChain tools.

Tools are functions decorated with ``@register`` and ``@tool``. Each entity
source kind in ``config.yaml`` maps to one registered tool; the pipeline
resolves and invokes it to fetch the entity's data.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from langchain_core.tools import BaseTool

_registry: dict[str, BaseTool] = {}

# Source kind → tool name.
SOURCE_TOOLS: dict[str, str] = {
    "dataset": "query_dataset",
    "http": "fetch_json",
}


def register(tool: BaseTool) -> BaseTool:
    """Add a BaseTool to the registry by its ``.name``.

    Used as a decorator applied *outside* ``@tool``::

        @register
        @tool
        def my_tool(query: str) -> str:
            ...
    """
    _registry[tool.name] = tool
    return tool


def resolve_tools(names: list[str]) -> list[BaseTool]:
    """Look up tool names and return the corresponding ``BaseTool`` objects.

    Raises ``ValueError`` if any name is not registered.
    """
    missing = [n for n in names if n not in _registry]
    if missing:
        raise ValueError(
            f"Unknown tool(s): {missing}. Available: {list(_registry.keys())}"
        )
    return [_registry[n] for n in names]


def tool_for_source(kind: str) -> BaseTool:
    """The tool serving a data source kind. Raises ``ValueError`` if none."""
    name = SOURCE_TOOLS.get(kind)
    if name is None:
        raise ValueError(f"No tool for source kind '{kind}'. Available: {list(SOURCE_TOOLS)}")
    return resolve_tools([name])[0]


# Auto-import tool modules so the registry is populated on first access.
import genui.tools.datasets as _datasets  # noqa: E402, F401
import genui.tools.http_source as _http_source  # noqa: E402, F401
