"""HTTP JSON source tool: fetches an entity's data from a JSON API.

Install: pip install httpx
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from langchain_core.tools import tool

from genui.config import get_config
from genui.tools import register

logger = logging.getLogger(__name__)

_TIMEOUT = 15.0

# Tests swap this for an httpx.MockTransport.
_transport: httpx.AsyncBaseTransport | None = None


def set_transport(transport: httpx.AsyncBaseTransport | None) -> None:
    global _transport
    _transport = transport


async def _get_json(url: str, params: dict[str, Any], headers: dict[str, str]) -> Any:
    async with httpx.AsyncClient(timeout=_TIMEOUT, transport=_transport) as client:
        resp = await client.get(url, params=params, headers=headers)
        resp.raise_for_status()
    return resp.json()


@register
@tool
async def fetch_json(entity: str, filter: str = "", limit: int | None = None) -> Any:
    """Fetch an HTTP-backed entity and return the decoded JSON body.

    Args:
        entity: Entity name from config.yaml.
        filter: Optional filter, sent as the ``q`` query parameter.
        limit: Optional maximum number of items when the body is a list.
    """
    source = get_config().get_entity(entity).source
    if source.kind != "http" or not source.url:
        raise ValueError(f"Entity '{entity}' is not an http source")

    params = dict(source.params)
    if filter:
        params["q"] = filter

    logger.info(f"Fetching '{entity}' from {source.url}")
    body = await _get_json(source.url, params, source.headers)
    if isinstance(body, list) and limit is not None and limit >= 0:
        body = body[:limit]
    return body
