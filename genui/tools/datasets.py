"""Inline dataset tool: serves records declared under an entity in config.yaml."""

from __future__ import annotations

import copy
import logging
from typing import Any

from langchain_core.tools import tool

from genui.config import get_config
from genui.tools import register

logger = logging.getLogger(__name__)


def _parse_filter(text: str) -> tuple[dict[str, str], list[str]]:
    """``"region=North, laptop"`` → ``({"region": "north"}, ["laptop"])``."""
    pairs: dict[str, str] = {}
    terms: list[str] = []
    for part in (p.strip() for p in text.split(",")):
        if not part:
            continue
        if "=" in part:
            key, _, value = part.partition("=")
            pairs[key.strip().lower()] = value.strip().lower()
        else:
            terms.append(part.lower())
    return pairs, terms


def _matches(record: dict[str, Any], pairs: dict[str, str], terms: list[str]) -> bool:
    lowered = {str(k).lower(): str(v).lower() for k, v in record.items()}
    for key, value in pairs.items():
        if lowered.get(key) != value:
            return False
    return all(any(term in v for v in lowered.values()) for term in terms)


def filter_records(records: Any, filter: str = "", limit: int | None = None) -> Any:
    """Apply a filter expression to dataset records.

    A single-record dataset (a mapping) is returned as is. For a list,
    ``key=value`` parts must match exactly (case-insensitive) and bare terms
    must occur in some field value.
    """
    if not isinstance(records, list):
        return copy.deepcopy(records)

    pairs, terms = _parse_filter(filter or "")
    rows = [r for r in records if not isinstance(r, dict) or _matches(r, pairs, terms)]
    if limit is not None and limit >= 0:
        rows = rows[:limit]
    return copy.deepcopy(rows)


@register
@tool
def query_dataset(entity: str, filter: str = "", limit: int | None = None) -> Any:
    """Return the records of a configured dataset entity.

    Args:
        entity: Entity name from config.yaml.
        filter: Optional comma-separated ``field=value`` pairs and free-text terms.
        limit: Optional maximum number of records.
    """
    source = get_config().get_entity(entity).source
    if source.kind != "dataset":
        raise ValueError(f"Entity '{entity}' is not a dataset source")

    result = filter_records(source.records, filter, limit)
    logger.info(
        f"Dataset '{entity}' query (filter={filter!r}) returned "
        f"{len(result) if isinstance(result, list) else 1} record(s)"
    )
    return result
