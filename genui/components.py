"""Component registry: the closed vocabulary of renderable components and
the props each one takes.

Renderers live in the client and are keyed only by the ``ComponentType``
string. This module turns a ``ComponentDecision`` plus fetched data into
concrete props, walking plain JSON values (dict / list / primitive) instead
of reflecting over host objects.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from collections.abc import Mapping
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from genui.config import FormFieldConfig
    from genui.decision import ComponentDecision

logger = logging.getLogger(__name__)


class ComponentType(str, Enum):
    """Closed set of component tags. Must stay equal to
    ``genui.prompts.COMPONENT_VOCABULARY``."""

    CARD = "card"
    LIST = "list"
    TABLE = "table"
    CHART = "chart"
    FORM = "form"
    CONFIRMATION = "confirmation"
    MINI_CARD_BLOCK = "miniCardBlock"
    CALLOUT = "callout"


# Decision result for a message-only response: no visual component.
TEXT_ONLY = "text"


def is_component_type(value: str) -> bool:
    return value in {c.value for c in ComponentType}


# ---------------------------------------------------------------------------
# Schema-less field walking
# ---------------------------------------------------------------------------


def to_field_list(value: Any) -> list[tuple[str, Any]]:
    """Ordered ``(name, value)`` pairs of a record.

    Mappings, pydantic models and dataclass instances are records; anything
    else (primitives, lists, None) has no fields.
    """
    if isinstance(value, Mapping):
        return [(str(k), v) for k, v in value.items()]
    if isinstance(value, BaseModel):
        return list(value.model_dump(mode="json").items())
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return [(f.name, getattr(value, f.name)) for f in dataclasses.fields(value)]
    return []


def is_record(value: Any) -> bool:
    return (
        isinstance(value, (Mapping, BaseModel))
        or (dataclasses.is_dataclass(value) and not isinstance(value, type))
    )


def as_record(value: Any) -> dict[str, Any]:
    return dict(to_field_list(value))


def humanize(name: str) -> str:
    """``totalSales`` / ``total_sales`` → ``Total Sales``."""
    spaced = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", " ", name).replace("_", " ").replace("-", " ")
    return " ".join(word.capitalize() for word in spaced.split())


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# ---------------------------------------------------------------------------
# Props models
# ---------------------------------------------------------------------------


class _Props(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_props(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CardProps(_Props):
    title: str | None = None
    description: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    layout: str | None = None


class ListProps(_Props):
    title: str | None = None
    items: list[Any] = Field(default_factory=list)
    layout: Literal["list", "grid", "compact", "nested"] = "grid"


class TableColumn(_Props):
    name: str
    label: str


class TableProps(_Props):
    title: str | None = None
    columns: list[TableColumn] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)
    sortable: bool = False
    filterable: bool = False


class ChartProps(_Props):
    type: Literal["bar", "line", "pie", "area"] = "bar"
    title: str | None = None
    data: list[dict[str, Any]] = Field(default_factory=list)
    x_axis: str | None = None
    y_axis: str | None = None


class FormField(_Props):
    name: str
    label: str
    type: Literal["text", "number", "email", "date", "select", "textarea"] = "text"
    placeholder: str | None = None
    required: bool | None = None
    options: list[str] | None = None
    default_value: Any = None


class FormProps(_Props):
    title: str = ""
    description: str | None = None
    fields: list[FormField] = Field(default_factory=list)
    submit_text: str = "Submit"


class ConfirmationProps(_Props):
    title: str = ""
    message: str = ""
    confirm_text: str = "Confirm"
    cancel_text: str = "Cancel"
    variant: Literal["info", "warning", "danger"] = "info"
    data: Any = None


class CalloutProps(_Props):
    variant: Literal["info", "success", "warning", "error"] = "info"
    title: str = ""
    description: str | None = None


class MiniCard(_Props):
    title: str
    value: str
    trend: Literal["up", "down", "flat"] | None = None
    change: str | None = None


class MiniCardBlockProps(_Props):
    cards: list[MiniCard] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Props rendering
# ---------------------------------------------------------------------------


def _records(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, (list, tuple)):
        rows = []
        for item in data:
            rows.append(as_record(item) if is_record(item) else {"value": item})
        return rows
    if is_record(data):
        return [as_record(data)]
    return []


def _first_field(rows: list[dict[str, Any]], want_number: bool, hint: tuple[str, ...] = ()) -> str | None:
    if not rows:
        return None
    first = rows[0]
    if hint:
        for name, value in first.items():
            if any(h in name.lower() for h in hint) and _is_number(value) == want_number:
                return name
    for name, value in first.items():
        if _is_number(value) == want_number:
            return name
    return None


def render_props(decision: ComponentDecision, data: Any, title: str | None = None) -> dict[str, Any]:
    """Concrete props for ``decision.component_type`` built from ``data``.

    Recommended props from the decision (layout, chart type, sortable…) are
    applied on top of the data-derived ones.
    """
    hints = dict(decision.recommended_props or {})
    component = ComponentType(decision.component_type)

    match component:
        case ComponentType.CARD:
            rows = _records(data)
            props = CardProps(title=title, data=rows[0] if rows else {}, layout=hints.get("layout"))
        case ComponentType.LIST:
            props = ListProps(title=title, items=_records(data), layout=hints.get("layout", "grid"))
        case ComponentType.TABLE:
            rows = _records(data)
            names: list[str] = []
            for row in rows:
                names.extend(n for n in row if n not in names)
            props = TableProps(
                title=title,
                columns=[TableColumn(name=n, label=humanize(n)) for n in names],
                rows=rows,
                sortable=bool(hints.get("sortable", False)),
                filterable=bool(hints.get("filterable", False)),
            )
        case ComponentType.CHART:
            rows = _records(data)
            chart_type = hints.get("chartType", "bar")
            time_hint = ("date", "time") if chart_type == "line" else ()
            x_axis = _first_field(rows, want_number=False, hint=time_hint)
            y_axis = _first_field(rows, want_number=True, hint=("total", "sum", "avg", "average", "count"))
            props = ChartProps(type=chart_type, title=title, data=rows, x_axis=x_axis, y_axis=y_axis)
        case _:
            logger.debug(f"No data-driven props for '{component.value}', using recommended props only")
            return hints

    return props.to_props()


def _infer_field_type(value: Any) -> str:
    if _is_number(value):
        return "number"
    if isinstance(value, (date, datetime)):
        return "date"
    if isinstance(value, str):
        if re.fullmatch(r"\d{4}-\d{2}-\d{2}.*", value):
            return "date"
        if "@" in value and " " not in value:
            return "email"
        if len(value) > 80:
            return "textarea"
    return "text"


def form_fields(configured: list[FormFieldConfig] | None, record: Any = None) -> list[FormField]:
    """Form fields from entity config, pre-filled from ``record`` when given.

    Without configured fields the form is inferred from the record's own
    fields; with neither, a single free-text field is returned.
    """
    values = as_record(record) if is_record(record) else {}

    if configured:
        return [
            FormField(
                name=f.name,
                label=f.label or humanize(f.name),
                type=f.type,
                required=f.required,
                options=f.options,
                placeholder=f.placeholder,
                default_value=values.get(f.name),
            )
            for f in configured
        ]

    if values:
        return [
            FormField(
                name=name,
                label=humanize(name),
                type=_infer_field_type(value),
                default_value=value,
            )
            for name, value in values.items()
            if name.lower() != "id"
        ]

    return [FormField(name="details", label="Details", type="textarea", required=True)]


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def kpi_cards(data: Any, limit: int = 4) -> list[MiniCard]:
    """Totals of the numeric fields across ``data`` as mini cards."""
    rows = _records(data)
    if not rows:
        return []

    totals: dict[str, float] = {}
    for row in rows:
        for name, value in row.items():
            if _is_number(value):
                totals[name] = totals.get(name, 0) + value

    cards = [MiniCard(title=humanize(name), value=_format_number(total)) for name, total in totals.items()]
    cards.append(MiniCard(title="Records", value=str(len(rows))))
    return cards[:limit]
