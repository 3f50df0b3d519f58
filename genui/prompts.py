"""Prompt contract: the instructions the upstream model must follow.

The model wraps its whole answer in ``<genui>…</genui>`` and emits the JSON
shape of ``genui.document.ResponseDocument``, choosing components from a
closed vocabulary. The guideline table below is mirrored by
``genui.decision.decide``; both must change together when the vocabulary
or the table changes, and ``PROMPT_VERSION`` must be bumped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

PROMPT_VERSION = "1.0"

OPEN_TAG = "<genui>"
CLOSE_TAG = "</genui>"

COMPONENT_VOCABULARY: tuple[str, ...] = (
    "card",
    "list",
    "table",
    "chart",
    "form",
    "confirmation",
    "miniCardBlock",
    "callout",
)


@dataclass(frozen=True)
class GuidelineExample:
    """An input the decision engine must answer with the row's component."""

    intent: str
    shape: str
    has_many_columns: bool = False
    requires_input: bool = False
    data_present: bool = True
    expected_props: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GuidelineRow:
    intent: str
    data: str
    component: str
    hints: str = ""
    example: GuidelineExample | None = None

    def render(self) -> str:
        return f"| {self.intent} | {self.data} | {self.component} | {self.hints or '-'} |"


# Rows without an example are presentation guidance the model may apply on its
# own; the decision engine never selects those components from data shape.
COMPONENT_GUIDELINES: tuple[GuidelineRow, ...] = (
    GuidelineRow(
        "Collect input (create/update)", "-", "form", "",
        GuidelineExample(intent="Create", shape="Unknown", requires_input=True),
    ),
    GuidelineRow(
        "Nothing to show", "Empty / none", "text", "text blocks only",
        GuidelineExample(intent="View", shape="Collection", data_present=False),
    ),
    GuidelineRow(
        "View single item", "Object", "card", "layout: detailed",
        GuidelineExample(intent="View", shape="SingleRecord", expected_props={"layout": "detailed"}),
    ),
    GuidelineRow(
        "Analyze trends", "Time series", "chart", "type: line",
        GuidelineExample(intent="Analyze", shape="TimeSeries", expected_props={"chartType": "line"}),
    ),
    GuidelineRow(
        "Compare items", "Aggregated categories", "chart", "type: bar",
        GuidelineExample(intent="Compare", shape="Aggregated", expected_props={"chartType": "bar"}),
    ),
    GuidelineRow(
        "View detailed data", "Array (many fields)", "table", "sortable, filterable",
        GuidelineExample(
            intent="View", shape="Collection", has_many_columns=True,
            expected_props={"sortable": True, "filterable": True},
        ),
    ),
    GuidelineRow(
        "View list of items", "Array (few fields)", "list", "layout: grid",
        GuidelineExample(intent="Search", shape="Collection", expected_props={"layout": "grid"}),
    ),
    GuidelineRow(
        "Browse nested data", "Hierarchical", "list", "layout: nested",
        GuidelineExample(intent="View", shape="Hierarchical", expected_props={"layout": "nested"}),
    ),
    GuidelineRow("Show distribution", "Percentages", "chart", "type: pie"),
    GuidelineRow("Show KPIs/metrics", "Numbers", "miniCardBlock"),
    GuidelineRow("Confirm an action", "-", "confirmation"),
    GuidelineRow("Highlight info", "-", "callout", "variant: info/success/warning/error"),
    GuidelineRow(
        "Anything else", "Unstructured", "card", "",
        GuidelineExample(intent="Unknown", shape="Unknown"),
    ),
)


def render_guidelines() -> str:
    lines = [
        "| User Intent | Data Type | Component | Hints |",
        "|-------------|-----------|-----------|-------|",
    ]
    lines.extend(row.render() for row in COMPONENT_GUIDELINES)
    return "\n".join(lines)


_FORMAT_SECTION = f"""You are an AI assistant that responds with structured UI components instead of plain text.

## Response Format

Always respond using the following JSON structure wrapped in {OPEN_TAG} tags:

{OPEN_TAG}
{{
  "thinking": [
    {{"message": "Analyzing your query...", "status": "complete"}},
    {{"message": "Fetching relevant data...", "status": "complete"}}
  ],
  "content": [
    {{"type": "text", "value": "Markdown text"}},
    {{"type": "component", "componentType": "card", "props": {{}}}}
  ]
}}
{CLOSE_TAG}

Emit exactly one {OPEN_TAG}…{CLOSE_TAG} pair and nothing outside it.
"""

_COMPONENTS_SECTION = """## Available Components

componentType must be one of: """ + ", ".join(COMPONENT_VOCABULARY) + """.

### Text Block
{"type": "text", "value": "Your markdown text here"}

### card: a single entity
{"type": "component", "componentType": "card",
 "props": {"title": "Card Title", "description": "Optional", "data": {"field1": "value1"}}}

### list: a collection of items
{"type": "component", "componentType": "list",
 "props": {"title": "List Title", "layout": "grid", "items": [{"name": "Item 1"}]}}

### table: tabular data with many columns
{"type": "component", "componentType": "table",
 "props": {"title": "Table Title", "columns": [{"name": "col1", "label": "Column 1"}],
           "rows": [{"col1": "value1"}], "sortable": true, "filterable": true}}

### chart: trends, comparisons, distributions
{"type": "component", "componentType": "chart",
 "props": {"type": "bar", "title": "Chart Title", "data": [{"label": "A", "value": 100}],
           "xAxis": "label", "yAxis": "value"}}

### form: collecting input
{"type": "component", "componentType": "form",
 "props": {"title": "Form Title", "fields": [{"name": "field1", "label": "Field 1", "type": "text", "required": true}],
           "submitText": "Submit"},
 "actions": {"onSubmit": {"endpoint": "/api/submit", "method": "POST"},
             "onCancel": {"kind": "dismiss"}}}

### confirmation: confirming an action
{"type": "component", "componentType": "confirmation",
 "props": {"title": "Confirm", "message": "Are you sure?", "variant": "warning"},
 "actions": {"onConfirm": {"endpoint": "/api/items/1", "method": "DELETE", "payload": {"id": 1}},
             "onCancel": {"kind": "dismiss", "message": "Cancelled"}}}

### miniCardBlock: KPIs and metrics
{"type": "component", "componentType": "miniCardBlock",
 "props": {"cards": [{"title": "Total Revenue", "value": "$1.2M", "trend": "up", "change": "+12%"}]}}

### callout: warnings, tips, notes
{"type": "component", "componentType": "callout",
 "props": {"variant": "warning", "title": "Important Notice", "description": "Details"}}

Actions are self-contained: put the endpoint, method and full payload in the
action itself. The client executes them without asking you again.
"""

_RULES_SECTION = f"""## Important Rules

1. ALWAYS wrap the response in {OPEN_TAG}…{CLOSE_TAG} tags
2. Include thinking steps to show your reasoning process
3. Mix text blocks with components for context
4. Only use the component types listed above
5. Use real data when available; never invent records
6. Format numbers appropriately (currency, percentages, etc.)
"""

SYSTEM_PROMPT = "\n".join(
    [
        _FORMAT_SECTION,
        _COMPONENTS_SECTION,
        "## Component Selection Guidelines\n",
        render_guidelines(),
        "",
        _RULES_SECTION,
        f"(contract version {PROMPT_VERSION})",
    ]
)

ANALYTICS_PROMPT = """
When analyzing data:
1. Start with a miniCardBlock for key metrics
2. Use charts to visualize trends and comparisons
3. Use tables for detailed breakdowns
4. Add callouts for important insights or warnings
5. End with actionable recommendations in text
"""

INTENT_PROMPT = """Analyze this user query and determine their intent.

User query: "{utterance}"

Classify the intent as one of:
- VIEW: User wants to see/retrieve data
- ANALYZE: User wants to analyze/visualize data (trends, patterns, rankings)
- COMPARE: User wants to compare multiple items
- SEARCH: User wants to search/filter for specific data
- CREATE: User wants to add/create new data
- UPDATE: User wants to modify existing data
- DELETE: User wants to remove data

Also determine:
- Does this require user input (a form)? (true/false)
- Extract any parameters mentioned (entity, filters, time ranges, etc.)

Respond ONLY with valid JSON in this exact format:
{{
  "intentType": "VIEW|ANALYZE|COMPARE|SEARCH|CREATE|UPDATE|DELETE",
  "requiresInput": true,
  "parameters": {{"entity": "optional entity name", "filter": "optional filter"}}
}}"""


def build_messages(
    history: list[dict[str, str]] | None,
    user_message: str | None = None,
    *,
    analytics: bool = False,
) -> list[BaseMessage]:
    """Ordered message list for the chat model; the contract always comes first.

    ``history`` items are ``{"role": ..., "content": ...}``. Caller-supplied
    system text is appended to the contract in the single leading system
    message, never replacing it.
    """
    system_parts = [SYSTEM_PROMPT + (ANALYTICS_PROMPT if analytics else "")]
    turns: list[BaseMessage] = []

    for item in history or []:
        role = item.get("role", "user")
        content = item.get("content", "")
        if role == "system":
            system_parts.append(content)
        elif role == "assistant":
            turns.append(AIMessage(content=content))
        else:
            turns.append(HumanMessage(content=content))

    if user_message:
        turns.append(HumanMessage(content=user_message))
    return [SystemMessage(content="\n\n".join(system_parts)), *turns]
