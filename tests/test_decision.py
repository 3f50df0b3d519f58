import itertools

import pytest

from genui.analyzer import DataShape, DataShapeKind, Intent, IntentType, analyze_data_shape, fallback_intent
from genui.components import TEXT_ONLY, ComponentType
from genui.decision import decide
from genui.prompts import COMPONENT_GUIDELINES, COMPONENT_VOCABULARY

ROWS = [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}]


def _expected(intent_type, requires_input, kind, many_columns, data_present):
    """Reference table written out longhand, one branch per rule."""
    if requires_input:
        return "form", {}
    if not data_present:
        return "text", {}
    if kind == DataShapeKind.SINGLE_RECORD:
        return "card", {"layout": "detailed"}
    if kind == DataShapeKind.TIME_SERIES and intent_type in (IntentType.ANALYZE, IntentType.COMPARE):
        return "chart", {"chartType": "line"}
    if kind == DataShapeKind.AGGREGATED and intent_type in (IntentType.ANALYZE, IntentType.COMPARE):
        return "chart", {"chartType": "bar"}
    if kind == DataShapeKind.COLLECTION and intent_type in (IntentType.VIEW, IntentType.SEARCH):
        if many_columns:
            return "table", {"sortable": True, "filterable": True}
        return "list", {"layout": "grid"}
    if kind == DataShapeKind.HIERARCHICAL:
        return "list", {"layout": "nested"}
    return "card", {}


DATA = {"none": None, "empty": [], "rows": ROWS}

GRID = list(
    itertools.product(
        list(IntentType),
        [False, True],
        list(DataShapeKind),
        [False, True],
        list(DATA),
    )
)


class TestDecisionTable:
    @pytest.mark.parametrize("intent_type, requires_input, kind, many_columns, data", GRID)
    def test_grid(self, intent_type, requires_input, kind, many_columns, data):
        intent = Intent(type=intent_type, requires_input=requires_input)
        shape = DataShape(kind=kind, has_many_columns=many_columns)
        decision = decide(intent, shape, DATA[data])

        component, props = _expected(intent_type, requires_input, kind, many_columns, data == "rows")
        assert decision.component_type == component
        assert decision.recommended_props == props
        assert decision.reasoning

    def test_empty_list_is_text_only(self):
        decision = decide(Intent(type=IntentType.VIEW), DataShape(kind=DataShapeKind.COLLECTION), [])
        assert decision.is_text_only
        assert decision.component_type == TEXT_ONLY

    def test_decide_is_pure(self):
        intent = Intent(type=IntentType.COMPARE)
        shape = DataShape(kind=DataShapeKind.AGGREGATED)
        assert decide(intent, shape, ROWS) == decide(intent, shape, ROWS)

    def test_top_salespeople(self):
        data = [
            {"name": "Alice", "totalSales": 182000},
            {"name": "Bob", "totalSales": 164500},
            {"name": "Carla", "totalSales": 151250},
            {"name": "Dan", "totalSales": 139900},
            {"name": "Eve", "totalSales": 121300},
        ]
        decision = decide(fallback_intent("Show me the top 5 salespeople"), analyze_data_shape(data), data)
        assert decision.component_type == "chart"
        assert decision.recommended_props == {"chartType": "bar"}

    def test_add_a_sale_needs_a_form(self):
        decision = decide(fallback_intent("Add a new sale"), DataShape(), None)
        assert decision.component_type == "form"
        assert decision.recommended_props == {}


class TestGuidelinesMatchEngine:
    def test_vocabulary_is_the_component_enum(self):
        assert set(COMPONENT_VOCABULARY) == {c.value for c in ComponentType}
        assert len(COMPONENT_VOCABULARY) == len(ComponentType)

    def test_guideline_components_are_known(self):
        for row in COMPONENT_GUIDELINES:
            assert row.component in COMPONENT_VOCABULARY or row.component == TEXT_ONLY

    @pytest.mark.parametrize(
        "row",
        [r for r in COMPONENT_GUIDELINES if r.example is not None],
        ids=lambda r: r.intent,
    )
    def test_example_rows_agree_with_decide(self, row):
        example = row.example
        decision = decide(
            Intent(type=IntentType(example.intent), requires_input=example.requires_input),
            DataShape(kind=DataShapeKind(example.shape), has_many_columns=example.has_many_columns),
            ROWS if example.data_present else None,
        )
        assert decision.component_type == row.component
        assert decision.recommended_props == example.expected_props

    def test_every_rule_has_an_example(self):
        exemplified = {
            (r.component, tuple(sorted(r.example.expected_props.items())))
            for r in COMPONENT_GUIDELINES
            if r.example is not None
        }
        reachable = {
            (component, tuple(sorted(props.items())))
            for intent_type, requires_input, kind, many_columns, data in GRID
            for component, props in [_expected(intent_type, requires_input, kind, many_columns, data == "rows")]
        }
        assert reachable <= exemplified
