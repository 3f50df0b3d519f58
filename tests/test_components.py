from dataclasses import dataclass

import pytest

from genui.components import (
    ComponentType,
    form_fields,
    humanize,
    is_component_type,
    kpi_cards,
    render_props,
    to_field_list,
)
from genui.config import FormFieldConfig
from genui.decision import ComponentDecision

SALES = [
    {"id": 1, "product": "Laptop Pro", "amount": 2400, "region": "North", "date": "2025-01-06"},
    {"id": 2, "product": "Monitor 27", "amount": 380, "region": "South", "date": "2025-01-13"},
    {"id": 3, "product": "Dock Station", "amount": 210, "region": "West", "date": "2025-01-20"},
]


@dataclass
class Point:
    x: int
    y: int


class TestFieldWalking:
    def test_mapping_keeps_order(self):
        assert to_field_list({"b": 1, "a": 2}) == [("b", 1), ("a", 2)]

    def test_dataclass(self):
        assert to_field_list(Point(1, 2)) == [("x", 1), ("y", 2)]

    @pytest.mark.parametrize("value", [None, 1, "abc", [1, 2], Point])
    def test_non_records_have_no_fields(self, value):
        assert to_field_list(value) == []

    @pytest.mark.parametrize(
        "name, label",
        [("totalSales", "Total Sales"), ("total_sales", "Total Sales"), ("id", "Id"), ("x-axis", "X Axis")],
    )
    def test_humanize(self, name, label):
        assert humanize(name) == label

    def test_component_type_check(self):
        assert is_component_type("miniCardBlock")
        assert not is_component_type("text")


class TestRenderProps:
    def test_table_columns_and_hints(self):
        decision = ComponentDecision(
            component_type="table",
            recommended_props={"sortable": True, "filterable": True},
        )
        props = render_props(decision, SALES, "Sales")

        assert props["title"] == "Sales"
        assert [c["name"] for c in props["columns"]] == ["id", "product", "amount", "region", "date"]
        assert props["columns"][1] == {"name": "product", "label": "Product"}
        assert props["sortable"] is True
        assert len(props["rows"]) == 3

    def test_bar_chart_axes(self):
        data = [{"name": "Alice", "region": "North", "totalSales": 182000}, {"name": "Bob", "region": "South", "totalSales": 1}]
        props = render_props(ComponentDecision(component_type="chart", recommended_props={"chartType": "bar"}), data)

        assert props["type"] == "bar"
        assert props["xAxis"] == "name"
        assert props["yAxis"] == "totalSales"

    def test_line_chart_prefers_time_axis(self):
        props = render_props(ComponentDecision(component_type="chart", recommended_props={"chartType": "line"}), SALES)
        assert props["type"] == "line"
        assert props["xAxis"] == "date"
        assert props["yAxis"] in {"id", "amount"}

    def test_card_uses_first_record(self):
        props = render_props(
            ComponentDecision(component_type="card", recommended_props={"layout": "detailed"}),
            [SALES[0]],
        )
        assert props["data"]["product"] == "Laptop Pro"
        assert props["layout"] == "detailed"
        assert "title" not in props

    def test_list_of_primitives(self):
        props = render_props(ComponentDecision(component_type="list"), ["a", "b"])
        assert props["items"] == [{"value": "a"}, {"value": "b"}]
        assert props["layout"] == "grid"

    def test_other_components_get_hints_only(self):
        props = render_props(ComponentDecision(component_type="callout", recommended_props={"variant": "info"}), SALES)
        assert props == {"variant": "info"}

    def test_props_are_plain_json(self):
        props = render_props(ComponentDecision(component_type=ComponentType.LIST.value), [Point(1, 2)])
        assert props["items"] == [{"x": 1, "y": 2}]


class TestFormFields:
    def test_configured_fields_prefilled(self):
        configured = [
            FormFieldConfig(name="product", label="Product", required=True),
            FormFieldConfig(name="region", type="select", options=["North", "South"]),
        ]
        fields = form_fields(configured, SALES[0])

        assert [f.name for f in fields] == ["product", "region"]
        assert fields[0].default_value == "Laptop Pro"
        assert fields[1].label == "Region"
        assert fields[1].options == ["North", "South"]

    def test_inferred_from_record(self):
        fields = form_fields(None, {"id": 9, "email": "a@b.io", "amount": 3, "date": "2025-01-01"})
        assert [(f.name, f.type) for f in fields] == [("email", "email"), ("amount", "number"), ("date", "date")]

    def test_free_text_when_nothing_known(self):
        fields = form_fields([], None)
        assert len(fields) == 1
        assert fields[0].type == "textarea"
        assert fields[0].required

    def test_select_needs_options(self):
        with pytest.raises(ValueError):
            FormFieldConfig(name="region", type="select")


class TestKpiCards:
    def test_totals_and_record_count(self):
        cards = kpi_cards([{"name": "a", "totalSales": 1000}, {"name": "b", "totalSales": 234.5}])
        assert [(c.title, c.value) for c in cards] == [("Total Sales", "1,234.50"), ("Records", "2")]

    def test_limit(self):
        cards = kpi_cards(SALES, limit=2)
        assert [c.title for c in cards] == ["Id", "Amount"]

    def test_no_rows(self):
        assert kpi_cards(None) == []
