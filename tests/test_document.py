import json

from genui.document import (
    ComponentAction,
    ComponentActions,
    ComponentBlock,
    DismissAction,
    ResponseDocument,
    TextBlock,
    ThinkingStatus,
    ThinkingStep,
)


class TestSerialization:
    def test_camel_case_and_unset_optionals_omitted(self):
        doc = ResponseDocument(
            thinking=[ThinkingStep(message="Looking", status=ThinkingStatus.COMPLETE)],
            content=[
                TextBlock(value="hi"),
                ComponentBlock(component_type="card", props={"title": "A"}),
            ],
        )
        data = json.loads(doc.to_json())

        assert data["thinking"] == [{"message": "Looking", "status": "complete"}]
        assert data["content"][0] == {"type": "text", "value": "hi"}
        assert data["content"][1] == {"type": "component", "componentType": "card", "props": {"title": "A"}}
        assert data["metadata"] == {}

    def test_only_populated_action_slots_serialize(self):
        block = ComponentBlock(
            component_type="confirmation",
            actions=ComponentActions(
                on_confirm=ComponentAction(endpoint="/api/items/1", method="DELETE", payload={"id": 1}),
                on_cancel=DismissAction(),
            ),
        )
        data = json.loads(ResponseDocument(content=[block]).to_json())

        assert data["content"][0]["actions"] == {
            "onConfirm": {"endpoint": "/api/items/1", "method": "DELETE", "payload": {"id": 1}},
            "onCancel": {"kind": "dismiss"},
        }

    def test_compact_output(self):
        assert ": " not in ResponseDocument(content=[TextBlock(value="x")]).to_json()


class TestValidation:
    def test_content_blocks_discriminated_on_type(self):
        doc = ResponseDocument.model_validate(
            {
                "content": [
                    {"type": "text", "value": "a"},
                    {"type": "component", "componentType": "list", "props": {"items": []}},
                ]
            }
        )
        assert isinstance(doc.content[0], TextBlock)
        assert isinstance(doc.content[1], ComponentBlock)
        assert doc.content[1].component_type == "list"

    def test_action_slots_pick_dismiss_or_call(self):
        actions = ComponentActions.model_validate(
            {"onSubmit": {"endpoint": "/api/sales"}, "onCancel": {"kind": "Dismiss", "message": "bye"}}
        )
        assert isinstance(actions.on_submit, ComponentAction)
        assert actions.on_submit.method == "POST"
        assert isinstance(actions.on_cancel, DismissAction)
        assert actions.on_cancel.message == "bye"

    def test_method_and_status_are_case_insensitive(self):
        assert ComponentAction(endpoint="/x", method="patch").method == "PATCH"
        assert ThinkingStep(message="m", status="COMPLETE").status == ThinkingStatus.COMPLETE

    def test_empty_actions(self):
        assert ComponentActions().is_empty()
        assert not ComponentActions(on_click=ComponentAction(endpoint="/x")).is_empty()

    def test_fallback_flag(self):
        assert ResponseDocument(metadata={"fallback": True}).is_fallback
        assert not ResponseDocument().is_fallback
