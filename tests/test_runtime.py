import json

import httpx
import pytest
from langchain_core.language_models import FakeListChatModel

from genui.actions import ActionExecutor
from genui.config import get_config
from genui.conversation import (
    IDLE,
    ActionCancelled,
    ActionConfirmed,
    ConversationPhase,
    FormSubmitted,
    awaiting_confirmation,
    awaiting_input,
)
from genui.document import ComponentAction, ResponseDocument
from genui.pricing import TokenCostCalculator
from genui.runtime import (
    ANALYZING,
    FETCHING,
    GENERATING,
    complete,
    execute_completion_stream,
    execute_event,
    execute_proxy,
    execute_turn,
)

TOP_FIVE = [
    {"name": "Alice Johnson", "region": "North", "totalSales": 182000},
    {"name": "Bob Smith", "region": "South", "totalSales": 164500},
    {"name": "Carla Gomez", "region": "West", "totalSales": 151250},
    {"name": "Dan Okafor", "region": "East", "totalSales": 139900},
    {"name": "Eve Tanaka", "region": "North", "totalSales": 121300},
]

COMPLETION = (
    "<genui>"
    '{"thinking":[{"message":"Looking at sales","status":"complete"}],'
    '"content":[{"type":"text","value":"Alice leads."},'
    '{"type":"component","componentType":"card","props":{"title":"Alice Johnson"}}]}'
    "</genui>"
)


async def _collect(frames):
    return [frame async for frame in frames]


def _documents(frames):
    return [ResponseDocument.model_validate_json(f.payload) for f in frames]


class BrokenModel:
    async def astream(self, prompt):
        raise RuntimeError("upstream unavailable")
        yield  # pragma: no cover


class TestExecuteTurn:
    @pytest.mark.asyncio
    async def test_top_salespeople_is_a_bar_chart(self, static_fetcher):
        fetch = static_fetcher(TOP_FIVE)
        frames = await _collect(
            execute_turn("Show me the top 5 salespeople", config=get_config(), fetch_data=fetch)
        )

        assert [f.final for f in frames] == [False] * (len(frames) - 1) + [True]
        doc = frames[-1].document
        components = [b for b in doc.content if b.type == "component"]
        assert [b.component_type for b in components] == ["miniCardBlock", "chart"]
        assert components[1].props["type"] == "bar"
        assert components[1].props["yAxis"] == "totalSales"

        assert [s.message for s in doc.thinking] == [ANALYZING, FETCHING, GENERATING]
        assert all(s.status.value == "complete" for s in doc.thinking)
        assert doc.metadata["queryType"] == "Analyze"
        assert doc.metadata["componentType"] == "chart"
        assert doc.metadata["modelUsed"] == "keyword"

        assert fetch.queries[0].entity == "salesperson_performance"
        assert fetch.queries[0].limit == 5
        assert frames[-1].state == IDLE

    @pytest.mark.asyncio
    async def test_partial_frames_are_valid_prefixes(self, static_fetcher):
        frames = await _collect(
            execute_turn("Show me the top 5 salespeople", config=get_config(), fetch_data=static_fetcher(TOP_FIVE))
        )
        docs = _documents(frames)
        assert len(docs) >= 3
        for earlier, later in zip(docs, docs[1:]):
            assert len(later.thinking) >= len(earlier.thinking)
            assert later.content[: len(earlier.content)] == earlier.content
        assert "version" not in docs[0].metadata
        assert docs[-1].metadata["version"] == "1.0"

    @pytest.mark.asyncio
    async def test_new_sale_renders_a_form(self, static_fetcher):
        fetch = static_fetcher(None)
        frames = await _collect(execute_turn("Add a new sale", config=get_config(), fetch_data=fetch))

        final = frames[-1]
        form = final.document.content[-1]
        assert form.component_type == "form"
        assert [f["name"] for f in form.props["fields"]] == ["product", "amount", "region", "date", "salespersonEmail"]
        assert form.actions.on_submit.endpoint == "/api/sales"
        assert form.actions.on_submit.method == "POST"
        assert form.actions.on_cancel.kind == "dismiss"

        assert final.state.phase == ConversationPhase.AWAITING_INPUT
        assert final.state.entity == "sales"
        assert fetch.queries == []
        assert [s.message for s in final.document.thinking] == [ANALYZING, GENERATING]

    @pytest.mark.asyncio
    async def test_fetch_failure_is_an_error_document(self):
        async def failing(query):
            raise ConnectionError("sales database unreachable")

        frames = await _collect(execute_turn("show me people", config=get_config(), fetch_data=failing))

        final = frames[-1]
        assert final.final
        assert final.state is None
        assert final.document.metadata["error"] is True
        assert final.document.content[-1].value == "I encountered an error: sales database unreachable"
        assert all(s.status.value == "complete" for s in final.document.thinking)

    @pytest.mark.asyncio
    async def test_unmatched_request_is_text_only(self, static_fetcher):
        fetch = static_fetcher([{"id": 1}])
        frames = await _collect(execute_turn("hello there", config=get_config(), fetch_data=fetch))

        doc = frames[-1].document
        assert [b.type for b in doc.content] == ["text"]
        assert doc.content[0].value.startswith("I'm not sure which data you mean")
        assert doc.metadata["componentType"] == "text"
        assert fetch.queries == []

    @pytest.mark.asyncio
    async def test_each_turn_returns_its_own_idle_state(self, static_fetcher):
        first = (await _collect(execute_turn("hello there", config=get_config(), fetch_data=static_fetcher([]))))[-1]
        second = (await _collect(execute_turn("hello there", config=get_config(), fetch_data=static_fetcher([]))))[-1]

        assert first.state == second.state == IDLE
        assert first.state is not IDLE
        assert first.state is not second.state

    @pytest.mark.asyncio
    async def test_empty_result_is_text_only(self, static_fetcher):
        frames = await _collect(execute_turn("show me people", config=get_config(), fetch_data=static_fetcher([])))
        doc = frames[-1].document
        assert doc.content[0].value == "I couldn't find any People data for that request."

    @pytest.mark.asyncio
    async def test_people_list_from_configured_dataset(self):
        frames = await _collect(execute_turn("show me people", config=get_config()))

        doc = frames[-1].document
        block = doc.content[-1]
        assert block.component_type == "list"
        assert block.props["layout"] == "grid"
        assert [item["firstName"] for item in block.props["items"]] == ["Alice", "Bob", "Carla"]
        assert doc.content[0].value == "Here are 3 People results."

    @pytest.mark.asyncio
    async def test_delete_single_record_asks_for_confirmation(self, static_fetcher):
        person = {"id": 2, "firstName": "Bob", "lastName": "Smith", "email": "bob@example.com"}
        frames = await _collect(
            execute_turn("delete that person", config=get_config(), fetch_data=static_fetcher([person]))
        )

        final = frames[-1]
        block = final.document.content[-1]
        assert block.component_type == "confirmation"
        assert block.props["variant"] == "danger"
        assert block.actions.on_confirm.endpoint == "/api/people/2"
        assert block.actions.on_confirm.method == "DELETE"
        assert block.actions.on_confirm.payload == {"id": 2}
        assert final.state.phase == ConversationPhase.AWAITING_CONFIRMATION
        assert final.state.pending_action == block.actions.on_confirm

    @pytest.mark.asyncio
    async def test_model_intent_is_used(self, static_fetcher):
        llm = FakeListChatModel(
            responses=['{"intentType": "View", "requiresInput": false, "parameters": {"entity": "people"}}']
        )
        fetch = static_fetcher([{"id": 1, "firstName": "Alice"}, {"id": 2, "firstName": "Bob"}])
        frames = await _collect(execute_turn("who works here?", config=get_config(), llm=llm, fetch_data=fetch))

        doc = frames[-1].document
        assert fetch.queries[0].entity == "people"
        assert doc.metadata["queryType"] == "View"
        assert doc.metadata["modelUsed"] == "FakeListChatModel"

    @pytest.mark.asyncio
    async def test_caller_metadata_is_kept(self, static_fetcher):
        frames = await _collect(
            execute_turn("hello", config=get_config(), fetch_data=static_fetcher(None), metadata={"threadId": "t-1"})
        )
        assert all(json.loads(f.payload)["metadata"]["threadId"] == "t-1" for f in frames)


@pytest.fixture
def sales_api():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(201, json={"success": True, "message": "Sale recorded", "data": {"id": 6}})

    executor = ActionExecutor(base_url="http://api.test", transport=httpx.MockTransport(handler))
    return executor, requests


SUBMIT = ComponentAction(endpoint="/api/sales", method="POST")
SALE = {"product": "Laptop Pro", "amount": 2400, "region": "North"}


class TestExecuteEvent:
    @pytest.mark.asyncio
    async def test_form_submission_shows_confirmation(self, sales_api):
        executor, requests = sales_api
        frames = await _collect(
            execute_event(FormSubmitted(data=SALE), awaiting_input("sales", SUBMIT), executor=executor)
        )

        final = frames[-1]
        block = final.document.content[-1]
        assert block.component_type == "confirmation"
        assert block.props["data"] == SALE
        assert block.actions.on_confirm.payload == SALE
        assert block.actions.on_confirm.endpoint == "/api/sales"
        assert final.state.phase == ConversationPhase.AWAITING_CONFIRMATION
        assert final.document.metadata["event"] == "formSubmitted"
        assert requests == []

    @pytest.mark.asyncio
    async def test_confirmation_executes_pending_action(self, sales_api):
        executor, requests = sales_api
        pending = SUBMIT.model_copy(update={"payload": SALE})
        frames = await _collect(
            execute_event(ActionConfirmed(), awaiting_confirmation("sales", pending), executor=executor)
        )

        assert len(frames) == 2
        final = frames[-1]
        callout = final.document.content[-1]
        assert callout.component_type == "callout"
        assert callout.props["variant"] == "success"
        assert callout.props["description"] == "Sale recorded"
        assert final.document.metadata["actionResult"]["success"] is True
        assert final.state == IDLE
        assert json.loads(requests[0].content) == SALE

    @pytest.mark.asyncio
    async def test_failed_action_is_reported(self):
        executor = ActionExecutor(
            base_url="http://api.test",
            transport=httpx.MockTransport(lambda r: httpx.Response(500, text="boom")),
        )
        frames = await _collect(
            execute_event(ActionConfirmed(), awaiting_confirmation("sales", SUBMIT), executor=executor)
        )
        callout = frames[-1].document.content[-1]
        assert callout.props["variant"] == "error"
        assert callout.props["description"] == "HTTP 500: boom"

    @pytest.mark.asyncio
    async def test_cancel(self, sales_api):
        executor, _ = sales_api
        frames = await _collect(execute_event(ActionCancelled(), awaiting_input("sales", SUBMIT), executor=executor))
        assert frames[-1].document.content[0].value == "Okay, I've cancelled that."
        assert frames[-1].state == IDLE

    @pytest.mark.asyncio
    async def test_event_in_wrong_phase(self, sales_api):
        executor, requests = sales_api
        frames = await _collect(execute_event(ActionConfirmed(), IDLE, executor=executor))

        assert len(frames) == 1
        final = frames[0]
        assert final.final
        assert final.state is None
        assert final.document.metadata["error"] is True
        assert requests == []


class TestExecuteProxy:
    @pytest.mark.asyncio
    async def test_streams_parsed_documents(self):
        llm = FakeListChatModel(responses=[COMPLETION])
        frames = await _collect(
            execute_proxy(
                [{"role": "user", "content": "Who sold the most?"}],
                llm=llm,
                calculator=TokenCostCalculator(get_config().pricing),
            )
        )

        assert len(frames) > 1
        final = frames[-1]
        assert final.final
        doc = final.document
        assert [b.type for b in doc.content] == ["text", "component"]
        assert doc.metadata["modelUsed"] == "FakeListChatModel"
        usage = doc.metadata["usage"]
        assert usage["promptTokens"] > 0
        assert usage["completionTokens"] == -(-len(COMPLETION) // 4)
        assert usage["estimatedCost"]["currency"] == "USD"

    @pytest.mark.asyncio
    async def test_prose_completion_falls_back(self):
        llm = FakeListChatModel(responses=["Alice sold the most."])
        frames = await _collect(
            execute_proxy([{"role": "user", "content": "hi"}], llm=llm, calculator=TokenCostCalculator(get_config().pricing))
        )
        assert len(frames) == 1
        assert frames[0].document.is_fallback
        assert frames[0].document.content[0].value == "Alice sold the most."

    @pytest.mark.asyncio
    async def test_model_failure_is_an_error_document(self):
        frames = await _collect(
            execute_proxy(
                [{"role": "user", "content": "hi"}],
                llm=BrokenModel(),
                calculator=TokenCostCalculator(get_config().pricing),
            )
        )
        doc = json.loads(frames[-1].payload)
        assert doc["metadata"]["error"] is True
        assert doc["content"][0]["value"] == "I encountered an error: upstream unavailable"


class FailingModel:
    async def ainvoke(self, prompt):
        raise RuntimeError("upstream unavailable")


class TestCompletions:
    @pytest.mark.asyncio
    async def test_single_completion_carries_parsed_document(self):
        llm = FakeListChatModel(responses=[COMPLETION])
        response = await complete(
            [{"role": "user", "content": "Who sold the most?"}],
            llm=llm,
            calculator=TokenCostCalculator(get_config().pricing),
            model="gpt-4o-mini",
        )

        assert response.model == "gpt-4o-mini"
        assert response.id.startswith("chatcmpl-")
        assert response.choices[0].message.content == COMPLETION
        assert response.choices[0].finish_reason == "stop"
        assert [b["type"] for b in response.genui["content"]] == ["text", "component"]
        assert response.usage.completion_tokens == -(-len(COMPLETION) // 4)
        assert response.usage.estimated_cost.currency == "USD"

    @pytest.mark.asyncio
    async def test_single_completion_errors_propagate(self):
        with pytest.raises(RuntimeError, match="upstream unavailable"):
            await complete(
                [{"role": "user", "content": "hi"}],
                llm=FailingModel(),
                calculator=TokenCostCalculator(get_config().pricing),
            )

    @pytest.mark.asyncio
    async def test_stream_sends_chunks_then_document_then_usage(self):
        llm = FakeListChatModel(responses=[COMPLETION])
        frames = await _collect(
            execute_completion_stream(
                [{"role": "user", "content": "Who sold the most?"}],
                llm=llm,
                calculator=TokenCostCalculator(get_config().pricing),
            )
        )

        chunks = [json.loads(f.payload) for f in frames if f.event is None]
        assert "".join(c["choices"][0]["delta"].get("content", "") for c in chunks) == COMPLETION
        assert chunks[-1]["choices"][0] == {"index": 0, "delta": {}, "finish_reason": "stop"}
        assert {c["id"] for c in chunks} == {chunks[0]["id"]}
        assert all(c["object"] == "chat.completion.chunk" for c in chunks)
        assert all(c["model"] == "FakeListChatModel" for c in chunks)

        named = [f for f in frames if f.event is not None]
        assert [f.event for f in named] == ["genui", "usage"]
        assert ResponseDocument.model_validate_json(named[0].payload).content[0].value == "Alice leads."
        assert json.loads(named[1].payload)["totalTokens"] > 0
        assert named[1].final
        assert not any(f.final for f in frames[:-1])

    @pytest.mark.asyncio
    async def test_stream_failure_is_an_error_event(self):
        frames = await _collect(
            execute_completion_stream(
                [{"role": "user", "content": "hi"}],
                llm=BrokenModel(),
                calculator=TokenCostCalculator(get_config().pricing),
            )
        )
        assert [(f.event, json.loads(f.payload)) for f in frames] == [("error", {"error": "upstream unavailable"})]
