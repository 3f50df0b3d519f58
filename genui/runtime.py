"""Runtime: bridges HTTP requests to turn execution.

Each entry point is an async generator of ``TurnFrame``s, one per SSE event:

- ``execute_turn``   builds the document itself (analyze → fetch → decide → render)
- ``execute_event``  advances the conversation state machine for a client event
- ``execute_proxy``  streams a chat completion and parses its text
- ``execute_completion_stream`` streams provider-style completion chunks,
  then the parsed document and usage as named events

``complete`` is the non-streaming form of the last one.

Only the last frame of a turn is ``final``; it carries the finished
document and, where the turn changes it, the next conversation state.
Closing the generator early (client disconnect) leaves nothing to persist.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from typing import TYPE_CHECKING, Any

from genui.actions import confirmation_actions, delete_actions, row_click_actions, submit_actions
from genui.analyzer import IntentType
from genui.builder import ResponseBuilder
from genui.components import (
    TEXT_ONLY,
    CalloutProps,
    ComponentType,
    ConfirmationProps,
    FormProps,
    MiniCardBlockProps,
    as_record,
    form_fields,
    humanize,
    is_record,
    kpi_cards,
    render_props,
)
from genui.conversation import (
    ActionCancelled,
    ActionConfirmed,
    ConversationState,
    FormSubmitted,
    InvalidTransitionError,
    awaiting_confirmation,
    awaiting_input,
    transition,
)
from genui.llm import extract_content, model_name
from genui.parser import ResponseParser
from genui.pipeline.graph import build_graph
from genui.pipeline.nodes import DataQuery, fetch_entity_data, route_after_analyze
from genui.pricing import estimate_token_count
from genui.prompts import build_messages
from genui.schemas import (
    ChunkChoice,
    ChunkDelta,
    CompletionChoice,
    CompletionChunk,
    CompletionMessage,
    CompletionResponse,
    completion_id,
    unix_now,
)

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel
    from langchain_core.messages import BaseMessage
    from langchain_core.runnables import Runnable

    from genui.actions import ActionExecutor
    from genui.config import EngineConfig, EntityConfig
    from genui.document import ResponseDocument
    from genui.pricing import TokenCostCalculator, UsageInfo

logger = logging.getLogger(__name__)

FetchData = Callable[[DataQuery], Awaitable[Any]]

ANALYZING = "Analyzing your query..."
FETCHING = "Fetching data..."
GENERATING = "Generating response..."


@dataclass
class TurnFrame:
    """One SSE event: a serialized payload, partial unless ``final``.

    ``event`` names the SSE event type; unnamed frames are plain data.
    """

    payload: str
    final: bool = False
    event: str | None = None
    document: ResponseDocument | None = None
    state: ConversationState | None = None


def _partial(builder: ResponseBuilder) -> TurnFrame:
    return TurnFrame(payload=builder.build_partial())


def _final(builder: ResponseBuilder, state: ConversationState | None) -> TurnFrame:
    payload = builder.build()
    return TurnFrame(payload=payload, final=True, document=builder.snapshot(), state=state)


def _error_frame(builder: ResponseBuilder, message: str) -> TurnFrame:
    builder.complete_last_thinking()
    builder.add_text(f"I encountered an error: {message}")
    builder.add_metadata("error", True)
    return _final(builder, None)


def _new_builder(metadata: dict[str, Any] | None) -> ResponseBuilder:
    builder = ResponseBuilder()
    for key, value in (metadata or {}).items():
        builder.add_metadata(key, value)
    return builder


def _single_record(data: Any) -> dict[str, Any] | None:
    if is_record(data):
        return as_record(data)
    if isinstance(data, list) and len(data) == 1 and is_record(data[0]):
        return as_record(data[0])
    return None


# ---------------------------------------------------------------------------
# Rendering a decided turn
# ---------------------------------------------------------------------------


def _render_form(builder: ResponseBuilder, state: dict, entity: EntityConfig | None) -> ConversationState:
    intent = state["intent"]
    record = _single_record(state.get("data"))
    name = entity.name if entity else None
    endpoint = (entity.endpoint if entity else None) or f"/api/{name or 'submit'}"

    if intent.type == IntentType.UPDATE and record and "id" in record:
        verb, method, endpoint = "Update", "PUT", f"{endpoint}/{record['id']}"
    else:
        verb, method = "Create", "POST"

    props = FormProps(
        title=f"{verb} {humanize(name)}" if name else verb,
        description="Fill in the details below.",
        fields=form_fields(entity.fields if entity else None, record),
        submit_text=verb,
    )
    actions = submit_actions(endpoint, method=method, cancel_message="Cancelled")
    builder.add_text(f"Please provide the details{' for ' + humanize(name) if name else ''}.")
    builder.add_component_with_actions(ComponentType.FORM, props, actions)
    return awaiting_input(name, actions.on_submit)


def _render_delete(builder: ResponseBuilder, record: dict[str, Any], entity: EntityConfig) -> ConversationState:
    label = humanize(entity.name)
    actions = delete_actions(f"{entity.endpoint}/{record['id']}", record["id"], label=label)
    props = ConfirmationProps(
        title=f"Delete {label}",
        message="Are you sure you want to delete this record?",
        confirm_text="Delete",
        variant="danger",
        data=record,
    )
    builder.add_text("Please confirm the deletion.")
    builder.add_component_with_actions(ComponentType.CONFIRMATION, props, actions)
    return awaiting_confirmation(entity.name, actions.on_confirm)


def _render(builder: ResponseBuilder, state: dict, config: EngineConfig) -> ConversationState:
    decision = state["decision"]
    intent = state["intent"]
    data = state.get("data")
    entity = config.get_entity(state["entity"]) if state.get("entity") else None

    if decision.component_type == ComponentType.FORM:
        return _render_form(builder, state, entity)

    if decision.component_type == TEXT_ONLY:
        if entity is not None:
            builder.add_text(f"I couldn't find any {humanize(entity.name)} data for that request.")
        elif config.entities:
            names = ", ".join(humanize(e.name) for e in config.entities)
            builder.add_text(f"I'm not sure which data you mean. I can help with: {names}.")
        else:
            builder.add_text("There is no data to show for that request.")
        return ConversationState()

    record = _single_record(data)
    if intent.type == IntentType.DELETE and entity and entity.endpoint and record and "id" in record:
        return _render_delete(builder, record, entity)

    title = humanize(entity.name) if entity else None
    shape = state["shape"]
    count = shape.record_count
    builder.add_text(f"Here {'is' if count == 1 else 'are'} {count} {title or 'record'} result{'' if count == 1 else 's'}.")

    if intent.type == IntentType.ANALYZE and decision.component_type == ComponentType.CHART:
        cards = kpi_cards(data)
        if cards:
            builder.add_component(ComponentType.MINI_CARD_BLOCK, MiniCardBlockProps(cards=cards))

    props = render_props(decision, data, title=title)
    if decision.component_type == ComponentType.TABLE and entity and entity.detail_endpoint:
        builder.add_component_with_actions(ComponentType.TABLE, props, row_click_actions(entity.detail_endpoint))
    else:
        builder.add_component(decision.component_type, props)
    return ConversationState()


# ---------------------------------------------------------------------------
# Turns
# ---------------------------------------------------------------------------


async def execute_turn(
    utterance: str,
    *,
    config: EngineConfig,
    llm: BaseChatModel | None = None,
    fetch_data: FetchData | None = None,
    metadata: dict[str, Any] | None = None,
) -> AsyncGenerator[TurnFrame, None]:
    """Answer a user message with a document built from fetched data."""
    logger.info(f"Executing turn: {utterance[:80]!r}")
    builder = _new_builder(metadata)
    builder.add_thinking(ANALYZING)
    yield _partial(builder)

    run_config = {
        "configurable": {
            "llm": llm,
            "fetch_data": fetch_data or partial(fetch_entity_data, entities=config.entities),
            "entities": config.entities,
        }
    }
    state: dict[str, Any] = {"utterance": utterance}

    try:
        async for event in build_graph().astream({"utterance": utterance}, run_config, stream_mode="updates"):
            for node_name, update in event.items():
                if not update:
                    continue
                state.update(update)
                match node_name:
                    case "analyze":
                        builder.complete_last_thinking()
                        builder.add_thinking(FETCHING if route_after_analyze(state) == "fetch" else GENERATING)
                        yield _partial(builder)
                    case "fetch" if not state.get("error"):
                        builder.complete_last_thinking()
                        builder.add_thinking(GENERATING)
                        yield _partial(builder)

        if state.get("error"):
            yield _error_frame(builder, state["error"])
            return

        next_state = _render(builder, state, config)
        builder.complete_last_thinking()
        builder.add_metadata("queryType", state["intent"].type.value)
        builder.add_metadata("componentType", state["decision"].component_type)
        builder.add_metadata("modelUsed", model_name(llm) if llm is not None else "keyword")
    except Exception as e:
        logger.error(f"Turn execution error: {e}", exc_info=True)
        yield _error_frame(builder, str(e) or type(e).__name__)
        return

    yield _final(builder, next_state)


async def execute_event(
    event: FormSubmitted | ActionConfirmed | ActionCancelled,
    state: ConversationState,
    *,
    executor: ActionExecutor,
    metadata: dict[str, Any] | None = None,
) -> AsyncGenerator[TurnFrame, None]:
    """Answer a typed client event according to the conversation state."""
    logger.info(f"Executing event '{event.kind}' in phase '{state.phase.value}'")
    builder = _new_builder(metadata)
    builder.add_metadata("event", event.kind)

    try:
        next_state = transition(state, event)
    except InvalidTransitionError as e:
        logger.warning(f"Rejected event: {e}")
        yield _error_frame(builder, str(e))
        return

    try:
        match event:
            case FormSubmitted(data=data):
                pending = next_state.pending_action
                label = humanize(state.entity) if state.entity else "submission"
                builder.add_thinking("Reviewing your submission...", "complete")
                builder.add_text("Please review the details below and confirm.")
                builder.add_component_with_actions(
                    ComponentType.CONFIRMATION,
                    ConfirmationProps(
                        title=f"Confirm {label}",
                        message="Submit these details?",
                        variant="info",
                        data=data,
                    ),
                    confirmation_actions(pending.endpoint, pending.payload, method=pending.method),
                )
            case ActionConfirmed():
                builder.add_thinking("Executing action...")
                yield _partial(builder)
                result = await executor.execute(state.pending_action)
                builder.complete_last_thinking()
                if result.success:
                    props = CalloutProps(variant="success", title="Done", description=result.message)
                else:
                    props = CalloutProps(variant="error", title="Action failed", description=result.error)
                builder.add_component(ComponentType.CALLOUT, props)
                builder.add_metadata("actionResult", result)
            case ActionCancelled():
                builder.add_text("Okay, I've cancelled that.")
    except Exception as e:
        logger.error(f"Event execution error: {e}", exc_info=True)
        yield _error_frame(builder, str(e) or type(e).__name__)
        return

    yield _final(builder, next_state)


# ---------------------------------------------------------------------------
# Parse direction: chat model completions
# ---------------------------------------------------------------------------


class _CompletionStream:
    """Text deltas of one streamed completion, with the usage it reports."""

    def __init__(self, llm: Runnable, prompt: list[BaseMessage]) -> None:
        self._llm = llm
        self._prompt = prompt
        self._parts: list[str] = []
        self.input_tokens = 0
        self.output_tokens = 0
        self.exhausted = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    async def deltas(self) -> AsyncIterator[str]:
        async for chunk in self._llm.astream(self._prompt):
            usage = getattr(chunk, "usage_metadata", None)
            if usage:
                self.input_tokens += usage.get("input_tokens", 0)
                self.output_tokens += usage.get("output_tokens", 0)
            text = extract_content(chunk.content)
            if text:
                self._parts.append(text)
                yield text
        self.exhausted = True

    def usage(self, calculator: TokenCostCalculator, model: str) -> UsageInfo:
        return _usage(calculator, model, self._prompt, self.text, self.input_tokens, self.output_tokens)


def _usage(
    calculator: TokenCostCalculator,
    model: str,
    prompt: list[BaseMessage],
    completion: str,
    input_tokens: int = 0,
    output_tokens: int = 0,
) -> UsageInfo:
    """Provider-reported token counts, estimated where the provider sent none."""
    prompt_tokens = input_tokens or sum(estimate_token_count(extract_content(m.content)) for m in prompt)
    completion_tokens = output_tokens or estimate_token_count(completion)
    return calculator.build_usage(model, prompt_tokens, completion_tokens)


def _bound(llm: BaseChatModel, options: dict[str, Any] | None) -> Runnable:
    return llm.bind(**options) if options else llm


async def execute_proxy(
    messages: list[dict[str, str]],
    *,
    llm: BaseChatModel,
    calculator: TokenCostCalculator,
    parser: ResponseParser | None = None,
    analytics: bool = False,
) -> AsyncGenerator[TurnFrame, None]:
    """Stream a completion for ``messages`` and parse it as it arrives."""
    parser = parser or ResponseParser()
    prompt = build_messages(messages, analytics=analytics)
    model = model_name(llm)
    completion = _CompletionStream(llm, prompt)

    logger.info(f"Proxying {len(messages)} message(s) to {model}")
    try:
        async with aclosing(parser.aparse_streaming(completion.deltas())) as docs:
            async for doc in docs:
                if not completion.exhausted:
                    yield TurnFrame(payload=doc.to_json())
                    continue
                doc.metadata["modelUsed"] = model
                doc.metadata["timestamp"] = datetime.now(timezone.utc).isoformat()
                doc.metadata["usage"] = completion.usage(calculator, model).model_dump(mode="json", by_alias=True)
                yield TurnFrame(payload=doc.to_json(), final=True, document=doc)
    except Exception as e:
        logger.error(f"Proxy completion error: {e}", exc_info=True)
        builder = ResponseBuilder()
        builder.add_metadata("modelUsed", model)
        yield _error_frame(builder, str(e) or type(e).__name__)


async def complete(
    messages: list[dict[str, str]],
    *,
    llm: BaseChatModel,
    calculator: TokenCostCalculator,
    parser: ResponseParser | None = None,
    analytics: bool = False,
    model: str | None = None,
    options: dict[str, Any] | None = None,
) -> CompletionResponse:
    """One non-streaming completion, returned with its parsed document.

    Upstream errors propagate to the caller.
    """
    parser = parser or ResponseParser()
    prompt = build_messages(messages, analytics=analytics)
    served = model_name(llm)

    logger.info(f"Completing {len(messages)} message(s) with {served}")
    message = await _bound(llm, options).ainvoke(prompt)
    content = extract_content(message.content)
    doc = parser.parse(content)

    reported = getattr(message, "usage_metadata", None) or {}
    usage = _usage(
        calculator,
        served,
        prompt,
        content,
        reported.get("input_tokens", 0),
        reported.get("output_tokens", 0),
    )
    return CompletionResponse(
        model=model or served,
        choices=[CompletionChoice(message=CompletionMessage(content=content))],
        usage=usage,
        genui=doc.model_dump(mode="json", by_alias=True) if doc is not None else None,
    )


async def execute_completion_stream(
    messages: list[dict[str, str]],
    *,
    llm: BaseChatModel,
    calculator: TokenCostCalculator,
    parser: ResponseParser | None = None,
    analytics: bool = False,
    model: str | None = None,
    options: dict[str, Any] | None = None,
) -> AsyncGenerator[TurnFrame, None]:
    """Stream a completion as provider-style chunks.

    The raw deltas come first, then a ``stop`` chunk, a ``genui`` event with
    the document parsed from the whole text, and a ``usage`` event. An
    upstream failure ends the stream with an ``error`` event.
    """
    parser = parser or ResponseParser()
    prompt = build_messages(messages, analytics=analytics)
    served = model_name(llm)
    completion = _CompletionStream(_bound(llm, options), prompt)
    chunk_id, created = completion_id(), unix_now()

    def chunk(delta: ChunkDelta, finish_reason: str | None = None) -> TurnFrame:
        body = CompletionChunk(
            id=chunk_id,
            created=created,
            model=model or served,
            choices=[ChunkChoice(delta=delta, finish_reason=finish_reason)],
        )
        return TurnFrame(payload=body.model_dump_json(exclude_none=True))

    logger.info(f"Streaming completion of {len(messages)} message(s) from {served}")
    try:
        async for text in completion.deltas():
            yield chunk(ChunkDelta(content=text))
    except Exception as e:
        logger.error(f"Completion stream error: {e}", exc_info=True)
        yield TurnFrame(payload=json.dumps({"error": str(e) or type(e).__name__}), event="error", final=True)
        return
    yield chunk(ChunkDelta(), "stop")

    doc = parser.parse(completion.text)
    if doc is not None:
        yield TurnFrame(payload=doc.to_json(), event="genui")

    usage = completion.usage(calculator, served)
    logger.info(
        f"Completion finished: {usage.prompt_tokens} prompt + {usage.completion_tokens} completion "
        f"= ${usage.estimated_cost.total_cost:.6f}"
    )
    yield TurnFrame(payload=usage.model_dump_json(by_alias=True), event="usage", final=True, document=doc)
