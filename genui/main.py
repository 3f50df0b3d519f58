"""GenUI engine: FastAPI app streaming generative-UI documents.

Loads config.yaml on startup. Thread endpoints stream turns and
state-machine events as Server-Sent Events. The proxy endpoint streams a
parsed chat completion, and /v1/chat/completions serves the same in
OpenAI-compatible form. The dispatch endpoint executes embedded actions.
A scheduler prunes idle conversations.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import aclosing, asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from langchain_core.language_models import BaseChatModel

from genui.actions import ActionExecutor, ActionResult
from genui.config import get_config, load_config, reload_config
from genui.conversation import Conversation, InMemoryConversationStore, Turn
from genui.llm import get_llm
from genui.pricing import TokenCostCalculator
from genui.runtime import (
    FetchData,
    TurnFrame,
    complete,
    execute_completion_stream,
    execute_event,
    execute_proxy,
    execute_turn,
)
from genui.scheduler import setup_scheduler
from genui.schemas import (
    ActionDispatchRequest,
    ChatRequest,
    CompletionError,
    CompletionErrorResponse,
    CompletionRequest,
    ProxyRequest,
    ThreadCreateRequest,
    ThreadSummary,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DONE_SENTINEL = "data: [DONE]\n\n"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the retention scheduler on startup."""
    config = get_config()
    scheduler = setup_scheduler(config.retention, app.state.store)
    scheduler.start()
    app.state.scheduler = scheduler
    logger.info(
        f"GenUI engine started (origins={config.allowed_origins}, "
        f"auth={'enabled' if config.api_key else 'disabled'}, "
        f"model={config.llm.model}, entities={len(config.entities)})"
    )
    yield
    scheduler.shutdown()
    logger.info("GenUI engine shutting down")


# Load config early so we can read allowed_origins for CORS middleware.
_boot_config = load_config()

app = FastAPI(title="GenUI Engine", version="0.1.0", lifespan=lifespan)
app.state.store = InMemoryConversationStore()

app.add_middleware(
    CORSMiddleware,
    allow_origins=_boot_config.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Thread-Id"],
)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


async def verify_api_key(request: Request) -> None:
    """Validate X-API-Key header against the configured key.
    If no api_key is set in config, auth is disabled (dev mode).
    """
    config = get_config()
    if not config.api_key:
        return

    key = request.headers.get("X-API-Key")
    if key != config.api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


def get_store(request: Request) -> InMemoryConversationStore:
    return request.app.state.store


def get_chat_model() -> BaseChatModel | None:
    """Configured chat model, or None when credentials are missing."""
    try:
        return get_llm(get_config().llm)
    except RuntimeError as e:
        logger.warning(f"Chat model unavailable: {e}")
        return None


def get_fetcher() -> FetchData | None:
    """Data-fetch collaborator; None selects the configured entity tools."""
    return None


def get_executor() -> ActionExecutor:
    actions = get_config().actions
    return ActionExecutor(base_url=actions.base_url, timeout=actions.timeout)


# ---------------------------------------------------------------------------
# SSE helpers
# ---------------------------------------------------------------------------


def _sse(
    frames: AsyncGenerator[TurnFrame, None],
    on_final: Callable[[TurnFrame], None] | None = None,
    headers: dict[str, str] | None = None,
) -> StreamingResponse:
    async def stream():
        async with aclosing(frames):
            async for frame in frames:
                if frame.final and on_final is not None:
                    on_final(frame)
                prefix = f"event: {frame.event}\n" if frame.event else ""
                yield f"{prefix}data: {frame.payload}\n\n"
        yield DONE_SENTINEL

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
            **(headers or {}),
        },
    )


def _summary(conversation: Conversation) -> ThreadSummary:
    return ThreadSummary(
        thread_id=conversation.id,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
        turn_count=len(conversation.turns),
        state=conversation.state,
    )


def _require_thread(store: InMemoryConversationStore, thread_id: str) -> Conversation:
    conversation = store.get(thread_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail=f"Thread '{thread_id}' not found")
    return conversation


# ---------------------------------------------------------------------------
# Thread endpoints
# ---------------------------------------------------------------------------


@app.post("/api/thread", dependencies=[Depends(verify_api_key)])
async def create_thread(
    request: ThreadCreateRequest | None = None,
    store: InMemoryConversationStore = Depends(get_store),
):
    thread_id = request.thread_id if request else None
    if thread_id and store.get(thread_id) is not None:
        raise HTTPException(status_code=409, detail=f"Thread '{thread_id}' already exists")
    conversation = store.create(thread_id)
    return _summary(conversation).model_dump(mode="json", by_alias=True)


@app.get("/api/threads", dependencies=[Depends(verify_api_key)])
async def list_threads(store: InMemoryConversationStore = Depends(get_store)):
    return [_summary(c).model_dump(mode="json", by_alias=True) for c in store.list()]


@app.get("/api/thread/{thread_id}", dependencies=[Depends(verify_api_key)])
async def get_thread(thread_id: str, store: InMemoryConversationStore = Depends(get_store)):
    conversation = _require_thread(store, thread_id)
    return conversation.model_dump(mode="json", by_alias=True, exclude_none=True)


@app.delete("/api/thread/{thread_id}", dependencies=[Depends(verify_api_key)])
async def delete_thread(thread_id: str, store: InMemoryConversationStore = Depends(get_store)):
    if not store.delete(thread_id):
        raise HTTPException(status_code=404, detail=f"Thread '{thread_id}' not found")
    return {"status": "deleted", "threadId": thread_id}


@app.post("/api/chat/thread", dependencies=[Depends(verify_api_key)])
async def chat_thread(
    request: ChatRequest,
    store: InMemoryConversationStore = Depends(get_store),
    llm: BaseChatModel | None = Depends(get_chat_model),
    fetch_data: FetchData | None = Depends(get_fetcher),
    executor: ActionExecutor = Depends(get_executor),
):
    """Stream one turn on a thread as Server-Sent Events.

    The thread is only written once the final document is built; a turn
    aborted by the client leaves the thread untouched.
    """
    config = get_config()
    if request.thread_id:
        conversation = _require_thread(store, request.thread_id)
    else:
        conversation = store.create()
    thread_id = conversation.id
    metadata = {"threadId": thread_id}

    if request.event is not None:
        user_turn = Turn(role="user", text=f"[{request.event.kind}]")
        frames = execute_event(request.event, conversation.state, executor=executor, metadata=metadata)
    else:
        user_turn = Turn(role="user", text=request.message)
        frames = execute_turn(
            request.message,
            config=config,
            llm=llm,
            fetch_data=fetch_data,
            metadata=metadata,
        )

    def persist(frame: TurnFrame) -> None:
        try:
            store.append(thread_id, user_turn, Turn(role="assistant", document=frame.document))
            if frame.state is not None:
                store.set_state(thread_id, frame.state)
        except ValueError as e:
            logger.warning(f"Thread '{thread_id}' not persisted: {e}")

    return _sse(frames, persist, headers={"X-Thread-Id": thread_id})


# ---------------------------------------------------------------------------
# Proxy & actions
# ---------------------------------------------------------------------------


@app.post("/api/proxy/chat", dependencies=[Depends(verify_api_key)])
async def proxy_chat(request: ProxyRequest, llm: BaseChatModel | None = Depends(get_chat_model)):
    """Stream a chat completion parsed into documents."""
    if llm is None:
        raise HTTPException(status_code=503, detail="No chat model configured (ANTHROPIC_API_KEY is not set)")

    config = get_config()
    frames = execute_proxy(
        [m.model_dump() for m in request.messages],
        llm=llm,
        calculator=TokenCostCalculator(config.pricing),
        analytics=config.llm.analytics_prompt,
    )
    return _sse(frames)


def _completion_error(status_code: int, message: str, *, error_type: str, code: str) -> JSONResponse:
    body = CompletionErrorResponse(error=CompletionError(message=message, type=error_type, code=code))
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@app.post("/v1/chat/completions", dependencies=[Depends(verify_api_key)])
async def chat_completions(request: CompletionRequest, llm: BaseChatModel | None = Depends(get_chat_model)):
    """OpenAI-compatible chat completion with the parsed document in ``genui``.

    With ``stream: true`` the response is SSE: completion chunks, then a
    ``genui`` event, a ``usage`` event and ``[DONE]``.
    """
    if llm is None:
        return _completion_error(
            400,
            "No chat model configured (ANTHROPIC_API_KEY is not set)",
            error_type="invalid_request_error",
            code="missing_api_key",
        )

    config = get_config()
    messages = [m.model_dump() for m in request.messages]
    params = dict(
        llm=llm,
        calculator=TokenCostCalculator(config.pricing),
        analytics=config.llm.analytics_prompt,
        model=request.model,
        options=request.sampling_options(),
    )
    if request.stream:
        return _sse(execute_completion_stream(messages, **params))

    try:
        response = await complete(messages, **params)
    except Exception as e:
        logger.error(f"Chat completion failed: {e}", exc_info=True)
        return _completion_error(
            502, f"Upstream completion failed: {e}", error_type="server_error", code="upstream_error"
        )
    return response.model_dump(mode="json")


@app.post("/api/actions/dispatch", response_model=ActionResult, dependencies=[Depends(verify_api_key)])
async def dispatch_action(request: ActionDispatchRequest, executor: ActionExecutor = Depends(get_executor)):
    """Execute an embedded component action."""
    return await executor.execute(request.action)


# ---------------------------------------------------------------------------
# Operational endpoints
# ---------------------------------------------------------------------------


@app.get("/health")
async def health(store: InMemoryConversationStore = Depends(get_store)):
    """Liveness check."""
    config = get_config()
    return {
        "status": "healthy",
        "entities": len(config.entities),
        "threads": len(store),
    }


@app.get("/config")
async def get_current_config():
    """Return current config as JSON, without the API key."""
    config = get_config()
    return config.model_dump(exclude={"api_key"})


@app.post("/reload", dependencies=[Depends(verify_api_key)])
async def reload(request: Request):
    """Hot-reload config.yaml without container restart.

    Stops the current scheduler, reloads config and starts a new scheduler.
    """
    try:
        new_config = reload_config()

        scheduler = getattr(request.app.state, "scheduler", None)
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        new_scheduler = setup_scheduler(new_config.retention, request.app.state.store)
        new_scheduler.start()
        request.app.state.scheduler = new_scheduler

        return {
            "status": "reloaded",
            "entities": len(new_config.entities),
        }
    except Exception as e:
        logger.error(f"Reload failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Reload failed: {e}")
