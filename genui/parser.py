"""Response parser: turns raw (possibly partial) model text into documents.

The model is asked to wrap its answer in ``<genui>…</genui>``. While tokens
are still arriving the payload is usually truncated JSON, so every decode
attempt goes through ``repair_json``, which closes open containers after
cutting back to the last complete element. Malformed input never raises;
it degrades to a fallback document holding the raw text.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from datetime import datetime
from typing import Any

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from genui.document import ResponseDocument, TextBlock, ThinkingStatus, ThinkingStep
from genui.prompts import CLOSE_TAG, OPEN_TAG

logger = logging.getLogger(__name__)

_TAGGED_RE = re.compile(re.escape(OPEN_TAG) + r"(.*?)" + re.escape(CLOSE_TAG), re.DOTALL)
_STRAY_TAG_RE = re.compile(r"</?genui>", re.IGNORECASE)
_FENCE_OPEN_RE = re.compile(r"^```[A-Za-z0-9_-]*\s*")
_FENCE_CLOSE_RE = re.compile(r"\s*```$")

FALLBACK_THINKING = "Processing response..."
FALLBACK_MESSAGE = "I received your request but couldn't format a proper response."

# Repair only cuts at boundaries inside the root object (depth 1) or directly
# inside one of its containers (depth 2), so list elements are all-or-nothing.
_MAX_CUT_DEPTH = 2
_CLOSERS = {"{": "}", "[": "]"}


def strip_fences(text: str) -> str:
    text = text.strip()
    text = _FENCE_OPEN_RE.sub("", text, count=1)
    text = _FENCE_CLOSE_RE.sub("", text, count=1)
    return text.strip()


def extract_payload(text: str) -> str:
    """The JSON candidate inside ``text``.

    Content between the delimiter pair wins; an opened-but-unclosed
    delimiter yields everything after it; otherwise the whole text is the
    candidate. Markdown code fences are removed in every case.
    """
    match = _TAGGED_RE.search(text)
    if match:
        return strip_fences(match.group(1))
    start = text.find(OPEN_TAG)
    if start != -1:
        return strip_fences(text[start + len(OPEN_TAG):])
    return strip_fences(text)


def repair_json(text: str) -> str | None:
    """Close a truncated JSON object, or return None if it can't be done.

    Brackets inside strings are ignored. The text is cut back to the last
    safe boundary (after a complete value, before a dangling comma) and
    the still-open containers are closed in reverse nesting order.
    """
    text = text.strip()
    if not text.startswith("{"):
        return None

    stack: list[str] = []
    in_string = escaped = string_is_key = False
    last_sig = ""
    safe_cut: int | None = None
    safe_stack: list[str] = []

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
                last_sig = '"'
                if not string_is_key and len(stack) <= _MAX_CUT_DEPTH:
                    safe_cut, safe_stack = i + 1, list(stack)
            continue

        if ch.isspace():
            continue

        if ch == '"':
            in_string = True
            string_is_key = bool(stack) and stack[-1] == "{" and last_sig in ("{", ",")
        elif ch in _CLOSERS:
            stack.append(ch)
            if len(stack) <= _MAX_CUT_DEPTH:
                safe_cut, safe_stack = i + 1, list(stack)
        elif ch in ("}", "]"):
            if not stack or _CLOSERS[stack[-1]] != ch:
                return None
            stack.pop()
            if not stack:
                # Complete object followed by trailing garbage.
                return text[: i + 1]
            if len(stack) <= _MAX_CUT_DEPTH:
                safe_cut, safe_stack = i + 1, list(stack)
        elif ch == ",":
            if len(stack) <= _MAX_CUT_DEPTH:
                safe_cut, safe_stack = i, list(stack)
        last_sig = ch

    if not stack or safe_cut is None:
        return None

    closing = "".join(_CLOSERS[c] for c in reversed(safe_stack))
    return text[:safe_cut] + closing


# ---------------------------------------------------------------------------
# Permissive field matching
# ---------------------------------------------------------------------------

_DOC_KEYS = ("thinking", "content", "metadata")
_THINKING_KEYS = ("message", "status", "timestamp")
_BLOCK_KEYS = ("type", "value", "componentType", "props", "actions")
_SLOT_KEYS = ("onConfirm", "onCancel", "onSubmit", "onRowClick", "onClick")
_ACTION_KEYS = ("endpoint", "method", "payload", "confirmMessage", "kind", "message")

_DONE_WORDS = {"complete", "completed", "done", "finished"}
_VERBS = {"GET", "POST", "PUT", "PATCH", "DELETE"}


def _fold(key: str) -> str:
    return key.lower().replace("_", "").replace("-", "")


def _canonical(obj: dict[str, Any], names: tuple[str, ...]) -> dict[str, Any]:
    """Rename keys matching ``names`` case-insensitively; first match wins."""
    lookup = {_fold(n): n for n in names}
    out: dict[str, Any] = {}
    for key, value in obj.items():
        name = lookup.get(_fold(key), key) if isinstance(key, str) else key
        out.setdefault(name, value)
    return out


def _normalize_step(item: Any) -> dict[str, Any] | None:
    if isinstance(item, str):
        return {"message": item, "status": ThinkingStatus.COMPLETE.value}
    if not isinstance(item, dict):
        return None
    step = _canonical(item, _THINKING_KEYS)
    message = step.get("message")
    step["message"] = "" if message is None else str(message)
    status = str(step.get("status") or "").lower()
    step["status"] = ThinkingStatus.COMPLETE.value if status in _DONE_WORDS else ThinkingStatus.ACTIVE.value
    if not _is_timestamp(step.get("timestamp")):
        step.pop("timestamp", None)
    return step


def _is_timestamp(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    try:
        datetime.fromisoformat(value)
    except ValueError:
        return False
    return True


def _normalize_action(slot: Any) -> dict[str, Any] | None:
    if not isinstance(slot, dict):
        return None
    action = _canonical(slot, _ACTION_KEYS)
    if str(action.get("kind", "")).lower() == "dismiss":
        return {"kind": "dismiss", "message": action.get("message")}
    if not isinstance(action.get("endpoint"), str):
        return None
    method = str(action.get("method") or "POST").upper()
    if method not in _VERBS:
        return None
    action["method"] = method
    return action


def _normalize_block(item: Any) -> dict[str, Any] | None:
    if isinstance(item, str):
        return {"type": "text", "value": item}
    if not isinstance(item, dict):
        return None
    block = _canonical(item, _BLOCK_KEYS)
    kind = str(block.get("type") or "").lower()
    if kind not in ("text", "component"):
        kind = "component" if block.get("componentType") else "text"
    block["type"] = kind

    if kind == "text":
        value = block.get("value")
        block["value"] = "" if value is None else value if isinstance(value, str) else json.dumps(value)
        return block

    block["componentType"] = str(block.get("componentType") or "")
    if block.get("props") is None:
        block["props"] = {}
    actions = block.get("actions")
    if isinstance(actions, dict):
        slots = _canonical(actions, _SLOT_KEYS)
        cleaned = {k: _normalize_action(v) for k, v in slots.items() if k in _SLOT_KEYS}
        cleaned = {k: v for k, v in cleaned.items() if v is not None}
        block["actions"] = cleaned or None
    else:
        block["actions"] = None
    return block


def _normalize_document(raw: dict[str, Any]) -> dict[str, Any]:
    doc = _canonical(raw, _DOC_KEYS)
    thinking = doc.get("thinking")
    content = doc.get("content")
    metadata = doc.get("metadata")
    return {
        "thinking": [s for s in map(_normalize_step, thinking if isinstance(thinking, list) else []) if s],
        "content": [b for b in map(_normalize_block, content if isinstance(content, list) else []) if b],
        "metadata": metadata if isinstance(metadata, dict) else {},
    }


def _to_document(candidate: str | None) -> ResponseDocument | None:
    if candidate is None:
        return None
    try:
        raw = json.loads(candidate)
    except (ValueError, RecursionError):
        return None
    if not isinstance(raw, dict):
        return None
    try:
        doc = ResponseDocument.model_validate(_normalize_document(raw))
    except (ValidationError, RecursionError) as e:
        logger.debug(f"Payload decoded but did not validate: {e}")
        return None
    # Validation accepts nesting deeper than the serializer can write.
    try:
        doc.to_json()
    except PydanticSerializationError as e:
        logger.debug(f"Payload validated but cannot be serialized: {e}")
        return None
    return doc


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class StreamingParse:
    """Incremental parse of one response; ``feed`` deltas, then ``finish``."""

    def __init__(self, parser: ResponseParser) -> None:
        self._parser = parser
        self._parts: list[str] = []
        self._last_candidate: str | None = None
        self._last_size = (0, 0)

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def feed(self, chunk: str) -> ResponseDocument | None:
        self._parts.append(chunk)
        text = self.text

        start = text.find(OPEN_TAG)
        if start == -1:
            return None
        end = text.find(CLOSE_TAG, start)
        payload = strip_fences(text[start + len(OPEN_TAG): end if end != -1 else None])
        if not payload.startswith("{") or payload == self._last_candidate:
            return None

        doc = self._parser.decode(payload)
        if doc is None:
            return None

        size = (len(doc.thinking), len(doc.content))
        if size[0] < self._last_size[0] or size[1] < self._last_size[1]:
            logger.debug(f"Skipping shorter partial document {size} < {self._last_size}")
            return None

        self._last_candidate = payload
        self._last_size = size
        return doc

    def finish(self) -> ResponseDocument:
        text = self.text
        final = self._parser.parse(text)
        return final if final is not None else self._parser.fallback(text)


class ResponseParser:
    """Extracts ``ResponseDocument``s from model output."""

    def decode(self, candidate: str) -> ResponseDocument | None:
        """Strict decode, then repaired decode, of a JSON candidate."""
        doc = _to_document(candidate)
        if doc is not None:
            return doc
        return _to_document(repair_json(candidate))

    def parse(self, text: str) -> ResponseDocument | None:
        """Parse complete or partial model text.

        Returns None for empty input, a fallback document when the text
        cannot be decoded, and never raises.
        """
        if not text or not text.strip():
            logger.warning("Empty LLM response received")
            return None

        candidate = extract_payload(text)
        logger.debug(f"Extracted candidate payload: {len(candidate)} chars")

        doc = self.decode(candidate)
        if doc is None:
            logger.warning("Failed to parse LLM response as JSON, using fallback document")
            return self.fallback(text)

        logger.info(
            f"Parsed UI response: thinking={len(doc.thinking)}, content={len(doc.content)}"
        )
        return doc

    def fallback(self, text: str | None) -> ResponseDocument:
        """Wrap raw text as a single text block, stray tags removed."""
        clean = _STRAY_TAG_RE.sub("", text or "").strip() or FALLBACK_MESSAGE
        return ResponseDocument(
            thinking=[ThinkingStep(message=FALLBACK_THINKING, status=ThinkingStatus.COMPLETE)],
            content=[TextBlock(value=clean)],
            metadata={"fallback": True},
        )

    def stream(self) -> StreamingParse:
        return StreamingParse(self)

    def parse_streaming(self, chunks: Iterable[str]) -> Iterator[ResponseDocument]:
        """Yield documents as the delimited payload grows.

        A document is yielded whenever the payload changed and repairs into
        a document no shorter than the previous one. After the input ends,
        a parse of the full text is always yielded last.
        """
        state = StreamingParse(self)
        for chunk in chunks:
            doc = state.feed(chunk)
            if doc is not None:
                yield doc
        yield state.finish()

    async def aparse_streaming(self, chunks: AsyncIterable[str]) -> AsyncIterator[ResponseDocument]:
        """``parse_streaming`` over an async source of text deltas."""
        state = StreamingParse(self)
        async for chunk in chunks:
            doc = state.feed(chunk)
            if doc is not None:
                yield doc
        yield state.finish()
