"""LLM factory and message-content helpers shared by the analyzer and runtime."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

from langchain_anthropic import ChatAnthropic

if TYPE_CHECKING:
    from genui.config import LLMConfig

logger = logging.getLogger(__name__)


def extract_content(content: Any) -> str:
    """Flatten message content; Anthropic may return a list of blocks or a string."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        # Extract text from content blocks: [{"type": "text", "text": "..."}]
        parts = []
        for block in content:
            if isinstance(block, dict):
                if block.get("type", "text") == "text":
                    parts.append(block.get("text", ""))
            else:
                parts.append(str(block))
        return "".join(parts)
    return str(content)


def get_llm(config: LLMConfig) -> ChatAnthropic:
    """Create an Anthropic chat model from config.

    Raises RuntimeError when ANTHROPIC_API_KEY is not set.
    """
    api_key = os.environ.get("ANTHROPIC_API_KEY")
    if not api_key:
        raise RuntimeError("ANTHROPIC_API_KEY environment variable is not set")
    return ChatAnthropic(
        model=config.model,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
        api_key=api_key,
    )


def model_name(llm: Any) -> str:
    """Best-effort model identifier of a LangChain chat model."""
    for attr in ("model", "model_name"):
        value = getattr(llm, attr, None)
        if isinstance(value, str) and value:
            return value
    return type(llm).__name__
