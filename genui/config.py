"""Configuration loader: reads config.yaml, validates with Pydantic.

Sections: the chat model, token pricing, the entities the data-fetch tools
can serve, where embedded actions are executed, and conversation
retention. The path comes from ``GENUI_CONFIG`` (default ``config.yaml``).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


class LLMConfig(BaseModel):
    """Chat model used for intent classification and the proxy endpoint."""

    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    temperature: float = 0.0
    analytics_prompt: bool = False  # append the analytics guidance to the system prompt


class ModelPrice(BaseModel):
    """USD per 1M tokens."""

    input: float
    output: float


class PricingConfig(BaseModel):
    models: dict[str, ModelPrice] = {}
    default: ModelPrice = ModelPrice(input=1.00, output=3.00)


class FormFieldConfig(BaseModel):
    """A field of the form shown when an entity is created or updated."""

    name: str
    label: str | None = None
    type: Literal["text", "number", "email", "date", "select", "textarea"] = "text"
    required: bool = False
    options: list[str] | None = None
    placeholder: str | None = None

    @model_validator(mode="after")
    def options_for_select(self) -> FormFieldConfig:
        if self.type == "select" and not self.options:
            raise ValueError(f"Field '{self.name}' is a select and needs options")
        return self


class DataSourceConfig(BaseModel):
    """Where an entity's data comes from."""

    kind: Literal["dataset", "http"]
    records: list[dict[str, Any]] | dict[str, Any] | None = None  # dataset
    url: str | None = None                                          # http
    params: dict[str, Any] = {}
    headers: dict[str, str] = {}

    @model_validator(mode="after")
    def validate_source_fields(self) -> DataSourceConfig:
        if self.kind == "dataset" and self.records is None:
            raise ValueError("records is required for dataset sources")
        if self.kind == "http" and not self.url:
            raise ValueError("url is required for http sources")
        return self


class EntityConfig(BaseModel):
    """A kind of record users can ask about."""

    name: str
    description: str | None = None
    keywords: list[str] = []
    source: DataSourceConfig
    endpoint: str | None = None         # create/update target for form submissions
    detail_endpoint: str | None = None  # row-click target, may contain {field} placeholders
    fields: list[FormFieldConfig] = []

    def matches(self, text: str) -> bool:
        lower = text.lower()
        return any(k.lower() in lower for k in [self.name, *self.keywords])


class ActionsConfig(BaseModel):
    base_url: str = "http://localhost:8000"
    timeout: float = 15.0


class RetentionConfig(BaseModel):
    """Idle conversations are pruned from the in-memory store."""

    max_idle_minutes: int = 60
    prune_every_minutes: int = 10

    @field_validator("max_idle_minutes", "prune_every_minutes")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Retention intervals must be positive")
        return v


class EngineConfig(BaseModel):
    """Top-level engine configuration."""

    llm: LLMConfig = LLMConfig()
    pricing: PricingConfig = PricingConfig()
    entities: list[EntityConfig] = []
    actions: ActionsConfig = ActionsConfig()
    retention: RetentionConfig = RetentionConfig()

    # Auth & CORS
    api_key: str | None = None
    allowed_origins: list[str] = Field(default_factory=lambda: ["*"])

    @model_validator(mode="after")
    def validate_entities(self) -> EngineConfig:
        seen: set[str] = set()
        for entity in self.entities:
            if entity.name in seen:
                raise ValueError(f"Duplicate entity name '{entity.name}'")
            seen.add(entity.name)
        return self

    def get_entity(self, name: str) -> EntityConfig:
        """Return an entity by name. Raises ValueError if not found."""
        for entity in self.entities:
            if entity.name == name:
                return entity
        raise ValueError(
            f"Entity '{name}' not found. "
            f"Available: {[e.name for e in self.entities]}"
        )


# ---------------------------------------------------------------------------
# Module-level config cache
# ---------------------------------------------------------------------------

_config: EngineConfig | None = None
_config_path: str = DEFAULT_CONFIG_PATH


def load_config(path: str | None = None) -> EngineConfig:
    """Read the config file from disk, validate, and cache."""
    global _config, _config_path
    _config_path = path or os.environ.get("GENUI_CONFIG", DEFAULT_CONFIG_PATH)

    config_file = Path(_config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_file.resolve()}")

    raw = yaml.safe_load(config_file.read_text()) or {}
    _config = EngineConfig(**raw)

    logger.info(
        f"Loaded config: "
        f"model={_config.llm.model}, entities={len(_config.entities)}"
    )
    return _config


def get_config() -> EngineConfig:
    """Return cached config. Raises if not yet loaded."""
    if _config is None:
        raise RuntimeError("Config not loaded, call load_config() first")
    return _config


def reload_config() -> EngineConfig:
    """Re-read config from disk. Called by /reload endpoint."""
    logger.info(f"Reloading config from {_config_path}")
    return load_config(_config_path)
