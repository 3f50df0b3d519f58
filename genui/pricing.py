"""Token cost calculator. Prices are USD per 1M tokens, injected from config."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from genui.config import ModelPrice, PricingConfig


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CostInfo(_Model):
    prompt_cost: float
    completion_cost: float
    total_cost: float
    currency: str = "USD"
    model: str


class UsageInfo(_Model):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    estimated_cost: CostInfo


def estimate_token_count(text: str | None) -> int:
    """Rough count at ~4 characters per token, for when the provider reports none."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


class TokenCostCalculator:
    def __init__(self, pricing: PricingConfig) -> None:
        self._models = {name.lower(): price for name, price in pricing.models.items()}
        self._default = pricing.default

    def price_for(self, model: str) -> tuple[str, ModelPrice]:
        """Longest configured name that prefixes ``model``, else the default."""
        normalized = model.lower().strip()
        matches = [name for name in self._models if normalized.startswith(name)]
        if not matches:
            return normalized, self._default
        best = max(matches, key=len)
        return best, self._models[best]

    def calculate_cost(self, model: str, prompt_tokens: int, completion_tokens: int) -> CostInfo:
        name, price = self.price_for(model)
        prompt_cost = prompt_tokens / 1_000_000 * price.input
        completion_cost = completion_tokens / 1_000_000 * price.output
        return CostInfo(
            prompt_cost=round(prompt_cost, 6),
            completion_cost=round(completion_cost, 6),
            total_cost=round(prompt_cost + completion_cost, 6),
            model=name,
        )

    def build_usage(self, model: str, prompt_tokens: int, completion_tokens: int) -> UsageInfo:
        return UsageInfo(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            estimated_cost=self.calculate_cost(model, prompt_tokens, completion_tokens),
        )
