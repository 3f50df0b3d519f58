import pytest

from genui.config import ModelPrice, PricingConfig
from genui.pricing import TokenCostCalculator, estimate_token_count


@pytest.fixture
def calculator(engine_config):
    return TokenCostCalculator(engine_config.pricing)


class TestCalculator:
    def test_prefix_match(self, calculator):
        cost = calculator.calculate_cost("claude-sonnet-4-20250514", 1_000_000, 1_000_000)
        assert cost.model == "claude-sonnet-4"
        assert cost.prompt_cost == 3.0
        assert cost.completion_cost == 15.0
        assert cost.total_cost == 18.0
        assert cost.currency == "USD"

    def test_longest_prefix_wins(self):
        pricing = PricingConfig(
            models={
                "claude": ModelPrice(input=1, output=1),
                "claude-opus-4": ModelPrice(input=15, output=75),
            }
        )
        name, price = TokenCostCalculator(pricing).price_for("Claude-Opus-4-1")
        assert name == "claude-opus-4"
        assert price.output == 75

    def test_unknown_model_uses_default(self, calculator):
        cost = calculator.calculate_cost("gpt-4o", 2_000, 1_000)
        assert cost.model == "gpt-4o"
        assert cost.prompt_cost == 0.002
        assert cost.completion_cost == 0.003

    def test_rounded_to_six_places(self, calculator):
        cost = calculator.calculate_cost("claude-3-5-haiku-latest", 7, 3)
        assert cost.prompt_cost == round(7 * 0.80 / 1_000_000, 6)
        assert cost.total_cost == round(7 * 0.80 / 1_000_000 + 3 * 4.00 / 1_000_000, 6)

    def test_usage_camel_case(self, calculator):
        usage = calculator.build_usage("claude-sonnet-4", 10, 5).model_dump(by_alias=True)
        assert usage["promptTokens"] == 10
        assert usage["completionTokens"] == 5
        assert usage["totalTokens"] == 15
        assert usage["estimatedCost"]["model"] == "claude-sonnet-4"


class TestEstimate:
    @pytest.mark.parametrize("text, count", [(None, 0), ("", 0), ("abc", 1), ("abcd", 1), ("abcde", 2)])
    def test_four_chars_per_token(self, text, count):
        assert estimate_token_count(text) == count
