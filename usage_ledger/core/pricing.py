"""
Pricing calculations and rate management.

Maps a model and its token counts to a USD cost. The table is fixed in
code and can be replaced from the YAML config when pricing changes.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict


# (model, input_tokens, output_tokens) -> USD
PricingOracle = Callable[[str, int, int], float]

TOKENS_PER_UNIT = Decimal("1000000")
COST_QUANTUM = Decimal("0.00000001")


class UnsupportedModelError(ValueError):
    """Raised when a model has no entry in the pricing table."""


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model."""
    input_cost_per_1m: Decimal  # Cost per 1M input tokens
    output_cost_per_1m: Decimal  # Cost per 1M output tokens

    def __post_init__(self):
        """Validate prices are not negative."""
        if self.input_cost_per_1m < 0:
            raise ValueError("input_cost_per_1m must be >= 0")
        if self.output_cost_per_1m < 0:
            raise ValueError("output_cost_per_1m must be >= 0")


@dataclass(frozen=True)
class PricingTable:
    """Pricing table for supported models."""
    prices: Dict[str, ModelPricing]

    def get_pricing(self, model: str) -> ModelPricing:
        """Get pricing for a specific model.

        Args:
            model: Model identifier

        Returns:
            ModelPricing for the model

        Raises:
            UnsupportedModelError: If model is not supported
        """
        if model not in self.prices:
            raise UnsupportedModelError(f"Unsupported model: {model}")
        return self.prices[model]

    def cost(self, model: str, input_tokens: int, output_tokens: int) -> float:
        """Calculate the USD cost of a request.

        Args:
            model: Model identifier
            input_tokens: Prompt tokens consumed
            output_tokens: Completion tokens produced

        Returns:
            Cost in USD rounded to 1e-8

        Raises:
            UnsupportedModelError: If model is not supported
            ValueError: If a token count is negative
        """
        if input_tokens < 0 or output_tokens < 0:
            raise ValueError("token counts must be >= 0")

        pricing = self.get_pricing(model)

        input_cost = (Decimal(input_tokens) / TOKENS_PER_UNIT) * pricing.input_cost_per_1m
        output_cost = (Decimal(output_tokens) / TOKENS_PER_UNIT) * pricing.output_cost_per_1m

        total_cost = (input_cost + output_cost).quantize(COST_QUANTUM, rounding=ROUND_HALF_UP)
        return float(total_cost)

    def __call__(self, model: str, input_tokens: int, output_tokens: int) -> float:
        return self.cost(model, input_tokens, output_tokens)


# Default pricing table, overridable through the ledger config
PRICING_TABLE = PricingTable({
    "gpt-4": ModelPricing(
        input_cost_per_1m=Decimal("15.00"),
        output_cost_per_1m=Decimal("60.00")
    ),
    "gpt-4o": ModelPricing(
        input_cost_per_1m=Decimal("2.50"),
        output_cost_per_1m=Decimal("10.00")
    ),
    "gpt-4o-mini": ModelPricing(
        input_cost_per_1m=Decimal("0.15"),
        output_cost_per_1m=Decimal("0.60")
    ),
    "gpt-3.5-turbo": ModelPricing(
        input_cost_per_1m=Decimal("0.50"),
        output_cost_per_1m=Decimal("1.50")
    ),
    "claude-3-opus": ModelPricing(
        input_cost_per_1m=Decimal("15.00"),
        output_cost_per_1m=Decimal("75.00")
    ),
    "claude-3-5-sonnet": ModelPricing(
        input_cost_per_1m=Decimal("3.00"),
        output_cost_per_1m=Decimal("15.00")
    ),
    "gemini-1.5-pro": ModelPricing(
        input_cost_per_1m=Decimal("1.25"),
        output_cost_per_1m=Decimal("5.00")
    ),
})


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Calculate cost for model usage with the default pricing table.

    Args:
        model: Model identifier
        input_tokens: Prompt tokens consumed
        output_tokens: Completion tokens produced

    Returns:
        Total cost in USD

    Raises:
        UnsupportedModelError: If model is not supported
    """
    return PRICING_TABLE.cost(model, input_tokens, output_tokens)
