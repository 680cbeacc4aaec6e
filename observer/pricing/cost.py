"""Cost computation from token usage and model rate tables."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from observer.errors import ConfigurationError
from observer.models import SourceType
from observer.pricing.rates import get_model_pricing


class PricingMode(str, Enum):
    AUTO = "auto"            # declared cost if positive, else computed
    CALCULATE = "calculate"  # always computed from tokens
    DISPLAY = "display"      # always the declared cost, never computed

    def __str__(self) -> str:
        return self.value


def parse_pricing_mode(value: str | None) -> PricingMode:
    token = (value or "").strip().lower()
    if not token:
        return PricingMode.AUTO
    for mode in PricingMode:
        if mode.value == token:
            return mode
    raise ConfigurationError(f"invalid pricing mode: {value!r} (valid: auto, calculate, display)")


@dataclass(frozen=True)
class TokenUsage:
    input: int = 0
    output: int = 0
    cache_creation: int = 0
    cache_read: int = 0
    reasoning: int = 0
    tool: int = 0

    def clamped(self) -> TokenUsage:
        return TokenUsage(
            input=max(0, int(self.input)),
            output=max(0, int(self.output)),
            cache_creation=max(0, int(self.cache_creation)),
            cache_read=max(0, int(self.cache_read)),
            reasoning=max(0, int(self.reasoning)),
            tool=max(0, int(self.tool)),
        )


def calculate_cost(source: SourceType, model: str | None, usage: TokenUsage) -> float | None:
    """Return the USD cost of `usage`, or None when the model has no rate entry."""
    pricing = get_model_pricing(source, model)
    if pricing is None:
        return None
    u = usage.clamped()

    if source is SourceType.CODEX:
        # input_tokens already includes cached tokens for OpenAI usage.
        cached = min(u.cache_read, u.input)
        return (
            (u.input - cached) * pricing.input_cost_per_token
            + cached * pricing.cache_read_cost_per_token
            + u.output * pricing.output_cost_per_token
        )

    if source is SourceType.GEMINI:
        # Thought tokens bill at the output rate; tool tokens carry no direct cost.
        return (
            u.input * pricing.input_cost_per_token
            + (u.output + u.reasoning) * pricing.output_cost_per_token
            + u.cache_read * pricing.cache_read_cost_per_token
        )

    return (
        u.input * pricing.input_cost_per_token
        + u.output * pricing.output_cost_per_token
        + u.cache_creation * pricing.cache_write_cost_per_token
        + u.cache_read * pricing.cache_read_cost_per_token
    )


def resolve_cost(
    mode: PricingMode,
    source: SourceType,
    model: str | None,
    usage: TokenUsage,
    declared_cost: float | None = None,
) -> float:
    if mode is PricingMode.DISPLAY:
        return float(declared_cost) if declared_cost is not None else 0.0

    if mode is PricingMode.CALCULATE:
        calculated = calculate_cost(source, model, usage)
        return calculated if calculated is not None else 0.0

    if declared_cost is not None and declared_cost > 0:
        return float(declared_cost)
    calculated = calculate_cost(source, model, usage)
    return calculated if calculated is not None else 0.0
