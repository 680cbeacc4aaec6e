"""Pricing engine."""

from observer.pricing.cost import (
    PricingMode,
    TokenUsage,
    calculate_cost,
    parse_pricing_mode,
    resolve_cost,
)
from observer.model_identity import normalize_model_name
from observer.pricing.rates import ModelPricing, get_model_pricing, get_rate_table

__all__ = [
    "PricingMode",
    "TokenUsage",
    "calculate_cost",
    "parse_pricing_mode",
    "resolve_cost",
    "ModelPricing",
    "get_model_pricing",
    "get_rate_table",
    "normalize_model_name",
]
