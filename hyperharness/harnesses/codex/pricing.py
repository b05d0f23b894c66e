"""
Codex cost estimation.

The Codex CLI reports token counts but no cost, so cost is computed from a
static per-million-token price table.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ModelPricing:
    """USD per million tokens."""

    input: float
    output: float
    cache_read: Optional[float] = None


PRICING: dict[str, ModelPricing] = {
    "codex-mini-latest": ModelPricing(input=1.5, output=6.0, cache_read=0.375),
    "gpt-5-codex": ModelPricing(input=1.25, output=10.0, cache_read=0.125),
    "gpt-5.1-codex": ModelPricing(input=1.25, output=10.0, cache_read=0.125),
    "gpt-5.1-codex-max": ModelPricing(input=1.25, output=10.0, cache_read=0.125),
    "gpt-5.1-codex-mini": ModelPricing(input=0.25, output=2.0, cache_read=0.025),
    "gpt-5.2-codex": ModelPricing(input=1.75, output=14.0, cache_read=0.175),
    "gpt-5.3-codex": ModelPricing(input=1.75, output=14.0, cache_read=0.175),
    "gpt-5.3-codex-spark": ModelPricing(input=1.75, output=14.0, cache_read=0.175),
}

# Reasoning-effort suffixes share the base model's price
EFFORT_SUFFIXES = ("-xhigh", "-high", "-medium", "-low")


def get_pricing(model: Optional[str]) -> Optional[ModelPricing]:
    if not model:
        return None
    key = model.lower()
    if key in PRICING:
        return PRICING[key]
    for suffix in EFFORT_SUFFIXES:
        if key.endswith(suffix):
            return PRICING.get(key[: -len(suffix)])
    return None


def calculate_cost_usd(
    model: Optional[str],
    input_tokens: int,
    output_tokens: int,
    cache_read_tokens: Optional[int] = None,
) -> Optional[float]:
    """Estimated cost in USD, or None when the model has no known price."""
    pricing = get_pricing(model)
    if pricing is None:
        return None

    cost = input_tokens / 1_000_000 * pricing.input
    cost += output_tokens / 1_000_000 * pricing.output
    if cache_read_tokens and pricing.cache_read is not None:
        cost += cache_read_tokens / 1_000_000 * pricing.cache_read
    return cost
