"""Token and cost accounting for model calls."""

import logging
from dataclasses import dataclass

from ..exceptions import BudgetExceededError

logger = logging.getLogger(__name__)

# USD per 1M tokens: (input, output)
DEFAULT_PRICING: dict[str, tuple[float, float]] = {
    "claude-sonnet-4-5": (3.0, 15.0),
    "claude-haiku-3-5": (0.8, 4.0),
    "gpt-4o": (2.5, 10.0),
    "gpt-4o-mini": (0.15, 0.6),
}


@dataclass(frozen=True, slots=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True, slots=True)
class BudgetLimits:
    max_total_tokens: int | None = None
    max_total_cost_usd: float | None = None
    warn_at_cost_usd: float | None = None


def estimate_tokens(text: str) -> int:
    """Rough token estimate (four characters per token)."""
    return (len(text) + 3) // 4


class CostTracker:
    """Running totals for one invocation."""

    def __init__(self, pricing: dict[str, tuple[float, float]] | None = None):
        self.pricing = dict(DEFAULT_PRICING if pricing is None else pricing)
        self.total_tokens = 0
        self.total_cost_usd = 0.0
        self.calls = 0
        self._warned = False

    def _price_for(self, model: str) -> tuple[float, float] | None:
        if model in self.pricing:
            return self.pricing[model]
        # Dated snapshots such as claude-sonnet-4-5-20250929; longest prefix wins
        for name in sorted(self.pricing, key=len, reverse=True):
            if model.startswith(name):
                return self.pricing[name]
        return None

    def cost_for(self, model: str, usage: Usage) -> float:
        price = self._price_for(model)
        if price is None:
            return 0.0
        input_price, output_price = price
        return (usage.input_tokens * input_price + usage.output_tokens * output_price) / 1_000_000

    def record(self, model: str, usage: Usage) -> float:
        cost = self.cost_for(model, usage)
        self.total_tokens += usage.total_tokens
        self.total_cost_usd += cost
        self.calls += 1
        logger.debug(f"Model call {self.calls}: {usage.total_tokens} tokens, ${cost:.4f} (total ${self.total_cost_usd:.4f})")
        return cost

    def check_budget(self, limits: BudgetLimits, estimated_tokens: int = 0) -> None:
        """Refuse a call that would break a limit.

        Raises:
            BudgetExceededError: If the token or cost ceiling is already reached.
        """
        if limits.max_total_tokens is not None and self.total_tokens + estimated_tokens > limits.max_total_tokens:
            raise BudgetExceededError(
                f"Token budget exceeded: {self.total_tokens} used + ~{estimated_tokens} requested > {limits.max_total_tokens}"
            )
        if limits.max_total_cost_usd is not None and self.total_cost_usd >= limits.max_total_cost_usd:
            raise BudgetExceededError(f"Cost budget exceeded: ${self.total_cost_usd:.4f} >= ${limits.max_total_cost_usd:.4f}")
        if limits.warn_at_cost_usd is not None and self.total_cost_usd >= limits.warn_at_cost_usd and not self._warned:
            self._warned = True
            logger.warning(f"AI spend ${self.total_cost_usd:.4f} passed the warning threshold ${limits.warn_at_cost_usd:.4f}")
