"""
Usage derivations — period totals and bounded usage percentages.

Pure functions, no I/O.
"""

from __future__ import annotations

from typing import Iterable, Optional

from relay_console.models.stats import (
    ZERO_COST,
    Limits,
    ModelStat,
    PeriodSnapshot,
    UsagePercentages,
)


def format_cost(cost: Optional[float]) -> str:
    if cost is None:
        return ZERO_COST
    return f"${cost:.6f}"


def summarize_models(models: Iterable[ModelStat]) -> PeriodSnapshot:
    """Sum per-model counters into one period snapshot.

    ``all_tokens`` is recomputed from the four counters, cache tokens included.
    """
    requests = input_tokens = output_tokens = cache_create = cache_read = 0
    cost = 0.0
    for m in models:
        requests += m.requests
        input_tokens += m.input_tokens
        output_tokens += m.output_tokens
        cache_create += m.cache_create_tokens
        cache_read += m.cache_read_tokens
        if m.costs is not None:
            cost += m.costs.total

    return PeriodSnapshot(
        requests=requests,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        cache_create_tokens=cache_create,
        cache_read_tokens=cache_read,
        all_tokens=input_tokens + output_tokens + cache_create + cache_read,
        cost=cost,
        formatted_cost=format_cost(cost),
    )


def _bounded_pct(used: float, limit: float) -> float:
    # A zero or unset limit means unlimited
    if not limit or limit <= 0:
        return 0.0
    return max(0.0, min(used / limit * 100, 100.0))


def compute_usage_percentages(snapshot: PeriodSnapshot, limits: Optional[Limits]) -> UsagePercentages:
    if limits is None:
        return UsagePercentages()
    return UsagePercentages(
        token_usage_pct=_bounded_pct(snapshot.all_tokens, limits.token_limit),
        cost_usage_pct=_bounded_pct(limits.current_daily_cost, limits.daily_cost_limit),
        request_usage_pct=_bounded_pct(limits.current_window_requests, limits.rate_limit_requests),
    )
