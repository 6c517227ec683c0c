"""
Usage statistics models.

Remote payloads use camelCase keys; every model accepts both the alias and
the Python field name. Missing or null counters default to zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from relay_console.core.errors import RelayConsoleError

Period = Literal["daily", "monthly"]
PERIODS: tuple[str, ...] = ("daily", "monthly")

ZERO_COST = "$0.000000"

T = TypeVar("T")


class RelayModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data):
        # The relay sends explicit nulls for unset counters; fall back to defaults
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class UsageTotal(RelayModel):
    requests: int = 0
    tokens: int = 0
    all_tokens: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cache_create_tokens: int = 0
    cache_read_tokens: int = 0
    cost: float = 0.0
    formatted_cost: str = ZERO_COST


class Usage(RelayModel):
    total: UsageTotal = Field(default_factory=UsageTotal)


class Limits(RelayModel):
    token_limit: int = 0
    concurrency_limit: int = 0
    rate_limit_window: int = 0
    rate_limit_requests: int = 0
    rate_limit_cost: float = 0.0
    daily_cost_limit: float = 0.0
    total_cost_limit: float = 0.0
    current_window_requests: int = 0
    current_window_tokens: int = 0
    current_window_cost: float = 0.0
    current_daily_cost: float = 0.0
    current_total_cost: float = 0.0
    window_start_time: Optional[str] = None
    window_end_time: Optional[str] = None
    window_remaining_seconds: Optional[int] = None


class Restrictions(RelayModel):
    enable_model_restriction: bool = False
    restricted_models: List[str] = Field(default_factory=list)
    enable_client_restriction: bool = False
    allowed_clients: List[str] = Field(default_factory=list)


class AccountSummary(RelayModel):
    """Account metadata and limits for the key behind a token."""

    id: str
    name: str = ""
    description: str = ""
    is_active: bool = True
    created_at: Optional[str] = None
    expires_at: Optional[str] = None
    expiration_mode: str = ""
    is_activated: bool = False
    activation_days: int = 0
    activated_at: Optional[str] = None
    permissions: str = ""
    usage: Usage = Field(default_factory=Usage)
    limits: Limits = Field(default_factory=Limits)
    restrictions: Restrictions = Field(default_factory=Restrictions)


class ModelCosts(RelayModel):
    total: float = 0.0
    input: float = 0.0
    output: float = 0.0
    cache_create: float = 0.0
    cache_read: float = 0.0


class ModelStat(RelayModel):
    model: str
    requests: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cache_create_tokens: int = 0
    cache_read_tokens: int = 0
    all_tokens: int = 0
    costs: Optional[ModelCosts] = None


class PeriodSnapshot(RelayModel):
    model_config = ConfigDict(frozen=True)

    requests: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cache_create_tokens: int = 0
    cache_read_tokens: int = 0
    all_tokens: int = 0
    cost: float = 0.0
    formatted_cost: str = ZERO_COST


@dataclass(frozen=True)
class UsagePercentages:
    token_usage_pct: float = 0.0
    cost_usage_pct: float = 0.0
    request_usage_pct: float = 0.0


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a stats operation. Exactly one of value/error is meaningful."""

    ok: bool
    value: Optional[T] = None
    error: Optional[RelayConsoleError] = None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: RelayConsoleError) -> "Result[T]":
        return cls(ok=False, error=error)
