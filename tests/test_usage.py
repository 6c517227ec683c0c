"""
Tests for usage derivations, token masking and token format checks.
"""

import pytest

from relay_console.models.stats import Limits, ModelStat, PeriodSnapshot
from relay_console.models.token import ApiToken, mask_token, validate_token_format
from relay_console.services.usage import compute_usage_percentages, format_cost, summarize_models


class TestSummarizeModels:
    def test_empty_list_is_zero_snapshot(self):
        snap = summarize_models([])
        assert snap == PeriodSnapshot()
        assert snap.formatted_cost == "$0.000000"

    def test_sums_counters_and_costs(self):
        models = [
            ModelStat.model_validate({
                "model": "claude-sonnet",
                "requests": 3,
                "inputTokens": 100,
                "outputTokens": 40,
                "cacheCreateTokens": 10,
                "cacheReadTokens": 5,
                "costs": {"total": 0.25},
            }),
            ModelStat.model_validate({
                "model": "claude-haiku",
                "requests": 2,
                "inputTokens": 50,
                "outputTokens": 20,
                "costs": {"total": 0.125},
            }),
        ]
        snap = summarize_models(models)
        assert snap.requests == 5
        assert snap.input_tokens == 150
        assert snap.output_tokens == 60
        assert snap.cache_create_tokens == 10
        assert snap.cache_read_tokens == 5
        assert snap.all_tokens == 225
        assert snap.cost == pytest.approx(0.375)
        assert snap.formatted_cost == "$0.375000"

    def test_missing_and_null_fields_default_to_zero(self):
        stat = ModelStat.model_validate({"model": "m", "requests": None, "costs": None})
        snap = summarize_models([stat])
        assert snap.requests == 0
        assert snap.cost == 0.0


class TestFormatCost:
    def test_none(self):
        assert format_cost(None) == "$0.000000"

    def test_six_decimals(self):
        assert format_cost(1.5) == "$1.500000"


class TestUsagePercentages:
    def test_no_limits(self):
        pct = compute_usage_percentages(PeriodSnapshot(all_tokens=500), None)
        assert (pct.token_usage_pct, pct.cost_usage_pct, pct.request_usage_pct) == (0.0, 0.0, 0.0)

    def test_ratios(self):
        limits = Limits(
            token_limit=1000,
            daily_cost_limit=10.0,
            current_daily_cost=2.5,
            rate_limit_requests=100,
            current_window_requests=40,
        )
        pct = compute_usage_percentages(PeriodSnapshot(all_tokens=250), limits)
        assert pct.token_usage_pct == pytest.approx(25.0)
        assert pct.cost_usage_pct == pytest.approx(25.0)
        assert pct.request_usage_pct == pytest.approx(40.0)

    def test_clamped_to_100(self):
        limits = Limits(token_limit=100)
        pct = compute_usage_percentages(PeriodSnapshot(all_tokens=1000), limits)
        assert pct.token_usage_pct == 100.0

    def test_zero_limit_means_unlimited(self):
        limits = Limits(token_limit=0, current_daily_cost=5.0)
        pct = compute_usage_percentages(PeriodSnapshot(all_tokens=1000), limits)
        assert pct.token_usage_pct == 0.0
        assert pct.cost_usage_pct == 0.0


class TestTokenHelpers:
    @pytest.mark.parametrize("value,expected", [
        ("short", "short"),
        ("0123456789", "0123456789"),
        ("cr_abcdefghijkl123456", "cr_****123456"),
    ])
    def test_mask_token(self, value, expected):
        assert mask_token(value) == expected

    def test_validate_token_format(self):
        assert validate_token_format("0123456789") is False
        assert validate_token_format("  0123456789  ") is False
        assert validate_token_format("01234567890") is True

    def test_safe_dict_never_contains_value(self):
        token = ApiToken.create(name="Alpha", value="cr_alpha_0123456789")
        safe = token.to_safe_dict()
        assert "value" not in safe
        assert safe["masked_value"] == "cr_****456789"
        assert "cr_alpha_0123456789" not in str(safe)


class TestPercentageBound:
    @pytest.mark.parametrize("used", [0, 1, 999, 1000, 10**9])
    @pytest.mark.parametrize("limit", [0, 1, 1000])
    def test_token_pct_in_range(self, used, limit):
        pct = compute_usage_percentages(PeriodSnapshot(all_tokens=used), Limits(token_limit=limit))
        assert 0.0 <= pct.token_usage_pct <= 100.0
        if limit == 0:
            assert pct.token_usage_pct == 0.0
