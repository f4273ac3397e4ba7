# tests/unit/application/services/test_budget_governor.py
from datetime import datetime
from unittest.mock import patch
from zoneinfo import ZoneInfo

import pytest

from application.services.budget_governor import BudgetGovernor
from conftest import FakeClock

PARIS = ZoneInfo("Europe/Paris")
SONNET = "claude-sonnet-4-20250514"

@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 10, 22, 30, tzinfo=PARIS))

@pytest.fixture
def governor(clock):
    return BudgetGovernor(daily_budget_usd=1.0, daily_token_limit=100000, clock=clock)

class TestBudgetGovernor:

    @pytest.mark.asyncio
    async def test_record_usage_accumulates(self, governor):
        await governor.record_usage(1000, 500, SONNET)
        state = await governor.record_usage(2000, 100, SONNET)

        assert state.tokens_used == 3600
        assert state.api_calls == 2
        # (3000 * 3 + 600 * 15) / 1M
        assert state.cost_usd == pytest.approx(0.018)

    @pytest.mark.asyncio
    async def test_counters_are_monotonic_within_a_day(self, governor):
        previous = governor.state
        for _ in range(5):
            current = await governor.record_usage(100, 100, SONNET)
            assert current.tokens_used > previous.tokens_used
            assert current.cost_usd > previous.cost_usd
            previous = current

    @pytest.mark.asyncio
    async def test_negative_tokens_rejected(self, governor):
        with pytest.raises(ValueError):
            await governor.record_usage(-1, 0)

    @pytest.mark.asyncio
    async def test_cost_cap_denies(self, governor):
        # 70k output tokens at $15/M is $1.05
        await governor.record_usage(0, 60000, SONNET)
        await governor.record_usage(0, 10000, SONNET)

        check = governor.check()

        assert not check.allowed
        assert "budget" in check.reason.lower()

    @pytest.mark.asyncio
    async def test_token_cap_denies(self, clock):
        governor = BudgetGovernor(daily_budget_usd=100.0, daily_token_limit=1000, clock=clock)
        await governor.record_usage(600, 400, SONNET)

        check = governor.check()

        assert not check.allowed
        assert "token" in check.reason.lower()

    @pytest.mark.asyncio
    async def test_under_caps_allows(self, governor):
        await governor.record_usage(100, 100, SONNET)
        assert governor.check().allowed

    @pytest.mark.asyncio
    async def test_reset_happens_exactly_once_at_rollover(self, governor, clock):
        await governor.record_usage(1000, 1000, SONNET)

        clock.advance(hours=1)  # 23:30 Paris, same day
        assert governor.reset_if_new_day() is False
        assert governor.state.tokens_used == 2000

        clock.advance(hours=1)  # 00:30 Paris, next day
        assert governor.reset_if_new_day() is True
        assert governor.state.date == "2025-03-11"
        assert governor.state.tokens_used == 0
        assert governor.state.cost_usd == 0.0

        assert governor.reset_if_new_day() is False

    @pytest.mark.asyncio
    async def test_rollover_follows_reference_timezone(self, governor, clock):
        """The date is read in the reference timezone, not in UTC"""
        clock.now = datetime(2025, 3, 10, 23, 30, tzinfo=ZoneInfo("UTC"))
        # 00:30 Paris on the 11th
        assert governor.reset_if_new_day() is True

        clock.now = datetime(2025, 3, 11, 1, 0, tzinfo=ZoneInfo("UTC"))
        assert governor.reset_if_new_day() is False

    @pytest.mark.asyncio
    async def test_denied_day_is_allowed_again_after_rollover(self, governor, clock):
        await governor.record_usage(0, 100000, SONNET)
        assert not governor.check().allowed

        clock.advance(hours=2)

        assert governor.check().allowed

    def test_unknown_model_uses_default_pricing(self, governor):
        assert governor.cost_of(1_000_000, 0, "some-future-model") == pytest.approx(3.0)

    def test_status_reports_remaining(self, governor):
        status = governor.get_status()

        assert status["date"] == "2025-03-10"
        assert status["remaining_usd"] == 1.0
        assert status["remaining_tokens"] == 100000
        assert status["budget_exceeded"] is False

    @pytest.mark.asyncio
    async def test_status_of_exhausted_day_does_not_log_errors(self, governor):
        await governor.record_usage(0, 70000, SONNET)

        with patch("application.services.budget_governor.logger") as logger:
            status = governor.get_status()

        assert status["budget_exceeded"] is True
        assert status["remaining_usd"] == 0.0
        logger.error.assert_not_called()

    @pytest.mark.asyncio
    async def test_remaining_after_usage(self, governor):
        await governor.record_usage(1000, 1000, SONNET)

        remaining_usd, remaining_tokens = governor.remaining()

        assert remaining_usd == pytest.approx(0.982)
        assert remaining_tokens == 98000
        assert governor.snapshot().api_calls == 1

    @pytest.mark.asyncio
    async def test_initialize_restores_todays_row(self, mock_db_pool, clock):
        mock_db_pool.conn.fetchrow.return_value = {
            "budget_date": "2025-03-10", "tokens_used": 4200, "cost_usd": 0.25, "api_calls": 7
        }
        governor = BudgetGovernor(db_pool=mock_db_pool, clock=clock)

        await governor.initialize()

        assert governor.state.tokens_used == 4200
        assert governor.state.api_calls == 7
        assert mock_db_pool.conn.fetchrow.call_args[0][1] == "2025-03-10"

    @pytest.mark.asyncio
    async def test_record_usage_persists(self, mock_db_pool, clock):
        governor = BudgetGovernor(db_pool=mock_db_pool, clock=clock)

        await governor.record_usage(100, 50, SONNET)

        args = mock_db_pool.conn.execute.call_args[0]
        assert "INSERT INTO budget_state" in args[0]
        assert args[1:3] == ("2025-03-10", 150)

    @pytest.mark.asyncio
    async def test_persist_failure_keeps_in_memory_state(self, mock_db_pool, clock):
        mock_db_pool.conn.execute.side_effect = ConnectionError("db down")
        governor = BudgetGovernor(db_pool=mock_db_pool, clock=clock)

        state = await governor.record_usage(100, 50, SONNET)

        assert state.tokens_used == 150
