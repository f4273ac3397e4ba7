# application/services/budget_governor.py
from typing import Dict, Any, Optional, Callable, Tuple
from datetime import datetime
from zoneinfo import ZoneInfo
import asyncio
import asyncpg

from domain.models.safety_state import BudgetState, BudgetCheck, ModelPricing
from shared.logging import logger, log_budget_usage

# USD per million tokens (input, output)
PRICE_TABLE: Dict[str, ModelPricing] = {
    "claude-sonnet-4-20250514": ModelPricing(3.00, 15.00),
    "claude-opus-4-20250514": ModelPricing(15.00, 75.00),
    "claude-3-5-haiku-20241022": ModelPricing(0.80, 4.00),
}
DEFAULT_PRICING = ModelPricing(3.00, 15.00)

class BudgetGovernor:
    """Enforce daily cost and token ceilings on reasoning-gateway usage.

    Counters only grow within a date and are zeroed exactly once when the
    date in the reference timezone rolls over. ``check()`` must pass before
    every gateway call; ``record_usage()`` is called after every completed one.
    """

    def __init__(self,
                 daily_budget_usd: float = 10.0,
                 daily_token_limit: int = 500000,
                 timezone: str = "Europe/Paris",
                 default_model: str = "claude-sonnet-4-20250514",
                 db_pool: Optional[asyncpg.Pool] = None,
                 clock: Optional[Callable[[], datetime]] = None,
                 price_table: Optional[Dict[str, ModelPricing]] = None):
        self.daily_budget_usd = daily_budget_usd
        self.daily_token_limit = daily_token_limit
        self.default_model = default_model
        self.db_pool = db_pool
        self.price_table = price_table if price_table is not None else PRICE_TABLE
        self._tz = ZoneInfo(timezone)
        self._clock = clock or (lambda: datetime.now(self._tz))
        self._lock = asyncio.Lock()
        self._state = BudgetState(date=self._today())

    def _today(self) -> str:
        return self._clock().astimezone(self._tz).date().isoformat()

    @property
    def state(self) -> BudgetState:
        return self._state

    async def initialize(self):
        """Load today's counters from the database, if a row exists"""
        if not self.db_pool:
            return
        try:
            async with self.db_pool.acquire() as conn:
                row = await conn.fetchrow("""
                    SELECT budget_date, tokens_used, cost_usd, api_calls
                    FROM budget_state
                    WHERE budget_date = $1
                """, self._today())

                if row:
                    self._state = BudgetState(
                        date=row['budget_date'],
                        tokens_used=row['tokens_used'],
                        cost_usd=float(row['cost_usd']),
                        api_calls=row['api_calls']
                    )
                    logger.info("Budget state restored", **self._state.to_dict())
        except Exception as e:
            logger.warning(f"Failed to load budget state: {e}")

    def reset_if_new_day(self) -> bool:
        """Zero the counters when the stored date is not today; True if reset"""
        today = self._today()
        if self._state.date == today:
            return False

        previous = self._state
        self._state = BudgetState(date=today)
        logger.info("Daily budget reset",
                   previous_date=previous.date,
                   previous_cost_usd=round(previous.cost_usd, 6),
                   previous_tokens=previous.tokens_used,
                   new_date=today)
        return True

    def check(self) -> BudgetCheck:
        """Deny when either the cost cap or the token cap has been reached"""
        self.reset_if_new_day()
        state = self._state

        if state.cost_usd >= self.daily_budget_usd:
            logger.error("Daily cost limit reached",
                        cost_usd=round(state.cost_usd, 6),
                        limit_usd=self.daily_budget_usd)
            return BudgetCheck(False, f"Daily budget of ${self.daily_budget_usd:.2f} reached")

        if state.tokens_used >= self.daily_token_limit:
            logger.error("Daily token limit reached",
                        tokens_used=state.tokens_used,
                        limit=self.daily_token_limit)
            return BudgetCheck(False, f"Daily token limit of {self.daily_token_limit} reached")

        return BudgetCheck(True)

    def exhausted(self, state: BudgetState) -> bool:
        return (state.cost_usd >= self.daily_budget_usd or
                state.tokens_used >= self.daily_token_limit)

    def cost_of(self, input_tokens: int, output_tokens: int, model: Optional[str] = None) -> float:
        pricing = self.price_table.get(model or self.default_model, DEFAULT_PRICING)
        return pricing.cost(input_tokens, output_tokens)

    async def record_usage(self, input_tokens: int, output_tokens: int,
                           model: Optional[str] = None) -> BudgetState:
        """Accumulate one gateway call's usage into today's counters"""
        if input_tokens < 0 or output_tokens < 0:
            raise ValueError("Token counts cannot be negative")

        cost = self.cost_of(input_tokens, output_tokens, model)
        tokens = input_tokens + output_tokens

        async with self._lock:
            self.reset_if_new_day()
            current = self._state
            self._state = BudgetState(
                date=current.date,
                tokens_used=current.tokens_used + tokens,
                cost_usd=current.cost_usd + cost,
                api_calls=current.api_calls + 1
            )
            snapshot = self._state
            await self._persist_state(snapshot)

        log_budget_usage(
            date=snapshot.date,
            tokens_consumed=tokens,
            cost_usd=cost,
            total_cost_usd=snapshot.cost_usd,
            remaining_usd=max(0.0, self.daily_budget_usd - snapshot.cost_usd),
            budget_exceeded=self.exhausted(snapshot)
        )
        return snapshot

    async def _persist_state(self, state: BudgetState):
        if not self.db_pool:
            return
        try:
            async with self.db_pool.acquire() as conn:
                await conn.execute("""
                    INSERT INTO budget_state
                    (budget_date, tokens_used, cost_usd, api_calls, updated_at)
                    VALUES ($1, $2, $3, $4, CURRENT_TIMESTAMP)
                    ON CONFLICT (budget_date) DO UPDATE SET
                    tokens_used = $2, cost_usd = $3, api_calls = $4,
                    updated_at = CURRENT_TIMESTAMP
                """, state.date, state.tokens_used, state.cost_usd, state.api_calls)
        except Exception as e:
            logger.error(f"Failed to persist budget state for {state.date}: {e}")

    def snapshot(self) -> BudgetState:
        self.reset_if_new_day()
        return self._state

    def remaining(self) -> Tuple[float, int]:
        """(USD, tokens) left before either cap denies"""
        state = self.snapshot()
        return (max(0.0, self.daily_budget_usd - state.cost_usd),
                max(0, self.daily_token_limit - state.tokens_used))

    def get_status(self) -> Dict[str, Any]:
        state = self.snapshot()
        remaining_usd, remaining_tokens = self.remaining()
        return {
            **state.to_dict(),
            "daily_budget_usd": self.daily_budget_usd,
            "daily_token_limit": self.daily_token_limit,
            "remaining_usd": round(remaining_usd, 4),
            "remaining_tokens": remaining_tokens,
            "budget_exceeded": self.exhausted(state),
        }
