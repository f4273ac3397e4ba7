# infrastructure/resilience/circuit_breaker.py
from datetime import datetime
from typing import Callable, Any, Optional, Dict, List, Tuple, Type, Awaitable
import asyncio
from dataclasses import dataclass
import asyncpg

from domain.exceptions import CircuitTrippedError
from domain.models.safety_state import CircuitSnapshot
from shared.logging import logger, log_circuit_breaker_event

TripListener = Callable[[CircuitSnapshot], Awaitable[None]]

@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 3
    timeout_seconds: float = 300.0
    # Exceptions that pass through call() without counting as failures
    ignored_exceptions: Tuple[Type[BaseException], ...] = ()

class CircuitBreaker:
    """Halts task execution after consecutive failures.

    Once tripped the breaker stays tripped; only ``restart()`` clears it.
    """

    def __init__(self, name: str, config: CircuitBreakerConfig,
                 db_pool: Optional[asyncpg.Pool] = None):
        self.name = name
        self.config = config
        self.db_pool = db_pool
        self.consecutive_errors = 0
        self.tripped = False
        self.last_error: Optional[str] = None
        self.tripped_at: Optional[datetime] = None
        self._trip_listeners: List[TripListener] = []

    async def initialize(self):
        """Load state from database"""
        if not self.db_pool:
            return
        try:
            async with self.db_pool.acquire() as conn:
                row = await conn.fetchrow("""
                    SELECT consecutive_errors, tripped, last_error, tripped_at
                    FROM circuit_breaker_state
                    WHERE breaker_name = $1
                """, self.name)

                if row:
                    self.consecutive_errors = row['consecutive_errors']
                    self.tripped = row['tripped']
                    self.last_error = row['last_error']
                    self.tripped_at = row['tripped_at']
        except Exception as e:
            logger.warning(f"Failed to load circuit breaker state for {self.name}: {e}")

    def add_trip_listener(self, listener: TripListener) -> None:
        self._trip_listeners.append(listener)

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        if self.tripped:
            raise CircuitTrippedError(f"Circuit breaker '{self.name}' is tripped: {self.last_error}")

        try:
            result = await asyncio.wait_for(
                func(*args, **kwargs),
                timeout=self.config.timeout_seconds
            )
        except self.config.ignored_exceptions:
            raise
        except asyncio.TimeoutError as e:
            await self.on_failure(f"Timed out after {self.config.timeout_seconds}s")
            raise e
        except Exception as e:
            await self.on_failure(e)
            raise e

        await self.on_success()
        return result

    async def on_success(self):
        if self.consecutive_errors > 0:
            self.consecutive_errors = 0
            await self._persist_state()
            log_circuit_breaker_event(self.name, "reset_on_success", self.tripped, 0)

    async def on_failure(self, error: Any):
        self.consecutive_errors += 1
        self.last_error = str(error) or type(error).__name__

        just_tripped = False
        if not self.tripped and self.consecutive_errors >= self.config.failure_threshold:
            self.tripped = True
            self.tripped_at = datetime.utcnow()
            just_tripped = True

        await self._persist_state()
        log_circuit_breaker_event(
            self.name,
            "tripped" if just_tripped else "failure_recorded",
            self.tripped,
            self.consecutive_errors,
            {"last_error": self.last_error}
        )

        if just_tripped:
            await self._notify_trip()

    async def _notify_trip(self):
        snapshot = self.snapshot()
        for listener in list(self._trip_listeners):
            try:
                await listener(snapshot)
            except Exception as e:
                logger.error("Circuit breaker trip listener failed",
                            breaker_name=self.name, error=str(e))

    async def restart(self):
        """Explicit recovery: clear the trip and the error counter"""
        self.tripped = False
        self.consecutive_errors = 0
        self.tripped_at = None
        await self._persist_state()
        log_circuit_breaker_event(self.name, "restarted", False, 0)

    async def _persist_state(self):
        if not self.db_pool:
            return
        try:
            async with self.db_pool.acquire() as conn:
                await conn.execute("""
                    INSERT INTO circuit_breaker_state
                    (breaker_name, consecutive_errors, tripped, last_error, tripped_at, updated_at)
                    VALUES ($1, $2, $3, $4, $5, CURRENT_TIMESTAMP)
                    ON CONFLICT (breaker_name) DO UPDATE SET
                    consecutive_errors = $2, tripped = $3, last_error = $4,
                    tripped_at = $5, updated_at = CURRENT_TIMESTAMP
                """, self.name, self.consecutive_errors, self.tripped,
                    self.last_error, self.tripped_at)
        except Exception as e:
            logger.error(f"Failed to persist circuit breaker state for {self.name}: {e}")

    def snapshot(self) -> CircuitSnapshot:
        return CircuitSnapshot(
            consecutive_errors=self.consecutive_errors,
            tripped=self.tripped,
            last_error=self.last_error,
            tripped_at=self.tripped_at
        )

    async def get_status(self) -> Dict[str, Any]:
        return {
            **self.snapshot().to_dict(),
            "failure_threshold": self.config.failure_threshold
        }
