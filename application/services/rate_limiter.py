# application/services/rate_limiter.py
from typing import Dict, Any, Optional, Callable
import time

from domain.models.safety_state import RateWindow
from shared.logging import logger

WINDOW_SECONDS = 3600.0

class RateLimiter:
    """Hourly ceiling on task suggestions, independent of the token budget.

    Methods never await, so a call cannot interleave with another on the
    event loop.
    """

    def __init__(self, max_per_window: int = 10,
                 window_seconds: float = WINDOW_SECONDS,
                 clock: Optional[Callable[[], float]] = None):
        self.max_per_window = max_per_window
        self.window_seconds = window_seconds
        self._clock = clock or time.monotonic
        self._window = RateWindow(window_start=self._clock())

    @property
    def window(self) -> RateWindow:
        return self._window

    def _reset_if_elapsed(self) -> None:
        now = self._clock()
        if now - self._window.window_start >= self.window_seconds:
            self._window = RateWindow(window_start=now)

    def try_consume(self) -> bool:
        """Take one slot in the current window; False once the ceiling is hit"""
        self._reset_if_elapsed()
        if self._window.count >= self.max_per_window:
            logger.warning("Hourly task limit reached",
                          count=self._window.count,
                          limit=self.max_per_window)
            return False
        self._window = RateWindow(self._window.window_start, self._window.count + 1)
        return True

    def release(self) -> None:
        """Give back a slot taken by a suggestion that was later refused"""
        if self._window.count > 0:
            self._window = RateWindow(self._window.window_start, self._window.count - 1)

    def snapshot(self) -> RateWindow:
        self._reset_if_elapsed()
        return self._window

    def get_status(self) -> Dict[str, Any]:
        self._reset_if_elapsed()
        elapsed = self._clock() - self._window.window_start
        return {
            "count": self._window.count,
            "limit": self.max_per_window,
            "remaining": max(0, self.max_per_window - self._window.count),
            "window_resets_in_seconds": max(0, int(self.window_seconds - elapsed)),
        }
