"""
Keyed single-flight execution.

Concurrent callers with the same key share one in-flight task. A successful
result stays reusable for `reuse_window` seconds so late arrivals carrying
an already-rotated credential get the same outcome instead of a second
upstream call. Failures are never cached.
"""
import asyncio
import hashlib
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from utils.logging import get_logger

logger = get_logger(__name__)


def digest_key(secret: str) -> str:
    """Stable key for a secret value that never keeps the value itself"""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


class SingleFlight:

    def __init__(self, reuse_window: float = 0.0, clock: Callable[[], float] = time.monotonic):
        self.reuse_window = reuse_window
        self._clock = clock
        self._in_flight: Dict[str, asyncio.Future] = {}
        self._recent: Dict[str, Tuple[float, Any]] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def _recent_result(self, key: str) -> Tuple[bool, Any]:
        entry = self._recent.get(key)
        if entry is None:
            return False, None
        finished_at, result = entry
        if self._clock() - finished_at > self.reuse_window:
            self._recent.pop(key, None)
            return False, None
        return True, result

    def _on_done(self, key: str, task: asyncio.Future) -> None:
        self._in_flight.pop(key, None)
        if task.cancelled() or task.exception() is not None:
            return
        if self.reuse_window > 0:
            self._recent[key] = (self._clock(), task.result())

    async def run(self, key: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        """Join the in-flight call for key, reuse a fresh result, or start fn"""
        hit, result = self._recent_result(key)
        if hit:
            logger.debug("Single-flight reuse of a recent result")
            return result

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(fn())
            self._in_flight[key] = task
            task.add_done_callback(lambda t: self._on_done(key, t))
        else:
            logger.debug("Single-flight join of an in-flight call")

        # A cancelled waiter must not cancel the shared call
        return await asyncio.shield(task)

    def forget(self, key: Optional[str] = None) -> None:
        """Drop cached results for key, or all of them"""
        if key is None:
            self._recent.clear()
        else:
            self._recent.pop(key, None)
