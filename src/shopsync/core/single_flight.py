"""Single-flight guard for backfill runs.

At most one run per key is in flight. A caller arriving while the run for
its key is still going joins that run and receives the same result (or
the same exception) instead of starting a second listing.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Hashable, TypeVar

from shopsync.core.logger import setup_logger

logger = setup_logger(__name__)

T = TypeVar("T")


class SingleFlight:
    """Keyed in-process single-flight group."""

    def __init__(self):
        self._inflight: Dict[Hashable, asyncio.Future] = {}
        self._lock = asyncio.Lock()

    async def run(self, key: Hashable, func: Callable[[], Awaitable[T]]) -> T:
        """
        Run func under key, or join the run already in flight for key.

        Args:
            key: Guard key, e.g. (tenant_id, collection)
            func: Zero-argument coroutine function performing the work

        Returns:
            The result of the single execution for this key
        """
        async with self._lock:
            future = self._inflight.get(key)
            leader = future is None
            if leader:
                future = asyncio.get_running_loop().create_future()
                self._inflight[key] = future

        if not leader:
            logger.info(f"Joining in-flight run for {key}")
            # shield: a cancelled follower must not cancel the leader's result
            return await asyncio.shield(future)

        try:
            result = await func()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unobserved failure is not reported twice
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            async with self._lock:
                self._inflight.pop(key, None)

    def in_flight(self, key: Hashable) -> bool:
        return key in self._inflight

    def keys(self) -> Any:
        return list(self._inflight.keys())
