"""
Request coalescing so concurrent callers share one in-flight operation.

Used for background revalidation (one refresh per URL at a time) and for
queue drains (a sync trigger that arrives mid-drain joins the running drain).
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger("caseworker.coalescer")


@dataclass
class InFlightOperation:
    """Tracks an in-progress operation."""
    future: asyncio.Future
    started_at: float = field(default_factory=time.time)
    waiter_count: int = 0


class RequestCoalescer:
    """
    Ensures concurrent callers for the same key share one execution.

    Pattern:
    - First caller for a key starts the operation
    - Later callers for the same key await the same future
    - When it completes, every caller gets the same result or exception

    Usage:
        coalescer = RequestCoalescer()
        result = await coalescer.get_or_run(
            key="revalidate:https://...",
            operation=lambda: fetch_and_store(),
        )
    """

    def __init__(self, timeout: Optional[float] = None):
        """
        Args:
            timeout: Max seconds a joining caller waits (None waits forever)
        """
        self._in_flight: Dict[str, InFlightOperation] = {}
        self._timeout = timeout

    def is_running(self, key: str) -> bool:
        return key in self._in_flight

    async def get_or_run(
        self,
        key: str,
        operation: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Either join an existing in-flight operation or start a new one.

        Raises:
            asyncio.TimeoutError: If a joining caller times out
            Exception: Any error from the operation is propagated to every caller
        """
        in_flight = self._in_flight.get(key)
        if in_flight is not None:
            in_flight.waiter_count += 1
            logger.debug(f"Coalescing {key} (waiters: {in_flight.waiter_count})")
            # Shield so a waiter giving up does not cancel the initiator
            return await asyncio.wait_for(asyncio.shield(in_flight.future), self._timeout)

        future = asyncio.get_running_loop().create_future()
        self._in_flight[key] = InFlightOperation(future=future)
        logger.debug(f"Starting {key}")

        try:
            result = await operation()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Retrieve so an unawaited future does not log "exception never retrieved"
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            del self._in_flight[key]

    @property
    def active_operations(self) -> int:
        return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "active_operations": len(self._in_flight),
            "active_keys": list(self._in_flight.keys()),
        }
