"""
Follow mode: continuous tailing over bounded queries.

Backends that only answer historical range queries are tailed by polling a
window that advances over time:

    window_to = clock() - latency_buffer
    query [window_from, window_to)
    window_from = window_to          (only after the query succeeded)
    sleep(poll_interval)

The latency buffer leaves the backend time to index late arriving records,
and since consecutive windows share their boundary nothing is skipped or
repeated. A failed poll ends the loop; nothing is retried.

Backends with native streaming skip the loop and hand a single unbounded
request to QueryExecutor.stream.
"""

import asyncio
import logging
from datetime import datetime, timedelta, tzinfo
from typing import Awaitable, Callable, Optional, Sequence

from .backends.base import LogBackend
from .executor import QueryExecutor
from .models import FollowState, GenericQuery
from .timerange import format_instant, resolve, truncate, utc_now

logger = logging.getLogger(__name__)


def initial_state(
    node: str,
    start: Optional[str],
    latency: float,
    poll_interval: float,
    reference: datetime,
    tz: Optional[tzinfo] = None
) -> FollowState:
    """
    Build the starting FollowState.

    Args:
        node: Node name (for logging)
        start: Time expression for the first window, None to start at
            reference - latency
        latency: Latency buffer in seconds
        poll_interval: Pause between polls in seconds
        reference: Instant `start` is resolved against
    """
    latency_buffer = timedelta(seconds=latency)
    if start:
        window_from = resolve(start, reference, tz).start
    else:
        window_from = truncate(reference - latency_buffer)

    return FollowState(
        node=node,
        window_from=window_from,
        poll_interval=timedelta(seconds=poll_interval),
        latency_buffer=latency_buffer,
    )


class FollowEngine:
    """
    Drives a QueryExecutor in a poll loop.

    `clock` returns the current UTC instant and `sleep` pauses for a number
    of seconds; both can be replaced to run iterations without waiting.

    Usage:
        engine = FollowEngine(executor, backend, state, terms=["error"])
        async with backend:
            await engine.run()
    """

    def __init__(
        self,
        executor: QueryExecutor,
        backend: LogBackend,
        state: FollowState,
        terms: Sequence[str] = (),
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.executor = executor
        self.backend = backend
        self.state = state
        self.terms = tuple(terms)
        self.clock = clock
        self.sleep = sleep

    async def poll_once(self) -> int:
        """Query the next window and advance it, returns lines emitted."""
        window_to = truncate(self.clock() - self.state.latency_buffer)

        if window_to <= self.state.window_from:
            # Clock went backwards or the buffer outgrew the elapsed time
            logger.debug(
                f"Empty window at {format_instant(window_to)}, "
                f"waiting for {format_instant(self.state.window_from)}"
            )
            return 0

        query = GenericQuery(
            start=self.state.window_from,
            end=window_to,
            terms=self.terms
        )
        emitted = await self.executor.run(self.backend, query)

        self.state.window_from = window_to
        return emitted

    async def run(self, max_iterations: Optional[int] = None) -> int:
        """
        Follow until cancelled (or for max_iterations polls).

        Returns the total number of lines emitted.
        """
        if self.backend.capabilities.native_streaming:
            logger.info(f"Following {self.state.node} with a streaming tail")
            return await self.executor.stream(
                self.backend,
                self.state.window_from,
                self.terms
            )

        logger.info(f"Following {self.state.node}: {self.state.to_dict()}")
        total = 0
        while max_iterations is None or self.state.iterations < max_iterations:
            total += await self.poll_once()
            self.state.iterations += 1
            await self.sleep(self.state.poll_interval.total_seconds())

        return total
