"""Cancellation and deadline carried through one spawner call.

A ``CallContext`` is created by the caller and handed to ``spawn``,
``kill`` or ``ps``. It holds an optional absolute deadline (monotonic clock)
and a cancellation flag. Every backend call and every poll tick goes through
it, so cancelling the context or letting its deadline expire aborts the
operation at the next suspension point.

Architecture:

    .. code-block:: text

        CallContext
        ├── deadline        absolute monotonic timestamp or None
        ├── cancel()        flag + wake every waiter
        ├── err()           ContextCancelled | DeadlineExceeded | None
        ├── run(aw)         race aw against cancel + deadline
        ├── sleep(seconds)  poll timer, always released on abort
        └── detached(t)     fresh context, independent of this one

    .. mermaid::

        flowchart LR
            RUN[run aw] --> W{first of}
            W -->|aw done| R[result]
            W -->|cancel()| C[ContextCancelled]
            W -->|deadline| D[DeadlineExceeded]

Example:
    >>> ctx = CallContext(timeout=30.0)
    >>> world = await spawner.spawn(payload, ctx)

    >>> # Cleanup that must not be skipped when ctx is already done:
    >>> cleanup = ctx.detached(5.0)
    >>> await cleanup.run(backend.stop(cluster, run_id))

Tags:
    cancellation, deadline, asyncio, spawner
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable
from typing import TypeVar

from spawner.errors import CancellationError, ContextCancelled, DeadlineExceeded

T = TypeVar("T")


class CallContext:
    """Deadline and cancellation token for a single spawner call.

    Args:
        timeout: Seconds from now until the deadline. None = no deadline.
        deadline: Absolute ``time.monotonic()`` deadline. Wins over timeout.
    """

    def __init__(self, timeout: float | None = None, *, deadline: float | None = None) -> None:
        if timeout is not None and timeout < 0:
            raise ValueError(f"Timeout must be non-negative, got {timeout}")
        if deadline is None and timeout is not None:
            deadline = time.monotonic() + timeout
        self.deadline = deadline
        self._cancelled = asyncio.Event()

    def __repr__(self) -> str:
        return f"CallContext(remaining={self.remaining()!r}, cancelled={self.cancelled})"

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Cancel the context. Pending ``run``/``sleep`` calls abort."""
        self._cancelled.set()

    def remaining(self) -> float | None:
        """Seconds left until the deadline, or None without a deadline."""
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def err(self) -> CancellationError | None:
        """The reason this context is done, or None while it is live."""
        if self.cancelled:
            return ContextCancelled("context cancelled")
        if self.expired():
            return DeadlineExceeded("context deadline exceeded")
        return None

    def raise_if_done(self) -> None:
        error = self.err()
        if error is not None:
            raise error

    async def run(self, aw: Awaitable[T]) -> T:
        """Await *aw* unless the context is cancelled or its deadline hits first.

        The losing side of the race is cancelled before returning, so no
        task outlives the call.

        Raises:
            ContextCancelled: ``cancel()`` was called first.
            DeadlineExceeded: The deadline passed first.
        """
        try:
            self.raise_if_done()
        except CancellationError:
            if asyncio.iscoroutine(aw):
                aw.close()
            raise

        task = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._cancelled.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()

        if task in done:
            return task.result()
        if self.cancelled:
            raise ContextCancelled("context cancelled")
        raise DeadlineExceeded("context deadline exceeded")

    async def sleep(self, seconds: float) -> None:
        """Wait *seconds*, aborting early on cancellation or deadline."""
        await self.run(asyncio.sleep(seconds))

    def detached(self, timeout: float | None = None) -> CallContext:
        """A new context that ignores this one's cancellation and deadline."""
        return CallContext(timeout=timeout)
