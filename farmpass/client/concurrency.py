"""
Concurrency primitives for the push client.

    await_with_deadline   race an awaitable against a timeout, returning a
                          tagged Ok / TimedOut instead of raising
    SharedResourceRegistry
                          one underlying resource per descriptor, opened on
                          the first listener and torn down on the last
    InFlight              coalesce concurrent calls per key onto one task
    CancelToken           liveness flag checked after every suspension point

Usage:
    from farmpass.client.concurrency import await_with_deadline, Ok

    result = await await_with_deadline(container.ready(), 10.0)
    if isinstance(result, Ok):
        registration = result.value
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Deadlines
# =============================================================================


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class TimedOut:
    timeout: float


async def await_with_deadline(awaitable: Awaitable[T], timeout: float) -> "Ok[T] | TimedOut":
    """
    Await `awaitable` for at most `timeout` seconds.

    The pending work is cancelled when the deadline passes. Exceptions raised
    by the awaitable itself propagate unchanged.
    """
    try:
        value = await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError:
        return TimedOut(timeout)
    return Ok(value)


# =============================================================================
# Shared resources
# =============================================================================


Listener = Callable[[Any], None]
Teardown = Callable[[], None]
Opener = Callable[[Callable[[Any], None]], Teardown]


@dataclass
class _SharedEntry:
    listeners: list[Listener] = field(default_factory=list)
    teardown: Teardown | None = None


class SharedResourceRegistry:
    """
    Reference-counted registry of external subscriptions.

    Each descriptor maps to one underlying resource. The opener receives a
    dispatch function and returns a teardown callback; it runs when the
    first listener arrives and the teardown runs when the last one leaves.
    """

    def __init__(self):
        self._entries: dict[Hashable, _SharedEntry] = {}

    def subscribe(self, descriptor: Hashable, opener: Opener, listener: Listener) -> Callable[[], None]:
        """
        Attach a listener to the resource for `descriptor`.

        Returns:
            An idempotent function that detaches this listener
        """
        entry = self._entries.get(descriptor)
        if entry is None:
            entry = _SharedEntry()
            self._entries[descriptor] = entry
            entry.listeners.append(listener)
            try:
                entry.teardown = opener(lambda event: self._dispatch(descriptor, event))
            except Exception:
                del self._entries[descriptor]
                raise
            logger.debug(f"Opened shared resource {descriptor!r}")
        else:
            entry.listeners.append(listener)

        detached = False

        def unsubscribe() -> None:
            nonlocal detached
            if detached:
                return
            detached = True
            self._release(descriptor, listener)

        return unsubscribe

    def _dispatch(self, descriptor: Hashable, event: Any) -> None:
        entry = self._entries.get(descriptor)
        if entry is None:
            return
        for listener in list(entry.listeners):
            listener(event)

    def _release(self, descriptor: Hashable, listener: Listener) -> None:
        entry = self._entries.get(descriptor)
        if entry is None:
            return
        entry.listeners.remove(listener)
        if entry.listeners:
            return
        del self._entries[descriptor]
        if entry.teardown:
            entry.teardown()
        logger.debug(f"Closed shared resource {descriptor!r}")

    def listener_count(self, descriptor: Hashable) -> int:
        entry = self._entries.get(descriptor)
        return len(entry.listeners) if entry else 0

    def is_open(self, descriptor: Hashable) -> bool:
        return descriptor in self._entries


_registry: SharedResourceRegistry | None = None


def get_registry() -> SharedResourceRegistry:
    """Get the process-wide registry, creating it on first use."""
    global _registry
    if _registry is None:
        _registry = SharedResourceRegistry()
    return _registry


# =============================================================================
# In-flight coalescing
# =============================================================================


class InFlight:
    """
    At most one running task per key.

    A second caller for a key that is already running awaits the same task
    and receives the same result or exception. The slot is freed when the
    task finishes, so the next call after completion starts fresh work.
    """

    def __init__(self):
        self._tasks: dict[Hashable, asyncio.Task] = {}

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        else:
            logger.debug(f"Joining in-flight call for {key!r}")
        # shield so one caller's cancellation does not cancel the shared work
        return await asyncio.shield(task)

    def _forget(self, key: Hashable, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]

    def is_running(self, key: Hashable) -> bool:
        return key in self._tasks


# =============================================================================
# Cancellation
# =============================================================================


class CancelToken:
    """Set once the owner of an async flow goes away."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def alive(self) -> bool:
        return not self._cancelled
