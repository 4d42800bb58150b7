"""
ArcFlux Multiplexer - Shared Live-State Subscriptions
=====================================================

This module lets any number of independent callers watch the same piece of
ledger state without each of them opening its own upstream subscription.

How It Works
------------

The multiplexer keeps a registry with one record per observed key. A record
holds the last known value, the listener handles attached to it, and a
reference count. A single shared feed (usually "new block" notifications)
drives every record: on each tick every registered key is re-read, and
listeners are notified only for the keys whose value actually changed.

```
observe(k1) ─┐                      ┌─ read(k1) ─> changed? ─> listeners of k1
observe(k1) ─┼─> registry ─ tick ───┤
observe(k2) ─┘      │               └─ read(k2) ─> changed? ─> listeners of k2
                    └── one shared feed, started on first key, stopped on last
```

Lifecycle
---------

- The first `observe(key)` creates the record, seeds it with one read and
  starts the shared feed if none is running.
- Later observers of the same key share the record; they receive the current
  value immediately instead of waiting for the next tick.
- `cancel(handle)` is synchronous. The record is dropped when its count reaches
  zero and the feed is stopped when the registry becomes empty.
- A feed failure is delivered as `SubscriptionError` to every registered key
  and clears the registry. An `observe()` still waiting for its seed read is
  failed with it at once. Observing again starts a fresh feed.
- A failed read for one key is delivered as `ReadError` to that key's
  listeners only; the key stays registered.

Ordering
--------

Reads are tagged with a per-record generation number. A read that completes
after a fresher one for the same key has been applied is discarded, as is any
read that completes after its key was cancelled.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Set

import numpy as np

from .endpoints import EventSource, FeedHandle, ReadEndpoint
from .errors import ReadError, SubscriptionError
from .keys import ObservedKey

Listener = Callable[[Any], None]
ErrorListener = Callable[[BaseException], None]


def values_equal(a: Any, b: Any) -> bool:
    try:
        if isinstance(a, np.ndarray) or isinstance(b, np.ndarray):
            if type(a) != type(b):
                return False
            return np.array_equal(a, b)
        return a == b
    except (ValueError, TypeError):
        return False


class SubscriptionHandle:
    """
    One caller's interest in one observed key.

    Returned by `SubscriptionMultiplexer.observe()`. Holds the caller's
    callbacks; `cancel()` releases the interest.
    """

    __slots__ = ("key", "_multiplexer", "_on_next", "_on_error", "_active", "_last")

    def __init__(
        self,
        multiplexer: "SubscriptionMultiplexer",
        key: ObservedKey,
        on_next: Listener,
        on_error: Optional[ErrorListener] = None,
    ):
        self.key = key
        self._multiplexer = multiplexer
        self._on_next = on_next
        self._on_error = on_error
        self._active = True
        self._last: Any = None

    @property
    def active(self) -> bool:
        return self._active

    @property
    def value(self) -> Any:
        """Last value delivered to this handle."""
        return self._last

    def cancel(self) -> None:
        self._multiplexer.cancel(self)

    def _emit(self, value: Any) -> None:
        self._last = value
        try:
            self._on_next(value)
        except Exception as e:
            logging.error(f"Error in listener for {self.key!r}: {e}")

    def _fail(self, error: BaseException) -> None:
        if self._on_error is None:
            logging.error(f"Unhandled error for {self.key!r}: {error}")
            return
        try:
            self._on_error(error)
        except Exception as e:
            logging.error(f"Error in error listener for {self.key!r}: {e}")

    def __repr__(self) -> str:
        state = "active" if self._active else "closed"
        return f"SubscriptionHandle({self.key!r}, {state})"


class _Record:
    """Registry entry for one observed key."""

    __slots__ = (
        "key",
        "value",
        "seeded",
        "listeners",
        "ref_count",
        "seed",
        "ready",
        "generation",
        "applied",
    )

    def __init__(self, key: ObservedKey):
        self.key = key
        self.value: Any = None
        self.seeded = False
        # insertion-ordered set
        self.listeners: Dict[SubscriptionHandle, None] = {}
        self.ref_count = 0
        self.seed: Optional[asyncio.Future] = None
        # resolves to None once seeded, or to the error that ended seeding
        self.ready: Optional[asyncio.Future] = None
        self.generation = 0
        self.applied = 0


class SubscriptionMultiplexer:
    """
    Fan-out of live ledger values over a single shared feed.

    Args:
        reader: point-in-time reader, called once per key per tick
        source: the shared change-notification source
        comparator: equality used for dedup-on-change

    All methods must be called from the event loop thread.
    """

    def __init__(
        self,
        reader: ReadEndpoint,
        source: EventSource,
        comparator: Callable[[Any, Any], bool] = values_equal,
    ):
        self._reader = reader
        self._source = source
        self._equal = comparator
        self._registry: Dict[ObservedKey, _Record] = {}
        self._feed: Optional[FeedHandle] = None
        # bumped whenever the feed is replaced, so late callbacks from a
        # discarded feed are ignored
        self._epoch = 0
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: Set[asyncio.Future] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def observe(
        self,
        key: ObservedKey,
        on_next: Listener,
        on_error: Optional[ErrorListener] = None,
    ) -> SubscriptionHandle:
        """
        Register interest in `key`.

        The returned handle has already received the key's current value by
        the time this coroutine returns. Raises the seed read's exception if
        the key could not be read initially, and SubscriptionError if the feed
        could not be started, failed, or was closed while the key was being seeded.
        """
        self._loop = asyncio.get_running_loop()
        record = self._registry.get(key)
        if record is None:
            record = self._create(key)
        record.ref_count += 1

        try:
            error = await asyncio.shield(record.ready)
        except BaseException:
            self._release(record)
            raise

        if error is not None:
            self._release(record)
            raise error
        if self._registry.get(key) is not record:
            raise SubscriptionError(f"Subscription to {key!r} was closed while seeding")

        handle = SubscriptionHandle(self, key, on_next, on_error)
        record.listeners[handle] = None
        handle._emit(record.value)
        return handle

    def cancel(self, handle: SubscriptionHandle) -> None:
        """Release `handle`. Safe to call more than once."""
        if not handle._active:
            return
        handle._active = False
        record = self._registry.get(handle.key)
        if record is None or handle not in record.listeners:
            return
        del record.listeners[handle]
        self._release(record)

    async def aclose(self) -> None:
        """Cancel every handle, stop the feed and wait for in-flight reads."""
        closed = SubscriptionError("Subscription multiplexer was closed")
        for record in list(self._registry.values()):
            self._settle(record, closed)
            for handle in tuple(record.listeners):
                handle._active = False
        self._registry.clear()
        self._stop_feed()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def has_feed(self) -> bool:
        return self._feed is not None

    def keys(self) -> List[ObservedKey]:
        return list(self._registry)

    def ref_count(self, key: ObservedKey) -> int:
        record = self._registry.get(key)
        return record.ref_count if record is not None else 0

    def last_value(self, key: ObservedKey) -> Any:
        record = self._registry.get(key)
        if record is None or not record.seeded:
            raise KeyError(key)
        return record.value

    def __len__(self) -> int:
        return len(self._registry)

    def __contains__(self, key: object) -> bool:
        return key in self._registry

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def _create(self, key: ObservedKey) -> _Record:
        record = _Record(key)
        self._registry[key] = record
        try:
            self._start_feed()
        except Exception as e:
            del self._registry[key]
            raise SubscriptionError(f"Could not start the shared feed: {e}", cause=e) from e
        record.ready = self._loop.create_future()
        record.seed = self._spawn(self._seed(record))
        return record

    def _release(self, record: _Record) -> None:
        if self._registry.get(record.key) is not record:
            return
        record.ref_count -= 1
        if record.ref_count > 0:
            return
        del self._registry[record.key]
        if not self._registry:
            self._stop_feed()

    def _discard(self, record: _Record) -> None:
        if self._registry.get(record.key) is record:
            del self._registry[record.key]
            if not self._registry:
                self._stop_feed()

    async def _seed(self, record: _Record) -> None:
        record.generation += 1
        generation = record.generation
        try:
            value = await self._reader.read(record.key)
        except Exception as e:
            self._discard(record)
            self._settle(record, e)
            return
        if generation > record.applied:
            record.applied = generation
            record.value = value
        record.seeded = True
        self._settle(record)

    def _settle(self, record: _Record, error: Optional[BaseException] = None) -> None:
        if record.ready is not None and not record.ready.done():
            record.ready.set_result(error)

    # ------------------------------------------------------------------
    # Shared feed
    # ------------------------------------------------------------------

    def _start_feed(self) -> None:
        if self._feed is not None:
            return
        self._epoch += 1
        epoch = self._epoch
        logging.debug("Starting shared feed")
        self._feed = self._source.subscribe(
            lambda event: self._on_tick(epoch, event),
            lambda error: self._on_feed_error(epoch, error),
        )

    def _stop_feed(self) -> None:
        feed, self._feed = self._feed, None
        self._epoch += 1
        if feed is not None:
            logging.debug("Stopping shared feed")
            feed.unsubscribe()

    def _on_tick(self, epoch: int, event: Any) -> None:
        if epoch != self._epoch:
            return
        # listeners may cancel while we iterate
        for key in list(self._registry):
            record = self._registry.get(key)
            if record is None or not record.seeded:
                continue
            record.generation += 1
            self._spawn(self._refresh(record, record.generation))

    def _on_feed_error(self, epoch: int, error: BaseException) -> None:
        if epoch != self._epoch:
            return
        logging.error(f"Shared feed failed: {error}")
        failure = SubscriptionError(f"Shared feed failed: {error}", cause=error)
        records = list(self._registry.values())
        self._registry.clear()
        try:
            self._stop_feed()
        except Exception as e:
            logging.error(f"Error while stopping the failed feed: {e}")
        for record in records:
            if not record.seeded:
                self._settle(record, failure)
                if record.seed is not None:
                    record.seed.cancel()
            for handle in tuple(record.listeners):
                handle._active = False
                handle._fail(failure)

    async def _refresh(self, record: _Record, generation: int) -> None:
        try:
            value = await self._reader.read(record.key)
        except Exception as e:
            if not self._is_current(record, generation):
                logging.debug(f"Discarding failed stale read for {record.key!r}: {e}")
                return
            record.applied = generation
            self._broadcast_error(record, ReadError(record.key, e))
            return

        if not self._is_current(record, generation):
            logging.debug(f"Discarding stale read for {record.key!r}")
            return
        record.applied = generation
        if self._equal(record.value, value):
            return
        record.value = value
        self._broadcast(record, value)

    def _is_current(self, record: _Record, generation: int) -> bool:
        return self._registry.get(record.key) is record and generation > record.applied

    def _broadcast(self, record: _Record, value: Any) -> None:
        for handle in tuple(record.listeners):
            if handle._active:
                handle._emit(value)

    def _broadcast_error(self, record: _Record, error: BaseException) -> None:
        for handle in tuple(record.listeners):
            if handle._active:
                handle._fail(error)

    def _spawn(self, coro) -> asyncio.Future:
        task = self._loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
