import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from wishsync.core.sync_metrics import SyncMetrics


logger = logging.getLogger("wishsync.feed")

_CLOSED = object()


@dataclass(frozen=True)
class Change:
    """A committed write: the collection and the key fields of the touched document."""

    collection: str
    doc: dict[str, Any] = field(default_factory=dict)


class Stream:
    """Async iterator over snapshots with an idempotent ``cancel()``.

    At most one snapshot waits to be read: a newer one replaces it. Whatever
    is still queued when the stream is cancelled is dropped.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _emit(self, snapshot: Any) -> int:
        """Queue ``snapshot`` in place of any unread one; returns how many were replaced."""
        if self._cancelled:
            return 0
        replaced = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            replaced += 1
        self._queue.put_nowait(snapshot)
        return replaced

    def _close(self) -> int:
        dropped = 0
        while not self._queue.empty():
            if self._queue.get_nowait() is not _CLOSED:
                dropped += 1
        self._queue.put_nowait(_CLOSED)
        return dropped

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._close()

    def __aiter__(self) -> "Stream":
        return self

    async def __anext__(self) -> Any:
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the marker so every later read also stops.
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    async def next(self, timeout: float | None = None) -> Any:
        return await asyncio.wait_for(self.__anext__(), timeout)

    async def __aenter__(self) -> "Stream":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.cancel()


class Subscription(Stream):
    """A live stream of full snapshots of one query, fed by a ChangeFeed."""

    def __init__(
        self,
        collection: str,
        query: Callable[[], Awaitable[Any]],
        matches: Callable[[dict[str, Any]], bool],
        *,
        feed: "ChangeFeed | None" = None,
        metrics: SyncMetrics | None = None,
        name: str = "",
    ) -> None:
        super().__init__()
        self.collection = collection
        self.name = name or collection
        self._query = query
        self._matches = matches
        self._feed = feed
        self._metrics = metrics or SyncMetrics()
        self._refresh_lock = asyncio.Lock()

    @classmethod
    def single(cls, snapshot: Any, *, name: str = "") -> "Subscription":
        """Emit one snapshot and end, without ever attaching to a feed."""

        async def _no_query() -> Any:
            return snapshot

        sub = cls("", _no_query, lambda doc: False, name=name or "single")
        sub._emit(snapshot)
        sub._queue.put_nowait(_CLOSED)
        return sub

    @property
    def attached(self) -> bool:
        return self._feed is not None

    def matches(self, doc: dict[str, Any]) -> bool:
        return self._matches(doc)

    async def refresh(self) -> bool:
        """Re-run the query and queue the snapshot. Returns False if nothing was emitted."""
        if self._cancelled:
            return False
        async with self._refresh_lock:
            if self._cancelled:
                return False
            try:
                snapshot = await self._query()
            except Exception as exc:
                # A failed snapshot simply does not emit.
                self._metrics.record_refresh_failed()
                logger.warning("Subscription refresh failed sub=%s error=%s", self.name, exc)
                return False
            if self._cancelled:
                self._metrics.record_discarded()
                logger.debug("Late snapshot discarded sub=%s", self.name)
                return False
            replaced = self._emit(snapshot)
            self._metrics.record_emitted()
            if replaced:
                self._metrics.record_discarded(replaced)
            return True

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        feed, self._feed = self._feed, None
        if feed is not None:
            feed.detach(self)
        dropped = self._close()
        if dropped:
            self._metrics.record_discarded(dropped)
        logger.debug("Subscription cancelled sub=%s dropped=%s", self.name, dropped)


class ChangeFeed:
    """Routes committed changes to the subscriptions watching that collection."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscription]] = defaultdict(list)

    def attach(self, subscription: Subscription) -> None:
        self._subscribers[subscription.collection].append(subscription)
        logger.debug(
            "Feed attach collection=%s sub=%s total=%s",
            subscription.collection,
            subscription.name,
            len(self._subscribers[subscription.collection]),
        )

    def detach(self, subscription: Subscription) -> None:
        collection = subscription.collection
        if collection not in self._subscribers:
            return
        self._subscribers[collection] = [
            sub for sub in self._subscribers[collection] if sub is not subscription
        ]
        if not self._subscribers[collection]:
            self._subscribers.pop(collection, None)
        logger.debug("Feed detach collection=%s sub=%s", collection, subscription.name)

    def listener_count(self, collection: str | None = None) -> int:
        if collection is not None:
            return len(self._subscribers.get(collection, []))
        return sum(len(subs) for subs in self._subscribers.values())

    async def publish(self, change: Change) -> int:
        """Refresh every matching subscription; returns how many emitted."""
        if change.collection not in self._subscribers:
            return 0
        emitted = 0
        for subscription in list(self._subscribers[change.collection]):
            if subscription.cancelled:
                continue
            try:
                matched = subscription.matches(change.doc)
            except Exception:
                logger.exception("Subscription filter failed sub=%s", subscription.name)
                continue
            if matched and await subscription.refresh():
                emitted += 1
        return emitted

    def close(self) -> None:
        for subscriptions in list(self._subscribers.values()):
            for subscription in list(subscriptions):
                subscription.cancel()
        self._subscribers.clear()
