import asyncio
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from time import perf_counter

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from wishsync.core.config import Settings
from wishsync.core.sync_metrics import SyncMetrics
from wishsync.realtime.feed import Change, ChangeFeed, Subscription


logger = logging.getLogger("wishsync.store")

WriteFn = Callable[[AsyncSession], Awaitable[list[Change]]]


class Base(DeclarativeBase):
    pass


def _engine_options(dsn: str, settings: Settings | None) -> dict[str, object]:
    options: dict[str, object] = {"echo": False, "future": True, "pool_pre_ping": True}
    if settings is not None and "postgresql" in dsn.lower():
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_recycle=settings.db_pool_recycle,
            pool_timeout=settings.db_pool_timeout,
        )
    return options


class DocumentStore:
    """The real-time document store shared by every device.

    Owns the engine, the change feed and the fire-and-forget writes. Writes
    run one at a time in submission order; each committed write is published
    to the feed so live subscriptions re-emit their snapshot. A failed write
    is logged and counted, never reported to whoever submitted it.
    """

    def __init__(self, dsn: str, *, settings: Settings | None = None, metrics: SyncMetrics | None = None) -> None:
        self.dsn = dsn
        self.engine = create_async_engine(dsn, **_engine_options(dsn, settings))
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
            autoflush=False,
        )
        self.metrics = metrics or SyncMetrics()
        self.feed = ChangeFeed()
        self._pending: set[asyncio.Task] = set()
        self._write_lock = asyncio.Lock()
        self._schema_ready = False
        self._schema_lock = asyncio.Lock()
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "DocumentStore":
        return cls(settings.database_dsn, settings=settings)

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    async def ensure_schema_ready(self) -> None:
        """Create the collections once."""
        if self._schema_ready:
            return

        async with self._schema_lock:
            if self._schema_ready:
                return

            from wishsync.models import models as _models  # noqa: F401

            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            self._schema_ready = True

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        await self.ensure_schema_ready()
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    def submit(self, description: str, write: WriteFn) -> None:
        """Schedule a write and return without waiting for it."""
        if self._closed:
            raise RuntimeError("DocumentStore is closed")
        task = asyncio.get_running_loop().create_task(self._run_write(description, write))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _run_write(self, description: str, write: WriteFn) -> None:
        async with self._write_lock:
            start = perf_counter()
            try:
                async with self.session() as session:
                    changes = await write(session)
                    await session.commit()
            except Exception:
                duration_ms = (perf_counter() - start) * 1000.0
                self.metrics.record_write(duration_ms, error=True)
                logger.exception("Write failed op=%s duration_ms=%.2f", description, duration_ms)
                return
            duration_ms = (perf_counter() - start) * 1000.0
            self.metrics.record_write(duration_ms, error=False)
            logger.debug("Write committed op=%s duration_ms=%.2f", description, duration_ms)

            for change in changes:
                await self.feed.publish(change)

    async def flush(self) -> None:
        """Wait until every write submitted so far has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def open_subscription(
        self,
        collection: str,
        query: Callable[[], Awaitable[object]],
        matches: Callable[[dict], bool],
        *,
        name: str = "",
    ) -> Subscription:
        """Attach a live subscription and queue its first snapshot."""
        if self._closed:
            raise RuntimeError("DocumentStore is closed")
        subscription = Subscription(
            collection,
            query,
            matches,
            feed=self.feed,
            metrics=self.metrics,
            name=name,
        )
        self.feed.attach(subscription)
        try:
            await subscription.refresh()
        except BaseException:
            subscription.cancel()
            raise
        return subscription

    async def close(self) -> None:
        if self._closed:
            return
        await self.flush()
        self._closed = True
        self.feed.close()
        await self.engine.dispose()
        logger.info("DocumentStore closed dsn=%s", self.dsn)
