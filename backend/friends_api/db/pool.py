import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool


logger = logging.getLogger(__name__)

T = TypeVar("T")


class PoolExhausted(Exception):
    """No handle became free within the acquire timeout."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"No database connection available within {timeout:g}s")
        self.timeout = timeout


class Handle:
    """A leased unit of work: one session, used by one task at a time."""

    def __init__(self, session: Session) -> None:
        self._session = session

    async def interact(self, fn: Callable[[Session], T]) -> T:
        """Run ``fn(session)`` on a worker thread and await its result."""
        return await run_in_threadpool(self._run, fn)

    def _run(self, fn: Callable[[Session], T]) -> T:
        try:
            return fn(self._session)
        except Exception:
            self._session.rollback()
            raise

    def close(self) -> None:
        self._session.close()


class ConnectionPool:
    """Bounded set of handles over a SQLAlchemy engine.

    Waiting for a free handle suspends the calling task instead of a worker
    thread; only the store work itself runs in the threadpool.
    """

    def __init__(self, engine: Engine, size: int, acquire_timeout: float) -> None:
        if size < 1:
            raise ValueError("Pool size must be at least 1")
        if isinstance(engine.pool, StaticPool) and size > 1:
            # Every StaticPool checkout is the same DBAPI connection.
            logger.warning("Engine has a single shared connection; limiting pool to 1 handle")
            size = 1
        self.engine = engine
        self.size = size
        self.acquire_timeout = acquire_timeout
        self.in_use = 0
        self._slots = asyncio.Semaphore(size)
        self._session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    async def _take_slot(self) -> None:
        waiter = asyncio.ensure_future(self._slots.acquire())
        try:
            done, _ = await asyncio.wait({waiter}, timeout=self.acquire_timeout)
        except BaseException:
            self._abandon(waiter)
            raise
        if not done:
            self._abandon(waiter)
            logger.warning(
                "Connection pool exhausted",
                extra={"pool_size": self.size, "acquire_timeout": self.acquire_timeout},
            )
            raise PoolExhausted(self.acquire_timeout)

    def _abandon(self, waiter: asyncio.Future) -> None:
        # A slot granted after we stopped waiting goes straight back.
        if waiter.done() and not waiter.cancelled():
            self._slots.release()
        else:
            waiter.add_done_callback(self._release_if_granted)
            waiter.cancel()

    def _release_if_granted(self, waiter: asyncio.Future) -> None:
        if not waiter.cancelled() and waiter.exception() is None:
            self._slots.release()

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[Handle]:
        await self._take_slot()

        self.in_use += 1
        handle = Handle(self._session_factory())
        try:
            yield handle
        finally:
            try:
                await run_in_threadpool(handle.close)
            finally:
                self.in_use -= 1
                self._slots.release()

    def dispose(self) -> None:
        self.engine.dispose()
