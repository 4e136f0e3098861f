import asyncio

import pytest
from sqlalchemy import Engine, text
from sqlalchemy.exc import OperationalError

from friends_api.core.config import Settings
from friends_api.db.pool import ConnectionPool, PoolExhausted
from friends_api.db.session import create_db_engine
from friends_api.repositories.friends import create_friend, list_friends
from friends_api.schemas.friend import NewFriend


def test_handle_is_released_after_use(engine: Engine) -> None:
    async def scenario() -> int:
        pool = ConnectionPool(engine, size=2, acquire_timeout=1.0)
        async with pool.acquire() as handle:
            assert pool.in_use == 1
            value = await handle.interact(lambda session: session.execute(text("SELECT 1")).scalar_one())
        assert pool.in_use == 0
        return value

    assert asyncio.run(scenario()) == 1


def test_handle_is_released_when_work_fails(engine: Engine) -> None:
    def fail(session):
        session.execute(text("SELECT * FROM no_such_table"))

    async def scenario() -> None:
        pool = ConnectionPool(engine, size=1, acquire_timeout=0.2)
        with pytest.raises(OperationalError):
            async with pool.acquire() as handle:
                await handle.interact(fail)
        assert pool.in_use == 0

        # The only slot is free again.
        async with pool.acquire() as handle:
            assert await handle.interact(list_friends) == []

    asyncio.run(scenario())


def test_acquire_times_out_when_pool_is_exhausted(engine: Engine) -> None:
    async def scenario() -> None:
        pool = ConnectionPool(engine, size=1, acquire_timeout=0.05)
        async with pool.acquire():
            with pytest.raises(PoolExhausted):
                async with pool.acquire():
                    pass
        async with pool.acquire():
            assert pool.in_use == 1

    asyncio.run(scenario())


def test_waiting_tasks_get_a_handle_in_turn(engine: Engine) -> None:
    async def add(pool: ConnectionPool, n: int) -> int:
        async with pool.acquire() as handle:
            friend = await handle.interact(
                lambda session: create_friend(session, NewFriend(name=f"friend {n}", email=f"{n}@x.com"))
            )
            return friend.id

    async def scenario() -> list[int]:
        pool = ConnectionPool(engine, size=1, acquire_timeout=5.0)
        return await asyncio.gather(*(add(pool, n) for n in range(5)))

    ids = asyncio.run(scenario())
    assert len(set(ids)) == 5


def test_pool_size_must_be_positive(engine: Engine) -> None:
    with pytest.raises(ValueError):
        ConnectionPool(engine, size=0, acquire_timeout=1.0)


def test_shared_connection_engine_gets_one_handle() -> None:
    engine = create_db_engine(Settings(database_url="sqlite://", pool_size=3))

    async def scenario() -> None:
        pool = ConnectionPool(engine, size=3, acquire_timeout=0.05)
        assert pool.size == 1
        async with pool.acquire():
            with pytest.raises(PoolExhausted):
                async with pool.acquire():
                    pass

    asyncio.run(scenario())
    engine.dispose()


def test_cancelled_waiter_does_not_keep_a_slot(engine: Engine) -> None:
    async def wait_for_handle(pool: ConnectionPool) -> None:
        async with pool.acquire():
            pass

    async def scenario() -> None:
        pool = ConnectionPool(engine, size=1, acquire_timeout=5.0)
        async with pool.acquire():
            waiter = asyncio.create_task(wait_for_handle(pool))
            await asyncio.sleep(0.01)
            waiter.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter

        pool.acquire_timeout = 0.1
        async with pool.acquire():
            assert pool.in_use == 1

    asyncio.run(scenario())


def test_timed_out_waiter_does_not_keep_a_slot(engine: Engine) -> None:
    async def scenario() -> None:
        pool = ConnectionPool(engine, size=1, acquire_timeout=0.05)
        for _ in range(3):
            async with pool.acquire():
                with pytest.raises(PoolExhausted):
                    async with pool.acquire():
                        pass
        async with pool.acquire():
            assert pool.in_use == 1

    asyncio.run(scenario())
