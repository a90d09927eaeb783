"""End-to-end lock scenarios over the Redis store (fakeredis).

Mirrors how independent processes contend for one namespace: every caller
shares only the store, never in-process state.
"""

from __future__ import annotations

import asyncio
import time

import pytest

from distlock.core.lock import LockManager, RedisLockStore

pytestmark = pytest.mark.integration


def sleep_then(value, seconds):
    async def work():
        await asyncio.sleep(seconds)
        return value

    return work


class TestPrimitiveScenarios:

    @pytest.mark.asyncio
    async def test_second_acquire_fails(self, redis_manager):
        assert await redis_manager.acquire("Test") is True
        assert await redis_manager.acquire("Test") is False

    @pytest.mark.asyncio
    async def test_release_frees_namespace(self, redis_manager):
        assert await redis_manager.acquire("Test", "1") is True
        assert await redis_manager.release("Test", "1") is True
        assert await redis_manager.acquire("Test", "2") is True

    @pytest.mark.asyncio
    async def test_stranger_cannot_release(self, redis_manager):
        assert await redis_manager.acquire("Test", "1") is True
        assert await redis_manager.acquire("Test", "2") is False
        assert await redis_manager.release("Test", "2") is False
        assert await redis_manager.acquire("Test", "2") is False

    @pytest.mark.asyncio
    async def test_managers_share_only_the_store(self, fake_redis):
        first = LockManager(RedisLockStore(fake_redis))
        second = LockManager(RedisLockStore(fake_redis))

        assert await first.acquire("Test", "a") is True
        assert await second.acquire("Test", "b") is False
        assert await second.holder("Test") == "a"

    @pytest.mark.asyncio
    async def test_concurrent_acquires_have_one_winner(self, redis_manager):
        results = await asyncio.gather(
            *(redis_manager.acquire("Test", str(i)) for i in range(10))
        )
        assert results.count(True) == 1


class TestRunExclusiveScenarios:

    @pytest.mark.asyncio
    async def test_plain_run(self, redis_manager, fake_redis):
        result = await redis_manager.run_exclusive(
            "Test", sleep_then("Hello World", 0), lease_seconds=1.0, renew_interval_seconds=0.8
        )

        assert result.acquired is True
        assert result.result == "Hello World"
        assert await fake_redis.exists("Test") == 0

    @pytest.mark.asyncio
    async def test_concurrent_runs_execute_once(self, redis_manager):
        counter = 0

        async def work():
            nonlocal counter
            counter += 1
            await asyncio.sleep(0.2)
            return "Hello World"

        results = await asyncio.gather(
            redis_manager.run_exclusive("Test", work, lease_seconds=1.0, renew_interval_seconds=0.8),
            redis_manager.run_exclusive("Test", work, lease_seconds=1.0, renew_interval_seconds=0.8),
        )

        acquired = [r for r in results if r.acquired]
        assert len(acquired) == 1
        assert acquired[0].result == "Hello World"
        assert counter == 1

    @pytest.mark.asyncio
    async def test_renewal_keeps_long_work_exclusive(self, redis_manager):
        counter = 0

        async def work():
            nonlocal counter
            counter += 1
            await asyncio.sleep(0.2)
            return "Hello World"

        async def late_contender():
            await asyncio.sleep(0.15)
            return await redis_manager.run_exclusive(
                "Test", work, lease_seconds=0.1, renew_interval_seconds=0.04
            )

        first, second = await asyncio.gather(
            redis_manager.run_exclusive("Test", work, lease_seconds=0.1, renew_interval_seconds=0.04),
            late_contender(),
        )

        assert first.acquired is True
        assert first.result == "Hello World"
        assert first.released is True
        assert second.acquired is False
        assert counter == 1

    @pytest.mark.asyncio
    async def test_renewal_at_eighty_percent_of_lease(self, redis_manager):
        async def late_contender():
            await asyncio.sleep(0.15)
            return await redis_manager.acquire("Test", "contender", lease_seconds=1.0)

        first, contended = await asyncio.gather(
            redis_manager.run_exclusive(
                "Test", sleep_then("Hello World", 0.2), lease_seconds=0.1, renew_interval_seconds=0.08
            ),
            late_contender(),
        )

        assert first.acquired is True
        assert first.released is True
        assert contended is False

    @pytest.mark.asyncio
    async def test_blocking_work_stays_exclusive(self, redis_manager):
        def blocking_work():
            time.sleep(0.3)
            return "done"

        holder = asyncio.create_task(
            redis_manager.run_exclusive(
                "Test", blocking_work, lease_seconds=0.1, renew_interval_seconds=0.04
            )
        )
        await asyncio.sleep(0.2)

        assert await redis_manager.acquire("Test", "contender", lease_seconds=1.0) is False

        result = await holder
        assert result.result == "done"
        assert result.released is True

    @pytest.mark.asyncio
    async def test_polling_contenders_never_get_in(self, redis_manager):
        holder = asyncio.create_task(
            redis_manager.run_exclusive(
                "Test", sleep_then("Hello World", 0.6), lease_seconds=0.1, renew_interval_seconds=0.02
            )
        )
        await asyncio.sleep(0.01)

        attempts = []
        while not holder.done():
            attempts.append(
                await redis_manager.run_exclusive(
                    "Test", sleep_then("intruder", 0), lease_seconds=1.0, renew_interval_seconds=0.8
                )
            )
            await asyncio.sleep(0.1)

        result = await holder
        assert result.acquired is True
        assert result.result == "Hello World"
        assert attempts
        # The attempt racing the holder's final release may legitimately win
        assert all(not r.acquired for r in attempts[:-1])


class TestExpiryScenarios:

    @pytest.mark.asyncio
    async def test_unrenewed_lease_allows_takeover(self, redis_manager):
        assert await redis_manager.acquire("Test", "1", lease_seconds=0.1) is True
        assert await redis_manager.acquire("Test", "2", lease_seconds=1.0) is False

        await asyncio.sleep(0.2)

        assert await redis_manager.acquire("Test", "2", lease_seconds=1.0) is True
        # The expired holder can no longer release the new holder's lock
        assert await redis_manager.release("Test", "1") is False
        assert await redis_manager.holder("Test") == "2"

    @pytest.mark.asyncio
    async def test_failing_renewal_lets_lease_expire(self, fake_redis):
        class RefreshDownStore(RedisLockStore):
            async def refresh_ttl(self, key, ttl_seconds):
                raise ConnectionError("store unreachable")

        holder_manager = LockManager(RefreshDownStore(fake_redis))
        contender = LockManager(RedisLockStore(fake_redis))

        holder = asyncio.create_task(
            holder_manager.run_exclusive(
                "Test", sleep_then("slow", 0.4), lease_seconds=0.1, renew_interval_seconds=0.05
            )
        )
        await asyncio.sleep(0.25)

        assert await contender.acquire("Test", "contender", lease_seconds=5.0) is True

        result = await holder
        assert result.acquired is True
        assert result.result == "slow"
        # Release found the contender's token and left it alone
        assert result.released is False
        assert await contender.holder("Test") == "contender"

    @pytest.mark.asyncio
    async def test_manual_renewal_on_low_level_path(self, redis_manager):
        token = redis_manager.new_token()
        assert await redis_manager.acquire("Test", token, lease_seconds=0.1) is True

        renewer = redis_manager.renewer("Test", lease_seconds=0.1, renew_interval_seconds=0.03)
        renewer.start()
        await asyncio.sleep(0.25)
        assert await redis_manager.acquire("Test", lease_seconds=1.0) is False

        await renewer.stop()
        assert await redis_manager.release("Test", token) is True
