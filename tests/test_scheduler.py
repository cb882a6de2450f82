"""Tests for the scheduled sweep across all subscriptions."""

import asyncio

import pytest

from noticehook.models.subscription import SubscriptionFilter
from noticehook.repositories.subscription_repo import SubscriptionRepository
from noticehook.workers import scheduler
from noticehook.workers.locks import lock_key, sync_lock
from noticehook.workers.scheduler import run_scheduler, run_sweep

HOOK_A = "https://discord.com/api/webhooks/1/a"
HOOK_B = "https://discord.com/api/webhooks/2/b"
HOOK_C = "https://discord.com/api/webhooks/3/c"


class FakeRedis:
    """Just enough of redis.asyncio for SET NX EX / DELETE."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.set_calls: list[tuple[str, int]] = []

    async def set(self, key, value, nx=False, ex=None):
        self.set_calls.append((key, ex))
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0


async def _seed(session_factory, *subscriptions):
    async with session_factory() as session:
        repo = SubscriptionRepository(session)
        for endpoint, watermark in subscriptions:
            await repo.create_subscription(endpoint, SubscriptionFilter(), initial_watermark=watermark)
        await session.commit()


async def _watermark(session_factory, endpoint):
    async with session_factory() as session:
        return (await SubscriptionRepository(session).get(endpoint)).watermark


@pytest.mark.asyncio
async def test_sweep_syncs_every_subscription(session_factory, notice_client, dispatcher, feed, webhooks):
    feed.publish(1, 2, 3)
    await _seed(session_factory, (HOOK_A, 1), (HOOK_B, 2))

    summary = await run_sweep(session_factory, notice_client, dispatcher, policy="delivery")

    assert summary.total == 2
    assert summary.synced == 2
    assert summary.failed == 0
    assert summary.delivered == 3
    by_url = [(d["url"], d["notice_id"]) for d in webhooks.deliveries]
    assert by_url == [(HOOK_A, 2), (HOOK_A, 3), (HOOK_B, 3)]
    assert await _watermark(session_factory, HOOK_A) == 3
    assert await _watermark(session_factory, HOOK_B) == 3


@pytest.mark.asyncio
async def test_sweep_isolates_failing_subscription(session_factory, notice_client, dispatcher, feed, webhooks):
    feed.publish(5, 6)
    await _seed(session_factory, (HOOK_A, 4), (HOOK_B, 4), (HOOK_C, 4))
    webhooks.fail_urls = {HOOK_B}

    summary = await run_sweep(session_factory, notice_client, dispatcher, policy="delivery")

    assert summary.total == 3
    assert summary.synced == 2
    assert summary.failed == 1
    assert list(summary.failures) == [HOOK_B]
    assert [(d["url"], d["notice_id"]) for d in webhooks.deliveries] == [
        (HOOK_A, 5), (HOOK_A, 6), (HOOK_C, 5), (HOOK_C, 6),
    ]
    assert await _watermark(session_factory, HOOK_B) == 4


@pytest.mark.asyncio
async def test_sweep_continues_after_feed_failure(session_factory, notice_client, dispatcher, feed):
    await _seed(session_factory, (HOOK_A, 0), (HOOK_B, 0))
    feed.status_code = 500

    summary = await run_sweep(session_factory, notice_client, dispatcher)

    assert summary.total == 2
    assert summary.failed == 2
    assert set(summary.failures) == {HOOK_A, HOOK_B}


@pytest.mark.asyncio
async def test_sweep_with_no_subscriptions(session_factory, notice_client, dispatcher, feed):
    summary = await run_sweep(session_factory, notice_client, dispatcher)
    assert summary.total == 0
    assert feed.queries == []


@pytest.mark.asyncio
async def test_sweep_skips_locked_subscription(session_factory, notice_client, dispatcher, feed, webhooks):
    feed.publish(1, 2)
    await _seed(session_factory, (HOOK_A, 1), (HOOK_B, 1))
    redis = FakeRedis()
    redis.store[lock_key(HOOK_A)] = "1"

    summary = await run_sweep(session_factory, notice_client, dispatcher, redis=redis, lock_ttl=30)

    assert summary.skipped == 1
    assert summary.synced == 1
    assert [d["url"] for d in webhooks.deliveries] == [HOOK_B]
    assert await _watermark(session_factory, HOOK_A) == 1
    # lock taken for HOOK_B is released afterwards; HOOK_A's foreign lock is untouched
    assert lock_key(HOOK_B) not in redis.store
    assert lock_key(HOOK_A) in redis.store
    assert (lock_key(HOOK_B), 30) in redis.set_calls


@pytest.mark.asyncio
async def test_sweep_skips_subscription_being_refreshed(session_factory, notice_client, dispatcher, feed, webhooks):
    feed.publish(1, 2)
    await _seed(session_factory, (HOOK_A, 1), (HOOK_B, 1))

    async with sync_lock(None, HOOK_A, 60):
        summary = await run_sweep(session_factory, notice_client, dispatcher)

    assert summary.skipped == 1
    assert summary.synced == 1
    assert summary.failed == 0
    assert [d["url"] for d in webhooks.deliveries] == [HOOK_B]
    assert await _watermark(session_factory, HOOK_A) == 1


@pytest.mark.asyncio
async def test_run_scheduler_sweeps_until_cancelled(app, session_factory, feed, webhooks, monkeypatch):
    feed.publish(1)
    await _seed(session_factory, (HOOK_A, 0))
    monkeypatch.setattr(scheduler.settings, "sweep_interval_seconds", 0)

    task = asyncio.create_task(run_scheduler(app))
    for _ in range(100):
        await asyncio.sleep(0.01)
        if webhooks.deliveries:
            break
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)

    assert webhooks.delivered_ids[:1] == [1]
    assert task.done()
