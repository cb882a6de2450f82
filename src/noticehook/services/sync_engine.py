"""Watermark sync: fetch the feed, diff against the watermark, deliver the gap.

A sync for one subscription runs strictly sequentially: one fetch, then
one dispatch at a time in ascending notice id order. Nothing is cached
between syncs; the subscription row is the only state.

Two watermark policies are supported:

``fetch``
    The watermark jumps to the newest fetched id before any dispatch. A
    failed dispatch is never retried; the notice is skipped for good.

``delivery``
    The watermark follows each successful dispatch. A failed dispatch
    stops the sync and the next sync resumes from that notice.

Concurrent syncs of one endpoint are refused by ``sync_lock``. Every
watermark write is a compare-and-set against the value this sync started
from, so a sync that lost a race without the lock stops instead of
replaying the delta.
"""

import logging
from typing import Literal

from sqlalchemy.ext.asyncio import AsyncSession

from noticehook.db.models.subscription import SubscriptionRow
from noticehook.errors.exceptions import ConflictError, NotFoundError, UpstreamError
from noticehook.models.delivery import DeliveryReport
from noticehook.models.notice import Notice
from noticehook.models.subscription import SubscriptionFilter
from noticehook.repositories.subscription_repo import SubscriptionRepository
from noticehook.services.dispatcher import DeliveryDispatcher
from noticehook.services.notice_client import NoticeSourceClient
from noticehook.workers.locks import sync_lock

logger = logging.getLogger(__name__)

WatermarkPolicy = Literal["fetch", "delivery"]


def latest_notice_id(notices: list[Notice]) -> int:
    """Newest id in a newest-first feed, 0 for an empty feed."""
    return notices[0].id if notices else 0


def compute_delta(notices: list[Notice], watermark: int) -> list[Notice]:
    """Notices newer than ``watermark``, oldest first."""
    return [n for n in notices if n.id > watermark][::-1]


class SyncEngine:
    """Runs registration and sync against one database session."""

    def __init__(
        self,
        session: AsyncSession,
        notice_client: NoticeSourceClient,
        dispatcher: DeliveryDispatcher,
        policy: WatermarkPolicy = "delivery",
        redis=None,
        lock_ttl: int = 600,
    ) -> None:
        if policy not in ("fetch", "delivery"):
            raise ValueError(f"Unknown watermark policy: {policy}")
        self.session = session
        self.repo = SubscriptionRepository(session)
        self.notice_client = notice_client
        self.dispatcher = dispatcher
        self.policy = policy
        self.redis = redis
        self.lock_ttl = lock_ttl

    async def _fetch_sorted(self, filter: SubscriptionFilter) -> list[Notice]:
        notices = await self.notice_client.fetch(filter.to_query())
        return sorted(notices, key=lambda n: n.id, reverse=True)

    async def register(self, endpoint: str, filter: SubscriptionFilter) -> SubscriptionRow:
        """Create a subscription whose watermark starts at the current newest id.

        New subscribers only receive notices published after registration.
        """
        if await self.repo.get(endpoint) is not None:
            raise ConflictError("Webhook already registered", details={"webhook": endpoint})

        notices = await self._fetch_sorted(filter)
        initial = latest_notice_id(notices)
        row = await self.repo.create_subscription(endpoint, filter, initial_watermark=initial)
        await self.session.commit()
        logger.info("Registered webhook with initial watermark %d", initial)
        return row

    async def sync_endpoint(self, endpoint: str) -> DeliveryReport:
        """Load the subscription fresh from the store and sync it under its lock.

        Raises ConflictError when a sync of the same endpoint is already
        running.
        """
        async with sync_lock(self.redis, endpoint, self.lock_ttl) as acquired:
            if not acquired:
                raise ConflictError("Sync already in progress", details={"webhook": endpoint})
            row = await self.repo.get(endpoint)
            if row is None:
                raise NotFoundError("Webhook", endpoint)
            return await self.sync(row)

    async def sync(self, subscription: SubscriptionRow) -> DeliveryReport:
        endpoint = subscription.endpoint
        before = subscription.watermark

        # Fetch precedes every write: an upstream failure leaves no partial state.
        notices = await self._fetch_sorted(subscription.filter)
        latest = latest_notice_id(notices)
        delta = compute_delta(notices, before)

        report = DeliveryReport(webhook=endpoint, previous_watermark=before, watermark=before)
        if not delta:
            logger.debug("No new notices (latest=%d, watermark=%d)", latest, before)
            return report

        logger.info(
            "Delivering %d notices (%d..%d)", len(delta), delta[0].id, delta[-1].id
        )

        if self.policy == "fetch":
            claimed = await self.repo.compare_and_set_watermark(endpoint, before, latest)
            await self.session.commit()
            if not claimed:
                logger.warning("Watermark moved by a concurrent sync, nothing delivered")
                return report
            report.watermark = latest

        for notice in delta:
            try:
                await self.dispatcher.send(endpoint, notice)
            except UpstreamError as exc:
                exc.details = {
                    **(exc.details or {}),
                    "delivered": report.delivered,
                    "watermark": report.watermark,
                }
                raise
            report.delivered += 1
            if self.policy == "delivery":
                advanced = await self.repo.compare_and_set_watermark(
                    endpoint, report.watermark, notice.id
                )
                await self.session.commit()
                if not advanced:
                    logger.warning(
                        "Watermark moved by a concurrent sync after notice %d, stopping", notice.id
                    )
                    break
                report.watermark = notice.id

        logger.info("Delivered %d notices, watermark now %d", report.delivered, report.watermark)
        return report
