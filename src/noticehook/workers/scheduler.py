"""Background scheduler for periodic subscription sweeps."""

import asyncio
import logging

from noticehook.config import settings
from noticehook.errors.exceptions import ConflictError, NotFoundError
from noticehook.logging_config import bind_request_context, clear_request_context, mask_endpoint
from noticehook.models.delivery import SweepSummary
from noticehook.repositories.subscription_repo import SubscriptionRepository
from noticehook.services.sync_engine import SyncEngine

logger = logging.getLogger(__name__)


async def run_sweep(
    session_factory,
    notice_client,
    dispatcher,
    redis=None,
    policy: str | None = None,
    lock_ttl: int | None = None,
) -> SweepSummary:
    """Sync every subscription once. A failing subscription never stops the sweep."""
    policy = policy or settings.watermark_policy
    lock_ttl = lock_ttl or settings.sweep_interval_seconds

    async with session_factory() as session:
        rows = await SubscriptionRepository(session).list_all()
        endpoints = [row.endpoint for row in rows]

    summary = SweepSummary(total=len(endpoints))

    for endpoint in endpoints:
        bind_request_context(trace_id="sweep", webhook=endpoint)
        try:
            # Fresh session per subscription: state is re-read, never shared.
            async with session_factory() as session:
                engine = SyncEngine(
                    session, notice_client, dispatcher,
                    policy=policy, redis=redis, lock_ttl=lock_ttl,
                )
                report = await engine.sync_endpoint(endpoint)
        except ConflictError:
            logger.debug("Subscription already syncing elsewhere, skipping")
            summary.skipped += 1
        except NotFoundError:
            logger.info("Subscription deleted during sweep, skipping")
            summary.skipped += 1
        except Exception as exc:
            logger.warning("Sync failed for %s: %s", mask_endpoint(endpoint), exc)
            summary.failed += 1
            summary.failures[endpoint] = str(exc)
        else:
            summary.synced += 1
            summary.delivered += report.delivered
        finally:
            clear_request_context()

    logger.info(
        "Sweep finished: %d subscriptions, %d synced, %d failed, %d skipped, %d delivered",
        summary.total, summary.synced, summary.failed, summary.skipped, summary.delivered,
    )
    return summary


async def run_scheduler(app) -> None:
    """Background task that sweeps all subscriptions on a fixed interval."""
    interval = settings.sweep_interval_seconds
    logger.info("Sweep scheduler started (interval=%ds)", interval)

    while True:
        try:
            await asyncio.sleep(interval)

            session_factory = getattr(app.state, "db_session_factory", None)
            if not session_factory:
                continue

            await run_sweep(
                session_factory,
                app.state.notice_client,
                app.state.dispatcher,
                redis=getattr(app.state, "redis", None),
            )

        except asyncio.CancelledError:
            logger.info("Sweep scheduler stopped")
            break
        except Exception as exc:
            logger.exception("Scheduler error: %s", exc)
            # Continue running despite errors
