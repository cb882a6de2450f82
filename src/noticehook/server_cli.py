"""CLI entry points: the API server and a one-shot sweep for external cron."""

import argparse
import asyncio
import json
import os


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="noticehook-server",
        description="noticehook API server: notice feed to webhook delivery",
    )
    parser.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Bind port (default: 8080)")
    parser.add_argument(
        "--local",
        action="store_true",
        help="Local dev mode: SQLite database, no Redis required",
    )
    parser.add_argument(
        "--no-scheduler",
        action="store_true",
        help="Do not run the background sweep (use noticehook-sweep from cron instead)",
    )
    args = parser.parse_args(argv)

    if args.local:
        os.environ["NOTICEHOOK_LOCAL_MODE"] = "1"
    if args.no_scheduler:
        os.environ["NOTICEHOOK_SCHEDULER_ENABLED"] = "0"

    import uvicorn

    uvicorn.run("noticehook.main:app", host=args.host, port=args.port)


async def _sweep_once() -> dict:
    from noticehook.config import settings
    from noticehook.db.engine import create_db_engine, create_session_factory, create_tables
    from noticehook.main import build_clients
    from noticehook.workers.scheduler import run_sweep

    db_url = settings.effective_database_url
    engine = create_db_engine(db_url)
    redis = None
    try:
        if "sqlite" in db_url:
            await create_tables(engine)
        if not settings.local_mode:
            import redis.asyncio as aioredis

            redis = aioredis.from_url(settings.redis_url, decode_responses=True)
        notice_client, dispatcher = build_clients()
        summary = await run_sweep(
            create_session_factory(engine), notice_client, dispatcher, redis=redis
        )
    finally:
        if redis is not None:
            await redis.aclose()
        await engine.dispose()
    return {
        "total": summary.total,
        "synced": summary.synced,
        "failed": summary.failed,
        "skipped": summary.skipped,
        "delivered": summary.delivered,
    }


def sweep_main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="noticehook-sweep",
        description="Run one delivery sweep across all subscriptions and exit",
    )
    parser.add_argument(
        "--local",
        action="store_true",
        help="Local dev mode: SQLite database, no Redis required",
    )
    args = parser.parse_args(argv)

    if args.local:
        os.environ["NOTICEHOOK_LOCAL_MODE"] = "1"

    result = asyncio.run(_sweep_once())
    print(json.dumps(result))
    return 1 if result["failed"] else 0


if __name__ == "__main__":
    main()
