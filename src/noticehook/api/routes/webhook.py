"""Webhook subscription routes: register, inspect, delete and refresh."""

import logging
from urllib.parse import urlsplit

from fastapi import APIRouter, Body
from fastapi.responses import JSONResponse, Response

from noticehook.dependencies import DBSession, Engine, Webhook
from noticehook.errors.exceptions import NotFoundError, ValidationError
from noticehook.models.delivery import DeliveryReport
from noticehook.models.subscription import SubscriptionFilter, SubscriptionView
from noticehook.repositories.subscription_repo import SubscriptionRepository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Webhooks"])

_CORS_PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,POST,DELETE,OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Max-Age": "86400",
}


def _require_http_url(webhook: str) -> None:
    parts = urlsplit(webhook)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValidationError("`webhook` must be an http(s) URL")


@router.options("/webhook", include_in_schema=False)
async def webhook_preflight() -> Response:
    return Response(status_code=200, headers=_CORS_PREFLIGHT_HEADERS)


@router.get("/webhook")
async def get_webhook(webhook: Webhook, db: DBSession) -> JSONResponse:
    row = await SubscriptionRepository(db).get(webhook)
    if row is None:
        raise NotFoundError("Webhook", webhook)
    return JSONResponse(
        content=SubscriptionView.from_row(row).model_dump(),
        headers={"Access-Control-Allow-Origin": "*"},
    )


@router.post("/webhook", status_code=201)
async def register_webhook(
    webhook: Webhook,
    engine: Engine,
    body: SubscriptionFilter | None = Body(None),
) -> SubscriptionView:
    """Register a webhook. Only notices published after registration are delivered."""
    _require_http_url(webhook)
    row = await engine.register(webhook, body or SubscriptionFilter())
    return SubscriptionView.from_row(row)


@router.delete("/webhook")
async def delete_webhook(webhook: Webhook, db: DBSession) -> dict:
    deleted = await SubscriptionRepository(db).delete(webhook)
    if not deleted:
        raise NotFoundError("Webhook", webhook)
    await db.commit()
    logger.info("Webhook deleted")
    return {"status": "deleted", "webhook": webhook}


@router.post("/webhook/refresh")
async def refresh_webhook(webhook: Webhook, engine: Engine) -> DeliveryReport:
    """Deliver every notice newer than the stored watermark, oldest first.

    Answers 409 while another sync of the same webhook is running.
    """
    return await engine.sync_endpoint(webhook)
