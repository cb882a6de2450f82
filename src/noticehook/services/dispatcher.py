"""Delivery of notice messages to webhook endpoints."""

import logging

import httpx

from noticehook.errors.exceptions import UpstreamError
from noticehook.logging_config import mask_endpoint
from noticehook.models.notice import Notice

logger = logging.getLogger(__name__)


def format_message(notice: Notice) -> str:
    """Render the fixed message template: title on the first line, link below."""
    return f"{notice.title}\n{notice.url}"


class DeliveryDispatcher:
    """Posts one notice at a time to a webhook as a multipart form.

    The form carries ``content`` and ``avatar_url``, the fields Discord
    incoming webhooks accept.
    """

    def __init__(
        self,
        avatar_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.avatar_url = avatar_url
        self.timeout = timeout
        self._transport = transport

    async def send(self, endpoint: str, notice: Notice) -> int:
        """Deliver ``notice`` to ``endpoint`` and return the response status."""
        # (None, value) tuples force multipart/form-data without file names
        form = {
            "content": (None, format_message(notice)),
            "avatar_url": (None, self.avatar_url),
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(endpoint, files=form)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Delivery of notice %d to %s failed: %s", notice.id, mask_endpoint(endpoint), exc)
            raise UpstreamError(
                f"Webhook delivery failed: {exc}",
                details={"notice_id": notice.id},
            ) from exc

        if response.status_code >= 300:
            logger.warning(
                "Delivery of notice %d to %s returned %s",
                notice.id, mask_endpoint(endpoint), response.status_code,
            )
            raise UpstreamError(
                f"Webhook returned HTTP {response.status_code}",
                details={"notice_id": notice.id, "status": response.status_code},
            )
        return response.status_code
