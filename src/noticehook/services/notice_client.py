"""Client for the upstream notice feed."""

import logging

import httpx
from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from noticehook.errors.exceptions import UpstreamError
from noticehook.models.notice import Notice

logger = logging.getLogger(__name__)

_NOTICE_LIST = TypeAdapter(list[Notice])


class NoticeSourceClient:
    """Fetches the current notice list for a filter query.

    The feed answers ``GET /api/notices?<query>`` with a JSON array ordered
    newest-first. Any transport failure, non-2xx status or body that does
    not parse as a notice list is raised as ``UpstreamError``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def notices_url(self, query: str) -> str:
        url = f"{self.base_url}/api/notices"
        return f"{url}?{query}" if query else url

    async def fetch(self, query: str) -> list[Notice]:
        url = self.notices_url(query)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise UpstreamError(
                f"Notice feed returned HTTP {exc.response.status_code}",
                details={"url": url},
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Notice feed unreachable: {exc}", details={"url": url}) from exc
        except ValueError as exc:
            raise UpstreamError("Notice feed returned invalid JSON", details={"url": url}) from exc

        try:
            notices = _NOTICE_LIST.validate_python(payload)
        except PydanticValidationError as exc:
            raise UpstreamError(
                "Notice feed returned malformed notices",
                details={"url": url, "errors": exc.error_count()},
            ) from exc

        logger.debug("Fetched %d notices from %s", len(notices), url)
        return notices
