"""Shared test fixtures."""

import re

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from noticehook.db.base import Base
# Import all models to register with Base.metadata
import noticehook.db.models  # noqa: F401
from noticehook.services.dispatcher import DeliveryDispatcher
from noticehook.services.notice_client import NoticeSourceClient

FEED_URL = "http://notices.test"
AVATAR_URL = "http://avatar.test/symbol.png"

_FORM_FIELD = re.compile(rb'name="([^"]+)"\r\n\r\n(.*?)\r\n--', re.DOTALL)


class FakeFeed:
    """Upstream notice feed. Notices are kept newest-first, as the real feed serves them."""

    def __init__(self) -> None:
        self.notices: list[dict] = []
        self.status_code = 200
        self.raw_body: bytes | None = None
        self.error: Exception | None = None
        self.queries: list[str] = []

    def publish(self, *ids: int) -> None:
        for notice_id in ids:
            self.notices.insert(0, {
                "id": notice_id,
                "category": "학사",
                "department": "교무팀",
                "title": f"Notice {notice_id}",
                "content": "",
                "url": f"https://www.ajou.ac.kr/kr/ajou/notice.do?articleNo={notice_id}",
                "date": "2026-10-01",
            })

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.queries.append(request.url.query.decode())
        if self.error is not None:
            raise self.error
        if self.raw_body is not None:
            return httpx.Response(self.status_code, content=self.raw_body)
        return httpx.Response(self.status_code, json=self.notices)


class FakeWebhooks:
    """Records every delivered multipart form, optionally failing chosen notices."""

    def __init__(self) -> None:
        self.deliveries: list[dict] = []
        self.fail_ids: set[int] = set()
        self.fail_urls: set[str] = set()

    def handler(self, request: httpx.Request) -> httpx.Response:
        fields = {
            name.decode(): value.decode("utf-8")
            for name, value in _FORM_FIELD.findall(request.content)
        }
        title = fields["content"].split("\n", 1)[0]
        notice_id = int(title.removeprefix("Notice ")) if title.startswith("Notice ") else None
        if notice_id in self.fail_ids or str(request.url) in self.fail_urls:
            return httpx.Response(500, text="boom")
        self.deliveries.append({
            "url": str(request.url),
            "content_type": request.headers["content-type"],
            "notice_id": notice_id,
            **fields,
        })
        return httpx.Response(204)

    @property
    def delivered_ids(self) -> list[int]:
        return [d["notice_id"] for d in self.deliveries]


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite async engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def feed():
    return FakeFeed()


@pytest.fixture
def webhooks():
    return FakeWebhooks()


@pytest.fixture
def notice_client(feed):
    return NoticeSourceClient(FEED_URL, timeout=5.0, transport=httpx.MockTransport(feed.handler))


@pytest.fixture
def dispatcher(webhooks):
    return DeliveryDispatcher(AVATAR_URL, timeout=5.0, transport=httpx.MockTransport(webhooks.handler))


@pytest.fixture
def app(session_factory, db_engine, notice_client, dispatcher):
    """Create a test application instance with in-memory DB and fake upstreams."""
    from noticehook.main import create_app

    _app = create_app()
    _app.state.db_engine = db_engine
    _app.state.db_session_factory = session_factory
    _app.state.notice_client = notice_client
    _app.state.dispatcher = dispatcher
    _app.state.redis = None
    return _app


@pytest.fixture
async def client(app):
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
