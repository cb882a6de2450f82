"""Subscription repository: the durable store behind every sync."""

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from noticehook.db.models.subscription import SubscriptionRow
from noticehook.errors.exceptions import ConflictError, NotFoundError
from noticehook.models.subscription import SubscriptionFilter
from noticehook.repositories.base import BaseRepository


class SubscriptionRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, SubscriptionRow)

    async def get(self, endpoint: str) -> SubscriptionRow | None:
        """Load the row, refreshing any copy already held by this session."""
        stmt = (
            select(SubscriptionRow)
            .where(SubscriptionRow.endpoint == endpoint)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_subscription(
        self,
        endpoint: str,
        filter: SubscriptionFilter,
        initial_watermark: int = 0,
    ) -> SubscriptionRow:
        """Insert a new subscription.

        The primary key is the uniqueness guard: a concurrent insert of the
        same endpoint fails with IntegrityError, which is reported as a
        conflict exactly like the pre-insert lookup.
        """
        if await self.get(endpoint) is not None:
            raise ConflictError(
                "Webhook already registered", details={"webhook": endpoint}
            )
        try:
            row = await self.create(
                endpoint=endpoint,
                watermark=initial_watermark,
                category=filter.category or None,
                department=filter.department or None,
                search=filter.search or None,
            )
        except IntegrityError as exc:
            await self.session.rollback()
            raise ConflictError(
                "Webhook already registered", details={"webhook": endpoint}
            ) from exc
        return row

    async def update_watermark(self, endpoint: str, new_watermark: int) -> bool:
        """Raise the stored watermark; never lowers it.

        Returns True if the row changed, False if the stored value was
        already at or above ``new_watermark``.
        """
        stmt = (
            update(SubscriptionRow)
            .where(
                SubscriptionRow.endpoint == endpoint,
                SubscriptionRow.watermark < new_watermark,
            )
            .values(watermark=new_watermark)
        )
        result = await self.session.execute(stmt)
        if result.rowcount > 0:
            return True
        if await self.get(endpoint) is None:
            raise NotFoundError("Webhook", endpoint)
        return False

    async def compare_and_set_watermark(
        self, endpoint: str, expected: int, new_watermark: int
    ) -> bool:
        """Move the watermark from ``expected`` to ``new_watermark``.

        Returns False without writing when the stored value is no longer
        ``expected``, i.e. another sync advanced it first.
        """
        if new_watermark <= expected:
            return False
        stmt = (
            update(SubscriptionRow)
            .where(
                SubscriptionRow.endpoint == endpoint,
                SubscriptionRow.watermark == expected,
            )
            .values(watermark=new_watermark)
            # A lost race must not touch in-session copies; get() re-reads the row.
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def delete(self, endpoint: str) -> bool:
        return await self.delete_by_id("endpoint", endpoint)

    async def list_all(self) -> list[SubscriptionRow]:
        return await self.list_ordered("endpoint")
