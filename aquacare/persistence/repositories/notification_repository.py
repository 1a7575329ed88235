"""Repository for in-app notifications."""

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from aquacare.core.identifiers import utcnow
from aquacare.persistence.models.notification import Notification, NotificationAudience
from aquacare.persistence.repositories.base import BaseRepository


class NotificationRepository(BaseRepository[Notification]):
    """Repository for admin and portal notifications."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(Notification, session)

    async def list_for_admin(self, unread_only: bool = False, limit: int = 50) -> list[Notification]:
        """Admin bell notifications, newest first."""
        stmt = select(Notification).where(Notification.audience == NotificationAudience.ADMIN)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_account(self, account_id: int, unread_only: bool = False, limit: int = 50) -> list[Notification]:
        """Portal notifications of one account, newest first."""
        stmt = select(Notification).where(
            Notification.audience == NotificationAudience.USER,
            Notification.account_id == account_id,
        )
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_unread_for_account(self, account_id: int) -> int:
        """Unread portal notifications of one account."""
        stmt = select(func.count(Notification.id)).where(
            Notification.audience == NotificationAudience.USER,
            Notification.account_id == account_id,
            Notification.is_read.is_(False),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def mark_all_read_for_account(self, account_id: int) -> int:
        """Mark every unread notification of an account as read."""
        stmt = (
            update(Notification)
            .where(
                Notification.audience == NotificationAudience.USER,
                Notification.account_id == account_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount
