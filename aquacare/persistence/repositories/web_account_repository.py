"""Repository for web accounts."""

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from aquacare.persistence.models.web_account import WebAccount
from aquacare.persistence.repositories.base import BaseRepository


class WebAccountRepository(BaseRepository[WebAccount]):
    """Read access to portal accounts."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(WebAccount, session)

    async def find_matching(
        self,
        phone_pattern: str | None,
        email: str | None,
    ) -> list[WebAccount]:
        """Accounts whose phone matches the pattern or whose email matches.

        Args:
            phone_pattern: Regex from ``aquacare.core.phone.phone_match_pattern``
            email: Email compared case-insensitively

        Returns:
            Matching accounts, oldest first
        """
        clauses = []
        if phone_pattern:
            clauses.append(WebAccount.phone.regexp_match(phone_pattern))
        if email:
            clauses.append(func.lower(WebAccount.email) == email.strip().lower())
        if not clauses:
            return []

        stmt = select(WebAccount).where(or_(*clauses)).order_by(WebAccount.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
