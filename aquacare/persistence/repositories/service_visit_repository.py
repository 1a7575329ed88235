"""Repository for service visit history entries."""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from aquacare.persistence.models.service_visit import ServiceVisitEntry
from aquacare.persistence.repositories.base import BaseRepository


class ServiceVisitRepository(BaseRepository[ServiceVisitEntry]):
    """Repository for the append-only visit ledger."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(ServiceVisitEntry, session)

    async def get_by_ticket_code(self, ticket_code: str) -> ServiceVisitEntry | None:
        """Visit bound to a ticket code."""
        stmt = (
            select(ServiceVisitEntry)
            .where(ServiceVisitEntry.ticket_code == ticket_code)
            .order_by(ServiceVisitEntry.id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_contracts(self, contract_ids: list[int]) -> list[ServiceVisitEntry]:
        """Visits of several contracts, newest first."""
        if not contract_ids:
            return []
        stmt = (
            select(ServiceVisitEntry)
            .where(ServiceVisitEntry.contract_id.in_(contract_ids))
            .order_by(ServiceVisitEntry.visit_date.desc(), ServiceVisitEntry.id.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_unlinked_same_day(
        self,
        contract_ids: list[int],
        day_start: datetime,
        day_end: datetime,
    ) -> list[ServiceVisitEntry]:
        """Visits in ``[day_start, day_end)`` that carry no ticket code yet.

        Returns:
            Candidates, earliest first
        """
        if not contract_ids:
            return []
        stmt = (
            select(ServiceVisitEntry)
            .where(
                ServiceVisitEntry.contract_id.in_(contract_ids),
                ServiceVisitEntry.ticket_code.is_(None),
                ServiceVisitEntry.visit_date >= day_start,
                ServiceVisitEntry.visit_date < day_end,
            )
            .order_by(ServiceVisitEntry.visit_date, ServiceVisitEntry.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def bind_ticket(self, visit_id: int, ticket_code: str) -> bool:
        """Attach a ticket code to a visit that has none.

        Returns:
            True if this call bound the visit
        """
        stmt = (
            update(ServiceVisitEntry)
            .where(ServiceVisitEntry.id == visit_id, ServiceVisitEntry.ticket_code.is_(None))
            .values(ticket_code=ticket_code)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
