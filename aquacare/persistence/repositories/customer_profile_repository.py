"""Repository for customer profiles, their terms and complaint tickets."""

from datetime import datetime

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from aquacare.persistence.models.customer_profile import (
    ComplaintTicket,
    CustomerProfile,
    ProfileContract,
)
from aquacare.persistence.repositories.base import BaseRepository


class CustomerProfileRepository(BaseRepository[CustomerProfile]):
    """Repository for admin-managed customer profiles."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(CustomerProfile, session)

    async def find_matching(
        self,
        phone_pattern: str | None,
        email: str | None,
    ) -> list[CustomerProfile]:
        """Profiles whose mobile matches the pattern OR whose email matches.

        Args:
            phone_pattern: Regex from ``aquacare.core.phone.phone_match_pattern``
            email: Email compared case-insensitively

        Returns:
            Matching profiles, most recently updated first
        """
        clauses = []
        if phone_pattern:
            clauses.append(CustomerProfile.mobile.regexp_match(phone_pattern))
        if email:
            clauses.append(func.lower(CustomerProfile.email) == email.strip().lower())
        if not clauses:
            return []

        stmt = (
            select(CustomerProfile)
            .where(or_(*clauses))
            .order_by(CustomerProfile.updated_at.desc(), CustomerProfile.id.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_code(self, customer_code: str) -> CustomerProfile | None:
        """Get profile by its human-readable customer code."""
        stmt = select(CustomerProfile).where(CustomerProfile.customer_code == customer_code)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def search(self, query: str, limit: int = 50) -> list[CustomerProfile]:
        """Search profiles by name, mobile or customer code."""
        pattern = f"%{query}%"
        stmt = select(CustomerProfile).where(
            or_(
                CustomerProfile.name.ilike(pattern),
                CustomerProfile.mobile.ilike(pattern),
                CustomerProfile.customer_code.ilike(pattern),
            )
        ).order_by(CustomerProfile.created_at.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def touch(self, profile_id: int, now: datetime) -> None:
        """Bump updated_at so identity tie-breaks see recent activity."""
        await self.session.execute(
            update(CustomerProfile)
            .where(CustomerProfile.id == profile_id)
            .values(updated_at=now)
            .execution_options(synchronize_session=False)
        )

    # --- Terms -----------------------------------------------------------

    async def add_term(self, **data) -> ProfileContract:
        """Insert a profile term and flush it."""
        term = ProfileContract(**data)
        self.session.add(term)
        await self.session.flush()
        return term

    async def get_current_term(self, profile_id: int, kind: str) -> ProfileContract | None:
        """Current AMC or rental term of a profile."""
        stmt = select(ProfileContract).where(
            ProfileContract.profile_id == profile_id,
            ProfileContract.kind == kind,
            ProfileContract.is_current.is_(True),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_term_by_code(self, contract_code: str) -> ProfileContract | None:
        """Profile term by contract code, preferring the current row."""
        stmt = (
            select(ProfileContract)
            .where(ProfileContract.contract_code == contract_code)
            .order_by(ProfileContract.is_current.desc(), ProfileContract.id.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_term_mirroring(self, contract_id: int) -> ProfileContract | None:
        """Term that mirrors a Contract, the current row if there is one."""
        stmt = (
            select(ProfileContract)
            .where(ProfileContract.contract_id == contract_id)
            .order_by(ProfileContract.is_current.desc(), ProfileContract.id.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_current_terms(self, kind: str) -> list[ProfileContract]:
        """All current terms of a kind across every profile."""
        stmt = (
            select(ProfileContract)
            .where(ProfileContract.kind == kind, ProfileContract.is_current.is_(True))
            .order_by(ProfileContract.end_date)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_archived_terms(self, profile_id: int, kind: str) -> int:
        """Length of a profile's archive list for a kind."""
        stmt = select(func.count(ProfileContract.id)).where(
            ProfileContract.profile_id == profile_id,
            ProfileContract.kind == kind,
            ProfileContract.is_current.is_(False),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    # --- Tickets ---------------------------------------------------------

    async def get_ticket(self, ticket_code: str) -> ComplaintTicket | None:
        """Complaint ticket by its code."""
        stmt = select(ComplaintTicket).where(ComplaintTicket.ticket_code == ticket_code)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def add_ticket(self, **data) -> ComplaintTicket:
        """Insert a complaint ticket and flush it."""
        ticket = ComplaintTicket(**data)
        self.session.add(ticket)
        await self.session.flush()
        return ticket

    async def list_tickets(
        self,
        status: str | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[tuple[ComplaintTicket, CustomerProfile]]:
        """Ticket queue across all profiles, newest first."""
        stmt = select(ComplaintTicket, CustomerProfile).join(
            CustomerProfile, ComplaintTicket.profile_id == CustomerProfile.id
        )
        if status:
            stmt = stmt.where(ComplaintTicket.status == status)
        stmt = stmt.order_by(ComplaintTicket.opened_at.desc()).offset(skip).limit(limit)
        result = await self.session.execute(stmt)
        return [(ticket, profile) for ticket, profile in result.all()]

    async def list_tickets_for_profile(self, profile_id: int) -> list[ComplaintTicket]:
        """Tickets of one profile, newest first."""
        stmt = (
            select(ComplaintTicket)
            .where(ComplaintTicket.profile_id == profile_id)
            .order_by(ComplaintTicket.opened_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
