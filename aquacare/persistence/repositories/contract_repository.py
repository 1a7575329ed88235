"""Repository for contract records and conditional state writes."""

from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from aquacare.persistence.models.contract import Contract, ContractStatus
from aquacare.persistence.models.customer_profile import ProfileContract
from aquacare.persistence.repositories.base import BaseRepository

TermModel = type[Contract] | type[ProfileContract]


class ContractRepository(BaseRepository[Contract]):
    """Repository for self-service contracts.

    State-changing writes are single conditional UPDATE statements so that
    concurrent requests cannot both pass a check made in Python.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(Contract, session)

    async def get_by_code(self, contract_code: str) -> Contract | None:
        """Get contract by its human-readable code."""
        stmt = select(Contract).where(Contract.contract_code == contract_code)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_account(self, account_id: int, contract_code: str) -> Contract | None:
        """Get contract by code, only if it belongs to the account."""
        stmt = select(Contract).where(
            Contract.contract_code == contract_code,
            Contract.account_id == account_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_order_key(
        self,
        order_id: str,
        product_id: int,
        plan_id: int | None,
    ) -> Contract | None:
        """Contract already created for an (order, product, plan) triple."""
        stmt = select(Contract).where(
            Contract.order_id == order_id,
            Contract.product_id == product_id,
            Contract.plan_id.is_(None) if plan_id is None else Contract.plan_id == plan_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_order(self, order_id: str) -> list[Contract]:
        """All contracts created from one order."""
        stmt = select(Contract).where(Contract.order_id == order_id).order_by(Contract.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_account(
        self,
        account_id: int,
        status: str | None = None,
        skip: int = 0,
        limit: int = 10,
    ) -> list[Contract]:
        """Contracts of an account, soonest end date first."""
        stmt = select(Contract).where(Contract.account_id == account_id)
        if status:
            stmt = stmt.where(Contract.status == status)
        stmt = stmt.order_by(Contract.end_date, Contract.created_at.desc()).offset(skip).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_for_account(self, account_id: int, status: str | None = None) -> int:
        """Count contracts of an account."""
        stmt = select(func.count(Contract.id)).where(Contract.account_id == account_id)
        if status:
            stmt = stmt.where(Contract.status == status)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def sum_services_used(self, account_id: int) -> int:
        """Total visits consumed across an account's contracts."""
        stmt = select(func.coalesce(func.sum(Contract.services_used), 0)).where(
            Contract.account_id == account_id
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def list_expiring(self, account_id: int, now: datetime, until: datetime, limit: int = 5) -> list[Contract]:
        """Active contracts ending between now and ``until``."""
        stmt = (
            select(Contract)
            .where(
                Contract.account_id == account_id,
                Contract.status == ContractStatus.ACTIVE,
                Contract.end_date >= now,
                Contract.end_date <= until,
            )
            .order_by(Contract.end_date)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def latest_active(self, account_id: int, kind: str, now: datetime) -> Contract | None:
        """Active, not yet lapsed contract of a kind with the latest end date."""
        stmt = (
            select(Contract)
            .where(
                Contract.account_id == account_id,
                Contract.kind == kind,
                Contract.status == ContractStatus.ACTIVE,
                Contract.end_date >= now,
            )
            .order_by(Contract.end_date.desc(), Contract.id.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_ids(self, contract_ids: list[int]) -> list[Contract]:
        """Contracts by primary key."""
        if not contract_ids:
            return []
        stmt = select(Contract).where(Contract.id.in_(contract_ids)).order_by(Contract.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_accounts(self, account_ids: list[int]) -> list[Contract]:
        """Contracts owned by any of the accounts."""
        if not account_ids:
            return []
        stmt = select(Contract).where(Contract.account_id.in_(account_ids)).order_by(Contract.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # --- Conditional writes ---------------------------------------------

    async def transition(
        self,
        model: TermModel,
        term_id: int,
        allowed_from: tuple[str, ...],
        to_status: str,
        **values: Any,
    ) -> bool:
        """Move a Contract or ProfileContract to ``to_status``.

        Only applies when the persisted status is one of ``allowed_from``.

        Returns:
            True if the row was updated
        """
        stmt = (
            update(model)
            .where(model.id == term_id, model.status.in_(allowed_from))
            .values(status=to_status, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def consume_service(self, contract_id: int, now: datetime) -> bool:
        """Take one visit off an Active, unexpired contract with quota left.

        Returns:
            True if a slot was consumed
        """
        stmt = (
            update(Contract)
            .where(
                Contract.id == contract_id,
                Contract.status == ContractStatus.ACTIVE,
                Contract.end_date >= now,
                Contract.services_used < Contract.services_total,
            )
            .values(services_used=Contract.services_used + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def expire_lapsed(self, model: TermModel, now: datetime) -> list[int]:
        """Expire every Active row whose end date is before ``now``.

        Returns:
            Ids of the rows this call transitioned
        """
        id_stmt = select(model.id).where(
            model.status == ContractStatus.ACTIVE,
            model.end_date < now,
        )
        ids = list((await self.session.execute(id_stmt)).scalars().all())
        if not ids:
            return []

        stmt = (
            update(model)
            .where(
                model.id.in_(ids),
                model.status == ContractStatus.ACTIVE,
                model.end_date < now,
            )
            .values(status=ContractStatus.EXPIRED)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

        # Re-read: a concurrent cancel may have taken some rows first
        check = select(model.id).where(model.id.in_(ids), model.status == ContractStatus.EXPIRED)
        return list((await self.session.execute(check)).scalars().all())
