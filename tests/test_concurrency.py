"""Tests for concurrent requests against a shared database file."""

import asyncio
from datetime import datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from aquacare.core.result import ErrorKind
from aquacare.domain.models.order_events import OrderCompletedEvent, OrderItemIn, ProductRefIn
from aquacare.domain.services.contract_service import ContractService
from aquacare.persistence.database import Base
from aquacare.persistence.models.catalog import CatalogItem, PlanTemplate
from aquacare.persistence.models.web_account import WebAccount

JAN_15_2024 = datetime(2024, 1, 15, 10, 0, 0)
MARCH_1_2024 = datetime(2024, 3, 1, 9, 0, 0)


@pytest.fixture
async def session_factory(tmp_path):
    """Sessions on separate connections to one SQLite file."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'contracts.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def seeded(session_factory):
    """Account, a two-visit plan and a product carrying it."""
    async with session_factory() as session:
        account = WebAccount(first_name="Asha", last_name="Rao", phone="+91 98765-43210")
        plan = PlanTemplate(kind="amc", name="Gold AMC", price=2999.0, duration_months=12, service_quota=2)
        session.add_all([account, plan])
        await session.flush()
        product = CatalogItem(kind="Product", name="AquaPure RO 8L", plan_ids=[plan.id])
        session.add(product)
        await session.commit()
        return account.id, plan.id, product.id


def order_event(account_id: int, plan_id: int, product_id: int) -> OrderCompletedEvent:
    return OrderCompletedEvent(
        order_id="ORD-RACE",
        account_id=account_id,
        items=[OrderItemIn(product=ProductRefIn(kind="Product", id=product_id), plan_id=plan_id)],
    )


class TestConcurrentRequests:
    """Tests that racing requests cannot break quota or uniqueness."""

    @pytest.mark.asyncio
    async def test_five_requests_on_two_visit_quota(self, session_factory, seeded):
        """Test that exactly two of five simultaneous requests succeed."""
        account_id, plan_id, product_id = seeded
        async with session_factory() as session:
            report = (
                await ContractService.from_session(session).handle_order_completed(
                    order_event(account_id, plan_id, product_id), now=JAN_15_2024
                )
            ).unwrap()
        code = report.created[0]

        async def request_visit():
            async with session_factory() as session:
                return await ContractService.from_session(session).request_service_visit(
                    account_id, code, now=MARCH_1_2024
                )

        results = await asyncio.gather(*(request_visit() for _ in range(5)))

        assert sum(1 for r in results if r.ok) == 2
        assert all(r.error.kind == ErrorKind.QUOTA_EXHAUSTED for r in results if not r.ok)
        async with session_factory() as session:
            view = (await ContractService.from_session(session).get_contract(account_id, code, now=MARCH_1_2024)).unwrap()
        assert view.services_used == 2
        assert len(view.service_history) == 2

    @pytest.mark.asyncio
    async def test_redelivered_order_events_create_one_contract(self, session_factory, seeded):
        """Test that three deliveries of one event produce a single contract and profile."""
        account_id, plan_id, product_id = seeded
        event = order_event(account_id, plan_id, product_id)

        async def deliver():
            async with session_factory() as session:
                return await ContractService.from_session(session).handle_order_completed(event, now=JAN_15_2024)

        results = await asyncio.gather(*(deliver() for _ in range(3)))

        reports = [r.unwrap() for r in results]
        created = [code for report in reports for code in report.created]
        already = [code for report in reports for code in report.already_created]
        assert len(created) == 1
        assert set(already) <= set(created)
        assert len({report.customer_code for report in reports}) == 1
