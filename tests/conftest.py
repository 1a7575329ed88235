"""Pytest configuration and fixtures."""

from datetime import datetime

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from aquacare.domain.models.order_events import OrderCompletedEvent, OrderItemIn, ProductRefIn
from aquacare.domain.services.contract_service import ContractService
from aquacare.persistence.database import Base, get_db
from aquacare.persistence.models import *  # noqa: F401, F403
from aquacare.persistence.models.catalog import CatalogItem, PlanTemplate
from aquacare.persistence.models.customer_profile import CustomerProfile
from aquacare.persistence.models.web_account import WebAccount
from aquacare.settings import settings

JAN_15_2024 = datetime(2024, 1, 15, 10, 0, 0)


@pytest.fixture
async def db_session():
    """Create a test database session."""
    # Use in-memory SQLite for testing
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def service(db_session):
    """Contract service wired to the test session."""
    return ContractService.from_session(db_session)


@pytest.fixture
def make_account(db_session):
    """Factory for web accounts."""

    async def _make(
        phone: str | None = "+91 98765-43210",
        email: str | None = None,
        role: str = "user",
        first_name: str = "Asha",
        token_version: int = 0,
    ) -> WebAccount:
        account = WebAccount(
            first_name=first_name,
            last_name="Rao",
            phone=phone,
            email=email,
            role=role,
            token_version=token_version,
        )
        db_session.add(account)
        await db_session.commit()
        return account

    return _make


@pytest.fixture
def make_profile(db_session):
    """Factory for admin-managed customer profiles."""
    counter = {"n": 0}

    async def _make(
        mobile: str = "09876543210 (home)",
        name: str = "Asha Rao",
        email: str | None = None,
        updated_at: datetime | None = None,
    ) -> CustomerProfile:
        counter["n"] += 1
        profile = CustomerProfile(
            customer_code=f"CUST-T{counter['n']:03d}",
            name=name,
            mobile=mobile,
            email=email,
        )
        if updated_at is not None:
            profile.updated_at = updated_at
        db_session.add(profile)
        await db_session.commit()
        return profile

    return _make


@pytest.fixture
def make_plan(db_session):
    """Factory for plan templates."""

    async def _make(
        kind: str = "amc",
        name: str = "Gold AMC",
        price: float = 2999.0,
        duration_months: int | None = 12,
        service_quota: int | None = 4,
        parts_included: bool = False,
        is_active: bool = True,
    ) -> PlanTemplate:
        plan = PlanTemplate(
            kind=kind,
            name=name,
            price=price,
            duration_months=duration_months,
            service_quota=service_quota,
            parts_included=parts_included,
            is_active=is_active,
        )
        db_session.add(plan)
        await db_session.commit()
        return plan

    return _make


@pytest.fixture
def make_product(db_session):
    """Factory for catalog products and parts."""

    async def _make(
        plan_ids: list[int] | None = None,
        kind: str = "Product",
        name: str = "AquaPure RO 8L",
        image_url: str | None = "https://cdn.example.com/ro-8l.png",
    ) -> CatalogItem:
        item = CatalogItem(kind=kind, name=name, image_url=image_url, plan_ids=plan_ids or [])
        db_session.add(item)
        await db_session.commit()
        return item

    return _make


@pytest.fixture
def auth_headers():
    """Bearer header for a web account."""

    def _headers(account: WebAccount) -> dict[str, str]:
        token = jwt.encode(
            {"sub": str(account.id), "ver": account.token_version, "role": account.role},
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
async def client(db_session):
    """Create a test HTTP client bound to the test session."""
    from aquacare.main import app

    app.dependency_overrides[get_db] = lambda: db_session

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def place_order(service):
    """Complete a one-line order and return the contracts it created."""
    counter = {"n": 0}

    async def _place(
        account: WebAccount,
        product: CatalogItem,
        plan_id: int | None = None,
        amount: float = 0.0,
        payment_status: str = "Paid",
        now: datetime = JAN_15_2024,
    ):
        counter["n"] += 1
        event = OrderCompletedEvent(
            order_id=f"ORD-{counter['n']:04d}",
            account_id=account.id,
            items=[
                OrderItemIn(
                    product=ProductRefIn(kind=product.kind, id=product.id),
                    plan_id=plan_id,
                    amount=amount,
                )
            ],
            payment_status=payment_status,
        )
        result = await service.handle_order_completed(event, now=now)
        assert result.ok, result.error
        return [await service.contract_repo.get_by_code(code) for code in result.value.created]

    return _place
