"""Tests for building AMC and rental contracts."""

from datetime import datetime

import pytest

from aquacare.domain.services.contract_factory import ContractContext, ContractFactory
from aquacare.domain.services.lifecycle_manager import LifecycleManager
from aquacare.infrastructure.catalog import PlanInfo, ProductInfo, ProductRef
from aquacare.persistence.models.contract import ContractKind, ContractStatus, PaymentStatus
from aquacare.persistence.models.customer_profile import CustomerType, TermSource
from aquacare.persistence.repositories.customer_profile_repository import CustomerProfileRepository


JAN_15_2024 = datetime(2024, 1, 15, 10, 0, 0)
GOLD = PlanInfo(id=1, kind="amc", name="Gold AMC", price=2999.0, duration_months=12, service_quota=4)
RENTAL = PlanInfo(id=2, kind="rental", name="RO on Rent", price=499.0, duration_months=1, service_quota=None)
PURIFIER = ProductInfo(ref=ProductRef(kind="Product", id=10), name="AquaPure RO 8L", image_url="ro.png")


@pytest.fixture
def factory(db_session):
    return ContractFactory(db_session, LifecycleManager(db_session))


class TestCreateFromOrderItem:
    """Tests for self-service contracts created from orders."""

    @pytest.mark.asyncio
    async def test_twelve_month_amc_from_jan_15(self, factory, make_account, db_session):
        """Test that a 12-month AMC bought 2024-01-15 ends 2025-01-15."""
        account = await make_account()

        contract = await factory.create_from_order_item(
            account, "ORD-1", GOLD, PURIFIER, 2999.0, PaymentStatus.PAID, now=JAN_15_2024
        )
        await db_session.commit()

        assert contract.start_date == JAN_15_2024
        assert contract.end_date == datetime(2025, 1, 15, 10, 0, 0)
        assert contract.duration_months == 12
        assert contract.services_total == 4
        assert contract.services_used == 0
        assert contract.status == ContractStatus.ACTIVE
        assert contract.contract_code.startswith("AMC-")
        assert contract.product_name == "AquaPure RO 8L"
        assert contract.product_kind == "Product"

    @pytest.mark.asyncio
    async def test_unpaid_order_starts_pending(self, factory, make_account):
        """Test that a contract waits for payment before activating."""
        account = await make_account()

        contract = await factory.create_from_order_item(
            account, "ORD-2", GOLD, PURIFIER, 2999.0, PaymentStatus.PENDING, now=JAN_15_2024
        )

        assert contract.status == ContractStatus.PENDING
        assert contract.amount_paid == 0.0

    @pytest.mark.asyncio
    async def test_rental_gets_rental_code_and_no_quota(self, factory, make_account):
        """Test that rental plans without a quota get zero visits."""
        account = await make_account()

        contract = await factory.create_from_order_item(
            account, "ORD-3", RENTAL, PURIFIER, 499.0, PaymentStatus.PAID, now=JAN_15_2024
        )

        assert contract.kind == ContractKind.RENTAL
        assert contract.contract_code.startswith("RNT-")
        assert contract.services_total == 0
        assert contract.end_date == datetime(2024, 2, 15, 10, 0, 0)

    @pytest.mark.asyncio
    async def test_plan_without_duration_uses_defaults(self, factory, make_account):
        """Test the 12 months / 4 visits fallback for bare AMC plans."""
        account = await make_account()
        bare = PlanInfo(id=3, kind="amc", name="Basic", price=999.0)

        contract = await factory.create_from_order_item(
            account, "ORD-4", bare, PURIFIER, 999.0, PaymentStatus.PAID, now=JAN_15_2024
        )

        assert contract.duration_months == 12
        assert contract.services_total == 4


class TestProfileTerms:
    """Tests for admin-created AMC and rental terms."""

    @pytest.mark.asyncio
    async def test_create_amc_marks_customer(self, factory, make_profile, db_session):
        """Test that installing an AMC makes the profile an AMC customer."""
        profile = await make_profile()

        term = await factory.create_amc(profile, GOLD, ContractContext(payment_mode="UPI"), now=JAN_15_2024)
        await db_session.commit()

        assert term.is_current is True
        assert term.source == TermSource.ADMIN
        assert term.end_date == datetime(2025, 1, 15, 10, 0, 0)
        assert term.payment_mode == "UPI"
        assert profile.type == CustomerType.AMC_CUSTOMER

    @pytest.mark.asyncio
    async def test_admin_override_wins_over_template(self, factory, make_profile):
        """Test that explicit context values beat the plan template."""
        profile = await make_profile()
        context = ContractContext(duration_months=24, services_total=6, amount=5000.0)

        term = await factory.create_amc(profile, GOLD, context, now=JAN_15_2024)

        assert term.duration_months == 24
        assert term.end_date == datetime(2026, 1, 15, 10, 0, 0)
        assert term.services_total == 6
        assert term.amount == 5000.0

    @pytest.mark.asyncio
    async def test_second_amc_archives_the_first(self, factory, make_profile, db_session):
        """Test that only one AMC term stays current."""
        profile = await make_profile()
        first = await factory.create_amc(profile, GOLD, ContractContext(), now=JAN_15_2024)
        await db_session.commit()

        second = await factory.create_amc(profile, GOLD, ContractContext(), now=datetime(2024, 3, 1))
        await db_session.commit()
        await db_session.refresh(first)

        assert first.is_current is False
        assert first.status == ContractStatus.EXPIRED
        assert first.archived_at == datetime(2024, 3, 1)
        assert second.is_current is True
        repo = CustomerProfileRepository(db_session)
        assert await repo.count_archived_terms(profile.id, ContractKind.AMC) == 1

    @pytest.mark.asyncio
    async def test_renewal_starts_at_previous_end(self, factory, make_profile, db_session):
        """Test that an early renewal does not overlap the running term."""
        profile = await make_profile()
        current = await factory.create_amc(profile, GOLD, ContractContext(), now=JAN_15_2024)
        await db_session.commit()
        prior_end = current.end_date

        renewed = await factory.renew_term(profile, ContractKind.AMC, GOLD, ContractContext(), now=datetime(2024, 12, 1))

        assert renewed.start_date == prior_end
        assert renewed.end_date == datetime(2026, 1, 15, 10, 0, 0)

    @pytest.mark.asyncio
    async def test_late_renewal_starts_now(self, factory, make_profile, db_session):
        """Test that a renewal after expiry starts from today."""
        profile = await make_profile()
        await factory.create_amc(profile, GOLD, ContractContext(), now=JAN_15_2024)
        await db_session.commit()
        late = datetime(2025, 3, 1)

        renewed = await factory.renew_term(profile, ContractKind.AMC, GOLD, ContractContext(), now=late)

        assert renewed.start_date == late

    @pytest.mark.asyncio
    async def test_shared_context_is_left_untouched(self, factory, make_profile, db_session):
        """Test that one context reused for two renewals chains each off the term it replaces."""
        profile = await make_profile()
        await factory.create_amc(profile, GOLD, ContractContext(), now=JAN_15_2024)
        await db_session.commit()
        context = ContractContext(payment_mode="Cash")

        first = await factory.renew_term(profile, ContractKind.AMC, None, context, now=datetime(2024, 12, 1))
        second = await factory.renew_term(profile, ContractKind.AMC, None, context, now=datetime(2024, 12, 1))

        assert context.start_date is None
        assert context.duration_months is None
        assert first.start_date == datetime(2025, 1, 15, 10, 0, 0)
        assert second.start_date == first.end_date
        assert second.end_date == datetime(2027, 1, 15, 10, 0, 0)

    @pytest.mark.asyncio
    async def test_rental_first_payment_due_after_one_month(self, factory, make_profile):
        """Test the rental next-due date."""
        profile = await make_profile()

        term = await factory.create_rental(profile, RENTAL, ContractContext(machine_model="RO 8L"), now=JAN_15_2024)

        assert term.next_due_date == datetime(2024, 2, 15, 10, 0, 0)
        assert term.machine_model == "RO 8L"
        assert term.services_total == 0
