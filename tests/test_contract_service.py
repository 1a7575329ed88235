"""Tests for the contract service facade."""

import logging
from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from aquacare.core.result import ErrorKind
from aquacare.domain.models.order_events import OrderCompletedEvent, OrderItemIn, ProductRefIn
from aquacare.domain.services.contract_factory import ContractContext
from aquacare.domain.services.contract_service import ContractService
from aquacare.infrastructure.notifications import ContractEvent, NotificationSink
from aquacare.persistence.models.contract import ContractStatus, PaymentStatus
from aquacare.persistence.models.customer_profile import ComplaintTicket
from aquacare.persistence.models.service_visit import ServiceVisitEntry
from aquacare.persistence.repositories.notification_repository import NotificationRepository

JAN_15_2024 = datetime(2024, 1, 15, 10, 0, 0)
MARCH_1_2024 = datetime(2024, 3, 1, 9, 0, 0)


def order_event(order_id: str, account_id: int, product, plan_id: int | None = None, amount: float = 0.0):
    return OrderCompletedEvent(
        order_id=order_id,
        account_id=account_id,
        items=[OrderItemIn(product=ProductRefIn(kind=product.kind, id=product.id), plan_id=plan_id, amount=amount)],
    )


class FailingSink(NotificationSink):
    """Sink whose delivery always fails."""

    async def notify(self, event: ContractEvent) -> None:
        raise RuntimeError("notification backend down")


class TestOrderCompleted:
    """Tests for contract creation from completed orders."""

    @pytest.mark.asyncio
    async def test_order_creates_contract_and_profile(self, service, make_account, make_plan, make_product):
        """Test that a first order links a new profile and creates the contract."""
        plan = await make_plan()
        product = await make_product(plan_ids=[plan.id])
        account = await make_account()

        result = await service.handle_order_completed(
            order_event("ORD-100", account.id, product, plan.id, 2999.0), now=JAN_15_2024
        )

        report = result.unwrap()
        assert len(report.created) == 1
        assert report.customer_code.startswith("CUST")
        contract = await service.contract_repo.get_by_code(report.created[0])
        assert contract.notes == "Auto-activated from order #ORD-100 (delivery)"
        assert contract.amount == 2999.0

    @pytest.mark.asyncio
    async def test_duplicate_event_reports_already_created(self, service, make_account, make_plan, make_product):
        """Test that a redelivered event creates nothing new."""
        plan = await make_plan()
        product = await make_product(plan_ids=[plan.id])
        account = await make_account()
        event = order_event("ORD-101", account.id, product, plan.id)

        first = (await service.handle_order_completed(event, now=JAN_15_2024)).unwrap()
        second = (await service.handle_order_completed(event, now=JAN_15_2024)).unwrap()

        assert second.created == []
        assert second.already_created == first.created
        assert len(await service.contract_repo.list_by_order("ORD-101")) == 1

    @pytest.mark.asyncio
    async def test_line_without_plan_uses_all_active_plans(
        self, service, make_account, make_plan, make_product
    ):
        """Test that every active plan linked to the product yields a contract."""
        gold = await make_plan(name="Gold AMC", price=2999.0)
        silver = await make_plan(name="Silver AMC", price=1999.0, service_quota=2)
        retired = await make_plan(name="Old AMC", is_active=False)
        product = await make_product(plan_ids=[gold.id, silver.id, retired.id])
        account = await make_account()

        report = (
            await service.handle_order_completed(order_event("ORD-102", account.id, product), now=JAN_15_2024)
        ).unwrap()

        contracts = await service.contract_repo.list_by_order("ORD-102")
        assert len(report.created) == 2
        assert {c.plan_name: c.amount for c in contracts} == {"Gold AMC": 2999.0, "Silver AMC": 1999.0}

    @pytest.mark.asyncio
    async def test_unknown_product_and_planless_product_are_skipped(
        self, service, make_account, make_product
    ):
        """Test that lines with nothing to create are reported as skipped."""
        bare = await make_product(plan_ids=[])
        account = await make_account()
        event = OrderCompletedEvent(
            order_id="ORD-103",
            account_id=account.id,
            items=[
                OrderItemIn(product=ProductRefIn(kind="Product", id=9999)),
                OrderItemIn(product=ProductRefIn(kind=bare.kind, id=bare.id)),
            ],
        )

        report = (await service.handle_order_completed(event, now=JAN_15_2024)).unwrap()

        assert report.created == []
        assert [s["reason"] for s in report.skipped] == ["product not found", "no active plan"]

    @pytest.mark.asyncio
    async def test_unknown_account_is_not_found(self, service, make_product):
        """Test that an event for a missing account fails with NotFound."""
        product = await make_product()

        result = await service.handle_order_completed(order_event("ORD-104", 4242, product), now=JAN_15_2024)

        assert result.error.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_notifications_for_admin_and_user(
        self, service, make_account, make_plan, make_product, db_session
    ):
        """Test that a created contract notifies both the admin and the buyer."""
        plan = await make_plan()
        product = await make_product(plan_ids=[plan.id])
        account = await make_account()

        await service.handle_order_completed(order_event("ORD-105", account.id, product, plan.id), now=JAN_15_2024)

        repo = NotificationRepository(db_session)
        assert [n.title for n in await repo.list_for_admin()] == ["New Contract"]
        assert [n.title for n in await repo.list_for_account(account.id)] == ["Contract Activated"]

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_undo_contract(
        self, db_session, make_account, make_plan, make_product, caplog
    ):
        """Test that a notification failure is logged and the contract stays."""
        service = ContractService.from_session(db_session, notifier=FailingSink())
        plan = await make_plan()
        product = await make_product(plan_ids=[plan.id])
        account = await make_account()

        with caplog.at_level(logging.ERROR):
            result = await service.handle_order_completed(
                order_event("ORD-106", account.id, product, plan.id), now=JAN_15_2024
            )

        assert len(result.unwrap().created) == 1
        assert any("Notification sink failed" in r.getMessage() for r in caplog.records)
        assert len(await service.contract_repo.list_by_order("ORD-106")) == 1

    @pytest.mark.asyncio
    async def test_order_summary_is_logged_at_info(self, service, make_account, make_plan, make_product, caplog):
        """Test that the order hook succeeds with INFO logging enabled."""
        caplog.set_level(logging.INFO)
        plan = await make_plan()
        product = await make_product(plan_ids=[plan.id])
        account = await make_account()

        result = await service.handle_order_completed(
            order_event("ORD-107", account.id, product, plan.id), now=JAN_15_2024
        )

        report = result.unwrap()
        summary = [r for r in caplog.records if hasattr(r, "created_codes")]
        assert len(summary) == 1
        assert summary[0].created_codes == report.created

    @pytest.mark.asyncio
    async def test_redelivery_losing_the_insert_race(
        self, db_session, make_account, make_plan, make_product, monkeypatch
    ):
        """Test that a redelivery whose lookup misses the first contract reports it as already created."""
        plan = await make_plan()
        product = await make_product(plan_ids=[plan.id])
        account = await make_account()
        event = order_event("ORD-108", account.id, product, plan.id)
        first = (await ContractService.from_session(db_session).handle_order_completed(event, now=JAN_15_2024)).unwrap()

        late = ContractService.from_session(db_session)
        real_lookup = late.contract_repo.get_by_order_key
        lookups = {"n": 0}

        async def stale_then_real(order_id, product_id, plan_id):
            lookups["n"] += 1
            if lookups["n"] == 1:
                return None
            return await real_lookup(order_id, product_id, plan_id)

        monkeypatch.setattr(late.contract_repo, "get_by_order_key", stale_then_real)

        second = (await late.handle_order_completed(event, now=JAN_15_2024)).unwrap()

        assert second.created == []
        assert second.already_created == first.created
        assert second.customer_code == first.customer_code
        assert len(await late.contract_repo.list_by_order("ORD-108")) == 1

    @pytest.mark.asyncio
    async def test_term_index_collision_is_conflict(
        self, service, make_account, make_plan, make_product, monkeypatch
    ):
        """Test that a unique violation on profile terms fails with Conflict and keeps nothing."""
        plan = await make_plan()
        product = await make_product(plan_ids=[plan.id])
        account = await make_account()

        async def collide(contract, profile=None, now=None):
            raise IntegrityError(
                "INSERT INTO profile_contracts",
                {},
                Exception("UNIQUE constraint failed: profile_contracts.profile_id, profile_contracts.kind"),
            )

        monkeypatch.setattr(service.sync, "propagate_contract", collide)

        result = await service.handle_order_completed(
            order_event("ORD-109", account.id, product, plan.id), now=JAN_15_2024
        )

        assert result.error.kind == ErrorKind.CONFLICT
        assert result.error.details["order_id"] == "ORD-109"
        assert await service.contract_repo.list_by_order("ORD-109") == []


class TestRenewal:
    """Tests for renewing self-service contracts."""

    @pytest.fixture
    async def contract(self, make_account, make_plan, make_product, place_order):
        plan = await make_plan()
        product = await make_product(plan_ids=[plan.id])
        account = await make_account()
        [contract] = await place_order(account, product, plan_id=plan.id, amount=plan.price)
        return contract

    @pytest.mark.asyncio
    async def test_renewal_starts_at_prior_end(self, service, contract, db_session):
        """Test that an early renewal is chained after the current term."""
        renewed = (
            await service.renew_contract(contract.account_id, contract.contract_code, now=datetime(2024, 12, 1))
        ).unwrap()
        await db_session.refresh(contract)

        assert contract.status == ContractStatus.EXPIRED
        assert renewed.start_date == contract.end_date
        assert renewed.end_date == datetime(2026, 1, 15, 10, 0, 0)
        assert renewed.status == ContractStatus.ACTIVE
        assert renewed.services_used == 0

    @pytest.mark.asyncio
    async def test_renewal_archives_previous_term(self, service, contract):
        """Test that the profile archive grows by exactly one."""
        customer_before = (await service.resolve_customer(contract.account_id, now=JAN_15_2024)).unwrap()

        await service.renew_contract(contract.account_id, contract.contract_code, now=datetime(2024, 12, 1))

        customer_after = (await service.resolve_customer(contract.account_id, now=datetime(2024, 12, 1))).unwrap()
        assert customer_after.archived_amc_terms == customer_before.archived_amc_terms + 1
        assert customer_after.amc.contract_code != contract.contract_code

    @pytest.mark.asyncio
    async def test_second_renewal_is_conflict(self, service, contract):
        """Test that the same contract cannot be renewed twice."""
        account_id = contract.account_id
        code = contract.contract_code
        (await service.renew_contract(account_id, code, now=datetime(2024, 12, 1))).unwrap()

        result = await service.renew_contract(account_id, code, now=datetime(2024, 12, 2))

        assert result.error.kind == ErrorKind.CONFLICT
        assert len(await service.contract_repo.list_by_order(f"RENEW-{code}")) == 1

    @pytest.mark.asyncio
    async def test_cancelled_contract_cannot_be_renewed(self, service, contract):
        """Test that renewal needs an Active, On Hold or Expired contract."""
        account_id = contract.account_id
        code = contract.contract_code
        (await service.cancel_contract(account_id, code, now=MARCH_1_2024)).unwrap()

        result = await service.renew_contract(account_id, code, now=MARCH_1_2024)

        assert result.error.kind == ErrorKind.CONFLICT


class TestPortalReads:
    """Tests for the portal's read operations."""

    @pytest.mark.asyncio
    async def test_contract_list_pages_and_filters(
        self, service, make_account, make_plan, make_product, place_order
    ):
        """Test paging and stored-status filtering of an account's contracts."""
        plan = await make_plan()
        product = await make_product(plan_ids=[plan.id])
        account = await make_account()
        [first] = await place_order(account, product, plan_id=plan.id)
        await place_order(account, product, plan_id=plan.id)
        (await service.cancel_contract(account.id, first.contract_code, now=MARCH_1_2024)).unwrap()

        page = (await service.get_my_contracts(account.id, page=1, limit=1, now=MARCH_1_2024)).unwrap()
        cancelled = (
            await service.get_my_contracts(account.id, status=ContractStatus.CANCELLED, now=MARCH_1_2024)
        ).unwrap()

        assert page.total == 2
        assert page.pages == 2
        assert len(page.items) == 1
        assert [c.contract_code for c in cancelled.items] == [first.contract_code]

    @pytest.mark.asyncio
    async def test_summary_counts_and_upcoming_expiry(
        self, service, make_account, make_plan, make_product, place_order
    ):
        """Test the portal summary tiles."""
        plan = await make_plan()
        product = await make_product(plan_ids=[plan.id])
        account = await make_account()
        [contract] = await place_order(account, product, plan_id=plan.id)
        await service.request_service_visit(account.id, contract.contract_code, now=MARCH_1_2024)

        summary = (await service.get_contract_summary(account.id, now=datetime(2025, 1, 1))).unwrap()

        assert summary.active_contracts == 1
        assert summary.expired_contracts == 0
        assert summary.total_services_used == 1
        assert summary.upcoming_expiry[0]["contract_code"] == contract.contract_code
        assert summary.upcoming_expiry[0]["days_remaining"] == 15

    @pytest.mark.asyncio
    async def test_unknown_account_resolves_to_no_customer(self, service):
        """Test that resolving a missing account is a success with no value."""
        result = await service.resolve_customer(4242)

        assert result.ok
        assert result.value is None

    @pytest.mark.asyncio
    async def test_service_requests_merge_tickets_and_visits(
        self, service, make_account, make_plan, make_product, place_order, db_session
    ):
        """Test that a ticket and its visit are listed once, newest first."""
        plan = await make_plan()
        product = await make_product(plan_ids=[plan.id])
        account = await make_account()
        [contract] = await place_order(account, product, plan_id=plan.id)
        await service.request_service_visit(account.id, contract.contract_code, now=MARCH_1_2024)
        profile = await service.identity.resolve(account)
        phoned_in = ComplaintTicket(
            profile_id=profile.id, ticket_code="SR-PHONE-2", type="Repair", opened_at=datetime(2024, 4, 1)
        )
        unlinked = ServiceVisitEntry(contract_id=contract.id, visit_date=datetime(2024, 2, 1))
        db_session.add_all([phoned_in, unlinked])
        await db_session.commit()

        requests = (await service.list_service_requests(account.id)).unwrap()

        assert [r.source for r in requests] == ["ticket", "ticket", "visit"]
        assert requests[0].ticket_code == "SR-PHONE-2"
        assert requests[2].contract_code == contract.contract_code

    @pytest.mark.asyncio
    async def test_dashboard_status(self, service, make_account, make_plan, make_product, place_order):
        """Test the portal landing data."""
        plan = await make_plan()
        product = await make_product(plan_ids=[plan.id])
        account = await make_account()
        [contract] = await place_order(account, product, plan_id=plan.id)

        dashboard = (await service.dashboard_status(account.id, now=MARCH_1_2024)).unwrap()

        assert dashboard.customer_code is not None
        assert dashboard.amc.contract_code == contract.contract_code
        assert dashboard.rental is None

    @pytest.mark.asyncio
    async def test_unknown_kind_is_not_found(self, service, make_account):
        """Test that only amc and rental are valid kinds."""
        account = await make_account()

        result = await service.current_contract(account.id, "warranty")

        assert result.error.kind == ErrorKind.NOT_FOUND


class TestJobs:
    """Tests for order cancellation and the expiry sweep."""

    @pytest.mark.asyncio
    async def test_cancel_for_order(self, service, make_account, make_plan, make_product, place_order):
        """Test that an order return cancels its open contracts once."""
        plan = await make_plan()
        product = await make_product(plan_ids=[plan.id])
        account = await make_account()
        [contract] = await place_order(account, product, plan_id=plan.id)

        first = (await service.cancel_for_order(contract.order_id, "Returned")).unwrap()
        second = (await service.cancel_for_order(contract.order_id, "Returned")).unwrap()

        assert first == [contract.contract_code]
        assert second == []

    @pytest.mark.asyncio
    async def test_sweep_notifies_owner(
        self, service, make_account, make_plan, make_product, place_order, db_session
    ):
        """Test that expiry is persisted once and the owner is told."""
        plan = await make_plan()
        product = await make_product(plan_ids=[plan.id])
        account = await make_account()
        [contract] = await place_order(account, product, plan_id=plan.id)

        report = (await service.run_expiry_sweep(now=datetime(2025, 1, 16))).unwrap()
        rerun = (await service.run_expiry_sweep(now=datetime(2025, 1, 16))).unwrap()

        assert report.contract_ids == [contract.id]
        assert len(report.term_ids) == 1
        assert rerun.total == 0
        titles = [n.title for n in await NotificationRepository(db_session).list_for_account(account.id)]
        assert titles.count("Contract Expired") == 1


class TestAdminOperations:
    """Tests for the admin panel operations."""

    @pytest.mark.asyncio
    async def test_dashboard_counts_current_amc_terms(self, service, make_profile, make_plan):
        """Test the AMC tiles across profiles."""
        plan = await make_plan()
        fresh = await make_profile(mobile="+91 91111-11111")
        lapsed = await make_profile(mobile="+91 92222-22222")
        (await service.create_amc(fresh.customer_code, plan.id, ContractContext(), now=JAN_15_2024)).unwrap()
        (await service.create_amc(lapsed.customer_code, plan.id, ContractContext(), now=datetime(2023, 1, 1))).unwrap()

        stats = (await service.admin_dashboard(now=datetime(2024, 12, 20))).unwrap()

        assert stats.total == 2
        assert stats.active == 1
        assert stats.expired == 1
        assert stats.expiring_soon == 1
        assert stats.revenue_collected == 2 * plan.price

    @pytest.mark.asyncio
    async def test_renew_amc_archives_and_chains(self, service, make_profile, make_plan):
        """Test an admin renewal of a walk-in AMC."""
        plan = await make_plan()
        profile = await make_profile()
        first = (await service.create_amc(profile.customer_code, plan.id, ContractContext(), now=JAN_15_2024)).unwrap()

        renewed = (
            await service.renew_amc(profile.customer_code, None, ContractContext(), now=datetime(2024, 12, 1))
        ).unwrap()

        customer = (await service.get_customer(profile.customer_code, now=datetime(2024, 12, 1))).unwrap()
        assert renewed.start_date == first.end_date
        assert renewed.services_total == first.services_total
        assert customer.archived_amc_terms == 1

    @pytest.mark.asyncio
    async def test_unknown_plan_and_customer(self, service, make_profile):
        """Test NotFound for a missing plan or customer."""
        profile = await make_profile()

        missing_plan = await service.create_amc(profile.customer_code, 999, ContractContext())
        missing_customer = await service.create_amc("CUST-NOPE", None, ContractContext())

        assert missing_plan.error.kind == ErrorKind.NOT_FOUND
        assert missing_customer.error.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_rental_payment_moves_due_date(self, service, make_profile, make_plan):
        """Test that a monthly payment pushes the next due date by a month."""
        plan = await make_plan(kind="rental", name="RO on Rent", price=499.0, service_quota=None)
        profile = await make_profile()
        (await service.install_rental(profile.customer_code, plan.id, ContractContext(), now=JAN_15_2024)).unwrap()

        view = (await service.record_rental_payment(profile.customer_code, 499.0, "UPI", now=JAN_15_2024)).unwrap()

        assert view.next_due_date == datetime(2024, 3, 15, 10, 0, 0)
        assert view.amount_paid == 998.0

    @pytest.mark.asyncio
    async def test_rental_payment_without_rental(self, service, make_profile):
        """Test that a profile without a rental cannot record payments."""
        profile = await make_profile()

        result = await service.record_rental_payment(profile.customer_code, 499.0)

        assert result.error.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_transition_hold_resume(self, service, make_account, make_plan, make_product, place_order):
        """Test admin hold and resume on a self-service contract."""
        plan = await make_plan()
        product = await make_product(plan_ids=[plan.id])
        account = await make_account()
        [contract] = await place_order(account, product, plan_id=plan.id)

        held = (await service.transition_contract(contract.contract_code, "hold", now=MARCH_1_2024)).unwrap()
        resumed = (await service.transition_contract(contract.contract_code, "resume", now=MARCH_1_2024)).unwrap()
        again = await service.transition_contract(contract.contract_code, "resume", now=MARCH_1_2024)

        assert held.status == ContractStatus.ON_HOLD
        assert resumed.status == ContractStatus.ACTIVE
        assert again.error.kind == ErrorKind.CONFLICT

    @pytest.mark.asyncio
    async def test_transition_confirms_payment_on_term(self, service, make_profile, make_plan):
        """Test that profile terms are found by code too."""
        plan = await make_plan()
        profile = await make_profile()
        term = (
            await service.create_amc(
                profile.customer_code,
                plan.id,
                ContractContext(payment_status=PaymentStatus.PENDING),
                now=JAN_15_2024,
            )
        ).unwrap()

        view = (
            await service.transition_contract(term.contract_code, "confirm_payment", amount_paid=2500.0, now=JAN_15_2024)
        ).unwrap()

        assert view.status == ContractStatus.ACTIVE
        assert view.amount_paid == 2500.0

    @pytest.mark.asyncio
    async def test_transition_rejects_unknown_action_and_code(self, service):
        """Test Conflict for a bad action and NotFound for a bad code."""
        bad_action = await service.transition_contract("AMC-X", "explode")
        bad_code = await service.transition_contract("AMC-X", "hold")

        assert bad_action.error.kind == ErrorKind.CONFLICT
        assert bad_code.error.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_search_customers(self, service, make_profile):
        """Test search by name fragment and by mobile digits."""
        await make_profile(name="Asha Rao", mobile="+91 91111-11111")
        await make_profile(name="Vikram Shah", mobile="+91 92222-22222")

        by_name = (await service.search_customers("vikram")).unwrap()
        by_mobile = (await service.search_customers("91111")).unwrap()

        assert [c.name for c in by_name] == ["Vikram Shah"]
        assert [c.name for c in by_mobile] == ["Asha Rao"]

    @pytest.mark.asyncio
    async def test_ticket_queue_filters_by_status(self, service, make_profile, db_session):
        """Test the admin ticket queue."""
        profile = await make_profile()
        db_session.add_all(
            [
                ComplaintTicket(profile_id=profile.id, ticket_code="SR-A", status="Open", opened_at=JAN_15_2024),
                ComplaintTicket(profile_id=profile.id, ticket_code="SR-B", status="Resolved", opened_at=MARCH_1_2024),
            ]
        )
        await db_session.commit()

        everything = (await service.list_tickets()).unwrap()
        open_only = (await service.list_tickets(status="Open")).unwrap()

        assert [t.ticket_code for t in everything] == ["SR-B", "SR-A"]
        assert [t.ticket_code for t in open_only] == ["SR-A"]
        assert open_only[0].customer_code == profile.customer_code


class TestCustomerIntake:
    """Tests for registering customers and logging tickets and enquiries."""

    @pytest.mark.asyncio
    async def test_create_customer(self, service):
        """Test that staff can register a walk-in customer."""
        customer = (
            await service.create_customer(
                "Meena Iyer", "+91 93333-33333", email="meena@example.com", address={"city": "Pune"}, now=JAN_15_2024
            )
        ).unwrap()

        assert customer.customer_code.startswith("CUST")
        assert customer.type == "New"
        assert customer.amc is None
        profile = await service.profile_repo.get_by_code(customer.customer_code)
        assert profile.address == {"city": "Pune"}

    @pytest.mark.asyncio
    async def test_create_customer_with_known_mobile_is_conflict(self, service, make_profile):
        """Test that a differently formatted copy of an existing mobile is rejected."""
        existing = await make_profile(mobile="09876543210 (home)")

        result = await service.create_customer("Asha R", "+91 98765-43210")

        assert result.error.kind == ErrorKind.CONFLICT
        assert result.error.details["customer_code"] == existing.customer_code

    @pytest.mark.asyncio
    async def test_create_customer_rejects_bad_input(self, service):
        """Test that a mobile without digits and an unknown type are conflicts."""
        no_digits = await service.create_customer("Meena Iyer", "n/a")
        bad_type = await service.create_customer("Meena Iyer", "+91 93333-33333", customer_type="VIP")

        assert no_digits.error.kind == ErrorKind.CONFLICT
        assert bad_type.error.kind == ErrorKind.CONFLICT

    @pytest.mark.asyncio
    async def test_add_ticket_links_same_day_visit(
        self, service, make_account, make_plan, make_product, place_order, db_session
    ):
        """Test that a phoned-in complaint binds to the visit recorded that day."""
        plan = await make_plan()
        product = await make_product(plan_ids=[plan.id])
        account = await make_account()
        [contract] = await place_order(account, product, plan_id=plan.id)
        profile = await service.identity.resolve(account)
        visit = ServiceVisitEntry(contract_id=contract.id, visit_date=datetime(2024, 3, 1, 8, 0, 0))
        db_session.add(visit)
        await db_session.commit()

        ticket = (
            await service.add_ticket(
                profile.customer_code, "Leaking tap", type="Repair", priority="High", opened_at=MARCH_1_2024
            )
        ).unwrap()
        await db_session.refresh(visit)

        assert ticket.linked_visit is True
        assert ticket.priority == "High"
        assert ticket.customer_code == profile.customer_code
        assert visit.ticket_code == ticket.ticket_code

    @pytest.mark.asyncio
    async def test_add_ticket_for_unknown_customer(self, service):
        """Test that a ticket needs an existing profile."""
        result = await service.add_ticket("CUST-NOPE", "Leaking tap")

        assert result.error.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_enquiry_creates_profile_on_first_contact(self, service, make_account, db_session):
        """Test that a portal enquiry links a new profile and alerts the admin."""
        account = await make_account()

        request = (await service.create_enquiry(account.id, "Need a water test", now=JAN_15_2024)).unwrap()

        profile = await service.identity.resolve(account)
        assert profile is not None
        assert request.source == "ticket"
        assert request.status == "Open"
        listed = (await service.list_service_requests(account.id)).unwrap()
        assert [r.ticket_code for r in listed] == [request.ticket_code]
        repo = NotificationRepository(db_session)
        assert [n.title for n in await repo.list_for_admin()] == ["New Service Request"]

    @pytest.mark.asyncio
    async def test_enquiry_without_phone_is_conflict(self, service, make_account):
        """Test that an account with no phone cannot open an enquiry."""
        account = await make_account(phone=None, email="web.only@example.com")

        result = await service.create_enquiry(account.id, "Need a water test")

        assert result.error.kind == ErrorKind.CONFLICT
