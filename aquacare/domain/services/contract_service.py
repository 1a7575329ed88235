"""Contract service: the entry point collaborators and routes call.

Every public method returns a ``Result``. Domain failures (``ContractError``)
roll the session back and come back as ``Result.fail``; storage failures
propagate. Each method owns its transaction and commits on success, then
hands lifecycle events to the notification sink.
"""

import logging
import math
from collections.abc import Awaitable
from datetime import datetime, timedelta
from typing import TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from aquacare.core.identifiers import add_months, generate_customer_code, generate_ticket_code, utcnow
from aquacare.core.phone import phone_match_pattern
from aquacare.core.result import ContractError, ConflictError, NotFoundError, Result
from aquacare.domain.models.contract_defaults import ContractDefaults
from aquacare.domain.models.contract_view import (
    ContractPage,
    ContractSummary,
    ContractView,
    CustomerView,
    DashboardStats,
    OrderContractsReport,
    ServiceRequestView,
    ServiceVisitView,
    TicketView,
    UserDashboard,
    days_remaining,
)
from aquacare.domain.models.order_events import OrderCompletedEvent
from aquacare.domain.services.contract_factory import ContractContext, ContractFactory
from aquacare.domain.services.identity_resolver import IdentityResolver
from aquacare.domain.services.lifecycle_manager import LifecycleManager, SweepReport
from aquacare.domain.services.service_visit_ledger import ServiceVisitLedger, VisitRecord, VisitRequest
from aquacare.domain.services.sync_bridge import SyncBridge
from aquacare.infrastructure.catalog import (
    PlanCatalog,
    PlanInfo,
    ProductCatalog,
    SqlPlanCatalog,
    SqlProductCatalog,
)
from aquacare.infrastructure.notifications import (
    ContractEvent,
    ContractEventKind,
    DatabaseNotificationSink,
    NotificationSink,
)
from aquacare.persistence.models.contract import Contract, ContractKind, ContractStatus, PaymentStatus
from aquacare.persistence.models.customer_profile import (
    CustomerProfile,
    CustomerType,
    ProfileContract,
    TicketPriority,
)
from aquacare.persistence.models.service_visit import VisitCategory
from aquacare.persistence.models.web_account import WebAccount
from aquacare.persistence.repositories.contract_repository import ContractRepository
from aquacare.persistence.repositories.customer_profile_repository import CustomerProfileRepository
from aquacare.persistence.repositories.service_visit_repository import ServiceVisitRepository
from aquacare.persistence.repositories.web_account_repository import WebAccountRepository
from aquacare.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

ADMIN_ACTIONS = ("hold", "resume", "cancel", "confirm_payment")


class ContractService:
    """Facade over identity resolution and the contract lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        plan_catalog: PlanCatalog,
        product_catalog: ProductCatalog,
        notifier: NotificationSink,
        defaults: ContractDefaults | None = None,
    ) -> None:
        self.session = session
        self.plan_catalog = plan_catalog
        self.product_catalog = product_catalog
        self.notifier = notifier
        self.defaults = defaults or ContractDefaults()

        self.identity = IdentityResolver(session, self.defaults)
        self.lifecycle = LifecycleManager(session)
        self.factory = ContractFactory(session, self.lifecycle, self.defaults)
        self.sync = SyncBridge(session, self.identity, self.lifecycle, plan_catalog, product_catalog)
        self.ledger = ServiceVisitLedger(session, self.identity, self.sync, self.defaults)

        self.account_repo = WebAccountRepository(session)
        self.contract_repo = ContractRepository(session)
        self.profile_repo = CustomerProfileRepository(session)
        self.visit_repo = ServiceVisitRepository(session)

    @classmethod
    def from_session(
        cls,
        session: AsyncSession,
        settings: Settings | None = None,
        notifier: NotificationSink | None = None,
    ) -> "ContractService":
        """Wire the service with SQL catalogs and in-app notifications."""
        return cls(
            session,
            SqlPlanCatalog(session),
            SqlProductCatalog(session),
            notifier or DatabaseNotificationSink(session),
            ContractDefaults.from_settings(settings) if settings else ContractDefaults(),
        )

    # ------------------------------------------------------------------
    # Portal
    # ------------------------------------------------------------------

    async def resolve_customer(self, account_id: int, now: datetime | None = None) -> Result[CustomerView | None]:
        """Profile linked to a web account; None when there is none yet."""
        return await self._guarded(self._resolve_customer(account_id, now or utcnow()))

    async def _resolve_customer(self, account_id: int, now: datetime) -> CustomerView | None:
        profile = await self.identity.resolve_by_account_id(account_id)
        if profile is None:
            return None
        return await self._customer_view(profile, now)

    async def get_my_contracts(
        self,
        account_id: int,
        status: str | None = None,
        page: int = 1,
        limit: int = 10,
        now: datetime | None = None,
    ) -> Result[ContractPage]:
        """An account's contracts, soonest end date first."""
        return await self._guarded(self._get_my_contracts(account_id, status, page, limit, now or utcnow()))

    async def _get_my_contracts(
        self, account_id: int, status: str | None, page: int, limit: int, now: datetime
    ) -> ContractPage:
        contracts = await self.contract_repo.list_for_account(
            account_id, status=status, skip=(page - 1) * limit, limit=limit
        )
        total = await self.contract_repo.count_for_account(account_id, status=status)
        return ContractPage(
            items=[ContractView.from_contract(c, now) for c in contracts],
            total=total,
            page=page,
            limit=limit,
            pages=math.ceil(total / limit) if limit else 0,
        )

    async def get_contract(
        self, account_id: int, contract_code: str, now: datetime | None = None
    ) -> Result[ContractView]:
        """One of the account's contracts with its service history."""
        return await self._guarded(self._get_contract(account_id, contract_code, now or utcnow()))

    async def _get_contract(self, account_id: int, contract_code: str, now: datetime) -> ContractView:
        contract = await self._owned_contract(account_id, contract_code)
        return ContractView.from_contract(contract, now)

    async def get_contract_summary(self, account_id: int, now: datetime | None = None) -> Result[ContractSummary]:
        """Summary tiles: active/expired counts, visits used, upcoming expiries."""
        return await self._guarded(self._get_contract_summary(account_id, now or utcnow()))

    async def _get_contract_summary(self, account_id: int, now: datetime) -> ContractSummary:
        upcoming = await self.contract_repo.list_expiring(
            account_id, now, now + timedelta(days=self.defaults.expiring_soon_days)
        )
        return ContractSummary(
            active_contracts=await self.contract_repo.count_for_account(account_id, ContractStatus.ACTIVE),
            expired_contracts=await self.contract_repo.count_for_account(account_id, ContractStatus.EXPIRED),
            total_services_used=await self.contract_repo.sum_services_used(account_id),
            upcoming_expiry=[
                {
                    "contract_code": c.contract_code,
                    "product_name": c.product_name,
                    "expiry_date": c.end_date,
                    "days_remaining": days_remaining(c.end_date, now),
                }
                for c in upcoming
            ],
        )

    async def current_contract(
        self, account_id: int, kind: str, now: datetime | None = None
    ) -> Result[ContractView | None]:
        """The account's current AMC or rental across both stores."""
        return await self._guarded(self._current_contract(account_id, kind, now or utcnow()))

    async def _current_contract(self, account_id: int, kind: str, now: datetime) -> ContractView | None:
        if kind not in ContractKind.ALL:
            raise NotFoundError(f"Unknown contract kind: {kind}", kind=kind)
        account = await self._account(account_id)
        return await self.sync.current_contract(account, kind, now)

    async def dashboard_status(self, account_id: int, now: datetime | None = None) -> Result[UserDashboard]:
        """Current AMC and rental plus the latest service activity."""
        return await self._guarded(self._dashboard_status(account_id, now or utcnow()))

    async def _dashboard_status(self, account_id: int, now: datetime) -> UserDashboard:
        account = await self._account(account_id)
        profile = await self.identity.resolve(account)
        requests = await self._service_requests(account, profile)
        return UserDashboard(
            customer_code=profile.customer_code if profile else None,
            amc=await self.sync.current_contract(account, ContractKind.AMC, now),
            rental=await self.sync.current_contract(account, ContractKind.RENTAL, now),
            recent_activity=requests[:5],
        )

    async def list_service_requests(self, account_id: int) -> Result[list[ServiceRequestView]]:
        """Tickets on the linked profile merged with visit history, newest first."""
        return await self._guarded(self._list_service_requests(account_id))

    async def _list_service_requests(self, account_id: int) -> list[ServiceRequestView]:
        account = await self._account(account_id)
        profile = await self.identity.resolve(account)
        return await self._service_requests(account, profile)

    async def create_enquiry(
        self,
        account_id: int,
        description: str,
        type: str = "Other",
        priority: str = TicketPriority.MEDIUM,
        now: datetime | None = None,
    ) -> Result[ServiceRequestView]:
        """Open a ticket from the portal, creating the account's profile if needed.

        Unlike ``request_service_visit`` this consumes no quota and needs no
        contract. Fails with Conflict when the account has no phone number.
        """
        return await self._guarded(self._create_enquiry(account_id, description, type, priority, now or utcnow()))

    async def _create_enquiry(
        self, account_id: int, description: str, type: str, priority: str, now: datetime
    ) -> ServiceRequestView:
        account = await self._account(account_id)
        profile = await self.identity.resolve_or_create(account)
        profile_id = profile.id
        ticket = await self.profile_repo.add_ticket(
            profile_id=profile_id,
            ticket_code=generate_ticket_code(self.defaults.ticket_code_prefix, now),
            type=type,
            description=description,
            priority=priority,
            opened_at=now,
            updated_at=now,
        )
        await self.profile_repo.touch(profile_id, now)
        await self.session.commit()
        logger.info(
            f"Opened enquiry {ticket.ticket_code} for customer {profile.customer_code}",
            extra={"account_id": account_id, "ticket_code": ticket.ticket_code},
        )

        await self._notify(
            ContractEvent(
                kind=ContractEventKind.SERVICE_REQUESTED,
                message=f"{type} enquiry from {profile.name} ({ticket.ticket_code})",
                contract_id=ticket.ticket_code,
                customer_id=profile_id,
                account_id=account_id,
                data={"ticket_code": ticket.ticket_code},
            )
        )
        return ServiceRequestView(
            ticket_code=ticket.ticket_code,
            source="ticket",
            type=ticket.type,
            description=ticket.description,
            status=ticket.status,
            opened_at=ticket.opened_at,
        )

    async def _service_requests(
        self, account: WebAccount, profile: CustomerProfile | None
    ) -> list[ServiceRequestView]:
        items: list[ServiceRequestView] = []
        ticket_codes: set[str] = set()
        if profile is not None:
            for ticket in await self.profile_repo.list_tickets_for_profile(profile.id):
                ticket_codes.add(ticket.ticket_code)
                items.append(
                    ServiceRequestView(
                        ticket_code=ticket.ticket_code,
                        source="ticket",
                        type=ticket.type,
                        description=ticket.description,
                        status=ticket.status,
                        opened_at=ticket.opened_at,
                        technician=ticket.assigned_technician,
                        resolution_notes=ticket.resolution_notes,
                    )
                )

        contracts = await self.contract_repo.list_for_accounts([account.id])
        codes = {c.id: c.contract_code for c in contracts}
        for visit in await self.visit_repo.list_for_contracts(list(codes)):
            if visit.ticket_code and visit.ticket_code in ticket_codes:
                continue
            items.append(
                ServiceRequestView(
                    ticket_code=visit.ticket_code,
                    source="visit",
                    type=visit.category,
                    description=visit.notes,
                    status=visit.status,
                    opened_at=visit.visit_date,
                    technician=visit.technician_name,
                    contract_code=codes.get(visit.contract_id),
                )
            )

        items.sort(key=lambda r: r.opened_at, reverse=True)
        return items

    async def request_service_visit(
        self,
        account_id: int,
        contract_code: str,
        notes: str | None = None,
        category: str = VisitCategory.REGULAR_SERVICE,
        now: datetime | None = None,
    ) -> Result[VisitRecord]:
        """Consume one visit from a contract and open the mirrored ticket.

        Fails with QuotaExhausted (renewal prompt) when no visits are left.
        """
        return await self._guarded(
            self._request_service_visit(account_id, contract_code, notes, category, now or utcnow())
        )

    async def _request_service_visit(
        self, account_id: int, contract_code: str, notes: str | None, category: str, now: datetime
    ) -> VisitRecord:
        if category not in VisitCategory.ALL:
            raise ConflictError(f"Unknown visit category: {category}", category=category)
        contract = await self._owned_contract(account_id, contract_code)
        record = await self.ledger.request_visit(contract, VisitRequest(notes=notes, category=category), now)
        await self.sync.propagate_contract(contract, now=now)
        await self.session.commit()

        await self._notify(
            ContractEvent(
                kind=ContractEventKind.SERVICE_REQUESTED,
                message=f"{category} requested for {contract.product_name} ({contract.contract_code})",
                contract_id=record.visit.ticket_code,
                customer_id=record.profile_id,
                account_id=account_id,
                data={"contract_code": contract.contract_code},
            )
        )
        return record

    async def cancel_contract(
        self,
        account_id: int,
        contract_code: str,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> Result[ContractView]:
        """Cancel one of the account's contracts."""
        return await self._guarded(self._cancel_contract(account_id, contract_code, reason, now or utcnow()))

    async def _cancel_contract(
        self, account_id: int, contract_code: str, reason: str | None, now: datetime
    ) -> ContractView:
        contract = await self._owned_contract(account_id, contract_code)
        await self.lifecycle.cancel(contract, reason)
        await self.sync.propagate_contract(contract, now=now)
        await self.session.commit()

        await self._notify(
            ContractEvent(
                kind=ContractEventKind.CONTRACT_CANCELLED,
                message=f"Contract {contract.contract_code} for {contract.product_name} was cancelled",
                contract_id=contract.contract_code,
                account_id=contract.account_id,
                data={"reason": reason} if reason else {},
            )
        )
        return ContractView.from_contract(contract, now)

    async def renew_contract(
        self, account_id: int, contract_code: str, now: datetime | None = None
    ) -> Result[ContractView]:
        """Retire a contract and create its successor.

        Renewing the same contract twice is a Conflict.
        """
        return await self._guarded(self._renew_contract(account_id, contract_code, now or utcnow()))

    async def _renew_contract(self, account_id: int, contract_code: str, now: datetime) -> ContractView:
        prior = await self._owned_contract(account_id, contract_code)
        plan = await self.plan_catalog.get_plan(prior.plan_id) if prior.plan_id else None
        try:
            successor = await self.factory.create_renewal(prior, plan, now)
        except IntegrityError:
            await self.session.rollback()
            raise ConflictError(f"Contract {contract_code} has already been renewed", contract_code=contract_code)

        await self.sync.propagate_contract(prior, now=now)
        await self.sync.propagate_contract(successor, now=now)
        await self.session.commit()
        await self.session.refresh(successor)

        await self._notify(
            ContractEvent(
                kind=ContractEventKind.CONTRACT_RENEWED,
                message=f"Contract {prior.contract_code} renewed as {successor.contract_code}",
                contract_id=successor.contract_code,
                account_id=successor.account_id,
                data={"renewed_from": prior.contract_code},
            )
        )
        return ContractView.from_contract(successor, now)

    # ------------------------------------------------------------------
    # Order hooks and jobs
    # ------------------------------------------------------------------

    async def handle_order_completed(
        self, event: OrderCompletedEvent, now: datetime | None = None
    ) -> Result[OrderContractsReport]:
        """Create one contract per eligible order line and plan.

        A line with ``plan_id`` yields that plan's contract; a line without
        one yields a contract for each active plan linked to the product.
        Each contract commits on its own; a duplicate event reports the
        existing contracts as already created.
        """
        return await self._guarded(self._handle_order_completed(event, now or utcnow()))

    async def _handle_order_completed(self, event: OrderCompletedEvent, now: datetime) -> OrderContractsReport:
        account = await self._account(event.account_id)
        report = OrderContractsReport(order_id=event.order_id)

        # Rollbacks below expire loaded rows; reload by id afterwards
        profile = None
        profile_id = None
        if account.phone:
            profile = await self.identity.resolve_or_create(account)
            profile_id = profile.id
            report.customer_code = profile.customer_code
            await self.session.commit()
            account = await self._account(event.account_id)

        for item in event.items:
            ref = item.product.to_ref()
            product = await self.product_catalog.get(ref)
            if product is None:
                report.skipped.append({"product": ref.id, "reason": "product not found"})
                continue

            plans = await self._plans_for_item(item.plan_id, product.plan_ids)
            if not plans:
                report.skipped.append({"product": ref.id, "reason": "no active plan"})
                continue

            for plan in plans:
                existing = await self.contract_repo.get_by_order_key(event.order_id, ref.id, plan.id)
                if existing is not None:
                    report.already_created.append(existing.contract_code)
                    continue

                amount = item.amount if item.plan_id is not None else plan.price
                try:
                    contract = await self.factory.create_from_order_item(
                        account,
                        event.order_id,
                        plan,
                        product,
                        amount,
                        event.payment_status,
                        notes=f"Auto-activated from order #{event.order_id} ({event.fulfillment_type})",
                        now=now,
                    )
                    await self.sync.propagate_contract(contract, profile=profile, now=now)
                    await self.session.commit()
                except IntegrityError as e:
                    await self.session.rollback()
                    account = await self._account(event.account_id)
                    if profile_id is not None:
                        profile = await self.profile_repo.get_by_id(profile_id)

                    existing = await self.contract_repo.get_by_order_key(event.order_id, ref.id, plan.id)
                    if existing is None:
                        # Not the order key: another write on the profile's terms won
                        raise ConflictError(
                            f"Order {event.order_id} collided with a concurrent contract update, redeliver it",
                            order_id=event.order_id,
                            plan_id=plan.id,
                        ) from e
                    logger.info(
                        f"Contract for order {event.order_id} created concurrently",
                        extra={"order_id": event.order_id, "contract_code": existing.contract_code},
                    )
                    report.already_created.append(existing.contract_code)
                    continue

                report.created.append(contract.contract_code)
                await self._notify(
                    ContractEvent(
                        kind=ContractEventKind.CONTRACT_CREATED,
                        message=f"{plan.name} activated for {product.name}",
                        contract_id=contract.contract_code,
                        customer_id=profile_id,
                        account_id=event.account_id,
                        data={"order_id": event.order_id},
                    )
                )

        logger.info(
            f"Order {event.order_id} produced {len(report.created)} contracts",
            extra={
                "order_id": event.order_id,
                "created_codes": report.created,
                "already_created_codes": report.already_created,
                "skipped_items": len(report.skipped),
            },
        )
        return report

    async def _plans_for_item(self, plan_id: int | None, linked_plan_ids: list[int]) -> list[PlanInfo]:
        plan_ids = [plan_id] if plan_id is not None else linked_plan_ids
        plans = []
        for pid in plan_ids:
            plan = await self.plan_catalog.get_plan(pid)
            if plan is not None and plan.is_active and plan.kind in ContractKind.ALL:
                plans.append(plan)
        return plans

    async def cancel_for_order(self, order_id: str, reason: str) -> Result[list[str]]:
        """Cancel every open contract created from an order (order cancel or return)."""
        return await self._guarded(self._cancel_for_order(order_id, reason))

    async def _cancel_for_order(self, order_id: str, reason: str) -> list[str]:
        cancelled = []
        for contract in await self.contract_repo.list_by_order(order_id):
            if contract.status not in ContractStatus.CANCELLABLE:
                continue
            try:
                await self.lifecycle.cancel(contract, reason)
            except ConflictError:
                # Expired or cancelled since it was read
                continue
            await self.sync.propagate_contract(contract)
            cancelled.append(contract.contract_code)
        await self.session.commit()

        if cancelled:
            await self._notify(
                ContractEvent(
                    kind=ContractEventKind.ORDER_CANCELLED,
                    message=f"{len(cancelled)} contracts cancelled for order #{order_id}: {reason}",
                    contract_id=order_id,
                    data={"contracts": cancelled},
                )
            )
        return cancelled

    async def run_expiry_sweep(self, now: datetime | None = None) -> Result[SweepReport]:
        """Persist expiry of every Active contract and term past its end date."""
        return await self._guarded(self._run_expiry_sweep(now or utcnow()))

    async def _run_expiry_sweep(self, now: datetime) -> SweepReport:
        report = await self.lifecycle.sweep_expired(now)
        await self.session.commit()

        for contract in await self.contract_repo.list_by_ids(report.contract_ids):
            await self._notify(
                ContractEvent(
                    kind=ContractEventKind.CONTRACT_EXPIRED,
                    message=f"Your contract {contract.contract_code} for {contract.product_name} has expired",
                    contract_id=contract.contract_code,
                    account_id=contract.account_id,
                )
            )
        return report

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    async def admin_dashboard(self, now: datetime | None = None) -> Result[DashboardStats]:
        """AMC tiles over every current AMC term, unaffected by list filters."""
        return await self._guarded(self._admin_dashboard(now or utcnow()))

    async def _admin_dashboard(self, now: datetime) -> DashboardStats:
        soon = now + timedelta(days=self.defaults.expiring_soon_days)
        stats = DashboardStats(total=0, active=0, expired=0, expiring_soon=0, revenue_collected=0.0)
        for term in await self.profile_repo.list_current_terms(ContractKind.AMC):
            stats.total += 1
            if term.effective_status(now) == ContractStatus.ACTIVE:
                stats.active += 1
                if term.end_date <= soon:
                    stats.expiring_soon += 1
            else:
                stats.expired += 1
            stats.revenue_collected += term.amount_paid or 0.0
        return stats

    async def search_customers(self, query: str, limit: int = 50) -> Result[list[CustomerView]]:
        """Profiles whose name, mobile or code contains ``query``."""
        return await self._guarded(self._search_customers(query, limit))

    async def _search_customers(self, query: str, limit: int) -> list[CustomerView]:
        return [
            CustomerView(
                customer_code=p.customer_code,
                name=p.name,
                mobile=p.mobile,
                email=p.email,
                type=p.type,
                status=p.status,
            )
            for p in await self.profile_repo.search(query, limit=limit)
        ]

    async def get_customer(self, customer_code: str, now: datetime | None = None) -> Result[CustomerView]:
        """Profile with its current AMC and rental terms."""
        return await self._guarded(self._get_customer(customer_code, now or utcnow()))

    async def _get_customer(self, customer_code: str, now: datetime) -> CustomerView:
        return await self._customer_view(await self._profile(customer_code), now)

    async def create_customer(
        self,
        name: str,
        mobile: str,
        email: str | None = None,
        address: dict | None = None,
        customer_type: str = CustomerType.NEW,
        now: datetime | None = None,
    ) -> Result[CustomerView]:
        """Register an offline customer (walk-in or phone enquiry).

        Fails with Conflict when a profile already answers to the mobile
        number, using the same fuzzy match as identity resolution.
        """
        return await self._guarded(
            self._create_customer(name, mobile, email, address, customer_type, now or utcnow())
        )

    async def _create_customer(
        self,
        name: str,
        mobile: str,
        email: str | None,
        address: dict | None,
        customer_type: str,
        now: datetime,
    ) -> CustomerView:
        if customer_type not in (CustomerType.NEW, CustomerType.EXISTING, CustomerType.AMC_CUSTOMER):
            raise ConflictError(f"Unknown customer type: {customer_type}", customer_type=customer_type)
        pattern = phone_match_pattern(mobile)
        if pattern is None:
            raise ConflictError(f"Mobile number {mobile!r} has no digits", mobile=mobile)
        existing = await self.profile_repo.find_matching(pattern, None)
        if existing:
            raise ConflictError(
                f"Customer {existing[0].customer_code} already uses mobile {mobile}",
                customer_code=existing[0].customer_code,
            )

        try:
            profile = await self.profile_repo.create(
                customer_code=generate_customer_code(self.defaults.customer_code_prefix, now),
                name=name,
                mobile=mobile,
                email=email,
                address=address,
                type=customer_type,
                created_at=now,
                updated_at=now,
            )
        except IntegrityError as e:
            raise ConflictError(f"Mobile number {mobile} was registered concurrently", mobile=mobile) from e
        await self.session.commit()
        logger.info(
            f"Registered customer {profile.customer_code}",
            extra={"customer_code": profile.customer_code},
        )
        return await self._customer_view(profile, now)

    async def create_amc(
        self, customer_code: str, plan_id: int | None, context: ContractContext, now: datetime | None = None
    ) -> Result[ContractView]:
        """Install a new AMC on a profile (walk-in or phone sale)."""
        return await self._guarded(
            self._install(customer_code, ContractKind.AMC, plan_id, context, now or utcnow(), renew=False)
        )

    async def renew_amc(
        self, customer_code: str, plan_id: int | None, context: ContractContext, now: datetime | None = None
    ) -> Result[ContractView]:
        """Archive a profile's current AMC and install its successor."""
        return await self._guarded(
            self._install(customer_code, ContractKind.AMC, plan_id, context, now or utcnow(), renew=True)
        )

    async def install_rental(
        self, customer_code: str, plan_id: int | None, context: ContractContext, now: datetime | None = None
    ) -> Result[ContractView]:
        """Install a rental machine term on a profile."""
        return await self._guarded(
            self._install(customer_code, ContractKind.RENTAL, plan_id, context, now or utcnow(), renew=False)
        )

    async def _install(
        self,
        customer_code: str,
        kind: str,
        plan_id: int | None,
        context: ContractContext,
        now: datetime,
        renew: bool,
    ) -> ContractView:
        profile = await self._profile(customer_code)
        plan = None
        if plan_id is not None:
            plan = await self.plan_catalog.get_plan(plan_id)
            if plan is None:
                raise NotFoundError(f"Plan {plan_id} not found", plan_id=plan_id)

        if renew:
            term = await self.factory.renew_term(profile, kind, plan, context, now)
        elif kind == ContractKind.AMC:
            term = await self.factory.create_amc(profile, plan, context, now)
        else:
            term = await self.factory.create_rental(profile, plan, context, now)
        await self.session.commit()

        await self._notify(
            ContractEvent(
                kind=ContractEventKind.CONTRACT_RENEWED if renew else ContractEventKind.CONTRACT_CREATED,
                message=f"{term.plan_name or kind.upper()} {'renewed' if renew else 'created'} for {profile.name}",
                contract_id=term.contract_code,
                customer_id=profile.id,
            )
        )
        return ContractView.from_term(term, now)

    async def record_rental_payment(
        self,
        customer_code: str,
        amount: float,
        payment_mode: str | None = None,
        now: datetime | None = None,
    ) -> Result[ContractView]:
        """Record a monthly rental payment; the next due date moves one month."""
        return await self._guarded(self._record_rental_payment(customer_code, amount, payment_mode, now or utcnow()))

    async def _record_rental_payment(
        self, customer_code: str, amount: float, payment_mode: str | None, now: datetime
    ) -> ContractView:
        profile = await self._profile(customer_code)
        term = await self.profile_repo.get_current_term(profile.id, ContractKind.RENTAL)
        if term is None:
            raise NotFoundError(f"Customer {customer_code} has no current rental", customer_code=customer_code)
        if term.status in ContractStatus.TERMINAL:
            raise ConflictError(
                f"Cannot record a payment on a {term.status} rental",
                contract_code=term.contract_code,
                status=term.status,
            )

        term.next_due_date = add_months(term.next_due_date or term.start_date, 1)
        term.amount_paid = (term.amount_paid or 0.0) + amount
        term.payment_status = PaymentStatus.PAID
        if payment_mode:
            term.payment_mode = payment_mode
        await self.session.flush()
        if term.status == ContractStatus.PENDING:
            await self.lifecycle.confirm_payment(term, term.amount_paid)
        await self.session.commit()

        logger.info(
            f"Rental payment recorded for {term.contract_code}",
            extra={"contract_code": term.contract_code, "amount": amount, "next_due_date": term.next_due_date},
        )
        return ContractView.from_term(term, now)

    async def transition_contract(
        self,
        contract_code: str,
        action: str,
        reason: str | None = None,
        amount_paid: float | None = None,
        now: datetime | None = None,
    ) -> Result[ContractView]:
        """Admin hold/resume/cancel/confirm_payment on a contract or profile term."""
        return await self._guarded(self._transition_contract(contract_code, action, reason, amount_paid, now or utcnow()))

    async def _transition_contract(
        self, contract_code: str, action: str, reason: str | None, amount_paid: float | None, now: datetime
    ) -> ContractView:
        if action not in ADMIN_ACTIONS:
            raise ConflictError(f"Unknown action: {action}", action=action)

        record: Contract | ProfileContract | None = await self.contract_repo.get_by_code(contract_code)
        if record is None:
            record = await self.profile_repo.get_term_by_code(contract_code)
        if record is None:
            raise NotFoundError(f"Contract {contract_code} not found", contract_code=contract_code)

        if action == "hold":
            await self.lifecycle.hold(record)
        elif action == "resume":
            await self.lifecycle.resume(record)
        elif action == "cancel":
            await self.lifecycle.cancel(record, reason)
        else:
            await self.lifecycle.confirm_payment(record, amount_paid)

        if isinstance(record, Contract):
            await self.sync.propagate_contract(record, now=now)
        await self.session.commit()

        if action == "cancel":
            await self._notify(
                ContractEvent(
                    kind=ContractEventKind.CONTRACT_CANCELLED,
                    message=f"Contract {record.contract_code} was cancelled",
                    contract_id=record.contract_code,
                    customer_id=record.profile_id if isinstance(record, ProfileContract) else None,
                    account_id=record.account_id if isinstance(record, Contract) else None,
                    data={"reason": reason} if reason else {},
                )
            )
        if isinstance(record, Contract):
            return ContractView.from_contract(record, now)
        return ContractView.from_term(record, now)

    async def list_tickets(
        self, status: str | None = None, page: int = 1, limit: int = 50
    ) -> Result[list[TicketView]]:
        """Ticket queue across every profile, newest first."""
        return await self._guarded(self._list_tickets(status, page, limit))

    async def _list_tickets(self, status: str | None, page: int, limit: int) -> list[TicketView]:
        rows = await self.profile_repo.list_tickets(status=status, skip=(page - 1) * limit, limit=limit)
        return [self._ticket_view(ticket, profile) for ticket, profile in rows]

    async def add_ticket(
        self,
        customer_code: str,
        description: str,
        type: str = "Other",
        priority: str = TicketPriority.MEDIUM,
        opened_at: datetime | None = None,
    ) -> Result[TicketView]:
        """Log a complaint taken by staff and link it to a same-day visit."""
        return await self._guarded(
            self._add_ticket(customer_code, description, type, priority, opened_at or utcnow())
        )

    async def _add_ticket(
        self, customer_code: str, description: str, type: str, priority: str, opened_at: datetime
    ) -> TicketView:
        if priority not in (TicketPriority.LOW, TicketPriority.MEDIUM, TicketPriority.HIGH):
            raise ConflictError(f"Unknown ticket priority: {priority}", priority=priority)
        profile = await self._profile(customer_code)
        ticket = await self.profile_repo.add_ticket(
            profile_id=profile.id,
            ticket_code=generate_ticket_code(self.defaults.ticket_code_prefix, opened_at),
            type=type,
            description=description,
            priority=priority,
            opened_at=opened_at,
            updated_at=opened_at,
        )
        linked = await self.sync.link_ticket_to_visit(ticket.ticket_code)
        await self.profile_repo.touch(profile.id, opened_at)
        await self.session.commit()
        return self._ticket_view(ticket, profile, linked)

    async def update_ticket(
        self,
        ticket_code: str,
        status: str | None = None,
        assigned_technician: str | None = None,
        resolution_notes: str | None = None,
        priority: str | None = None,
    ) -> Result[TicketView]:
        """Admin ticket update, mirrored onto the linked service visit."""
        return await self._guarded(
            self._update_ticket(ticket_code, status, assigned_technician, resolution_notes, priority)
        )

    async def _update_ticket(
        self,
        ticket_code: str,
        status: str | None,
        assigned_technician: str | None,
        resolution_notes: str | None,
        priority: str | None,
    ) -> TicketView:
        ticket, linked = await self.sync.apply_ticket_update(
            ticket_code,
            status=status,
            assigned_technician=assigned_technician,
            resolution_notes=resolution_notes,
            priority=priority,
        )
        await self.session.commit()
        profile = await self.profile_repo.get_by_id(ticket.profile_id)
        return self._ticket_view(ticket, profile, linked)

    async def relink_ticket(self, ticket_code: str) -> Result[bool]:
        """Run the ticket-to-visit linker for one ticket."""
        return await self._guarded(self._relink_ticket(ticket_code))

    async def _relink_ticket(self, ticket_code: str) -> bool:
        linked = await self.sync.link_ticket_to_visit(ticket_code)
        await self.session.commit()
        return linked

    async def update_visit(
        self,
        visit_id: int,
        technician_name: str | None = None,
        notes: str | None = None,
        status: str | None = None,
    ) -> Result[ServiceVisitView]:
        """Dispatch update on a visit, mirrored onto its ticket."""
        return await self._guarded(self._update_visit(visit_id, technician_name, notes, status))

    async def _update_visit(
        self, visit_id: int, technician_name: str | None, notes: str | None, status: str | None
    ) -> ServiceVisitView:
        visit = await self.ledger.update_visit(visit_id, technician_name=technician_name, notes=notes, status=status)
        await self.session.commit()
        return ServiceVisitView.from_entry(visit)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _guarded(self, operation: Awaitable[T]) -> Result[T]:
        try:
            value = await operation
        except ContractError as e:
            await self.session.rollback()
            logger.info(
                f"Contract operation failed: {e.message}",
                extra={"error_kind": e.kind.value, **e.details},
            )
            return Result.from_error(e)
        return Result.success(value)

    async def _notify(self, event: ContractEvent) -> None:
        try:
            await self.notifier.notify(event)
        except Exception as e:
            logger.error(f"Notification sink failed: {e}", exc_info=True, extra={"event_kind": event.kind})

    async def _account(self, account_id: int) -> WebAccount:
        account = await self.account_repo.get_by_id(account_id)
        if account is None:
            raise NotFoundError(f"Account {account_id} not found", account_id=account_id)
        return account

    async def _profile(self, customer_code: str) -> CustomerProfile:
        profile = await self.profile_repo.get_by_code(customer_code)
        if profile is None:
            raise NotFoundError(f"Customer {customer_code} not found", customer_code=customer_code)
        return profile

    async def _owned_contract(self, account_id: int, contract_code: str) -> Contract:
        contract = await self.contract_repo.get_for_account(account_id, contract_code)
        if contract is None:
            raise NotFoundError(f"Contract {contract_code} not found", contract_code=contract_code)
        return contract

    async def _customer_view(self, profile: CustomerProfile, now: datetime) -> CustomerView:
        amc = await self.profile_repo.get_current_term(profile.id, ContractKind.AMC)
        rental = await self.profile_repo.get_current_term(profile.id, ContractKind.RENTAL)
        return CustomerView(
            customer_code=profile.customer_code,
            name=profile.name,
            mobile=profile.mobile,
            email=profile.email,
            type=profile.type,
            status=profile.status,
            amc=ContractView.from_term(amc, now) if amc else None,
            rental=ContractView.from_term(rental, now) if rental else None,
            archived_amc_terms=await self.profile_repo.count_archived_terms(profile.id, ContractKind.AMC),
            archived_rental_terms=await self.profile_repo.count_archived_terms(profile.id, ContractKind.RENTAL),
        )

    @staticmethod
    def _ticket_view(ticket, profile: CustomerProfile, linked: bool | None = None) -> TicketView:
        return TicketView(
            ticket_code=ticket.ticket_code,
            customer_code=profile.customer_code,
            customer_name=profile.name,
            mobile=profile.mobile,
            type=ticket.type,
            description=ticket.description,
            priority=ticket.priority,
            status=ticket.status,
            assigned_technician=ticket.assigned_technician,
            resolution_notes=ticket.resolution_notes,
            opened_at=ticket.opened_at,
            linked_visit=linked,
        )
