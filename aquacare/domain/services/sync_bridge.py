"""Keep customer profile terms and tickets aligned with self-service records.

Two stores describe the same contracts and service events:

* the admin-owned CustomerProfile, with its current AMC/rental terms and
  its complaint tickets;
* the self-service Contract records with their visit history.

The self-service path never edits profile terms directly; every write
from that side goes through this module. On read, an Active self-service
Contract wins; otherwise the profile's current term is used, deferring to
its Contract when the term was mirrored from one.
"""

import logging
from datetime import datetime, time, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from aquacare.core.identifiers import add_months, utcnow
from aquacare.core.result import ErrorKind, NotFoundError
from aquacare.domain.models.contract_view import ContractView
from aquacare.domain.services.identity_resolver import IdentityResolver
from aquacare.domain.services.lifecycle_manager import LifecycleManager
from aquacare.infrastructure.catalog import PlanCatalog, ProductCatalog, ProductRef
from aquacare.persistence.models.contract import Contract, ContractKind, ContractStatus
from aquacare.persistence.models.customer_profile import (
    ComplaintTicket,
    CustomerProfile,
    ProfileContract,
    TermSource,
    TicketStatus,
)
from aquacare.persistence.models.service_visit import ServiceVisitEntry, VisitStatus
from aquacare.persistence.models.web_account import WebAccount
from aquacare.persistence.repositories.contract_repository import ContractRepository
from aquacare.persistence.repositories.customer_profile_repository import CustomerProfileRepository
from aquacare.persistence.repositories.service_visit_repository import ServiceVisitRepository

logger = logging.getLogger(__name__)

# Fields copied from a Contract onto its web-sourced profile term
_MIRRORED_FIELDS = (
    "kind",
    "contract_code",
    "plan_id",
    "plan_name",
    "start_date",
    "end_date",
    "duration_months",
    "services_total",
    "services_used",
    "parts_included",
    "amount",
    "amount_paid",
    "payment_status",
    "status",
    "assigned_technician",
    "schema_version",
)


def _visit_status_for_ticket(ticket: ComplaintTicket) -> str | None:
    if ticket.status == TicketStatus.RESOLVED:
        return VisitStatus.COMPLETED
    if ticket.assigned_technician:
        return VisitStatus.ASSIGNED
    return None


def _ticket_status_for_visit(visit: ServiceVisitEntry) -> str | None:
    if visit.status == VisitStatus.COMPLETED:
        return TicketStatus.RESOLVED
    if visit.status == VisitStatus.ASSIGNED:
        return TicketStatus.IN_PROGRESS
    return None


class SyncBridge:
    """Reconciles CustomerProfile data with Contract and visit records."""

    def __init__(
        self,
        session: AsyncSession,
        identity: IdentityResolver,
        lifecycle: LifecycleManager,
        plan_catalog: PlanCatalog,
        product_catalog: ProductCatalog,
    ) -> None:
        self.session = session
        self.identity = identity
        self.lifecycle = lifecycle
        self.plan_catalog = plan_catalog
        self.product_catalog = product_catalog
        self.contract_repo = ContractRepository(session)
        self.profile_repo = CustomerProfileRepository(session)
        self.visit_repo = ServiceVisitRepository(session)

    # --- Tickets and visits ---------------------------------------------

    async def link_ticket_to_visit(self, ticket_code: str) -> bool:
        """Find the visit behind a ticket and mirror the ticket onto it.

        Matching order:
            1. a visit already carrying ``ticket_code``;
            2. otherwise a visit with no ticket code, on a contract owned by
               an account linked to the ticket's profile, recorded on the
               ticket's calendar day. The first such visit is bound to the
               ticket.

        Running it again finds the same visit through rule 1, so bindings
        are never duplicated or moved.

        Returns:
            True if the ticket is linked to a visit

        Raises:
            NotFoundError: No ticket with that code
        """
        ticket = await self.profile_repo.get_ticket(ticket_code)
        if ticket is None:
            raise NotFoundError(f"Ticket {ticket_code} not found", ticket_code=ticket_code)

        visit = await self.visit_repo.get_by_ticket_code(ticket_code)
        if visit is None:
            visit = await self._bind_same_day_visit(ticket)
        if visit is None:
            logger.info(f"No service visit found for ticket {ticket_code}", extra={"ticket_code": ticket_code})
            return False

        self._mirror_ticket_onto_visit(ticket, visit)
        await self.session.flush()
        return True

    async def _bind_same_day_visit(self, ticket: ComplaintTicket) -> ServiceVisitEntry | None:
        profile = await self.profile_repo.get_by_id(ticket.profile_id)
        if profile is None:
            return None
        accounts = await self.identity.accounts_for_profile(profile)
        contracts = await self.contract_repo.list_for_accounts([a.id for a in accounts])

        day_start = datetime.combine(ticket.opened_at.date(), time.min)
        candidates = await self.visit_repo.find_unlinked_same_day(
            [c.id for c in contracts],
            day_start,
            day_start + timedelta(days=1),
        )
        for candidate in candidates:
            if await self.visit_repo.bind_ticket(candidate.id, ticket.ticket_code):
                await self.session.refresh(candidate)
                logger.info(
                    f"Bound visit {candidate.id} to ticket {ticket.ticket_code} by visit date",
                    extra={"ticket_code": ticket.ticket_code, "visit_id": candidate.id},
                )
                return candidate
        return None

    def _mirror_ticket_onto_visit(self, ticket: ComplaintTicket, visit: ServiceVisitEntry) -> None:
        if ticket.assigned_technician:
            visit.technician_name = ticket.assigned_technician
        if ticket.resolution_notes:
            visit.notes = ticket.resolution_notes

        target = _visit_status_for_ticket(ticket)
        if visit.status == VisitStatus.COMPLETED and target != VisitStatus.COMPLETED:
            # The visit record wins: put the ticket back in line with it
            logger.warning(
                f"Ticket {ticket.ticket_code} is {ticket.status} but its visit is Completed",
                extra={
                    "error_kind": ErrorKind.SYNC_DRIFT.value,
                    "ticket_code": ticket.ticket_code,
                    "ticket_status": ticket.status,
                    "visit_status": visit.status,
                },
            )
            ticket.status = TicketStatus.RESOLVED
            return
        if target:
            visit.status = target

    async def apply_ticket_update(
        self,
        ticket_code: str,
        status: str | None = None,
        assigned_technician: str | None = None,
        resolution_notes: str | None = None,
        priority: str | None = None,
    ) -> tuple[ComplaintTicket, bool]:
        """Apply an admin ticket update, then mirror it onto the linked visit.

        Returns:
            The updated ticket and whether a visit is linked to it
        """
        ticket = await self.profile_repo.get_ticket(ticket_code)
        if ticket is None:
            raise NotFoundError(f"Ticket {ticket_code} not found", ticket_code=ticket_code)

        if status is not None:
            ticket.status = status
        if assigned_technician is not None:
            ticket.assigned_technician = assigned_technician
        if resolution_notes is not None:
            ticket.resolution_notes = resolution_notes
        if priority is not None:
            ticket.priority = priority
        await self.session.flush()

        linked = await self.link_ticket_to_visit(ticket_code)
        return ticket, linked

    async def mirror_visit_to_ticket(self, visit: ServiceVisitEntry) -> ComplaintTicket | None:
        """Push technician, notes and status of a visit onto its ticket."""
        if not visit.ticket_code:
            return None
        ticket = await self.profile_repo.get_ticket(visit.ticket_code)
        if ticket is None:
            return None

        if visit.technician_name:
            ticket.assigned_technician = visit.technician_name
        target = _ticket_status_for_visit(visit)
        if target and ticket.status != TicketStatus.RESOLVED:
            ticket.status = target
        if visit.status == VisitStatus.COMPLETED and visit.notes:
            ticket.resolution_notes = visit.notes
        await self.session.flush()
        return ticket

    # --- Contracts -------------------------------------------------------

    async def propagate_contract(
        self,
        contract: Contract,
        profile: CustomerProfile | None = None,
        now: datetime | None = None,
    ) -> ProfileContract | None:
        """Install or refresh the web-sourced term for a Contract.

        A contract that already has a mirror row, current or archived, only
        ever refreshes that row. A never-mirrored Active contract replaces
        the profile's current term of its kind, archiving that term first,
        unless the current term started later. Contracts of accounts without
        a profile are left alone.

        Returns:
            The mirror term, or None when nothing was installed
        """
        now = now or utcnow()
        if profile is None:
            profile = await self.identity.resolve_by_account_id(contract.account_id)
        if profile is None:
            return None

        mirror = await self.profile_repo.get_term_mirroring(contract.id)
        if mirror is not None:
            self._refresh_mirror(mirror, contract)
            await self.session.flush()
            return mirror

        if contract.status != ContractStatus.ACTIVE:
            return None

        current = await self.profile_repo.get_current_term(profile.id, contract.kind)
        if current is not None and contract.start_date < current.start_date:
            logger.info(
                f"Contract {contract.contract_code} predates current term {current.contract_code}, not mirrored",
                extra={"profile_id": profile.id, "contract_code": contract.contract_code},
            )
            return None

        await self.lifecycle.archive_current_term(profile.id, contract.kind, now)
        values = {name: getattr(contract, name) for name in _MIRRORED_FIELDS}
        mirror = await self.profile_repo.add_term(
            profile_id=profile.id,
            is_current=True,
            source=TermSource.WEB,
            contract_id=contract.id,
            machine_model=contract.product_name,
            machine_image=contract.product_image,
            next_due_date=add_months(contract.start_date, 1) if contract.kind == ContractKind.RENTAL else None,
            created_at=now,
            updated_at=now,
            **values,
        )
        await self.profile_repo.touch(profile.id, now)
        logger.info(
            f"Mirrored contract {contract.contract_code} onto profile {profile.customer_code}",
            extra={"profile_id": profile.id, "contract_code": contract.contract_code},
        )
        return mirror

    @staticmethod
    def _refresh_mirror(mirror: ProfileContract, contract: Contract) -> None:
        if mirror.is_current:
            for name in _MIRRORED_FIELDS:
                setattr(mirror, name, getattr(contract, name))
            return
        # Archived rows keep their archive status unless the contract was cancelled
        for name in _MIRRORED_FIELDS:
            if name != "status":
                setattr(mirror, name, getattr(contract, name))
        if contract.status == ContractStatus.CANCELLED:
            mirror.status = ContractStatus.CANCELLED

    async def current_contract(
        self,
        account: WebAccount,
        kind: str,
        now: datetime | None = None,
    ) -> ContractView | None:
        """The contract to show as the account's current AMC or rental.

        Never writes; missing display data is filled from the catalog on the
        returned view only.
        """
        now = now or utcnow()
        contract = await self.contract_repo.latest_active(account.id, kind, now)
        if contract is not None:
            await self._check_mirror(contract)
            view = ContractView.from_contract(contract, now)
        else:
            view = await self._profile_view(account, kind, now)

        if view is not None:
            await self._enrich(view, contract)
        return view

    async def _profile_view(self, account: WebAccount, kind: str, now: datetime) -> ContractView | None:
        profile = await self.identity.resolve(account)
        if profile is None:
            return None
        term = await self.profile_repo.get_current_term(profile.id, kind)
        if term is None:
            return None

        if term.source == TermSource.WEB and term.contract_id:
            contract = await self.contract_repo.get_by_id(term.contract_id)
            if contract is not None:
                if contract.status != term.status:
                    self._log_drift(contract, term)
                return ContractView.from_contract(contract, now)
        return ContractView.from_term(term, now)

    async def _check_mirror(self, contract: Contract) -> None:
        mirror = await self.profile_repo.get_term_mirroring(contract.id)
        if mirror is not None and mirror.is_current and mirror.status != contract.status:
            self._log_drift(contract, mirror)

    def _log_drift(self, contract: Contract, term: ProfileContract) -> None:
        logger.warning(
            f"Profile term {term.contract_code} is {term.status} but contract is {contract.status}, using contract",
            extra={
                "error_kind": ErrorKind.SYNC_DRIFT.value,
                "contract_code": contract.contract_code,
                "contract_status": contract.status,
                "term_status": term.status,
                "profile_id": term.profile_id,
            },
        )

    async def _enrich(self, view: ContractView, contract: Contract | None) -> None:
        if view.image_url is None and contract is not None:
            product = await self.product_catalog.get(ProductRef(kind=contract.product_kind, id=contract.product_id))
            if product is not None:
                view.image_url = product.image_url
        if (view.image_url is None or view.amount is None) and view.plan_id is not None:
            plan = await self.plan_catalog.get_plan(view.plan_id)
            if plan is not None:
                view.image_url = view.image_url or plan.image_url
                if view.amount is None:
                    view.amount = plan.price
                view.plan_name = view.plan_name or plan.name
