"""Service visit quota consumption and history."""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from aquacare.core.identifiers import generate_ticket_code, utcnow
from aquacare.core.result import ConflictError, NotFoundError, QuotaExhaustedError
from aquacare.domain.models.contract_defaults import ContractDefaults
from aquacare.domain.services.identity_resolver import IdentityResolver
from aquacare.domain.services.sync_bridge import SyncBridge
from aquacare.persistence.models.contract import Contract, ContractStatus
from aquacare.persistence.models.customer_profile import ComplaintTicket, TicketPriority, TicketStatus
from aquacare.persistence.models.service_visit import ServiceVisitEntry, VisitCategory, VisitStatus
from aquacare.persistence.repositories.contract_repository import ContractRepository
from aquacare.persistence.repositories.service_visit_repository import ServiceVisitRepository

logger = logging.getLogger(__name__)

SERVICE_REQUEST_TICKET_TYPE = "Service Request"

TICKET_TYPE_BY_CATEGORY = {
    VisitCategory.INSTALLATION: "Installation",
    VisitCategory.REGULAR_SERVICE: SERVICE_REQUEST_TICKET_TYPE,
    VisitCategory.REPAIR: "Repair",
    VisitCategory.FILTER_CHANGE: "Filter Change",
    VisitCategory.OTHER: "Other",
}


@dataclass
class VisitRequest:
    """What the customer asked for."""

    notes: str | None = None
    category: str = VisitCategory.REGULAR_SERVICE
    visit_date: datetime | None = None
    priority: str = TicketPriority.MEDIUM


@dataclass
class VisitRecord:
    """A recorded visit and, when the owner has a profile, its ticket."""

    visit: ServiceVisitEntry
    contract: Contract
    ticket: ComplaintTicket | None = None
    profile_id: int | None = None


class ServiceVisitLedger:
    """Consumes visit quota and appends service history.

    The quota increment is a conditional UPDATE in the same transaction as
    the history insert, so concurrent requests can never push
    ``services_used`` past ``services_total``.
    """

    def __init__(
        self,
        session: AsyncSession,
        identity: IdentityResolver,
        sync: SyncBridge,
        defaults: ContractDefaults | None = None,
    ) -> None:
        self.session = session
        self.identity = identity
        self.sync = sync
        self.defaults = defaults or ContractDefaults()
        self.contract_repo = ContractRepository(session)
        self.visit_repo = ServiceVisitRepository(session)

    async def request_visit(
        self,
        contract: Contract,
        details: VisitRequest,
        now: datetime | None = None,
    ) -> VisitRecord:
        """Record a visit request against a contract.

        Raises:
            ConflictError: The contract is not Active
            QuotaExhaustedError: No visits left; the message prompts renewal
        """
        now = now or utcnow()
        self._check_requestable(contract, now)

        if not await self.contract_repo.consume_service(contract.id, now):
            # Lost a race, or the in-memory copy was stale
            await self.session.refresh(contract)
            self._check_requestable(contract, now)
            raise QuotaExhaustedError(
                contract_code=contract.contract_code,
                services_total=contract.services_total,
            )

        ticket_code = generate_ticket_code(self.defaults.ticket_code_prefix, now)
        visit = await self.visit_repo.create(
            contract_id=contract.id,
            visit_date=details.visit_date or now,
            category=details.category,
            status=VisitStatus.PENDING_ASSIGNMENT,
            notes=details.notes,
            ticket_code=ticket_code,
            created_at=now,
            updated_at=now,
        )

        record = VisitRecord(visit=visit, contract=contract)
        profile = await self.identity.resolve_by_account_id(contract.account_id)
        if profile is not None:
            ticket = ComplaintTicket(
                profile_id=profile.id,
                ticket_code=ticket_code,
                type=TICKET_TYPE_BY_CATEGORY.get(details.category, SERVICE_REQUEST_TICKET_TYPE),
                description=self._ticket_description(contract, details),
                opened_at=visit.visit_date,
                priority=details.priority,
                status=TicketStatus.OPEN,
                updated_at=now,
            )
            self.session.add(ticket)
            await self.session.flush()
            record.ticket = ticket
            record.profile_id = profile.id

        await self.session.refresh(contract)
        logger.info(
            f"Service visit requested on {contract.contract_code} ({contract.services_used}/{contract.services_total})",
            extra={
                "contract_code": contract.contract_code,
                "ticket_code": ticket_code,
                "services_used": contract.services_used,
                "mirrored_ticket": record.ticket is not None,
            },
        )
        return record

    async def update_visit(
        self,
        visit_id: int,
        technician_name: str | None = None,
        notes: str | None = None,
        status: str | None = None,
    ) -> ServiceVisitEntry:
        """Update dispatch details of a visit and mirror them to its ticket."""
        visit = await self.visit_repo.get_by_id(visit_id)
        if visit is None:
            raise NotFoundError(f"Service visit {visit_id} not found", visit_id=visit_id)

        if technician_name is not None:
            visit.technician_name = technician_name
            if status is None and visit.status == VisitStatus.PENDING_ASSIGNMENT:
                visit.status = VisitStatus.ASSIGNED
        if notes is not None:
            visit.notes = notes
        if status is not None:
            visit.status = status
        await self.session.flush()

        await self.sync.mirror_visit_to_ticket(visit)
        return visit

    def _check_requestable(self, contract: Contract, now: datetime) -> None:
        status = contract.effective_status(now)
        if status != ContractStatus.ACTIVE:
            raise ConflictError(
                f"Service visits can only be requested on an Active contract (this one is {status})",
                contract_code=contract.contract_code,
                status=status,
            )
        if contract.services_remaining <= 0:
            raise QuotaExhaustedError(
                contract_code=contract.contract_code,
                services_total=contract.services_total,
            )

    @staticmethod
    def _ticket_description(contract: Contract, details: VisitRequest) -> str:
        header = f"{details.category} requested for {contract.product_name} ({contract.contract_code})"
        return f"{header}: {details.notes}" if details.notes else header
