"""Read models for contracts as shown to portal users and admins."""

import math
from datetime import datetime

from pydantic import BaseModel

from aquacare.persistence.models.contract import Contract
from aquacare.persistence.models.customer_profile import ProfileContract, TermSource
from aquacare.persistence.models.service_visit import ServiceVisitEntry

SECONDS_PER_DAY = 24 * 60 * 60


def days_remaining(end_date: datetime, now: datetime) -> int:
    """Whole days until ``end_date``, rounded up, never negative."""
    return max(0, math.ceil((end_date - now).total_seconds() / SECONDS_PER_DAY))


def progress_percent(start_date: datetime, end_date: datetime, now: datetime) -> int:
    """Share of the term already elapsed, 0-100."""
    total_days = math.ceil((end_date - start_date).total_seconds() / SECONDS_PER_DAY)
    if total_days <= 0:
        return 100
    days_passed = math.ceil((now - start_date).total_seconds() / SECONDS_PER_DAY)
    return round(min(100.0, max(0.0, days_passed / total_days * 100)))


class ServiceVisitView(BaseModel):
    """One entry of a contract's service history."""

    id: int
    visit_date: datetime
    category: str
    status: str
    technician_name: str | None = None
    notes: str | None = None
    ticket_code: str | None = None

    @classmethod
    def from_entry(cls, entry: ServiceVisitEntry) -> "ServiceVisitView":
        return cls(
            id=entry.id,
            visit_date=entry.visit_date,
            category=entry.category,
            status=entry.status,
            technician_name=entry.technician_name,
            notes=entry.notes,
            ticket_code=entry.ticket_code,
        )


class ContractView(BaseModel):
    """A contract or profile term with computed display fields.

    ``status`` is the effective status (lazy expiry applied); ``stored_status``
    is what is persisted.
    """

    contract_code: str
    kind: str
    source: str
    status: str
    stored_status: str

    plan_id: int | None = None
    plan_name: str | None = None
    product_name: str | None = None
    image_url: str | None = None

    start_date: datetime
    end_date: datetime
    duration_months: int

    services_total: int
    services_used: int
    services_remaining: int
    parts_included: bool

    amount: float | None = None
    amount_paid: float | None = None
    payment_status: str

    assigned_technician: str | None = None
    next_due_date: datetime | None = None

    days_remaining: int
    progress_percent: int

    service_history: list[ServiceVisitView] = []

    @classmethod
    def from_contract(cls, contract: Contract, now: datetime) -> "ContractView":
        return cls(
            contract_code=contract.contract_code,
            kind=contract.kind,
            source=TermSource.WEB,
            status=contract.effective_status(now),
            stored_status=contract.status,
            plan_id=contract.plan_id,
            plan_name=contract.plan_name,
            product_name=contract.product_name,
            image_url=contract.product_image,
            start_date=contract.start_date,
            end_date=contract.end_date,
            duration_months=contract.duration_months,
            services_total=contract.services_total,
            services_used=contract.services_used,
            services_remaining=contract.services_remaining,
            parts_included=bool(contract.parts_included),
            amount=contract.amount or None,
            amount_paid=contract.amount_paid,
            payment_status=contract.payment_status,
            assigned_technician=contract.assigned_technician,
            days_remaining=days_remaining(contract.end_date, now),
            progress_percent=progress_percent(contract.start_date, contract.end_date, now),
            service_history=[ServiceVisitView.from_entry(v) for v in contract.service_history],
        )

    @classmethod
    def from_term(cls, term: ProfileContract, now: datetime) -> "ContractView":
        return cls(
            contract_code=term.contract_code,
            kind=term.kind,
            source=term.source,
            status=term.effective_status(now),
            stored_status=term.status,
            plan_id=term.plan_id,
            plan_name=term.plan_name or term.plan_type,
            product_name=term.machine_model,
            image_url=term.machine_image,
            start_date=term.start_date,
            end_date=term.end_date,
            duration_months=term.duration_months,
            services_total=term.services_total,
            services_used=term.services_used,
            services_remaining=term.services_remaining,
            parts_included=bool(term.parts_included),
            amount=term.amount or None,
            amount_paid=term.amount_paid,
            payment_status=term.payment_status,
            assigned_technician=term.assigned_technician,
            next_due_date=term.next_due_date,
            days_remaining=days_remaining(term.end_date, now),
            progress_percent=progress_percent(term.start_date, term.end_date, now),
        )


class ContractSummary(BaseModel):
    """Portal summary tiles for one account."""

    active_contracts: int
    expired_contracts: int
    total_services_used: int
    upcoming_expiry: list[dict]


class DashboardStats(BaseModel):
    """Admin AMC dashboard tiles over all current AMC terms."""

    total: int
    active: int
    expired: int
    expiring_soon: int
    revenue_collected: float


class ServiceRequestView(BaseModel):
    """A service request as listed in the portal.

    Merges profile complaint tickets with visit history entries; a pair
    sharing a ticket code is shown once.
    """

    ticket_code: str | None = None
    source: str  # "ticket" or "visit"
    type: str
    description: str | None = None
    status: str
    opened_at: datetime
    technician: str | None = None
    resolution_notes: str | None = None
    contract_code: str | None = None


class TicketView(BaseModel):
    """Complaint ticket in the admin queue."""

    ticket_code: str
    customer_code: str
    customer_name: str
    mobile: str
    type: str
    description: str | None = None
    priority: str
    status: str
    assigned_technician: str | None = None
    resolution_notes: str | None = None
    opened_at: datetime
    linked_visit: bool | None = None


class UserDashboard(BaseModel):
    """Portal landing data for one account."""

    customer_code: str | None = None
    amc: ContractView | None = None
    rental: ContractView | None = None
    recent_activity: list[ServiceRequestView] = []


class ContractPage(BaseModel):
    """One page of an account's contracts."""

    items: list[ContractView]
    total: int
    page: int
    limit: int
    pages: int


class OrderContractsReport(BaseModel):
    """What an order-completed event produced."""

    order_id: str
    customer_code: str | None = None
    created: list[str] = []
    already_created: list[str] = []
    skipped: list[dict] = []


class CustomerView(BaseModel):
    """Customer profile as shown in the admin panel."""

    customer_code: str
    name: str
    mobile: str
    email: str | None = None
    type: str
    status: str
    amc: ContractView | None = None
    rental: ContractView | None = None
    archived_amc_terms: int = 0
    archived_rental_terms: int = 0
