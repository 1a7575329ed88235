"""Admin ticket queue and visit dispatch."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from aquacare.api.deps import AdminAccount, ContractServiceDep, unwrap_or_raise
from aquacare.domain.models.contract_view import ServiceVisitView, TicketView
from aquacare.persistence.models.customer_profile import TicketPriority

router = APIRouter()


class TicketCreateRequest(BaseModel):
    """Complaint taken over the phone or at the counter."""

    description: str = Field(min_length=1)
    type: str = "Other"
    priority: str = TicketPriority.MEDIUM
    opened_at: datetime | None = None


class TicketUpdateRequest(BaseModel):
    """Ticket fields staff may change."""

    status: str | None = None
    assigned_technician: str | None = None
    resolution_notes: str | None = None
    priority: str | None = None


class VisitUpdateRequest(BaseModel):
    """Visit dispatch fields."""

    technician_name: str | None = None
    notes: str | None = None
    status: str | None = None


class RelinkResponse(BaseModel):
    ticket_code: str
    linked: bool


@router.get("/tickets", response_model=list[TicketView])
async def list_tickets(
    admin: AdminAccount,
    service: ContractServiceDep,
    status: Annotated[str | None, Query()] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[TicketView]:
    """All complaint tickets, newest first."""
    return unwrap_or_raise(await service.list_tickets(status, page, limit))


@router.post("/customers/{customer_code}/tickets", response_model=TicketView, status_code=201)
async def add_ticket(
    customer_code: str,
    body: TicketCreateRequest,
    admin: AdminAccount,
    service: ContractServiceDep,
) -> TicketView:
    """Log a complaint against a customer profile."""
    return unwrap_or_raise(await service.add_ticket(customer_code, **body.model_dump()))


@router.patch("/tickets/{ticket_code}", response_model=TicketView)
async def update_ticket(
    ticket_code: str,
    body: TicketUpdateRequest,
    admin: AdminAccount,
    service: ContractServiceDep,
) -> TicketView:
    """Update a ticket; the linked visit follows."""
    return unwrap_or_raise(await service.update_ticket(ticket_code, **body.model_dump()))


@router.post("/tickets/{ticket_code}/relink", response_model=RelinkResponse)
async def relink_ticket(
    ticket_code: str,
    admin: AdminAccount,
    service: ContractServiceDep,
) -> RelinkResponse:
    """Re-run ticket-to-visit linking for one ticket."""
    linked = unwrap_or_raise(await service.relink_ticket(ticket_code))
    return RelinkResponse(ticket_code=ticket_code, linked=linked)


@router.patch("/visits/{visit_id}", response_model=ServiceVisitView)
async def update_visit(
    visit_id: int,
    body: VisitUpdateRequest,
    admin: AdminAccount,
    service: ContractServiceDep,
) -> ServiceVisitView:
    """Assign a technician or close a visit; the ticket follows."""
    return unwrap_or_raise(await service.update_visit(visit_id, **body.model_dump()))
