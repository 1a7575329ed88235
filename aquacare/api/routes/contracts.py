"""User portal contract endpoints."""

from typing import Annotated

from fastapi import APIRouter, Query
from pydantic import BaseModel

from aquacare.api.deps import ContractServiceDep, CurrentAccount, unwrap_or_raise
from aquacare.domain.models.contract_view import (
    ContractPage,
    ContractSummary,
    ContractView,
    ServiceVisitView,
    UserDashboard,
)
from aquacare.persistence.models.contract import ContractKind
from aquacare.persistence.models.service_visit import VisitCategory

router = APIRouter()


class ServiceVisitRequest(BaseModel):
    """Service visit request body."""

    notes: str | None = None
    category: str = VisitCategory.REGULAR_SERVICE


class CancelRequest(BaseModel):
    """Cancellation request body."""

    reason: str | None = None


class ServiceVisitResponse(BaseModel):
    """Recorded visit and the ticket opened for it."""

    contract_code: str
    services_used: int
    services_remaining: int
    visit: ServiceVisitView
    ticket_code: str | None = None


@router.get("", response_model=ContractPage)
async def list_my_contracts(
    current_account: CurrentAccount,
    service: ContractServiceDep,
    status: Annotated[str | None, Query()] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> ContractPage:
    """List the caller's contracts, soonest expiry first."""
    return unwrap_or_raise(await service.get_my_contracts(current_account.id, status, page, limit))


@router.get("/summary", response_model=ContractSummary)
async def get_summary(
    current_account: CurrentAccount,
    service: ContractServiceDep,
) -> ContractSummary:
    """Active/expired counts, visits used and upcoming expiries."""
    return unwrap_or_raise(await service.get_contract_summary(current_account.id))


@router.get("/dashboard", response_model=UserDashboard)
async def get_dashboard(
    current_account: CurrentAccount,
    service: ContractServiceDep,
) -> UserDashboard:
    """Current AMC and rental with recent service activity."""
    return unwrap_or_raise(await service.dashboard_status(current_account.id))


@router.get("/current/amc", response_model=ContractView | None)
async def get_current_amc(
    current_account: CurrentAccount,
    service: ContractServiceDep,
) -> ContractView | None:
    """The caller's current AMC, from either store."""
    return unwrap_or_raise(await service.current_contract(current_account.id, ContractKind.AMC))


@router.get("/current/rental", response_model=ContractView | None)
async def get_current_rental(
    current_account: CurrentAccount,
    service: ContractServiceDep,
) -> ContractView | None:
    """The caller's current rental, from either store."""
    return unwrap_or_raise(await service.current_contract(current_account.id, ContractKind.RENTAL))


@router.get("/{contract_code}", response_model=ContractView)
async def get_contract(
    contract_code: str,
    current_account: CurrentAccount,
    service: ContractServiceDep,
) -> ContractView:
    """Contract detail with service history."""
    return unwrap_or_raise(await service.get_contract(current_account.id, contract_code))


@router.post("/{contract_code}/service-request", response_model=ServiceVisitResponse, status_code=201)
async def request_service(
    contract_code: str,
    body: ServiceVisitRequest,
    current_account: CurrentAccount,
    service: ContractServiceDep,
) -> ServiceVisitResponse:
    """Request a service visit.

    Returns 422 with a renewal prompt once every visit is used.
    """
    record = unwrap_or_raise(
        await service.request_service_visit(current_account.id, contract_code, body.notes, body.category)
    )
    return ServiceVisitResponse(
        contract_code=record.contract.contract_code,
        services_used=record.contract.services_used,
        services_remaining=record.contract.services_remaining,
        visit=ServiceVisitView.from_entry(record.visit),
        ticket_code=record.ticket.ticket_code if record.ticket else None,
    )


@router.post("/{contract_code}/cancel", response_model=ContractView)
async def cancel_contract(
    contract_code: str,
    body: CancelRequest,
    current_account: CurrentAccount,
    service: ContractServiceDep,
) -> ContractView:
    """Cancel one of the caller's contracts."""
    return unwrap_or_raise(await service.cancel_contract(current_account.id, contract_code, body.reason))


@router.post("/{contract_code}/renew", response_model=ContractView, status_code=201)
async def renew_contract(
    contract_code: str,
    current_account: CurrentAccount,
    service: ContractServiceDep,
) -> ContractView:
    """Renew a contract; returns the successor."""
    return unwrap_or_raise(await service.renew_contract(current_account.id, contract_code))
