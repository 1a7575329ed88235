"""Admin endpoints for customer profiles and their contracts."""

from datetime import datetime
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from aquacare.api.deps import AdminAccount, ContractServiceDep, unwrap_or_raise
from aquacare.domain.models.contract_view import ContractView, CustomerView, DashboardStats
from aquacare.domain.services.contract_factory import ContractContext
from aquacare.persistence.models.contract import PaymentStatus
from aquacare.persistence.models.customer_profile import CustomerType

router = APIRouter()


class ContractCreateRequest(BaseModel):
    """AMC or rental term entered by staff.

    Unset fields fall back to the plan template, then to the configured
    defaults.
    """

    plan_id: int | None = None
    plan_name: str | None = None
    plan_type: str | None = None
    start_date: datetime | None = None
    duration_months: int | None = Field(default=None, ge=1)
    services_total: int | None = Field(default=None, ge=0)
    parts_included: bool | None = None
    amount: float | None = Field(default=None, ge=0)
    amount_paid: float | None = Field(default=None, ge=0)
    payment_status: str = PaymentStatus.PAID
    payment_mode: str | None = None
    assigned_technician: str | None = None
    notes: str | None = None
    machine_model: str | None = None
    machine_image: str | None = None

    def to_context(self) -> ContractContext:
        return ContractContext(**self.model_dump(exclude={"plan_id"}))


class CustomerCreateRequest(BaseModel):
    """Offline customer registered by staff."""

    name: str = Field(min_length=1)
    mobile: str = Field(min_length=1)
    email: str | None = None
    address: dict[str, Any] | None = None
    type: str = CustomerType.NEW


class RentalPaymentRequest(BaseModel):
    """Monthly rental payment."""

    amount: float = Field(gt=0)
    payment_mode: str | None = None


class TransitionRequest(BaseModel):
    """Admin state change on a contract."""

    action: Literal["hold", "resume", "cancel", "confirm_payment"]
    reason: str | None = None
    amount_paid: float | None = Field(default=None, ge=0)


@router.get("/dashboard", response_model=DashboardStats)
async def get_amc_dashboard(
    admin: AdminAccount,
    service: ContractServiceDep,
) -> DashboardStats:
    """AMC tiles over every current AMC term."""
    return unwrap_or_raise(await service.admin_dashboard())


@router.get("/accounts/{account_id}/customer", response_model=CustomerView | None)
async def resolve_account_customer(
    account_id: int,
    admin: AdminAccount,
    service: ContractServiceDep,
) -> CustomerView | None:
    """Customer profile linked to a web account, if any."""
    return unwrap_or_raise(await service.resolve_customer(account_id))


@router.get("/customers", response_model=list[CustomerView])
async def search_customers(
    admin: AdminAccount,
    service: ContractServiceDep,
    q: Annotated[str, Query(min_length=1)],
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[CustomerView]:
    """Search customer profiles."""
    return unwrap_or_raise(await service.search_customers(q, limit))


@router.post("/customers", response_model=CustomerView, status_code=201)
async def create_customer(
    body: CustomerCreateRequest,
    admin: AdminAccount,
    service: ContractServiceDep,
) -> CustomerView:
    """Register a walk-in or phone customer."""
    return unwrap_or_raise(
        await service.create_customer(
            body.name, body.mobile, email=body.email, address=body.address, customer_type=body.type
        )
    )


@router.get("/customers/{customer_code}", response_model=CustomerView)
async def get_customer(
    customer_code: str,
    admin: AdminAccount,
    service: ContractServiceDep,
) -> CustomerView:
    """Customer profile with current AMC and rental."""
    return unwrap_or_raise(await service.get_customer(customer_code))


@router.post("/customers/{customer_code}/amc", response_model=ContractView, status_code=201)
async def create_amc(
    customer_code: str,
    body: ContractCreateRequest,
    admin: AdminAccount,
    service: ContractServiceDep,
) -> ContractView:
    """Create an AMC; any current AMC is archived first."""
    return unwrap_or_raise(await service.create_amc(customer_code, body.plan_id, body.to_context()))


@router.post("/customers/{customer_code}/amc/renew", response_model=ContractView, status_code=201)
async def renew_amc(
    customer_code: str,
    body: ContractCreateRequest,
    admin: AdminAccount,
    service: ContractServiceDep,
) -> ContractView:
    """Renew the current AMC; the new term starts when the old one ends."""
    return unwrap_or_raise(await service.renew_amc(customer_code, body.plan_id, body.to_context()))


@router.post("/customers/{customer_code}/rental", response_model=ContractView, status_code=201)
async def install_rental(
    customer_code: str,
    body: ContractCreateRequest,
    admin: AdminAccount,
    service: ContractServiceDep,
) -> ContractView:
    """Install a rental machine."""
    return unwrap_or_raise(await service.install_rental(customer_code, body.plan_id, body.to_context()))


@router.post("/customers/{customer_code}/rental/payments", response_model=ContractView)
async def record_rental_payment(
    customer_code: str,
    body: RentalPaymentRequest,
    admin: AdminAccount,
    service: ContractServiceDep,
) -> ContractView:
    """Record a monthly rental payment."""
    return unwrap_or_raise(await service.record_rental_payment(customer_code, body.amount, body.payment_mode))


@router.post("/contracts/{contract_code}/transition", response_model=ContractView)
async def transition_contract(
    contract_code: str,
    body: TransitionRequest,
    admin: AdminAccount,
    service: ContractServiceDep,
) -> ContractView:
    """Hold, resume, cancel or confirm payment on a contract."""
    return unwrap_or_raise(
        await service.transition_contract(contract_code, body.action, body.reason, body.amount_paid)
    )
