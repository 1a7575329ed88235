"""User portal service request history and enquiries."""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from aquacare.api.deps import ContractServiceDep, CurrentAccount, unwrap_or_raise
from aquacare.domain.models.contract_view import ServiceRequestView

router = APIRouter()


class EnquiryRequest(BaseModel):
    """Enquiry or complaint raised from the portal, no contract needed."""

    description: str = Field(min_length=1)
    type: str = "Other"


@router.get("", response_model=list[ServiceRequestView])
async def list_service_requests(
    current_account: CurrentAccount,
    service: ContractServiceDep,
) -> list[ServiceRequestView]:
    """Profile tickets merged with visit history, newest first."""
    return unwrap_or_raise(await service.list_service_requests(current_account.id))


@router.post("", response_model=ServiceRequestView, status_code=201)
async def create_enquiry(
    body: EnquiryRequest,
    current_account: CurrentAccount,
    service: ContractServiceDep,
) -> ServiceRequestView:
    """Open a ticket; the customer profile is created on first contact."""
    return unwrap_or_raise(
        await service.create_enquiry(current_account.id, body.description, type=body.type)
    )
