"""Contract worker endpoints called by the order service and the scheduler."""

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from aquacare.api.deps import ContractServiceDep, require_worker_token, unwrap_or_raise
from aquacare.domain.models.contract_view import OrderContractsReport
from aquacare.domain.models.order_events import OrderCancelledEvent, OrderCompletedEvent

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_worker_token)])


class SweepPayload(BaseModel):
    """Expiry sweep trigger; ``now`` overrides the clock for backfills."""

    now: datetime | None = None


@router.post("/order-completed", response_model=OrderContractsReport)
async def process_order_completed(
    event: OrderCompletedEvent,
    service: ContractServiceDep,
) -> OrderContractsReport:
    """Create contracts for a completed order.

    Safe to retry: lines that already produced a contract are reported under
    ``already_created``.
    """
    try:
        result = await service.handle_order_completed(event)
    except Exception as e:
        logger.error(
            f"Error processing order {event.order_id}: {e}",
            exc_info=True,
            extra={"order_id": event.order_id},
        )
        # Return error so the caller retries
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Order processing failed: {str(e)}",
        )
    return unwrap_or_raise(result)


@router.post("/order-cancelled")
async def process_order_cancelled(
    event: OrderCancelledEvent,
    service: ContractServiceDep,
) -> dict[str, Any]:
    """Cancel the contracts of a cancelled or returned order."""
    cancelled = unwrap_or_raise(await service.cancel_for_order(event.order_id, event.reason))
    return {"status": "success", "order_id": event.order_id, "cancelled": cancelled}


@router.post("/expiry-sweep")
async def process_expiry_sweep(
    service: ContractServiceDep,
    payload: SweepPayload | None = None,
) -> dict[str, Any]:
    """Persist expiry of lapsed Active contracts and profile terms."""
    report = unwrap_or_raise(await service.run_expiry_sweep(payload.now if payload else None))
    logger.info(
        f"Expiry sweep finished: {report.total} expired",
        extra={"contracts": len(report.contract_ids), "terms": len(report.term_ids)},
    )
    return {
        "status": "success",
        "expired_contracts": len(report.contract_ids),
        "expired_terms": len(report.term_ids),
    }
