"""Contract state machine shared by self-service contracts and profile terms."""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from aquacare.core.result import ConflictError
from aquacare.persistence.models.contract import Contract, ContractStatus, PaymentStatus
from aquacare.persistence.models.customer_profile import ProfileContract
from aquacare.persistence.repositories.contract_repository import ContractRepository
from aquacare.persistence.repositories.customer_profile_repository import CustomerProfileRepository

logger = logging.getLogger(__name__)

Term = Contract | ProfileContract

RENEWABLE_STATUSES = (ContractStatus.ACTIVE, ContractStatus.ON_HOLD, ContractStatus.EXPIRED)


@dataclass
class SweepReport:
    """Ids transitioned to Expired by one sweep run."""

    contract_ids: list[int] = field(default_factory=list)
    term_ids: list[int] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.contract_ids) + len(self.term_ids)


class LifecycleManager:
    """Owns every status change of a Contract or ProfileContract.

    Transitions are conditional UPDATEs on the persisted status. When the
    row is no longer in an allowed state the transition fails with
    ConflictError and nothing changes, so concurrent cancel/sweep/hold
    requests settle on whichever landed first. Changes are flushed, not
    committed.

    Transitions:
        Pending  --confirm_payment--> Active
        Active   --sweep-->           Expired
        Pending/Active/On Hold --cancel--> Cancelled
        Active   --hold-->            On Hold
        On Hold  --resume-->          Active
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.contract_repo = ContractRepository(session)
        self.profile_repo = CustomerProfileRepository(session)

    @staticmethod
    def initial_status(payment_status: str) -> str:
        """State a new contract starts in."""
        return ContractStatus.ACTIVE if payment_status == PaymentStatus.PAID else ContractStatus.PENDING

    async def confirm_payment(self, term: Term, amount_paid: float | None = None) -> Term:
        """Pending -> Active once payment is confirmed."""
        return await self._transition(
            term,
            (ContractStatus.PENDING,),
            ContractStatus.ACTIVE,
            "activate",
            payment_status=PaymentStatus.PAID,
            amount_paid=term.amount if amount_paid is None else amount_paid,
        )

    async def cancel(self, term: Term, reason: str | None = None) -> Term:
        """Cancel a contract. Cancelled and Expired contracts are rejected."""
        values = {}
        if reason:
            values["notes"] = f"{term.notes}\nCancelled: {reason}" if term.notes else f"Cancelled: {reason}"
        return await self._transition(
            term, ContractStatus.CANCELLABLE, ContractStatus.CANCELLED, "cancel", **values
        )

    async def hold(self, term: Term) -> Term:
        """Active -> On Hold."""
        return await self._transition(term, (ContractStatus.ACTIVE,), ContractStatus.ON_HOLD, "hold")

    async def resume(self, term: Term) -> Term:
        """On Hold -> Active."""
        return await self._transition(term, (ContractStatus.ON_HOLD,), ContractStatus.ACTIVE, "resume")

    async def retire_for_renewal(self, prior: Term) -> Term:
        """Mark the contract being renewed as Expired.

        Already-expired contracts stay as they are. Pending and Cancelled
        contracts cannot be renewed.
        """
        if prior.status == ContractStatus.EXPIRED:
            return prior
        return await self._transition(
            prior,
            (ContractStatus.ACTIVE, ContractStatus.ON_HOLD),
            ContractStatus.EXPIRED,
            "renew",
        )

    async def archive_current_term(self, profile_id: int, kind: str, now: datetime) -> ProfileContract | None:
        """Move a profile's current term of ``kind`` into the archive.

        Must run before a replacement term is installed. Non-terminal terms
        are marked Expired; Cancelled terms keep their status.

        Returns:
            The archived term, or None when the profile had no current term
        """
        current = await self.profile_repo.get_current_term(profile_id, kind)
        if current is None:
            return None

        values = {"is_current": False, "archived_at": now}
        if current.status not in ContractStatus.TERMINAL:
            values["status"] = ContractStatus.EXPIRED

        stmt = (
            update(ProfileContract)
            .where(ProfileContract.id == current.id, ProfileContract.is_current.is_(True))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            raise ConflictError(
                "Current term was replaced by another request",
                contract_code=current.contract_code,
            )

        await self.session.refresh(current)
        logger.info(
            f"Archived {kind} term {current.contract_code}",
            extra={"profile_id": profile_id, "contract_code": current.contract_code, "status": current.status},
        )
        return current

    async def sweep_expired(self, now: datetime) -> SweepReport:
        """Expire every Active contract and profile term past its end date.

        Re-running with the same ``now`` finds nothing to do.
        """
        report = SweepReport(
            contract_ids=await self.contract_repo.expire_lapsed(Contract, now),
            term_ids=await self.contract_repo.expire_lapsed(ProfileContract, now),
        )
        logger.info(
            f"Expiry sweep transitioned {report.total} records",
            extra={"expired_contracts": len(report.contract_ids), "expired_terms": len(report.term_ids)},
        )
        return report

    async def _transition(
        self,
        term: Term,
        allowed_from: tuple[str, ...],
        to_status: str,
        event: str,
        **values,
    ) -> Term:
        applied = await self.contract_repo.transition(type(term), term.id, allowed_from, to_status, **values)
        await self.session.refresh(term)
        if not applied:
            raise ConflictError(
                f"Cannot {event} a contract that is {term.status}",
                contract_code=term.contract_code,
                status=term.status,
            )
        logger.info(
            f"Contract {term.contract_code} -> {to_status}",
            extra={"contract_code": term.contract_code, "event": event, "status": to_status},
        )
        return term
