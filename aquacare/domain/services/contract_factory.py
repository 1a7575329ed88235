"""Build AMC and rental contracts from plan templates."""

import logging
from dataclasses import dataclass, replace
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from aquacare.core.identifiers import add_months, generate_contract_code, utcnow
from aquacare.domain.models.contract_defaults import ContractDefaults
from aquacare.domain.services.lifecycle_manager import LifecycleManager
from aquacare.infrastructure.catalog import PlanInfo, ProductInfo
from aquacare.persistence.models.contract import Contract, ContractKind, PaymentStatus
from aquacare.persistence.models.customer_profile import (
    CustomerProfile,
    CustomerType,
    ProfileContract,
    TermSource,
)
from aquacare.persistence.models.web_account import WebAccount
from aquacare.persistence.repositories.customer_profile_repository import CustomerProfileRepository

logger = logging.getLogger(__name__)

RENEWAL_ORDER_PREFIX = "RENEW-"


@dataclass
class ContractContext:
    """Per-call inputs that are not part of the plan template.

    ``duration_months`` is an admin override and wins over the template.
    ``start_date`` supports admin backdating; it defaults to now.
    """

    start_date: datetime | None = None
    duration_months: int | None = None
    plan_name: str | None = None
    plan_type: str | None = None
    services_total: int | None = None
    parts_included: bool | None = None
    amount: float | None = None
    amount_paid: float | None = None
    payment_status: str = PaymentStatus.PAID
    payment_mode: str | None = None
    assigned_technician: str | None = None
    notes: str | None = None
    machine_model: str | None = None
    machine_image: str | None = None


class ContractFactory:
    """Creates contracts; never commits.

    The caller's transaction covers the archive of a replaced term and the
    insert of its successor, so either both land or neither does.
    """

    def __init__(
        self,
        session: AsyncSession,
        lifecycle: LifecycleManager,
        defaults: ContractDefaults | None = None,
    ) -> None:
        self.session = session
        self.lifecycle = lifecycle
        self.defaults = defaults or ContractDefaults()
        self.profile_repo = CustomerProfileRepository(session)

    # --- Admin path: terms on a customer profile ------------------------

    async def create_amc(
        self,
        profile: CustomerProfile,
        plan: PlanInfo | None,
        context: ContractContext,
        now: datetime | None = None,
    ) -> ProfileContract:
        """Install a new current AMC term on a profile."""
        term = await self._install_term(profile, ContractKind.AMC, plan, context, now or utcnow())
        profile.type = CustomerType.AMC_CUSTOMER
        await self.session.flush()
        return term

    async def create_rental(
        self,
        profile: CustomerProfile,
        plan: PlanInfo | None,
        context: ContractContext,
        now: datetime | None = None,
    ) -> ProfileContract:
        """Install a new current rental term on a profile.

        The first monthly payment falls due one month after the start date.
        """
        return await self._install_term(profile, ContractKind.RENTAL, plan, context, now or utcnow())

    async def renew_term(
        self,
        profile: CustomerProfile,
        kind: str,
        plan: PlanInfo | None,
        context: ContractContext,
        now: datetime | None = None,
    ) -> ProfileContract:
        """Replace the current term of ``kind`` with a fresh one.

        Unless the admin supplies a start date, the new term starts when the
        old one ends (or now, if it already ended).
        """
        now = now or utcnow()
        current = await self.profile_repo.get_current_term(profile.id, kind)
        if current is not None and context.start_date is None:
            context = replace(context, start_date=max(now, current.end_date))
        if plan is None and current is not None and context.duration_months is None:
            context = replace(context, duration_months=current.duration_months)
        return await self._install_term(profile, kind, plan, context, now, previous=current)

    async def _install_term(
        self,
        profile: CustomerProfile,
        kind: str,
        plan: PlanInfo | None,
        context: ContractContext,
        now: datetime,
        previous: ProfileContract | None = None,
    ) -> ProfileContract:
        start = context.start_date or now
        duration = self._duration(kind, plan, context.duration_months)
        amount = context.amount if context.amount is not None else (plan.price if plan else 0.0)
        services_total = self._quota(kind, plan)
        if previous is not None and plan is None:
            services_total = previous.services_total
        if context.services_total is not None:
            services_total = context.services_total
        parts_included = plan.parts_included if plan else False
        if context.parts_included is not None:
            parts_included = context.parts_included

        # Archive must land before the new current row
        await self.lifecycle.archive_current_term(profile.id, kind, now)

        term = await self.profile_repo.add_term(
            profile_id=profile.id,
            kind=kind,
            contract_code=self._code(kind, now),
            is_current=True,
            source=TermSource.ADMIN,
            plan_id=plan.id if plan else None,
            plan_name=context.plan_name or (plan.name if plan else context.plan_type),
            plan_type=context.plan_type,
            start_date=start,
            end_date=add_months(start, duration),
            duration_months=duration,
            services_total=services_total,
            services_used=0,
            parts_included=parts_included,
            amount=amount,
            amount_paid=context.amount_paid if context.amount_paid is not None else (
                amount if context.payment_status == PaymentStatus.PAID else 0.0
            ),
            payment_status=context.payment_status,
            payment_mode=context.payment_mode,
            status=self.lifecycle.initial_status(context.payment_status),
            assigned_technician=context.assigned_technician,
            notes=context.notes,
            next_due_date=add_months(start, 1) if kind == ContractKind.RENTAL else None,
            machine_model=context.machine_model,
            machine_image=context.machine_image or (plan.image_url if plan else None),
            created_at=now,
            updated_at=now,
        )
        await self.profile_repo.touch(profile.id, now)
        await self.session.refresh(profile, ["terms"])

        logger.info(
            f"Installed {kind} term {term.contract_code} on profile {profile.customer_code}",
            extra={"profile_id": profile.id, "contract_code": term.contract_code, "status": term.status},
        )
        return term

    # --- Self-service path: Contract records ----------------------------

    async def create_from_order_item(
        self,
        account: WebAccount,
        order_id: str,
        plan: PlanInfo,
        product: ProductInfo,
        amount: float,
        payment_status: str,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> Contract:
        """Persist the Contract for one order line.

        The (order, product, plan) unique constraint rejects a second insert
        for the same line; the caller treats that as "already created".
        """
        now = now or utcnow()
        duration = self._duration(plan.kind, plan, None)
        contract = Contract(
            account_id=account.id,
            order_id=order_id,
            kind=plan.kind,
            contract_code=self._code(plan.kind, now),
            product_kind=product.ref.kind,
            product_id=product.ref.id,
            product_name=product.name,
            product_image=product.image_url,
            plan_id=plan.id,
            plan_name=plan.name,
            start_date=now,
            end_date=add_months(now, duration),
            duration_months=duration,
            services_total=self._quota(plan.kind, plan),
            services_used=0,
            parts_included=plan.parts_included,
            amount=amount,
            amount_paid=amount if payment_status == PaymentStatus.PAID else 0.0,
            notes=notes,
            payment_status=payment_status,
            status=self.lifecycle.initial_status(payment_status),
            service_history=[],
            created_at=now,
            updated_at=now,
        )
        self.session.add(contract)
        await self.session.flush()

        logger.info(
            f"Created contract {contract.contract_code} from order {order_id}",
            extra={
                "account_id": account.id,
                "contract_code": contract.contract_code,
                "order_id": order_id,
                "status": contract.status,
            },
        )
        return contract

    async def create_renewal(
        self,
        prior: Contract,
        plan: PlanInfo | None,
        now: datetime | None = None,
    ) -> Contract:
        """Retire ``prior`` and create its Active successor.

        The successor starts no earlier than the prior end date and points
        back at it through ``renewed_from_id``. Its order id is
        ``RENEW-<prior code>``, so a second renewal of the same contract hits
        the unique constraint.
        """
        now = now or utcnow()
        await self.lifecycle.retire_for_renewal(prior)

        start = max(now, prior.end_date)
        duration = plan.duration_months if plan and plan.duration_months else prior.duration_months
        amount = plan.price if plan else prior.amount
        successor = Contract(
            account_id=prior.account_id,
            order_id=f"{RENEWAL_ORDER_PREFIX}{prior.contract_code}",
            kind=prior.kind,
            contract_code=self._code(prior.kind, now),
            product_kind=prior.product_kind,
            product_id=prior.product_id,
            product_name=prior.product_name,
            product_image=prior.product_image,
            plan_id=prior.plan_id,
            plan_name=plan.name if plan else prior.plan_name,
            start_date=start,
            end_date=add_months(start, duration),
            duration_months=duration,
            services_total=plan.service_quota if plan and plan.service_quota else prior.services_total,
            services_used=0,
            parts_included=plan.parts_included if plan else prior.parts_included,
            amount=amount,
            amount_paid=amount,
            payment_status=PaymentStatus.PAID,
            status=self.lifecycle.initial_status(PaymentStatus.PAID),
            assigned_technician=prior.assigned_technician,
            renewed_from_id=prior.id,
            service_history=[],
            created_at=now,
            updated_at=now,
        )
        self.session.add(successor)
        await self.session.flush()

        logger.info(
            f"Renewed contract {prior.contract_code} as {successor.contract_code}",
            extra={"contract_code": successor.contract_code, "renewed_from": prior.contract_code},
        )
        return successor

    # --- Helpers ---------------------------------------------------------

    def _code(self, kind: str, now: datetime) -> str:
        prefix = self.defaults.rental_code_prefix if kind == ContractKind.RENTAL else self.defaults.amc_code_prefix
        return generate_contract_code(prefix, now)

    def _duration(self, kind: str, plan: PlanInfo | None, override: int | None) -> int:
        if override:
            return override
        if plan and plan.duration_months:
            return plan.duration_months
        if kind == ContractKind.RENTAL:
            return self.defaults.rental_duration_months
        return self.defaults.amc_duration_months

    def _quota(self, kind: str, plan: PlanInfo | None) -> int:
        if plan and plan.service_quota is not None:
            return plan.service_quota
        return self.defaults.amc_service_quota if kind == ContractKind.AMC else 0
