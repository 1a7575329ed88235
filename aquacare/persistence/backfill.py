"""Bring legacy contract rows up to the current schema version.

Rows imported from the old document store arrive with free-form status
strings, missing durations and end dates that drift from their start date.
The backfill normalizes them in place and stamps ``schema_version``.
"""

import logging
from dataclasses import dataclass, field

from dateutil.relativedelta import relativedelta
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aquacare.core.identifiers import add_months, utcnow
from aquacare.domain.models.contract_defaults import ContractDefaults
from aquacare.persistence.models.contract import (
    CURRENT_SCHEMA_VERSION,
    Contract,
    ContractKind,
    ContractStatus,
    PaymentStatus,
)
from aquacare.persistence.models.customer_profile import ProfileContract

logger = logging.getLogger(__name__)

_STATUS_ALIASES = {
    "active": ContractStatus.ACTIVE,
    "pending": ContractStatus.PENDING,
    "expired": ContractStatus.EXPIRED,
    "cancelled": ContractStatus.CANCELLED,
    "canceled": ContractStatus.CANCELLED,
    "on hold": ContractStatus.ON_HOLD,
    "on_hold": ContractStatus.ON_HOLD,
    "onhold": ContractStatus.ON_HOLD,
}

_PAYMENT_ALIASES = {
    "paid": PaymentStatus.PAID,
    "partial": PaymentStatus.PARTIAL,
    "pending": PaymentStatus.PENDING,
    "unpaid": PaymentStatus.PENDING,
}


@dataclass
class BackfillReport:
    upgraded: int = 0
    unknown_statuses: list[str] = field(default_factory=list)


def normalize_term(term: Contract | ProfileContract, defaults: ContractDefaults) -> list[str]:
    """Normalize one legacy row in place.

    Returns:
        Status values that could not be mapped (left untouched)
    """
    unknown = []

    kind = (term.kind or ContractKind.AMC).strip().lower()
    term.kind = kind if kind in ContractKind.ALL else ContractKind.AMC

    raw_status = (term.status or "").strip()
    status = _STATUS_ALIASES.get(raw_status.lower())
    if status:
        term.status = status
    else:
        unknown.append(raw_status)

    term.payment_status = _PAYMENT_ALIASES.get(
        (term.payment_status or "").strip().lower(), PaymentStatus.PENDING
    )

    if not term.duration_months or term.duration_months <= 0:
        delta = relativedelta(term.end_date, term.start_date)
        months = delta.years * 12 + delta.months
        if months <= 0:
            months = (
                defaults.rental_duration_months
                if term.kind == ContractKind.RENTAL
                else defaults.amc_duration_months
            )
        term.duration_months = months
    term.end_date = add_months(term.start_date, term.duration_months)

    term.services_total = max(0, term.services_total or 0)
    term.services_used = min(max(0, term.services_used or 0), term.services_total)
    term.amount = term.amount or 0.0
    term.amount_paid = term.amount_paid or 0.0

    term.schema_version = CURRENT_SCHEMA_VERSION
    return unknown


async def backfill_contract_schema(
    session: AsyncSession,
    defaults: ContractDefaults | None = None,
    batch_size: int = 200,
) -> BackfillReport:
    """Upgrade every Contract and ProfileContract below the current version.

    Commits once per batch.
    """
    defaults = defaults or ContractDefaults()
    report = BackfillReport()

    for model in (Contract, ProfileContract):
        while True:
            stmt = (
                select(model)
                .where(model.schema_version < CURRENT_SCHEMA_VERSION)
                .order_by(model.id)
                .limit(batch_size)
            )
            rows = list((await session.execute(stmt)).scalars().all())
            if not rows:
                break

            now = utcnow()
            for row in rows:
                unknown = normalize_term(row, defaults)
                row.updated_at = now
                if unknown:
                    logger.warning(
                        f"Unmapped status on {model.__tablename__} {row.contract_code}",
                        extra={"contract_code": row.contract_code, "raw_status": unknown},
                    )
                    report.unknown_statuses.extend(unknown)
            await session.commit()
            report.upgraded += len(rows)

            logger.info(
                f"Backfilled {len(rows)} rows of {model.__tablename__}",
                extra={"table": model.__tablename__, "upgraded_total": report.upgraded},
            )

    return report
