"""Human-readable identifiers and time helpers shared by the contract core."""

import secrets
from datetime import datetime, timezone

from dateutil.relativedelta import relativedelta


def utcnow() -> datetime:
    """Naive UTC now, matching how timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def add_months(start: datetime, months: int) -> datetime:
    """Add calendar months, clamping to the end of shorter months.

    2024-01-15 + 12 → 2025-01-15, 2024-01-31 + 1 → 2024-02-29.
    """
    return start + relativedelta(months=months)


def generate_contract_code(prefix: str, now: datetime | None = None) -> str:
    """Contract id such as ``AMC-20240115103000-9F2C``.

    Date/time plus a short random suffix: collision resistant enough for a
    support desk, not meant to be unguessable.
    """
    now = now or utcnow()
    return f"{prefix}-{now:%Y%m%d%H%M%S}-{secrets.token_hex(2).upper()}"


def generate_ticket_code(prefix: str, now: datetime | None = None) -> str:
    """Ticket id such as ``SR-240115-A1B2C3``."""
    now = now or utcnow()
    return f"{prefix}-{now:%y%m%d}-{secrets.token_hex(3).upper()}"


def generate_customer_code(prefix: str, now: datetime | None = None) -> str:
    """Customer id such as ``CUST24A1B2C3``."""
    now = now or utcnow()
    return f"{prefix}{now:%y}{secrets.token_hex(3).upper()}"
