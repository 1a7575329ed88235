"""Self-service contract records and the columns shared with profile terms."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from aquacare.core.identifiers import utcnow
from aquacare.persistence.database import Base

if TYPE_CHECKING:
    from aquacare.persistence.models.service_visit import ServiceVisitEntry
    from aquacare.persistence.models.web_account import WebAccount

CURRENT_SCHEMA_VERSION = 2


class ContractKind:
    """Contract kind constants."""
    AMC = "amc"
    RENTAL = "rental"

    ALL = (AMC, RENTAL)


class ContractStatus:
    """Lifecycle state constants."""
    PENDING = "Pending"
    ACTIVE = "Active"
    EXPIRED = "Expired"
    CANCELLED = "Cancelled"
    ON_HOLD = "On Hold"

    TERMINAL = (EXPIRED, CANCELLED)
    CANCELLABLE = (PENDING, ACTIVE, ON_HOLD)


class PaymentStatus:
    """Payment state constants."""
    PAID = "Paid"
    PARTIAL = "Partial"
    PENDING = "Pending"


class ContractTermMixin:
    """Columns and behaviour shared by Contract and ProfileContract.

    ``end_date`` is always ``start_date + duration_months``; it is written once
    at creation and a renewal creates a new row instead of moving it.
    """

    kind = Column(String(20), nullable=False, default=ContractKind.AMC)
    contract_code = Column(String(64), nullable=False)

    plan_id = Column(Integer, nullable=True)
    plan_name = Column(String(255), nullable=True)

    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    duration_months = Column(Integer, nullable=False, default=12)

    services_total = Column(Integer, nullable=False, default=0)
    services_used = Column(Integer, nullable=False, default=0)
    parts_included = Column(Boolean, nullable=False, default=False)

    amount = Column(Float, nullable=False, default=0.0)
    amount_paid = Column(Float, nullable=False, default=0.0)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING)

    status = Column(String(20), nullable=False, default=ContractStatus.PENDING, index=True)
    assigned_technician = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    # Rows written outside the ORM (legacy imports) land as version 1 until backfilled
    schema_version = Column(Integer, nullable=False, default=CURRENT_SCHEMA_VERSION, server_default="1")

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def is_lapsed(self, now: datetime) -> bool:
        """True when the end date has passed."""
        return self.end_date is not None and now > self.end_date

    def effective_status(self, now: datetime) -> str:
        """Status as it should be displayed right now.

        An Active term whose end date has passed reads as Expired even if the
        expiry sweep has not persisted that yet.
        """
        if self.status == ContractStatus.ACTIVE and self.is_lapsed(now):
            return ContractStatus.EXPIRED
        return self.status

    @property
    def services_remaining(self) -> int:
        return max(0, (self.services_total or 0) - (self.services_used or 0))


class Contract(ContractTermMixin, Base):
    """Per-contract record created by the self-service (web order) path."""

    __tablename__ = "contracts"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("web_accounts.id"), nullable=False, index=True)

    # Fulfillment order that produced the contract, or RENEW-<code> for renewals
    order_id = Column(String(100), nullable=False, index=True)

    # Tagged product reference: Product | Part
    product_kind = Column(String(20), nullable=False, default="Product")
    product_id = Column(Integer, nullable=False)
    product_name = Column(String(255), nullable=False)
    product_image = Column(String(500), nullable=True)

    renewed_from_id = Column(Integer, ForeignKey("contracts.id"), nullable=True)

    __table_args__ = (
        UniqueConstraint("order_id", "product_id", "plan_id", name="uq_contracts_order_product_plan"),
        UniqueConstraint("contract_code", name="uq_contracts_contract_code"),
        CheckConstraint("services_used >= 0 AND services_used <= services_total", name="ck_contracts_quota"),
        Index("ix_contracts_account_status", "account_id", "status"),
        Index("ix_contracts_end_date", "end_date"),
    )

    # Relationships
    account = relationship("WebAccount", back_populates="contracts")
    service_history = relationship(
        "ServiceVisitEntry",
        back_populates="contract",
        order_by="ServiceVisitEntry.visit_date",
        lazy="selectin",
    )
    renewed_from = relationship("Contract", remote_side=[id])

    def __repr__(self) -> str:
        return f"<Contract(id={self.id}, code={self.contract_code}, account_id={self.account_id}, status={self.status})>"
