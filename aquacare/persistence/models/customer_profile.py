"""Admin-owned customer profile and its embedded terms and tickets."""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import relationship

from aquacare.core.identifiers import utcnow
from aquacare.persistence.database import Base
from aquacare.persistence.models.contract import ContractTermMixin


class CustomerType:
    """Customer type constants."""
    NEW = "New"
    EXISTING = "Existing"
    AMC_CUSTOMER = "AMC Customer"


class TermSource:
    """Who installed a profile term."""
    ADMIN = "admin"  # walk-in sale, phone order, admin form
    WEB = "web"  # mirrored from a self-service Contract


class TicketStatus:
    """Complaint ticket status constants."""
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"


class TicketPriority:
    """Complaint ticket priority constants."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class CustomerProfile(Base):
    """Offline customer record managed from the admin panel.

    Holds at most one current AMC and one current rental term (see
    ProfileContract); older terms stay on the profile as the archive.
    """

    __tablename__ = "customer_profiles"

    id = Column(Integer, primary_key=True, index=True)
    customer_code = Column(String(32), nullable=False, unique=True)

    name = Column(String(255), nullable=False)
    mobile = Column(String(50), nullable=False, unique=True)  # raw, as typed by staff
    email = Column(String(255), nullable=True, index=True)

    # Schema: {house, area, city, pincode, landmark}
    address = Column(JSON, nullable=True)

    type = Column(String(50), default=CustomerType.NEW, nullable=False)
    status = Column(String(50), default="Active", nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False, index=True)

    # Relationships
    terms = relationship(
        "ProfileContract",
        back_populates="profile",
        order_by="ProfileContract.id",
        lazy="selectin",
    )
    complaints = relationship(
        "ComplaintTicket",
        back_populates="profile",
        order_by="ComplaintTicket.opened_at",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<CustomerProfile(id={self.id}, code={self.customer_code}, name={self.name}, mobile={self.mobile})>"


class ProfileContract(ContractTermMixin, Base):
    """AMC or rental term held on a CustomerProfile.

    The admin UI edits these rows directly. The self-service path only
    reaches them through the sync bridge, which installs ``source='web'``
    mirrors of Contract records.
    """

    __tablename__ = "profile_contracts"

    id = Column(Integer, primary_key=True, index=True)
    profile_id = Column(Integer, ForeignKey("customer_profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    is_current = Column(Boolean, nullable=False, default=True)
    archived_at = Column(DateTime, nullable=True)

    source = Column(String(20), nullable=False, default=TermSource.ADMIN)
    contract_id = Column(Integer, ForeignKey("contracts.id"), nullable=True, index=True)

    # AMC extras
    plan_type = Column(String(50), nullable=True)  # Silver, Gold, Platinum, Custom
    payment_mode = Column(String(20), nullable=True)  # Cash, UPI, Card, Transfer, Other

    # Rental extras
    next_due_date = Column(DateTime, nullable=True)
    machine_model = Column(String(255), nullable=True)
    machine_image = Column(String(500), nullable=True)

    __table_args__ = (
        Index(
            "uq_profile_contracts_current",
            "profile_id",
            "kind",
            unique=True,
            postgresql_where=text("is_current"),
            sqlite_where=text("is_current = 1"),
        ),
        Index("ix_profile_contracts_contract_code", "contract_code"),
    )

    # Relationships
    profile = relationship("CustomerProfile", back_populates="terms")
    contract = relationship("Contract", foreign_keys=[contract_id])

    def __repr__(self) -> str:
        return (
            f"<ProfileContract(id={self.id}, profile_id={self.profile_id}, kind={self.kind}, "
            f"code={self.contract_code}, current={self.is_current}, status={self.status})>"
        )


class ComplaintTicket(Base):
    """Complaint / service ticket raised against a customer profile."""

    __tablename__ = "complaint_tickets"

    id = Column(Integer, primary_key=True, index=True)
    profile_id = Column(Integer, ForeignKey("customer_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    ticket_code = Column(String(64), nullable=False, unique=True)

    type = Column(String(50), nullable=False, default="Other")
    description = Column(Text, nullable=True)
    opened_at = Column(DateTime, default=utcnow, nullable=False)
    priority = Column(String(20), default=TicketPriority.MEDIUM, nullable=False)
    status = Column(String(20), default=TicketStatus.OPEN, nullable=False, index=True)
    assigned_technician = Column(String(255), nullable=True)
    resolution_notes = Column(Text, nullable=True)

    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    profile = relationship("CustomerProfile", back_populates="complaints")

    def __repr__(self) -> str:
        return f"<ComplaintTicket(id={self.id}, code={self.ticket_code}, status={self.status})>"
