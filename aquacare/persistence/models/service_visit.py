"""Service visit history entries recorded against a contract."""

from typing import TYPE_CHECKING

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from aquacare.core.identifiers import utcnow
from aquacare.persistence.database import Base

if TYPE_CHECKING:
    from aquacare.persistence.models.contract import Contract


class VisitCategory:
    """Visit category constants."""
    INSTALLATION = "Installation"
    REGULAR_SERVICE = "Regular Service"
    REPAIR = "Repair"
    FILTER_CHANGE = "Filter Change"
    OTHER = "Other"

    ALL = (INSTALLATION, REGULAR_SERVICE, REPAIR, FILTER_CHANGE, OTHER)


class VisitStatus:
    """Visit dispatch status constants."""
    PENDING_ASSIGNMENT = "Pending Assignment"
    ASSIGNED = "Assigned"
    COMPLETED = "Completed"


class ServiceVisitEntry(Base):
    """One consumed service visit. Rows are appended, never deleted.

    ``ticket_code`` binds the entry to the ComplaintTicket mirrored on the
    customer profile; it is set once and never reassigned.
    """

    __tablename__ = "service_visits"

    id = Column(Integer, primary_key=True, index=True)
    contract_id = Column(Integer, ForeignKey("contracts.id"), nullable=False, index=True)

    visit_date = Column(DateTime, default=utcnow, nullable=False)
    category = Column(String(50), default=VisitCategory.REGULAR_SERVICE, nullable=False)
    status = Column(String(30), default=VisitStatus.PENDING_ASSIGNMENT, nullable=False)
    technician_name = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    ticket_code = Column(String(64), nullable=True)
    next_due_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_service_visits_ticket_code", "ticket_code"),
        Index("ix_service_visits_contract_date", "contract_id", "visit_date"),
    )

    # Relationships
    contract = relationship("Contract", back_populates="service_history")

    def __repr__(self) -> str:
        return f"<ServiceVisitEntry(id={self.id}, contract_id={self.contract_id}, ticket={self.ticket_code}, status={self.status})>"
