"""Database models."""

from aquacare.persistence.models.catalog import CatalogItem, PlanTemplate
from aquacare.persistence.models.contract import (
    Contract,
    ContractKind,
    ContractStatus,
    PaymentStatus,
)
from aquacare.persistence.models.customer_profile import (
    ComplaintTicket,
    CustomerProfile,
    CustomerType,
    ProfileContract,
    TermSource,
    TicketPriority,
    TicketStatus,
)
from aquacare.persistence.models.notification import (
    Notification,
    NotificationAudience,
    NotificationType,
)
from aquacare.persistence.models.service_visit import (
    ServiceVisitEntry,
    VisitCategory,
    VisitStatus,
)
from aquacare.persistence.models.web_account import WebAccount

__all__ = [
    "CatalogItem",
    "PlanTemplate",
    "Contract",
    "ContractKind",
    "ContractStatus",
    "PaymentStatus",
    "ComplaintTicket",
    "CustomerProfile",
    "CustomerType",
    "ProfileContract",
    "TermSource",
    "TicketPriority",
    "TicketStatus",
    "Notification",
    "NotificationAudience",
    "NotificationType",
    "ServiceVisitEntry",
    "VisitCategory",
    "VisitStatus",
    "WebAccount",
]
