"""Repository implementations."""

from aquacare.persistence.repositories.base import BaseRepository
from aquacare.persistence.repositories.catalog_repository import CatalogItemRepository, PlanTemplateRepository
from aquacare.persistence.repositories.contract_repository import ContractRepository
from aquacare.persistence.repositories.customer_profile_repository import CustomerProfileRepository
from aquacare.persistence.repositories.notification_repository import NotificationRepository
from aquacare.persistence.repositories.service_visit_repository import ServiceVisitRepository
from aquacare.persistence.repositories.web_account_repository import WebAccountRepository

__all__ = [
    "BaseRepository",
    "CatalogItemRepository",
    "PlanTemplateRepository",
    "ContractRepository",
    "CustomerProfileRepository",
    "NotificationRepository",
    "ServiceVisitRepository",
    "WebAccountRepository",
]
