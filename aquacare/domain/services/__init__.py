"""Domain services."""

from aquacare.domain.services.contract_factory import ContractContext, ContractFactory
from aquacare.domain.services.contract_service import ContractService
from aquacare.domain.services.identity_resolver import IdentityResolver
from aquacare.domain.services.lifecycle_manager import LifecycleManager, SweepReport
from aquacare.domain.services.service_visit_ledger import ServiceVisitLedger, VisitRecord, VisitRequest
from aquacare.domain.services.sync_bridge import SyncBridge

__all__ = [
    "ContractContext",
    "ContractFactory",
    "ContractService",
    "IdentityResolver",
    "LifecycleManager",
    "ServiceVisitLedger",
    "SweepReport",
    "SyncBridge",
    "VisitRecord",
    "VisitRequest",
]
