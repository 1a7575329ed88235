"""Notification sink for contract lifecycle events."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from aquacare.core.identifiers import utcnow
from aquacare.persistence.models.notification import (
    Notification,
    NotificationAudience,
    NotificationType,
)

logger = logging.getLogger(__name__)


class ContractEventKind:
    """Lifecycle event kinds the sink understands."""
    CONTRACT_CREATED = "contract.created"
    CONTRACT_RENEWED = "contract.renewed"
    CONTRACT_CANCELLED = "contract.cancelled"
    CONTRACT_EXPIRED = "contract.expired"
    SERVICE_REQUESTED = "service.requested"
    ORDER_CANCELLED = "order.cancelled"


@dataclass
class ContractEvent:
    """Lifecycle event handed to the notification sink."""

    kind: str
    message: str
    contract_id: str | None = None  # contract or ticket code
    customer_id: int | None = None  # CustomerProfile id
    account_id: int | None = None  # WebAccount id
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: utcnow().isoformat() + "Z")


class NotificationSink(ABC):
    """Receiver of lifecycle events. Delivery is fire-and-forget."""

    @abstractmethod
    async def notify(self, event: ContractEvent) -> None:
        """Deliver an event. Must not raise."""
        pass


# kind -> (audience, notification type, title)
_ROUTES: dict[str, list[tuple[str, str, str]]] = {
    ContractEventKind.CONTRACT_CREATED: [
        (NotificationAudience.ADMIN, NotificationType.CONTRACT, "New Contract"),
        (NotificationAudience.USER, NotificationType.CONTRACT, "Contract Activated"),
    ],
    ContractEventKind.CONTRACT_RENEWED: [
        (NotificationAudience.ADMIN, NotificationType.CONTRACT, "Contract Renewed"),
        (NotificationAudience.USER, NotificationType.CONTRACT, "Contract Renewed"),
    ],
    ContractEventKind.CONTRACT_CANCELLED: [
        (NotificationAudience.ADMIN, NotificationType.CONTRACT, "Contract Cancelled"),
        (NotificationAudience.USER, NotificationType.CONTRACT, "Contract Cancelled"),
    ],
    ContractEventKind.CONTRACT_EXPIRED: [
        (NotificationAudience.USER, NotificationType.ALERT, "Contract Expired"),
    ],
    ContractEventKind.SERVICE_REQUESTED: [
        (NotificationAudience.ADMIN, NotificationType.SERVICE_REQUEST, "New Service Request"),
    ],
    ContractEventKind.ORDER_CANCELLED: [
        (NotificationAudience.ADMIN, NotificationType.ORDER, "Order Contracts Cancelled"),
    ],
}


class DatabaseNotificationSink(NotificationSink):
    """Writes events as in-app notifications for the admin bell and the portal.

    Runs after the caller has committed its own work and commits separately,
    so a failed notification never undoes a contract change.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def notify(self, event: ContractEvent) -> None:
        routes = _ROUTES.get(event.kind)
        if not routes:
            logger.info(
                "Contract event has no notification route",
                extra={"event_kind": event.kind, "contract_code": event.contract_id},
            )
            return

        try:
            for audience, notification_type, title in routes:
                if audience == NotificationAudience.USER and event.account_id is None:
                    continue
                self.session.add(
                    Notification(
                        audience=audience,
                        account_id=event.account_id if audience == NotificationAudience.USER else None,
                        customer_id=event.customer_id,
                        notification_type=notification_type,
                        title=title,
                        message=event.message,
                        ref_id=event.contract_id,
                        extra_data=event.data or None,
                    )
                )
            await self.session.commit()
        except Exception as e:
            logger.error(
                f"Failed to record notification: {e}",
                exc_info=True,
                extra={"event_kind": event.kind, "contract_code": event.contract_id},
            )
            await self.session.rollback()


class LoggingNotificationSink(NotificationSink):
    """Sink that only logs events (scripts and local runs)."""

    async def notify(self, event: ContractEvent) -> None:
        logger.info(
            "Contract event",
            extra={
                "event_kind": event.kind,
                "contract_code": event.contract_id,
                "customer_id": event.customer_id,
                "account_id": event.account_id,
                "event_message": event.message,
            },
        )
