"""Notification model for admin and portal-user alerts."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Text

from aquacare.core.identifiers import utcnow
from aquacare.persistence.database import Base


class Notification(Base):
    """In-app notification shown in the admin panel or the user portal."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)

    # "admin" for the admin bell, "user" for a portal account
    audience = Column(String(20), nullable=False, index=True)
    account_id = Column(Integer, ForeignKey("web_accounts.id"), nullable=True, index=True)
    customer_id = Column(Integer, ForeignKey("customer_profiles.id"), nullable=True)

    notification_type = Column(String(50), nullable=False, index=True)

    # Content
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    # Contract code, ticket code or order id the notification points at
    ref_id = Column(String(100), nullable=True)
    extra_data = Column(JSON, nullable=True)

    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, audience={self.audience}, type={self.notification_type}, is_read={self.is_read})>"

    def mark_as_read(self) -> None:
        """Mark notification as read."""
        self.is_read = True
        self.read_at = utcnow()


class NotificationAudience:
    """Notification audience constants."""
    ADMIN = "admin"
    USER = "user"


class NotificationType:
    """Notification type constants."""
    SERVICE_REQUEST = "ServiceRequest"
    CONTRACT = "Contract"
    ORDER = "Order"
    ALERT = "Alert"
