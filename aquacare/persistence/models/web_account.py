"""Web account model (self-registered portal users)."""

from typing import TYPE_CHECKING

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from aquacare.core.identifiers import utcnow
from aquacare.persistence.database import Base

if TYPE_CHECKING:
    from aquacare.persistence.models.contract import Contract


class WebAccount(Base):
    """Authentication identity owned by the auth service.

    The contract core only reads it: phone and email feed identity resolution
    and ``token_version`` invalidates sessions issued under an older epoch.
    """

    __tablename__ = "web_accounts"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True, unique=True, index=True)
    phone = Column(String(50), nullable=True, index=True)
    hashed_password = Column(String(255), nullable=True)
    token_version = Column(Integer, default=0, nullable=False)
    role = Column(String(20), default="user", nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    contracts = relationship("Contract", back_populates="account")

    @property
    def full_name(self) -> str:
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or (self.email or "").split("@")[0] or "Customer"

    def __repr__(self) -> str:
        return f"<WebAccount(id={self.id}, email={self.email}, phone={self.phone})>"
