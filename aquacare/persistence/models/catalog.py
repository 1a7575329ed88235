"""Read-only views of the product and plan catalog.

Catalog CRUD lives in the storefront service; these tables hold the slice of
it the contract core reads (plan templates and plan links per product/part).
"""

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Index, Integer, String

from aquacare.core.identifiers import utcnow
from aquacare.persistence.database import Base


class PlanTemplate(Base):
    """AMC or rental plan template."""

    __tablename__ = "plan_templates"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(20), nullable=False, default="amc")  # amc, rental
    name = Column(String(255), nullable=False)
    price = Column(Float, nullable=False)
    duration_months = Column(Integer, nullable=True)
    service_quota = Column(Integer, nullable=True)
    parts_included = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    image_url = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<PlanTemplate(id={self.id}, kind={self.kind}, name={self.name})>"


class CatalogItem(Base):
    """A purifier (Product) or spare part (Part) that can carry AMC plans."""

    __tablename__ = "catalog_items"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(20), nullable=False, default="Product")  # Product, Part
    name = Column(String(255), nullable=False)
    image_url = Column(String(500), nullable=True)
    plan_ids = Column(JSON, nullable=True)  # [plan_template.id, ...]
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_catalog_items_kind_id", "kind", "id"),
    )

    def __repr__(self) -> str:
        return f"<CatalogItem(id={self.id}, kind={self.kind}, name={self.name})>"
