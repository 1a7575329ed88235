"""Plan and product catalog collaborators.

The contract core only needs two lookups from the catalog: a plan template by
id and a product by tagged reference. Both are behind small interfaces so the
storefront's catalog can be swapped in; the SQL implementations read the
``plan_templates`` and ``catalog_items`` tables.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from aquacare.persistence.models.catalog import CatalogItem, PlanTemplate
from aquacare.persistence.repositories.catalog_repository import (
    CatalogItemRepository,
    PlanTemplateRepository,
)


class ProductKind:
    """Tag of a ProductRef."""
    PRODUCT = "Product"
    PART = "Part"

    ALL = (PRODUCT, PART)


@dataclass(frozen=True)
class ProductRef:
    """Tagged reference to a purifier or a spare part."""

    kind: str
    id: int

    def __post_init__(self) -> None:
        if self.kind not in ProductKind.ALL:
            raise ValueError(f"Unknown product kind: {self.kind}")


@dataclass
class PlanInfo:
    """Plan template as seen by the contract core."""

    id: int
    kind: str
    name: str
    price: float
    duration_months: int | None = None
    service_quota: int | None = None
    parts_included: bool = False
    is_active: bool = True
    image_url: str | None = None


@dataclass
class ProductInfo:
    """Catalog product or part as seen by the contract core."""

    ref: ProductRef
    name: str
    image_url: str | None = None
    plan_ids: list[int] = field(default_factory=list)
    is_active: bool = True


class PlanCatalog(ABC):
    """Lookup of AMC and rental plan templates."""

    @abstractmethod
    async def get_plan(self, plan_id: int) -> PlanInfo | None:
        """Return the plan template, or None if it does not exist."""
        pass


class ProductCatalog(ABC):
    """Single polymorphic lookup over products and parts."""

    @abstractmethod
    async def get(self, ref: ProductRef) -> ProductInfo | None:
        """Return the product or part the reference points at."""
        pass


def _plan_info(plan: PlanTemplate) -> PlanInfo:
    return PlanInfo(
        id=plan.id,
        kind=plan.kind,
        name=plan.name,
        price=plan.price,
        duration_months=plan.duration_months,
        service_quota=plan.service_quota,
        parts_included=bool(plan.parts_included),
        is_active=bool(plan.is_active),
        image_url=plan.image_url,
    )


def _product_info(item: CatalogItem) -> ProductInfo:
    return ProductInfo(
        ref=ProductRef(kind=item.kind, id=item.id),
        name=item.name,
        image_url=item.image_url,
        plan_ids=[int(p) for p in (item.plan_ids or [])],
        is_active=bool(item.is_active),
    )


class SqlPlanCatalog(PlanCatalog):
    """PlanCatalog backed by the plan_templates table."""

    def __init__(self, session: AsyncSession) -> None:
        self.repo = PlanTemplateRepository(session)

    async def get_plan(self, plan_id: int) -> PlanInfo | None:
        plan = await self.repo.get_by_id(plan_id)
        return _plan_info(plan) if plan else None


class SqlProductCatalog(ProductCatalog):
    """ProductCatalog backed by the catalog_items table."""

    def __init__(self, session: AsyncSession) -> None:
        self.repo = CatalogItemRepository(session)

    async def get(self, ref: ProductRef) -> ProductInfo | None:
        item = await self.repo.get_item(ref.kind, ref.id)
        return _product_info(item) if item else None
