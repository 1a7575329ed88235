"""Repository for the plan and catalog item tables."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aquacare.persistence.models.catalog import CatalogItem, PlanTemplate
from aquacare.persistence.repositories.base import BaseRepository


class PlanTemplateRepository(BaseRepository[PlanTemplate]):
    """Read access to AMC and rental plan templates."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(PlanTemplate, session)


class CatalogItemRepository(BaseRepository[CatalogItem]):
    """Read access to purifiers and spare parts."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(CatalogItem, session)

    async def get_item(self, kind: str, item_id: int) -> CatalogItem | None:
        """Catalog item by tagged reference."""
        stmt = select(CatalogItem).where(CatalogItem.kind == kind, CatalogItem.id == item_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
