"""Script to backfill legacy contract rows to the current schema version.

Run after ``alembic upgrade head``:

    python scripts/backfill_contract_schema.py
"""

import asyncio
import logging

from aquacare.domain.models.contract_defaults import ContractDefaults
from aquacare.persistence.backfill import backfill_contract_schema
from aquacare.persistence.database import AsyncSessionLocal, engine
from aquacare.settings import settings

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def main():
    async with AsyncSessionLocal() as db:
        report = await backfill_contract_schema(db, ContractDefaults.from_settings(settings))
    await engine.dispose()

    print(f"Upgraded {report.upgraded} rows")
    if report.unknown_statuses:
        print(f"Unmapped statuses left as-is: {sorted(set(report.unknown_statuses))}")


if __name__ == "__main__":
    asyncio.run(main())
