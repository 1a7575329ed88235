"""Script to run the contract expiry sweep once (cron fallback for /workers/expiry-sweep)."""

import asyncio
import logging

from aquacare.domain.services.contract_service import ContractService
from aquacare.logging_config import setup_logging
from aquacare.persistence.database import AsyncSessionLocal, engine
from aquacare.settings import settings

setup_logging()
logger = logging.getLogger(__name__)


async def main():
    async with AsyncSessionLocal() as db:
        result = await ContractService.from_session(db, settings).run_expiry_sweep()
    await engine.dispose()

    report = result.unwrap()
    print(f"Expired {len(report.contract_ids)} contracts and {len(report.term_ids)} profile terms")


if __name__ == "__main__":
    asyncio.run(main())
