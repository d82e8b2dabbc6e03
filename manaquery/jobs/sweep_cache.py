"""
Scheduled job to remove expired persistent cache rows.

Can be run as a standalone script or called from a scheduler.
"""

import asyncio
import logging
from datetime import UTC, datetime

from manaquery.config import settings
from manaquery.db.database import async_session_factory
from manaquery.db.operations import sweep_expired_cache

logger = logging.getLogger(__name__)


async def run_sweep_cache(now: datetime | None = None) -> int:
    """
    Delete every cache row that has expired.

    Args:
        now: Cut-off time; defaults to the current UTC time

    Returns:
        Number of rows removed
    """
    cutoff = now or datetime.now(UTC)
    async with async_session_factory() as session:
        removed = await sweep_expired_cache(session, cutoff)
        await session.commit()

    logger.info("Cache sweep complete. Removed %d expired rows", removed)
    return removed


def main() -> None:
    """CLI entry point for the cache sweep."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run_sweep_cache())


if __name__ == "__main__":
    main()
