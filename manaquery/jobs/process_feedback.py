"""
Scheduled job to turn pending feedback into translation rules.

Processes one batch, oldest first. Failed and skipped items are left for
an administrator to re-trigger.
"""

import argparse
import asyncio
import logging
from collections import Counter

from manaquery.config import FEEDBACK_BATCH_SIZE, settings
from manaquery.db.database import async_session_factory
from manaquery.services.rule_learning import (
    FeedbackProcessor,
    RuleSynthesizer,
    get_rule_synthesizer,
)

logger = logging.getLogger(__name__)


async def run_process_feedback(
    batch_size: int = FEEDBACK_BATCH_SIZE,
    synthesizer: RuleSynthesizer | None = None,
) -> dict[str, int]:
    """
    Process up to ``batch_size`` pending feedback items.

    Args:
        batch_size: Max number of items to process
        synthesizer: Rule synthesizer; defaults to Claude when configured

    Returns:
        Dict mapping terminal status to number of items
    """
    async with async_session_factory() as session:
        processor = FeedbackProcessor(session, synthesizer or get_rule_synthesizer())
        outcomes = await processor.process_pending(batch_size)

    counts = Counter(outcome.status.value for outcome in outcomes)
    logger.info("Feedback batch complete: %s", dict(counts) or "nothing pending")
    return dict(counts)


def main() -> None:
    """CLI entry point for feedback processing."""
    parser = argparse.ArgumentParser(description="Process pending search feedback")
    parser.add_argument("--batch-size", type=int, default=FEEDBACK_BATCH_SIZE)
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run_process_feedback(args.batch_size))


if __name__ == "__main__":
    main()
