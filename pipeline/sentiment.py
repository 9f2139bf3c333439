"""
Pipeline - Sentiment Extraction Stage.

============================================================
PURPOSE
============================================================
Builds weekly sentiment statistics from the scores of the
analysis service, then completes the archive.

WEEKS:
    offset = abs_week(first post)
    while offset < abs_week(last post) + 7 days:
        score = sentiment of the 7 days ending at offset + 7d - 1
        offset += 7 days

The quantity of a sentiment stat is the mean score of its
period, rounded half away from zero.

============================================================
"""

import logging
from typing import Any, Dict

from aggregation.aggregator import StatisticsAggregator
from aggregation.models import AggregationItem
from archives.errors import ArchiveErrorCode
from core.constants import SECTION_SENTIMENT
from core.periods import SECONDS_PER_WEEK, abs_week
from external.notifications import EVENT_ARCHIVE_PROCESSED
from pipeline.stage import Stage, failing_as
from pipeline.tasks import (
    TASK_EXTRACT_SENTIMENT,
    ExtractSentimentPayload,
    NotificationPayload,
    TimeMetadataPayload,
)


logger = logging.getLogger(__name__)


class ExtractSentimentStage(Stage):
    """Derive weekly sentiment statistics and mark the archive processed."""

    TASK = TASK_EXTRACT_SENTIMENT
    PAYLOAD = ExtractSentimentPayload

    async def run(self, payload: ExtractSentimentPayload) -> Dict[str, Any]:
        account_number = payload.account_number
        weeks = 0

        with failing_as(payload.archive_id, ArchiveErrorCode.FAIL_TO_EXTRACT_SENTIMENT):
            first = await self.context.analysis.first_record(account_number, "post")
            if first is None:
                logger.info(f"{account_number} has no post, no sentiment to calculate")
            else:
                last = await self.context.analysis.last_record(account_number, "post")
                if last is None:
                    raise ValueError("last post cannot be missing when a first post exists")

                writer = self.context.new_writer()
                aggregator = StatisticsAggregator(SECTION_SENTIMENT, writer, account_number)

                offset = abs_week(first.timestamp)
                end = abs_week(last.timestamp) + SECONDS_PER_WEEK
                while offset < end:
                    score = await self.context.analysis.sentiment_for_week(
                        account_number, offset + SECONDS_PER_WEEK - 1
                    )
                    aggregator.add(AggregationItem(timestamp=offset, value=score))
                    offset += SECONDS_PER_WEEK
                    weeks += 1

                aggregator.close()
                writer.flush()
                logger.info(f"Extracted {weeks} weeks of sentiment for {account_number}")

        self.context.state_machine(payload.archive_id).mark_processed()

        self.enqueue_next(TimeMetadataPayload(account_number))
        self.enqueue_next(NotificationPayload(account_number, event_kind=EVENT_ARCHIVE_PROCESSED))
        return {"weeks": weeks}


__all__ = ["ExtractSentimentStage"]
