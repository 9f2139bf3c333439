"""
Pipeline - Reaction Extraction Stage.

Turns stored reactions into derived reaction records and
rolling reaction statistics broken down by reaction type.
"""

import asyncio
import json
import logging
from typing import Any, Dict

from aggregation.aggregator import StatisticsAggregator
from aggregation.models import AggregationItem
from archives.errors import ArchiveErrorCode
from core.constants import SECTION_REACTION, raw_record_key
from pipeline.stage import Stage, failing_as
from pipeline.tasks import TASK_EXTRACT_REACTIONS, ExtractReactionsPayload, ExtractSentimentPayload
from storage.database import transaction_scope
from storage.models.records import ReactionRecord
from storage.repositories.records import RecordRepository


logger = logging.getLogger(__name__)


def reaction_document(reaction: ReactionRecord) -> Dict[str, Any]:
    return {
        "id": str(reaction.id),
        "timestamp": reaction.timestamp,
        "title": reaction.title,
        "actor": reaction.actor,
        "reaction": reaction.reaction,
    }


class ExtractReactionsStage(Stage):
    """Derive reaction records and statistics."""

    TASK = TASK_EXTRACT_REACTIONS
    PAYLOAD = ExtractReactionsPayload

    async def run(self, payload: ExtractReactionsPayload) -> Dict[str, Any]:
        with failing_as(payload.archive_id, ArchiveErrorCode.FAIL_TO_EXTRACT_REACTION):
            result = await asyncio.to_thread(self.extract, payload.account_number)

        self.enqueue_next(ExtractSentimentPayload(payload.account_number, payload.archive_id))
        return result

    def extract(self, account_number: str) -> Dict[str, int]:
        writer = self.context.new_writer()
        aggregator = StatisticsAggregator(SECTION_REACTION, writer, account_number)
        raw_key = raw_record_key(account_number, SECTION_REACTION)
        saved = 0

        with transaction_scope(self.context.session_factory) as session:
            for reaction in RecordRepository(session).reactions_ordered(account_number):
                if not aggregator.add(AggregationItem(timestamp=reaction.timestamp, kind=reaction.reaction)):
                    continue
                writer.save(raw_key, reaction.timestamp, json.dumps(reaction_document(reaction)).encode("utf-8"))
                saved += 1

        stats = len(aggregator.close())
        writer.flush()
        logger.info(f"Extracted {saved} reactions of {account_number} ({aggregator.skipped} duplicates)")
        return {"saved": saved, "skipped": aggregator.skipped, "stats": stats}


__all__ = ["reaction_document", "ExtractReactionsStage"]
