"""
Pipeline - Time Metadata Stage.

Records the first and last activity of an account in its
metadata, from the edge posts and reactions known to the
analysis service.
"""

import logging
from typing import Any, Dict, Optional

from pipeline.stage import Stage
from pipeline.tasks import TASK_EXTRACT_TIME_METADATA, TimeMetadataPayload
from storage.database import transaction_scope
from storage.repositories.accounts import AccountRepository


logger = logging.getLogger(__name__)


def _timestamp(record: Optional[Any]) -> Optional[int]:
    return record.timestamp if record is not None else None


class TimeMetadataStage(Stage):
    """Write first/last activity timestamps of an account."""

    TASK = TASK_EXTRACT_TIME_METADATA
    PAYLOAD = TimeMetadataPayload

    async def run(self, payload: TimeMetadataPayload) -> Dict[str, Any]:
        account_number = payload.account_number
        analysis = self.context.analysis

        first_post = _timestamp(await analysis.first_record(account_number, "post"))
        last_post = _timestamp(await analysis.last_record(account_number, "post"))
        first_reaction = _timestamp(await analysis.first_record(account_number, "reaction"))
        last_reaction = _timestamp(await analysis.last_record(account_number, "reaction"))

        metadata: Dict[str, Any] = {}
        if last_post is not None:
            metadata["last_post_timestamp"] = last_post
        if last_reaction is not None:
            metadata["last_reaction_timestamp"] = last_reaction

        lasts = [t for t in (last_post, last_reaction) if t is not None]
        if lasts:
            metadata["last_activity_timestamp"] = max(lasts)
        firsts = [t for t in (first_post, first_reaction) if t is not None]
        if firsts:
            metadata["first_activity_timestamp"] = min(firsts)

        with transaction_scope(self.context.session_factory) as session:
            AccountRepository(session).update_metadata(account_number, metadata)

        logger.info(f"Time metadata of {account_number}: {metadata}")
        return metadata


__all__ = ["TimeMetadataStage"]
