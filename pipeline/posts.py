"""
Pipeline - Post Extraction Stage.

============================================================
PURPOSE
============================================================
Turns stored posts into derived post records and rolling post
statistics, and locates the account from its last geotagged
post.

POST TYPES:
- media:  media attached
- link:   external context URL
- update: text only
- (skipped otherwise)

============================================================
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from aggregation.aggregator import StatisticsAggregator
from aggregation.models import AggregationItem
from archives.errors import ArchiveErrorCode
from core.constants import SECTION_POST, raw_record_key
from pipeline.stage import Stage, failing_as
from pipeline.tasks import TASK_EXTRACT_POSTS, ExtractPostsPayload, ExtractReactionsPayload
from storage.database import transaction_scope
from storage.models.records import PostMediaRecord, PostRecord
from storage.repositories.accounts import AccountRepository
from storage.repositories.records import RecordRepository


logger = logging.getLogger(__name__)


POST_TYPE_MEDIA = "media"
POST_TYPE_LINK = "link"
POST_TYPE_UPDATE = "update"

VIDEO_EXTENSION = ".mp4"


def post_type(post: PostRecord) -> Optional[str]:
    if post.media_attached:
        return POST_TYPE_MEDIA
    if post.external_context_url:
        return POST_TYPE_LINK
    if post.post:
        return POST_TYPE_UPDATE
    return None


def media_document(media: PostMediaRecord) -> Dict[str, Any]:
    return {
        "type": "video" if media.filename_extension == VIDEO_EXTENSION else "photo",
        "source": media.media_uri,
        "thumbnail": media.thumbnail_uri or media.media_uri,
    }


def post_document(post: PostRecord, kind: str) -> Dict[str, Any]:
    """Derived post record stored in the time-series store."""
    location = None
    if post.places:
        place = post.places[0]
        location = {
            "name": place.name,
            "address": place.address,
            "coordinate": {"latitude": place.latitude, "longitude": place.longitude},
            "created_at": post.timestamp,
        }

    return {
        "id": str(post.id),
        "timestamp": post.timestamp,
        "type": kind,
        "post": post.post,
        "title": post.title,
        "url": post.external_context_url,
        "media": [media_document(m) for m in post.media_items] if kind == POST_TYPE_MEDIA else [],
        "location": location,
        "tags": [{"id": str(t.friend_id), "name": t.friend_name} for t in post.tags],
    }


@dataclass
class PostExtraction:
    """Outcome of the synchronous part of the stage."""

    saved: int = 0
    skipped: int = 0
    stats: int = 0
    last_coordinate: Optional[Tuple[float, float]] = None


class ExtractPostsStage(Stage):
    """Derive post records and statistics."""

    TASK = TASK_EXTRACT_POSTS
    PAYLOAD = ExtractPostsPayload

    async def run(self, payload: ExtractPostsPayload) -> Dict[str, Any]:
        with failing_as(payload.archive_id, ArchiveErrorCode.FAIL_TO_EXTRACT_POST):
            result = await asyncio.to_thread(self.extract, payload.account_number)

            metadata: Dict[str, Any] = {}
            if result.last_coordinate is not None:
                latitude, longitude = result.last_coordinate
                logger.info(f"Locating {payload.account_number} from its last geotagged post")
                metadata["original_location"] = await self.context.geocoder.reverse_geocode(latitude, longitude)

            with transaction_scope(self.context.session_factory) as session:
                AccountRepository(session).update_metadata(payload.account_number, metadata)

        self.enqueue_next(ExtractReactionsPayload(payload.account_number, payload.archive_id))
        return {"saved": result.saved, "skipped": result.skipped, "stats": result.stats}

    def extract(self, account_number: str) -> PostExtraction:
        result = PostExtraction()
        writer = self.context.new_writer()
        aggregator = StatisticsAggregator(SECTION_POST, writer, account_number)
        raw_key = raw_record_key(account_number, SECTION_POST)

        with transaction_scope(self.context.session_factory) as session:
            posts: List[PostRecord] = RecordRepository(session).posts_ordered(account_number)

            for post in posts:
                kind = post_type(post)
                if kind is None:
                    continue

                item = AggregationItem(
                    timestamp=post.timestamp,
                    kind=kind,
                    friends=[t.friend_name for t in post.tags],
                    places=[post.places[0].name] if post.places and post.places[0].name else [],
                )
                if not aggregator.add(item):
                    result.skipped += 1
                    continue

                document = post_document(post, kind)
                writer.save(raw_key, post.timestamp, json.dumps(document).encode("utf-8"))
                result.saved += 1

                if post.places:
                    place = post.places[0]
                    if place.latitude is not None and place.longitude is not None:
                        result.last_coordinate = (place.latitude, place.longitude)

        result.stats = len(aggregator.close())
        writer.flush()
        logger.info(
            f"Extracted {result.saved} posts of {account_number} "
            f"({result.skipped} duplicates, {result.stats} stats)"
        )
        return result


__all__ = ["post_type", "post_document", "PostExtraction", "ExtractPostsStage"]
