"""
Archives - Entity Schemas.

============================================================
PURPOSE
============================================================
Validates the JSON entity files of an archive and turns them into
typed entries.

- JSON Schemas (jsonschema, Draft 7) per entity file
- Mojibake repair: the export writes UTF-8 text as if it were
  Latin-1, so every string is re-encoded as Latin-1 and decoded
  as UTF-8
- Typed entries consumed by the parse stage

============================================================
ENTITY FILES
============================================================
friends.json            {"friends": [{timestamp, name}]}
your_posts_N.json       [{timestamp, title, data, attachments, tags}]
posts_and_comments.json {"reactions": [{timestamp, title, data}]}
comments.json           {"comments": [{timestamp, title, data, attachments}]}

============================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import Draft7Validator


logger = logging.getLogger(__name__)


class EntitySchemaError(ValueError):
    """An entity file does not match its schema."""

    def __init__(self, entity: str, reasons: List[str]):
        self.entity = entity
        self.reasons = reasons
        super().__init__(f"{entity}: " + "; ".join(reasons[:5]))


# ============================================================
# MOJIBAKE
# ============================================================

def fix_mojibake(text: str) -> str:
    """
    Undo UTF-8 text that was decoded as Latin-1.

    Strings that are not representable in Latin-1 are already
    correct and are returned unchanged.
    """
    try:
        return text.encode("latin-1").decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError):
        return text


def repair_strings(value: Any) -> Any:
    """Apply fix_mojibake to every string of a decoded JSON document."""
    if isinstance(value, str):
        return fix_mojibake(value)
    if isinstance(value, list):
        return [repair_strings(v) for v in value]
    if isinstance(value, dict):
        return {k: repair_strings(v) for k, v in value.items()}
    return value


# ============================================================
# JSON SCHEMAS
# ============================================================

_COORDINATE = {
    "type": "object",
    "required": ["latitude", "longitude"],
    "properties": {
        "latitude": {"type": "number"},
        "longitude": {"type": "number"},
    },
}

_ATTACHMENTS = {
    "type": "array",
    "items": {
        "type": "object",
        "required": ["data"],
        "properties": {
            "data": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "media": {
                            "type": "object",
                            "required": ["uri"],
                            "properties": {
                                "uri": {"type": "string"},
                                "creation_timestamp": {"type": "integer"},
                                "thumbnail": {
                                    "type": "object",
                                    "required": ["uri"],
                                    "properties": {"uri": {"type": "string"}},
                                },
                            },
                        },
                        "external_context": {
                            "type": "object",
                            "properties": {
                                "name": {"type": "string"},
                                "source": {"type": "string"},
                                "url": {"type": "string"},
                            },
                        },
                        "place": {
                            "type": "object",
                            "properties": {
                                "name": {"type": "string"},
                                "address": {"type": "string"},
                                "coordinate": _COORDINATE,
                            },
                        },
                        "event": {
                            "type": "object",
                            "required": ["name", "start_timestamp", "end_timestamp"],
                            "properties": {
                                "name": {"type": "string"},
                                "start_timestamp": {"type": "integer"},
                                "end_timestamp": {"type": "integer"},
                            },
                        },
                    },
                },
            },
        },
    },
}

FRIENDS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["friends"],
    "properties": {
        "friends": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["timestamp", "name"],
                "properties": {
                    "timestamp": {"type": "integer"},
                    "name": {"type": "string"},
                    "contact_info": {"type": "string"},
                },
            },
        },
    },
}

POSTS_SCHEMA: Dict[str, Any] = {
    "type": "array",
    "items": {
        "type": "object",
        "required": ["timestamp"],
        "properties": {
            "timestamp": {"type": "integer"},
            "title": {"type": "string"},
            "data": {
                "type": "array",
                "maxItems": 2,
                "items": {
                    "type": "object",
                    "properties": {
                        "post": {"type": "string"},
                        "update_timestamp": {"type": "integer"},
                        "backdated_timestamp": {"type": "integer"},
                    },
                },
            },
            "attachments": _ATTACHMENTS,
            "tags": {"type": "array", "items": {"type": "string"}},
        },
    },
}

REACTIONS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["reactions"],
    "properties": {
        "reactions": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["timestamp", "title"],
                "properties": {
                    "timestamp": {"type": "integer"},
                    "title": {"type": "string"},
                    "data": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": ["reaction"],
                            "properties": {
                                "reaction": {
                                    "type": "object",
                                    "required": ["reaction", "actor"],
                                    "properties": {
                                        "reaction": {"type": "string"},
                                        "actor": {"type": "string"},
                                    },
                                },
                            },
                        },
                    },
                },
            },
        },
    },
}

COMMENTS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["comments"],
    "properties": {
        "comments": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["timestamp", "title"],
                "properties": {
                    "timestamp": {"type": "integer"},
                    "title": {"type": "string"},
                    "data": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": ["comment"],
                            "properties": {
                                "comment": {
                                    "type": "object",
                                    "required": ["timestamp", "comment"],
                                    "properties": {
                                        "timestamp": {"type": "integer"},
                                        "comment": {"type": "string"},
                                        "author": {"type": "string"},
                                    },
                                },
                            },
                        },
                    },
                    "attachments": _ATTACHMENTS,
                },
            },
        },
    },
}

_VALIDATORS: Dict[str, Draft7Validator] = {
    "friends": Draft7Validator(FRIENDS_SCHEMA),
    "posts": Draft7Validator(POSTS_SCHEMA),
    "reactions": Draft7Validator(REACTIONS_SCHEMA),
    "comments": Draft7Validator(COMMENTS_SCHEMA),
}


def validate_entity(entity: str, document: Any) -> None:
    """
    Validate a decoded entity file.

    Raises:
        EntitySchemaError: With every schema violation found
    """
    errors = sorted(_VALIDATORS[entity].iter_errors(document), key=lambda e: list(e.path))
    if errors:
        reasons = [f"{'/'.join(str(p) for p in e.path) or '<root>'}: {e.message}" for e in errors]
        raise EntitySchemaError(entity, reasons)


# ============================================================
# TYPED ENTRIES
# ============================================================

@dataclass(frozen=True)
class FriendEntry:
    name: str
    timestamp: int


@dataclass(frozen=True)
class MediaEntry:
    uri: str
    """Path of the media file inside the archive."""

    index: int
    creation_timestamp: int
    thumbnail_uri: Optional[str] = None


@dataclass(frozen=True)
class PlaceEntry:
    name: str = ""
    address: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass(frozen=True)
class ExternalContext:
    url: str = ""
    name: str = ""
    source: str = ""


@dataclass(frozen=True)
class EventEntry:
    name: str
    start_timestamp: int
    end_timestamp: int


@dataclass
class PostEntry:
    timestamp: int
    title: str = ""
    post: str = ""
    update_timestamp: Optional[int] = None
    media: List[MediaEntry] = field(default_factory=list)
    places: List[PlaceEntry] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    external_context: Optional[ExternalContext] = None
    event: Optional[EventEntry] = None

    @property
    def has_attachments(self) -> bool:
        """Media, place, event or tags force the one-by-one upsert path."""
        return bool(self.media or self.places or self.tags or self.event)


@dataclass(frozen=True)
class ReactionEntry:
    timestamp: int
    title: str
    reaction: str
    actor: str


@dataclass
class CommentEntry:
    timestamp: int
    title: str = ""
    comment: str = ""
    author: str = ""
    media: List[MediaEntry] = field(default_factory=list)
    external_context: Optional[ExternalContext] = None

    @property
    def has_attachments(self) -> bool:
        return bool(self.media)


# ============================================================
# DOCUMENT -> ENTRIES
# ============================================================

def _attachments(
    raw: List[Dict[str, Any]],
    parent_timestamp: int,
) -> Tuple[List[MediaEntry], List[PlaceEntry], Optional[ExternalContext], Optional[EventEntry]]:
    media: List[MediaEntry] = []
    places: List[PlaceEntry] = []
    context = None
    event = None

    for attachment in raw or []:
        for item in attachment.get("data") or []:
            if "media" in item:
                m = item["media"]
                thumbnail = (m.get("thumbnail") or {}).get("uri")
                media.append(MediaEntry(
                    uri=m["uri"],
                    index=len(media),
                    creation_timestamp=m.get("creation_timestamp") or parent_timestamp,
                    thumbnail_uri=thumbnail,
                ))
            if "external_context" in item:
                c = item["external_context"]
                context = ExternalContext(
                    url=c.get("url", ""),
                    name=c.get("name", ""),
                    source=c.get("source", ""),
                )
            if "place" in item:
                p = item["place"]
                coordinate = p.get("coordinate") or {}
                places.append(PlaceEntry(
                    name=p.get("name", ""),
                    address=p.get("address", ""),
                    latitude=coordinate.get("latitude"),
                    longitude=coordinate.get("longitude"),
                ))
            if "event" in item:
                e = item["event"]
                event = EventEntry(e["name"], e["start_timestamp"], e["end_timestamp"])

    return media, places, context, event


def parse_friends(document: Any) -> List[FriendEntry]:
    document = repair_strings(document)
    validate_entity("friends", document)
    return [FriendEntry(name=f["name"], timestamp=f["timestamp"]) for f in document["friends"]]


def parse_posts(document: Any) -> List[PostEntry]:
    document = repair_strings(document)
    validate_entity("posts", document)

    entries = []
    for raw in document:
        entry = PostEntry(timestamp=raw["timestamp"], title=raw.get("title", ""))
        for data in raw.get("data") or []:
            if data.get("post"):
                entry.post = data["post"]
            if data.get("update_timestamp"):
                entry.update_timestamp = data["update_timestamp"]

        media, places, context, event = _attachments(raw.get("attachments"), entry.timestamp)
        entry.media = media
        entry.places = places
        entry.external_context = context
        entry.event = event
        entry.tags = list(raw.get("tags") or [])
        entries.append(entry)
    return entries


def parse_reactions(document: Any) -> List[ReactionEntry]:
    """Reactions; actor and reaction come from the first data item."""
    document = repair_strings(document)
    validate_entity("reactions", document)

    entries = []
    for raw in document["reactions"]:
        data = raw.get("data") or []
        if not data:
            logger.debug(f"Reaction at {raw['timestamp']} has no data, skipped")
            continue
        reaction = data[0]["reaction"]
        entries.append(ReactionEntry(
            timestamp=raw["timestamp"],
            title=raw["title"],
            reaction=reaction["reaction"],
            actor=reaction["actor"],
        ))
    return entries


def parse_comments(document: Any) -> List[CommentEntry]:
    document = repair_strings(document)
    validate_entity("comments", document)

    entries = []
    for raw in document["comments"]:
        entry = CommentEntry(timestamp=raw["timestamp"], title=raw["title"])
        data = raw.get("data") or []
        if data:
            entry.comment = data[0]["comment"]["comment"]
            entry.author = data[0]["comment"].get("author", "")

        media, _, context, _ = _attachments(raw.get("attachments"), entry.timestamp)
        entry.media = media
        entry.external_context = context
        entries.append(entry)
    return entries


__all__ = [
    "EntitySchemaError",
    "fix_mojibake",
    "repair_strings",
    "validate_entity",
    "FriendEntry",
    "MediaEntry",
    "PlaceEntry",
    "ExternalContext",
    "EventEntry",
    "PostEntry",
    "ReactionEntry",
    "CommentEntry",
    "parse_friends",
    "parse_posts",
    "parse_reactions",
    "parse_comments",
]
