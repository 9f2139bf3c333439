"""
Archives - Archive Decoder.

============================================================
PURPOSE
============================================================
Reads a downloaded archive (zip) and yields typed entity batches.

ORDER:
    friends -> posts -> reactions -> comments -> media -> files

Friends come first because tags on posts and comments are
resolved by friend name.

============================================================
ARCHIVE LAYOUT
============================================================
friends/friends.json
posts/your_posts_1.json, posts/your_posts_2.json, ...
likes_and_reactions/posts_and_comments.json
comments/comments.json
photos_and_videos/...        uploaded as-is
files/...                    uploaded as-is

============================================================
"""

import json
import logging
import re
import zipfile
from dataclasses import dataclass, field
from typing import IO, Any, Callable, Iterable, Iterator, List, Optional, Pattern

from archives.schema import (
    parse_comments,
    parse_friends,
    parse_posts,
    parse_reactions,
)
from core.constants import REQUIRED_ARCHIVE_DIRECTORIES


logger = logging.getLogger(__name__)


class InvalidArchiveShapeError(ValueError):
    """The archive is not a zip or lacks required folders."""

    def __init__(self, missing: List[str], message: Optional[str] = None):
        self.missing = missing
        super().__init__(message or f"archive is missing required folders: {', '.join(missing)}")


# ============================================================
# ENTITY PATTERNS
# ============================================================

@dataclass(frozen=True)
class EntityPattern:
    """Where an entity kind lives inside the archive."""

    name: str
    location: str
    regexp: Optional[Pattern] = None
    parser: Optional[Callable[[Any], List[Any]]] = None

    @property
    def is_structured(self) -> bool:
        return self.parser is not None


FRIENDS_PATTERN = EntityPattern("friends", "friends", re.compile(r"^friends\.json$"), parse_friends)
POSTS_PATTERN = EntityPattern("posts", "posts", re.compile(r"^your_posts(_[0-9]+)?\.json$"), parse_posts)
REACTIONS_PATTERN = EntityPattern(
    "reactions", "likes_and_reactions", re.compile(r"^posts_and_comments\.json$"), parse_reactions
)
COMMENTS_PATTERN = EntityPattern("comments", "comments", re.compile(r"^comments\.json$"), parse_comments)
MEDIA_PATTERN = EntityPattern("media", "photos_and_videos")
FILES_PATTERN = EntityPattern("files", "files")

PATTERNS = (
    FRIENDS_PATTERN,
    POSTS_PATTERN,
    REACTIONS_PATTERN,
    COMMENTS_PATTERN,
    MEDIA_PATTERN,
    FILES_PATTERN,
)


@dataclass
class EntityBatch:
    """Entries decoded from one entity file."""

    kind: str
    source: str
    entries: List[Any] = field(default_factory=list)


# ============================================================
# SHAPE VALIDATION
# ============================================================

def missing_directories(names: Iterable[str]) -> List[str]:
    """
    Required top-level folders absent from a list of zip entry names.

    A folder counts as present when the zip has its directory entry
    or any entry below it.
    """
    present = set()
    for name in names:
        for required in REQUIRED_ARCHIVE_DIRECTORIES:
            if name == required or name.startswith(required):
                present.add(required)
    return [d for d in REQUIRED_ARCHIVE_DIRECTORIES if d not in present]


def validate_archive_shape(path: str) -> None:
    """
    Check that a file is a zip with every required folder.

    Raises:
        InvalidArchiveShapeError: If the check fails
    """
    if not zipfile.is_zipfile(path):
        raise InvalidArchiveShapeError(list(REQUIRED_ARCHIVE_DIRECTORIES), "file is not a zip archive")

    try:
        with zipfile.ZipFile(path) as archive:
            missing = missing_directories(archive.namelist())
    except zipfile.BadZipFile as e:
        raise InvalidArchiveShapeError(list(REQUIRED_ARCHIVE_DIRECTORIES), f"corrupted zip archive: {e}") from e

    if missing:
        raise InvalidArchiveShapeError(missing)


def is_valid_archive(path: str) -> bool:
    try:
        validate_archive_shape(path)
    except InvalidArchiveShapeError:
        return False
    return True


# ============================================================
# DECODER
# ============================================================

class ArchiveDecoder:
    """
    Typed access to the content of an archive.

    Usage:
        with ArchiveDecoder(path) as decoder:
            decoder.validate_shape()
            for batch in decoder.decode(POSTS_PATTERN):
                ...
    """

    def __init__(self, path: str):
        self._path = path
        self._zip = zipfile.ZipFile(path)

    def __enter__(self) -> "ArchiveDecoder":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self._zip.close()

    def validate_shape(self) -> None:
        missing = missing_directories(self._zip.namelist())
        if missing:
            raise InvalidArchiveShapeError(missing)

    def select_files(self, pattern: EntityPattern) -> List[str]:
        """Entity files directly inside the pattern location."""
        prefix = pattern.location + "/"
        selected = []
        for name in self._zip.namelist():
            if not name.startswith(prefix) or name.endswith("/"):
                continue
            basename = name[len(prefix):]
            if "/" in basename:
                continue
            if pattern.regexp is None or pattern.regexp.search(basename):
                selected.append(name)
        return sorted(selected)

    def load_json(self, name: str) -> Any:
        with self._zip.open(name) as fh:
            return json.load(fh)

    def decode(self, pattern: EntityPattern) -> Iterator[EntityBatch]:
        """
        Decode every file of a structured entity kind.

        Raises:
            EntitySchemaError: If a file does not match its schema
            ValueError: If a file is not valid JSON
        """
        for name in self.select_files(pattern):
            entries = pattern.parser(self.load_json(name))
            logger.debug(f"Decoded {len(entries)} {pattern.name} from {name}")
            yield EntityBatch(kind=pattern.name, source=name, entries=entries)

    def raw_files(self, pattern: EntityPattern) -> List[str]:
        """Every file (recursively) under the pattern location."""
        prefix = pattern.location + "/"
        return sorted(
            name for name in self._zip.namelist()
            if name.startswith(prefix) and not name.endswith("/")
        )

    def open_member(self, name: str) -> IO[bytes]:
        return self._zip.open(name)


__all__ = [
    "InvalidArchiveShapeError",
    "EntityPattern",
    "EntityBatch",
    "PATTERNS",
    "FRIENDS_PATTERN",
    "POSTS_PATTERN",
    "REACTIONS_PATTERN",
    "COMMENTS_PATTERN",
    "MEDIA_PATTERN",
    "FILES_PATTERN",
    "missing_directories",
    "validate_archive_shape",
    "is_valid_archive",
    "ArchiveDecoder",
]
