"""
Archive Record Repository.

============================================================
PURPOSE
============================================================
Idempotent ingestion and ordered reads of parsed archive records.

============================================================
IDEMPOTENCY RULES
============================================================
- Friends: insert-or-ignore on (owner, name)
- Posts / comments / reactions without attachments: bulk
  insert-or-ignore on (owner, timestamp)
- Posts / comments with attachments: one upsert each; a collision
  on (owner, timestamp) sets conflict_flag instead of failing
- Media: insert-or-update on (timestamp, index, owner, parent id)

============================================================
"""

import uuid
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Type

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storage.models.base import Base
from storage.models.records import (
    CommentMediaRecord,
    CommentRecord,
    FriendRecord,
    PlaceRecord,
    PostMediaRecord,
    PostRecord,
    ReactionRecord,
    TagRecord,
)
from storage.repositories.base import BaseRepository


BULK_INSERT_CHUNK = 500

# Children first so foreign keys never dangle
OWNED_MODELS: Tuple[Type[Base], ...] = (
    TagRecord,
    PostMediaRecord,
    CommentMediaRecord,
    PlaceRecord,
    PostRecord,
    CommentRecord,
    ReactionRecord,
    FriendRecord,
)


class RecordRepository(BaseRepository[PostRecord]):
    """Repository for friends, posts, reactions and comments."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, PostRecord, "RecordRepository")

    # =========================================================
    # FRIENDS
    # =========================================================

    def insert_friends(self, owner: str, friends: Iterable[Tuple[str, int]]) -> int:
        """
        Insert friends, deduplicated by name.

        Args:
            owner: Data owner account number
            friends: (name, timestamp) pairs

        Returns:
            Number of submitted (deduplicated) friends
        """
        seen = set()
        rows = []
        for name, timestamp in friends:
            if name in seen:
                continue
            seen.add(name)
            rows.append({
                "id": uuid.uuid4(),
                "data_owner_id": owner,
                "friend_name": name,
                "timestamp": timestamp,
            })

        self._insert_ignore(FriendRecord, rows, ["data_owner_id", "friend_name"], "insert_friends")
        return len(rows)

    def friend_ids(self, owner: str) -> Dict[str, uuid.UUID]:
        """Map friend name -> friend id for an owner."""
        stmt = select(FriendRecord.friend_name, FriendRecord.id).where(
            FriendRecord.data_owner_id == owner
        )
        try:
            return {name: friend_id for name, friend_id in self._session.execute(stmt)}
        except SQLAlchemyError as e:
            self._handle_db_error(e, "friend_ids", {"owner": owner})
            raise

    # =========================================================
    # POSTS & COMMENTS
    # =========================================================

    def bulk_insert_posts(self, rows: Sequence[Dict[str, Any]]) -> int:
        return self._insert_ignore(PostRecord, rows, ["data_owner_id", "timestamp"], "bulk_insert_posts")

    def bulk_insert_comments(self, rows: Sequence[Dict[str, Any]]) -> int:
        return self._insert_ignore(CommentRecord, rows, ["data_owner_id", "timestamp"], "bulk_insert_comments")

    def bulk_insert_reactions(self, rows: Sequence[Dict[str, Any]]) -> int:
        return self._insert_ignore(ReactionRecord, rows, ["data_owner_id", "timestamp"], "bulk_insert_reactions")

    def upsert_post(self, row: Dict[str, Any]) -> Tuple[uuid.UUID, bool]:
        """
        Insert a post with attachments.

        Returns:
            (post id, conflicted) where conflicted is True when a post
            with the same (owner, timestamp) already existed
        """
        return self._upsert_flagging_conflict(PostRecord, row, "upsert_post")

    def upsert_comment(self, row: Dict[str, Any]) -> Tuple[uuid.UUID, bool]:
        return self._upsert_flagging_conflict(CommentRecord, row, "upsert_comment")

    def upsert_post_media(self, rows: Sequence[Dict[str, Any]]) -> int:
        return self._upsert_media(PostMediaRecord, "post_id", rows)

    def upsert_comment_media(self, rows: Sequence[Dict[str, Any]]) -> int:
        return self._upsert_media(CommentMediaRecord, "comment_id", rows)

    def insert_places(self, rows: Sequence[Dict[str, Any]]) -> int:
        return self._insert_plain(PlaceRecord, rows, "insert_places")

    def insert_tags(self, rows: Sequence[Dict[str, Any]]) -> int:
        return self._insert_plain(TagRecord, rows, "insert_tags")

    # =========================================================
    # ORDERED READS
    # =========================================================

    def posts_ordered(self, owner: str) -> List[PostRecord]:
        """Posts of an owner with media, places and tags, oldest first."""
        stmt = (
            select(PostRecord)
            .where(PostRecord.data_owner_id == owner)
            .order_by(PostRecord.timestamp.asc())
        )
        return self._execute_query(stmt)

    def reactions_ordered(self, owner: str) -> List[ReactionRecord]:
        """Reactions of an owner, oldest first."""
        stmt = (
            select(ReactionRecord)
            .where(ReactionRecord.data_owner_id == owner)
            .order_by(ReactionRecord.timestamp.asc())
        )
        try:
            return list(self._session.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            self._handle_db_error(e, "reactions_ordered", {"owner": owner})
            raise

    def post_time_range(self, owner: str) -> Optional[Tuple[int, int]]:
        """(first, last) post timestamps of an owner, or None."""
        stmt = select(func.min(PostRecord.timestamp), func.max(PostRecord.timestamp)).where(
            PostRecord.data_owner_id == owner
        )
        try:
            first, last = self._session.execute(stmt).one()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "post_time_range", {"owner": owner})
            raise
        if first is None:
            return None
        return int(first), int(last)

    def count_for_owner(self, model: Type[Base], owner: str) -> int:
        return self._count_model(model, owner)

    def export_rows(self, model: Type[Base], owner: str) -> List[Dict[str, Any]]:
        """Column values of every row an owner has in a table."""
        stmt = select(model).where(model.data_owner_id == owner)
        try:
            records = self._session.execute(stmt).scalars().all()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "export_rows", {"owner": owner})
            raise
        return [record.to_row() for record in records]

    # =========================================================
    # DELETION
    # =========================================================

    def delete_for_owner(self, owner: str) -> Dict[str, int]:
        """
        Remove every record of an owner.

        Returns:
            Removed row count per table
        """
        removed = {}
        for model in OWNED_MODELS:
            stmt = delete(model).where(model.data_owner_id == owner)
            removed[model.__tablename__] = self._execute(stmt, "delete_for_owner")
        return removed

    # =========================================================
    # INTERNAL
    # =========================================================

    def _count_model(self, model: Type[Base], owner: str) -> int:
        return self._count(model.data_owner_id == owner, model=model)

    def _insert_ignore(
        self,
        model: Type[Base],
        rows: Sequence[Dict[str, Any]],
        conflict_columns: List[str],
        operation: str,
    ) -> int:
        inserted = 0
        for start in range(0, len(rows), BULK_INSERT_CHUNK):
            chunk = rows[start:start + BULK_INSERT_CHUNK]
            stmt = self._dialect_insert(model).on_conflict_do_nothing(index_elements=conflict_columns)
            try:
                self._session.execute(stmt, list(chunk))
            except SQLAlchemyError as e:
                self._handle_db_error(e, operation)
            inserted += len(chunk)
        return inserted

    def _insert_plain(self, model: Type[Base], rows: Sequence[Dict[str, Any]], operation: str) -> int:
        if not rows:
            return 0
        try:
            self._session.execute(self._dialect_insert(model), list(rows))
        except SQLAlchemyError as e:
            self._handle_db_error(e, operation)
        return len(rows)

    def _upsert_flagging_conflict(
        self,
        model: Type[Base],
        row: Dict[str, Any],
        operation: str,
    ) -> Tuple[uuid.UUID, bool]:
        values = dict(row)
        values.setdefault("id", uuid.uuid4())
        values["conflict_flag"] = False

        stmt = (
            self._dialect_insert(model)
            .values(**values)
            .on_conflict_do_update(
                index_elements=["data_owner_id", "timestamp"],
                set_={"conflict_flag": True},
            )
            .returning(model.id, model.conflict_flag)
        )
        try:
            record_id, conflicted = self._session.execute(stmt).one()
        except SQLAlchemyError as e:
            self._handle_db_error(e, operation, {"timestamp": row.get("timestamp")})
            raise

        if conflicted:
            self._logger.debug(f"{model.__tablename__} conflict at timestamp {row.get('timestamp')}")
        return record_id, bool(conflicted)

    def _upsert_media(
        self,
        model: Type[Base],
        parent_column: str,
        rows: Sequence[Dict[str, Any]],
    ) -> int:
        for row in rows:
            values = dict(row)
            values.setdefault("id", uuid.uuid4())
            insert_stmt = self._dialect_insert(model).values(**values)
            updatable = {
                k: insert_stmt.excluded[k]
                for k in values
                if k not in ("id", "timestamp", "media_index", "data_owner_id", parent_column)
            }
            index_elements = ["timestamp", "media_index", "data_owner_id", parent_column]
            if updatable:
                stmt = insert_stmt.on_conflict_do_update(index_elements=index_elements, set_=updatable)
            else:
                stmt = insert_stmt.on_conflict_do_nothing(index_elements=index_elements)
            try:
                self._session.execute(stmt)
            except SQLAlchemyError as e:
                self._handle_db_error(e, f"upsert_{model.__tablename__}")
        return len(rows)
