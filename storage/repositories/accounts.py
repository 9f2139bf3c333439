"""
Account & Archive Repositories.

============================================================
PURPOSE
============================================================
Relational access to accounts and archives.

- AccountRepository: metadata merge, deleting flag, removal
- ArchiveRepository: creation under the one-active-archive rule,
  status updates with affected-row counts, lookups

============================================================
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storage.models.archive import (
    TERMINAL_STATUSES,
    AccountRecord,
    ArchiveRecord,
    ArchiveStatus,
)
from storage.repositories.base import BaseRepository
from storage.repositories.exceptions import ActiveArchiveExistsError


# ============================================================
# ACCOUNTS
# ============================================================

class AccountRepository(BaseRepository[AccountRecord]):
    """Repository for accounts."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, AccountRecord, "AccountRepository")

    def get(self, account_number: str) -> Optional[AccountRecord]:
        return self._get_by_id(account_number)

    def get_or_raise(self, account_number: str) -> AccountRecord:
        return self._get_by_id_or_raise(account_number, id_field="account_number")

    def get_or_create(self, account_number: str) -> AccountRecord:
        account = self.get(account_number)
        if account is None:
            account = self._add(AccountRecord(account_number=account_number, account_metadata={}))
            self._logger.info(f"Created account {account_number}")
        return account

    def update_metadata(self, account_number: str, values: Dict[str, Any]) -> int:
        """
        Merge values into the account metadata map.

        Returns:
            Number of updated accounts (0 or 1)
        """
        account = self.get(account_number)
        if account is None:
            return 0

        merged = dict(account.account_metadata or {})
        merged.update(values)
        # Reassign so the JSON column is marked dirty
        account.account_metadata = merged
        try:
            self._session.flush()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "update_metadata", {"account_number": account_number})
        return 1

    def set_deleting(self, account_number: str, deleting: bool = True) -> int:
        stmt = (
            update(AccountRecord)
            .where(AccountRecord.account_number == account_number)
            .values(deleting=deleting)
        )
        return self._execute(stmt, "set_deleting")

    def delete(self, account_number: str) -> int:
        stmt = delete(AccountRecord).where(AccountRecord.account_number == account_number)
        return self._execute(stmt, "delete")


# ============================================================
# ARCHIVES
# ============================================================

class ArchiveRepository(BaseRepository[ArchiveRecord]):
    """Repository for archives."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, ArchiveRecord, "ArchiveRepository")

    def create(
        self,
        account_number: str,
        archive_type: str = "facebook",
        source_url: Optional[str] = None,
    ) -> ArchiveRecord:
        """
        Create an archive in status `created`.

        Raises:
            ActiveArchiveExistsError: If the account already has an
                archive outside the terminal statuses
        """
        active = self.get_active(account_number)
        if active is not None:
            raise ActiveArchiveExistsError(self._repository_name, account_number, active.id)

        archive = ArchiveRecord(
            account_number=account_number,
            archive_type=archive_type,
            source_url=source_url,
            status=ArchiveStatus.CREATED.value,
        )
        return self._add(archive)

    def get(self, archive_id: int) -> Optional[ArchiveRecord]:
        return self._get_by_id(archive_id)

    def get_or_raise(self, archive_id: int) -> ArchiveRecord:
        return self._get_by_id_or_raise(archive_id)

    def get_active(self, account_number: str) -> Optional[ArchiveRecord]:
        stmt = (
            select(ArchiveRecord)
            .where(ArchiveRecord.account_number == account_number)
            .where(ArchiveRecord.status.notin_(TERMINAL_STATUSES))
        )
        return self._execute_scalar(stmt)

    def list_by_account(
        self,
        account_number: str,
        status: Optional[ArchiveStatus] = None,
    ) -> List[ArchiveRecord]:
        stmt = select(ArchiveRecord).where(ArchiveRecord.account_number == account_number)
        if status is not None:
            stmt = stmt.where(ArchiveRecord.status == status.value)
        return self._execute_query(stmt.order_by(ArchiveRecord.created_at.asc(), ArchiveRecord.id.asc()))

    def update_status(self, archive_id: int, status: ArchiveStatus, **fields: Any) -> int:
        """
        Set the status (and optional extra columns) of an archive.

        Returns:
            Affected row count
        """
        values = dict(fields)
        values["status"] = status.value
        return self.update_fields(archive_id, **values)

    def update_fields(self, archive_id: int, **fields: Any) -> int:
        stmt = update(ArchiveRecord).where(ArchiveRecord.id == archive_id).values(**fields)
        updated = self._execute(stmt, "update_fields")
        self._session.expire_all()
        return updated

    def delete_by_account(self, account_number: str) -> int:
        stmt = delete(ArchiveRecord).where(ArchiveRecord.account_number == account_number)
        return self._execute(stmt, "delete_by_account")
