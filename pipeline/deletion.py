"""
Pipeline - Account Deletion.

============================================================
PURPOSE
============================================================
Removes everything stored for an account.

STEPS (in order, best-effort):
1. Statistics series (section x granularity)
2. Derived raw records (posts, reactions)
3. Blobs under `{account}/`
4. Relational records, then archives, then the account row

A failing step is logged and recorded in the report; the
following steps still run. The account row goes last so a
partially deleted account can be found and deleted again.

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from core.constants import account_prefix, all_account_keys
from pipeline.context import PipelineContext
from pipeline.stage import Stage
from pipeline.tasks import TASK_DELETE_ACCOUNT, DeleteAccountPayload
from storage.database import transaction_scope
from storage.repositories.accounts import AccountRepository, ArchiveRepository
from storage.repositories.records import RecordRepository


logger = logging.getLogger(__name__)


@dataclass
class DeletionReport:
    """Result of an account deletion."""

    account_number: str
    completed: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    """Failed step -> error message."""

    removed: Dict[str, int] = field(default_factory=dict)
    """Removed items per step."""

    @property
    def success(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_number": self.account_number,
            "success": self.success,
            "completed": list(self.completed),
            "failed": dict(self.failed),
            "removed": dict(self.removed),
        }


def _run_step(report: DeletionReport, name: str, step: Callable[[], int]) -> None:
    try:
        removed = step()
    except Exception as e:
        logger.error(f"Deletion of {report.account_number}: step {name} failed: {e}")
        report.failed[name] = f"{type(e).__name__}: {e}"
        return
    report.completed.append(name)
    report.removed[name] = removed
    logger.info(f"Deletion of {report.account_number}: {name} removed {removed}")


def delete_account_data(context: PipelineContext, account_number: str) -> DeletionReport:
    """
    Remove every stored trace of an account.

    Returns:
        DeletionReport listing completed and failed steps
    """
    report = DeletionReport(account_number=account_number)

    for key in all_account_keys(account_number):
        _run_step(report, key, lambda key=key: context.timeseries.delete_all_for_key(key))

    _run_step(report, "blobs", lambda: context.blobs.delete_by_prefix(account_prefix(account_number)))

    def delete_records() -> int:
        with transaction_scope(context.session_factory) as session:
            return sum(RecordRepository(session).delete_for_owner(account_number).values())

    def delete_archives() -> int:
        with transaction_scope(context.session_factory) as session:
            return ArchiveRepository(session).delete_by_account(account_number)

    def delete_account() -> int:
        with transaction_scope(context.session_factory) as session:
            return AccountRepository(session).delete(account_number)

    _run_step(report, "records", delete_records)
    _run_step(report, "archives", delete_archives)
    _run_step(report, "account", delete_account)

    if report.success:
        logger.info(f"Deleted all data of {account_number}")
    else:
        logger.warning(f"Deletion of {account_number} incomplete, failed steps: {sorted(report.failed)}")
    return report


def request_account_deletion(context: PipelineContext, account_number: str) -> Any:
    """Flag an account as deleting and enqueue its deletion."""
    with transaction_scope(context.session_factory) as session:
        AccountRepository(session).set_deleting(account_number)
    if context.enqueuer is None:
        raise RuntimeError("PipelineContext has no enqueuer bound")
    return context.enqueuer.enqueue(DeleteAccountPayload(account_number))


class DeleteAccountStage(Stage):
    TASK = TASK_DELETE_ACCOUNT
    PAYLOAD = DeleteAccountPayload

    async def run(self, payload: DeleteAccountPayload) -> Dict[str, Any]:
        report = await asyncio.to_thread(delete_account_data, self.context, payload.account_number)
        return report.to_dict()


__all__ = [
    "DeletionReport",
    "delete_account_data",
    "request_account_deletion",
    "DeleteAccountStage",
]
