"""
Tests for the analysis submit and polling stages.
"""

import os

import pytest

from conftest import ACCOUNT
from core.exceptions import ExternalServiceError, ValidationError
from external.analysis import TASK_FAILED, TASK_FINISHED, TASK_INTERRUPTED
from pipeline.polling import CheckAnalysisStage, SubmitArchiveStage
from pipeline.tasks import CheckAnalysisPayload, ExtractPostsPayload, SubmitArchivePayload


class TestSubmitArchiveStage:
    """Tests for SubmitArchiveStage."""

    @pytest.mark.asyncio
    async def test_submits_and_schedules_first_check(
        self, context, stored_archive, enqueuer, load_archive, pipeline_config
    ):
        result = await SubmitArchiveStage(context)(SubmitArchivePayload(ACCOUNT, stored_archive))

        assert result == {"task_id": "task-1"}
        account, path = context.analysis.submit.await_args.args
        assert account == ACCOUNT
        assert not os.path.exists(path)

        assert load_archive(stored_archive).analysis_task_id == "task-1"
        assert enqueuer.jobs == [{
            "payload": CheckAnalysisPayload(ACCOUNT, stored_archive, task_id="task-1"),
            "eta": None,
            "delay": 120,
        }]

    @pytest.mark.asyncio
    async def test_registers_data_owner_first(self, context, stored_archive):
        calls = []
        context.analysis.register_data_owner.side_effect = lambda account: calls.append("register")
        context.analysis.submit.side_effect = lambda account, path: calls.append("submit") or "task-1"

        await SubmitArchiveStage(context)(SubmitArchivePayload(ACCOUNT, stored_archive))

        context.analysis.register_data_owner.assert_awaited_once_with(ACCOUNT)
        assert calls == ["register", "submit"]

    @pytest.mark.asyncio
    async def test_refused_registration_still_submits(self, context, stored_archive):
        context.analysis.register_data_owner.side_effect = ExternalServiceError(
            "POST /data_owners/ failed: 400", service="analysis_service", status_code=400
        )

        result = await SubmitArchiveStage(context)(SubmitArchivePayload(ACCOUNT, stored_archive))

        assert result == {"task_id": "task-1"}
        context.analysis.submit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_submit_failure_propagates(self, context, stored_archive, enqueuer):
        context.analysis.submit.side_effect = ConnectionError("service down")

        with pytest.raises(ConnectionError):
            await SubmitArchiveStage(context)(SubmitArchivePayload(ACCOUNT, stored_archive))

        assert enqueuer.jobs == []


class TestCheckAnalysisStage:
    """Tests for CheckAnalysisStage."""

    @pytest.fixture
    def payload(self, archive_id):
        return CheckAnalysisPayload(ACCOUNT, archive_id, task_id="task-1")

    @pytest.mark.asyncio
    async def test_finished_starts_extraction(self, context, payload, enqueuer, archive_id):
        context.analysis.status.return_value = TASK_FINISHED

        result = await CheckAnalysisStage(context)(payload)

        assert result == {"status": TASK_FINISHED}
        assert enqueuer.payloads == [ExtractPostsPayload(ACCOUNT, archive_id)]
        assert enqueuer.jobs[0]["delay"] is None

    @pytest.mark.asyncio
    async def test_failed_rejects_archive(self, context, payload, enqueuer):
        context.analysis.status.return_value = TASK_FAILED

        with pytest.raises(ValidationError) as exc_info:
            await CheckAnalysisStage(context)(payload)

        assert exc_info.value.code == "FAIL_TO_PARSE_ARCHIVE"
        assert enqueuer.jobs == []

    @pytest.mark.asyncio
    async def test_interrupted_stops_polling(self, context, payload, enqueuer):
        context.analysis.status.return_value = TASK_INTERRUPTED

        await CheckAnalysisStage(context)(payload)

        assert enqueuer.jobs == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["PENDING", "STARTED", "RETRY"])
    async def test_other_status_polls_again(self, context, payload, enqueuer, status):
        context.analysis.status.return_value = status

        await CheckAnalysisStage(context)(payload)

        assert enqueuer.jobs == [{"payload": payload, "eta": None, "delay": 600}]
