"""
Tests for task payloads, the stage graph and the pipeline context.
"""

import pytest

from conftest import ACCOUNT
from core.exceptions import TaskPayloadError
from pipeline import STAGE_TYPES, build_stages
from pipeline.graph import PIPELINE_GRAPH, is_allowed_step, next_steps
from pipeline.tasks import (
    PAYLOAD_TYPES,
    TASK_CHECK_ANALYSIS,
    TASK_EXTRACT_POSTS,
    TASK_EXTRACT_SENTIMENT,
    TASK_NOTIFY,
    TASK_PARSE_ARCHIVE,
    CheckAnalysisPayload,
    DownloadArchivePayload,
    ExtractPostsPayload,
    NotificationPayload,
    ParseArchivePayload,
    PrepareExportPayload,
    SubmitArchivePayload,
)


class TestPayloads:
    """Tests for payload validation."""

    @pytest.mark.parametrize("account", ["", None, 42])
    def test_account_number_required(self, account):
        with pytest.raises(TaskPayloadError):
            ParseArchivePayload(account, 1)

    @pytest.mark.parametrize("archive_id", [0, -1, "1", True])
    def test_archive_id_positive_int(self, archive_id):
        with pytest.raises(TaskPayloadError):
            ParseArchivePayload(ACCOUNT, archive_id)

    def test_download_url_scheme(self):
        with pytest.raises(TaskPayloadError):
            DownloadArchivePayload(ACCOUNT, 1, url="ftp://example.com/a.zip")

        payload = DownloadArchivePayload(ACCOUNT, 1, url="https://example.com/a.zip")
        assert payload.TASK == "download_archive"

    def test_required_extras(self):
        with pytest.raises(TaskPayloadError):
            CheckAnalysisPayload(ACCOUNT, 1)
        with pytest.raises(TaskPayloadError):
            PrepareExportPayload(ACCOUNT)
        with pytest.raises(TaskPayloadError):
            NotificationPayload(ACCOUNT, event_kind="")

    def test_payloads_are_frozen_values(self):
        payload = ParseArchivePayload(ACCOUNT, 1)

        assert payload == ParseArchivePayload(ACCOUNT, 1)
        with pytest.raises(AttributeError):
            payload.archive_id = 2

    def test_every_task_has_a_payload_and_stage(self):
        assert set(PAYLOAD_TYPES) == set(PIPELINE_GRAPH)
        assert {stage.TASK for stage in STAGE_TYPES} == set(PAYLOAD_TYPES)
        assert all(stage.PAYLOAD is PAYLOAD_TYPES[stage.TASK] for stage in STAGE_TYPES)


class TestGraph:
    """Tests for the stage graph."""

    def test_polling_may_repeat_itself(self):
        assert is_allowed_step(TASK_CHECK_ANALYSIS, TASK_CHECK_ANALYSIS)
        assert is_allowed_step(TASK_CHECK_ANALYSIS, TASK_EXTRACT_POSTS)

    def test_sentiment_fans_out(self):
        assert TASK_NOTIFY in next_steps(TASK_EXTRACT_SENTIMENT)

    def test_no_shortcuts(self):
        assert not is_allowed_step(TASK_PARSE_ARCHIVE, TASK_EXTRACT_POSTS)
        assert next_steps("unknown") == ()


class TestPipelineContext:
    """Tests for PipelineContext.enqueue_next."""

    def test_allowed_step_enqueued(self, context, enqueuer):
        context.enqueue_next(TASK_PARSE_ARCHIVE, SubmitArchivePayload(ACCOUNT, 1), delay=5)

        assert enqueuer.jobs == [{"payload": SubmitArchivePayload(ACCOUNT, 1), "eta": None, "delay": 5}]

    def test_disallowed_step_rejected(self, context, enqueuer):
        with pytest.raises(ValueError):
            context.enqueue_next(TASK_PARSE_ARCHIVE, ExtractPostsPayload(ACCOUNT, 1))

        assert enqueuer.jobs == []

    def test_unbound_context(self, context):
        context.enqueuer = None

        with pytest.raises(RuntimeError):
            context.enqueue_next(TASK_PARSE_ARCHIVE, SubmitArchivePayload(ACCOUNT, 1))

    def test_build_stages_share_context(self, context):
        stages = build_stages(context)

        assert len(stages) == len(STAGE_TYPES)
        assert all(stage.context is context for stage in stages)
