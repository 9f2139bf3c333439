"""
Tests for the CLI and configuration loading.
"""

from unittest.mock import MagicMock

import pytest

from app import build_application
from core.config import PipelineConfig, load_config
from core.exceptions import ConfigurationError
from orchestrator.cli import apply_args, create_parser, validate_args


def parse(*argv):
    return create_parser().parse_args(list(argv))


class TestValidateArgs:
    """Tests for validate_args."""

    def test_worker_needs_nothing(self):
        assert validate_args(parse("worker")) == []

    def test_delete_requires_account(self):
        errors = validate_args(parse("delete-account"))
        assert errors == ["--account is required for delete-account"]

    def test_export_requires_account_and_id(self):
        errors = validate_args(parse("export"))
        assert "--account is required for export" in errors
        assert "--export-id is required for export" in errors

    def test_submit_url_needs_account_and_worker(self):
        errors = validate_args(parse("init-db", "--submit-url", "https://www.dropbox.com/s/abc/a.zip"))
        assert "--account is required with --submit-url" in errors
        assert "--submit-url is only valid for the worker command" in errors

    @pytest.mark.parametrize("flag,value", [("--concurrency", "0"), ("--shutdown-timeout", "-1")])
    def test_bounds(self, flag, value):
        assert len(validate_args(parse("worker", flag, value))) == 1

    def test_unknown_command_rejected(self):
        with pytest.raises(SystemExit):
            parse("serve")


class TestApplyArgs:
    """Tests for apply_args."""

    def test_overrides(self):
        args = parse(
            "worker",
            "--database-url", "sqlite:///other.db",
            "--concurrency", "8",
            "--shutdown-timeout", "5",
            "--log-level", "DEBUG",
            "--log-format", "text",
        )
        config = apply_args(PipelineConfig(), args)

        assert config.database.url == "sqlite:///other.db"
        assert config.orchestrator.concurrency == 8
        assert config.orchestrator.shutdown_timeout_seconds == 5.0
        assert config.log_level == "DEBUG"
        assert config.log_format == "text"

    def test_no_flags_keep_config(self):
        config = apply_args(PipelineConfig(), parse("worker"))

        assert config.orchestrator.concurrency == 4
        assert config.log_format == "json"


class TestLoadConfig:
    """Tests for load_config."""

    def test_reads_env_file(self, tmp_path, monkeypatch):
        for name in ("WORKER_CONCURRENCY", "BLOB_BACKEND", "LOG_LEVEL"):
            # Registered first so the values load_dotenv writes are removed afterwards
            monkeypatch.setenv(name, "")
            monkeypatch.delenv(name)
        env_file = tmp_path / ".env"
        env_file.write_text("WORKER_CONCURRENCY=7\nLOG_LEVEL=WARNING\n")

        config = load_config(str(env_file))

        assert config.orchestrator.concurrency == 7
        assert config.log_level == "WARNING"
        assert config.validate() == []

    def test_environment_wins_over_env_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WORKER_CONCURRENCY", "3")
        env_file = tmp_path / ".env"
        env_file.write_text("WORKER_CONCURRENCY=7\n")

        assert load_config(str(env_file)).orchestrator.concurrency == 3

    def test_validate_reports_bad_values(self):
        config = PipelineConfig()
        config.orchestrator.concurrency = 0
        config.blobs.backend = "ftp"

        errors = config.validate()

        assert "orchestrator.concurrency must be at least 1" in errors
        assert "blobs.backend must be 's3' or 'local'" in errors


class TestBuildApplication:
    """Tests for build_application."""

    def test_invalid_configuration_rejected(self):
        config = PipelineConfig()
        config.log_format = "xml"
        engine = MagicMock()

        with pytest.raises(ConfigurationError) as exc_info:
            build_application(config, engine=engine)

        assert "log_format must be 'json' or 'text'" in exc_info.value.message
        assert not exc_info.value.is_retryable
        engine.connect.assert_not_called()
