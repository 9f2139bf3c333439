"""
Core Module - Configuration.

============================================================
RESPONSIBILITY
============================================================
All runtime configuration for the ingestion pipeline.

- One dataclass per concern
- Values come from environment variables (a .env file is honoured)
- CLI flags may override individual fields afterwards

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from core.constants import MAX_BATCH_SIZE


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


# ============================================================
# DATABASE
# ============================================================

@dataclass
class DatabaseConfig:
    """Relational store connection settings."""

    url: str = "sqlite:///./pipeline.db"
    """SQLAlchemy database URL."""

    pool_size: int = 10
    """Number of connections to keep in pool."""

    max_overflow: int = 20
    """Max connections beyond pool_size."""

    echo: bool = False
    """Log SQL statements."""

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Load configuration from environment variables."""
        return cls(
            url=os.getenv("DATABASE_URL", cls.url),
            pool_size=int(os.getenv("DATABASE_POOL_SIZE", "10")),
            max_overflow=int(os.getenv("DATABASE_MAX_OVERFLOW", "20")),
            echo=_env_bool("DATABASE_ECHO"),
        )


# ============================================================
# BLOB STORE
# ============================================================

@dataclass
class BlobStoreConfig:
    """Object storage settings."""

    backend: str = "local"
    """Either "s3" or "local"."""

    bucket: str = "social-archives"
    """S3 bucket name."""

    region: Optional[str] = None
    """AWS region of the bucket."""

    endpoint_url: Optional[str] = None
    """Custom S3 endpoint (minio, localstack)."""

    local_root: str = "./blobs"
    """Root directory of the local backend."""

    presign_ttl_seconds: int = 3600
    """Default lifetime of presigned URLs."""

    @classmethod
    def from_env(cls) -> "BlobStoreConfig":
        """Load configuration from environment variables."""
        return cls(
            backend=os.getenv("BLOB_BACKEND", "local"),
            bucket=os.getenv("AWS_S3_BUCKET", "social-archives"),
            region=os.getenv("AWS_REGION"),
            endpoint_url=os.getenv("AWS_S3_ENDPOINT_URL"),
            local_root=os.getenv("BLOB_LOCAL_ROOT", "./blobs"),
            presign_ttl_seconds=int(os.getenv("BLOB_PRESIGN_TTL_SECONDS", "3600")),
        )


# ============================================================
# ORCHESTRATOR
# ============================================================

@dataclass
class OrchestratorConfig:
    """Job orchestrator settings."""

    concurrency: int = 4
    """Number of worker coroutines."""

    queue_size: int = 0
    """Maximum queued jobs (0 = unbounded)."""

    job_timeout_seconds: float = 3600.0
    """Upper bound of a single job execution."""

    shutdown_timeout_seconds: float = 30.0
    """Time allowed to drain in-flight jobs on shutdown."""

    scheduler_tick_seconds: float = 1.0
    """How often delayed jobs are checked for their ETA."""

    @classmethod
    def from_env(cls) -> "OrchestratorConfig":
        """Load configuration from environment variables."""
        return cls(
            concurrency=int(os.getenv("WORKER_CONCURRENCY", "4")),
            queue_size=int(os.getenv("WORKER_QUEUE_SIZE", "0")),
            job_timeout_seconds=float(os.getenv("JOB_TIMEOUT_SECONDS", "3600")),
            shutdown_timeout_seconds=float(os.getenv("SHUTDOWN_TIMEOUT_SECONDS", "30")),
            scheduler_tick_seconds=float(os.getenv("SCHEDULER_TICK_SECONDS", "1.0")),
        )


@dataclass
class PollingConfig:
    """Polling bridge delays."""

    initial_delay_seconds: int = 120
    """Delay before the first status check after submission."""

    poll_interval_seconds: int = 600
    """Delay between two status checks."""

    @classmethod
    def from_env(cls) -> "PollingConfig":
        """Load configuration from environment variables."""
        return cls(
            initial_delay_seconds=int(os.getenv("POLL_INITIAL_DELAY_SECONDS", "120")),
            poll_interval_seconds=int(os.getenv("POLL_INTERVAL_SECONDS", "600")),
        )


# ============================================================
# EXTERNAL SERVICES
# ============================================================

@dataclass
class AnalysisServiceConfig:
    """External archive analysis service."""

    base_url: str = "http://localhost:8090"
    api_token: Optional[str] = None
    timeout_seconds: float = 60.0

    @classmethod
    def from_env(cls) -> "AnalysisServiceConfig":
        """Load configuration from environment variables."""
        return cls(
            base_url=os.getenv("ANALYSIS_SERVICE_URL", "http://localhost:8090"),
            api_token=os.getenv("ANALYSIS_SERVICE_TOKEN"),
            timeout_seconds=float(os.getenv("ANALYSIS_SERVICE_TIMEOUT", "60")),
        )


@dataclass
class NotificationConfig:
    """Push notification service."""

    enabled: bool = True
    base_url: str = "https://onesignal.com/api/v1"
    app_id: Optional[str] = None
    api_key: Optional[str] = None
    timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> "NotificationConfig":
        """Load configuration from environment variables."""
        return cls(
            enabled=_env_bool("NOTIFICATION_ENABLED", "true"),
            base_url=os.getenv("NOTIFICATION_URL", "https://onesignal.com/api/v1"),
            app_id=os.getenv("NOTIFICATION_APP_ID"),
            api_key=os.getenv("NOTIFICATION_API_KEY"),
            timeout_seconds=float(os.getenv("NOTIFICATION_TIMEOUT", "10")),
        )


@dataclass
class GeocodingConfig:
    """Reverse geocoding service."""

    base_url: str = "https://nominatim.openstreetmap.org"
    user_agent: str = "social-archive-pipeline"
    timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> "GeocodingConfig":
        """Load configuration from environment variables."""
        return cls(
            base_url=os.getenv("GEOCODING_URL", "https://nominatim.openstreetmap.org"),
            user_agent=os.getenv("GEOCODING_USER_AGENT", "social-archive-pipeline"),
            timeout_seconds=float(os.getenv("GEOCODING_TIMEOUT", "10")),
        )


# ============================================================
# ARCHIVE PROCESSING
# ============================================================

@dataclass
class ArchiveConfig:
    """Download and parse settings."""

    workdir: str = "/tmp"
    """Directory for temporary archive files."""

    download_timeout_seconds: float = 1800.0
    """Timeout of a single archive download."""

    chunk_size: int = 1024 * 1024
    """Read size while streaming archives."""

    stat_batch_size: int = MAX_BATCH_SIZE
    """Batched writer flush threshold."""

    @classmethod
    def from_env(cls) -> "ArchiveConfig":
        """Load configuration from environment variables."""
        return cls(
            workdir=os.getenv("ARCHIVE_WORKDIR", "/tmp"),
            download_timeout_seconds=float(os.getenv("ARCHIVE_DOWNLOAD_TIMEOUT", "1800")),
            chunk_size=int(os.getenv("ARCHIVE_CHUNK_SIZE", str(1024 * 1024))),
            stat_batch_size=int(os.getenv("STAT_BATCH_SIZE", str(MAX_BATCH_SIZE))),
        )


# ============================================================
# AGGREGATE
# ============================================================

@dataclass
class PipelineConfig:
    """Complete pipeline configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    blobs: BlobStoreConfig = field(default_factory=BlobStoreConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    analysis: AnalysisServiceConfig = field(default_factory=AnalysisServiceConfig)
    notification: NotificationConfig = field(default_factory=NotificationConfig)
    geocoding: GeocodingConfig = field(default_factory=GeocodingConfig)
    archive: ArchiveConfig = field(default_factory=ArchiveConfig)

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Load configuration from environment variables."""
        return cls(
            database=DatabaseConfig.from_env(),
            blobs=BlobStoreConfig.from_env(),
            orchestrator=OrchestratorConfig.from_env(),
            polling=PollingConfig.from_env(),
            analysis=AnalysisServiceConfig.from_env(),
            notification=NotificationConfig.from_env(),
            geocoding=GeocodingConfig.from_env(),
            archive=ArchiveConfig.from_env(),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.orchestrator.concurrency < 1:
            errors.append("orchestrator.concurrency must be at least 1")

        if self.orchestrator.shutdown_timeout_seconds <= 0:
            errors.append("orchestrator.shutdown_timeout_seconds must be positive")

        if not 1 <= self.archive.stat_batch_size <= MAX_BATCH_SIZE:
            errors.append(f"archive.stat_batch_size must be between 1 and {MAX_BATCH_SIZE}")

        if self.blobs.backend not in ("s3", "local"):
            errors.append("blobs.backend must be 's3' or 'local'")

        if self.polling.poll_interval_seconds < 1:
            errors.append("polling.poll_interval_seconds must be at least 1")

        if self.log_format not in ("json", "text"):
            errors.append("log_format must be 'json' or 'text'")

        return errors


def load_config(env_file: Optional[str] = None) -> PipelineConfig:
    """
    Load the pipeline configuration.

    Args:
        env_file: Optional path of a .env file (default: search upwards)

    Returns:
        PipelineConfig populated from the environment
    """
    load_dotenv(env_file)
    return PipelineConfig.from_env()
