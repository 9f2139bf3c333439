"""
Orchestrator - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface of the ingestion pipeline.

- Provides argparse-based CLI
- Loads configuration from a .env file and the environment
- CLI flags override environment settings

============================================================
USAGE
============================================================
python app.py worker --concurrency 8
python app.py worker --submit-url https://www.dropbox.com/s/abc/archive.zip --account 1234
python app.py delete-account --account 1234
python app.py export --account 1234 --export-id 2024-06-01
python app.py init-db

============================================================
"""

import argparse
from typing import List

from core.config import PipelineConfig


COMMAND_WORKER = "worker"
COMMAND_DELETE = "delete-account"
COMMAND_EXPORT = "export"
COMMAND_INIT_DB = "init-db"


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="archive-pipeline",
        description="Social-media archive ingestion pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  worker          - Run the job workers until SIGINT / SIGTERM
  delete-account  - Remove every stored artifact of an account
  export          - Build the data export bundle of an account
  init-db         - Create the relational tables and exit

Examples:
  %(prog)s worker --concurrency 8
  %(prog)s worker --submit-url https://drive.google.com/open?id=XYZ --account 1234
  %(prog)s delete-account --account 1234
        """
    )

    parser.add_argument(
        "command",
        choices=[COMMAND_WORKER, COMMAND_DELETE, COMMAND_EXPORT, COMMAND_INIT_DB],
        help="What to run",
    )

    # --------------------------------------------------------
    # Configuration Options
    # --------------------------------------------------------
    config_group = parser.add_argument_group("Configuration Options")

    config_group.add_argument(
        "--env-file",
        type=str,
        metavar="PATH",
        help="Path of a .env file (default: search upwards from the working directory)",
    )

    config_group.add_argument(
        "--database-url",
        type=str,
        metavar="URL",
        help="SQLAlchemy database URL (overrides DATABASE_URL)",
    )

    # --------------------------------------------------------
    # Worker Options
    # --------------------------------------------------------
    worker_group = parser.add_argument_group("Worker Options")

    worker_group.add_argument(
        "--concurrency",
        type=int,
        metavar="N",
        help="Number of concurrent jobs (overrides WORKER_CONCURRENCY)",
    )

    worker_group.add_argument(
        "--shutdown-timeout",
        type=float,
        metavar="SECONDS",
        help="Time allowed to drain in-flight jobs (overrides SHUTDOWN_TIMEOUT_SECONDS)",
    )

    worker_group.add_argument(
        "--submit-url",
        type=str,
        metavar="URL",
        help="Archive share link submitted when the workers start",
    )

    worker_group.add_argument(
        "--cookie",
        type=str,
        default="",
        help="Cookie header sent with the archive download",
    )

    # --------------------------------------------------------
    # Account Options
    # --------------------------------------------------------
    account_group = parser.add_argument_group("Account Options")

    account_group.add_argument(
        "--account",
        type=str,
        metavar="NUMBER",
        help="Account number",
    )

    account_group.add_argument(
        "--export-id",
        type=str,
        metavar="ID",
        help="Identifier of the export bundle",
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (overrides LOG_LEVEL)",
    )

    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        help="Logging format (overrides LOG_FORMAT)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version="%(prog)s 1.0.0",
    )

    return parser


# ============================================================
# CLI VALIDATION
# ============================================================

def validate_args(args: argparse.Namespace) -> List[str]:
    """
    Validate CLI arguments.

    Args:
        args: Parsed arguments

    Returns:
        List of validation errors
    """
    errors = []

    if args.command in (COMMAND_DELETE, COMMAND_EXPORT) and not args.account:
        errors.append(f"--account is required for {args.command}")

    if args.command == COMMAND_EXPORT and not args.export_id:
        errors.append("--export-id is required for export")

    if args.submit_url and not args.account:
        errors.append("--account is required with --submit-url")

    if args.submit_url and args.command != COMMAND_WORKER:
        errors.append("--submit-url is only valid for the worker command")

    if args.concurrency is not None and args.concurrency < 1:
        errors.append("--concurrency must be at least 1")

    if args.shutdown_timeout is not None and args.shutdown_timeout < 0:
        errors.append("--shutdown-timeout must not be negative")

    return errors


# ============================================================
# CLI CONFIGURATION BUILDER
# ============================================================

def apply_args(config: PipelineConfig, args: argparse.Namespace) -> PipelineConfig:
    """
    Apply CLI overrides on top of the environment configuration.

    Args:
        config: Configuration loaded from the environment
        args: Parsed arguments

    Returns:
        The same configuration, updated in place
    """
    if args.database_url:
        config.database.url = args.database_url
    if args.concurrency is not None:
        config.orchestrator.concurrency = args.concurrency
    if args.shutdown_timeout is not None:
        config.orchestrator.shutdown_timeout_seconds = args.shutdown_timeout
    if args.log_level:
        config.log_level = args.log_level
    if args.log_format:
        config.log_format = args.log_format
    return config


def print_banner(args: argparse.Namespace, config: PipelineConfig) -> None:
    """Print startup banner."""
    print()
    print("=" * 60)
    print("  ARCHIVE INGESTION PIPELINE")
    print("=" * 60)
    print(f"  Command:     {args.command}")
    print(f"  Database:    {config.database.url.split('@')[-1]}")
    print(f"  Blob store:  {config.blobs.backend}")
    print(f"  Workers:     {config.orchestrator.concurrency}")
    print(f"  Log Level:   {config.log_level}")
    if args.account:
        print(f"  Account:     {args.account}")
    print("=" * 60)
    print()


__all__ = [
    "COMMAND_WORKER",
    "COMMAND_DELETE",
    "COMMAND_EXPORT",
    "COMMAND_INIT_DB",
    "create_parser",
    "validate_args",
    "apply_args",
    "print_banner",
]
