#!/usr/bin/env python3
"""
Archive Ingestion Pipeline - Main Application Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
This is the ONE executable entry point of the pipeline.

- Compatible with PM2 / systemd process management
- Can be started, stopped, and restarted safely
- Handles SIGINT / SIGTERM gracefully
- Wires stores, clients, stages and the job runtime together

============================================================
USAGE
============================================================
Direct execution:
    python app.py worker

With PM2:
    pm2 start app.py --interpreter python --name archive-worker -- worker

Environment-based configuration (see .env.example):
    WORKER_CONCURRENCY=8 python app.py worker

============================================================
"""

import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.engine import Engine

from core.clock import ClockProtocol, SystemClock
from core.config import PipelineConfig, load_config
from core.exceptions import ConfigurationError
from core.logging_setup import setup_logging
from external.analysis import AnalysisClient
from external.geocoding import GeocodingClient
from external.notifications import NotificationClient
from orchestrator.cli import (
    COMMAND_DELETE,
    COMMAND_EXPORT,
    COMMAND_INIT_DB,
    apply_args,
    create_parser,
    print_banner,
    validate_args,
)
from orchestrator.core import JobOrchestrator
from orchestrator.errors import JobErrorHandler
from orchestrator.registry import TaskRegistry
from pipeline import (
    PipelineContext,
    build_stages,
    delete_account_data,
    prepare_data_export,
    presigned_export_url,
    submit_archive_url,
)
from storage.blobs import create_blob_store
from storage.database import create_database_engine, get_session_factory, initialize_database
from storage.timeseries import TimeSeriesStore


logger = logging.getLogger(__name__)


# ============================================================
# WIRING
# ============================================================

@dataclass
class Application:
    """Wired pipeline runtime."""

    config: PipelineConfig
    engine: Engine
    context: PipelineContext
    orchestrator: JobOrchestrator

    async def close(self) -> None:
        """Stop the workers, close the clients and the connection pool."""
        if self.orchestrator.is_running:
            await self.orchestrator.shutdown()
        else:
            await self.context.close()
        self.engine.dispose()


def build_application(
    config: PipelineConfig,
    clock: Optional[ClockProtocol] = None,
    engine: Optional[Engine] = None,
) -> Application:
    """
    Wire the pipeline.

    Args:
        config: Pipeline configuration
        clock: Time source (default: system clock)
        engine: Existing database engine (default: built from config)

    Returns:
        Application with every stage registered and the
        orchestrator bound to the pipeline context

    Raises:
        ConfigurationError: If the configuration does not validate
    """
    errors = config.validate()
    if errors:
        raise ConfigurationError(f"Invalid configuration: {', '.join(errors)}")

    if engine is None:
        engine = create_database_engine(
            config.database.url,
            pool_size=config.database.pool_size,
            max_overflow=config.database.max_overflow,
            echo=config.database.echo,
        )
    initialize_database(engine)
    session_factory = get_session_factory(engine)

    context = PipelineContext(
        config=config,
        session_factory=session_factory,
        timeseries=TimeSeriesStore(session_factory),
        blobs=create_blob_store(config.blobs),
        analysis=AnalysisClient(config.analysis),
        notifications=NotificationClient(config.notification),
        geocoder=GeocodingClient(config.geocoding),
        clock=clock or SystemClock(),
    )

    registry = TaskRegistry()
    for stage in build_stages(context):
        registry.register_stage(stage)

    orchestrator = JobOrchestrator(
        registry,
        config=config.orchestrator,
        error_handler=JobErrorHandler(session_factory),
        clock=context.clock,
    )
    context.bind(orchestrator)
    orchestrator.add_shutdown_callback(context.close)

    logger.info(f"Registered {len(registry)} tasks: {', '.join(registry.names)}")
    return Application(config=config, engine=engine, context=context, orchestrator=orchestrator)


# ============================================================
# COMMANDS
# ============================================================

async def run_worker(app: Application, submit_url: Optional[str], account: Optional[str], cookie: str) -> int:
    await app.orchestrator.start()
    if submit_url:
        archive_id = submit_archive_url(app.context, account, submit_url, cookie=cookie)
        print(f"Submitted archive {archive_id}")

    logger.info("Workers running (press Ctrl+C to stop)...")
    await app.orchestrator.run_forever()
    return 0


async def run_deletion(app: Application, account: str) -> int:
    report = await asyncio.to_thread(delete_account_data, app.context, account)
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.success else 1


async def run_export(app: Application, account: str, export_id: str) -> int:
    key = await asyncio.to_thread(prepare_data_export, app.context, account, export_id)
    print(f"Export stored at {key}")
    print(presigned_export_url(app.context, account, export_id))
    return 0


async def run_application(args, config: PipelineConfig) -> int:
    """
    Run one CLI command.

    Args:
        args: Parsed CLI arguments
        config: Pipeline configuration

    Returns:
        Exit code
    """
    app = build_application(config)

    try:
        if args.command == COMMAND_INIT_DB:
            logger.info("Database initialized")
            return 0
        if args.command == COMMAND_DELETE:
            return await run_deletion(app, args.account)
        if args.command == COMMAND_EXPORT:
            return await run_export(app, args.account, args.export_id)
        return await run_worker(app, args.submit_url, args.account, args.cookie)

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1
    finally:
        await app.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    config = apply_args(load_config(args.env_file), args)
    config_errors = config.validate()
    if config_errors:
        for error in config_errors:
            print(f"Config error: {error}", file=sys.stderr)
        return 1

    setup_logging(config.log_level, config.log_format)

    print_banner(args, config)

    return asyncio.run(run_application(args, config))


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
