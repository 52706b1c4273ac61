"""Entry point that wires the engine together and runs a migration."""

import asyncio
from typing import Iterable, Optional, Sequence

from ..models.config import MigrationConfig
from ..models.migration import MigrationTask, ResolverSpec
from ..utils.logger import MigrationLogger
from .checkpoint import CheckpointStore
from .orchestrator import TaskOrchestrator
from .reference_cache import ReferenceCache, ResolverRegistry


async def report_progress(orchestrator: TaskOrchestrator, interval: float) -> None:
    """Log a progress line every ``interval`` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        progress = orchestrator.get_progress()
        orchestrator.logger.info(
            f"Progress: {progress.completed_tables}/{progress.total_tables} tables complete, "
            f"{progress.total_rows} total rows processed, "
            f"{progress.active_batches} active batches, "
            f"{progress.queued_batches} queued batches"
        )


async def run_migration(
    config: MigrationConfig,
    tasks: Sequence[MigrationTask],
    source=None,
    destination=None,
    resolver_specs: Iterable[ResolverSpec] = (),
    table_resolvers: Optional[dict] = None,
    logger: Optional[MigrationLogger] = None,
    cancel_event: Optional[asyncio.Event] = None,
    fresh: bool = False,
) -> TaskOrchestrator:
    """Run ``tasks`` to completion, raising on the first failed priority group.

    Source and destination default to the ODBC reader and the Supabase
    writer built from ``config``. Returns the orchestrator so callers can
    inspect the final progress.
    """
    logger = logger or MigrationLogger(config.log_file)

    if source is None:
        from .odbc_source import OdbcSourceReader
        source = OdbcSourceReader(config.source, logger)
    if destination is None:
        from .supabase_writer import SupabaseDestinationWriter
        destination = SupabaseDestinationWriter(config.supabase, logger)

    checkpoint_path = None if config.dry_run else config.checkpoint_file
    store = CheckpointStore(checkpoint_path, logger)
    if fresh:
        await store.clear()
    else:
        store.open()

    cache = ReferenceCache(destination, logger)
    registry = ResolverRegistry(cache, resolver_specs, table_resolvers)

    orchestrator = TaskOrchestrator(
        config,
        source,
        destination,
        store,
        registry,
        logger,
        cancel_event=cancel_event,
    )

    if config.dry_run:
        logger.info("DRY RUN: no rows will be written and no checkpoint will be saved")

    reporter = asyncio.create_task(report_progress(orchestrator, config.progress_interval))
    try:
        await orchestrator.run(tasks)
        logger.info("All migrations completed successfully")
    except Exception as e:
        logger.error(f"Migration failed: {e}")
        raise
    finally:
        reporter.cancel()
        await store.flush()

    return orchestrator
