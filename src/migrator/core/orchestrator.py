"""Priority-grouped, concurrency-bounded migration of many tables."""

import asyncio
from itertools import groupby
from typing import Dict, List, Optional, Sequence, Tuple

from asyncio_throttle import Throttler
from tqdm import tqdm

from ..models.config import MigrationConfig
from ..models.migration import (
    BatchJob,
    BatchResult,
    MigrationProgress,
    MigrationTask,
    PaginationStrategy,
    ResolvedPagination,
    ResumeStrategy,
    TableProgress,
)
from ..utils.logger import MigrationLogger
from .batch_executor import BatchExecutor
from .checkpoint import CheckpointStore, get_progress
from .concurrency import ConcurrencyLimiter
from .exceptions import ConfigurationError, GroupFailedError, MigrationCancelled, TaskFailedError
from .interfaces import DestinationWriter, SourceReader
from .pagination import (
    PaginationPlanner,
    cursor_value_type,
    restore_cursor_value,
    validate_pagination_config,
)
from .reference_cache import ResolverRegistry
from .writer import DuplicateAwareWriter


def group_by_priority(tasks: Sequence[MigrationTask]) -> List[Tuple[int, List[MigrationTask]]]:
    """Tasks grouped by priority value, lowest priority first."""
    ordered = sorted(tasks, key=lambda t: t.priority)
    return [(priority, list(group)) for priority, group in groupby(ordered, key=lambda t: t.priority)]


class TaskOrchestrator:
    """Runs migration tasks group by group.

    Groups are processed strictly in ascending priority order. Tasks of a
    group run concurrently, bounded by the table limiter; their batches share
    a single batch limiter. A group with any failed task stops the run once
    all of its tasks have settled.
    """

    def __init__(
        self,
        config: MigrationConfig,
        source: SourceReader,
        destination: DestinationWriter,
        checkpoint_store: CheckpointStore,
        resolvers: ResolverRegistry,
        logger: MigrationLogger,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.config = config
        self.source = source
        self.destination = destination
        self.store = checkpoint_store
        self.resolvers = resolvers
        self.logger = logger
        self.cancel_event = cancel_event or asyncio.Event()

        self.table_limiter = ConcurrencyLimiter(config.max_concurrent_tables, "tables")
        self.batch_limiter = ConcurrencyLimiter(config.max_concurrent_batches, "batches")
        self.throttler = Throttler(rate_limit=config.batch_rate_limit, period=1.0)

        self.writer = DuplicateAwareWriter(destination, logger, dry_run=config.dry_run)
        self.executor = BatchExecutor(
            source,
            self.writer,
            self.batch_limiter,
            self.throttler,
            logger,
            dialect=config.source.dialect,
        )
        self.planner = PaginationPlanner(config, source, logger)

    def validate(self, tasks: Sequence[MigrationTask]) -> None:
        """Reject task lists that cannot run, before any batch starts."""
        by_id: Dict[str, MigrationTask] = {}
        for task in tasks:
            if task.task_id in by_id:
                raise ConfigurationError(f"Duplicate task id: {task.task_id}")
            by_id[task.task_id] = task

        for task in tasks:
            for upstream_id in task.depends_on:
                upstream = by_id.get(upstream_id)
                if upstream is None:
                    raise ConfigurationError(f"Task {task.task_id} depends on unknown task {upstream_id}")
                if upstream.priority >= task.priority:
                    raise ConfigurationError(
                        f"Task {task.task_id} (priority {task.priority}) depends on {upstream_id} "
                        f"(priority {upstream.priority}); dependencies need a lower priority"
                    )

            pinned = self.planner.pinned(task)
            if pinned:
                validate_pagination_config(pinned, table=task.target_table)

            if task.resume_strategy in (ResumeStrategy.SKIP_EXISTING, ResumeStrategy.UPSERT) and not task.natural_key:
                raise ConfigurationError(
                    f"Task {task.task_id} uses {task.resume_strategy.value} but declares no natural_key"
                )

            self.resolvers.validate(task)

    async def run(self, tasks: Sequence[MigrationTask]) -> None:
        self.validate(tasks)

        self.logger.info(f"Starting migration of {len(tasks)} tables")
        await self.resolvers.build_all()

        for priority, group in group_by_priority(tasks):
            if self.cancel_event.is_set():
                raise MigrationCancelled(f"Migration interrupted before priority group {priority}")

            self.logger.info(
                f"Processing priority group {priority}: {', '.join(t.task_id for t in group)}"
            )

            results = await asyncio.gather(
                *(self.migrate_task_with_concurrency(task) for task in group),
                return_exceptions=True,
            )

            failures = [(task, result) for task, result in zip(group, results) if isinstance(result, BaseException)]
            if not failures:
                self.logger.info(f"Priority group {priority} completed")
                continue

            if self.cancel_event.is_set() and all(isinstance(e, MigrationCancelled) for _, e in failures):
                raise MigrationCancelled(f"Migration interrupted during priority group {priority}")

            for task, error in failures:
                self.logger.error(f"Table {task.task_id} failed: {error}")

            raise GroupFailedError(
                priority,
                [task.task_id for task, _ in failures],
                len(group),
                [error for _, error in failures],
            )

        self.logger.info("All table migrations completed successfully")

    async def migrate_task_with_concurrency(self, task: MigrationTask) -> int:
        async with self.table_limiter:
            return await self.migrate_task(task)

    async def migrate_task(self, task: MigrationTask) -> int:
        """Drive one task's batch loop until a batch returns no rows."""
        existing = self.store.get(task.task_id)
        progress = existing or TableProgress()

        if progress.is_complete:
            self.logger.info(f"Table {task.target_table} already completed, skipping")
            return progress.total_processed

        if self.cancel_event.is_set():
            raise MigrationCancelled(f"Migration of {task.task_id} not started, stop requested")

        self.logger.info(f"Starting migration for table: {task.target_table}")

        pagination = await self.planner.resolve(task)
        validate_pagination_config(pagination, self.logger, task.target_table)

        await self.resolvers.ensure_for_task(task)
        resolvers = self.resolvers.for_task(task)

        if task.resume_strategy == ResumeStrategy.FRESH_START and not progress.table_cleared:
            if self.cancel_event.is_set():
                raise MigrationCancelled(f"Migration of {task.task_id} not started, stop requested")
            await self.writer.clear_table(task)
            progress.table_cleared = True
            await self.store.save(task.task_id, progress)
            existing = progress

        batch_size = task.batch_size or self.config.batch_size
        offset = progress.last_processed_offset
        cursor_value = restore_cursor_value(progress.last_cursor_value, progress.cursor_value_type)
        batch_number = 0

        with tqdm(
            initial=progress.total_processed,
            desc=f"Migrating {task.target_table}",
            unit="rows",
            disable=not self.config.show_progress,
        ) as pbar:
            while True:
                if self.cancel_event.is_set():
                    if existing is not None or batch_number:
                        await self.store.save(task.task_id, progress)
                    raise MigrationCancelled(
                        f"Migration of {task.task_id} interrupted at offset {offset}"
                    )

                jobs = self._plan_iteration(task, pagination, batch_number, offset, batch_size, cursor_value)
                batch_number += len(jobs)

                results = await asyncio.gather(
                    *(
                        self.executor.execute_with_retry(
                            job, resolvers, self.config.max_retries, self.config.retry_delay
                        )
                        for job in jobs
                    ),
                    return_exceptions=True,
                )

                completed, failure = self._settled_prefix(results)
                rows = sum(r.source_rows for r in completed)

                for result in completed:
                    progress.inserted += result.write.inserted
                    progress.updated += result.write.updated
                    progress.skipped += result.write.skipped
                    if result.last_cursor_value is not None:
                        cursor_value = result.last_cursor_value
                    if result.last_record is not None:
                        progress.last_record = result.last_record

                offset += rows
                progress.total_processed += rows
                progress.last_processed_offset = offset
                progress.last_cursor_value = cursor_value
                progress.cursor_value_type = cursor_value_type(cursor_value)
                pbar.update(rows)

                if completed or failure is not None:
                    await self.store.save(task.task_id, progress)

                if failure is not None:
                    raise TaskFailedError(task.task_id, failure) from failure

                self.logger.info(
                    f"Table {task.target_table}: Processed {rows} rows in batch. "
                    f"Total: {progress.total_processed}"
                )

                if rows == 0:
                    break

        await self.store.mark_complete(task.task_id)
        await self.resolvers.build_after_task_completes(task)

        self.logger.info(
            f"Completed migration for table {task.target_table}. Total rows: {progress.total_processed}"
        )
        return progress.total_processed

    def _plan_iteration(
        self,
        task: MigrationTask,
        pagination: ResolvedPagination,
        batch_number: int,
        offset: int,
        batch_size: int,
        cursor_value,
    ) -> List[BatchJob]:
        # Each cursor page depends on the previous page's token.
        if pagination.strategy == PaginationStrategy.CURSOR:
            slots = 1
        else:
            slots = task.max_concurrent_batches or self.config.max_concurrent_batches

        return [
            BatchJob(
                task=task,
                batch_number=batch_number + i,
                offset=offset + i * batch_size,
                batch_size=batch_size,
                pagination=pagination,
                last_cursor_value=cursor_value,
            )
            for i in range(slots)
        ]

    @staticmethod
    def _settled_prefix(results: list) -> Tuple[List[BatchResult], Optional[BaseException]]:
        """Successful results up to the first failure, and that failure."""
        completed: List[BatchResult] = []
        for result in results:
            if isinstance(result, BaseException):
                return completed, result
            completed.append(result)
        return completed, None

    def get_progress(self) -> MigrationProgress:
        return get_progress(self.store.checkpoint, self.batch_limiter)
