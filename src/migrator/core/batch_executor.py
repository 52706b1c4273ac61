"""Execution of a single page: fetch, transform, resolve, write."""

import asyncio
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

from asyncio_throttle import Throttler

from ..models.migration import (
    BatchJob,
    BatchResult,
    PaginationContext,
    PaginationStrategy,
    Resolver,
    Row,
    Transform,
)
from ..utils.data_helpers import convert_data_types
from ..utils.logger import MigrationLogger
from .concurrency import ConcurrencyLimiter
from .exceptions import BatchError
from .interfaces import SourceReader
from .pagination import extract_cursor_value
from .writer import DuplicateAwareWriter

T = TypeVar("T")


async def retry_operation(
    operation: Callable[[], Awaitable[T]],
    max_retries: int,
    retry_delay: float,
    operation_name: str,
    logger: MigrationLogger,
) -> T:
    """Run ``operation`` up to ``max_retries`` times with a fixed delay between attempts."""
    last_error: Optional[Exception] = None

    for attempt in range(1, max_retries + 1):
        try:
            return await operation()
        except Exception as e:
            last_error = e
            logger.error(f"{operation_name} failed (attempt {attempt}/{max_retries}): {e}")
            if attempt < max_retries:
                logger.info(f"Retrying in {retry_delay}s...")
                await asyncio.sleep(retry_delay)

    logger.error(f"Max retries reached for {operation_name}. Operation failed.")
    raise last_error


async def transform_rows(
    rows: List[Row],
    transform: Optional[Transform],
    resolvers: Dict[str, Resolver],
) -> List[Row]:
    if transform is None:
        return list(rows)
    return [await transform.apply(row, resolvers) for row in rows]


class BatchExecutor:
    """Runs batch jobs against the source and destination.

    Every batch holds a permit of the shared batch limiter while it runs and
    passes through the throttler that paces how fast batches start.
    """

    def __init__(
        self,
        source: SourceReader,
        writer: DuplicateAwareWriter,
        batch_limiter: ConcurrencyLimiter,
        throttler: Throttler,
        logger: MigrationLogger,
        dialect: str = "oracle",
    ):
        self.source = source
        self.writer = writer
        self.batch_limiter = batch_limiter
        self.throttler = throttler
        self.logger = logger
        self.dialect = dialect

    def context_for(self, job: BatchJob) -> PaginationContext:
        pagination = job.pagination
        order_by = pagination.order_by
        if pagination.strategy == PaginationStrategy.CURSOR and not order_by:
            order_by = f"ORDER BY {pagination.cursor_column} ASC"

        return PaginationContext(
            strategy=pagination.strategy,
            batch_size=job.batch_size,
            offset=job.offset,
            cursor_column=pagination.cursor_column,
            last_cursor_value=job.last_cursor_value,
            order_by=order_by,
            dialect=self.dialect,
        )

    async def execute(self, job: BatchJob, resolvers: Dict[str, Resolver]) -> BatchResult:
        task = job.task

        async with self.batch_limiter:
            context = self.context_for(job)
            self.logger.info(
                f"Processing batch {job.batch_number} for {task.target_table}, "
                f"{context.strategy.value} offset: {job.offset}"
            )

            async with self.throttler:
                page = await self.source.fetch_page(task.source_query, context)
            if not page.rows:
                return BatchResult(
                    batch_number=job.batch_number,
                    offset=job.offset,
                    finished=True,
                    last_cursor_value=job.last_cursor_value,
                )

            transformed = await transform_rows(page.rows, task.transform, resolvers)
            write = await self.writer.write(task, transformed)

            last_cursor_value = None
            if context.strategy == PaginationStrategy.CURSOR:
                last_cursor_value = page.last_cursor_value
                if last_cursor_value is None:
                    last_cursor_value = extract_cursor_value(page.rows, context.cursor_column)

            return BatchResult(
                batch_number=job.batch_number,
                offset=job.offset,
                source_rows=len(page.rows),
                write=write,
                last_cursor_value=last_cursor_value,
                last_record=convert_data_types(transformed[-1:])[0] if transformed else None,
                finished=not page.has_more,
            )

    async def execute_with_retry(
        self,
        job: BatchJob,
        resolvers: Dict[str, Resolver],
        max_retries: int,
        retry_delay: float,
    ) -> BatchResult:
        """Execute a batch, wrapping exhausted retries in ``BatchError``."""
        try:
            return await retry_operation(
                lambda: self.execute(job, resolvers),
                max_retries,
                retry_delay,
                f"Batch {job.batch_number} for table {job.task.target_table}",
                self.logger,
            )
        except Exception as e:
            raise BatchError(job.task.target_table, job.batch_number, job.offset, e) from e
