"""Tests for batch execution and retries."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from asyncio_throttle import Throttler

from src.migrator.core.batch_executor import BatchExecutor, retry_operation
from src.migrator.core.concurrency import ConcurrencyLimiter
from src.migrator.core.exceptions import BatchError
from src.migrator.core.writer import DuplicateAwareWriter
from src.migrator.models.migration import (
    BatchJob,
    MigrationTask,
    PaginationStrategy,
    ResolvedPagination,
    ResolvingTransform,
    ResumeStrategy,
    SimpleTransform,
)

from conftest import FakeDestination, FakeSource, make_rows


QUERY = "SELECT * FROM REGIONS"


def make_executor(source, destination, logger):
    return BatchExecutor(
        source,
        DuplicateAwareWriter(destination, logger),
        ConcurrencyLimiter(2, "batches"),
        Throttler(rate_limit=1000, period=1.0),
        logger,
    )


def make_job(task, offset=0, strategy=PaginationStrategy.ROWNUM, cursor_column=None, cursor=None):
    return BatchJob(
        task=task,
        batch_number=offset // 100,
        offset=offset,
        batch_size=100,
        pagination=ResolvedPagination(strategy=strategy, cursor_column=cursor_column),
        last_cursor_value=cursor,
    )


def region_task(**overrides):
    fields = {
        "source_query": QUERY,
        "target_table": "regions",
        "transform": SimpleTransform(lambda row: {"code": row["CODE"], "name": row["NAME"]}),
        "natural_key": ["code"],
    }
    fields.update(overrides)
    return MigrationTask(**fields)


def test_retry_operation_succeeds_after_transient_failures(logger):
    operation = AsyncMock(side_effect=[ConnectionError("reset"), ConnectionError("reset"), "ok"])

    result = asyncio.run(retry_operation(operation, 3, 0, "fetch", logger))

    assert result == "ok"
    assert operation.await_count == 3


def test_retry_operation_raises_last_error(logger):
    operation = AsyncMock(side_effect=[ValueError("first"), ValueError("second")])

    with pytest.raises(ValueError, match="second"):
        asyncio.run(retry_operation(operation, 2, 0, "fetch", logger))


def test_execute_writes_a_page(logger):
    source = FakeSource({QUERY: make_rows(250)})
    destination = FakeDestination()
    executor = make_executor(source, destination, logger)

    result = asyncio.run(executor.execute(make_job(region_task(), offset=200), {}))

    assert result.source_rows == 50
    assert result.write.inserted == 50
    assert result.finished is True
    assert result.last_record["code"] == "A250"
    assert destination.tables["regions"][0]["code"] == "A201"


def test_execute_empty_page_is_finished(logger):
    source = FakeSource({QUERY: make_rows(10)})
    executor = make_executor(source, FakeDestination(), logger)

    result = asyncio.run(executor.execute(make_job(region_task(), offset=100), {}))

    assert result.source_rows == 0
    assert result.finished is True


def test_cursor_batch_reports_continuation_token(logger):
    source = FakeSource({QUERY: make_rows(150)})
    executor = make_executor(source, FakeDestination(), logger)
    job = make_job(region_task(), strategy=PaginationStrategy.CURSOR, cursor_column="ID", cursor=100)

    result = asyncio.run(executor.execute(job, {}))

    assert result.source_rows == 50
    assert result.last_cursor_value == 150
    assert source.calls[0]["order_by"] == "ORDER BY ID ASC"


def test_resolving_transform_receives_resolvers(logger):
    source = FakeSource({QUERY: make_rows(3)})
    destination = FakeDestination()
    executor = make_executor(source, destination, logger)

    async def transform(row, resolvers):
        return {"code": row["CODE"], "parent_id": resolvers["parent"](row["CODE"])}

    task = region_task(transform=ResolvingTransform(transform), resume_strategy=ResumeStrategy.APPEND_ONLY)
    asyncio.run(executor.execute(make_job(task), {"parent": lambda code: f"id-{code}"}))

    assert [r["parent_id"] for r in destination.tables["regions"]] == ["id-A1", "id-A2", "id-A3"]


def test_execute_with_retry_recovers(logger):
    source = FakeSource({QUERY: make_rows(100)})
    source.fail(QUERY, 0, times=1)
    executor = make_executor(source, FakeDestination(), logger)

    result = asyncio.run(executor.execute_with_retry(make_job(region_task()), {}, max_retries=3, retry_delay=0))

    assert result.source_rows == 100
    assert len(source.calls) == 2


def test_execute_with_retry_wraps_exhausted_failures(logger):
    source = FakeSource({QUERY: make_rows(300)})
    source.fail(QUERY, 200)
    executor = make_executor(source, FakeDestination(), logger)

    with pytest.raises(BatchError) as exc_info:
        asyncio.run(executor.execute_with_retry(make_job(region_task(), offset=200), {}, 2, 0))

    error = exc_info.value
    assert error.table == "regions"
    assert error.offset == 200
    assert isinstance(error.cause, ConnectionError)
    assert len(source.calls) == 2
