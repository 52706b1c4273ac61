"""Tests for paginated query building and strategy selection."""

import asyncio
from datetime import date, datetime
from decimal import Decimal

import pytest

from src.migrator.core.exceptions import ConfigurationError
from src.migrator.core.pagination import (
    PaginationPlanner,
    build_paginated_query,
    cursor_value_type,
    determine_best_strategy,
    extract_cursor_value,
    extract_table_name,
    format_cursor_value,
    restore_cursor_value,
    validate_pagination_config,
)
from src.migrator.models.migration import (
    MigrationTask,
    PaginationContext,
    PaginationStrategy,
    ResolvedPagination,
    TableProgress,
)

from conftest import FakeSource


def test_rownum_query_selects_one_based_window():
    context = PaginationContext(strategy=PaginationStrategy.ROWNUM, batch_size=100, offset=200)

    query = build_paginated_query("SELECT * FROM REGIONS;", context)

    assert query == (
        "SELECT * FROM (SELECT a.*, ROWNUM rnum FROM (SELECT * FROM REGIONS) a WHERE ROWNUM <= 300) "
        "WHERE rnum >= 201"
    )


def test_rownum_query_for_sql_server():
    context = PaginationContext(strategy=PaginationStrategy.ROWNUM, batch_size=10, offset=0, dialect="mssql")

    query = build_paginated_query("SELECT * FROM regions", context)

    assert "ROW_NUMBER() OVER (ORDER BY (SELECT NULL))" in query
    assert query.endswith("WHERE rnum BETWEEN 1 AND 10")


def test_offset_query_appends_order_and_fetch():
    context = PaginationContext(
        strategy=PaginationStrategy.OFFSET, batch_size=50, offset=100, order_by="ORDER BY ID"
    )

    query = build_paginated_query("SELECT * FROM T", context)

    assert query == "SELECT * FROM T ORDER BY ID OFFSET 100 ROWS FETCH NEXT 50 ROWS ONLY"


def test_cursor_query_first_page_has_no_predicate():
    context = PaginationContext(strategy=PaginationStrategy.CURSOR, batch_size=100, cursor_column="ID")

    query = build_paginated_query("SELECT * FROM T", context)

    assert query == "SELECT * FROM (SELECT * FROM T) q ORDER BY ID ASC FETCH FIRST 100 ROWS ONLY"


def test_cursor_predicate_applies_to_whole_filter():
    context = PaginationContext(
        strategy=PaginationStrategy.CURSOR, batch_size=10, cursor_column="ID", last_cursor_value=42
    )

    query = build_paginated_query("SELECT * FROM T WHERE A = 1 OR B = 2", context)

    assert query == (
        "SELECT * FROM (SELECT * FROM T WHERE A = 1 OR B = 2) q "
        "WHERE ID > 42 ORDER BY ID ASC FETCH FIRST 10 ROWS ONLY"
    )


def test_cursor_query_drops_base_ordering():
    context = PaginationContext(
        strategy=PaginationStrategy.CURSOR, batch_size=10, cursor_column="w.ID", last_cursor_value=42
    )

    query = build_paginated_query(
        "SELECT w.ID, w.CODE FROM WARDS w WHERE w.ACTIVE = 1 AND w.ID IN (SELECT ID FROM X) ORDER BY w.CODE",
        context,
    )

    assert query == (
        "SELECT * FROM (SELECT w.ID, w.CODE FROM WARDS w WHERE w.ACTIVE = 1 AND w.ID IN (SELECT ID FROM X)) q "
        "WHERE ID > 42 ORDER BY ID ASC FETCH FIRST 10 ROWS ONLY"
    )


def test_cursor_query_quotes_strings():
    context = PaginationContext(
        strategy=PaginationStrategy.CURSOR, batch_size=10, cursor_column="CODE", last_cursor_value="O'Brien"
    )

    query = build_paginated_query("SELECT * FROM T", context)

    assert "CODE > 'O''Brien'" in query


def test_cursor_query_for_sql_server():
    context = PaginationContext(
        strategy=PaginationStrategy.CURSOR, batch_size=25, cursor_column="ID", dialect="mssql"
    )

    query = build_paginated_query("SELECT * FROM T", context)

    assert query.endswith("ORDER BY ID ASC OFFSET 0 ROWS FETCH NEXT 25 ROWS ONLY")


def test_cursor_without_column_is_rejected():
    context = PaginationContext(strategy=PaginationStrategy.CURSOR, batch_size=10)

    with pytest.raises(ConfigurationError, match="cursor_column"):
        build_paginated_query("SELECT * FROM T", context)


def test_format_cursor_value():
    assert format_cursor_value(10) == "10"
    assert format_cursor_value(True) == "1"
    assert format_cursor_value(datetime(2025, 1, 2, 3, 4, 5)) == "TIMESTAMP '2025-01-02 03:04:05'"
    assert format_cursor_value(datetime(2025, 1, 2, 3, 4, 5, 120)) == "TIMESTAMP '2025-01-02 03:04:05.000120'"
    assert format_cursor_value(date(2025, 1, 2)) == "DATE '2025-01-02'"


def test_format_cursor_value_for_sql_server():
    assert format_cursor_value(datetime(2025, 1, 2, 3, 4, 5), "mssql") == "'2025-01-02T03:04:05'"
    assert format_cursor_value(date(2025, 1, 2), "mssql") == "'2025-01-02'"


def test_cursor_date_predicate_uses_dialect():
    context = PaginationContext(
        strategy=PaginationStrategy.CURSOR,
        batch_size=10,
        cursor_column="CREATED_AT",
        last_cursor_value=datetime(2025, 1, 2, 3, 4, 5),
    )

    assert "WHERE CREATED_AT > TIMESTAMP '2025-01-02 03:04:05' " in build_paginated_query("SELECT * FROM T", context)


def test_cursor_tokens_survive_json_round_trip():
    stamp = datetime(2025, 1, 2, 3, 4, 5)
    progress = TableProgress(last_cursor_value=stamp, cursor_value_type=cursor_value_type(stamp))

    restored = TableProgress.model_validate_json(progress.model_dump_json())

    assert restored.last_cursor_value == "2025-01-02T03:04:05"
    assert restore_cursor_value(restored.last_cursor_value, restored.cursor_value_type) == stamp
    assert restore_cursor_value("2025-01-02", "date") == date(2025, 1, 2)
    assert restore_cursor_value("1.50", "decimal") == Decimal("1.50")
    assert restore_cursor_value(42, None) == 42


def test_extract_cursor_value_tolerates_key_case():
    rows = [{"id": 1}, {"id": 7}]

    assert extract_cursor_value(rows, "ID") == 7
    assert extract_cursor_value([{"Id": 3}], "Id") == 3
    assert extract_cursor_value([], "ID") is None


def test_extract_table_name():
    assert extract_table_name("SELECT r.ID FROM CRVS.DELIMITATION_REGION r") == "CRVS.DELIMITATION_REGION"
    assert extract_table_name("select * from wards where x = 1") == "wards"
    assert extract_table_name("SELECT 1") is None


def test_determine_best_strategy_thresholds():
    assert determine_best_strategy(2_000_000, has_index=True) == PaginationStrategy.CURSOR
    assert determine_best_strategy(2_000_000, has_index=False) == PaginationStrategy.OFFSET
    assert determine_best_strategy(150_000) == PaginationStrategy.OFFSET
    assert determine_best_strategy(100_000) == PaginationStrategy.ROWNUM


def test_validate_pagination_config_warns_on_unordered_offset(logger):
    validate_pagination_config(
        ResolvedPagination(strategy=PaginationStrategy.OFFSET), logger, "regions"
    )

    with pytest.raises(ConfigurationError):
        validate_pagination_config(ResolvedPagination(strategy=PaginationStrategy.CURSOR))


def test_planner_prefers_task_then_config(config, logger):
    planner = PaginationPlanner(config, FakeSource(), logger)
    task = MigrationTask(
        source_query="SELECT * FROM T",
        target_table="t",
        pagination_strategy=PaginationStrategy.OFFSET,
        order_by="ORDER BY ID",
    )

    assert asyncio.run(planner.resolve(task)).strategy == PaginationStrategy.OFFSET

    plain = MigrationTask(source_query="SELECT * FROM T", target_table="t")
    assert asyncio.run(planner.resolve(plain)).strategy == PaginationStrategy.ROWNUM  # config pin


def test_planner_auto_selects_cursor_for_large_indexed_tables(config, logger):
    config = config.model_copy(update={"pagination_strategy": None})
    source = FakeSource()
    source.row_counts["BIRTHS"] = 5_000_000
    source.indexed.add(("BIRTHS", "ID"))
    planner = PaginationPlanner(config, source, logger)
    task = MigrationTask(source_query="SELECT * FROM BIRTHS", target_table="births", cursor_column="ID")

    resolved = asyncio.run(planner.resolve(task))

    assert resolved.strategy == PaginationStrategy.CURSOR
    assert resolved.cursor_column == "ID"


def test_planner_degrades_to_rownum_on_probe_failure(config, logger):
    config = config.model_copy(update={"pagination_strategy": None})
    planner = PaginationPlanner(config, FakeSource(), logger)
    task = MigrationTask(source_query="SELECT * FROM UNKNOWN_TABLE", target_table="unknown")

    resolved = asyncio.run(planner.resolve(task))

    assert resolved.strategy == PaginationStrategy.ROWNUM
    assert len(logger.degradations("pagination")) == 1
