"""Paginated query rendering and strategy selection."""

import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..models.config import MigrationConfig
from ..models.migration import (
    MigrationTask,
    PaginationContext,
    PaginationStrategy,
    ResolvedPagination,
)
from ..utils.logger import MigrationLogger
from .exceptions import ConfigurationError
from .interfaces import SourceReader


CURSOR_ROW_THRESHOLD = 1_000_000
OFFSET_ROW_THRESHOLD = 100_000

_FROM_TABLE = re.compile(r"\bFROM\s+([\w$#]+(?:\.[\w$#]+)?)", re.IGNORECASE)
# A final ORDER BY with no parenthesis after it belongs to the outermost query
_TRAILING_ORDER_BY = re.compile(r"\s+ORDER\s+BY\s+[^()]*$", re.IGNORECASE)


def build_paginated_query(base_query: str, context: PaginationContext) -> str:
    """Render ``base_query`` as a single page request."""
    base_query = base_query.strip().rstrip(";")

    if context.strategy == PaginationStrategy.ROWNUM:
        return _build_rownum_query(base_query, context)
    if context.strategy == PaginationStrategy.OFFSET:
        return _build_offset_query(base_query, context)
    if context.strategy == PaginationStrategy.CURSOR:
        if not context.cursor_column:
            raise ConfigurationError("Cursor pagination requires cursor_column to be specified")
        return _build_cursor_query(base_query, context)

    raise ConfigurationError(f"Unsupported pagination strategy: {context.strategy}")


def _build_rownum_query(base_query: str, context: PaginationContext) -> str:
    first = context.offset + 1
    last = context.offset + context.batch_size

    if context.dialect == "mssql":
        return (
            "SELECT * FROM ("
            f"SELECT a.*, ROW_NUMBER() OVER (ORDER BY (SELECT NULL)) AS rnum FROM ({base_query}) a"
            f") b WHERE rnum BETWEEN {first} AND {last}"
        )

    return (
        "SELECT * FROM ("
        f"SELECT a.*, ROWNUM rnum FROM ({base_query}) a WHERE ROWNUM <= {last}"
        f") WHERE rnum >= {first}"
    )


def _build_offset_query(base_query: str, context: PaginationContext) -> str:
    query = f"{base_query} {context.order_by}" if context.order_by else base_query
    return f"{query} OFFSET {context.offset} ROWS FETCH NEXT {context.batch_size} ROWS ONLY"


def _build_cursor_query(base_query: str, context: PaginationContext) -> str:
    """Wrap the base query so the cursor predicate applies to its whole result.

    Pages are always ordered by the cursor column of the wrapped result;
    any ordering of the base query itself is dropped.
    """
    column = context.cursor_column.rsplit(".", 1)[-1]
    inner = _TRAILING_ORDER_BY.sub("", base_query)
    query = f"SELECT * FROM ({inner}) q"

    if context.last_cursor_value is not None:
        value = format_cursor_value(context.last_cursor_value, context.dialect)
        query = f"{query} WHERE {column} > {value}"

    order_by = f"ORDER BY {column} ASC"

    if context.dialect == "mssql":
        return f"{query} {order_by} OFFSET 0 ROWS FETCH NEXT {context.batch_size} ROWS ONLY"
    return f"{query} {order_by} FETCH FIRST {context.batch_size} ROWS ONLY"


def format_cursor_value(value: Any, dialect: str = "oracle") -> str:
    """Render a continuation token as a SQL literal for ``dialect``."""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float, Decimal)):
        return str(value)

    if isinstance(value, datetime):
        if dialect == "mssql":
            return f"'{value.replace(tzinfo=None).isoformat()}'"
        stamp = value.strftime("%Y-%m-%d %H:%M:%S")
        if value.microsecond:
            stamp = f"{stamp}.{value.microsecond:06d}"
        return f"TIMESTAMP '{stamp}'"
    if isinstance(value, date):
        if dialect == "mssql":
            return f"'{value.isoformat()}'"
        return f"DATE '{value.isoformat()}'"

    escaped = str(value).replace("'", "''")
    return f"'{escaped}'"


def cursor_value_type(value: Any) -> Optional[str]:
    """Name of a token type that does not survive a JSON round trip."""
    if isinstance(value, datetime):
        return "datetime"
    if isinstance(value, date):
        return "date"
    if isinstance(value, Decimal):
        return "decimal"
    return None


def restore_cursor_value(value: Any, value_type: Optional[str]) -> Any:
    """Rebuild a token read back from the checkpoint as ``value_type``."""
    if value is None or not isinstance(value, str):
        return value
    if value_type == "datetime":
        return datetime.fromisoformat(value)
    if value_type == "date":
        return date.fromisoformat(value)
    if value_type == "decimal":
        return Decimal(value)
    return value


def extract_cursor_value(rows: List[Dict[str, Any]], cursor_column: str) -> Optional[Any]:
    """Continuation token of a page: the cursor column of its last row."""
    if not rows:
        return None

    last_row = rows[-1]
    for key in (cursor_column, cursor_column.lower(), cursor_column.upper()):
        if key in last_row:
            return last_row[key]
    return None


def extract_table_name(query: str) -> Optional[str]:
    """Primary table of a query, taken from its first ``FROM <identifier>``."""
    match = _FROM_TABLE.search(query)
    return match.group(1) if match else None


def determine_best_strategy(estimated_rows: int, has_index: bool = False) -> PaginationStrategy:
    if estimated_rows > CURSOR_ROW_THRESHOLD and has_index:
        return PaginationStrategy.CURSOR
    if estimated_rows > OFFSET_ROW_THRESHOLD:
        return PaginationStrategy.OFFSET
    return PaginationStrategy.ROWNUM


def validate_pagination_config(
    pagination: ResolvedPagination,
    logger: Optional[MigrationLogger] = None,
    table: str = "",
) -> None:
    """Raise for unusable settings, warn for settings that risk overlapping pages."""
    if pagination.strategy == PaginationStrategy.CURSOR and not pagination.cursor_column:
        raise ConfigurationError(
            f"Cursor pagination for {table or 'task'} requires cursor_column to be specified"
        )

    if pagination.strategy == PaginationStrategy.OFFSET and not pagination.order_by and logger:
        logger.warn(
            f"OFFSET pagination without ORDER BY for {table or 'task'} may produce inconsistent results"
        )


class PaginationPlanner:
    """Chooses the pagination strategy for each task."""

    def __init__(self, config: MigrationConfig, source: SourceReader, logger: MigrationLogger):
        self.config = config
        self.source = source
        self.logger = logger

    def pinned(self, task: MigrationTask) -> Optional[ResolvedPagination]:
        """Strategy fixed by the task or the global config, if any."""
        if task.pagination_strategy:
            return ResolvedPagination(
                strategy=task.pagination_strategy,
                cursor_column=task.cursor_column or self.config.cursor_column,
                order_by=task.order_by,
            )

        if self.config.pagination_strategy:
            return ResolvedPagination(
                strategy=self.config.pagination_strategy,
                cursor_column=task.cursor_column or self.config.cursor_column,
                order_by=task.order_by,
            )

        return None

    async def resolve(self, task: MigrationTask) -> ResolvedPagination:
        pinned = self.pinned(task)
        if pinned:
            return pinned

        fallback = ResolvedPagination(
            strategy=PaginationStrategy.ROWNUM,
            cursor_column=task.cursor_column,
            order_by=task.order_by,
        )

        try:
            table_name = extract_table_name(task.source_query)
            if not table_name:
                self.logger.degraded(
                    "pagination",
                    f"Could not extract table name for {task.task_id}, using ROWNUM pagination",
                )
                return fallback

            estimated_rows = await self.source.estimate_row_count(table_name)
            has_index = False
            if task.cursor_column:
                has_index = await self.source.has_index(table_name, task.cursor_column)

            strategy = determine_best_strategy(estimated_rows, has_index)
            self.logger.info(
                f"Auto-selected {strategy.value} pagination for table {table_name} "
                f"(estimated {estimated_rows} rows)"
            )
            return ResolvedPagination(
                strategy=strategy,
                cursor_column=task.cursor_column,
                order_by=task.order_by,
            )

        except Exception as e:
            self.logger.degraded(
                "pagination",
                f"Error determining pagination strategy for {task.task_id}: {e}, defaulting to ROWNUM",
            )
            return fallback
