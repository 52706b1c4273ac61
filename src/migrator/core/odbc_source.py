"""ODBC source reader (Oracle or SQL Server)."""

import asyncio
from typing import Any, Dict, List

import pyodbc

from ..models.config import SourceConfig
from ..models.migration import PaginationContext, PaginationStrategy, SourcePage
from ..utils.logger import MigrationLogger
from .pagination import build_paginated_query, extract_cursor_value


ROWNUM_COLUMNS = ("RNUM", "rnum")


class OdbcSourceReader:
    """Reads paginated pages from the source database through pyodbc.

    pyodbc connections are not safe to share between threads, so every call
    opens its own connection inside a worker thread.
    """

    def __init__(self, config: SourceConfig, logger: MigrationLogger):
        self.config = config
        self.logger = logger

    def connect(self) -> pyodbc.Connection:
        return pyodbc.connect(self.config.connection_string())

    async def fetch_page(self, base_query: str, context: PaginationContext) -> SourcePage:
        query = build_paginated_query(base_query, context)
        rows = await asyncio.to_thread(self._fetch_rows, query)

        if context.strategy == PaginationStrategy.ROWNUM:
            for row in rows:
                for column in ROWNUM_COLUMNS:
                    row.pop(column, None)

        last_cursor_value = None
        if context.strategy == PaginationStrategy.CURSOR and context.cursor_column:
            last_cursor_value = extract_cursor_value(rows, context.cursor_column)

        return SourcePage(
            rows=rows,
            has_more=len(rows) == context.batch_size,
            last_cursor_value=last_cursor_value,
        )

    def _fetch_rows(self, query: str) -> List[Dict[str, Any]]:
        conn = self.connect()
        try:
            cursor = conn.cursor()
            cursor.execute(query)
            columns = [column[0] for column in cursor.description]
            rows = [dict(zip(columns, row)) for row in cursor.fetchall()]
            cursor.close()
            return rows
        finally:
            conn.close()

    def _scalar(self, query: str, *params) -> Any:
        conn = self.connect()
        try:
            cursor = conn.cursor()
            cursor.execute(query, *params)
            row = cursor.fetchone()
            cursor.close()
            return row[0] if row else None
        finally:
            conn.close()

    async def estimate_row_count(self, table: str) -> int:
        """Row estimate from optimizer statistics, falling back to COUNT(*)."""
        schema, name = _split_table(table)

        if self.config.dialect == "mssql":
            stats_query = (
                "SELECT SUM(p.rows) FROM sys.partitions p "
                "JOIN sys.tables t ON p.object_id = t.object_id "
                "WHERE t.name = ? AND p.index_id IN (0, 1)"
            )
        elif schema:
            stats_query = "SELECT NUM_ROWS FROM ALL_TABLES WHERE TABLE_NAME = UPPER(?) AND OWNER = UPPER(?)"
        else:
            stats_query = "SELECT NUM_ROWS FROM USER_TABLES WHERE TABLE_NAME = UPPER(?)"

        params = (name, schema) if schema and self.config.dialect == "oracle" else (name,)
        estimate = await asyncio.to_thread(self._scalar, stats_query, *params)
        if estimate is not None:
            return int(estimate)

        count = await asyncio.to_thread(self._scalar, f"SELECT COUNT(*) FROM {table}")
        return int(count or 0)

    async def has_index(self, table: str, column: str) -> bool:
        schema, name = _split_table(table)

        if self.config.dialect == "mssql":
            query = (
                "SELECT COUNT(*) FROM sys.index_columns ic "
                "JOIN sys.columns c ON ic.object_id = c.object_id AND ic.column_id = c.column_id "
                "JOIN sys.tables t ON ic.object_id = t.object_id "
                "WHERE t.name = ? AND c.name = ?"
            )
            params = (name, column)
        elif schema:
            query = (
                "SELECT COUNT(*) FROM ALL_IND_COLUMNS "
                "WHERE TABLE_NAME = UPPER(?) AND COLUMN_NAME = UPPER(?) AND TABLE_OWNER = UPPER(?)"
            )
            params = (name, column, schema)
        else:
            query = (
                "SELECT COUNT(*) FROM USER_IND_COLUMNS ic "
                "JOIN USER_INDEXES i ON ic.INDEX_NAME = i.INDEX_NAME "
                "WHERE ic.TABLE_NAME = UPPER(?) AND ic.COLUMN_NAME = UPPER(?)"
            )
            params = (name, column)

        count = await asyncio.to_thread(self._scalar, query, *params)
        return int(count or 0) > 0


def _split_table(table: str):
    if "." in table:
        schema, name = table.split(".", 1)
        return schema, name
    return None, table
