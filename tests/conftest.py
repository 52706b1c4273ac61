"""Shared fixtures and in-memory fakes of the source and destination."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from src.migrator.core.exceptions import ReferenceTableError
from src.migrator.models.config import MigrationConfig, SupabaseConfig
from src.migrator.models.migration import PaginationStrategy, SourcePage
from src.migrator.utils.logger import MigrationLogger


class FakeSource:
    """Serves rows per query, paging by offset or by cursor value."""

    def __init__(self, queries: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.queries = queries or {}
        self.calls: List[Dict[str, Any]] = []
        self.failures: Dict[tuple, int] = {}
        self.row_counts: Dict[str, int] = {}
        self.indexed: set = set()
        self.in_flight = 0
        self.max_in_flight = 0
        self.on_fetch = None

    def fail(self, query: str, offset: int, times: int = 1000) -> None:
        self.failures[(query, offset)] = times

    async def fetch_page(self, base_query, context):
        self.calls.append({
            "query": base_query,
            "strategy": context.strategy,
            "offset": context.offset,
            "cursor": context.last_cursor_value,
            "order_by": context.order_by,
        })
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)

            key = (base_query, context.offset)
            if self.failures.get(key, 0) > 0:
                self.failures[key] -= 1
                raise ConnectionError(f"source unavailable at offset {context.offset}")

            rows = self.queries.get(base_query, [])
            if context.strategy == PaginationStrategy.CURSOR:
                column = context.cursor_column
                ordered = sorted(rows, key=lambda r: r[column])
                if context.last_cursor_value is not None:
                    ordered = [r for r in ordered if r[column] > context.last_cursor_value]
                page = ordered[:context.batch_size]
                last = page[-1][column] if page else None
            else:
                page = rows[context.offset:context.offset + context.batch_size]
                last = None

            if self.on_fetch:
                self.on_fetch(self, context)

            return SourcePage(
                rows=[dict(r) for r in page],
                has_more=len(page) == context.batch_size,
                last_cursor_value=last,
            )
        finally:
            self.in_flight -= 1

    async def estimate_row_count(self, table):
        if table not in self.row_counts:
            raise LookupError(f"no statistics for {table}")
        return self.row_counts[table]

    async def has_index(self, table, column):
        return (table, column) in self.indexed

    def queries_in_call_order(self) -> List[str]:
        ordered = []
        for call in self.calls:
            if not ordered or ordered[-1] != call["query"]:
                ordered.append(call["query"])
        return ordered


class FakeDestination:
    """Tables held as lists of dicts; ``id`` is assigned on insert."""

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = tables or {}
        self.log: List[tuple] = []
        self._next_id: Dict[str, int] = {}

    def _assign_id(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(row)
        if row.get("id") is None:
            existing = [r.get("id") or 0 for r in self.tables.get(table, [])]
            next_id = max([self._next_id.get(table, 0), *existing]) + 1
            self._next_id[table] = next_id
            row["id"] = next_id
        return row

    async def insert(self, table, rows):
        await asyncio.sleep(0)
        stored = self.tables.setdefault(table, [])
        for row in rows:
            stored.append(self._assign_id(table, row))
        self.log.append(("insert", table, len(rows)))
        return len(rows)

    async def upsert(self, table, rows, conflict_columns):
        await asyncio.sleep(0)
        stored = self.tables.setdefault(table, [])
        for row in rows:
            key = tuple(row.get(c) for c in conflict_columns)
            for i, current in enumerate(stored):
                if tuple(current.get(c) for c in conflict_columns) == key:
                    stored[i] = {**current, **row}
                    break
            else:
                stored.append(self._assign_id(table, row))
        self.log.append(("upsert", table, len(rows)))
        return len(rows)

    async def delete_all(self, table, filter_column="id"):
        deleted = len(self.tables.get(table, []))
        self.tables[table] = []
        self.log.append(("delete_all", table, deleted))
        return deleted

    async def find_existing_keys(self, table, key_columns, rows):
        present = {tuple(r.get(c) for c in key_columns) for r in self.tables.get(table, [])}
        wanted = {tuple(r.get(c) for c in key_columns) for r in rows}
        return present & wanted

    async def count_reference_codes(self, table, code_column, id_column):
        if table not in self.tables:
            raise ReferenceTableError(f"relation {table} does not exist")
        return sum(1 for r in self.tables[table] if r.get(code_column) is not None)

    async def fetch_reference_map(self, table, code_column, id_column):
        self.log.append(("fetch_reference_map", table, len(self.tables.get(table, []))))
        return {
            r[code_column]: r[id_column]
            for r in self.tables.get(table, [])
            if r.get(code_column) is not None
        }

    def operations(self, op: str, table: Optional[str] = None) -> List[tuple]:
        return [e for e in self.log if e[0] == op and (table is None or e[1] == table)]


def make_rows(count: int, prefix: str = "A", start: int = 1) -> List[Dict[str, Any]]:
    return [{"ID": i, "CODE": f"{prefix}{i}", "NAME": f"{prefix} row {i}"} for i in range(start, start + count)]


@pytest.fixture
def logger():
    return MigrationLogger(log_file=None, echo=False)


@pytest.fixture
def config(tmp_path):
    return MigrationConfig(
        supabase=SupabaseConfig(url="https://test.supabase.co", key="anon", service_role_key="service"),
        batch_size=100,
        max_retries=2,
        retry_delay=0,
        checkpoint_file=str(tmp_path / "migration_checkpoint.json"),
        max_concurrent_tables=2,
        max_concurrent_batches=1,
        pagination_strategy=PaginationStrategy.ROWNUM,
        batch_rate_limit=1000,
        log_file=None,
        show_progress=False,
    )
