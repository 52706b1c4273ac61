"""Supabase destination writer."""

import asyncio
from typing import Any, Dict, List, Sequence, Set, Tuple

from supabase import Client, create_client

from ..models.config import SupabaseConfig
from ..models.migration import Row
from ..utils.data_helpers import convert_data_types, convert_value
from ..utils.logger import MigrationLogger
from .exceptions import ReferenceTableError


class SupabaseDestinationWriter:
    """Writes migrated rows to Supabase through PostgREST.

    Table identifiers may be schema qualified (``schema.table``). The
    supabase client is synchronous, so every request runs in a worker thread.
    """

    key_chunk_size = 200
    page_size = 1000

    def __init__(self, config: SupabaseConfig, logger: MigrationLogger, client: Client = None):
        self.config = config
        self.logger = logger
        self.supabase: Client = client or create_client(config.url, config.service_role_key)

    def get_table(self, table: str):
        """Get a table reference, honouring a ``schema.`` prefix."""
        if "." in table:
            schema, name = table.split(".", 1)
            return self.supabase.schema(schema).table(name)
        return self.supabase.table(table)

    async def insert(self, table: str, rows: List[Row]) -> int:
        if not rows:
            return 0

        payload = convert_data_types(rows)
        result = await asyncio.to_thread(lambda: self.get_table(table).insert(payload).execute())
        inserted = len(result.data or [])
        self.logger.info(f"Inserted {inserted} records into {table}")
        return inserted

    async def upsert(self, table: str, rows: List[Row], conflict_columns: Sequence[str]) -> int:
        if not rows:
            return 0

        payload = convert_data_types(rows)
        on_conflict = ",".join(conflict_columns)
        result = await asyncio.to_thread(
            lambda: self.get_table(table).upsert(payload, on_conflict=on_conflict).execute()
        )
        return len(result.data or [])

    async def delete_all(self, table: str, filter_column: str = "id") -> int:
        """Delete every row; PostgREST requires a filter, so null and non-null rows go separately."""

        def delete() -> int:
            present = self.get_table(table).delete(count="exact").not_.is_(filter_column, "null").execute()
            missing = self.get_table(table).delete(count="exact").is_(filter_column, "null").execute()
            return (present.count or 0) + (missing.count or 0)

        return await asyncio.to_thread(delete)

    async def find_existing_keys(
        self, table: str, key_columns: Sequence[str], rows: List[Row]
    ) -> Set[Tuple[Any, ...]]:
        """Natural keys of ``rows`` that are already present in ``table``."""
        if not rows or not key_columns:
            return set()

        wanted: Dict[Tuple[Any, ...], Tuple[Any, ...]] = {}
        for row in rows:
            key = tuple(row.get(column) for column in key_columns)
            wanted[tuple(convert_value(v) for v in key)] = key

        lead = key_columns[0]
        lead_values = sorted({k[0] for k in wanted if k[0] is not None}, key=str)
        columns = ",".join(key_columns)

        def probe() -> List[Dict[str, Any]]:
            found = []
            for start in range(0, len(lead_values), self.key_chunk_size):
                chunk = lead_values[start:start + self.key_chunk_size]
                result = self.get_table(table).select(columns).in_(lead, chunk).execute()
                found.extend(result.data or [])
            return found

        existing = set()
        for record in await asyncio.to_thread(probe):
            found_key = tuple(convert_value(record.get(column)) for column in key_columns)
            if found_key in wanted:
                existing.add(wanted[found_key])
        return existing

    async def count_reference_codes(self, table: str, code_column: str, id_column: str) -> int:
        """Rows with a non-null code; raises ReferenceTableError if table or columns are missing."""

        def count() -> int:
            result = (
                self.get_table(table)
                .select(f"{code_column},{id_column}", count="exact")
                .not_.is_(code_column, "null")
                .limit(1)
                .execute()
            )
            return result.count or 0

        try:
            return await asyncio.to_thread(count)
        except Exception as e:
            raise ReferenceTableError(f"Reference table {table}({code_column}, {id_column}) unavailable: {e}") from e

    async def fetch_reference_map(self, table: str, code_column: str, id_column: str) -> Dict[Any, Any]:
        """Full ``{code: id}`` projection of a reference table."""

        def fetch() -> Dict[Any, Any]:
            mapping: Dict[Any, Any] = {}
            start = 0
            while True:
                result = (
                    self.get_table(table)
                    .select(f"{code_column},{id_column}")
                    .not_.is_(code_column, "null")
                    .order(id_column)
                    .range(start, start + self.page_size - 1)
                    .execute()
                )
                records = result.data or []
                for record in records:
                    mapping[record[code_column]] = record[id_column]
                if len(records) < self.page_size:
                    return mapping
                start += self.page_size

        try:
            return await asyncio.to_thread(fetch)
        except Exception as e:
            raise ReferenceTableError(f"Could not load reference table {table}: {e}") from e
