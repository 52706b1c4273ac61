"""Interfaces the engine requires from source and destination drivers."""

from typing import Any, Dict, List, Protocol, Sequence, Set, Tuple

from ..models.migration import PaginationContext, Row, SourcePage


class SourceReader(Protocol):
    """Reads pages of rows from the source database."""

    async def fetch_page(self, base_query: str, context: PaginationContext) -> SourcePage:
        ...

    async def estimate_row_count(self, table: str) -> int:
        ...

    async def has_index(self, table: str, column: str) -> bool:
        ...


class DestinationWriter(Protocol):
    """Writes rows to the destination and answers existence questions."""

    async def insert(self, table: str, rows: List[Row]) -> int:
        ...

    async def upsert(self, table: str, rows: List[Row], conflict_columns: Sequence[str]) -> int:
        ...

    async def delete_all(self, table: str, filter_column: str = "id") -> int:
        ...

    async def find_existing_keys(
        self, table: str, key_columns: Sequence[str], rows: List[Row]
    ) -> Set[Tuple[Any, ...]]:
        ...

    async def count_reference_codes(self, table: str, code_column: str, id_column: str) -> int:
        ...

    async def fetch_reference_map(self, table: str, code_column: str, id_column: str) -> Dict[Any, Any]:
        ...
