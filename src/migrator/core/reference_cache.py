"""Code -> surrogate id lookup tables and the resolvers built on them."""

import asyncio
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..models.migration import MigrationTask, Resolver, ResolverSpec
from ..utils.logger import MigrationLogger
from .exceptions import ConfigurationError
from .interfaces import DestinationWriter


class ReferenceCache:
    """In-memory ``{code: id}`` maps keyed by destination table.

    A rebuild loads the complete projection first and then swaps it in, so
    concurrent readers see either the previous map or the new one.
    """

    def __init__(self, destination: DestinationWriter, logger: MigrationLogger):
        self.destination = destination
        self.logger = logger
        self._entries: Dict[str, Dict[Any, Any]] = {}
        self._columns: Dict[str, tuple] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def is_built(self, table: str) -> bool:
        return table in self._entries

    def size(self, table: str) -> int:
        return len(self._entries.get(table, {}))

    async def build(self, table: str, code_column: str = "code", id_column: str = "id") -> bool:
        """Load the cache for ``table``; returns False when it cannot be built."""
        lock = self._locks.setdefault(table, asyncio.Lock())

        async with lock:
            try:
                codes = await self.destination.count_reference_codes(table, code_column, id_column)
                if codes == 0:
                    self.logger.degraded(
                        "reference_cache",
                        f"Mapping cache for {table} not built: no rows with a non-null {code_column}",
                    )
                    return False

                mapping = await self.destination.fetch_reference_map(table, code_column, id_column)
            except Exception as e:
                self.logger.degraded("reference_cache", f"Mapping cache for {table} not built: {e}")
                return False

            self._entries[table] = dict(mapping)
            self._columns[table] = (code_column, id_column)
            self.logger.info(f"Built mapping cache for {table}: {len(mapping)} entries")
            return True

    def resolve(self, table: str, code: Any) -> Optional[Any]:
        if code is None or code == "":
            return None
        entries = self._entries.get(table)
        if entries is None:
            return None
        return entries.get(code)

    def invalidate(self, table: str) -> None:
        self._entries.pop(table, None)


class ResolverRegistry:
    """Named resolvers over a ``ReferenceCache``.

    ``table_resolvers`` maps a destination table to the names of the
    resolvers its transform needs.
    """

    def __init__(
        self,
        cache: ReferenceCache,
        specs: Iterable[ResolverSpec] = (),
        table_resolvers: Optional[Mapping[str, List[str]]] = None,
    ):
        self.cache = cache
        self.specs: Dict[str, ResolverSpec] = {}
        self.table_resolvers: Dict[str, List[str]] = dict(table_resolvers or {})
        for spec in specs:
            self.register(spec)

    def register(self, spec: ResolverSpec) -> None:
        self.specs[spec.name] = spec

    def required_for(self, task: MigrationTask) -> List[str]:
        if task.required_resolvers is not None:
            return list(task.required_resolvers)
        return list(self.table_resolvers.get(task.target_table, []))

    def validate(self, task: MigrationTask) -> None:
        unknown = [name for name in self.required_for(task) if name not in self.specs]
        if unknown:
            raise ConfigurationError(
                f"Task {task.task_id} requires unknown resolvers: {', '.join(unknown)}"
            )

    def resolver(self, name: str) -> Resolver:
        spec = self.specs[name]

        def resolve(code: Any) -> Optional[Any]:
            return self.cache.resolve(spec.table, code)

        resolve.__name__ = f"resolve_{name}"
        return resolve

    def for_task(self, task: MigrationTask) -> Dict[str, Resolver]:
        return {name: self.resolver(name) for name in self.required_for(task)}

    def source_tables(self) -> Dict[str, List[ResolverSpec]]:
        tables: Dict[str, List[ResolverSpec]] = {}
        for spec in self.specs.values():
            tables.setdefault(spec.table, []).append(spec)
        return tables

    async def build_all(self) -> Dict[str, bool]:
        """Build every cache that the destination can currently serve."""
        results = {}
        for table, specs in self.source_tables().items():
            spec = specs[0]
            results[table] = await self.cache.build(table, spec.code_column, spec.id_column)
        return results

    async def ensure_for_task(self, task: MigrationTask) -> None:
        """Build any cache a task needs that is not loaded yet."""
        for name in self.required_for(task):
            spec = self.specs[name]
            if not self.cache.is_built(spec.table):
                await self.cache.build(spec.table, spec.code_column, spec.id_column)

    async def build_after_task_completes(self, task: MigrationTask) -> bool:
        """Rebuild the cache fed by ``task``'s target table, if there is one."""
        specs = self.source_tables().get(task.target_table)
        if not specs:
            return False
        spec = specs[0]
        return await self.cache.build(spec.table, spec.code_column, spec.id_column)
