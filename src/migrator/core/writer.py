"""Resume-strategy aware destination writes."""

from typing import Any, List, Sequence, Tuple

from ..models.migration import MigrationTask, ResumeStrategy, Row, WriteResult
from ..utils.logger import MigrationLogger
from .interfaces import DestinationWriter


def natural_key(row: Row, key_columns: Sequence[str]) -> Tuple[Any, ...]:
    return tuple(row.get(column) for column in key_columns)


class DuplicateAwareWriter:
    """Writes a page of transformed rows according to the task's resume strategy."""

    def __init__(self, destination: DestinationWriter, logger: MigrationLogger, dry_run: bool = False):
        self.destination = destination
        self.logger = logger
        self.dry_run = dry_run

    async def write(self, task: MigrationTask, rows: List[Row]) -> WriteResult:
        if not rows:
            return WriteResult()

        if self.dry_run:
            self.logger.info(
                f"DRY RUN: Would write {len(rows)} rows to {task.target_table} "
                f"({task.resume_strategy.value})"
            )
            return WriteResult(skipped=len(rows))

        strategy = task.resume_strategy

        if strategy in (ResumeStrategy.APPEND_ONLY, ResumeStrategy.FRESH_START):
            inserted = await self.destination.insert(task.target_table, rows)
            return WriteResult(inserted=inserted)

        if strategy == ResumeStrategy.SKIP_EXISTING:
            return await self.write_skip_existing(task, rows)

        if strategy == ResumeStrategy.UPSERT:
            return await self.write_upsert(task, rows)

        raise ValueError(f"Unknown resume strategy: {strategy}")

    async def write_skip_existing(self, task: MigrationTask, rows: List[Row]) -> WriteResult:
        """Insert only rows whose natural key is absent at the destination."""
        existing = await self.destination.find_existing_keys(task.target_table, task.natural_key, rows)

        new_rows = []
        seen = set(existing)
        for row in rows:
            key = natural_key(row, task.natural_key)
            if key in seen:
                continue
            seen.add(key)
            new_rows.append(row)

        skipped = len(rows) - len(new_rows)
        inserted = 0
        if new_rows:
            inserted = await self.destination.insert(task.target_table, new_rows)

        self.logger.info(f"Duplicate check for {task.target_table}: {inserted} new, {skipped} skipped")
        return WriteResult(inserted=inserted, skipped=skipped)

    async def write_upsert(self, task: MigrationTask, rows: List[Row]) -> WriteResult:
        """Insert-or-update by natural key, counting rows that already existed as updates."""
        unique_rows = {}
        for row in rows:
            unique_rows[natural_key(row, task.natural_key)] = row

        existing = await self.destination.find_existing_keys(
            task.target_table, task.natural_key, list(unique_rows.values())
        )
        await self.destination.upsert(task.target_table, list(unique_rows.values()), task.natural_key)

        updated = sum(1 for key in unique_rows if key in existing)
        return WriteResult(
            inserted=len(unique_rows) - updated,
            updated=updated,
            skipped=len(rows) - len(unique_rows),
        )

    async def clear_table(self, task: MigrationTask) -> int:
        """Delete every destination row of a fresh-start task."""
        if self.dry_run:
            self.logger.info(f"DRY RUN: Would clear {task.target_table}")
            return 0

        filter_column = task.natural_key[0] if task.natural_key else "id"
        deleted = await self.destination.delete_all(task.target_table, filter_column)
        self.logger.info(f"Cleared {deleted} existing records from {task.target_table}")
        return deleted
