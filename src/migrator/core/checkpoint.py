"""Durable per-task migration progress."""

import asyncio
import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from ..models.migration import Checkpoint, MigrationProgress, TableProgress
from ..utils.logger import MigrationLogger
from .concurrency import ConcurrencyLimiter
from .exceptions import ConfigurationError


class CheckpointStore:
    """Owns the checkpoint document and serializes every write to it.

    Each ``save`` re-reads the document, replaces a single task entry and
    writes the result atomically, all under one lock, so concurrent tasks
    never clobber each other's entries. A store without a path keeps
    progress in memory only.
    """

    def __init__(self, path: Optional[Union[str, Path]], logger: MigrationLogger):
        self.path = Path(path) if path else None
        if self.path is not None and self.path.is_dir():
            raise ConfigurationError(
                f"Checkpoint path {self.path} is a directory, expected a file name"
            )
        self.logger = logger
        self.checkpoint = Checkpoint()
        self._lock = asyncio.Lock()

    @staticmethod
    def load(path: Optional[Union[str, Path]], logger: MigrationLogger) -> Checkpoint:
        """Read a checkpoint; a missing or malformed file yields an empty one."""
        if not path:
            return Checkpoint()

        try:
            with open(path, "r", encoding="utf-8") as f:
                checkpoint = Checkpoint.model_validate(json.load(f))
        except FileNotFoundError:
            logger.degraded("checkpoint", f"No checkpoint found at {path}, starting fresh")
            return Checkpoint()
        except (OSError, ValueError, ValidationError) as e:
            logger.degraded("checkpoint", f"Could not load checkpoint {path}: {e}, starting fresh")
            return Checkpoint()

        total = sum(p.total_processed for p in checkpoint.table_progress.values())
        logger.info(
            f"Loaded checkpoint: {len(checkpoint.table_progress)} tables, {total} rows previously processed"
        )
        return checkpoint

    def open(self) -> Checkpoint:
        """Load the document into memory and return it."""
        self.checkpoint = self.load(self.path, self.logger)
        return self.checkpoint

    def get(self, task_id: str) -> Optional[TableProgress]:
        progress = self.checkpoint.table_progress.get(task_id)
        return progress.model_copy(deep=True) if progress else None

    def is_complete(self, task_id: str) -> bool:
        progress = self.checkpoint.table_progress.get(task_id)
        return bool(progress and progress.is_complete)

    async def save(self, task_id: str, progress: TableProgress) -> None:
        """Persist one task's progress; I/O errors are logged, never raised."""
        entry = progress.model_copy(deep=True)
        entry.updated_at = datetime.now()

        async with self._lock:
            self.checkpoint.table_progress[task_id] = entry
            self.checkpoint.timestamp = datetime.now()

            if self.path is None:
                return

            try:
                await asyncio.to_thread(self._read_modify_write, task_id, entry)
            except Exception as e:
                self.logger.degraded("checkpoint", f"Could not save checkpoint for {task_id}: {e}")

    async def mark_complete(self, task_id: str) -> None:
        progress = self.get(task_id) or TableProgress()
        if progress.is_complete:
            return
        progress.is_complete = True
        await self.save(task_id, progress)
        self.logger.info(f"Marked {task_id} complete: {progress.total_processed} rows")

    async def flush(self) -> None:
        """Write the whole in-memory checkpoint."""
        async with self._lock:
            if self.path is None:
                return
            try:
                await asyncio.to_thread(self._write, self.checkpoint)
            except Exception as e:
                self.logger.degraded("checkpoint", f"Could not flush checkpoint: {e}")

    async def clear(self) -> None:
        """Delete the checkpoint so the next run starts fresh."""
        async with self._lock:
            self.checkpoint = Checkpoint()
            if self.path is None:
                return
            try:
                self.path.unlink(missing_ok=True)
                self.logger.info(f"Cleared checkpoint {self.path}")
            except OSError as e:
                self.logger.degraded("checkpoint", f"Could not delete checkpoint {self.path}: {e}")

    def _read_modify_write(self, task_id: str, entry: TableProgress) -> None:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = Checkpoint.model_validate(json.load(f))
        except (OSError, ValueError, ValidationError):
            document = Checkpoint()

        document.table_progress[task_id] = entry
        document.timestamp = datetime.now()
        self._write(document)

    def _write(self, document: Checkpoint) -> None:
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(document.model_dump_json(indent=2))
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise


def get_progress(checkpoint: Checkpoint, batch_limiter: Optional[ConcurrencyLimiter] = None) -> MigrationProgress:
    """Summarize a checkpoint for periodic reporting."""
    progress = checkpoint.table_progress.values()
    return MigrationProgress(
        total_tables=len(checkpoint.table_progress),
        completed_tables=sum(1 for p in progress if p.is_complete),
        total_rows=sum(p.total_processed for p in progress),
        active_batches=batch_limiter.active if batch_limiter else 0,
        queued_batches=batch_limiter.waiting if batch_limiter else 0,
    )
