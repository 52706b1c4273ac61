"""Exceptions raised by the migration engine."""

from typing import List, Optional


class MigrationError(Exception):
    """Terminal migration failure."""


class ConfigurationError(MigrationError):
    """Invalid task or engine configuration, raised before any batch runs."""


class MigrationCancelled(MigrationError):
    """The run was interrupted and stopped admitting new batches."""


class ReferenceTableError(MigrationError):
    """A reference table or one of its columns is missing at the destination."""


class BatchError(MigrationError):
    """A batch failed after exhausting its retries."""

    def __init__(self, table: str, batch_number: int, offset: int, cause: Exception):
        self.table = table
        self.batch_number = batch_number
        self.offset = offset
        self.cause = cause
        super().__init__(
            f"Batch {batch_number} for table {table} (offset {offset}) failed: {cause}"
        )


class GroupFailedError(MigrationError):
    """One or more tasks of a priority group failed."""

    def __init__(self, priority: int, failed_tasks: List[str], total_tasks: int,
                 errors: Optional[List[BaseException]] = None):
        self.priority = priority
        self.failed_tasks = failed_tasks
        self.total_tasks = total_tasks
        self.errors = errors or []
        super().__init__(
            f"Priority group {priority} failed: {len(failed_tasks)} of {total_tasks} "
            f"tasks failed ({', '.join(failed_tasks)})"
        )


class TaskFailedError(MigrationError):
    """A task stopped after one of its batches failed."""

    def __init__(self, task_id: str, cause: BaseException):
        self.task_id = task_id
        self.cause = cause
        super().__init__(f"Task {task_id} failed: {cause}")
