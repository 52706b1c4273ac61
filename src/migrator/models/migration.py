"""Migration data models."""

import inspect
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


Row = Dict[str, Any]
Resolver = Callable[[Any], Optional[Any]]


class PaginationStrategy(str, Enum):
    """Paging technique used to read a source query."""
    ROWNUM = "rownum"
    OFFSET = "offset"
    CURSOR = "cursor"


class ResumeStrategy(str, Enum):
    """How a batch is written when the destination may already hold rows."""
    SKIP_EXISTING = "skip-existing"
    UPSERT = "upsert"
    FRESH_START = "fresh-start"
    APPEND_ONLY = "append-only"


class SimpleTransform:
    """Row transform that needs nothing but the source row."""

    def __init__(self, fn: Callable[[Row], Row]):
        self.fn = fn

    async def apply(self, row: Row, resolvers: Dict[str, Resolver]) -> Row:
        return self.fn(row)


class ResolvingTransform:
    """Row transform that receives the task's foreign key resolvers.

    The wrapped function may be a plain function or a coroutine function.
    """

    def __init__(self, fn: Callable[[Row, Dict[str, Resolver]], Union[Row, Awaitable[Row]]]):
        self.fn = fn

    async def apply(self, row: Row, resolvers: Dict[str, Resolver]) -> Row:
        result = self.fn(row, resolvers)
        if inspect.isawaitable(result):
            result = await result
        return result


Transform = Union[SimpleTransform, ResolvingTransform]


class MigrationTask(BaseModel):
    """A unit of migration work: one source query loaded into one table."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    task_id: str = ""
    source_query: str
    target_table: str
    transform: Optional[Transform] = None
    priority: int = 0  # lower runs earlier
    depends_on: List[str] = Field(default_factory=list)
    pagination_strategy: Optional[PaginationStrategy] = None
    cursor_column: Optional[str] = None
    order_by: Optional[str] = None
    max_concurrent_batches: Optional[int] = Field(default=None, ge=1)
    batch_size: Optional[int] = Field(default=None, ge=1)
    resume_strategy: ResumeStrategy = ResumeStrategy.SKIP_EXISTING
    natural_key: List[str] = Field(default_factory=list)
    required_resolvers: Optional[List[str]] = None

    @model_validator(mode="before")
    @classmethod
    def default_task_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("task_id") and data.get("target_table"):
            data = {**data, "task_id": data["target_table"]}
        return data


class TableProgress(BaseModel):
    """Durable progress of one migration task."""
    last_processed_offset: int = 0
    last_cursor_value: Optional[Any] = None
    cursor_value_type: Optional[str] = None  # datetime, date or decimal token
    total_processed: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    is_complete: bool = False
    table_cleared: bool = False  # fresh-start delete already issued
    last_record: Optional[Dict[str, Any]] = None
    updated_at: Optional[datetime] = None


class Checkpoint(BaseModel):
    """Full durable snapshot of a migration run."""
    table_progress: Dict[str, TableProgress] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.now)


class PaginationContext(BaseModel):
    """Description of a single page request."""
    strategy: PaginationStrategy
    batch_size: int = Field(ge=1)
    offset: int = 0
    cursor_column: Optional[str] = None
    last_cursor_value: Optional[Any] = None
    order_by: Optional[str] = None
    dialect: str = "oracle"


class ResolvedPagination(BaseModel):
    """Pagination settings chosen for a task."""
    strategy: PaginationStrategy
    cursor_column: Optional[str] = None
    order_by: Optional[str] = None


class SourcePage(BaseModel):
    """One page of rows read from the source."""
    rows: List[Row] = Field(default_factory=list)
    has_more: bool = False
    last_cursor_value: Optional[Any] = None


class BatchJob(BaseModel):
    """A single page of work for the batch executor."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    task: MigrationTask
    batch_number: int
    offset: int = 0
    batch_size: int
    pagination: ResolvedPagination
    last_cursor_value: Optional[Any] = None


class WriteResult(BaseModel):
    """Row counts reported by a destination write."""
    inserted: int = 0
    updated: int = 0
    skipped: int = 0

    def __add__(self, other: "WriteResult") -> "WriteResult":
        return WriteResult(
            inserted=self.inserted + other.inserted,
            updated=self.updated + other.updated,
            skipped=self.skipped + other.skipped,
        )


class BatchResult(BaseModel):
    """Outcome of one executed batch."""
    batch_number: int
    offset: int = 0
    source_rows: int = 0
    write: WriteResult = Field(default_factory=WriteResult)
    last_cursor_value: Optional[Any] = None
    last_record: Optional[Dict[str, Any]] = None
    finished: bool = False


class ResolverSpec(BaseModel):
    """A named code -> id lookup backed by a destination table."""
    name: str
    table: str
    code_column: str = "code"
    id_column: str = "id"


class MigrationProgress(BaseModel):
    """Snapshot used for periodic progress reporting."""
    total_tables: int = 0
    completed_tables: int = 0
    total_rows: int = 0
    active_batches: int = 0
    queued_batches: int = 0


class DegradationEvent(BaseModel):
    """A component fell back to degraded behaviour instead of failing."""
    component: str
    message: str
    created_at: datetime = Field(default_factory=datetime.now)
