"""Configuration models for migration system."""

from typing import Literal, Optional
from pydantic import BaseModel, Field

from .migration import PaginationStrategy


class SourceConfig(BaseModel):
    """ODBC source connection configuration."""
    dialect: Literal["oracle", "mssql"] = "oracle"
    driver: str = "Oracle in instantclient_21_13"
    host: str = ""
    port: int = 1521
    database: str = ""  # service name for Oracle
    username: str = ""
    password: str = ""
    dsn: Optional[str] = None
    trust_server_certificate: bool = True

    def connection_string(self) -> str:
        """Generate ODBC connection string."""
        if self.dsn:
            return f"DSN={self.dsn};UID={self.username};PWD={self.password};"

        if self.dialect == "mssql":
            return (
                f"DRIVER={{{self.driver}}};"
                f"SERVER={self.host},{self.port};"
                f"DATABASE={self.database};"
                f"UID={self.username};"
                f"PWD={self.password};"
                f"TrustServerCertificate={'yes' if self.trust_server_certificate else 'no'};"
            )

        return (
            f"DRIVER={{{self.driver}}};"
            f"DBQ={self.host}:{self.port}/{self.database};"
            f"UID={self.username};"
            f"PWD={self.password};"
        )


class SupabaseConfig(BaseModel):
    """Supabase configuration."""
    url: str
    key: str
    service_role_key: str


class MigrationConfig(BaseModel):
    """Complete migration configuration."""
    source: SourceConfig = Field(default_factory=SourceConfig)
    supabase: SupabaseConfig
    batch_size: int = Field(default=1000, ge=1, description="Rows per source page")
    max_retries: int = Field(default=3, ge=1, description="Attempts per batch before the task fails")
    retry_delay: float = Field(default=5.0, ge=0, description="Seconds between batch attempts")
    checkpoint_file: Optional[str] = Field(default="migration_checkpoint.json", description="Checkpoint document path")
    max_concurrent_tables: int = Field(default=2, ge=1, description="Tables migrated at once")
    max_concurrent_batches: int = Field(default=4, ge=1, description="Batches in flight across all tables")
    pagination_strategy: Optional[PaginationStrategy] = Field(default=None, description="Pinned strategy, auto-selected when unset")
    cursor_column: Optional[str] = Field(default=None, description="Default cursor column for cursor pagination")
    batch_rate_limit: int = Field(default=10, ge=1, description="Batches started per second")
    progress_interval: float = Field(default=30.0, gt=0, description="Seconds between progress reports")
    log_file: Optional[str] = Field(default="migration.log", description="Log file, None to log to console only")
    dry_run: bool = Field(default=False, description="Run in dry-run mode without making changes")
    show_progress: bool = Field(default=True, description="Show per-table progress bars")
