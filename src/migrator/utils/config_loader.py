"""Configuration loading utilities."""

import os
from typing import Optional, List
from pathlib import Path
from dotenv import load_dotenv

from ..models.config import MigrationConfig, SourceConfig, SupabaseConfig
from ..models.migration import PaginationStrategy


DEFAULT_CHECKPOINT_NAME = "migration_checkpoint.json"


def _int_env(key: str, default: int) -> int:
    value = os.getenv(key)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        print(f"Invalid number for {key}: {value}, using default: {default}")
        return default


def _float_env(key: str, default: float) -> float:
    value = os.getenv(key)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        print(f"Invalid number for {key}: {value}, using default: {default}")
        return default


def parse_pagination_strategy(value: Optional[str]) -> Optional[PaginationStrategy]:
    """Parse a strategy name; empty or ``auto`` means auto-selection."""
    if not value or value.lower() == "auto":
        return None
    try:
        return PaginationStrategy(value.lower())
    except ValueError:
        print(f"Invalid pagination strategy: {value}, using auto-selection")
        return None


def normalize_checkpoint_path(path: Optional[str]) -> Optional[str]:
    """Turn a directory-like checkpoint path into a file path inside it."""
    if not path:
        return path
    if path.endswith(("/", os.sep)) or Path(path).is_dir():
        return str(Path(path) / DEFAULT_CHECKPOINT_NAME)
    return path


def load_config_from_env(env_file: Optional[str] = None) -> MigrationConfig:
    """Load migration configuration from environment variables."""

    if env_file:
        load_dotenv(env_file)
    else:
        # Try to load from .env file in current directory
        env_path = Path(".env")
        if env_path.exists():
            load_dotenv(env_path)

    dialect = os.getenv("SOURCE_DIALECT", "oracle").lower()
    default_port = 1433 if dialect == "mssql" else 1521
    default_driver = "ODBC Driver 18 for SQL Server" if dialect == "mssql" else "Oracle in instantclient_21_13"

    # Source Configuration
    source_config = SourceConfig(
        dialect=dialect,
        driver=os.getenv("SOURCE_DRIVER", default_driver),
        host=os.getenv("SOURCE_HOST", ""),
        port=_int_env("SOURCE_PORT", default_port),
        database=os.getenv("SOURCE_DATABASE", ""),
        username=os.getenv("SOURCE_USERNAME", ""),
        password=os.getenv("SOURCE_PASSWORD", ""),
        dsn=os.getenv("SOURCE_DSN") or None,
        trust_server_certificate=os.getenv("SOURCE_TRUST_CERT", "true").lower() == "true"
    )

    # Supabase Configuration
    supabase_config = SupabaseConfig(
        url=os.getenv("SUPABASE_URL", ""),
        key=os.getenv("SUPABASE_ANON_KEY", ""),
        service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
    )

    # Migration settings
    return MigrationConfig(
        source=source_config,
        supabase=supabase_config,
        batch_size=_int_env("MIGRATION_BATCH_SIZE", 1000),
        max_retries=_int_env("MIGRATION_MAX_RETRIES", 3),
        retry_delay=_float_env("MIGRATION_RETRY_DELAY", 5.0),
        checkpoint_file=normalize_checkpoint_path(
            os.getenv("MIGRATION_CHECKPOINT_FILE", DEFAULT_CHECKPOINT_NAME)
        ),
        max_concurrent_tables=_int_env("MIGRATION_MAX_CONCURRENT_TABLES", 2),
        max_concurrent_batches=_int_env("MIGRATION_MAX_CONCURRENT_BATCHES", 4),
        pagination_strategy=parse_pagination_strategy(os.getenv("MIGRATION_PAGINATION_STRATEGY")),
        cursor_column=os.getenv("MIGRATION_CURSOR_COLUMN") or None,
        batch_rate_limit=_int_env("MIGRATION_BATCH_RATE_LIMIT", 10),
        progress_interval=_float_env("MIGRATION_PROGRESS_INTERVAL", 30.0),
        log_file=os.getenv("MIGRATION_LOG_FILE", "migration.log") or None,
        dry_run=os.getenv("MIGRATION_DRY_RUN", "false").lower() == "true"
    )


def create_sample_env_file(file_path: str = ".env.example") -> None:
    """Create a sample environment file with all required variables."""

    sample_content = """# Source Database Configuration (oracle or mssql)
SOURCE_DIALECT=oracle
SOURCE_DRIVER=Oracle in instantclient_21_13
SOURCE_HOST=your-oracle-host
SOURCE_PORT=1521
SOURCE_DATABASE=your-service-name
SOURCE_USERNAME=your-username
SOURCE_PASSWORD=your-password
# SOURCE_DSN=optional-odbc-dsn

# Supabase Configuration
SUPABASE_URL=https://your-project.supabase.co
SUPABASE_ANON_KEY=your-anon-key
SUPABASE_SERVICE_ROLE_KEY=your-service-role-key

# Migration Settings
MIGRATION_BATCH_SIZE=1000
MIGRATION_MAX_RETRIES=3
MIGRATION_RETRY_DELAY=5
MIGRATION_CHECKPOINT_FILE=migration_checkpoint.json
MIGRATION_MAX_CONCURRENT_TABLES=2
MIGRATION_MAX_CONCURRENT_BATCHES=4
MIGRATION_BATCH_RATE_LIMIT=10
# rownum, offset, cursor or auto
MIGRATION_PAGINATION_STRATEGY=auto
# MIGRATION_CURSOR_COLUMN=ID
MIGRATION_LOG_FILE=migration.log
MIGRATION_DRY_RUN=false

# Query window used by the bundled queries
MIGRATION_START_DATE=01-JANUARY-2025
MIGRATION_END_DATE=31-DECEMBER-2025
"""

    with open(file_path, "w") as f:
        f.write(sample_content)

    print(f"Sample environment file created: {file_path}")


def validate_config(config: MigrationConfig) -> List[str]:
    """Validate that all required configuration values are present."""

    errors = []

    # Check source config
    if not config.source.dsn:
        if not config.source.host:
            errors.append("SOURCE_HOST is required")
        if not config.source.database:
            errors.append("SOURCE_DATABASE is required")
    if not config.source.username:
        errors.append("SOURCE_USERNAME is required")
    if not config.source.password:
        errors.append("SOURCE_PASSWORD is required")

    # Check Supabase config
    if not config.supabase.url:
        errors.append("SUPABASE_URL is required")
    if not config.supabase.service_role_key:
        errors.append("SUPABASE_SERVICE_ROLE_KEY is required")

    # Checkpoint must name a file
    if config.checkpoint_file and Path(config.checkpoint_file).is_dir():
        errors.append(f"MIGRATION_CHECKPOINT_FILE points to a directory: {config.checkpoint_file}")

    return errors


def config_warnings(config: MigrationConfig) -> List[str]:
    """Settings that are valid but likely to cause trouble."""

    warnings = []

    if config.batch_size > 10000:
        warnings.append("Large batch size detected. Consider using smaller batches for better memory usage.")

    if config.max_concurrent_batches > 10:
        warnings.append("High concurrency detected. Monitor database connections and performance.")

    if config.pagination_strategy == PaginationStrategy.CURSOR and not config.cursor_column:
        warnings.append(
            "Cursor pagination selected but no cursor column specified. Tasks must set cursor_column."
        )

    return warnings
