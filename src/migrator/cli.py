"""Command-line interface for the migration tool."""

import asyncio
import argparse
import importlib
import signal
import sys
from types import ModuleType
from typing import List, Optional, Tuple

from .core.checkpoint import CheckpointStore, get_progress
from .core.exceptions import MigrationCancelled, MigrationError
from .core.runner import run_migration
from .models.migration import MigrationTask
from .utils.config_loader import (
    load_config_from_env,
    create_sample_env_file,
    validate_config,
    config_warnings,
)
from .utils.logger import MigrationLogger


def load_task_module(path: Optional[str]) -> Tuple[List[MigrationTask], ModuleType]:
    """Resolve ``module:attr`` to a task list.

    ``attr`` may be a list of tasks or a callable returning one. With no
    path given the bundled location hierarchy is used.
    """
    if not path:
        from .transformers import location
        return location.location_tasks(), location

    module_name, _, attr = path.partition(":")
    module = importlib.import_module(module_name)
    target = getattr(module, attr or "TASKS")
    tasks = target() if callable(target) else target
    return list(tasks), module


class MigrationCLI:
    """Main CLI interface for migration operations."""

    def __init__(self, config_file: Optional[str] = None, validate: bool = True):
        try:
            self.config = load_config_from_env(config_file)
        except Exception as e:
            print(f"Failed to load configuration: {e}")
            sys.exit(1)

        if validate:
            # Validate configuration
            config_errors = validate_config(self.config)
            if config_errors:
                print("Configuration errors:")
                for error in config_errors:
                    print(f"  - {error}")
                sys.exit(1)

        self.logger = MigrationLogger(self.config.log_file)

    async def run_tasks(self, tasks_spec: Optional[str] = None, fresh: bool = False) -> None:
        """Run the task list, stopping gracefully on SIGINT/SIGTERM."""

        print("=== Starting Migration ===")
        print(f"Dry run mode: {self.config.dry_run}")

        tasks, module = load_task_module(tasks_spec)
        print(f"Loaded {len(tasks)} tasks")

        cancel_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._request_stop, cancel_event)
            except (NotImplementedError, RuntimeError):
                # Signal handlers are unavailable off the main thread and on Windows
                pass

        try:
            orchestrator = await run_migration(
                self.config,
                tasks,
                resolver_specs=getattr(module, "RESOLVERS", ()),
                table_resolvers=getattr(module, "TABLE_RESOLVERS", None),
                logger=self.logger,
                cancel_event=cancel_event,
                fresh=fresh,
            )
        except MigrationCancelled as e:
            print(f"\n🛑 Migration interrupted: {e}")
            print("Progress has been saved; run the same command again to resume.")
            sys.exit(1)
        except MigrationError as e:
            print(f"\n❌ Migration failed: {e}")
            sys.exit(1)

        progress = orchestrator.get_progress()
        print("\n=== Migration Complete ===")
        print(f"Tables completed: {progress.completed_tables}/{progress.total_tables}")
        print(f"Total rows processed: {progress.total_rows}")

        degradations = self.logger.degradations()
        if degradations:
            print(f"Degraded components: {len(degradations)}")
            for event in degradations:
                print(f"  - [{event.component}] {event.message}")

    def _request_stop(self, cancel_event: asyncio.Event) -> None:
        if not cancel_event.is_set():
            print("\n🛑 Stop requested, finishing in-flight batches...")
        cancel_event.set()

    def check_config(self) -> None:
        """Print the effective configuration and any warnings."""

        source = self.config.source
        print("=== Configuration ===")
        print(f"Source: {source.dialect} {source.dsn or f'{source.host}:{source.port}/{source.database}'}")
        print(f"Supabase: {self.config.supabase.url}")
        print(f"Batch size: {self.config.batch_size}")
        print(f"Concurrency: {self.config.max_concurrent_tables} tables, {self.config.max_concurrent_batches} batches")
        strategy = self.config.pagination_strategy.value if self.config.pagination_strategy else "auto"
        print(f"Pagination: {strategy}")
        print(f"Checkpoint file: {self.config.checkpoint_file}")

        for warning in config_warnings(self.config):
            print(f"⚠️  {warning}")

        print("Configuration is valid")

    def show_status(self) -> None:
        """Print per-table progress recorded in the checkpoint file."""

        checkpoint = CheckpointStore.load(self.config.checkpoint_file, self.logger)
        if not checkpoint.table_progress:
            print(f"No checkpoint progress found in {self.config.checkpoint_file}")
            return

        print(f"=== Checkpoint ({checkpoint.timestamp.isoformat()}) ===")
        for task_id, progress in checkpoint.table_progress.items():
            state = "complete" if progress.is_complete else "in progress"
            print(
                f"{task_id}: {state}, {progress.total_processed} rows "
                f"(inserted {progress.inserted}, updated {progress.updated}, skipped {progress.skipped})"
            )

        summary = get_progress(checkpoint)
        print(f"Tables completed: {summary.completed_tables}/{summary.total_tables}")

    async def reset(self) -> None:
        store = CheckpointStore(self.config.checkpoint_file, self.logger)
        await store.clear()
        print(f"Checkpoint cleared: {self.config.checkpoint_file}")


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""

    parser = argparse.ArgumentParser(description="Oracle to Supabase Migration Tool")
    parser.add_argument(
        "--config", "-c",
        type=str,
        help="Path to configuration file (defaults to .env in current directory)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Migration command
    migrate_parser = subparsers.add_parser("migrate", help="Run the migration task list")
    migrate_parser.add_argument(
        "--tasks", "-t",
        type=str,
        help="Task list as module:attr (default: bundled location hierarchy)"
    )
    migrate_parser.add_argument(
        "--fresh",
        action="store_true",
        help="Discard checkpoint progress before starting"
    )

    subparsers.add_parser("check-config", help="Validate configuration and show effective settings")

    env_parser = subparsers.add_parser("create-env", help="Create sample configuration file")
    env_parser.add_argument(
        "--output", "-o",
        type=str,
        default=".env.example",
        help="Where to write the sample file"
    )

    subparsers.add_parser("status", help="Show checkpoint progress")
    subparsers.add_parser("reset", help="Delete the checkpoint file")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    if args.command == "create-env":
        create_sample_env_file(args.output)
        print(f"Sample configuration created. Edit {args.output} and rename to .env")
        return

    # Checkpoint commands only need the checkpoint location
    cli = MigrationCLI(args.config, validate=args.command in ("migrate", "check-config"))

    if args.command == "migrate":
        asyncio.run(cli.run_tasks(args.tasks, fresh=args.fresh))
    elif args.command == "check-config":
        cli.check_config()
    elif args.command == "status":
        cli.show_status()
    elif args.command == "reset":
        asyncio.run(cli.reset())


if __name__ == "__main__":
    main()
