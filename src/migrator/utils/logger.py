"""Console and file logging for migration runs."""

from datetime import datetime
from typing import List, Optional

from ..models.migration import DegradationEvent


class MigrationLogger:
    """Prints timestamped log lines and appends them to a log file.

    Degradations (a component falling back instead of failing) are also
    recorded on ``events`` so callers can inspect what was degraded.
    """

    def __init__(self, log_file: Optional[str] = "migration.log", echo: bool = True):
        self.log_file = log_file
        self.echo = echo
        self.events: List[DegradationEvent] = []

    def log(self, level: str, message: str) -> None:
        line = f"{datetime.now().isoformat()} - {level.upper()} - {message}"

        if self.echo:
            print(line)

        if not self.log_file:
            return

        try:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            print(f"Failed to write to log file: {e}")

    def info(self, message: str) -> None:
        self.log("info", message)

    def warn(self, message: str) -> None:
        self.log("warn", message)

    def error(self, message: str) -> None:
        self.log("error", message)

    def degraded(self, component: str, message: str) -> DegradationEvent:
        """Log a warning and record it as a degradation event."""
        event = DegradationEvent(component=component, message=message)
        self.events.append(event)
        self.warn(f"[{component}] {message}")
        return event

    def degradations(self, component: Optional[str] = None) -> List[DegradationEvent]:
        if component is None:
            return list(self.events)
        return [e for e in self.events if e.component == component]
