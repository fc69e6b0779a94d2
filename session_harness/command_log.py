"""Command log for Session Harness scenarios.

Records one entry per harness command (request, authenticate, stub, wait,
expect, logout) so a failing scenario can show what led up to it. In
verbose mode entries are printed as they happen.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .formatting import truncate_text


console = Console()

STATUS_STYLES = {
    "ok": "green",
    "fail": "red",
    "info": "dim",
}


@dataclass
class CommandEntry:
    """A single logged harness command."""

    name: str
    message: str
    status: str = "ok"  # "ok", "fail", "info"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "message": self.message,
            "status": self.status,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        return f"{self.name} {self.message}"


class CommandLog:
    """Ordered log of commands issued within one scenario."""

    def __init__(
        self,
        scenario: str = "",
        verbose: bool = False,
        out: Optional[Console] = None,
    ):
        self.scenario = scenario
        self.verbose = verbose
        self.console = out or console
        self.entries: List[CommandEntry] = []

    def add(self, name: str, message: str, status: str = "ok") -> CommandEntry:
        """Append an entry, echoing it when verbose."""
        if status not in STATUS_STYLES:
            raise ValueError(f"Unknown command status: {status}")

        entry = CommandEntry(name=name, message=message, status=status)
        self.entries.append(entry)

        if self.verbose:
            style = STATUS_STYLES[status]
            self.console.print(
                f"[{style}]{name:>12}[/{style}] {escape(truncate_text(message, 100))}",
                highlight=False,
            )
        return entry

    def tail(self, count: int = 5) -> List[CommandEntry]:
        """Last ``count`` entries, oldest first."""
        if count <= 0:
            return []
        return self.entries[-count:]

    def failures(self) -> List[CommandEntry]:
        return [e for e in self.entries if e.status == "fail"]

    def clear(self) -> None:
        self.entries.clear()

    def render(self, max_rows: int = 50) -> None:
        """Print the log as a table."""
        title = f"Command Log: {self.scenario}" if self.scenario else "Command Log"
        table = Table(title=title, show_header=True)
        table.add_column("#", style="dim", justify="right")
        table.add_column("Command", style="cyan")
        table.add_column("Details")
        table.add_column("Status")

        rows = self.entries[-max_rows:] if max_rows > 0 else self.entries
        offset = len(self.entries) - len(rows)
        for i, entry in enumerate(rows, start=offset + 1):
            style = STATUS_STYLES[entry.status]
            table.add_row(
                str(i),
                entry.name,
                escape(truncate_text(entry.message, 80)),
                f"[{style}]{entry.status}[/{style}]",
            )

        self.console.print(table)

    def __len__(self) -> int:
        return len(self.entries)
