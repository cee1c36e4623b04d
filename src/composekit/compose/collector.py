"""Per-cycle sink for compose output lines."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass(frozen=True)
class LogLine:
    """A single output line and the stream it came from."""

    content: str
    is_stderr: bool
    timestamp: datetime


@dataclass
class LogLineCollector:
    """Append-only collector of stdout and stderr lines in arrival order.

    One collector is created per command invocation and dropped afterwards;
    it is never shared between concurrent cycles.
    """

    entries: list[LogLine] = field(default_factory=list)
    stdout_count: int = 0
    stderr_count: int = 0

    def accept(self, line: str, is_stderr: bool, timestamp: datetime | None = None) -> None:
        """Record a line emitted by the running process."""
        if is_stderr:
            self.stderr_count += 1
        else:
            self.stdout_count += 1
        self.entries.append(
            LogLine(
                content=line.rstrip("\r\n"),
                is_stderr=is_stderr,
                timestamp=timestamp or datetime.now(timezone.utc),
            )
        )

    def lines(self) -> list[str]:
        """Return every collected line, stdout and stderr interleaved."""
        return [entry.content for entry in self.entries]

    def stdout_lines(self) -> list[str]:
        return [entry.content for entry in self.entries if not entry.is_stderr]

    def stderr_lines(self) -> list[str]:
        return [entry.content for entry in self.entries if entry.is_stderr]

    def __len__(self) -> int:
        return len(self.entries)
