"""Simulation event log.

Every fork, exit, reap and adoption the engine performs is recorded as
a structured ``LogEntry``.  The log is the console panel's data source:
an append-only, causally ordered record of what happened to which PID.

- **LogLevel** — how the event should be presented (INFO < ERROR).
- **LogEntry** — a single immutable record.
- **EventLog** — the append-only buffer with simple filtering.

Design choices:
    - **IntEnum for levels** so minimum-level filtering is a ``>=``.
    - **Frozen dataclass for entries** — a record never changes once
      written.
    - **Logical timestamps** — entries carry the tree's tick, not wall
      clock time, so replays are deterministic.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class LogLevel(IntEnum):
    """Presentation levels for log entries.

    SUCCESS sits between INFO and WARNING: a fork or a clean reap is
    good news, a zombie or an orphan is worth a warning.
    """

    INFO = 0
    SUCCESS = 1
    WARNING = 2
    ERROR = 3


@dataclass(frozen=True)
class LogEntry:
    """A single simulation event.

    Attributes:
        seq: Position in the log (0-based, gap-free).
        timestamp: Logical tick at which the event happened.
        level: How the event should be presented.
        message: Human-readable description of what happened.
        pid: The PID the event is about, if any.
        source: The component that emitted the event.
        os_explanation: Optional operating-systems commentary.
        dsa_explanation: Optional data-structures commentary.

    """

    seq: int
    timestamp: int
    level: LogLevel
    message: str
    pid: int | None = None
    source: str = "tree"
    os_explanation: str | None = None
    dsa_explanation: str | None = None

    def __str__(self) -> str:
        """Format as ``[t=N] LEVEL source: message``."""
        return f"[t={self.timestamp}] {self.level.name} {self.source}: {self.message}"

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-ready dict."""
        return {
            "seq": self.seq,
            "timestamp": self.timestamp,
            "level": self.level.name.lower(),
            "message": self.message,
            "pid": self.pid,
            "source": self.source,
            "os_explanation": self.os_explanation,
            "dsa_explanation": self.dsa_explanation,
        }


class EventLog:
    """Append-only buffer of ``LogEntry`` records."""

    def __init__(self) -> None:
        """Create an empty log."""
        self._entries: list[LogEntry] = []

    @property
    def entries(self) -> list[LogEntry]:
        """Return all entries in causal order."""
        return list(self._entries)

    def __len__(self) -> int:
        """Return the number of entries."""
        return len(self._entries)

    def log(
        self,
        level: LogLevel,
        message: str,
        *,
        timestamp: int,
        pid: int | None = None,
        source: str = "tree",
        os_explanation: str | None = None,
        dsa_explanation: str | None = None,
    ) -> LogEntry:
        """Append a new entry and return it.

        Args:
            level: Presentation level of the event.
            message: Human-readable event description.
            timestamp: Logical tick of the event.
            pid: PID the event concerns.
            source: Component that generated the event.
            os_explanation: Optional OS commentary for the UI.
            dsa_explanation: Optional data-structures commentary.

        """
        entry = LogEntry(
            seq=len(self._entries),
            timestamp=timestamp,
            level=level,
            message=message,
            pid=pid,
            source=source,
            os_explanation=os_explanation,
            dsa_explanation=dsa_explanation,
        )
        self._entries.append(entry)
        return entry

    def since(self, seq: int) -> list[LogEntry]:
        """Return the entries appended at or after position *seq*."""
        return self._entries[seq:]

    def filter(
        self,
        *,
        min_level: LogLevel | None = None,
        source: str | None = None,
        pid: int | None = None,
    ) -> list[LogEntry]:
        """Return entries matching every given criterion.

        Args:
            min_level: If set, only entries at or above this level.
            source: If set, only entries from this component.
            pid: If set, only entries about this PID.

        Returns:
            A filtered list of log entries.

        """
        result = self._entries
        if min_level is not None:
            result = [e for e in result if e.level >= min_level]
        if source is not None:
            result = [e for e in result if e.source == source]
        if pid is not None:
            result = [e for e in result if e.pid == pid]
        return result if result is not self._entries else list(result)

    def truncate(self, length: int) -> None:
        """Drop entries past *length*.

        Only used to roll back a failed transaction, before any caller
        has seen the dropped entries.
        """
        del self._entries[length:]
