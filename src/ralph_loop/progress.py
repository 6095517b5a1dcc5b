"""Progress log (ralph-progress.txt).

The progress log is an append-only, human-readable history shared by the
driver and the agent: the driver writes a header, a line per iteration event
and a ``Resumed:`` marker on each later run, and the agent appends its own
learnings in between. Several runs against the same project accumulate in
one file.

The loop talks to the log through the :class:`ProgressLog` protocol so it can
be exercised against an in-memory fake.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol

PROGRESS_TITLE = "# Ralph Progress Log"
SEPARATOR = "---"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class ProgressLog(Protocol):
    """Append-only log storage."""

    def exists(self) -> bool:
        ...

    def create(self, text: str) -> None:
        """Create the log with initial content (replacing nothing)."""
        ...

    def append(self, text: str) -> None:
        ...


class FileProgressLog:
    """ProgressLog backed by a text file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        return self.path.exists()

    def create(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # "x" so a log that appeared in the meantime is never truncated.
        with open(self.path, "x", encoding="utf-8") as fh:
            fh.write(text)

    def append(self, text: str) -> None:
        with open(self.path, "a", encoding="utf-8") as fh:
            fh.write(text)

    def __repr__(self) -> str:
        return f"FileProgressLog({str(self.path)!r})"


def timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def format_header(project_dir: Path, started: str) -> str:
    return (
        f"{PROGRESS_TITLE}\n"
        f"Started: {started}\n"
        f"Project: {project_dir}\n"
        f"{SEPARATOR}\n"
    )


def format_resumed(resumed: str) -> str:
    return f"\n{SEPARATOR}\nResumed: {resumed}\n"


def start_or_resume(log: ProgressLog, project_dir: Path, now: str) -> bool:
    """Write the header to a new log or a resume marker to an existing one.

    Returns:
        True if the log already existed (the run is a resume).
    """
    if log.exists():
        log.append(format_resumed(now))
        return True
    log.create(format_header(project_dir, now))
    return False


def log_event(log: ProgressLog, now: str, message: str) -> None:
    """Append one timestamped event line."""
    log.append(f"[{now}] {message}\n")
