"""Run bookkeeping: branch tracking, archiving and progress-log setup.

Before the first iteration the driver reconciles this run with the previous
one. When prd.json names a different branch than the one recorded in
``.ralph-last-branch``, the previous run's prd.json and progress log are
copied into ``.ralph-archive/<date>-<branch>/`` so the new feature starts
from a clean history. Archiving and branch tracking are best-effort; only the
progress log setup is allowed to fail the run.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional, Protocol

from .atomic_file import atomic_write_text
from .config import Config, RunConfig
from .prd import TaskListResult, load_task_list
from .progress import ProgressLog, start_or_resume

logger = logging.getLogger(__name__)


class MarkerStore(Protocol):
    """Single-value store for the last seen branch name."""

    def exists(self) -> bool:
        ...

    def get(self) -> Optional[str]:
        ...

    def set(self, value: str) -> None:
        ...


class FileMarkerStore:
    """MarkerStore backed by a one-line text file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        return self.path.exists()

    def get(self) -> Optional[str]:
        if not self.path.exists():
            return None
        value = self.path.read_text(encoding="utf-8-sig").strip()
        return value or None

    def set(self, value: str) -> None:
        # No trailing newline: the file holds exactly the branch name.
        atomic_write_text(self.path, value)

    def __repr__(self) -> str:
        return f"FileMarkerStore({str(self.path)!r})"


@dataclass
class BookkeepingReport:
    branch_name: Optional[str]
    archived_to: Optional[Path]
    resumed: bool


def strip_branch_prefix(branch: str, prefix: str) -> str:
    if prefix and branch.startswith(prefix) and len(branch) > len(prefix):
        return branch[len(prefix):]
    return branch


def archive_folder_name(last_branch: str, prefix: str, today: date) -> str:
    """``<YYYY-MM-DD>-<branch without prefix>``, with path separators flattened."""
    folder = strip_branch_prefix(last_branch, prefix).replace("/", "-").replace("\\", "-")
    return f"{today.isoformat()}-{folder}"


def pending_archive(
    current: Optional[str], last: Optional[str], prefix: str, today: date
) -> Optional[str]:
    """Return the archive folder name if the branch changed since the last run."""
    if current and last and current != last:
        return archive_folder_name(last, prefix, today)
    return None


def archive_files(archive_root: Path, folder: str, files: list[Path]) -> Path:
    """Copy existing files into ``archive_root/folder``, keeping their names.

    Raises:
        OSError: If the folder cannot be created or a copy fails.
    """
    target = archive_root / folder
    target.mkdir(parents=True, exist_ok=True)
    for src in files:
        if src.is_file():
            shutil.copy2(src, target / src.name)
            logger.debug("Archived %s to %s", src.name, target)
    return target


def _read_marker(markers: MarkerStore) -> Optional[str]:
    try:
        return markers.get()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Could not read last branch marker: %s", e)
        return None


def archive_previous_run(
    run: RunConfig,
    cfg: Config,
    tasks: TaskListResult,
    markers: MarkerStore,
    today: Optional[date] = None,
) -> Optional[Path]:
    """Archive the previous run's files if the branch changed. Best-effort."""
    prd_path = run.path(cfg.files.prd)
    if not prd_path.exists() or not markers.exists():
        return None

    if not tasks.ok:
        logger.warning("Skipping archive check: %s", tasks.error)
        return None

    last_branch = _read_marker(markers)
    folder = pending_archive(
        tasks.task_list.branch_name,
        last_branch,
        cfg.git.branch_prefix,
        today or date.today(),
    )
    if folder is None:
        return None

    try:
        target = archive_files(
            run.path(cfg.files.archive_dir),
            folder,
            [prd_path, run.path(cfg.files.progress)],
        )
    except OSError as e:
        logger.warning("Failed to archive previous run (%s): %s", last_branch, e)
        return None
    logger.info("Archived previous run (%s) to %s", last_branch, target)
    return target


def record_branch(tasks: TaskListResult, markers: MarkerStore) -> Optional[str]:
    """Remember the current branch for the next run. Best-effort."""
    if not tasks.ok or not tasks.task_list.branch_name:
        return None
    branch = tasks.task_list.branch_name
    try:
        markers.set(branch)
    except OSError as e:
        logger.warning("Failed to record branch %s: %s", branch, e)
        return None
    return branch


def prepare_run(
    run: RunConfig,
    cfg: Config,
    progress: ProgressLog,
    markers: MarkerStore,
    now: str,
    today: Optional[date] = None,
) -> BookkeepingReport:
    """Archive on branch change, record the branch, then open the progress log.

    Raises:
        OSError: If the progress log cannot be created or appended to.
    """
    tasks = load_task_list(run.path(cfg.files.prd))

    archived_to = archive_previous_run(run, cfg, tasks, markers, today=today)
    branch = record_branch(tasks, markers)
    resumed = start_or_resume(progress, run.project_dir, now)

    return BookkeepingReport(branch_name=branch, archived_to=archived_to, resumed=resumed)
