"""Path validation and working-directory helpers.

Configured file names (``[files]`` in ralph.toml) are user input: they must
resolve inside the project directory, so ``../../etc/passwd`` style values
are rejected before anything reads or writes them.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

logger = logging.getLogger(__name__)


def resolve_project_dir(value: Union[str, Path]) -> Path:
    """Return the absolute, symlink-resolved form of a project directory."""
    return Path(value).expanduser().resolve(strict=False)


def validate_project_path(project_root: Path, user_path: Union[str, Path]) -> Path:
    """Validate that user_path is within project_root (prevents path traversal).

    Args:
        project_root: The root directory of the project (trusted boundary)
        user_path: Path provided by user (untrusted input)

    Returns:
        The validated, resolved path (absolute, within project_root)

    Raises:
        ValueError: If path is outside project_root

    Example:
        >>> root = Path("/my/project")
        >>> validate_project_path(root, "prd.json")
        PosixPath('/my/project/prd.json')
        >>> validate_project_path(root, "../../../etc/passwd")
        ValueError: Path outside project root: ../../../etc/passwd
    """
    user_path = Path(user_path) if isinstance(user_path, str) else user_path

    try:
        resolved = (project_root / user_path).resolve(strict=False)
    except OSError as e:
        logger.debug("Path resolution failed: %s", e)
        resolved = (project_root / user_path).absolute()

    try:
        resolved.relative_to(project_root.resolve())
    except ValueError:
        raise ValueError(f"Path outside project root: {user_path}")

    return resolved


@contextmanager
def working_directory(path: Path) -> Iterator[Path]:
    """Change the process working directory for the duration of the block.

    The previous directory is restored on every exit path, including
    exceptions raised inside the block.

    Example:
        >>> with working_directory(Path("/my/project")):
        ...     run_agent(...)
    """
    previous = Path.cwd()
    os.chdir(path)
    logger.debug("Changed working directory to %s", path)
    try:
        yield path
    finally:
        os.chdir(previous)
        logger.debug("Restored working directory to %s", previous)
