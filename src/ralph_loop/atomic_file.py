"""Atomic file writes.

A rename is atomic when source and destination live on the same filesystem,
so writing to a sibling temp file and renaming it over the target means the
target is never seen half-written.
"""

from __future__ import annotations

from pathlib import Path


def atomic_write_text(path: Path, content: str, encoding: str = "utf-8") -> None:
    """Write content to file atomically using temp file + rename.

    Args:
        path: Target file path
        content: Text content to write (written verbatim, no newline added)
        encoding: File encoding (default: utf-8)

    Raises:
        OSError: If write or rename fails

    Example:
        >>> atomic_write_text(Path(".ralph-last-branch"), "ralph/feature-x")
    """
    temp_path = path.with_name(path.name + ".tmp")

    try:
        # newline="" keeps the content byte-for-byte on every platform.
        with open(temp_path, "w", encoding=encoding, newline="") as fh:
            fh.write(content)
        temp_path.replace(path)
    except OSError:
        temp_path.unlink(missing_ok=True)
        raise
