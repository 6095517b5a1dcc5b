"""Shared test helpers: project fixtures on disk and in-memory storage fakes."""

from __future__ import annotations

import json
import stat
from pathlib import Path
from typing import Any, Dict, List, Optional


def write_prd(
    project: Path,
    passes: List[bool],
    branch: Optional[str] = "ralph/feature-x",
    name: str = "prd.json",
) -> Path:
    data: Dict[str, Any] = {
        "project": "demo",
        "userStories": [
            {"id": f"US-{i + 1:03d}", "title": f"Story {i + 1}", "priority": i + 1, "passes": p}
            for i, p in enumerate(passes)
        ],
    }
    if branch is not None:
        data["branchName"] = branch
    path = project / name
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return path


def make_executable(bin_dir: Path, name: str, script: str = "exit 0\n") -> Path:
    bin_dir.mkdir(parents=True, exist_ok=True)
    path = bin_dir / name
    path.write_text("#!/bin/sh\n" + script, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


class MemoryProgressLog:
    def __init__(self, text: Optional[str] = None) -> None:
        self.text = text

    def exists(self) -> bool:
        return self.text is not None

    def create(self, text: str) -> None:
        assert self.text is None, "create() on an existing log"
        self.text = text

    def append(self, text: str) -> None:
        assert self.text is not None, "append() before create()"
        self.text += text

    def lines(self) -> List[str]:
        return (self.text or "").splitlines()


class MemoryMarkerStore:
    def __init__(self, value: Optional[str] = None) -> None:
        self.value = value
        self.writes: List[str] = []

    def exists(self) -> bool:
        return self.value is not None

    def get(self) -> Optional[str]:
        return self.value

    def set(self, value: str) -> None:
        self.value = value
        self.writes.append(value)
