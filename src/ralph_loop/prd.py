"""Task list (prd.json) model and parsing.

The driver only consumes a few fields of prd.json::

    {
      "branchName": "ralph/feature-x",
      "userStories": [
        {"id": "US-001", "title": "...", "priority": 1, "passes": false}
      ]
    }

Reads never raise for missing or malformed input. ``load_task_list`` returns
a :class:`TaskListResult` that either holds the parsed task list or an error
message, and every call site decides what a failed read means for it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

BRANCH_KEY = "branchName"
STORIES_KEY = "userStories"


@dataclass(frozen=True)
class Story:
    id: str
    passes: bool
    title: str = ""
    priority: Optional[int] = None


@dataclass(frozen=True)
class TaskList:
    branch_name: Optional[str]
    stories: List[Story] = field(default_factory=list)

    def counts(self) -> Tuple[int, int]:
        """Return (passed, total)."""
        passed = sum(1 for s in self.stories if s.passes)
        return passed, len(self.stories)

    @property
    def complete(self) -> bool:
        # An empty story list is vacuously complete.
        passed, total = self.counts()
        return passed == total

    def next_story(self) -> Optional[Story]:
        """Highest-priority story that is not passing yet (lowest number wins)."""
        remaining = [s for s in self.stories if not s.passes]
        if not remaining:
            return None
        return min(
            remaining,
            key=lambda s: s.priority if s.priority is not None else 10_000,
        )


@dataclass(frozen=True)
class TaskListResult:
    """Outcome of reading a task list: ``task_list`` on success, else ``error``."""

    task_list: Optional[TaskList] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.task_list is not None


def _parse_branch(raw: Any) -> Optional[str]:
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    return None


def _parse_priority(raw: Any) -> Optional[int]:
    if isinstance(raw, bool):
        return None
    # 1e999 in JSON decodes to float infinity.
    try:
        return int(raw)
    except (TypeError, ValueError, OverflowError):
        return None


def _parse_story(index: int, raw: Dict[str, Any]) -> Story:
    sid = raw.get("id", raw.get("story_id"))
    return Story(
        id=str(sid) if sid is not None else f"#{index + 1}",
        # Only a literal JSON true counts; "true", 1 and friends do not.
        passes=raw.get("passes") is True,
        title=str(raw.get("title", "") or ""),
        priority=_parse_priority(raw.get("priority")),
    )


def parse_task_list(text: str) -> TaskListResult:
    """Parse prd.json content into a :class:`TaskListResult`."""
    try:
        data = json.loads(text.lstrip("\ufeff"))
    except json.JSONDecodeError as e:
        return TaskListResult(error=f"invalid JSON: {e}")

    if not isinstance(data, dict):
        return TaskListResult(error="top-level value is not a JSON object")

    raw_stories = data.get(STORIES_KEY)
    if raw_stories is None:
        return TaskListResult(error=f"missing '{STORIES_KEY}' array")
    if not isinstance(raw_stories, list):
        return TaskListResult(error=f"'{STORIES_KEY}' is not an array")

    stories: List[Story] = []
    for i, raw in enumerate(raw_stories):
        if not isinstance(raw, dict):
            return TaskListResult(error=f"{STORIES_KEY}[{i}] is not an object")
        stories.append(_parse_story(i, raw))

    return TaskListResult(
        task_list=TaskList(branch_name=_parse_branch(data.get(BRANCH_KEY)), stories=stories)
    )


def load_task_list(path: Path) -> TaskListResult:
    """Read and parse a task list file."""
    if not path.exists():
        return TaskListResult(error=f"missing task list: {path}")
    try:
        # utf-8-sig: editors on Windows often prefix the file with a BOM.
        text = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Failed to read task list %s: %s", path, e)
        return TaskListResult(error=f"cannot read {path.name}: {e}")
    return parse_task_list(text)
