"""Precondition checks that run before any bookkeeping or agent invocation.

Checks run in a fixed order and stop at the first failure:

1. the version-control executable is on PATH
2. the agent executable is on PATH
3. the task list (prd.json) exists
4. the instructions file (CLAUDE.md) exists

Nothing here spawns a process or writes a file, so a failed check leaves the
project exactly as it was.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from .config import Config, RunConfig
from .subprocess_helper import which

logger = logging.getLogger(__name__)

COMPLETION_MARKER = "<promise>COMPLETE</promise>"

EXIT_MISSING_DEPENDENCY = 4
EXIT_MISSING_INPUT = 3


class PreconditionError(RuntimeError):
    """A fatal problem detected before the run starts."""

    exit_code = 1


class MissingDependency(PreconditionError):
    """A required executable is not on PATH."""

    exit_code = EXIT_MISSING_DEPENDENCY


class MissingInput(PreconditionError):
    """A required input file is missing from the project directory."""

    exit_code = EXIT_MISSING_INPUT


@dataclass
class ToolStatus:
    name: str
    found: bool
    path: Optional[str]
    hint: Optional[str]


_HINTS = {
    "git": "Install git and run `git init` in your project.",
    "claude": "Install the Claude Code CLI (npm install -g @anthropic-ai/claude-code).",
    "codex": "Install the Codex CLI (npm install -g @openai/codex).",
}


def check_tool(name: str, lookup: Callable[[str], Optional[str]] = which) -> ToolStatus:
    path = lookup(name)
    found = path is not None
    hint = None if found else _HINTS.get(name, f"Install '{name}' or put it on PATH.")
    return ToolStatus(name=name, found=found, path=path, hint=hint)


def _require_tool(name: str, role: str, lookup: Callable[[str], Optional[str]]) -> None:
    status = check_tool(name, lookup)
    if not status.found:
        raise MissingDependency(f"{role} '{name}' not found on PATH. {status.hint}")
    logger.debug("Found %s at %s", name, status.path)


def check_preconditions(
    run: RunConfig,
    cfg: Config,
    lookup: Callable[[str], Optional[str]] = which,
) -> List[str]:
    """Validate the environment for a run.

    Returns:
        Non-fatal warnings (already logged).

    Raises:
        MissingDependency: git or the agent executable is not on PATH.
        MissingInput: prd.json or CLAUDE.md does not exist.
    """
    _require_tool(cfg.git.executable, "Version control executable", lookup)
    _require_tool(cfg.runner(run.agent).argv[0], "Agent executable", lookup)

    prd_path = run.path(cfg.files.prd)
    if not prd_path.is_file():
        raise MissingInput(
            f"Task list not found: {prd_path}. Create {cfg.files.prd} with a "
            f"'userStories' array before running."
        )

    instructions_path = run.path(cfg.files.instructions)
    if not instructions_path.is_file():
        raise MissingInput(
            f"Agent instructions not found: {instructions_path}. Create "
            f"{cfg.files.instructions} describing how the agent should work."
        )

    warnings: List[str] = []
    try:
        instructions = instructions_path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        instructions = ""
        logger.debug("Failed to read %s: %s", instructions_path, e)
    if COMPLETION_MARKER not in instructions:
        message = (
            f"{cfg.files.instructions} does not mention {COMPLETION_MARKER}; the "
            f"agent may not know how to signal that all stories are done."
        )
        logger.warning(message)
        warnings.append(message)
    return warnings
