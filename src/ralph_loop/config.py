from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Tuple

try:
    import tomllib  # py>=3.11
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore

from .path_utils import validate_project_path

CONFIG_FILENAME = "ralph.toml"

# -------------------------
# Dataclasses
# -------------------------


@dataclass(frozen=True)
class LoopConfig:
    max_iterations: int = 10
    agent: str = "claude"
    sleep_seconds_between_iters: int = 0
    runner_timeout_seconds: int = 0  # 0 = wait for the agent indefinitely


@dataclass(frozen=True)
class FilesConfig:
    prd: str = "prd.json"
    instructions: str = "CLAUDE.md"
    progress: str = "ralph-progress.txt"
    last_branch: str = ".ralph-last-branch"
    archive_dir: str = ".ralph-archive"


@dataclass(frozen=True)
class GitConfig:
    executable: str = "git"
    branch_prefix: str = "ralph/"


@dataclass(frozen=True)
class RunnerConfig:
    argv: List[str]


@dataclass(frozen=True)
class Config:
    loop: LoopConfig = field(default_factory=LoopConfig)
    files: FilesConfig = field(default_factory=FilesConfig)
    git: GitConfig = field(default_factory=GitConfig)
    runners: Dict[str, RunnerConfig] = field(default_factory=lambda: dict(DEFAULT_RUNNERS))

    def runner(self, agent: str) -> RunnerConfig:
        runner = self.runners.get(agent)
        if runner is None:
            available = ", ".join(sorted(self.runners.keys()))
            raise ValueError(f"Unknown agent '{agent}'. Available runners: {available}")
        return runner


@dataclass(frozen=True)
class RunConfig:
    """Identity of one driver run: where to work and how many iterations."""

    project_dir: Path
    max_iterations: int
    agent: str = LoopConfig.agent

    def __post_init__(self) -> None:
        if not self.project_dir.is_absolute():
            raise ValueError(f"project_dir must be absolute: {self.project_dir}")
        if isinstance(self.max_iterations, bool) or self.max_iterations < 1:
            raise ValueError(
                f"max_iterations must be a positive integer, got {self.max_iterations!r}"
            )

    def path(self, name: str) -> Path:
        return self.project_dir / name


# The claude runner skips interactive permission prompts so iterations can
# run unattended; the prompt is inserted after -p.
DEFAULT_RUNNERS: Dict[str, RunnerConfig] = {
    "claude": RunnerConfig(argv=["claude", "--dangerously-skip-permissions", "-p"]),
    "codex": RunnerConfig(argv=["codex", "exec", "--full-auto", "-"]),
}


# -------------------------
# Parsing helpers
# -------------------------


def _coerce_int(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _load_toml(path: Path) -> Dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError):
        return {}


def _deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """Merge b into a (recursively for dicts), return new dict."""

    out: Dict[str, Any] = dict(a)
    for k, v in b.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    raw = data.get(name, {}) or {}
    return raw if isinstance(raw, dict) else {}


def _load_config_data(project_root: Path) -> Tuple[Dict[str, Any], List[Path]]:
    """Return merged toml data and the list of config files read (in order)."""

    paths: List[Path] = []

    p1 = project_root / CONFIG_FILENAME
    if p1.exists():
        paths.append(p1)

    env = os.environ.get("RALPH_CONFIG")
    if env:
        p2 = Path(env)
        if not p2.is_absolute():
            p2 = (project_root / p2).resolve()
        if p2.exists():
            paths.append(p2)

    data: Dict[str, Any] = {}
    for p in paths:
        data = _deep_merge(data, _load_toml(p))

    return data, paths


def _parse_files(project_root: Path, files_raw: Dict[str, Any]) -> FilesConfig:
    values: Dict[str, str] = {}
    for key in ("prd", "instructions", "progress", "last_branch", "archive_dir"):
        raw = files_raw.get(key)
        if raw is None:
            continue
        name = str(raw).strip()
        if not name:
            raise ValueError(f"Invalid files.{key}: must not be empty")
        # Raises ValueError for paths that escape the project directory.
        validate_project_path(project_root, name)
        values[key] = name
    return FilesConfig(**values)


def _parse_runners(runners_raw: Dict[str, Any]) -> Dict[str, RunnerConfig]:
    runners: Dict[str, RunnerConfig] = dict(DEFAULT_RUNNERS)
    for name, raw in runners_raw.items():
        if not isinstance(raw, dict) or not isinstance(raw.get("argv"), list):
            continue
        argv = [str(x) for x in raw["argv"]]
        if not argv:
            raise ValueError(f"Invalid runners.{name}.argv: must not be empty")
        runners[str(name)] = RunnerConfig(argv=argv)
    return runners


# -------------------------
# Public API
# -------------------------


def load_config(project_root: Path) -> Config:
    """Load and normalize configuration for a project.

    Reads ``<project_root>/ralph.toml`` and then ``$RALPH_CONFIG`` (which
    overrides it). Missing or unreadable files fall back to defaults, so the
    returned config is always usable.

    Raises:
        ValueError: If a value is present but invalid.
    """

    data, _read_paths = _load_config_data(project_root)

    loop_raw = _section(data, "loop")
    git_raw = _section(data, "git")

    loop = LoopConfig(
        max_iterations=_coerce_int(loop_raw.get("max_iterations"), LoopConfig.max_iterations),
        agent=str(loop_raw.get("agent", LoopConfig.agent)).strip() or LoopConfig.agent,
        sleep_seconds_between_iters=_coerce_int(
            loop_raw.get("sleep_seconds_between_iters"), 0
        ),
        runner_timeout_seconds=_coerce_int(loop_raw.get("runner_timeout_seconds"), 0),
    )
    if loop.max_iterations < 1:
        raise ValueError(
            f"Invalid loop.max_iterations: {loop.max_iterations}. Must be >= 1."
        )
    if loop.sleep_seconds_between_iters < 0:
        raise ValueError("Invalid loop.sleep_seconds_between_iters: must be >= 0.")
    if loop.runner_timeout_seconds < 0:
        raise ValueError("Invalid loop.runner_timeout_seconds: must be >= 0.")

    git = GitConfig(
        executable=str(git_raw.get("executable", GitConfig.executable)).strip()
        or GitConfig.executable,
        branch_prefix=str(git_raw.get("branch_prefix", GitConfig.branch_prefix)),
    )

    cfg = Config(
        loop=loop,
        files=_parse_files(project_root, _section(data, "files")),
        git=git,
        runners=_parse_runners(_section(data, "runners")),
    )
    # Fail early on a configured agent that has no runner.
    cfg.runner(loop.agent)
    return cfg
