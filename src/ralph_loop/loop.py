"""The iteration loop.

Each iteration invokes the agent once, then re-reads the task list. The run
ends as soon as every story passes (exit 0) or after ``max_iterations``
invocations (exit 1). The agent's exit code never ends the run by itself:
a crashed or failing agent may still have committed progress, so the task
list is always re-read.

Completion is only checked after an invocation, so a project whose stories
already all pass still gets one agent run.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Callable, List, Optional

from .agents import build_agent_invocation
from .bookkeeping import FileMarkerStore, MarkerStore, pending_archive, prepare_run
from .config import Config, RunConfig
from .output import print_banner, print_output
from .path_utils import working_directory
from .prd import TaskListResult, load_task_list
from .preflight import check_preconditions
from .progress import FileProgressLog, ProgressLog, log_event, timestamp
from .prompt import build_prompt
from .subprocess_helper import run_subprocess_live, which

logger = logging.getLogger(__name__)

EXIT_COMPLETE = 0
EXIT_INCOMPLETE = 1

OUTCOME_COMPLETE = "complete"
OUTCOME_EXHAUSTED = "exhausted"

# (argv, stdin_text, project_dir, timeout_seconds) -> exit code
AgentInvoker = Callable[[List[str], Optional[str], Path, Optional[int]], int]


def run_agent(
    argv: List[str],
    stdin_text: Optional[str],
    project_dir: Path,
    timeout: Optional[int] = None,
) -> int:
    """Run the agent in the project directory and wait for it to exit.

    Raises:
        RuntimeError: If the agent cannot be started or times out.
    """
    with working_directory(project_dir):
        return run_subprocess_live(argv, input_text=stdin_text, timeout=timeout)


@dataclass
class IterationResult:
    iteration: int
    return_code: Optional[int]  # None if the agent could not be run
    passed: Optional[int] = None
    total: Optional[int] = None
    error: Optional[str] = None  # why the task list could not be read

    @property
    def complete(self) -> bool:
        return self.passed is not None and self.passed == self.total


@dataclass
class LoopResult:
    outcome: str  # complete|exhausted
    iterations: List[IterationResult] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        return EXIT_COMPLETE if self.outcome == OUTCOME_COMPLETE else EXIT_INCOMPLETE


def _elide_prompt(argv: List[str], prompt: str) -> List[str]:
    return ["<prompt>" if a == prompt else a for a in argv]


class IterationDriver:
    """Runs iterations until every story passes or the budget is spent."""

    def __init__(
        self,
        run: RunConfig,
        cfg: Config,
        progress: ProgressLog,
        invoke: Optional[AgentInvoker] = None,
        read_tasks: Optional[Callable[[], TaskListResult]] = None,
        clock: Callable[[], str] = timestamp,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.run_cfg = run
        self.cfg = cfg
        self.progress = progress
        self.invoke = invoke or run_agent
        self.read_tasks = read_tasks or (lambda: load_task_list(run.path(cfg.files.prd)))
        self.clock = clock
        self.sleep = sleep

        prompt = build_prompt(cfg.files)
        self.argv, self.stdin_text = build_agent_invocation(
            run.agent, prompt, cfg.runner(run.agent)
        )
        self._display_argv = _elide_prompt(self.argv, prompt)

    def _log(self, message: str) -> None:
        log_event(self.progress, self.clock(), message)

    def _invoke_agent(self, i: int) -> Optional[int]:
        timeout = self.cfg.loop.runner_timeout_seconds or None
        logger.debug("Invoking agent: %s", " ".join(self._display_argv))
        try:
            code = self.invoke(self.argv, self.stdin_text, self.run_cfg.project_dir, timeout)
        except (RuntimeError, OSError) as e:
            logger.warning("Iteration %d: agent could not be run: %s", i, e)
            self._log(f"Iteration {i}: agent failed ({e})")
            return None

        if code != 0:
            logger.warning("Iteration %d: agent exited with code %d", i, code)
            self._log(f"Iteration {i}: agent failed (exit code {code})")
        return code

    def run_iteration(self, i: int) -> IterationResult:
        n = self.run_cfg.max_iterations
        print_banner(f"Ralph iteration {i} of {n}")
        self._log(f"Iteration {i}/{n} started")

        result = IterationResult(iteration=i, return_code=self._invoke_agent(i))

        tasks = self.read_tasks()
        if not tasks.ok:
            logger.warning("Iteration %d: could not read task list: %s", i, tasks.error)
            self._log(f"Iteration {i}: could not read task list ({tasks.error})")
            result.error = tasks.error
            return result

        result.passed, result.total = tasks.task_list.counts()
        print_output(f"Stories passing: {result.passed}/{result.total}")
        self._log(f"Iteration {i}: {result.passed}/{result.total} stories passing")
        return result

    def run(self) -> LoopResult:
        n = self.run_cfg.max_iterations
        results: List[IterationResult] = []

        for i in range(1, n + 1):
            res = self.run_iteration(i)
            results.append(res)

            if res.complete:
                print_banner(f"All stories passing after iteration {i} of {n}", level="quiet")
                self._log(f"All stories passing after iteration {i}")
                return LoopResult(outcome=OUTCOME_COMPLETE, iterations=results)

            pause = self.cfg.loop.sleep_seconds_between_iters
            if i < n and pause > 0:
                logger.debug("Sleeping %ss before next iteration", pause)
                self.sleep(pause)

        print_banner(
            f"Reached max iterations ({n}) without completing all stories", level="quiet"
        )
        print_output(f"See {self.cfg.files.progress} for details.", level="quiet")
        self._log(f"Reached max iterations ({n}) without completing all stories")
        return LoopResult(outcome=OUTCOME_EXHAUSTED, iterations=results)


def run_ralph(
    run: RunConfig,
    cfg: Config,
    progress: Optional[ProgressLog] = None,
    markers: Optional[MarkerStore] = None,
    invoke: Optional[AgentInvoker] = None,
    lookup: Callable[[str], Optional[str]] = which,
    today: Optional[date] = None,
) -> LoopResult:
    """Validate, prepare bookkeeping, then run the iteration loop.

    Raises:
        PreconditionError: If a required executable or input file is missing.
        OSError: If the progress log cannot be written.
    """
    check_preconditions(run, cfg, lookup=lookup)

    if progress is None:
        progress = FileProgressLog(run.path(cfg.files.progress))
    if markers is None:
        markers = FileMarkerStore(run.path(cfg.files.last_branch))

    report = prepare_run(run, cfg, progress, markers, now=timestamp(), today=today)
    print_output(f"Starting Ralph in {run.project_dir} (max {run.max_iterations} iterations)")
    if report.branch_name:
        print_output(f"Branch: {report.branch_name}", level="verbose")
    if report.archived_to:
        print_output(f"Archived previous run to {report.archived_to}")

    driver = IterationDriver(run, cfg, progress, invoke=invoke)
    return driver.run()


# -------------------------
# Dry run
# -------------------------


@dataclass
class DryRunResult:
    project_dir: Path
    branch_name: Optional[str]
    last_branch: Optional[str]
    archive_folder: Optional[str]
    passed: Optional[int]
    total: Optional[int]
    next_story: Optional[str]
    argv: List[str]
    warnings: List[str]
    task_list_error: Optional[str] = None


def dry_run(
    run: RunConfig,
    cfg: Config,
    lookup: Callable[[str], Optional[str]] = which,
    today: Optional[date] = None,
) -> DryRunResult:
    """Work out what a run would do without writing files or spawning processes.

    Raises:
        PreconditionError: If a required executable or input file is missing.
    """
    warnings = check_preconditions(run, cfg, lookup=lookup)

    tasks = load_task_list(run.path(cfg.files.prd))
    try:
        last_branch = FileMarkerStore(run.path(cfg.files.last_branch)).get()
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Failed to read last branch marker: %s", e)
        last_branch = None

    prompt = build_prompt(cfg.files)
    argv, _stdin = build_agent_invocation(run.agent, prompt, cfg.runner(run.agent))

    result = DryRunResult(
        project_dir=run.project_dir,
        branch_name=None,
        last_branch=last_branch,
        archive_folder=None,
        passed=None,
        total=None,
        next_story=None,
        argv=_elide_prompt(argv, prompt),
        warnings=warnings,
    )
    if not tasks.ok:
        result.task_list_error = tasks.error
        return result

    task_list = tasks.task_list
    result.branch_name = task_list.branch_name
    result.archive_folder = pending_archive(
        task_list.branch_name, last_branch, cfg.git.branch_prefix, today or date.today()
    )
    result.passed, result.total = task_list.counts()
    story = task_list.next_story()
    if story is not None:
        result.next_story = f"{story.id} {story.title}".strip()
    return result


def print_dry_run(result: DryRunResult, cfg: Config, max_iterations: int) -> None:
    print_banner("DRY-RUN MODE - No agent will be executed", level="quiet")
    print_output(f"Project: {result.project_dir}", level="quiet")
    print_output(f"Max iterations: {max_iterations}", level="quiet")
    print_output(f"Agent command: {' '.join(result.argv)}", level="quiet")

    if result.task_list_error:
        print_output(f"Task list: unreadable ({result.task_list_error})", level="quiet")
    else:
        print_output(f"Branch: {result.branch_name or '(none)'}", level="quiet")
        print_output(f"Stories passing: {result.passed}/{result.total}", level="quiet")
        print_output(f"Next story: {result.next_story or '(none)'}", level="quiet")

    if result.archive_folder:
        print_output(
            f"Would archive previous run ({result.last_branch}) to "
            f"{cfg.files.archive_dir}/{result.archive_folder}",
            level="quiet",
        )

    for warning in result.warnings:
        print_output(f"Warning: {warning}", level="quiet")
    print_output("Dry-run complete. No changes were made.", level="quiet")
