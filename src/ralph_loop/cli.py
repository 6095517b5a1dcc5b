from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from . import __version__
from .config import RunConfig, load_config
from .logging_config import setup_logging
from .loop import EXIT_INCOMPLETE, dry_run, print_dry_run, run_ralph
from .output import OutputConfig, print_output, set_output_config
from .path_utils import resolve_project_dir
from .preflight import PreconditionError

logger = logging.getLogger(__name__)


class _RalphArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        self.exit(2, f"Error: {message}\n")


def _positive_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}")
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {n}")
    return n


def build_parser() -> argparse.ArgumentParser:
    p = _RalphArgumentParser(
        prog="ralph-loop",
        description=(
            "Run a coding agent repeatedly until every story in prd.json passes. "
            "Exit codes: 0=complete, 1=max iterations reached, "
            "2=usage error, 3=missing input, 4=missing dependency."
        ),
    )
    p.add_argument("--version", action="version", version=f"ralph-loop {__version__}")
    p.add_argument(
        "project_dir",
        nargs="?",
        default=".",
        help="Project directory containing prd.json and CLAUDE.md (default: .)",
    )
    p.add_argument(
        "max_iterations",
        nargs="?",
        type=_positive_int,
        default=None,
        help="Maximum number of agent iterations (default: loop.max_iterations, 10)",
    )
    p.add_argument(
        "--agent",
        default=None,
        help="Runner to use (claude|codex or a [runners.<name>] from ralph.toml)",
    )
    p.add_argument(
        "--dry-run",
        action="store_true",
        help="Check preconditions and show the plan without running the agent",
    )
    verbosity = p.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Debug output")
    verbosity.add_argument(
        "-q", "--quiet", action="store_true", help="Only print errors and the final result"
    )
    p.add_argument("--log-file", default=None, help="Also write a debug log to this file")
    return p


def main(argv: list[str] | None = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)

    verbosity = "verbose" if args.verbose else "quiet" if args.quiet else "normal"
    set_output_config(OutputConfig(verbosity=verbosity))
    setup_logging(
        verbose=args.verbose,
        quiet=args.quiet,
        log_file=Path(args.log_file) if args.log_file else None,
    )
    logger.debug("ralph-loop v%s starting", __version__)

    project_dir = resolve_project_dir(args.project_dir)
    try:
        cfg = load_config(project_dir)
        agent = args.agent or cfg.loop.agent
        cfg.runner(agent)
        run = RunConfig(
            project_dir=project_dir,
            max_iterations=args.max_iterations or cfg.loop.max_iterations,
            agent=agent,
        )
    except ValueError as e:
        print_output(f"Error: {e}", level="error")
        return EXIT_INCOMPLETE

    try:
        if args.dry_run:
            print_dry_run(dry_run(run, cfg), cfg, run.max_iterations)
            return 0
        result = run_ralph(run, cfg)
    except PreconditionError as e:
        print_output(f"Error: {e}", level="error")
        return e.exit_code
    except OSError as e:
        logger.error("Cannot write run state: %s", e)
        return EXIT_INCOMPLETE

    return result.exit_code


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
