"""Blocking child-process execution with live output.

The agent runs for minutes at a time, so its output is forwarded to the
operator's terminal line by line while the driver waits for it to exit.
"""

from __future__ import annotations

import shutil
import subprocess
import sys
import threading
from typing import IO, List, Optional


def _describe(argv: List[str], limit: int = 120) -> str:
    # Prompts are long; keep log lines readable.
    text = " ".join(a if len(a) <= 40 else a[:37] + "..." for a in argv)
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _forward(stream: IO[str], to_stderr: bool) -> None:
    for line in iter(stream.readline, ""):
        print(line, end="", flush=True, file=sys.stderr if to_stderr else sys.stdout)


def run_subprocess_live(
    argv: List[str],
    timeout: Optional[int] = None,
    input_text: Optional[str] = None,
) -> int:
    """Run a subprocess to completion, streaming its output as it arrives.

    The child inherits the current working directory; callers that need a
    different one wrap the call in ``path_utils.working_directory``.

    Args:
        argv: Command and arguments
        timeout: Maximum seconds to wait (None = wait indefinitely)
        input_text: Optional text passed to process stdin (None = no stdin)

    Returns:
        The child's exit code

    Raises:
        RuntimeError: On timeout or when the command cannot be started

    Examples:
        >>> code = run_subprocess_live(["claude", "-p", "hello"])
        >>> print(f"Exit code: {code}")
    """
    try:
        with subprocess.Popen(
            argv,
            stdin=subprocess.PIPE if input_text is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        ) as proc:
            readers: list[threading.Thread] = []
            for stream, to_stderr in ((proc.stdout, False), (proc.stderr, True)):
                reader = threading.Thread(target=_forward, args=(stream, to_stderr), daemon=True)
                reader.start()
                readers.append(reader)

            if input_text is not None and proc.stdin is not None:
                # The child may exit before reading stdin; its exit code
                # still reports what happened.
                try:
                    proc.stdin.write(input_text)
                    proc.stdin.flush()
                except BrokenPipeError:
                    pass
                try:
                    proc.stdin.close()
                except BrokenPipeError:
                    pass

            try:
                proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired as e:
                proc.kill()
                try:
                    proc.wait(timeout=1)
                except subprocess.TimeoutExpired:
                    pass
                for reader in readers:
                    reader.join(timeout=1.0)
                raise RuntimeError(
                    f"Command timed out after {timeout}s: {_describe(argv)}"
                ) from e

            for reader in readers:
                reader.join()
            return proc.returncode

    except FileNotFoundError as e:
        raise RuntimeError(
            f"Command not found: {argv[0]}\n"
            f"Ensure the command is installed and available in PATH."
        ) from e
    except PermissionError as e:
        raise RuntimeError(f"Command is not executable: {argv[0]}") from e


def which(cmd: str) -> Optional[str]:
    """Find a command in PATH, equivalent to shutil.which()."""
    return shutil.which(cmd)
