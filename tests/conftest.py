from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator

import pytest

from helpers import make_executable, write_prd
from ralph_loop.output import set_output_config


@pytest.fixture(autouse=True)
def _isolate_global_state(monkeypatch) -> Iterator[None]:
    """Undo CLI-level logging/output configuration after each test."""
    monkeypatch.delenv("RALPH_CONFIG", raising=False)
    monkeypatch.delenv("RALPH_VERBOSITY", raising=False)

    root = logging.getLogger()
    saved_level = root.level
    yield
    set_output_config(None)
    # Handlers installed by setup_logging(); pytest's own capture handlers
    # are subclasses and are left alone.
    for handler in root.handlers[:]:
        if type(handler) in (logging.StreamHandler, logging.FileHandler):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(saved_level)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A project directory with one failing story and valid instructions."""
    root = tmp_path / "project"
    root.mkdir()
    write_prd(root, [False])
    (root / "CLAUDE.md").write_text(
        "# Agent instructions\n\nReply with <promise>COMPLETE</promise> when done.\n",
        encoding="utf-8",
    )
    return root


@pytest.fixture
def fake_bin(tmp_path: Path, monkeypatch) -> Path:
    """PATH containing only fake `git` and `claude` executables."""
    bin_dir = tmp_path / "bin"
    make_executable(bin_dir, "git")
    make_executable(bin_dir, "claude")
    monkeypatch.setenv("PATH", str(bin_dir) + os.pathsep + "/usr/bin" + os.pathsep + "/bin")
    return bin_dir
