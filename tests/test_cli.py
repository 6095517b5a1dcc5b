"""End-to-end tests for the ralph-loop command, using fake agent executables."""

from __future__ import annotations

import codecs
import os
from datetime import date
from pathlib import Path

import pytest

from helpers import make_executable, write_prd
from ralph_loop.cli import main


def test_completes_when_agent_marks_story_done(project: Path, fake_bin: Path, capsys) -> None:
    write_prd(project, [True], name="prd.done.json")
    make_executable(fake_bin, "claude", "cp prd.done.json prd.json\n")

    code = main([str(project), "5"])

    assert code == 0
    out = capsys.readouterr().out
    assert "Ralph iteration 1 of 5" in out
    assert "Ralph iteration 2 of 5" not in out
    assert "All stories passing after iteration 1 of 5" in out
    progress = (project / "ralph-progress.txt").read_text(encoding="utf-8")
    assert progress.startswith("# Ralph Progress Log\n")
    assert "Iteration 1: 1/1 stories passing" in progress
    assert (project / ".ralph-last-branch").read_text(encoding="utf-8") == "ralph/feature-x"


def test_completes_with_bom_prefixed_prd(project: Path, fake_bin: Path) -> None:
    prd = project / "prd.json"
    prd.write_bytes(codecs.BOM_UTF8 + prd.read_bytes())
    done = write_prd(project, [True], name="prd.done.json")
    done.write_bytes(codecs.BOM_UTF8 + done.read_bytes())
    make_executable(fake_bin, "claude", "cp prd.done.json prd.json\n")

    code = main([str(project), "3"])

    assert code == 0
    assert (project / ".ralph-last-branch").read_text(encoding="utf-8") == "ralph/feature-x"
    progress = (project / "ralph-progress.txt").read_text(encoding="utf-8")
    assert "All stories passing after iteration 1" in progress


def test_exhausts_iterations(project: Path, fake_bin: Path, capsys) -> None:
    make_executable(fake_bin, "claude", "echo agent ran >> runs.txt\n")

    code = main([str(project), "3"])

    assert code == 1
    assert (project / "runs.txt").read_text(encoding="utf-8").count("agent ran") == 3
    assert "Reached max iterations (3)" in capsys.readouterr().out
    progress = (project / "ralph-progress.txt").read_text(encoding="utf-8")
    assert "Reached max iterations (3) without completing all stories" in progress


def test_failing_agent_keeps_looping(project: Path, fake_bin: Path) -> None:
    make_executable(fake_bin, "claude", "echo x >> runs.txt\nexit 3\n")

    code = main([str(project), "2"])

    assert code == 1
    assert (project / "runs.txt").read_text(encoding="utf-8").count("x") == 2
    progress = (project / "ralph-progress.txt").read_text(encoding="utf-8")
    assert "agent failed (exit code 3)" in progress


def test_agent_receives_prompt_as_argument(project: Path, fake_bin: Path) -> None:
    make_executable(fake_bin, "claude", 'printf "%s" "$3" > prompt.txt\n')

    main([str(project), "1"])

    prompt = (project / "prompt.txt").read_text(encoding="utf-8")
    assert "prd.json" in prompt
    assert "<promise>COMPLETE</promise>" in prompt


def test_codex_agent_receives_prompt_on_stdin(project: Path, fake_bin: Path) -> None:
    make_executable(fake_bin, "codex", "cat > prompt.txt\n")

    code = main([str(project), "1", "--agent", "codex"])

    assert code == 1
    assert "ralph-progress.txt" in (project / "prompt.txt").read_text(encoding="utf-8")


def test_missing_prd_exits_3_without_side_effects(project: Path, fake_bin: Path, capsys) -> None:
    (project / "prd.json").unlink()
    make_executable(fake_bin, "claude", "touch spawned\n")

    code = main([str(project), "2"])

    assert code == 3
    assert "Task list not found" in capsys.readouterr().err
    assert not (project / "spawned").exists()
    assert not (project / "ralph-progress.txt").exists()
    assert not (project / ".ralph-last-branch").exists()


def test_missing_instructions_exits_3(project: Path, fake_bin: Path) -> None:
    (project / "CLAUDE.md").unlink()

    assert main([str(project), "2"]) == 3


def test_missing_git_exits_4(project: Path, tmp_path: Path, monkeypatch, capsys) -> None:
    bin_dir = tmp_path / "only-claude"
    make_executable(bin_dir, "claude", "touch spawned\n")
    monkeypatch.setenv("PATH", str(bin_dir))

    code = main([str(project), "2"])

    assert code == 4
    assert "'git' not found" in capsys.readouterr().err
    assert not (project / "spawned").exists()
    assert not (project / "ralph-progress.txt").exists()


def test_missing_agent_exits_4(project: Path, tmp_path: Path, monkeypatch) -> None:
    bin_dir = tmp_path / "only-git"
    make_executable(bin_dir, "git")
    monkeypatch.setenv("PATH", str(bin_dir))

    assert main([str(project), "2"]) == 4


@pytest.mark.parametrize("bad", ["0", "-1", "abc"])
def test_invalid_max_iterations_is_usage_error(project: Path, bad: str, capsys) -> None:
    with pytest.raises(SystemExit) as exc:
        main([str(project), bad])

    assert exc.value.code == 2
    assert "max_iterations" in capsys.readouterr().err


def test_help_lists_distinct_exit_codes(capsys) -> None:
    with pytest.raises(SystemExit) as exc:
        main(["--help"])

    assert exc.value.code == 0
    out = " ".join(capsys.readouterr().out.split())
    assert "2=usage error" in out
    assert "4=missing dependency" in out


def test_invalid_config_exits_1(project: Path, fake_bin: Path, capsys) -> None:
    (project / "ralph.toml").write_text("[loop]\nmax_iterations = 0\n", encoding="utf-8")

    assert main([str(project)]) == 1
    assert "Error: Invalid loop.max_iterations" in capsys.readouterr().err


def test_unknown_agent_exits_1(project: Path, fake_bin: Path, capsys) -> None:
    assert main([str(project), "--agent", "nope"]) == 1
    assert "Unknown agent 'nope'" in capsys.readouterr().err


def test_max_iterations_defaults_to_config(project: Path, fake_bin: Path) -> None:
    (project / "ralph.toml").write_text("[loop]\nmax_iterations = 2\n", encoding="utf-8")
    make_executable(fake_bin, "claude", "echo x >> runs.txt\n")

    main([str(project)])

    assert (project / "runs.txt").read_text(encoding="utf-8").count("x") == 2


def test_second_run_resumes_progress_log(project: Path, fake_bin: Path) -> None:
    main([str(project), "1"])
    main([str(project), "1"])

    progress = (project / "ralph-progress.txt").read_text(encoding="utf-8")
    assert progress.count("# Ralph Progress Log") == 1
    assert progress.count("Resumed: ") == 1
    assert progress.count("Iteration 1/1 started") == 2


def test_branch_change_archives_previous_run(project: Path, fake_bin: Path) -> None:
    main([str(project), "1"])
    write_prd(project, [False, False], branch="ralph/feature-y")

    main([str(project), "1"])

    archive = project / ".ralph-archive" / f"{date.today().isoformat()}-feature-x"
    assert (archive / "prd.json").is_file()
    assert "Iteration 1/1 started" in (archive / "ralph-progress.txt").read_text(encoding="utf-8")
    assert (project / ".ralph-last-branch").read_text(encoding="utf-8") == "ralph/feature-y"


def test_dry_run_changes_nothing(project: Path, fake_bin: Path, capsys) -> None:
    make_executable(fake_bin, "claude", "touch spawned\n")
    before = sorted(p.name for p in project.iterdir())

    code = main([str(project), "4", "--dry-run"])

    assert code == 0
    assert sorted(p.name for p in project.iterdir()) == before
    out = capsys.readouterr().out
    assert "DRY-RUN MODE" in out
    assert "Max iterations: 4" in out
    assert "Stories passing: 0/1" in out
    assert "Next story: US-001 Story 1" in out


def test_dry_run_reports_pending_archive(project: Path, fake_bin: Path, capsys) -> None:
    (project / ".ralph-last-branch").write_text("ralph/old-feature", encoding="utf-8")

    assert main([str(project), "--dry-run"]) == 0

    out = capsys.readouterr().out
    assert "Would archive previous run (ralph/old-feature)" in out
    assert not (project / ".ralph-archive").exists()


def test_dry_run_still_checks_preconditions(project: Path, fake_bin: Path) -> None:
    (project / "prd.json").unlink()

    assert main([str(project), "--dry-run"]) == 3


def test_quiet_mode_prints_only_the_result(project: Path, fake_bin: Path, capsys) -> None:
    main([str(project), "1", "-q"])

    out = capsys.readouterr().out
    assert "Ralph iteration 1 of 1" not in out
    assert "Reached max iterations (1)" in out


def test_working_directory_is_restored(project: Path, fake_bin: Path) -> None:
    before = os.getcwd()

    main([str(project), "1"])

    assert os.getcwd() == before


def test_log_file_receives_debug_log(project: Path, fake_bin: Path, tmp_path: Path) -> None:
    log_file = tmp_path / "run.log"

    main([str(project), "1", "--log-file", str(log_file)])

    assert "ralph-loop v" in log_file.read_text(encoding="utf-8")
