# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""Tests for git command construction and the default runner."""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from gitclone.gitutils import Command
from gitclone.gitutils import CommandError
from gitclone.gitutils import CommandResult
from gitclone.gitutils import DefaultRunner
from gitclone.gitutils import Git
from gitclone.gitutils import run_cmd
from gitclone.gitutils import tag_flags


class TestGit:
    """``Git`` only builds argument vectors."""

    def test_commands_are_bound_to_work_dir(self, tmp_path: Path) -> None:
        cmd = Git(tmp_path).fetch("--depth=1", "origin", "refs/heads/main")
        assert cmd.args == (
            "git",
            "fetch",
            "--depth=1",
            "origin",
            "refs/heads/main",
        )
        assert cmd.cwd == tmp_path

    def test_env_args_follow_git(self, tmp_path: Path) -> None:
        git = Git(tmp_path, env_args=("-c", "core.quotepath=off"))
        assert git.init().args == ("git", "-c", "core.quotepath=off", "init")

    @pytest.mark.parametrize(
        ("build", "expected"),
        [
            (lambda g: g.remote_list(), ("remote", "-v")),
            (
                lambda g: g.remote_add("origin", "https://h/o/r.git"),
                ("remote", "add", "origin", "https://h/o/r.git"),
            ),
            (lambda g: g.checkout("--detach"), ("checkout", "--detach")),
            (lambda g: g.merge("origin/main"), ("merge", "origin/main")),
            (
                lambda g: g.reset("--hard", "HEAD"),
                ("reset", "--hard", "HEAD"),
            ),
            (
                lambda g: g.apply("/tmp/pr.diff"),
                ("apply", "--index", "/tmp/pr.diff"),
            ),
            (
                lambda g: g.submodule_update("--depth=1"),
                ("submodule", "update", "--init", "--recursive", "--depth=1"),
            ),
            (lambda g: g.log("%H"), ("log", "-1", "--format=%H")),
            (
                lambda g: g.log("%an", "pull/7"),
                ("log", "-1", "--format=%an", "pull/7"),
            ),
            (
                lambda g: g.rev_list("HEAD", "--count"),
                ("rev-list", "HEAD", "--count"),
            ),
            (
                lambda g: g.sparse_checkout_init(cone=True),
                ("sparse-checkout", "init", "--cone"),
            ),
            (
                lambda g: g.sparse_checkout_set("docs", "src/lib"),
                ("sparse-checkout", "set", "docs", "src/lib"),
            ),
            (
                lambda g: g.config(
                    "extensions.partialClone", "origin", "--local"
                ),
                ("config", "extensions.partialClone", "origin", "--local"),
            ),
        ],
    )
    def test_builders(self, tmp_path: Path, build, expected) -> None:
        assert build(Git(tmp_path)).args == ("git", *expected)

    def test_submodule_foreach_nests_one_command_line(
        self, tmp_path: Path
    ) -> None:
        git = Git(tmp_path)
        cmd = git.submodule_foreach(git.clean("-x", "-d", "-f"))
        assert cmd.args == (
            "git",
            "submodule",
            "foreach",
            "--recursive",
            "git clean -x -d -f",
        )

    def test_printable_quotes_arguments(self) -> None:
        cmd = Command(("git", "log", "-1", "--format=%s %b"))
        assert cmd.printable() == "git log -1 '--format=%s %b'"


class TestTagFlags:
    @pytest.mark.parametrize(
        ("tags", "fetch_submodules", "expected"),
        [
            (False, False, ["--no-tags", "--no-recurse-submodules"]),
            (True, False, ["--tags", "--no-recurse-submodules"]),
            (False, True, ["--no-tags"]),
            (True, True, ["--tags"]),
        ],
    )
    def test_flags(
        self, tags: bool, fetch_submodules: bool, expected: list[str]
    ) -> None:
        assert tag_flags(tags, fetch_submodules) == expected


class TestRunCmd:
    def test_success(self) -> None:
        completed = subprocess.CompletedProcess(
            args=["git", "init"], returncode=0, stdout="ok\n", stderr=""
        )
        with patch(
            "gitclone.gitutils.subprocess.run", return_value=completed
        ) as mock_run:
            result = run_cmd(["git", "init"], cwd=Path("/tmp/src"))
        assert result == CommandResult(returncode=0, stdout="ok\n", stderr="")
        assert mock_run.call_args.kwargs["cwd"] == "/tmp/src"

    def test_failure_carries_stderr(self) -> None:
        completed = subprocess.CompletedProcess(
            args=["git", "fetch"],
            returncode=128,
            stdout="",
            stderr="fatal: repository 'x' not found\n",
        )
        with patch("gitclone.gitutils.subprocess.run", return_value=completed):
            with pytest.raises(CommandError) as excinfo:
                run_cmd(["git", "fetch"])
        assert str(excinfo.value) == "fatal: repository 'x' not found"
        assert excinfo.value.returncode == 128

    def test_failure_without_output(self) -> None:
        completed = subprocess.CompletedProcess(
            args=["git", "merge"], returncode=1, stdout="", stderr=""
        )
        with patch("gitclone.gitutils.subprocess.run", return_value=completed):
            with pytest.raises(CommandError, match="exit status 1"):
                run_cmd(["git", "merge"])

    def test_unchecked_failure_returns_result(self) -> None:
        completed = subprocess.CompletedProcess(
            args=["git", "merge"], returncode=1, stdout="", stderr="conflict"
        )
        with patch("gitclone.gitutils.subprocess.run", return_value=completed):
            result = run_cmd(["git", "merge"], check=False)
        assert result.returncode == 1

    def test_missing_executable(self) -> None:
        with patch(
            "gitclone.gitutils.subprocess.run",
            side_effect=FileNotFoundError("git"),
        ):
            with pytest.raises(CommandError, match="failed to execute git"):
                run_cmd(["git", "init"])


class TestDefaultRunner:
    def test_run_with_retry_rebuilds_command(self, tmp_path: Path) -> None:
        sleeps: list[float] = []
        runner = DefaultRunner(retry_wait=5, sleep=sleeps.append)
        built: list[Command] = []

        def factory() -> Command:
            cmd = Git(tmp_path).fetch()
            built.append(cmd)
            return cmd

        with patch(
            "gitclone.gitutils.run_cmd",
            side_effect=[CommandError("timeout"), CommandResult(0)],
        ) as mock_run:
            runner.run_with_retry(factory)

        assert mock_run.call_count == 2
        assert len(built) == 2
        assert sleeps == [5]

    def test_run_with_retry_raises_last_error(self, tmp_path: Path) -> None:
        runner = DefaultRunner(sleep=lambda _: None)
        with patch(
            "gitclone.gitutils.run_cmd",
            side_effect=[CommandError("first"), CommandError("second")],
        ):
            with pytest.raises(CommandError, match="second"):
                runner.run_with_retry(lambda: Git(tmp_path).fetch())

    def test_run_for_output_combines_streams(self, tmp_path: Path) -> None:
        runner = DefaultRunner()
        with patch(
            "gitclone.gitutils.run_cmd",
            return_value=CommandResult(0, stdout="abc\n", stderr="warn\n"),
        ):
            out = runner.run_for_output(Git(tmp_path).log("%H"))
        assert out == "abc\nwarn"

    def test_run_for_output_error_has_full_output(
        self, tmp_path: Path
    ) -> None:
        runner = DefaultRunner()
        err = CommandError(
            "stderr only", stdout="partial\n", stderr="stderr only\n"
        )
        with patch("gitclone.gitutils.run_cmd", side_effect=err):
            with pytest.raises(CommandError) as excinfo:
                runner.run_for_output(Git(tmp_path).remote_list())
        assert str(excinfo.value) == "partial\nstderr only"

    def test_run_logs_command(self, tmp_path: Path, caplog) -> None:
        runner = DefaultRunner()
        with patch(
            "gitclone.gitutils.run_cmd", return_value=CommandResult(0)
        ):
            with caplog.at_level("INFO", logger="gitclone.gitutils"):
                runner.run(Git(tmp_path).checkout("main"))
        assert "$ git checkout main" in caplog.text
