# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Tests for the command line entry point.

``_process`` is patched out, so these tests only cover option parsing,
environment variable fallbacks and the mapping of failures to exit codes.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from gitclone.cli import app
from gitclone.config import Config
from gitclone.error_codes import ExitCode
from gitclone.gitclone import CheckoutStateResult
from gitclone.gitutils import CommandError
from gitclone.selector import CheckoutMethod
from gitclone.steperror import new_step_error
from gitclone.strategies import CheckoutBranch


REPO_URL = "https://github.com/owner/repo.git"

ENV_VARS = (
    "REPOSITORY_URL",
    "CLONE_INTO_DIR",
    "COMMIT",
    "TAG",
    "BRANCH",
    "BRANCH_DEST",
    "PULL_REQUEST_ID",
    "PULL_REQUEST_REPOSITORY_URL",
    "PULL_REQUEST_MERGE_BRANCH",
    "PULL_REQUEST_UNVERIFIED_MERGE_BRANCH",
    "PULL_REQUEST_HEAD_BRANCH",
    "RESET_REPOSITORY",
    "CLONE_DEPTH",
    "FETCH_TAGS",
    "UPDATE_SUBMODULES",
    "SUBMODULE_UPDATE_DEPTH",
    "MERGE_PR",
    "MANUAL_MERGE",
    "SPARSE_DIRECTORIES",
    "BUILD_URL",
    "BUILD_API_TOKEN",
    "MAX_COMMIT_MESSAGE_LENGTH",
    "GIT_CLONE_VERBOSE",
)

BRANCH_RESULT = CheckoutStateResult(
    strategy=CheckoutBranch(branch="main"),
    method=CheckoutMethod.BRANCH,
    is_pr=False,
    build_trigger_ref="main",
    commit_info_ref="main",
)


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the CI job environment from leaking into option parsing."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def mock_logging():
    with patch("gitclone.cli.setup_logging") as mock_setup:
        yield mock_setup


def _env(tmp_path: Path, **extra: str) -> dict[str, str]:
    env = {
        "REPOSITORY_URL": REPO_URL,
        "CLONE_INTO_DIR": str(tmp_path / "src"),
    }
    env.update(extra)
    return env


class TestOptionParsing:
    """Options and their environment variable fallbacks."""

    @patch("gitclone.cli._process", return_value=BRANCH_RESULT)
    def test_command_line_options(self, mock_process, runner, tmp_path):
        result = runner.invoke(
            app,
            [
                "--repository-url",
                REPO_URL,
                "--clone-into-dir",
                str(tmp_path / "src"),
                "--branch",
                "main",
                "--clone-depth",
                "10",
            ],
        )
        assert result.exit_code == 0, result.output
        cfg: Config = mock_process.call_args.args[0]
        assert cfg.repository_url == REPO_URL
        assert cfg.branch == "main"
        assert cfg.clone_depth == 10

    @patch("gitclone.cli._process", return_value=BRANCH_RESULT)
    def test_defaults(self, mock_process, runner, tmp_path):
        result = runner.invoke(app, [], env=_env(tmp_path))
        assert result.exit_code == 0, result.output
        cfg: Config = mock_process.call_args.args[0]
        assert cfg.clone_depth is None
        assert cfg.should_merge_pr is True
        assert cfg.manual_merge is False
        assert cfg.update_submodules is True
        assert cfg.sparse_directories == ()

    @patch("gitclone.cli._process", return_value=BRANCH_RESULT)
    def test_environment_variables(self, mock_process, runner, tmp_path):
        env = _env(
            tmp_path,
            BRANCH="feature",
            BRANCH_DEST="master",
            PULL_REQUEST_ID="7",
            PULL_REQUEST_MERGE_BRANCH="pull/7/merge",
            CLONE_DEPTH="0",
            MERGE_PR="false",
            UPDATE_SUBMODULES="false",
            SPARSE_DIRECTORIES="docs\nsrc/lib\n",
            BUILD_API_TOKEN="secret",
        )
        result = runner.invoke(app, [], env=env)
        assert result.exit_code == 0, result.output

        cfg: Config = mock_process.call_args.args[0]
        assert cfg.branch == "feature"
        assert cfg.pr_dest_branch == "master"
        assert cfg.pr_id == 7
        assert cfg.pr_merge_branch == "pull/7/merge"
        assert cfg.clone_depth == 0
        assert cfg.should_merge_pr is False
        assert cfg.update_submodules is False
        assert cfg.sparse_directories == ("docs", "src/lib")
        assert cfg.build_api_token == "secret"
        assert "secret" not in result.output

    @patch("gitclone.cli._process", return_value=BRANCH_RESULT)
    def test_verbose_flag(self, mock_process, runner, tmp_path, mock_logging):
        result = runner.invoke(app, ["--verbose"], env=_env(tmp_path))
        assert result.exit_code == 0, result.output
        mock_logging.assert_called_once_with(True)

    def test_negative_depth_rejected(self, runner, tmp_path):
        result = runner.invoke(
            app, ["--clone-depth", "-1"], env=_env(tmp_path)
        )
        assert result.exit_code != 0


class TestExitCodes:
    """Failures map to the exit code they carry."""

    @patch("gitclone.cli._process")
    def test_missing_repository_url(self, mock_process, runner, tmp_path):
        result = runner.invoke(
            app, ["--clone-into-dir", str(tmp_path / "src")]
        )
        assert result.exit_code == ExitCode.CONFIGURATION_ERROR
        mock_process.assert_not_called()

    @patch("gitclone.cli._process")
    def test_dangerous_directory(
        self, mock_process, runner, tmp_path, monkeypatch
    ):
        monkeypatch.setenv("HOME", str(tmp_path))
        env = _env(tmp_path, CLONE_INTO_DIR=str(tmp_path))
        result = runner.invoke(app, [], env=env)
        assert result.exit_code == ExitCode.CONFIGURATION_ERROR
        mock_process.assert_not_called()

    @patch("gitclone.cli._process")
    def test_step_error(self, mock_process, runner, tmp_path):
        mock_process.side_effect = new_step_error(
            "fetch_failed",
            CommandError("fatal: repository 'x' not found"),
            "Fetching repository has failed",
        )
        result = runner.invoke(app, [], env=_env(tmp_path, COMMIT="abc"))
        assert result.exit_code == ExitCode.GIT_ERROR

    @patch("gitclone.cli._process", return_value=BRANCH_RESULT)
    def test_success(self, mock_process, runner, tmp_path):
        result = runner.invoke(app, [], env=_env(tmp_path, BRANCH="main"))
        assert result.exit_code == ExitCode.SUCCESS
        mock_process.assert_called_once()

    @patch("gitclone.cli._process")
    def test_step_error_with_bracketed_output(
        self, mock_process, runner, tmp_path
    ):
        mock_process.side_effect = new_step_error(
            "checkout_failed",
            CommandError("error: pathspec 'feature[/x]' did not match"),
            "Checkout has failed",
        )
        result = runner.invoke(app, [], env=_env(tmp_path, BRANCH="x"))
        assert result.exit_code == ExitCode.GIT_ERROR
        assert result.exception is None or isinstance(
            result.exception, SystemExit
        )
