# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""Shared fixtures: a recording command runner with scripted failures."""

from __future__ import annotations

from pathlib import Path

import pytest

from gitclone.gitutils import Command
from gitclone.gitutils import CommandError
from gitclone.gitutils import CommandResult
from gitclone.gitutils import DefaultRunner
from gitclone.gitutils import Git


# Number of failures that is never used up within one test.
ALWAYS = 9999

DUMMY_CMD_ERROR = "dummy_cmd_error"

# Command line prefix of every fetch built from ``FetchOptions``.
FETCH = "fetch --jobs=10"
# Tag and submodule flags of a fetch with default options.
NO_EXTRAS = "--no-tags --no-recurse-submodules"
UNSHALLOW = f"{FETCH} --unshallow {NO_EXTRAS}"


class FakeRunner(DefaultRunner):
    """``DefaultRunner`` that records command lines instead of running them.

    Failures and outputs are keyed by the command line without the
    leading ``git``, e.g. ``"fetch origin refs/heads/main"``.
    """

    def __init__(self) -> None:
        self.sleeps: list[float] = []
        super().__init__(retry_wait=5, sleep=self.sleeps.append)
        self.commands: list[str] = []
        self._failures: dict[str, list] = {}
        self._outputs: dict[str, str] = {}

    def fail(
        self, line: str, times: int = ALWAYS, message: str = DUMMY_CMD_ERROR
    ) -> FakeRunner:
        self._failures[line] = [times, message]
        return self

    def output(self, line: str, stdout: str) -> FakeRunner:
        self._outputs[line] = stdout
        return self

    def _execute(self, command: Command) -> CommandResult:
        args = list(command.args)
        if args and args[0] == "git":
            args = args[1:]
        line = " ".join(args)
        self.commands.append(line)

        failure = self._failures.get(line)
        if failure and failure[0] > 0:
            failure[0] -= 1
            raise CommandError(
                failure[1],
                cmd=command.args,
                returncode=1,
                stderr=failure[1],
            )
        return CommandResult(returncode=0, stdout=self._outputs.get(line, ""))


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def git(tmp_path: Path) -> Git:
    return Git(tmp_path)
