# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Recovery policies for operations that fail on a shallow history.

A checkout or merge on a shallow clone can fail simply because the
needed commits were never fetched. The policies here make the history
complete so the operation can be attempted once more:

``SimpleUnshallow``
    ``git fetch --unshallow`` and nothing else.

``ResetUnshallow``
    Hard reset and clean the working tree (submodules included), then
    unshallow. Used after a failed merge, which can leave the tree
    half merged.

``run_with_fallback`` drives the try, recover, retry-once sequence as
an explicit ``Initial -> Recovering -> Retried`` state machine.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from .gitutils import JOBS_FLAG
from .gitutils import Command
from .gitutils import CommandError
from .gitutils import CommandRunner
from .gitutils import Git
from .gitutils import tag_flags
from .steperror import new_step_error


__all__ = [
    "FallbackRetry",
    "FallbackState",
    "ResetUnshallow",
    "SimpleUnshallow",
    "reset_repo",
    "run_with_fallback",
    "unshallow_fetch",
]

log = logging.getLogger(__name__)


class FallbackRetry(Protocol):
    """A recovery step run once before the failed operation is retried."""

    def do(self, git: Git, runner: CommandRunner) -> None: ...


class FallbackState(Enum):
    INITIAL = "initial"
    RECOVERING = "recovering"
    RETRIED = "retried"


def reset_repo(git: Git, runner: CommandRunner) -> None:
    """Discard every local change in the tree and in all submodules."""
    runner.run(git.reset("--hard", "HEAD"))
    runner.run(git.clean("-x", "-d", "-f"))
    runner.run(git.submodule_foreach(git.reset("--hard", "HEAD")))
    runner.run(git.submodule_foreach(git.clean("-x", "-d", "-f")))


def unshallow_fetch(
    git: Git,
    runner: CommandRunner,
    *,
    tags: bool = False,
    fetch_submodules: bool = False,
) -> None:
    opts = [JOBS_FLAG, "--unshallow", *tag_flags(tags, fetch_submodules)]
    try:
        runner.run_with_retry(lambda: git.fetch(*opts))
    except CommandError as exc:
        raise new_step_error(
            "fetch_unshallow_failed",
            exc,
            "Fetching with unshallow parameter has failed",
        ) from exc


@dataclass(frozen=True)
class SimpleUnshallow:
    """Unshallow with the tag and submodule settings of the first fetch."""

    tags: bool = False
    fetch_submodules: bool = False

    def do(self, git: Git, runner: CommandRunner) -> None:
        log.info("Fetch with unshallow...")
        unshallow_fetch(
            git,
            runner,
            tags=self.tags,
            fetch_submodules=self.fetch_submodules,
        )


@dataclass(frozen=True)
class ResetUnshallow:
    tags: bool = False
    fetch_submodules: bool = False

    def do(self, git: Git, runner: CommandRunner) -> None:
        log.info("Resetting repository, then fetch with unshallow...")
        try:
            reset_repo(git, runner)
        except CommandError as exc:
            raise new_step_error(
                "reset_repository_failed", exc, "Resetting repository failed"
            ) from exc
        unshallow_fetch(
            git,
            runner,
            tags=self.tags,
            fetch_submodules=self.fetch_submodules,
        )


def run_with_fallback(
    git: Git,
    runner: CommandRunner,
    command: Command,
    fallback: FallbackRetry | None,
) -> FallbackState:
    """Run *command*; on failure recover with *fallback* and retry once.

    Returns the state the sequence finished in: ``INITIAL`` when the
    first attempt succeeded, ``RETRIED`` when the retry did.

    Raises:
        CommandError: The first failure when there is no fallback, or
            the failure of the single retry.
        StepError: When the fallback itself fails.
    """
    state = FallbackState.INITIAL
    while True:
        try:
            runner.run(command)
        except CommandError as exc:
            if fallback is None or state is FallbackState.RETRIED:
                raise
            log.warning("%s failed: %s", command.printable(), exc)
            state = FallbackState.RECOVERING
            fallback.do(git, runner)
            state = FallbackState.RETRIED
        else:
            return state
