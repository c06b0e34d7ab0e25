# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Checkout strategies, one per checkout method.

A strategy is built from already validated parameters and runs exactly
once against an initialized repository. Construction fails with
``ParameterValidationError`` when a required parameter is blank, before
any network operation is issued.

Each strategy also reports:

- ``build_trigger_ref``: the ref whose commit metadata is exported after
  the checkout (empty when no single source commit exists).
- ``commit_info_ref``: the ref logged as the source commit before any
  merge happens.
"""

from __future__ import annotations

import logging
import re
from abc import ABC
from abc import abstractmethod
from dataclasses import dataclass
from dataclasses import replace

from .checkout_helpers import FORK_REMOTE_NAME
from .checkout_helpers import ORIGIN_REMOTE_NAME
from .checkout_helpers import REFS_HEADS_PREFIX
from .checkout_helpers import REFS_PREFIX
from .checkout_helpers import FetchOptions
from .checkout_helpers import FetchRef
from .checkout_helpers import checkout_with_fallback
from .checkout_helpers import detach_head
from .checkout_helpers import fetch
from .checkout_helpers import fetch_initial_branch
from .checkout_helpers import merge_with_fallback
from .error_codes import ParameterValidationError
from .fallback import FallbackRetry
from .gitutils import CommandError
from .gitutils import CommandRunner
from .gitutils import Git
from .steperror import new_step_error


__all__ = [
    "CheckoutBranch",
    "CheckoutCommit",
    "CheckoutForkCommit",
    "CheckoutForkPRManualMerge",
    "CheckoutHeadBranchCommit",
    "CheckoutNone",
    "CheckoutPRDiffFile",
    "CheckoutPRManualMerge",
    "CheckoutPRMergeBranch",
    "CheckoutStrategy",
    "CheckoutTag",
    "fetch_arg",
    "merge_arg",
]

log = logging.getLogger(__name__)

_PULL_MERGE_RE = re.compile(r"^pull/(.*)/merge$")


def fetch_arg(merge_branch: str) -> str:
    """Refspec that fetches *merge_branch* into a local tracking ref.

    ``pull/7/merge`` becomes ``refs/pull/7/head:pull/7``; any other name
    is fetched from ``refs/heads/`` under its own name.
    """
    if _PULL_MERGE_RE.match(merge_branch):
        return _PULL_MERGE_RE.sub(r"refs/pull/\1/head:pull/\1", merge_branch)
    return f"{REFS_HEADS_PREFIX}{merge_branch}:{merge_branch}"


def merge_arg(merge_branch: str) -> str:
    """Local name of a fetched merge branch: ``pull/7/merge`` -> ``pull/7``."""
    return merge_branch.removesuffix("/merge")


def _require(value: str, strategy: str, what: str) -> None:
    if not value or not value.strip():
        raise ParameterValidationError(
            f"{strategy} checkout strategy can not be used: no {what} "
            "specified"
        )


def _add_remote(git: Git, runner: CommandRunner, name: str, url: str) -> None:
    try:
        runner.run(git.remote_add(name, url))
    except CommandError as exc:
        raise new_step_error(
            "add_remote_failed",
            exc,
            f"Adding remote repository failed ({url})",
        ) from exc


def _log_commit_hash(git: Git, runner: CommandRunner) -> None:
    try:
        commit_hash = runner.run_for_output(git.log("%H"))
    except CommandError as exc:
        log.error("log commit hash: %s", exc)
        return
    log.info("commit hash: %s", commit_hash)


class CheckoutStrategy(ABC):
    """Operation sequence for one checkout scenario."""

    @abstractmethod
    def do(
        self,
        git: Git,
        runner: CommandRunner,
        fetch_options: FetchOptions,
        fallback: FallbackRetry | None,
    ) -> None:
        """Run the checkout. Raises ``StepError`` on failure."""

    @property
    @abstractmethod
    def build_trigger_ref(self) -> str: ...

    @property
    def commit_info_ref(self) -> str:
        return self.build_trigger_ref


# ── Simple checkouts ────────────────────────────────────────────────


@dataclass(frozen=True)
class CheckoutNone(CheckoutStrategy):
    """Leave the repository as initialized; nothing is fetched."""

    def do(
        self,
        git: Git,
        runner: CommandRunner,
        fetch_options: FetchOptions,
        fallback: FallbackRetry | None,
    ) -> None:
        log.info("No checkout parameters set, skipping checkout")

    @property
    def build_trigger_ref(self) -> str:
        return ""


@dataclass(frozen=True)
class CheckoutCommit(CheckoutStrategy):
    """Check out a commit, optionally fetching only the branch it is on."""

    commit: str
    branch: str = ""

    def __post_init__(self) -> None:
        _require(self.commit, "Commit", "commit hash")

    def do(
        self,
        git: Git,
        runner: CommandRunner,
        fetch_options: FetchOptions,
        fallback: FallbackRetry | None,
    ) -> None:
        ref = None
        if self.branch:
            ref = FetchRef.origin(REFS_HEADS_PREFIX + self.branch)
        fetch(git, runner, fetch_options, ref)
        checkout_with_fallback(git, runner, self.commit, fallback)

    @property
    def build_trigger_ref(self) -> str:
        return self.commit


@dataclass(frozen=True)
class CheckoutTag(CheckoutStrategy):
    tag: str
    branch: str = ""

    def __post_init__(self) -> None:
        _require(self.tag, "Tag", "tag")

    def do(
        self,
        git: Git,
        runner: CommandRunner,
        fetch_options: FetchOptions,
        fallback: FallbackRetry | None,
    ) -> None:
        ref = None
        if self.branch:
            ref = FetchRef.origin(REFS_HEADS_PREFIX + self.branch)
        fetch(git, runner, replace(fetch_options, tags=True), ref)
        checkout_with_fallback(git, runner, self.tag, fallback)

    @property
    def build_trigger_ref(self) -> str:
        return self.tag


@dataclass(frozen=True)
class CheckoutBranch(CheckoutStrategy):
    """Check out the tip of a branch (fetch, checkout, then pull)."""

    branch: str

    def __post_init__(self) -> None:
        _require(self.branch, "Branch", "branch")

    def do(
        self,
        git: Git,
        runner: CommandRunner,
        fetch_options: FetchOptions,
        fallback: FallbackRetry | None,
    ) -> None:
        fetch_initial_branch(
            git,
            runner,
            ORIGIN_REMOTE_NAME,
            REFS_HEADS_PREFIX + self.branch,
            fetch_options,
        )

    @property
    def build_trigger_ref(self) -> str:
        return self.branch


# ── Pull request checkouts with a merge ─────────────────────────────


@dataclass(frozen=True)
class CheckoutPRMergeBranch(CheckoutStrategy):
    """Use the merge ref precomputed by the git hosting provider."""

    base_branch: str
    merge_branch: str

    def __post_init__(self) -> None:
        _require(self.base_branch, "PR merge branch", "base branch")
        _require(self.merge_branch, "PR merge branch", "merge branch")

    def do(
        self,
        git: Git,
        runner: CommandRunner,
        fetch_options: FetchOptions,
        fallback: FallbackRetry | None,
    ) -> None:
        fetch(
            git,
            runner,
            fetch_options,
            FetchRef.origin(REFS_HEADS_PREFIX + self.base_branch),
        )
        # Clone depth is not applied to the merge ref.
        fetch(
            git,
            runner,
            FetchOptions(),
            FetchRef.origin(fetch_arg(self.merge_branch)),
        )

        checkout_with_fallback(
            git, runner, self.base_branch, None, branch=self.base_branch
        )
        remote_base_branch = f"{ORIGIN_REMOTE_NAME}/{self.base_branch}"
        try:
            runner.run(git.merge(remote_base_branch))
        except CommandError as exc:
            raise new_step_error(
                "update_branch_failed", exc, "Updating branch failed"
            ) from exc

        merge_with_fallback(git, runner, merge_arg(self.merge_branch), fallback)
        detach_head(git, runner)

    @property
    def build_trigger_ref(self) -> str:
        return merge_arg(self.merge_branch)


@dataclass(frozen=True)
class CheckoutPRDiffFile(CheckoutStrategy):
    """Apply the PR diff supplied by the build service onto the base."""

    base_branch: str
    patch_file: str

    def __post_init__(self) -> None:
        _require(self.base_branch, "PR diff file", "base branch")
        _require(self.patch_file, "PR diff file", "diff file")

    def do(
        self,
        git: Git,
        runner: CommandRunner,
        fetch_options: FetchOptions,
        fallback: FallbackRetry | None,
    ) -> None:
        fetch(
            git,
            runner,
            fetch_options,
            FetchRef.origin(REFS_HEADS_PREFIX + self.base_branch),
        )
        checkout_with_fallback(
            git, runner, self.base_branch, None, branch=self.base_branch
        )
        try:
            runner.run(git.apply(self.patch_file))
        except CommandError as exc:
            raise new_step_error(
                "apply_patch_failed",
                exc,
                f"Applying patch ({self.patch_file}) has failed",
            ) from exc
        detach_head(git, runner)

    @property
    def build_trigger_ref(self) -> str:
        return ""


@dataclass(frozen=True)
class CheckoutPRManualMerge(CheckoutStrategy):
    """Merge a same-repository head commit into the base branch."""

    base_branch: str
    head_branch: str
    commit: str

    def __post_init__(self) -> None:
        _require(self.base_branch, "PR manual merge", "base branch")
        _require(self.head_branch, "PR manual merge", "head branch")
        _require(self.commit, "PR manual merge", "head branch commit hash")

    def do(
        self,
        git: Git,
        runner: CommandRunner,
        fetch_options: FetchOptions,
        fallback: FallbackRetry | None,
    ) -> None:
        fetch_initial_branch(
            git,
            runner,
            ORIGIN_REMOTE_NAME,
            REFS_HEADS_PREFIX + self.base_branch,
            fetch_options,
        )
        _log_commit_hash(git, runner)

        fetch(
            git,
            runner,
            fetch_options,
            FetchRef.origin(REFS_HEADS_PREFIX + self.head_branch),
        )
        merge_with_fallback(git, runner, self.commit, fallback)
        detach_head(git, runner)

    @property
    def build_trigger_ref(self) -> str:
        return self.commit


@dataclass(frozen=True)
class CheckoutForkPRManualMerge(CheckoutStrategy):
    """Merge the head branch of a fork into the base branch."""

    base_branch: str
    head_branch: str
    fork_repository_url: str

    def __post_init__(self) -> None:
        _require(self.base_branch, "PR (fork) manual merge", "base branch")
        _require(self.head_branch, "PR (fork) manual merge", "head branch")
        _require(
            self.fork_repository_url,
            "PR (fork) manual merge",
            "head repository URL",
        )

    def do(
        self,
        git: Git,
        runner: CommandRunner,
        fetch_options: FetchOptions,
        fallback: FallbackRetry | None,
    ) -> None:
        fetch_initial_branch(
            git,
            runner,
            ORIGIN_REMOTE_NAME,
            REFS_HEADS_PREFIX + self.base_branch,
            fetch_options,
        )
        _log_commit_hash(git, runner)

        _add_remote(git, runner, FORK_REMOTE_NAME, self.fork_repository_url)
        fetch(
            git,
            runner,
            fetch_options,
            FetchRef(FORK_REMOTE_NAME, REFS_HEADS_PREFIX + self.head_branch),
        )
        merge_with_fallback(git, runner, self.build_trigger_ref, fallback)
        detach_head(git, runner)

    @property
    def build_trigger_ref(self) -> str:
        return f"{FORK_REMOTE_NAME}/{self.head_branch}"


# ── Pull request checkouts without a merge ──────────────────────────


@dataclass(frozen=True)
class CheckoutHeadBranchCommit(CheckoutStrategy):
    """Check out a PR through the provider's head ref (``pull/7/head``).

    The head ref lives in the destination repository, so this also works
    for pull requests opened from forks that can not be accessed.
    """

    head_branch: str
    commit: str = ""

    def __post_init__(self) -> None:
        _require(self.head_branch, "PR head branch", "head branch")

    def do(
        self,
        git: Git,
        runner: CommandRunner,
        fetch_options: FetchOptions,
        fallback: FallbackRetry | None,
    ) -> None:
        head_ref = REFS_PREFIX + self.head_branch
        if self.commit:
            fetch(git, runner, fetch_options, FetchRef.origin(head_ref))
            checkout_with_fallback(git, runner, self.commit, fallback)
            return

        fetch(
            git,
            runner,
            fetch_options,
            FetchRef.origin(f"{head_ref}:{self.head_branch}"),
        )
        checkout_with_fallback(git, runner, self.head_branch, fallback)

    @property
    def build_trigger_ref(self) -> str:
        return self.commit or self.head_branch


@dataclass(frozen=True)
class CheckoutForkCommit(CheckoutStrategy):
    """Check out a PR commit (or branch tip) directly from the fork."""

    fork_repository_url: str
    branch: str
    commit: str = ""

    def __post_init__(self) -> None:
        _require(
            self.fork_repository_url, "PR (fork) head", "head repository URL"
        )
        _require(self.branch, "PR (fork) head", "head branch")

    def do(
        self,
        git: Git,
        runner: CommandRunner,
        fetch_options: FetchOptions,
        fallback: FallbackRetry | None,
    ) -> None:
        _add_remote(git, runner, FORK_REMOTE_NAME, self.fork_repository_url)
        branch_ref = REFS_HEADS_PREFIX + self.branch
        if self.commit:
            fetch(
                git, runner, fetch_options, FetchRef(FORK_REMOTE_NAME, branch_ref)
            )
            checkout_with_fallback(git, runner, self.commit, fallback)
            return

        fetch_initial_branch(
            git, runner, FORK_REMOTE_NAME, branch_ref, fetch_options
        )

    @property
    def build_trigger_ref(self) -> str:
        return self.commit or f"{FORK_REMOTE_NAME}/{self.branch}"
