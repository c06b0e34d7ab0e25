# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Fetch, checkout and merge primitives shared by the checkout strategies.

Every primitive raises a ``StepError`` on terminal failure. Fetch and
checkout failures that concern a named branch are enriched with the
branches that actually exist on ``origin``; the extra listing round trip
only happens on that error path.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from .error_matcher import CHECKOUT_FAILED_TAG
from .error_matcher import FETCH_FAILED_TAG
from .fallback import FallbackRetry
from .fallback import run_with_fallback
from .gitutils import JOBS_FLAG
from .gitutils import CommandError
from .gitutils import CommandRunner
from .gitutils import Git
from .gitutils import tag_flags
from .steperror import StepError
from .steperror import new_step_error
from .steperror import new_step_error_with_branch_recommendations


__all__ = [
    "FORK_REMOTE_NAME",
    "ORIGIN_REMOTE_NAME",
    "REFS_HEADS_PREFIX",
    "REFS_PREFIX",
    "FetchOptions",
    "FetchRef",
    "checkout_with_fallback",
    "detach_head",
    "fetch",
    "fetch_initial_branch",
    "handle_checkout_error",
    "list_branches",
    "merge_with_fallback",
    "parse_list_branches_output",
]

log = logging.getLogger(__name__)

ORIGIN_REMOTE_NAME = "origin"
FORK_REMOTE_NAME = "fork"

REFS_PREFIX = "refs/"
REFS_HEADS_PREFIX = "refs/heads/"


# ── Data models ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class FetchOptions:
    """Flags applied to a fetch.

    Attributes:
        depth: History depth; ``0`` fetches the full history.
        tags: Fetch tags as well (``--tags``); otherwise ``--no-tags``.
        fetch_submodules: Let fetch recurse into populated submodules;
            otherwise ``--no-recurse-submodules``.
        filter_tree: Treeless partial fetch (``--filter=tree:0``), used
            together with sparse checkout.
    """

    depth: int = 0
    tags: bool = False
    fetch_submodules: bool = False
    filter_tree: bool = False

    @property
    def is_full_depth(self) -> bool:
        return self.depth == 0

    def flags(self) -> list[str]:
        opts = [JOBS_FLAG]
        if self.depth > 0:
            opts.append(f"--depth={self.depth}")
        if self.filter_tree:
            opts.append("--filter=tree:0")
        opts.extend(tag_flags(self.tags, self.fetch_submodules))
        return opts


@dataclass(frozen=True)
class FetchRef:
    """A ref to fetch together with the remote it is fetched from."""

    remote: str
    ref: str

    @classmethod
    def origin(cls, ref: str) -> FetchRef:
        return cls(ORIGIN_REMOTE_NAME, ref)


# ── Branch listing ──────────────────────────────────────────────────


def parse_list_branches_output(output: str) -> dict[str, list[str]]:
    """Group ``git branch -r`` lines by remote name.

    ``origin/feature/x`` yields ``{"origin": ["feature/x"]}``; symbolic
    lines such as ``origin/HEAD -> origin/main`` are skipped.
    """
    branches_by_remote: dict[str, list[str]] = {}
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line or "->" in line:
            continue
        remote, sep, branch = line.partition("/")
        if not sep or not branch:
            continue
        branches_by_remote.setdefault(remote, []).append(branch)
    return branches_by_remote


def list_branches(git: Git, runner: CommandRunner) -> dict[str, list[str]]:
    """Fetch every branch (no depth limit) and list them per remote."""
    runner.run(git.fetch())
    out = runner.run_for_output(git.branch("-r"))
    return parse_list_branches_output(out)


def handle_checkout_error(
    list_branches_fn: Callable[[], dict[str, list[str]]],
    tag: str,
    err: BaseException,
    short_msg: str,
    branch: str,
    remote: str = ORIGIN_REMOTE_NAME,
) -> StepError:
    """Turn a fetch or checkout failure into a ``StepError``.

    When *branch* is set and missing from *remote*, the branches that
    do exist there are attached as recommendations. A failure while
    listing them is logged and otherwise ignored.
    """
    if not branch:
        return new_step_error(tag, err, short_msg)

    try:
        branches_by_remote = list_branches_fn()
    except CommandError as exc:
        log.warning("Listing remote branches failed: %s", exc)
        return new_step_error(tag, err, short_msg)

    branches = branches_by_remote.get(remote, [])
    if branch in branches:
        return new_step_error(tag, err, short_msg)
    return new_step_error_with_branch_recommendations(
        tag, err, short_msg, branch, branches
    )


# ── Primitives ──────────────────────────────────────────────────────


def fetch(
    git: Git,
    runner: CommandRunner,
    options: FetchOptions,
    ref: FetchRef | None = None,
) -> None:
    """Fetch *ref* (or the default refspec) with the given options.

    The fetch goes through ``run_with_retry``. Raises a ``StepError``
    tagged ``fetch_failed`` once all attempts failed.
    """
    opts = options.flags()
    if ref is not None:
        opts.extend([ref.remote, ref.ref])

    try:
        runner.run_with_retry(lambda: git.fetch(*opts))
    except CommandError as exc:
        # Not necessarily a branch, tags and pull refs are skipped.
        branch = ""
        if ref is not None and ref.ref.startswith(REFS_HEADS_PREFIX):
            branch = ref.ref[len(REFS_HEADS_PREFIX) :]
        raise handle_checkout_error(
            lambda: list_branches(git, runner),
            FETCH_FAILED_TAG,
            exc,
            "Fetching repository has failed",
            branch,
            ref.remote if ref is not None else ORIGIN_REMOTE_NAME,
        ) from exc


def checkout_with_fallback(
    git: Git,
    runner: CommandRunner,
    arg: str,
    fallback: FallbackRetry | None,
    *,
    branch: str = "",
    remote: str = ORIGIN_REMOTE_NAME,
) -> None:
    """Check out *arg*; on failure run *fallback* and retry exactly once.

    Args:
        arg: Commit, tag or branch to check out.
        fallback: Recovery step, or ``None`` to fail on the first error.
        branch: Set when *arg* names a branch, to recommend existing
            branches if it is missing.
        remote: Remote whose branches are recommended.
    """
    try:
        run_with_fallback(git, runner, git.checkout(arg), fallback)
    except CommandError as exc:
        raise handle_checkout_error(
            lambda: list_branches(git, runner),
            CHECKOUT_FAILED_TAG,
            exc,
            "Checkout has failed",
            branch,
            remote,
        ) from exc


def merge_with_fallback(
    git: Git,
    runner: CommandRunner,
    arg: str,
    fallback: FallbackRetry | None,
) -> None:
    """Merge *arg* into HEAD with the same one-shot retry as checkout."""
    try:
        run_with_fallback(git, runner, git.merge(arg), fallback)
    except CommandError as exc:
        log.error(
            "Merge failed (%s), please try to resolve all conflicts "
            "between the base and compare branches",
            arg,
        )
        raise new_step_error("merge_failed", exc, "Merge has failed") from exc


def detach_head(git: Git, runner: CommandRunner) -> None:
    try:
        runner.run(git.checkout("--detach"))
    except CommandError as exc:
        raise new_step_error(
            "detach_head_failed", exc, "Detaching head failed"
        ) from exc


def fetch_initial_branch(
    git: Git,
    runner: CommandRunner,
    remote: str,
    branch_ref: str,
    options: FetchOptions,
) -> None:
    """Fetch, check out and fast-forward a branch (``git pull`` equivalent).

    Args:
        remote: Remote the branch lives on (``origin`` or ``fork``).
        branch_ref: Full ref name, e.g. ``refs/heads/main``.
        options: Fetch options of the current checkout.
    """
    branch = branch_ref.removeprefix(REFS_HEADS_PREFIX)
    fetch(git, runner, options, FetchRef(remote, branch_ref))
    checkout_with_fallback(
        git, runner, branch, None, branch=branch, remote=remote
    )

    remote_branch = f"{remote}/{branch}"
    try:
        runner.run(git.merge(remote_branch))
    except CommandError as exc:
        raise new_step_error(
            "update_branch_failed", exc, "Updating branch failed"
        ) from exc
