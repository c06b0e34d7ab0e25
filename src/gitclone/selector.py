# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Checkout method selection.

``select_checkout_method`` is a pure decision over the configuration: it
never touches the repository. ``plan_checkout`` derives the strategy, the
fetch options and the fallback together from one configuration snapshot,
so the operations issued always agree with the depth they assume.

Parameters used per strategy::

    X: required  !: selects the strategy  _: optional

    | param        | commit | tag | branch | manual MR | head branch | diff |
    | commit       |  X !   |     |        |  X        |  _          |      |
    | tag          |        | X ! |        |           |             |      |
    | branch       |  _     |  _  |  X !   |  X        |             |      |
    | branch_dest  |        |     |        |  X !      |             | X !  |
    | PR repo URL  |        |     |        |  _        |             |      |
    | merge branch |        |     |        |           |             |      |
    | head branch  |        |     |        |           |  X !        |      |
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlsplit

from .build_api import PatchSource
from .checkout_helpers import FetchOptions
from .config import Config
from .error_codes import GitCloneError
from .fallback import FallbackRetry
from .fallback import ResetUnshallow
from .fallback import SimpleUnshallow
from .strategies import CheckoutBranch
from .strategies import CheckoutCommit
from .strategies import CheckoutForkCommit
from .strategies import CheckoutForkPRManualMerge
from .strategies import CheckoutHeadBranchCommit
from .strategies import CheckoutNone
from .strategies import CheckoutPRDiffFile
from .strategies import CheckoutPRManualMerge
from .strategies import CheckoutPRMergeBranch
from .strategies import CheckoutStrategy
from .strategies import CheckoutTag


__all__ = [
    "CheckoutMethod",
    "CheckoutPlan",
    "create_checkout_strategy",
    "ideal_default_clone_depth",
    "is_fork",
    "is_pr_checkout",
    "is_private",
    "plan_checkout",
    "select_checkout_method",
    "select_fallback",
    "select_fetch_options",
]

log = logging.getLogger(__name__)

DEFAULT_CLONE_DEPTH = 50
SHALLOW_CLONE_DEPTH = 1

PRIVATE_FORK_AUTH_WARNING = (
    "May fail due to missing authentication as Pull Request opened from a "
    "private fork.\nA git hosting provider head branch or a diff file is "
    "unavailable."
)


class CheckoutMethod(Enum):
    NONE = "None"
    COMMIT = "Commit"
    TAG = "Tag"
    BRANCH = "Branch"
    PR_MERGE_BRANCH = "PRMergeBranch"
    PR_DIFF_FILE = "PRDiffFile"
    PR_MANUAL_MERGE = "PRManualMerge"
    FORK_PR_MANUAL_MERGE = "ForkPRManualMerge"
    HEAD_BRANCH_COMMIT = "HeadBranchCommit"
    FORK_COMMIT = "ForkCommit"

    def __str__(self) -> str:
        return self.value


# ── Repository URL helpers ──────────────────────────────────────────


def canonical_repo(url: str) -> str:
    """Reduce a repository URL to ``host/owner/repo``.

    Handles ``https://``, ``ssh://`` (with or without port) and scp-like
    ``git@host:owner/repo.git`` forms. Credentials, port and a trailing
    ``.git`` are dropped; the host is lower-cased.
    """
    url = url.strip()
    if "://" in url:
        parts = urlsplit(url)
        host = parts.hostname or ""
        path = parts.path
    else:
        _, _, rest = url.rpartition("@")
        host, _, path = rest.partition(":")
    path = path.strip("/").removesuffix(".git")
    return f"{host.lower()}/{path}"


def is_fork(repository_url: str, pr_repository_url: str) -> bool:
    """True when the PR comes from a different repository than the base."""
    return bool(pr_repository_url) and (
        canonical_repo(repository_url) != canonical_repo(pr_repository_url)
    )


def is_private(repository_url: str) -> bool:
    """Non-HTTP URLs imply key based auth and are treated as private."""
    return not repository_url.startswith("http")


def _get_patch_file(patch_source: PatchSource | None, cfg: Config) -> str:
    if patch_source is None or not cfg.build_url:
        return ""
    try:
        return patch_source.get_pr_patch()
    except GitCloneError as exc:
        log.warning("Diff file unavailable: %s", exc)
        return ""


# ── Selection ───────────────────────────────────────────────────────


def select_checkout_method(
    cfg: Config, patch_source: PatchSource | None = None
) -> tuple[CheckoutMethod, str]:
    """Pick the checkout method for *cfg*.

    Args:
        cfg: Run configuration.
        patch_source: Provider of the PR diff, asked only when a diff is
            the remaining option.

    Returns:
        The method and, for ``PRDiffFile``, the local diff path (empty
        otherwise).
    """
    if not cfg.is_pr:
        # Unsupported combinations prefer the commit.
        if cfg.commit:
            return CheckoutMethod.COMMIT, ""
        if cfg.tag:
            return CheckoutMethod.TAG, ""
        if cfg.branch:
            return CheckoutMethod.BRANCH, ""
        return CheckoutMethod.NONE, ""

    fork = is_fork(cfg.repository_url, cfg.pr_source_repository_url)
    private_source = is_private(cfg.pr_source_repository_url)

    if not cfg.should_merge_pr:
        if cfg.pr_head_branch:
            return CheckoutMethod.HEAD_BRANCH_COMMIT, ""
        if not fork:
            return CheckoutMethod.COMMIT, ""
        if not private_source:
            return CheckoutMethod.FORK_COMMIT, ""

        patch_file = _get_patch_file(patch_source, cfg)
        if patch_file:
            log.info(
                "Merging Pull Request despite the option to disable "
                "merging, as it is opened from a private fork."
            )
            return CheckoutMethod.PR_DIFF_FILE, patch_file

        log.warning(PRIVATE_FORK_AUTH_WARNING)
        return CheckoutMethod.FORK_COMMIT, ""

    private_fork = fork and private_source
    if not cfg.manual_merge or private_fork:
        if cfg.pr_merge_branch:
            return CheckoutMethod.PR_MERGE_BRANCH, ""
        patch_file = _get_patch_file(patch_source, cfg)
        if patch_file:
            return CheckoutMethod.PR_DIFF_FILE, patch_file
        if private_fork:
            log.warning(PRIVATE_FORK_AUTH_WARNING)

    if fork:
        return CheckoutMethod.FORK_PR_MANUAL_MERGE, ""
    return CheckoutMethod.PR_MANUAL_MERGE, ""


def create_checkout_strategy(
    method: CheckoutMethod, cfg: Config, patch_file: str = ""
) -> CheckoutStrategy:
    """Build the strategy for *method* from *cfg*.

    Raises:
        ParameterValidationError: A parameter the strategy needs is blank.
    """
    if method is CheckoutMethod.NONE:
        return CheckoutNone()
    if method is CheckoutMethod.COMMIT:
        return CheckoutCommit(commit=cfg.commit, branch=cfg.branch)
    if method is CheckoutMethod.TAG:
        return CheckoutTag(tag=cfg.tag, branch=cfg.branch)
    if method is CheckoutMethod.BRANCH:
        return CheckoutBranch(branch=cfg.branch)
    if method is CheckoutMethod.PR_MERGE_BRANCH:
        return CheckoutPRMergeBranch(
            base_branch=cfg.pr_dest_branch, merge_branch=cfg.pr_merge_branch
        )
    if method is CheckoutMethod.PR_DIFF_FILE:
        return CheckoutPRDiffFile(
            base_branch=cfg.pr_dest_branch, patch_file=patch_file
        )
    if method is CheckoutMethod.PR_MANUAL_MERGE:
        return CheckoutPRManualMerge(
            base_branch=cfg.pr_dest_branch,
            head_branch=cfg.branch,
            commit=cfg.commit,
        )
    if method is CheckoutMethod.FORK_PR_MANUAL_MERGE:
        return CheckoutForkPRManualMerge(
            base_branch=cfg.pr_dest_branch,
            head_branch=cfg.branch,
            fork_repository_url=cfg.pr_source_repository_url,
        )
    if method is CheckoutMethod.HEAD_BRANCH_COMMIT:
        return CheckoutHeadBranchCommit(
            head_branch=cfg.pr_head_branch, commit=cfg.commit
        )
    if method is CheckoutMethod.FORK_COMMIT:
        return CheckoutForkCommit(
            fork_repository_url=cfg.pr_source_repository_url,
            branch=cfg.branch,
            commit=cfg.commit,
        )
    raise ValueError(f"unhandled checkout method: {method!r}")


def ideal_default_clone_depth(method: CheckoutMethod) -> int:
    # Manual merges need enough shared history to find a merge base.
    if method in (
        CheckoutMethod.PR_MANUAL_MERGE,
        CheckoutMethod.FORK_PR_MANUAL_MERGE,
    ):
        return DEFAULT_CLONE_DEPTH
    return SHALLOW_CLONE_DEPTH


_FILTER_TREE_METHODS = frozenset(
    {
        CheckoutMethod.COMMIT,
        CheckoutMethod.TAG,
        CheckoutMethod.BRANCH,
        CheckoutMethod.HEAD_BRANCH_COMMIT,
        CheckoutMethod.FORK_COMMIT,
    }
)


def select_fetch_options(
    method: CheckoutMethod,
    clone_depth: int | None,
    fetch_tags: bool,
    fetch_submodules: bool = False,
    filter_tree: bool = False,
) -> FetchOptions:
    """Fetch options for *method*.

    Args:
        clone_depth: Configured depth; ``None`` picks the method's
            default, ``0`` means full history.
        fetch_submodules: Submodules are updated after checkout, so
            fetch may recurse into them.
        filter_tree: Sparse checkout is active; only honoured for methods
            that do not merge.
    """
    depth = (
        ideal_default_clone_depth(method) if clone_depth is None else clone_depth
    )
    return FetchOptions(
        depth=depth,
        tags=fetch_tags,
        fetch_submodules=fetch_submodules,
        filter_tree=filter_tree and method in _FILTER_TREE_METHODS,
    )


def select_fallback(
    method: CheckoutMethod, fetch_options: FetchOptions
) -> FallbackRetry | None:
    """Recovery policy for *method*; none when history is already full."""
    if fetch_options.is_full_depth:
        return None
    if method in (
        CheckoutMethod.NONE,
        CheckoutMethod.BRANCH,
        CheckoutMethod.PR_DIFF_FILE,
    ):
        return None
    if method is CheckoutMethod.PR_MERGE_BRANCH:
        return ResetUnshallow(
            tags=fetch_options.tags,
            fetch_submodules=fetch_options.fetch_submodules,
        )
    return SimpleUnshallow(
        tags=fetch_options.tags,
        fetch_submodules=fetch_options.fetch_submodules,
    )


def is_pr_checkout(method: CheckoutMethod) -> bool:
    return method not in (
        CheckoutMethod.NONE,
        CheckoutMethod.COMMIT,
        CheckoutMethod.TAG,
        CheckoutMethod.BRANCH,
    )


@dataclass(frozen=True)
class CheckoutPlan:
    """Everything needed to run one checkout, derived from one config."""

    method: CheckoutMethod
    strategy: CheckoutStrategy
    fetch_options: FetchOptions
    fallback: FallbackRetry | None


def plan_checkout(
    cfg: Config, patch_source: PatchSource | None = None
) -> CheckoutPlan:
    method, patch_file = select_checkout_method(cfg, patch_source)
    strategy = create_checkout_strategy(method, cfg, patch_file)
    fetch_options = select_fetch_options(
        method,
        cfg.clone_depth,
        cfg.fetch_tags,
        fetch_submodules=cfg.update_submodules,
        filter_tree=bool(cfg.sparse_directories),
    )
    return CheckoutPlan(
        method=method,
        strategy=strategy,
        fetch_options=fetch_options,
        fallback=select_fallback(method, fetch_options),
    )
