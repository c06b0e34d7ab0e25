# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Repository preparation and checkout orchestration.

``GitCloner.checkout_state`` takes a validated ``Config`` and brings the
clone directory to the requested state:

1. create the directory, verify or reuse an existing ``origin``
2. ``git init`` and add ``origin``
3. configure sparse checkout
4. confirm an unverified merge ref with the build service
5. plan and run the checkout strategy
6. update submodules
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from dataclasses import replace
from pathlib import Path

from .build_api import BuildApiError
from .build_api import MergeRefChecker
from .build_api import MergeRefNotMergeableError
from .build_api import PatchSource
from .checkout_helpers import ORIGIN_REMOTE_NAME
from .config import Config
from .error_codes import ExitCode
from .error_matcher import UPDATE_SUBMODULE_FAILED_TAG
from .fallback import reset_repo
from .gitutils import JOBS_FLAG
from .gitutils import CommandError
from .gitutils import CommandRunner
from .gitutils import Git
from .selector import CheckoutMethod
from .selector import is_pr_checkout
from .selector import plan_checkout
from .steperror import StepError
from .steperror import new_step_error
from .strategies import CheckoutStrategy


__all__ = [
    "CheckoutStateResult",
    "GitCloner",
    "is_origin_present",
]

log = logging.getLogger(__name__)

SPARSE_CHECKOUT_FAILED_TAG = "sparse_checkout_failed"


@dataclass(frozen=True)
class CheckoutStateResult:
    """Outcome of a successful checkout.

    Attributes:
        strategy: The strategy that ran.
        method: Checkout method it was selected for.
        is_pr: Whether the run checked out a pull request.
        build_trigger_ref: Ref to export commit metadata from.
        commit_info_ref: Ref logged as the source commit.
    """

    strategy: CheckoutStrategy
    method: CheckoutMethod
    is_pr: bool
    build_trigger_ref: str
    commit_info_ref: str


def is_origin_present(
    git: Git, runner: CommandRunner, clone_dir: Path, repository_url: str
) -> bool:
    """Check whether *clone_dir* is already a clone of *repository_url*.

    Raises:
        StepError: ``.git`` exists but none of its remotes point to
            *repository_url*.
    """
    if not (clone_dir / ".git").is_dir():
        return False

    try:
        remotes = runner.run_for_output(git.remote_list())
    except CommandError as exc:
        raise new_step_error(
            "check_origin_present_failed",
            exc,
            "Checking whether origin is present failed",
        ) from exc

    if repository_url not in remotes:
        raise StepError(
            "check_origin_present_failed",
            RuntimeError(
                f".git folder exists in the directory ({clone_dir}), but "
                "using a different remote"
            ),
            "Checking whether origin is present failed",
        )
    return True


class GitCloner:
    """Runs the clone step against one directory.

    Args:
        runner: Executes git commands.
        patch_source: Supplies the PR diff when a diff checkout is needed.
        merge_ref_checker: Confirms unverified merge refs.
    """

    def __init__(
        self,
        runner: CommandRunner,
        patch_source: PatchSource | None = None,
        merge_ref_checker: MergeRefChecker | None = None,
    ) -> None:
        self.runner = runner
        self.patch_source = patch_source
        self.merge_ref_checker = merge_ref_checker

    def checkout_state(self, cfg: Config) -> CheckoutStateResult:
        """Bring ``cfg.clone_into_dir`` to the state *cfg* asks for.

        Raises:
            StepError: Any git step failed.
            ParameterValidationError: The selected strategy lacks a
                required parameter.
            GitCloneError: The merge ref is not mergeable.
        """
        clone_dir = Path(cfg.clone_into_dir).expanduser().absolute()
        git = Git(clone_dir)

        self._prepare_repository(git, clone_dir, cfg)
        self._setup_sparse_checkout(git, cfg.sparse_directories)

        cfg = self._verify_merge_ref(cfg)
        plan = plan_checkout(cfg, self.patch_source)
        log.info("Checkout strategy: %s", plan.method)
        log.debug(
            "Fetch options: %s, fallback: %s", plan.fetch_options, plan.fallback
        )

        start = time.monotonic()
        try:
            plan.strategy.do(
                git, self.runner, plan.fetch_options, plan.fallback
            )
        except StepError:
            log.info("Checkout strategy used: %s", type(plan.strategy).__name__)
            raise
        log.debug("Checkout took %.1fs", time.monotonic() - start)

        if cfg.update_submodules:
            self._update_submodules(git, cfg.submodule_update_depth)

        result = CheckoutStateResult(
            strategy=plan.strategy,
            method=plan.method,
            is_pr=cfg.is_pr or is_pr_checkout(plan.method),
            build_trigger_ref=plan.strategy.build_trigger_ref,
            commit_info_ref=plan.strategy.commit_info_ref,
        )
        if result.commit_info_ref:
            log.info("Source commit: %s", result.commit_info_ref)
        return result

    # ── Steps ───────────────────────────────────────────────────────

    def _prepare_repository(
        self, git: Git, clone_dir: Path, cfg: Config
    ) -> None:
        try:
            clone_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StepError(
                "git_new",
                exc,
                "Creating new git project directory failed",
                exit_code=ExitCode.GENERAL_ERROR,
            ) from exc

        origin_present = is_origin_present(
            git, self.runner, clone_dir, cfg.repository_url
        )
        if origin_present and cfg.reset_repository:
            try:
                reset_repo(git, self.runner)
            except CommandError as exc:
                raise new_step_error(
                    "reset_repository_failed", exc, "Resetting repository failed"
                ) from exc

        try:
            self.runner.run(git.init())
        except CommandError as exc:
            raise new_step_error(
                "init_git_failed", exc, "Initializing git has failed"
            ) from exc

        if not origin_present:
            try:
                self.runner.run(
                    git.remote_add(ORIGIN_REMOTE_NAME, cfg.repository_url)
                )
            except CommandError as exc:
                raise new_step_error(
                    "add_remote_failed",
                    exc,
                    "Adding remote repository failed",
                ) from exc

    def _setup_sparse_checkout(
        self, git: Git, sparse_directories: tuple[str, ...]
    ) -> None:
        if not sparse_directories:
            return

        steps = (
            (
                git.sparse_checkout_init(cone=True),
                "Initializing sparse-checkout config has failed",
            ),
            (
                git.sparse_checkout_set(*sparse_directories),
                "Updating sparse-checkout config has failed",
            ),
            (
                git.config(
                    "extensions.partialClone", ORIGIN_REMOTE_NAME, "--local"
                ),
                "Enable partial clone support for the remote has failed",
            ),
        )
        for command, short_msg in steps:
            try:
                self.runner.run(command)
            except CommandError as exc:
                raise new_step_error(
                    SPARSE_CHECKOUT_FAILED_TAG, exc, short_msg
                ) from exc

    def _verify_merge_ref(self, cfg: Config) -> Config:
        """Promote an unverified merge ref once it is confirmed fresh."""
        if cfg.pr_merge_branch or not cfg.pr_unverified_merge_branch:
            return cfg
        if self.merge_ref_checker is None:
            log.warning(
                "Merge ref %s can not be verified, skipping it",
                cfg.pr_unverified_merge_branch,
            )
            return cfg

        try:
            self.merge_ref_checker.is_merge_ref_up_to_date(
                cfg.pr_unverified_merge_branch
            )
        except MergeRefNotMergeableError as exc:
            raise StepError(
                "merge_ref_not_mergeable",
                exc,
                "Pull request is not mergeable",
                exit_code=ExitCode.BUILD_API_ERROR,
            ) from exc
        except BuildApiError as exc:
            log.warning(
                "Failed to verify merge ref %s: %s. Falling back to another "
                "checkout strategy",
                cfg.pr_unverified_merge_branch,
                exc,
            )
            return cfg

        log.info("Merge ref %s is up-to-date", cfg.pr_unverified_merge_branch)
        return replace(cfg, pr_merge_branch=cfg.pr_unverified_merge_branch)

    def _update_submodules(self, git: Git, depth: int) -> None:
        opts = [JOBS_FLAG]
        if depth > 0:
            opts.append(f"--depth={depth}")
        try:
            self.runner.run(git.submodule_update(*opts))
        except CommandError as exc:
            raise new_step_error(
                UPDATE_SUBMODULE_FAILED_TAG,
                exc,
                "Updating submodules has failed",
            ) from exc
