# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Command line entry point.

Every option falls back to an environment variable of the same name in
upper case, so the step can be configured entirely from the CI job
environment.
"""

from __future__ import annotations

import logging
from pathlib import Path

import typer

from .build_api import ApiMergeRefChecker
from .build_api import ApiPatchSource
from .config import DEFAULT_MAX_COMMIT_MESSAGE_LENGTH
from .config import Config
from .config import split_multiline
from .error_codes import GitCloneError
from .gitclone import CheckoutStateResult
from .gitclone import GitCloner
from .gitutils import DefaultRunner
from .gitutils import Git
from .output import OutputExporter
from .rich_display import display_error
from .rich_display import display_info
from .rich_display import setup_logging


log = logging.getLogger(__name__)

app = typer.Typer(
    add_completion=False,
    no_args_is_help=False,
    help="Clone a git repository and check out a commit, tag, branch or "
    "pull request.",
)


def _process(cfg: Config) -> CheckoutStateResult:
    """Run the checkout and export the commit metadata."""
    runner = DefaultRunner()
    clone_dir = Path(cfg.clone_into_dir).expanduser().absolute()
    patch_source = None
    merge_ref_checker = None
    if cfg.build_url:
        patch_source = ApiPatchSource(
            cfg.build_url, cfg.build_api_token, download_dir=clone_dir / ".git"
        )
        merge_ref_checker = ApiMergeRefChecker(
            cfg.build_url, cfg.build_api_token
        )

    cloner = GitCloner(runner, patch_source, merge_ref_checker)
    result = cloner.checkout_state(cfg)

    exporter = OutputExporter(
        runner,
        Git(clone_dir),
        max_length=cfg.max_commit_message_length,
    )
    exporter.export_commit_info(result.build_trigger_ref, result.is_pr)
    return result


@app.command()
def main(
    repository_url: str = typer.Option(
        "",
        "--repository-url",
        envvar="REPOSITORY_URL",
        help="URL of the repository to clone.",
    ),
    clone_into_dir: str = typer.Option(
        "",
        "--clone-into-dir",
        envvar="CLONE_INTO_DIR",
        help="Local directory to clone into.",
    ),
    commit: str = typer.Option("", "--commit", envvar="COMMIT"),
    tag: str = typer.Option("", "--tag", envvar="TAG"),
    branch: str = typer.Option("", "--branch", envvar="BRANCH"),
    branch_dest: str = typer.Option(
        "",
        "--branch-dest",
        envvar="BRANCH_DEST",
        help="Destination branch of the pull request.",
    ),
    pull_request_id: int = typer.Option(
        0,
        "--pull-request-id",
        envvar="PULL_REQUEST_ID",
    ),
    pull_request_repository_url: str = typer.Option(
        "",
        "--pull-request-repository-url",
        envvar="PULL_REQUEST_REPOSITORY_URL",
        help="Repository the pull request was opened from.",
    ),
    pull_request_merge_branch: str = typer.Option(
        "",
        "--pull-request-merge-branch",
        envvar="PULL_REQUEST_MERGE_BRANCH",
    ),
    pull_request_unverified_merge_branch: str = typer.Option(
        "",
        "--pull-request-unverified-merge-branch",
        envvar="PULL_REQUEST_UNVERIFIED_MERGE_BRANCH",
        help="Merge ref used only after the build service confirms it.",
    ),
    pull_request_head_branch: str = typer.Option(
        "",
        "--pull-request-head-branch",
        envvar="PULL_REQUEST_HEAD_BRANCH",
    ),
    reset_repository: bool = typer.Option(
        False,
        "--reset-repository/--no-reset-repository",
        envvar="RESET_REPOSITORY",
    ),
    clone_depth: int | None = typer.Option(
        None,
        "--clone-depth",
        envvar="CLONE_DEPTH",
        min=0,
        help="Fetch depth, 0 for full history. Defaults per checkout method.",
    ),
    fetch_tags: bool = typer.Option(
        False,
        "--fetch-tags/--no-fetch-tags",
        envvar="FETCH_TAGS",
    ),
    update_submodules: bool = typer.Option(
        True,
        "--update-submodules/--no-update-submodules",
        envvar="UPDATE_SUBMODULES",
    ),
    submodule_update_depth: int = typer.Option(
        0,
        "--submodule-update-depth",
        envvar="SUBMODULE_UPDATE_DEPTH",
        min=0,
    ),
    merge_pr: bool = typer.Option(
        True,
        "--merge-pr/--no-merge-pr",
        envvar="MERGE_PR",
        help="Check out the merge result instead of the PR head.",
    ),
    manual_merge: bool = typer.Option(
        False,
        "--manual-merge/--no-manual-merge",
        envvar="MANUAL_MERGE",
    ),
    sparse_directories: str = typer.Option(
        "",
        "--sparse-directories",
        envvar="SPARSE_DIRECTORIES",
        help="Newline separated directories for sparse checkout.",
    ),
    build_url: str = typer.Option("", "--build-url", envvar="BUILD_URL"),
    build_api_token: str = typer.Option(
        "",
        "--build-api-token",
        envvar="BUILD_API_TOKEN",
    ),
    max_commit_message_length: int = typer.Option(
        DEFAULT_MAX_COMMIT_MESSAGE_LENGTH,
        "--max-commit-message-length",
        envvar="MAX_COMMIT_MESSAGE_LENGTH",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        envvar="GIT_CLONE_VERBOSE",
        help="Enable debug logging.",
    ),
) -> None:
    """Clone the repository and check out the requested state."""
    setup_logging(verbose)

    cfg = Config(
        repository_url=repository_url,
        clone_into_dir=clone_into_dir,
        commit=commit,
        tag=tag,
        branch=branch,
        pr_dest_branch=branch_dest,
        pr_id=pull_request_id,
        pr_source_repository_url=pull_request_repository_url,
        pr_merge_branch=pull_request_merge_branch,
        pr_unverified_merge_branch=pull_request_unverified_merge_branch,
        pr_head_branch=pull_request_head_branch,
        reset_repository=reset_repository,
        clone_depth=clone_depth,
        fetch_tags=fetch_tags,
        update_submodules=update_submodules,
        submodule_update_depth=submodule_update_depth,
        should_merge_pr=merge_pr,
        manual_merge=manual_merge,
        sparse_directories=split_multiline(sparse_directories),
        build_url=build_url,
        build_api_token=build_api_token,
        max_commit_message_length=max_commit_message_length,
    )

    try:
        cfg.validate()
        display_info(cfg.display_items(), "Configuration")
        result = _process(cfg)
    except GitCloneError as exc:
        log.debug("Step failed", exc_info=True)
        display_error(exc)
        raise typer.Exit(code=int(exc.exit_code)) from exc

    display_info(
        {
            "Checkout method": str(result.method),
            "Strategy": type(result.strategy).__name__,
            "Pull request": "yes" if result.is_pr else "no",
            "Build trigger ref": result.build_trigger_ref,
        },
        "Checkout summary",
    )


if __name__ == "__main__":
    app()
