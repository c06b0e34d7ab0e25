# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Run configuration for the clone step.

The configuration is assembled once by the CLI (options with environment
variable fallbacks) and is never mutated afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import fields
from pathlib import Path
from typing import Any

from .error_codes import ConfigurationError


__all__ = [
    "DEFAULT_MAX_COMMIT_MESSAGE_LENGTH",
    "Config",
    "dangerous_clone_dirs",
    "split_multiline",
]

log = logging.getLogger(__name__)

DEFAULT_MAX_COMMIT_MESSAGE_LENGTH = 20 * 1024


def dangerous_clone_dirs(home: Path | None = None) -> list[Path]:
    """Directories the step refuses to clone into.

    Cloning initializes and may hard reset the target, so system and
    user configuration directories are rejected.
    """
    home = home or Path.home()
    return [
        home,
        home / "Downloads",
        home / "Documents",
        home / "Desktop",
        Path("/bin"),
        Path("/usr/bin"),
        Path("/etc"),
        Path("/Applications"),
        Path("/Library"),
        home / "Library",
        home / ".config",
        home / ".bitrise",
        home / ".ssh",
    ]


def split_multiline(value: str | None) -> tuple[str, ...]:
    """Split a newline separated option into its non-blank lines."""
    if not value:
        return ()
    return tuple(line.strip() for line in value.splitlines() if line.strip())


@dataclass(frozen=True)
class Config:
    """Immutable snapshot of every clone step input.

    Attributes:
        repository_url: URL of the repository to clone.
        clone_into_dir: Local directory the repository is checked out to.
        commit: Commit hash to check out.
        tag: Tag to check out.
        branch: Branch to check out (also the PR source branch).
        pr_dest_branch: Destination (base) branch of a pull request.
        pr_id: Pull request number, ``0`` when not a PR.
        pr_source_repository_url: Repository the PR was opened from.
        pr_merge_branch: Verified merge ref supplied by the provider.
        pr_unverified_merge_branch: Merge ref whose freshness must be
            confirmed with the build service before use.
        pr_head_branch: Head ref supplied by the provider (``pull/7/head``).
        clone_depth: Fetch depth; ``None`` selects a default for the
            checkout method, ``0`` fetches the full history.
    """

    repository_url: str
    clone_into_dir: str
    commit: str = ""
    tag: str = ""
    branch: str = ""

    pr_dest_branch: str = ""
    pr_id: int = 0
    pr_source_repository_url: str = ""
    pr_merge_branch: str = ""
    pr_unverified_merge_branch: str = ""
    pr_head_branch: str = ""

    reset_repository: bool = False
    clone_depth: int | None = None
    fetch_tags: bool = False
    update_submodules: bool = True
    submodule_update_depth: int = 0
    should_merge_pr: bool = True
    manual_merge: bool = False
    sparse_directories: tuple[str, ...] = ()

    build_url: str = ""
    build_api_token: str = ""
    max_commit_message_length: int = DEFAULT_MAX_COMMIT_MESSAGE_LENGTH

    def validate(self) -> None:
        """Check required values and the clone directory.

        Raises:
            ConfigurationError: On the first invalid value.
        """
        if not self.repository_url.strip():
            raise ConfigurationError("Repository URL is required")
        if not self.clone_into_dir.strip():
            raise ConfigurationError("Clone destination directory is required")
        if self.clone_depth is not None and self.clone_depth < 0:
            raise ConfigurationError(
                "Clone depth must not be negative", details=str(self.clone_depth)
            )
        if self.submodule_update_depth < 0:
            raise ConfigurationError(
                "Submodule update depth must not be negative",
                details=str(self.submodule_update_depth),
            )
        if self.pr_id < 0:
            raise ConfigurationError(
                "Pull request ID must not be negative", details=str(self.pr_id)
            )
        if self.max_commit_message_length <= len("..."):
            raise ConfigurationError(
                "Maximum commit message length is too small",
                details=str(self.max_commit_message_length),
            )

        target = Path(self.clone_into_dir).expanduser().resolve()
        for dangerous in dangerous_clone_dirs():
            if target == dangerous.expanduser().resolve():
                raise ConfigurationError(
                    "Cloning into this directory is not allowed, please "
                    "choose a dedicated directory",
                    details=str(target),
                )

    @property
    def is_pr(self) -> bool:
        return bool(
            self.pr_source_repository_url or self.pr_merge_branch or self.pr_id
        )

    def display_items(self) -> dict[str, Any]:
        """Config values for display, with the API token masked."""
        items: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "build_api_token" and value:
                value = "***"
            if isinstance(value, tuple):
                value = ", ".join(value)
            items[f.name] = value
        return items
