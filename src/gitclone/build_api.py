# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Client for the build service that triggered this run.

Two capabilities are provided:

- ``ApiPatchSource`` returns a local path to the unified diff of the pull
  request, either from a ``file://`` build URL or downloaded over HTTP
  into a directory owned by the clone (its ``.git`` directory).
- ``ApiMergeRefChecker`` polls the merge-ref status endpoint until the
  provider computed merge ref is known to reflect the latest PR state.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from urllib.parse import urlsplit

import requests

from .error_codes import ExitCode
from .error_codes import GitCloneError


__all__ = [
    "ApiMergeRefChecker",
    "ApiPatchSource",
    "BuildApiError",
    "MergeRefChecker",
    "MergeRefNotMergeableError",
    "MergeRefResponse",
    "PatchSource",
    "do_poll",
]

log = logging.getLogger(__name__)

BUILD_API_TOKEN_HEADER = "BUILD_API_TOKEN"
DIFF_FILE_NAME = "pr.diff"
REQUEST_TIMEOUT = 30

POLL_MAX_ATTEMPTS = 5
POLL_WAIT_SECONDS = 2.0

STATUS_UP_TO_DATE = "up-to-date"
STATUS_PENDING = "pending"
STATUS_NOT_MERGEABLE = "not-mergeable"


class BuildApiError(GitCloneError):
    """Raised when the build service can not provide what was asked."""

    def __init__(
        self,
        message: str,
        details: str | None = None,
        original_exception: BaseException | None = None,
    ) -> None:
        super().__init__(
            ExitCode.BUILD_API_ERROR,
            message=message,
            details=details,
            original_exception=original_exception,
        )


class MergeRefNotMergeableError(BuildApiError):
    """The pull request can not be merged; polling again will not help."""


class PatchSource(Protocol):
    def get_pr_patch(self) -> str: ...


class MergeRefChecker(Protocol):
    def is_merge_ref_up_to_date(self, ref: str) -> bool: ...


def _require_credentials(build_url: str, api_token: str) -> None:
    if not build_url:
        raise BuildApiError("Build URL is not defined")
    if not api_token:
        raise BuildApiError("Build API token is not defined")


# ── Patch source ────────────────────────────────────────────────────


class ApiPatchSource:
    """Provides the pull request diff published by the build service."""

    def __init__(
        self,
        build_url: str,
        api_token: str,
        session: requests.Session | None = None,
        *,
        download_dir: Path,
    ) -> None:
        self.build_url = build_url
        self.api_token = api_token
        self.session = session or requests.Session()
        self.download_dir = download_dir

    def get_pr_patch(self) -> str:
        """Return the local path of the PR diff file.

        A downloaded diff is written to ``download_dir``, replacing the
        one from an earlier run.

        Raises:
            BuildApiError: If the build URL or token is missing, or the
                download fails.
        """
        _require_credentials(self.build_url, self.api_token)

        parts = urlsplit(self.build_url)
        if parts.scheme == "file":
            return str(Path(parts.path) / "diff.txt")

        diff_url = f"{self.build_url}/diff.txt"
        try:
            resp = self.session.get(
                diff_url,
                params={"api_token": self.api_token},
                timeout=REQUEST_TIMEOUT,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise BuildApiError(
                "Can't download diff file",
                details=str(exc),
                original_exception=exc,
            ) from exc

        diff_path = self.download_dir / DIFF_FILE_NAME
        try:
            self.download_dir.mkdir(parents=True, exist_ok=True)
            diff_path.write_bytes(resp.content)
        except OSError as exc:
            raise BuildApiError(
                "Can't save diff file",
                details=str(exc),
                original_exception=exc,
            ) from exc
        log.debug("Diff file downloaded to %s", diff_path)
        return str(diff_path)


# ── Merge ref freshness ─────────────────────────────────────────────


@dataclass(frozen=True)
class MergeRefResponse:
    status: str = ""
    error_msg: str = ""
    should_retry: bool = False

    @classmethod
    def from_json(cls, data: object) -> MergeRefResponse:
        if not isinstance(data, dict):
            raise ValueError(f"unexpected response body: {data!r}")
        return cls(
            status=str(data.get("status") or ""),
            error_msg=str(data.get("error_msg") or ""),
            should_retry=bool(data.get("should_retry", False)),
        )


MergeRefFetcher = Callable[[int], MergeRefResponse]


def do_poll(
    fetcher: MergeRefFetcher,
    *,
    max_attempts: int = POLL_MAX_ATTEMPTS,
    wait: float = POLL_WAIT_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Poll *fetcher* until the merge ref is reported up-to-date.

    Transport and decoding errors, ``pending`` and unknown statuses are
    retried. ``not-mergeable`` and non-retryable service errors abort at
    once.

    Returns:
        The number of attempts used.

    Raises:
        MergeRefNotMergeableError: The PR is not mergeable.
        BuildApiError: Polling was aborted or ran out of attempts.
    """
    last_error = ""
    for attempt in range(max_attempts):
        if attempt > 0:
            sleep(wait)
        attempts = attempt + 1

        try:
            resp = fetcher(attempt)
        except (requests.RequestException, ValueError) as exc:
            log.warning("Error while checking merge ref: %s", exc)
            log.warning("Retrying request...")
            last_error = str(exc)
            continue

        if resp.error_msg:
            if not resp.should_retry:
                raise BuildApiError(
                    "Checking merge ref failed", details=resp.error_msg
                )
            log.warning("Attempt %d: %s", attempts, resp.error_msg)
            last_error = resp.error_msg
            continue

        if resp.status == STATUS_UP_TO_DATE:
            log.info("Attempt %d: merge ref is up-to-date", attempts)
            return attempts
        if resp.status == STATUS_NOT_MERGEABLE:
            raise MergeRefNotMergeableError(
                "Pull request is not mergeable",
                details="resolve the conflicts and push again",
            )
        if resp.status == STATUS_PENDING:
            log.warning("Attempt %d: not up-to-date yet", attempts)
            last_error = STATUS_PENDING
        else:
            log.warning("Attempt %d: unknown status: %s", attempts, resp.status)
            last_error = f"unknown status: {resp.status}"

    raise BuildApiError(
        f"Merge ref is not up-to-date after {max_attempts} attempts",
        details=last_error or None,
    )


class ApiMergeRefChecker:
    """Asks the build service whether the merge ref is still current."""

    def __init__(
        self,
        build_url: str,
        api_token: str,
        session: requests.Session | None = None,
        *,
        max_attempts: int = POLL_MAX_ATTEMPTS,
        wait: float = POLL_WAIT_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.build_url = build_url
        self.api_token = api_token
        self.session = session or requests.Session()
        self.max_attempts = max_attempts
        self.wait = wait
        self._sleep = sleep

    def is_merge_ref_up_to_date(self, ref: str) -> bool:
        """Return ``True`` once *ref* is confirmed up-to-date.

        Raises:
            BuildApiError: When freshness can not be confirmed; the
                ``MergeRefNotMergeableError`` subclass when the PR has
                conflicts.
        """
        _require_credentials(self.build_url, self.api_token)

        log.info("Checking if merge ref %s is up-to-date", ref)
        start = time.monotonic()
        attempts = do_poll(
            self._fetch_merge_ref,
            max_attempts=self.max_attempts,
            wait=self.wait,
            sleep=self._sleep,
        )
        log.debug(
            "Merge ref check finished after %d attempt(s) in %.1fs",
            attempts,
            time.monotonic() - start,
        )
        return True

    def _fetch_merge_ref(self, attempt: int) -> MergeRefResponse:
        url = f"{self.build_url}/pull_request_merge_ref_status"
        resp = self.session.get(
            url,
            headers={BUILD_API_TOKEN_HEADER: self.api_token},
            timeout=REQUEST_TIMEOUT,
        )
        resp.raise_for_status()
        return MergeRefResponse.from_json(resp.json())
