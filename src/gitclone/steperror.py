# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""Structured step failures surfaced to the CLI entry point."""

from __future__ import annotations

from typing import Any

from .error_codes import ExitCode
from .error_codes import GitCloneError
from .error_matcher import DetailedError
from .error_matcher import classify


__all__ = [
    "BRANCH_RECOMMENDATION_KEY",
    "DETAILED_ERROR_KEY",
    "STEP_ID",
    "StepError",
    "new_step_error",
    "new_step_error_with_branch_recommendations",
]

STEP_ID = "git-clone"

DETAILED_ERROR_KEY = "DetailedError"
BRANCH_RECOMMENDATION_KEY = "BranchRecommendation"


class StepError(GitCloneError):
    """A fatal, classified failure of the clone step.

    Attributes:
        step_id: Identifier of the step reporting the failure.
        tag: Machine readable failure category (``fetch_failed`` ...).
        err: The underlying exception.
        short_msg: One line summary shown before the detailed error.
        recommendations: Extra data for the user; ``DetailedError`` and,
            for a missing branch, ``BranchRecommendation``.
    """

    def __init__(
        self,
        tag: str,
        err: BaseException,
        short_msg: str,
        recommendations: dict[str, Any] | None = None,
        *,
        step_id: str = STEP_ID,
        exit_code: ExitCode = ExitCode.GIT_ERROR,
    ) -> None:
        self.step_id = step_id
        self.tag = tag
        self.err = err
        self.short_msg = short_msg
        self.recommendations: dict[str, Any] = dict(recommendations or {})
        super().__init__(
            exit_code,
            message=short_msg,
            details=str(err) or None,
            original_exception=err,
        )

    @property
    def detailed_error(self) -> DetailedError | None:
        return self.recommendations.get(DETAILED_ERROR_KEY)

    @property
    def branch_recommendations(self) -> list[str]:
        return list(self.recommendations.get(BRANCH_RECOMMENDATION_KEY, []))


def new_step_error(
    tag: str,
    err: BaseException,
    short_msg: str,
    *,
    exit_code: ExitCode = ExitCode.GIT_ERROR,
) -> StepError:
    """Build a ``StepError`` whose detailed error is classified from *err*."""
    recommendations: dict[str, Any] = {}
    detailed = classify(tag, str(err))
    if detailed is not None:
        recommendations[DETAILED_ERROR_KEY] = detailed
    return StepError(
        tag, err, short_msg, recommendations, exit_code=exit_code
    )


def new_step_error_with_branch_recommendations(
    tag: str,
    err: BaseException,
    short_msg: str,
    current_branch: str,
    available_branches: list[str] | None,
) -> StepError:
    """Build a ``StepError`` that also lists the branches that do exist.

    The classified detailed error is kept as is; *available_branches*
    are attached under ``BranchRecommendation`` when non-empty.
    """
    step_error = new_step_error(tag, err, short_msg)
    if available_branches:
        step_error.recommendations[BRANCH_RECOMMENDATION_KEY] = list(
            available_branches
        )
    return step_error
