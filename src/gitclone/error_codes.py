# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Exit codes and the base exception type for git-clone-step.

Every error that should terminate the step is raised as (a subclass of)
``GitCloneError``. The CLI layer is the only place that turns one into a
process exit code.
"""

from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Process exit codes used by the CLI entry point."""

    SUCCESS = 0
    GENERAL_ERROR = 1
    CONFIGURATION_ERROR = 2
    GIT_ERROR = 3
    BUILD_API_ERROR = 4
    EXPORT_ERROR = 5


class GitCloneError(Exception):
    """Structured error carrying an exit code and optional details.

    Attributes:
        exit_code: Exit code the CLI should terminate with.
        message: Short, user facing message.
        details: Optional extra context (URL, ref, command output).
        original_exception: The exception that caused this one, if any.
    """

    def __init__(
        self,
        exit_code: ExitCode,
        message: str,
        details: str | None = None,
        original_exception: BaseException | None = None,
    ) -> None:
        self.exit_code = exit_code
        self.message = message
        self.details = details
        self.original_exception = original_exception
        super().__init__(self.__str__())

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ConfigurationError(GitCloneError):
    """Raised when the step configuration is missing or invalid."""

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(
            ExitCode.CONFIGURATION_ERROR, message=message, details=details
        )


class ParameterValidationError(GitCloneError):
    """Raised when a checkout strategy is built from incomplete parameters.

    This is detected before any network operation runs and is never
    retried.
    """

    def __init__(self, message: str) -> None:
        super().__init__(ExitCode.CONFIGURATION_ERROR, message=message)
