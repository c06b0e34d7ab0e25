# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Export of commit metadata as step outputs.

Values are appended to the file named by ``$GITHUB_OUTPUT`` using the
``name<<delimiter`` block syntax, which keeps multiline commit bodies
intact. Without that variable the values are only logged.
"""

from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path

from .config import DEFAULT_MAX_COMMIT_MESSAGE_LENGTH
from .error_codes import ExitCode
from .error_codes import GitCloneError
from .gitutils import Command
from .gitutils import CommandError
from .gitutils import CommandRunner
from .gitutils import Git


__all__ = [
    "OUTPUT_COMMITTER_EMAIL",
    "OUTPUT_COMMITTER_NAME",
    "OUTPUT_COMMIT_COUNT",
    "OutputExporter",
    "trim_value",
]

log = logging.getLogger(__name__)

OUTPUT_AUTHOR_NAME = "GIT_CLONE_COMMIT_AUTHOR_NAME"
OUTPUT_AUTHOR_EMAIL = "GIT_CLONE_COMMIT_AUTHOR_EMAIL"
OUTPUT_COMMIT_HASH = "GIT_CLONE_COMMIT_HASH"
OUTPUT_MESSAGE_SUBJECT = "GIT_CLONE_COMMIT_MESSAGE_SUBJECT"
OUTPUT_MESSAGE_BODY = "GIT_CLONE_COMMIT_MESSAGE_BODY"
OUTPUT_COMMITTER_NAME = "GIT_CLONE_COMMIT_COMMITTER_NAME"
OUTPUT_COMMITTER_EMAIL = "GIT_CLONE_COMMIT_COMMITTER_EMAIL"
OUTPUT_COMMIT_COUNT = "GIT_CLONE_COMMIT_COUNT"

TRIM_ENDING = "..."

_TRIMMED_OUTPUTS = frozenset({OUTPUT_MESSAGE_SUBJECT, OUTPUT_MESSAGE_BODY})


def trim_value(value: str, max_length: int) -> str:
    """Cut *value* to *max_length* characters, ending in ``...``."""
    if len(value) <= max_length:
        return value
    return value[: max_length - len(TRIM_ENDING)] + TRIM_ENDING


@dataclass(frozen=True)
class _GitOutput:
    key: str
    command: Command


class OutputExporter:
    """Reads commit metadata with git and publishes it as outputs."""

    def __init__(
        self,
        runner: CommandRunner,
        git: Git,
        *,
        output_file: Path | None = None,
        max_length: int = DEFAULT_MAX_COMMIT_MESSAGE_LENGTH,
    ) -> None:
        self.runner = runner
        self.git = git
        if output_file is None and os.environ.get("GITHUB_OUTPUT"):
            output_file = Path(os.environ["GITHUB_OUTPUT"])
        self.output_file = output_file
        self.max_length = max_length

    def _git_outputs(self, ref: str, is_pr: bool) -> list[_GitOutput]:
        outputs = [
            _GitOutput(OUTPUT_AUTHOR_NAME, self.git.log("%an", ref)),
            _GitOutput(OUTPUT_AUTHOR_EMAIL, self.git.log("%ae", ref)),
            _GitOutput(OUTPUT_COMMIT_HASH, self.git.log("%H", ref)),
            _GitOutput(OUTPUT_MESSAGE_SUBJECT, self.git.log("%s", ref)),
            _GitOutput(OUTPUT_MESSAGE_BODY, self.git.log("%b", ref)),
        ]
        if is_pr:
            log.info("The following outputs are not exported for Pull Requests:")
            for key in (
                OUTPUT_COMMITTER_NAME,
                OUTPUT_COMMITTER_EMAIL,
                OUTPUT_COMMIT_COUNT,
            ):
                log.info("- %s", key)
            return outputs

        outputs.extend(
            [
                _GitOutput(OUTPUT_COMMITTER_NAME, self.git.log("%cn", ref)),
                _GitOutput(OUTPUT_COMMITTER_EMAIL, self.git.log("%ce", ref)),
                _GitOutput(
                    OUTPUT_COMMIT_COUNT, self.git.rev_list("HEAD", "--count")
                ),
            ]
        )
        return outputs

    def export_commit_info(self, ref: str, is_pr: bool) -> dict[str, str]:
        """Export the metadata of *ref*; returns the exported values.

        Nothing is exported when *ref* is empty.

        Raises:
            GitCloneError: Reading a value or writing the output file
                failed.
        """
        if not ref:
            log.info("No build trigger ref, skipping commit info export")
            return {}

        values: dict[str, str] = {}
        for output in self._git_outputs(ref, is_pr):
            try:
                value = self.runner.run_for_output(output.command)
            except CommandError as exc:
                raise GitCloneError(
                    ExitCode.EXPORT_ERROR,
                    message=f"Reading {output.key} failed",
                    details=str(exc),
                    original_exception=exc,
                ) from exc

            if output.key in _TRIMMED_OUTPUTS and len(value) > self.max_length:
                log.info(
                    "Value %s is bigger than maximum size, trimming",
                    output.key,
                )
                value = trim_value(value, self.max_length)

            log.info("=> %s\n   value: %s", output.key, value)
            values[output.key] = value

        self._write(values)
        return values

    def _write(self, values: dict[str, str]) -> None:
        if self.output_file is None:
            log.debug("GITHUB_OUTPUT is not set, outputs are only logged")
            return

        lines: list[str] = []
        for key, value in values.items():
            if "\n" in value:
                delimiter = f"ghadelimiter_{uuid.uuid4()}"
                lines.append(f"{key}<<{delimiter}\n{value}\n{delimiter}\n")
            else:
                lines.append(f"{key}={value}\n")

        try:
            with self.output_file.open("a", encoding="utf-8") as fh:
                fh.writelines(lines)
        except OSError as exc:
            raise GitCloneError(
                ExitCode.EXPORT_ERROR,
                message="Writing step outputs failed",
                details=str(self.output_file),
                original_exception=exc,
            ) from exc
