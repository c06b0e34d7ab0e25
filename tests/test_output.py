# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""Tests for the commit metadata export."""

from __future__ import annotations

from pathlib import Path

import pytest

from gitclone.error_codes import ExitCode
from gitclone.error_codes import GitCloneError
from gitclone.output import OutputExporter
from gitclone.output import trim_value


REF = "76a934a"


def _script_commit(fake_runner, body: str = "") -> None:
    fake_runner.output(f"log -1 --format=%an {REF}", "Jane Doe")
    fake_runner.output(f"log -1 --format=%ae {REF}", "jane@example.com")
    fake_runner.output(f"log -1 --format=%H {REF}", "76a934ae8b1c")
    fake_runner.output(f"log -1 --format=%s {REF}", "Fix the widget")
    fake_runner.output(f"log -1 --format=%b {REF}", body)
    fake_runner.output(f"log -1 --format=%cn {REF}", "CI Bot")
    fake_runner.output(f"log -1 --format=%ce {REF}", "ci@example.com")
    fake_runner.output("rev-list HEAD --count", "42")


class TestTrimValue:
    def test_short_value_unchanged(self) -> None:
        assert trim_value("abc", 10) == "abc"

    def test_long_value_ends_with_ellipsis(self) -> None:
        trimmed = trim_value("a" * 20, 10)
        assert trimmed == "aaaaaaa..."
        assert len(trimmed) == 10


class TestOutputExporter:
    def test_non_pr_exports_everything(
        self, tmp_path: Path, git, fake_runner
    ) -> None:
        _script_commit(fake_runner)
        out_file = tmp_path / "github_output"
        exporter = OutputExporter(fake_runner, git, output_file=out_file)

        values = exporter.export_commit_info(REF, is_pr=False)

        assert values == {
            "GIT_CLONE_COMMIT_AUTHOR_NAME": "Jane Doe",
            "GIT_CLONE_COMMIT_AUTHOR_EMAIL": "jane@example.com",
            "GIT_CLONE_COMMIT_HASH": "76a934ae8b1c",
            "GIT_CLONE_COMMIT_MESSAGE_SUBJECT": "Fix the widget",
            "GIT_CLONE_COMMIT_MESSAGE_BODY": "",
            "GIT_CLONE_COMMIT_COMMITTER_NAME": "CI Bot",
            "GIT_CLONE_COMMIT_COMMITTER_EMAIL": "ci@example.com",
            "GIT_CLONE_COMMIT_COUNT": "42",
        }
        lines = out_file.read_text(encoding="utf-8").splitlines()
        assert "GIT_CLONE_COMMIT_AUTHOR_NAME=Jane Doe" in lines
        assert "GIT_CLONE_COMMIT_COUNT=42" in lines

    def test_pr_skips_committer_and_count(
        self, tmp_path: Path, git, fake_runner
    ) -> None:
        _script_commit(fake_runner)
        exporter = OutputExporter(
            fake_runner, git, output_file=tmp_path / "out"
        )
        values = exporter.export_commit_info(REF, is_pr=True)

        assert set(values) == {
            "GIT_CLONE_COMMIT_AUTHOR_NAME",
            "GIT_CLONE_COMMIT_AUTHOR_EMAIL",
            "GIT_CLONE_COMMIT_HASH",
            "GIT_CLONE_COMMIT_MESSAGE_SUBJECT",
            "GIT_CLONE_COMMIT_MESSAGE_BODY",
        }
        assert "rev-list HEAD --count" not in fake_runner.commands

    def test_multiline_body_uses_delimiter(
        self, tmp_path: Path, git, fake_runner
    ) -> None:
        _script_commit(fake_runner, body="line one\nline two")
        out_file = tmp_path / "out"
        OutputExporter(
            fake_runner, git, output_file=out_file
        ).export_commit_info(REF, is_pr=True)

        content = out_file.read_text(encoding="utf-8")
        header = next(
            line
            for line in content.splitlines()
            if line.startswith("GIT_CLONE_COMMIT_MESSAGE_BODY<<")
        )
        delimiter = header.split("<<", 1)[1]
        assert f"{header}\nline one\nline two\n{delimiter}\n" in content

    def test_long_message_is_trimmed(
        self, tmp_path: Path, git, fake_runner
    ) -> None:
        _script_commit(fake_runner, body="x" * 100)
        exporter = OutputExporter(
            fake_runner, git, output_file=tmp_path / "out", max_length=10
        )
        values = exporter.export_commit_info(REF, is_pr=True)
        assert values["GIT_CLONE_COMMIT_MESSAGE_BODY"] == "xxxxxxx..."
        assert values["GIT_CLONE_COMMIT_AUTHOR_EMAIL"] == "jane@example.com"

    def test_empty_ref_exports_nothing(
        self, tmp_path: Path, git, fake_runner
    ) -> None:
        out_file = tmp_path / "out"
        exporter = OutputExporter(fake_runner, git, output_file=out_file)
        assert exporter.export_commit_info("", is_pr=True) == {}
        assert fake_runner.commands == []
        assert not out_file.exists()

    def test_output_file_from_environment(
        self, tmp_path: Path, git, fake_runner, monkeypatch
    ) -> None:
        out_file = tmp_path / "env_output"
        monkeypatch.setenv("GITHUB_OUTPUT", str(out_file))
        _script_commit(fake_runner)
        OutputExporter(fake_runner, git).export_commit_info(REF, is_pr=True)
        assert "GIT_CLONE_COMMIT_HASH=76a934ae8b1c" in out_file.read_text(
            encoding="utf-8"
        )

    def test_without_output_file_only_logs(
        self, git, fake_runner, monkeypatch
    ) -> None:
        monkeypatch.delenv("GITHUB_OUTPUT", raising=False)
        _script_commit(fake_runner)
        values = OutputExporter(fake_runner, git).export_commit_info(
            REF, is_pr=True
        )
        assert values["GIT_CLONE_COMMIT_MESSAGE_SUBJECT"] == "Fix the widget"

    def test_git_failure_is_export_error(
        self, tmp_path: Path, git, fake_runner
    ) -> None:
        fake_runner.fail(f"log -1 --format=%an {REF}", message="bad object")
        exporter = OutputExporter(
            fake_runner, git, output_file=tmp_path / "out"
        )
        with pytest.raises(GitCloneError) as excinfo:
            exporter.export_commit_info(REF, is_pr=False)
        assert excinfo.value.exit_code is ExitCode.EXPORT_ERROR
        assert "bad object" in str(excinfo.value)
