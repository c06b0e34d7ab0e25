# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""Tests for terminal rendering of the configuration and failures."""

from __future__ import annotations

from collections.abc import Iterator
from unittest.mock import patch

import pytest
from rich.console import Console

from gitclone.error_codes import ConfigurationError
from gitclone.gitutils import CommandError
from gitclone.rich_display import display_error
from gitclone.rich_display import display_info
from gitclone.steperror import new_step_error
from gitclone.steperror import new_step_error_with_branch_recommendations


REJECTED = (
    "From https://github.com/owner/repo\n"
    " ! [rejected]        refs/pull/7/head -> pull/7  (non-fast-forward)"
)


@pytest.fixture
def recorded() -> Iterator[Console]:
    """Swap the shared console for one that records plain text."""
    console = Console(record=True, width=200, force_terminal=False)
    with patch("gitclone.rich_display.console", console):
        yield console


class TestDisplayError:
    """Git output is shown verbatim, square brackets included."""

    def test_bracketed_word_is_kept(self, recorded: Console) -> None:
        err = new_step_error(
            "fetch_failed",
            CommandError(REJECTED),
            "Fetching repository has failed",
        )
        display_error(err)
        text = recorded.export_text()
        assert "! [rejected]" in text
        assert "Fetching repository has failed (fetch_failed)" in text

    def test_closing_tag_lookalike_does_not_break(
        self, recorded: Console
    ) -> None:
        err = new_step_error_with_branch_recommendations(
            "checkout_failed",
            CommandError(
                "error: pathspec 'feature[/x]' did not match any file(s) "
                "known to git"
            ),
            "Checkout has failed",
            "feature[/x]",
            ["main", "[wip]"],
        )
        display_error(err)
        text = recorded.export_text()
        assert "'feature[/x]'" in text
        assert "Available branches: main, [wip]" in text

    def test_plain_error_message(self, recorded: Console) -> None:
        display_error(
            ConfigurationError("Invalid directory", details="[/tmp/x]")
        )
        text = recorded.export_text()
        assert "Invalid directory: [/tmp/x]" in text


class TestDisplayInfo:
    def test_values_are_not_markup(self, recorded: Console) -> None:
        display_info(
            {"branch": "[bold]release[/x]", "tag": "", "commit": None},
            "Configuration",
        )
        text = recorded.export_text()
        assert "[bold]release[/x]" in text
        assert "tag" not in text
