# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""Rich rendering of the configuration, checkout summary and failures."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .error_codes import GitCloneError
from .steperror import StepError


__all__ = [
    "console",
    "display_error",
    "display_info",
    "setup_logging",
]

console = Console(stderr=True)


def setup_logging(verbose: bool = False) -> None:
    """Route all log records through a ``RichHandler``."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=console,
                show_path=verbose,
                rich_tracebacks=True,
                markup=False,
            )
        ],
        force=True,
    )


def display_info(info: Mapping[str, Any], title: str) -> None:
    """Render *info* as a two column table."""
    table = Table(title=title, show_header=False, title_justify="left")
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")
    for key, value in info.items():
        if value in ("", None, ()):
            continue
        table.add_row(Text(str(key)), Text(str(value)))
    console.print(table)


def display_error(exc: GitCloneError) -> None:
    """Render a failure, including its classified diagnostic if any.

    Git output often contains square brackets, so every message is
    escaped before it is combined with markup.
    """
    body = escape(str(exc))
    if isinstance(exc, StepError):
        detailed = exc.detailed_error
        if detailed is not None:
            body = (
                f"[bold]{escape(detailed.title)}[/bold]\n\n"
                f"{escape(detailed.description)}\n\n"
                f"[dim]{escape(str(exc.err))}[/dim]"
            )
        branches = exc.branch_recommendations
        if branches:
            body += "\n\nAvailable branches: " + escape(", ".join(branches))
        title = escape(f"{exc.short_msg} ({exc.tag})")
    else:
        title = escape(exc.message)
    console.print(Panel(body, title=title, border_style="red"))
