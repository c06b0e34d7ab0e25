# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Git command construction and execution.

``Git`` only builds argument vectors; it never executes anything. The
``CommandRunner`` implementations execute ``Command`` objects and are
passed explicitly to every component that talks to git, so tests can
swap in a recording runner.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import time
from collections.abc import Callable
from collections.abc import Sequence
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Protocol


log = logging.getLogger(__name__)

# Number of attempts (not retries) for network bound git commands.
RETRY_ATTEMPTS = 2
RETRY_WAIT_SECONDS = 5.0

# Parallel jobs for fetch and submodule update.
JOBS_FLAG = "--jobs=10"


def tag_flags(tags: bool, fetch_submodules: bool) -> list[str]:
    """Tag and submodule recursion flags shared by every fetch."""
    flags = ["--tags" if tags else "--no-tags"]
    if not fetch_submodules:
        flags.append("--no-recurse-submodules")
    return flags


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a finished command."""

    returncode: int
    stdout: str = ""
    stderr: str = ""


class CommandError(Exception):
    """Raised when a command exits with a non-zero status.

    The string form is the trimmed stderr of the command (or the
    combined output for ``run_for_output``), since that is what git
    reports as the actual failure reason.
    """

    def __init__(
        self,
        message: str,
        *,
        cmd: Sequence[str] | None = None,
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.cmd = list(cmd) if cmd is not None else []
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


@dataclass(frozen=True)
class Command:
    """A command line together with the directory it runs in."""

    args: tuple[str, ...]
    cwd: Path | None = None

    def printable(self) -> str:
        return " ".join(shlex.quote(arg) for arg in self.args)

    def __str__(self) -> str:
        return self.printable()


@dataclass(frozen=True)
class Git:
    """Builder of git commands bound to one working directory."""

    work_dir: Path
    env_args: tuple[str, ...] = field(default=())

    def _cmd(self, *args: str) -> Command:
        return Command(("git", *self.env_args, *args), cwd=self.work_dir)

    def init(self) -> Command:
        return self._cmd("init")

    def remote_list(self) -> Command:
        return self._cmd("remote", "-v")

    def remote_add(self, name: str, url: str) -> Command:
        return self._cmd("remote", "add", name, url)

    def fetch(self, *opts: str) -> Command:
        return self._cmd("fetch", *opts)

    def checkout(self, arg: str) -> Command:
        return self._cmd("checkout", arg)

    def merge(self, arg: str) -> Command:
        return self._cmd("merge", arg)

    def reset(self, mode: str, arg: str) -> Command:
        return self._cmd("reset", mode, arg)

    def clean(self, *opts: str) -> Command:
        return self._cmd("clean", *opts)

    def apply(self, patch: str | Path) -> Command:
        return self._cmd("apply", "--index", str(patch))

    def submodule_update(self, *opts: str) -> Command:
        return self._cmd("submodule", "update", "--init", "--recursive", *opts)

    def submodule_foreach(self, command: Command) -> Command:
        # foreach evaluates its argument as one shell command line.
        nested = " ".join(shlex.quote(arg) for arg in command.args)
        return self._cmd("submodule", "foreach", "--recursive", nested)

    def branch(self, *opts: str) -> Command:
        return self._cmd("branch", *opts)

    def log(self, fmt: str, *refs: str) -> Command:
        return self._cmd("log", "-1", f"--format={fmt}", *refs)

    def rev_list(self, *opts: str) -> Command:
        return self._cmd("rev-list", *opts)

    def sparse_checkout_init(self, *, cone: bool) -> Command:
        if cone:
            return self._cmd("sparse-checkout", "init", "--cone")
        return self._cmd("sparse-checkout", "init")

    def sparse_checkout_set(self, *directories: str) -> Command:
        return self._cmd("sparse-checkout", "set", *directories)

    def config(self, key: str, value: str, *opts: str) -> Command:
        return self._cmd("config", key, value, *opts)


class CommandRunner(Protocol):
    """Capability for running git commands."""

    def run(self, command: Command) -> None: ...

    def run_for_output(self, command: Command) -> str: ...

    def run_with_retry(self, factory: Callable[[], Command]) -> None: ...


def run_cmd(
    cmd: Sequence[str],
    *,
    cwd: Path | None = None,
    check: bool = True,
) -> CommandResult:
    """Run *cmd* and capture its output.

    Raises:
        CommandError: If *check* is set and the command exits non-zero,
            or if the executable cannot be started.
    """
    try:
        proc = subprocess.run(  # noqa: S603
            list(cmd),
            cwd=str(cwd) if cwd is not None else None,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise CommandError(
            f"failed to execute {cmd[0]}: {exc}", cmd=cmd
        ) from exc

    result = CommandResult(
        returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr
    )
    if check and proc.returncode != 0:
        message = proc.stderr.strip() or proc.stdout.strip()
        raise CommandError(
            message or f"exit status {proc.returncode}",
            cmd=cmd,
            returncode=proc.returncode,
            stdout=proc.stdout,
            stderr=proc.stderr,
        )
    return result


class DefaultRunner:
    """Runs commands with ``subprocess`` and logs each invocation."""

    def __init__(
        self,
        *,
        retry_attempts: int = RETRY_ATTEMPTS,
        retry_wait: float = RETRY_WAIT_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.retry_attempts = retry_attempts
        self.retry_wait = retry_wait
        self._sleep = sleep

    def _execute(self, command: Command) -> CommandResult:
        start = time.monotonic()
        try:
            return run_cmd(command.args, cwd=command.cwd)
        finally:
            elapsed = time.monotonic() - start
            if elapsed >= 1:
                log.info("Command execution took %.0fs", elapsed)

    def run(self, command: Command) -> None:
        log.info("$ %s", command.printable())
        result = self._execute(command)
        if result.stdout.strip():
            log.debug("%s", result.stdout.rstrip())
        if result.stderr.strip():
            log.debug("%s", result.stderr.rstrip())

    def run_for_output(self, command: Command) -> str:
        log.info("$ %s &> out", command.printable())
        try:
            result = self._execute(command)
        except CommandError as exc:
            combined = (exc.stdout + exc.stderr).strip()
            raise CommandError(
                combined or str(exc),
                cmd=exc.cmd,
                returncode=exc.returncode,
                stdout=exc.stdout,
                stderr=exc.stderr,
            ) from exc
        return (result.stdout + result.stderr).strip()

    def run_with_retry(self, factory: Callable[[], Command]) -> None:
        """Run the command built by *factory*, retrying on failure.

        A fresh command is built for every attempt. The error of the last
        attempt is raised once all attempts are used up.
        """
        for attempt in range(self.retry_attempts):
            if attempt > 0:
                log.warning("Retrying...")
            try:
                self.run(factory())
            except CommandError as exc:
                log.warning("Attempt %d failed: %s", attempt + 1, exc)
                if attempt + 1 >= self.retry_attempts:
                    raise
                self._sleep(self.retry_wait)
            else:
                return
