# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Classification of raw git error output into user facing diagnostics.

Each failure tag owns an ordered table of ``(pattern, builder)`` pairs.
The table is evaluated top to bottom against the raw message and the
first matching pattern wins; its capture groups are handed to the
builder. When nothing matches, the tag's default builder receives the
whole message.

Ordering matters where two patterns can describe the same message: the
host resolution failure ``fatal: unable to access '...': Could not
resolve host: ...`` is listed before the generic ``unable to access``
patterns so it is reported as a connection problem.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from collections.abc import Sequence
from dataclasses import dataclass


__all__ = [
    "CHECKOUT_FAILED_TAG",
    "FETCH_FAILED_TAG",
    "UNKNOWN_PARAM",
    "UPDATE_SUBMODULE_FAILED_TAG",
    "DetailedError",
    "PatternErrorMatcher",
    "classify",
    "get_param_at",
]

CHECKOUT_FAILED_TAG = "checkout_failed"
FETCH_FAILED_TAG = "fetch_failed"
UPDATE_SUBMODULE_FAILED_TAG = "update_submodule_failed"

UNKNOWN_PARAM = "::unknown::"


@dataclass(frozen=True)
class DetailedError:
    """User facing diagnostic: a title and an actionable description."""

    title: str
    description: str


DetailedErrorBuilder = Callable[..., DetailedError]


def get_param_at(index: int, params: Sequence[str]) -> str:
    """Return ``params[index]`` or ``UNKNOWN_PARAM`` when out of range."""
    if 0 <= index < len(params):
        return params[index]
    return UNKNOWN_PARAM


class PatternErrorMatcher:
    """Ordered, first-match-wins regex table with a default builder."""

    def __init__(
        self,
        default_builder: DetailedErrorBuilder,
        pattern_to_builder: Sequence[tuple[str, DetailedErrorBuilder]],
    ) -> None:
        self.default_builder = default_builder
        self.pattern_to_builder = [
            (re.compile(pattern), builder)
            for pattern, builder in pattern_to_builder
        ]

    def run(self, msg: str) -> DetailedError:
        for regex, builder in self.pattern_to_builder:
            match = regex.search(msg)
            if match:
                params = [group or "" for group in match.groups()]
                return builder(*params)
        return self.default_builder(msg)


# ── Checkout failures ───────────────────────────────────────────────


def _checkout_failed_generic(*params: str) -> DetailedError:
    return DetailedError(
        title="We couldn’t checkout your branch.",
        description=(
            "Our auto-configurator returned the following error:\n"
            f"{get_param_at(0, params)}"
        ),
    )


def _invalid_branch(*params: str) -> DetailedError:
    return DetailedError(
        title=f"We couldn't find the branch '{get_param_at(0, params)}'.",
        description="Please choose another branch and try again.",
    )


# ── Fetch failures ──────────────────────────────────────────────────


def _fetch_failed_generic(*params: str) -> DetailedError:
    return DetailedError(
        title="We couldn’t fetch your repository.",
        description=(
            "Our auto-configurator returned the following error:\n"
            f"{get_param_at(0, params)}"
        ),
    )


def _saml_sso_enforced(*params: str) -> DetailedError:
    return DetailedError(
        title="To access this repository, you need to use SAML SSO.",
        description=(
            "Please abort the process, update your SSH settings and try "
            'again. You can find out more about <a target="_blank" '
            'href="https://docs.github.com/en/free-pro-team@latest/github/'
            "authenticating-to-github/authorizing-an-ssh-key-for-use-with-"
            'saml-single-sign-on">using SAML SSO in the Github docs</a>.'
        ),
    )


def _ssh_access_denied(*params: str) -> DetailedError:
    return DetailedError(
        title="We couldn’t access your repository.",
        description=(
            "Please abort the process, double-check your SSH key and try "
            "again."
        ),
    )


def _repository_not_found(*params: str) -> DetailedError:
    return DetailedError(
        title=(
            "We couldn’t find a git repository at "
            f"'{get_param_at(0, params)}'."
        ),
        description=(
            "Please abort the process, double-check your repository URL and "
            "try again."
        ),
    )


def _cannot_connect(*params: str) -> DetailedError:
    return DetailedError(
        title=f"We couldn’t connect to '{get_param_at(0, params)}'.",
        description=(
            "Please abort the process, double-check your repository URL and "
            "try again."
        ),
    )


def _http_access_denied(*params: str) -> DetailedError:
    return DetailedError(
        title="We couldn’t access your repository.",
        description=(
            "Please abort the process and try again, by providing the "
            "repository with SSH URL."
        ),
    )


# ── Submodule failures ──────────────────────────────────────────────


def _submodule_update_generic(*params: str) -> DetailedError:
    return DetailedError(
        title="We couldn’t update your submodules.",
        description=(
            "You can continue adding your app, but your builds will fail "
            "unless you fix the issue later.\n"
            "Our auto-configurator returned the following error:\n"
            f"{get_param_at(0, params)}"
        ),
    )


def _submodule_access_denied(msg: str) -> DetailedErrorBuilder:
    # Access failures keep the whole raw message in the description.
    def build(*params: str) -> DetailedError:
        return DetailedError(
            title="We couldn’t access one or more of your Git submodules.",
            description=(
                'You can try accessing your submodules <a target="_blank" '
                'href="https://devcenter.bitrise.io/faq/adding-projects-'
                'with-submodules/">using an SSH key</a>. You can continue '
                "adding your app, but your builds will fail unless you fix "
                "this issue later.\n"
                "Our auto-configurator returned the following error:\n"
                f"{msg}"
            ),
        )

    return build


# ── Tables ──────────────────────────────────────────────────────────


def _checkout_failed_matcher() -> PatternErrorMatcher:
    return PatternErrorMatcher(
        _checkout_failed_generic,
        [
            (
                r"pathspec '(.+)' did not match any file\(s\) known to git",
                _invalid_branch,
            ),
        ],
    )


def _fetch_failed_matcher() -> PatternErrorMatcher:
    return PatternErrorMatcher(
        _fetch_failed_generic,
        [
            (
                r"ERROR: The `(.+)' organization has enabled or enforced "
                r"SAML SSO",
                _saml_sso_enforced,
            ),
            (r"Permission denied \((.+)\)", _ssh_access_denied),
            (r"fatal: repository '(.+)' not found", _repository_not_found),
            (
                r"fatal: '(.+)' does not appear to be a git repository",
                _repository_not_found,
            ),
            (
                r"fatal: (.+)/info/refs not valid: is this a git repository\?",
                _repository_not_found,
            ),
            (
                r"ssh: connect to host (\S+) port \d+: "
                r"(?:Connection timed out|Connection refused|"
                r"Network is unreachable)",
                _cannot_connect,
            ),
            (
                r"ssh: Could not resolve hostname (\S+): "
                r"Name or service not known",
                _cannot_connect,
            ),
            (
                r"fatal: unable to access '.+': Could not resolve host: (\S+)",
                _cannot_connect,
            ),
            (
                r"remote: HTTP Basic: Access denied[\n]*"
                r"fatal: Authentication failed for '(.+)'",
                _http_access_denied,
            ),
            (
                r"remote: Invalid username or password\(\.\)[\n]*"
                r"fatal: Authentication failed for '(.+)'",
                _http_access_denied,
            ),
            (r"Unauthorized", _http_access_denied),
            (r"Forbidden", _http_access_denied),
            (
                r"fatal: unable to access '.+': Failed to connect to .+ "
                r"port \d+: Connection timed out",
                _http_access_denied,
            ),
            (
                r"fatal: unable to access '.+': The requested URL returned "
                r"error: (\d+)",
                _http_access_denied,
            ),
        ],
    )


_SUBMODULE_ACCESS_PATTERNS = (
    r"ERROR: Repository not found",
    r"remote: Invalid username or password",
    r"Permission denied \(.+\)",
    r"remote: HTTP Basic: Access denied",
    r"Permission denied, please try again",
    r"Unauthorized",
    r"remote: The project you were looking for could not be found",
    r"remote: Unauthorized LoginAndPassword",
)


def _update_submodule_failed_matcher(msg: str) -> PatternErrorMatcher:
    builder = _submodule_access_denied(msg)
    return PatternErrorMatcher(
        _submodule_update_generic,
        [(pattern, builder) for pattern in _SUBMODULE_ACCESS_PATTERNS],
    )


def classify(tag: str, msg: str) -> DetailedError | None:
    """Map a raw git error message to a ``DetailedError``.

    Args:
        tag: Failure category the message was produced under.
        msg: Raw git output (usually stderr).

    Returns:
        The diagnostic, or ``None`` when *tag* has no classification
        table.
    """
    if tag == CHECKOUT_FAILED_TAG:
        return _checkout_failed_matcher().run(msg)
    if tag == FETCH_FAILED_TAG:
        return _fetch_failed_matcher().run(msg)
    if tag == UPDATE_SUBMODULE_FAILED_TAG:
        return _update_submodule_failed_matcher(msg).run(msg)
    return None
