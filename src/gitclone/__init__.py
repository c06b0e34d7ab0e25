# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""Check out git repositories for CI builds, including pull requests."""

from __future__ import annotations


__version__ = "0.1.0"
