# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/k3sboot/config/versions.py

from __future__ import annotations

from typing import Dict


class EnvVars(Dict[str, str]):
    """
    Environment assignments prefixed to a remote install invocation.
    Rendered as ``KEY=value`` pairs separated by spaces, empty values dropped.
    """

    def __str__(self) -> str:
        return " ".join(f"{k}={v}" for k, v in self.items() if v)


def k3s_versions_env_vars(version: str | None) -> EnvVars:
    """Version pinning env vars understood by the k3s installer."""
    return EnvVars(INSTALL_K3S_VERSION=version or "")
