# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/k3sboot/node/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class NodeRole(str, Enum):
    MASTER = "master"   # primary-candidate (server)
    WORKER = "worker"   # secondary (agent)


def node_name(cluster_name: str, role: NodeRole, index: int) -> str:
    """
    Conventional node name: ``{cluster}-{role}-{index}`` with a 1-based index.
    ``node_name(c, NodeRole.MASTER, 1)`` is always the bootstrap primary.
    """
    if index < 1:
        raise ValueError(f"node index must be 1-based, got {index}")
    return f"{cluster_name}-{NodeRole(role).value}-{index}"


@dataclass
class NodeStatus:
    ip_addresses: str = ""


@dataclass
class Node:
    """
    A machine that is a member of a cluster.

    The node only records the *name* of its owning cluster; the cluster spec
    (version, key, options) is looked up through ``Cluster.spec_for``.
    """
    name: str
    role: NodeRole
    cluster: str
    status: NodeStatus = field(default_factory=NodeStatus)

    def is_master(self) -> bool:
        return self.role == NodeRole.MASTER

    @property
    def address(self) -> str:
        return self.status.ip_addresses
