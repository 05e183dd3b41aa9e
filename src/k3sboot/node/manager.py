# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/k3sboot/node/manager.py

from __future__ import annotations

import logging
import socket
import time
from typing import Callable, List, Protocol

from k3sboot.bootstrap.errors import NodeNotFoundError, NotReadyError
from k3sboot.config.models import Cluster
from .models import Node

log = logging.getLogger("k3sboot")


class NodeManager(Protocol):
    """
    Resolves cluster membership. Node lifecycle (create/delete) lives elsewhere.
    """

    def wait_nodes_running(self, cluster_name: str, expected_count: int) -> None:
        """Block until expected_count nodes are ready; raise NotReadyError otherwise."""
        ...

    def get_node(self, name: str) -> Node:
        """Return the node or raise NodeNotFoundError."""
        ...

    def list_nodes(self, cluster_name: str) -> List[Node]:
        ...


def tcp_probe(address: str, port: int, timeout: float) -> bool:
    try:
        with socket.create_connection((address, port), timeout=timeout):
            return True
    except OSError:
        return False


class InventoryNodeManager:
    """
    NodeManager over machines declared in a cluster file.
    A node counts as running once its SSH port accepts TCP connections.
    """

    def __init__(
        self,
        clusters: List[Cluster],
        *,
        attempts: int = 5,
        interval: float = 10.0,
        ssh_port: int = 22,
        probe_timeout: float = 3.0,
        probe: Callable[[str, int, float], bool] = tcp_probe,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._clusters = {c.name: c for c in clusters}
        self.attempts = attempts
        self.interval = interval
        self.ssh_port = ssh_port
        self.probe_timeout = probe_timeout
        self._probe = probe
        self._sleep = sleep

    def wait_nodes_running(self, cluster_name: str, expected_count: int) -> None:
        ready: List[str] = []
        for attempt in range(1, self.attempts + 1):
            nodes = self.list_nodes(cluster_name)
            ready = [
                n.name for n in nodes
                if self._probe(n.address, self.ssh_port, self.probe_timeout)
            ]
            if len(ready) >= expected_count:
                log.info("[%s] %d/%d node(s) running", cluster_name, len(ready), expected_count)
                return
            log.info(
                "[%s] %d/%d node(s) running (attempt %d/%d), retrying in %ss...",
                cluster_name, len(ready), expected_count, attempt, self.attempts, self.interval,
            )
            if attempt < self.attempts:
                self._sleep(self.interval)

        raise NotReadyError(
            f"cluster ({cluster_name}): {len(ready)}/{expected_count} node(s) running "
            f"after {self.attempts} attempts"
        )

    def get_node(self, name: str) -> Node:
        for cluster in self._clusters.values():
            for n in cluster.nodes:
                if n.name == name:
                    return n
        raise NodeNotFoundError(name)

    def list_nodes(self, cluster_name: str) -> List[Node]:
        cluster = self._clusters.get(cluster_name)
        return list(cluster.nodes) if cluster else []
