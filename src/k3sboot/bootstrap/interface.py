# src/k3sboot/bootstrap/interface.py

from __future__ import annotations
from pathlib import Path
from typing import Callable, Optional, Protocol

from k3sboot.config.models import Cluster
from k3sboot.node.manager import NodeManager


class Bootstrapper(Protocol):
    """
    Contract for turning a set of running machines into a joined cluster.
    """

    @property
    def type(self) -> str: ...

    def set_node_manager(self, node_manager: NodeManager) -> None: ...

    def deploy(self, cluster: Cluster, before: Optional[Callable[[], None]] = None) -> None:
        """
        Run *before* (if any), then initialize, bootstrap and join all nodes.
        Must raise on failure; nodes already joined stay joined.
        """
        ...

    def download_kubeconfig(self, cluster: Cluster, dest_dir: Optional[Path] = None) -> Path: ...

    def prepare(self, cluster: Cluster, force: bool = False) -> None: ...
