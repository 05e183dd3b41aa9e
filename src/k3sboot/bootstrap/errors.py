# src/k3sboot/bootstrap/errors.py

from __future__ import annotations

from typing import List, Optional


class K3sBootError(RuntimeError):
    """Base class for cluster bootstrap failures."""


class ConfigError(K3sBootError):
    """Raised when a cluster definition cannot be read or validated."""


class NotReadyError(K3sBootError):
    """Raised when nodes did not become ready within the attempt budget."""


class NodeNotFoundError(K3sBootError):
    """Raised when a node cannot be resolved by name."""

    def __init__(self, name: str):
        super().__init__(f"node ({name}) not found")
        self.name = name


class NoNodesAvailableError(K3sBootError):
    """Raised when listing cluster nodes returns nothing."""


class SSHConnectionError(K3sBootError):
    """Raised when an SSH session to a node cannot be established."""

    def __init__(self, node: str, address: str, reason: str = ""):
        msg = f"failed to connect to node ({node}) at {address}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.node = node
        self.address = address


class CommandError(K3sBootError):
    """Raised when a remote command exits with a non-zero status."""

    def __init__(self, node: str, cmd: str, exit_status: int, stderr: str = ""):
        msg = f"command failed on node ({node}) with exit status {exit_status}: {cmd}"
        if stderr.strip():
            msg += f"\n{stderr.strip()}"
        super().__init__(msg)
        self.node = node
        self.cmd = cmd
        self.exit_status = exit_status
        self.stderr = stderr


class NodeFailure(K3sBootError):
    """A failure attributed to one node, wrapping the underlying cause."""

    def __init__(self, node: str, cause: BaseException):
        super().__init__(f"failed on node ({node}): {cause}")
        self.node = node
        self.cause = cause
        self.__cause__ = cause


class AggregatedError(K3sBootError):
    """Combination of per-node failures collected during initialization."""

    def __init__(self, errors: List[NodeFailure], message: Optional[str] = None):
        self.errors = list(errors)
        lines = [f"  * {e}" for e in self.errors]
        header = message or f"{len(self.errors)} error(s) occurred"
        super().__init__("\n".join([header + ":"] + lines))

    @property
    def nodes(self) -> List[str]:
        return [e.node for e in self.errors]
