# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/k3sboot/config/models.py

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, model_validator

from k3sboot.bootstrap.errors import K3sBootError
from k3sboot.node.models import Node, NodeRole, NodeStatus, node_name


class ExtraOptions(BaseModel):
    """
    Free-form install options.

    - server_install_opts: appended only when the node acts as a server
    - agent_install_opts:  appended only when the node acts as an agent
    - extra_options:       prefixed to every install invocation (env assignments)
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    server_install_opts: str = Field("", alias="ServerInstallOpts")
    agent_install_opts: str = Field("", alias="AgentInstallOpts")
    extra_options: str = Field("", alias="ExtraOptions")


class ClusterSpec(BaseModel):
    version: str = ""
    prikey: Path                      # SSH private key used to log into nodes
    extra_options: Dict[str, Any] = Field(default_factory=dict)

    def parse_extra_options(self, defaults: ExtraOptions) -> ExtraOptions:
        """
        Overlay the user supplied mapping onto *defaults*.
        Keys may use either the field name or its alias; unknown keys are ignored.
        """
        parsed = ExtraOptions.model_validate(self.extra_options)
        return defaults.model_copy(update=parsed.model_dump(exclude_unset=True))


class NodeEntry(BaseModel):
    role: NodeRole
    address: str


class Cluster(BaseModel):
    name: str
    spec: ClusterSpec
    nodes: List[Node] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _expand_nodes(cls, data: Any) -> Any:
        """
        Turn ``nodes: [{role, address}, ...]`` entries into named Node objects.
        Indexes are counted per role, in file order, starting at 1.
        """
        if not isinstance(data, dict):
            return data

        entries = data.get("nodes") or []
        if not entries or all(isinstance(n, Node) for n in entries):
            return data

        counters: Dict[NodeRole, int] = {}
        nodes: List[Node] = []
        for raw in entries:
            entry = NodeEntry.model_validate(raw)
            counters[entry.role] = counters.get(entry.role, 0) + 1
            nodes.append(
                Node(
                    name=node_name(data.get("name", ""), entry.role, counters[entry.role]),
                    role=entry.role,
                    cluster=data.get("name", ""),
                    status=NodeStatus(ip_addresses=entry.address),
                )
            )
        return {**data, "nodes": nodes}

    def primary_name(self) -> str:
        return node_name(self.name, NodeRole.MASTER, 1)

    def spec_for(self, node: Node) -> ClusterSpec:
        if node.cluster != self.name:
            raise K3sBootError(
                f"node {node.name} belongs to cluster '{node.cluster}', not '{self.name}'"
            )
        return self.spec

    def local_kubeconfig(self, config_dir: Path) -> Path:
        return Path(config_dir) / "clusters" / self.name / "admin.conf"
