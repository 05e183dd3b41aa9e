# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/k3sboot/bootstrap/kubeconfig.py

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable
from urllib.parse import urlparse

import yaml

from k3sboot.config.models import Cluster
from k3sboot.node.manager import NodeManager
from k3sboot.utils.ssh import SSHClient

log = logging.getLogger("k3sboot")

LOOPBACK_HOSTS = {"127.0.0.1", "localhost", "::1"}


def rewrite_server_address(kubeconfig: str, address: str) -> str:
    """
    Point every loopback ``clusters[].cluster.server`` at *address*,
    keeping scheme and port. Other servers are left untouched.
    """
    data = yaml.safe_load(kubeconfig) or {}
    for entry in data.get("clusters") or []:
        cluster = entry.get("cluster") or {}
        server = cluster.get("server")
        if not server:
            continue
        url = urlparse(server)
        if url.hostname in LOOPBACK_HOSTS:
            netloc = f"{address}:{url.port}" if url.port else address
            cluster["server"] = url._replace(netloc=netloc).geturl()
    return yaml.safe_dump(data, sort_keys=False)


def download_kubeconfig(
    node_manager: NodeManager,
    cluster: Cluster,
    remote_path: str,
    dest_dir: Path,
    *,
    connect: Callable[..., SSHClient],
    user: str,
) -> Path:
    """
    Copy the admin kubeconfig from the primary node to ``dest_dir/admin.conf``
    and make it usable from outside the node.
    """
    primary = node_manager.get_node(cluster.primary_name())
    spec = cluster.spec_for(primary)

    dest_dir = Path(dest_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)
    local_path = dest_dir / "admin.conf"

    log.info("[%s] Downloading kubeconfig %s -> %s", primary.name, remote_path, local_path)
    with connect(primary.name, spec.prikey, user, primary.address) as ssh:
        ssh.download(remote_path, local_path)

    local_path.write_text(rewrite_server_address(local_path.read_text(), primary.address))
    os.chmod(local_path, 0o600)
    return local_path
