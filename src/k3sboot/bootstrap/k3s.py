# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/k3sboot/bootstrap/k3s.py

from __future__ import annotations

import logging
import queue
import shlex
import time
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path
from typing import Callable, List, Optional

from k3sboot.config.models import Cluster, ExtraOptions
from k3sboot.config.settings import Settings, load_settings
from k3sboot.config.versions import k3s_versions_env_vars
from k3sboot.node.manager import NodeManager
from k3sboot.node.models import Node, NodeRole, node_name
from k3sboot.observers.dispatcher import EventBus
from k3sboot.observers.events import (
    DeployPhase,
    DeployPhaseChanged,
    NodeInitialized,
    NodeJoined,
    PrimaryBootstrapped,
    new_ctx,
)
from k3sboot.utils.retry import RetryPolicy, retry
from k3sboot.utils.ssh import SSHClient

from .errors import (
    AggregatedError,
    K3sBootError,
    NoNodesAvailableError,
    NodeFailure,
    NodeNotFoundError,
    NotReadyError,
    SSHConnectionError,
)
from .kubeconfig import download_kubeconfig

log = logging.getLogger("k3sboot")

K3S = "k3s"
K3S_INSTALL_SCRIPT = "k3s-install.sh"
INSTALL_PREREQUISITES_K3S = "install-prerequisites-k3s.sh"
KUBECONFIG_PATH = "/etc/rancher/k3s/k3s.yaml"
NODE_TOKEN_PATH = "/var/lib/rancher/k3s/server/node-token"
API_SERVER_PORT = 6443


def _compose(*parts: str) -> str:
    return " ".join(p for p in parts if p)


def prerequisite_commands(script_url: str, version: str) -> List[str]:
    script = INSTALL_PREREQUISITES_K3S
    return [
        "swapoff -a",
        f"curl -sSLO {script_url}",
        f"chmod +x {script}",
        _compose(str(k3s_versions_env_vars(version)), f"./{script}"),
    ]


def build_bootstrap_command(address: str, single_node: bool, extra: ExtraOptions) -> str:
    """
    Install command for the first master. ``--cluster-init`` (embedded etcd)
    is only added when other nodes will join.
    """
    opts = [f"--bind-address={address}"]
    if not single_node:
        opts.append("--cluster-init")
    if extra.server_install_opts:
        opts.append(extra.server_install_opts)

    return _compose(f'INSTALL_K3S_EXEC="{" ".join(opts)}"', extra.extra_options, K3S_INSTALL_SCRIPT)


def build_join_command(node: Node, api_address: str, token: str, extra: ExtraOptions) -> str:
    opts: List[str] = []
    if node.is_master():
        opts.append("--server")
        if extra.server_install_opts:
            opts.append(extra.server_install_opts)
    elif extra.agent_install_opts:
        opts.append(extra.agent_install_opts)

    return _compose(
        f'INSTALL_K3S_EXEC="{" ".join(opts)}"',
        extra.extra_options,
        f"K3S_URL=https://{api_address}:{API_SERVER_PORT}",
        f"K3S_TOKEN={shlex.quote(token)}",
        K3S_INSTALL_SCRIPT,
    )


class FailureCollector:
    """
    Per-node failures of one initialization run. Each node task adds at most
    once, so a queue bounded by the node count never blocks.
    """

    def __init__(self, capacity: int):
        self._q: "queue.Queue[NodeFailure]" = queue.Queue(maxsize=max(capacity, 1))

    def add(self, node: str, exc: BaseException) -> None:
        self._q.put_nowait(NodeFailure(node, exc))

    def drain(self) -> List[NodeFailure]:
        out: List[NodeFailure] = []
        while True:
            try:
                out.append(self._q.get_nowait())
            except queue.Empty:
                return out


class K3sBootstrapper:
    """
    Forms a k3s cluster over SSH:
      - init:      run the prerequisites script on every node, concurrently
      - bootstrap: install the first master and read its join token
      - join:      enroll the remaining nodes one by one with that token
    """

    def __init__(
        self,
        node_manager: Optional[NodeManager] = None,
        *,
        settings: Optional[Settings] = None,
        bus: Optional[EventBus] = None,
        connect: Callable[..., SSHClient] = SSHClient.connect,
        init_retry: RetryPolicy = RetryPolicy(),
        run_id: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.node_manager = node_manager
        self.settings = settings or load_settings()
        self.bus = bus or EventBus()
        self.init_retry = init_retry
        self.run_id = run_id
        self._connect = connect
        self._sleep = sleep

    @property
    def type(self) -> str:
        return K3S

    def set_node_manager(self, node_manager: NodeManager) -> None:
        self.node_manager = node_manager

    # ------------------ public API ------------------

    def deploy(self, cluster: Cluster, before: Optional[Callable[[], None]] = None) -> None:
        ctx = new_ctx(cluster.name, self.run_id)
        phase = DeployPhase.INIT

        def enter(p: DeployPhase) -> None:
            nonlocal phase
            phase = p
            log.info("[%s] deploy phase: %s", cluster.name, p.value)
            self.bus.emit(DeployPhaseChanged(**ctx, phase=p))

        try:
            if before is not None:
                before()

            if self.node_manager is None:
                raise K3sBootError("node manager is not set")
            if not cluster.nodes:
                raise NoNodesAvailableError(f"cluster ({cluster.name}) has no nodes")

            extra = cluster.spec.parse_extra_options(
                ExtraOptions(extra_options=str(k3s_versions_env_vars(cluster.spec.version)))
            )

            enter(DeployPhase.WAITING_READY)
            try:
                self.node_manager.wait_nodes_running(cluster.name, len(cluster.nodes))
            except NotReadyError:
                raise
            except Exception as e:
                raise NotReadyError(f"some nodes of cluster ({cluster.name}) are not running: {e}") from e

            enter(DeployPhase.INITIALIZING)
            self._init(cluster, ctx)

            enter(DeployPhase.BOOTSTRAPPING_PRIMARY)
            primary_name = node_name(cluster.name, NodeRole.MASTER, 1)
            primary = self.node_manager.get_node(primary_name)
            if primary is None:
                raise NodeNotFoundError(primary_name)

            single_node = len(cluster.nodes) == 1
            join_token = self._bootstrap(cluster, primary, single_node, extra)
            self.bus.emit(PrimaryBootstrapped(**ctx, node=primary.name, cluster_init=not single_node))

            enter(DeployPhase.JOINING)
            nodes = self.node_manager.list_nodes(cluster.name)
            if not nodes:
                raise NoNodesAvailableError("no nodes available")

            secondaries = [n for n in nodes if n.name != primary.name]
            if secondaries and not join_token:
                raise K3sBootError(f"join token read from node ({primary.name}) is empty")

            for i, n in enumerate(secondaries, 1):
                log.info("[%s] Joining node (%d/%d)...", n.name, i, len(secondaries))
                self._join(cluster, n, primary.address, join_token, extra)
                self.bus.emit(NodeJoined(**ctx, node=n.name, as_server=n.is_master()))

            enter(DeployPhase.DONE)
        except Exception as e:
            log.error("[%s] deploy failed during %s: %s", cluster.name, phase.value, e)
            self.bus.emit(DeployPhaseChanged(**ctx, phase=DeployPhase.FAILED, error=str(e)))
            raise

    def download_kubeconfig(self, cluster: Cluster, dest_dir: Optional[Path] = None) -> Path:
        if dest_dir is None:
            dest_dir = cluster.local_kubeconfig(self.settings.config_dir).parent
        return download_kubeconfig(
            self.node_manager,
            cluster,
            KUBECONFIG_PATH,
            dest_dir,
            connect=self._connect,
            user=self.settings.ssh_user,
        )

    def prepare(self, cluster: Cluster, force: bool = False) -> None:
        # the k3s installer is fetched on the nodes; nothing to stage locally
        return None

    # ------------------ phases ------------------

    def _session(self, cluster: Cluster, node: Node) -> SSHClient:
        spec = cluster.spec_for(node)
        return self._connect(node.name, spec.prikey, self.settings.ssh_user, node.address)

    def _init(self, cluster: Cluster, ctx: dict) -> None:
        log.info("[%s] Initializing cluster", cluster.name)

        collector = FailureCollector(len(cluster.nodes))

        def on_retry(attempt: int, exc: Exception, wait_s: float) -> None:
            log.warning("%s (attempt %d), retrying in %ss...", exc, attempt, wait_s)

        init_node = retry(
            policy=self.init_retry,
            retry_on=(SSHConnectionError,),
            on_retry=on_retry,
            sleep=self._sleep,
        )(self._init_node)

        def task(node: Node) -> None:
            log.info("[%s] Initializing node", node.name)
            try:
                init_node(cluster, node)
            except Exception as e:
                collector.add(node.name, e)
                log.error("[%s] Initialization failed: %s", node.name, e)
                self.bus.emit(NodeInitialized(**ctx, node=node.name, ok=False, error=str(e)))
            else:
                log.info("[%s] Initialization complete", node.name)
                self.bus.emit(NodeInitialized(**ctx, node=node.name, ok=True))

        with ThreadPoolExecutor(max_workers=len(cluster.nodes), thread_name_prefix="init") as pool:
            futures = [pool.submit(task, n) for n in cluster.nodes]
            log.info("[%s] Waiting for all nodes to finish initialization", cluster.name)
            wait(futures)
        for f in futures:
            f.result()

        failures = collector.drain()
        if failures:
            raise AggregatedError(
                failures,
                f"initialization failed on {len(failures)} of {len(cluster.nodes)} node(s)",
            )

    def _init_node(self, cluster: Cluster, node: Node) -> None:
        spec = cluster.spec_for(node)
        script_url = self.settings.script_url(INSTALL_PREREQUISITES_K3S)
        with self._session(cluster, node) as ssh:
            ssh.run(*prerequisite_commands(script_url, spec.version))

    def _bootstrap(self, cluster: Cluster, node: Node, single_node: bool, extra: ExtraOptions) -> str:
        log.info("[%s] Bootstrapping the first master node", node.name)

        cmd = build_bootstrap_command(node.address, single_node, extra)
        with self._session(cluster, node) as ssh:
            ssh.run(cmd)
            token = ssh.output(f"cat {NODE_TOKEN_PATH}")

        return token.removesuffix("\n")

    def _join(self, cluster: Cluster, node: Node, api_address: str, token: str, extra: ExtraOptions) -> None:
        cmd = build_join_command(node, api_address, token, extra)
        with self._session(cluster, node) as ssh:
            ssh.run(cmd, redact=(shlex.quote(token), token))
