# tests/bootstrap/conftest.py
from __future__ import annotations

import threading
import time
import types
from pathlib import Path

import pytest

from k3sboot.bootstrap.errors import NodeNotFoundError, NotReadyError, SSHConnectionError
from k3sboot.config.models import Cluster
from k3sboot.config.settings import Settings
from k3sboot.utils.ssh import SSHClient

TOKEN = "K10f00d::server:s3cr3t"
TOKEN_CMD = "cat /var/lib/rancher/k3s/server/node-token"


# ----------------- Fakes for Paramiko -----------------

class _FakeChannel:
    def __init__(self, rc=0): self._rc = rc
    def recv_exit_status(self): return self._rc

class _Buf:
    def __init__(self, s=""): self._s = s
    def read(self): return self._s.encode()


class FakeParamikoClient:
    """Records exec_command() calls for one node and returns canned outputs."""
    def __init__(self, fleet: "FakeFleet", node: str):
        self.fleet = fleet
        self.node = node

    def exec_command(self, cmd, timeout=None):
        self.fleet.record(("exec", self.node, cmd))
        delay = self.fleet.delays.get(self.node)
        if delay:
            time.sleep(delay)
        out, err, rc = self.fleet.response(self.node, cmd)
        stdout = _Buf(out)
        stdout.channel = _FakeChannel(rc)
        return types.SimpleNamespace(write=lambda *a, **k: None, flush=lambda: None), stdout, _Buf(err)

    def close(self):
        self.fleet.record(("close", self.node))


class FakeFleet:
    """
    Stands in for every machine of a cluster.

    responses:         {(node, substring): (stdout, stderr, rc)}
    connect_failures:  {node: n}  fail the first n connects, -1 for always
    delays:            {node: seconds} slow down every command on that node
    """
    def __init__(self, responses=None, connect_failures=None, delays=None):
        self.ops = []
        self.responses = dict(responses or {})
        self.responses.setdefault(("demo-master-1", TOKEN_CMD), (TOKEN + "\n", "", 0))
        self.connect_failures = dict(connect_failures or {})
        self.delays = delays or {}
        self._lock = threading.Lock()

    def record(self, op):
        with self._lock:
            self.ops.append(op)

    def response(self, node, cmd):
        for (n, sub), resp in self.responses.items():
            if n == node and sub in cmd:
                return resp
        return ("", "", 0)

    def connect(self, name, prikey, user, address):
        self.record(("connect", name))
        with self._lock:
            remaining = self.connect_failures.get(name, 0)
            if remaining > 0:
                self.connect_failures[name] = remaining - 1
        if remaining:
            raise SSHConnectionError(name, address, "Connection refused")
        return SSHClient(name, FakeParamikoClient(self, name))

    # --- views ---
    def commands(self, node=None):
        return [op[2] for op in self.ops if op[0] == "exec" and (node is None or op[1] == node)]

    def count(self, kind, node):
        return sum(1 for op in self.ops if op[0] == kind and op[1] == node)


class FakeNodeManager:
    def __init__(self, cluster: Cluster, listed=None, ready=True):
        self.cluster = cluster
        self.listed = listed
        self.ready = ready
        self.calls = []

    def wait_nodes_running(self, cluster_name, expected_count):
        self.calls.append(("wait", cluster_name, expected_count))
        if not self.ready:
            raise NotReadyError(f"cluster ({cluster_name}): 0/{expected_count} node(s) running")

    def get_node(self, name):
        self.calls.append(("get", name))
        for n in self.cluster.nodes:
            if n.name == name:
                return n
        raise NodeNotFoundError(name)

    def list_nodes(self, cluster_name):
        self.calls.append(("list", cluster_name))
        return list(self.cluster.nodes) if self.listed is None else self.listed


class Capture:
    def __init__(self): self.events = []
    def notify(self, ev): self.events.append(ev)


# ----------------- Fixtures -----------------

@pytest.fixture
def make_cluster():
    def _make(name="demo", masters=1, workers=0, extra=None, version="v1.29.4+k3s1"):
        nodes = [{"role": "master", "address": f"10.0.0.{i}"} for i in range(1, masters + 1)]
        nodes += [{"role": "worker", "address": f"10.0.1.{i}"} for i in range(1, workers + 1)]
        return Cluster.model_validate({
            "name": name,
            "spec": {"version": version, "prikey": "/keys/id_ed25519", "extra_options": extra or {}},
            "nodes": nodes,
        })
    return _make


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(script_base_url="https://scripts.test/k3s", ssh_user="root", config_dir=tmp_path)


@pytest.fixture
def deployer(settings):
    """
    Build a K3sBootstrapper wired to fakes.
    Returns (bootstrapper, fleet, node_manager, capture).
    """
    from k3sboot.bootstrap.k3s import K3sBootstrapper
    from k3sboot.observers.dispatcher import EventBus
    from k3sboot.utils.retry import RetryPolicy

    def _make(cluster, *, fleet=None, listed=None, ready=True, attempts=3):
        fleet = fleet or FakeFleet()
        mgr = FakeNodeManager(cluster, listed=listed, ready=ready)
        cap = Capture()
        bs = K3sBootstrapper(
            mgr,
            settings=settings,
            bus=EventBus(observers=[cap]),
            connect=fleet.connect,
            init_retry=RetryPolicy(attempts=attempts, delay=0, max_delay=0),
            sleep=lambda s: None,
        )
        return bs, fleet, mgr, cap
    return _make


@pytest.fixture
def fleet_cls():
    return FakeFleet
