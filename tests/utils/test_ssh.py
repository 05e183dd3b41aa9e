import io
import types

import pytest

import k3sboot.utils.ssh as ssh_mod
from k3sboot.bootstrap.errors import CommandError, K3sBootError, SSHConnectionError
from k3sboot.utils.ssh import SSHClient

# ----------------- Fakes for Paramiko -----------------

class _FakeChannel:
    def __init__(self, rc=0): self._rc = rc
    def recv_exit_status(self): return self._rc

class _Buf:
    def __init__(self, s=""): self._s = s
    def read(self): return self._s.encode()

class FakeSSHClient:
    def __init__(self, log, responses=None, connect_error=None):
        self.log = log
        self._responses = responses or {}
        self._connect_error = connect_error
    def set_missing_host_key_policy(self, policy): pass
    def connect(self, **kw):
        self.log.append(("connect", kw))
        if self._connect_error:
            raise self._connect_error
    def exec_command(self, cmd, timeout=None):
        self.log.append(("exec", cmd))
        out, err, rc = self._responses.get(cmd, ("", "", 0))
        stdout = _Buf(out)
        stdout.channel = _FakeChannel(rc)
        return types.SimpleNamespace(write=lambda *a, **k: None, flush=lambda: None), stdout, _Buf(err)
    def close(self):
        self.log.append(("close",))


# ----------------- Tests -----------------

def test_run_executes_in_order_and_stops_on_failure():
    ops = []
    client = SSHClient("n1", FakeSSHClient(ops, {"false": ("", "nope", 1)}))

    with pytest.raises(CommandError) as ei:
        client.run("true", "false", "echo never")

    assert [o[1] for o in ops if o[0] == "exec"] == ["true", "false"]
    assert ei.value.exit_status == 1
    assert ei.value.node == "n1"
    assert "nope" in str(ei.value)


def test_before_hook_captures_stdout_and_after_sees_status():
    ops = []
    client = SSHClient("n1", FakeSSHClient(ops, {"hostname": ("n1\n", "", 0)}))
    buf = io.StringIO()
    seen = []

    def before(cio):
        cio.stdout = buf
        return True

    def after(cio):
        seen.append((cio.cmd, cio.exit_status))
        return True

    client.run("hostname", before=before, after=after)

    assert buf.getvalue() == "n1\n"
    assert seen == [("hostname", 0)]


def test_before_hook_can_skip_commands():
    ops = []
    client = SSHClient("n1", FakeSSHClient(ops))

    client.run("a", "b", before=lambda cio: cio.cmd != "a")

    assert [o[1] for o in ops if o[0] == "exec"] == ["b"]


def test_output_returns_raw_stdout():
    client = SSHClient("n1", FakeSSHClient([], {"cat f": ("x\n\n", "", 0)}))
    assert client.output("cat f") == "x\n\n"


def test_redacted_secret_absent_from_error():
    cmd = "K3S_TOKEN=hunter2 k3s-install.sh"
    client = SSHClient("n1", FakeSSHClient([], {cmd: ("", "bad token hunter2", 1)}))

    with pytest.raises(CommandError) as ei:
        client.run(cmd, redact=("hunter2",))

    assert "hunter2" not in str(ei.value)
    assert "K3S_TOKEN=***" in ei.value.cmd


def test_context_manager_closes_session():
    ops = []
    with SSHClient("n1", FakeSSHClient(ops)) as c:
        c.run("true")
    assert ops[-1] == ("close",)


def test_connect_wraps_transport_errors(monkeypatch):
    ops = []
    monkeypatch.setattr(ssh_mod, "load_private_key", lambda path: "PKEY")
    monkeypatch.setattr(
        ssh_mod.paramiko,
        "SSHClient",
        lambda: FakeSSHClient(ops, connect_error=OSError("Connection refused")),
    )

    with pytest.raises(SSHConnectionError) as ei:
        SSHClient.connect("demo-master-1", "/keys/id", "root", "10.0.0.1")

    assert "demo-master-1" in str(ei.value)
    assert "10.0.0.1" in str(ei.value)
    assert ops[0][1]["username"] == "root"
    assert ops[0][1]["pkey"] == "PKEY"
    assert ops[-1] == ("close",)


def test_connect_success(monkeypatch):
    ops = []
    monkeypatch.setattr(ssh_mod, "load_private_key", lambda path: "PKEY")
    monkeypatch.setattr(ssh_mod.paramiko, "SSHClient", lambda: FakeSSHClient(ops))

    client = SSHClient.connect("n1", "/keys/id", "root", "10.0.0.2", port=2222)

    assert client.name == "n1"
    assert ops[0][1]["hostname"] == "10.0.0.2"
    assert ops[0][1]["port"] == 2222


def test_load_private_key_missing_file(tmp_path):
    with pytest.raises(K3sBootError, match="unable to read private key"):
        ssh_mod.load_private_key(tmp_path / "missing")


def test_load_private_key_garbage(tmp_path):
    key = tmp_path / "id"
    key.write_text("not a key\n")
    with pytest.raises(K3sBootError, match="unsupported private key"):
        ssh_mod.load_private_key(key)
