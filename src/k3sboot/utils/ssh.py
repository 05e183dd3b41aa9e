# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/k3sboot/utils/ssh.py

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence, TextIO

import paramiko

from k3sboot.bootstrap.errors import CommandError, K3sBootError, SSHConnectionError

log = logging.getLogger("k3sboot")


@dataclass
class CommandIO:
    """
    Per-command I/O handed to before/after hooks.
    A before hook may point ``stdout`` at a buffer to capture output,
    or set ``stdin`` to feed data to the command.
    """
    cmd: str
    stdout: Optional[TextIO] = None
    stdin: Optional[str] = None
    exit_status: Optional[int] = None


Callback = Callable[[CommandIO], bool]


def load_private_key(path: str | Path) -> paramiko.PKey:
    key_path = str(Path(path).expanduser())
    for key_cls in (
        paramiko.Ed25519Key,
        paramiko.RSAKey,
        paramiko.ECDSAKey,
    ):
        try:
            return key_cls.from_private_key_file(key_path)
        except (paramiko.SSHException, ValueError):
            continue
        except OSError as e:
            raise K3sBootError(f"unable to read private key {key_path}: {e}") from e
    raise K3sBootError(f"unsupported private key format for {key_path}")


def _redact(text: str, secrets: Sequence[str]) -> str:
    for s in secrets:
        if s:
            text = text.replace(s, "***")
    return text


class SSHClient:
    """
    One SSH session to one node. Commands run one at a time, each on its own
    channel. Use as a context manager so the session is closed on every path.
    """

    def __init__(self, name: str, client: paramiko.SSHClient, cmd_timeout: Optional[float] = None):
        self.name = name
        self.client = client
        self.cmd_timeout = cmd_timeout

    @classmethod
    def connect(
        cls,
        name: str,
        prikey: str | Path,
        user: str,
        address: str,
        *,
        port: int = 22,
        connect_timeout: float = 30.0,
        cmd_timeout: Optional[float] = None,
    ) -> "SSHClient":
        pkey = load_private_key(prikey)

        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=address,
                port=port,
                username=user,
                pkey=pkey,
                password=None,
                look_for_keys=False,
                allow_agent=False,
                timeout=connect_timeout,
            )
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise SSHConnectionError(name, address, f"{type(e).__name__}: {e}") from e

        log.debug("[%s] SSH session opened to %s@%s:%d", name, user, address, port)
        return cls(name, client, cmd_timeout=cmd_timeout)

    def run(
        self,
        *cmds: str,
        before: Optional[Callback] = None,
        after: Optional[Callback] = None,
        redact: Sequence[str] = (),
    ) -> None:
        """
        Run *cmds* in order, stopping at the first non-zero exit status.

        before: called with the CommandIO before execution; returning False skips the command
        after:  called with the CommandIO once the exit status is known
        redact: strings masked in log lines and error messages
        """
        for cmd in cmds:
            cio = CommandIO(cmd=cmd)
            if before is not None and not before(cio):
                log.debug("[%s] skipped: %s", self.name, _redact(cmd, redact))
                continue

            log.debug("[%s] $ %s", self.name, _redact(cmd, redact))
            stdin, stdout, stderr = self.client.exec_command(cmd, timeout=self.cmd_timeout)
            if cio.stdin is not None:
                stdin.write(cio.stdin)
                stdin.flush()
                stdin.channel.shutdown_write()

            out = stdout.read().decode("utf-8", errors="replace")
            err = stderr.read().decode("utf-8", errors="replace")
            cio.exit_status = stdout.channel.recv_exit_status()

            if cio.stdout is not None:
                cio.stdout.write(out)
            elif out.strip():
                log.debug("[%s] %s", self.name, out.rstrip())

            if after is not None:
                after(cio)

            if cio.exit_status != 0:
                raise CommandError(
                    self.name,
                    _redact(cmd, redact),
                    cio.exit_status,
                    _redact(err, redact),
                )

    def output(self, cmd: str) -> str:
        """Run a single command and return its raw standard output."""
        buf = io.StringIO()

        def capture(cio: CommandIO) -> bool:
            cio.stdout = buf
            return True

        self.run(cmd, before=capture)
        return buf.getvalue()

    def download(self, remote_path: str, local_path: str | Path) -> None:
        sftp = self.client.open_sftp()
        try:
            sftp.get(remote_path, str(local_path))
        finally:
            sftp.close()

    def close(self) -> None:
        self.client.close()
        log.debug("[%s] SSH session closed", self.name)

    def __enter__(self) -> "SSHClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
