# src/k3sboot/cli/app.py
from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List, Optional

import typer

from k3sboot.bootstrap.errors import K3sBootError
from k3sboot.bootstrap.interface import Bootstrapper
from k3sboot.bootstrap.k3s import K3sBootstrapper
from k3sboot.config.loader import load_cluster
from k3sboot.config.settings import load_settings
from k3sboot.logging.log import init_logging
from k3sboot.node.manager import InventoryNodeManager
from k3sboot.node.models import Node
from k3sboot.observers.console import ConsoleObserver
from k3sboot.observers.dispatcher import EventBus
from k3sboot.observers.logger import LoggerObserver
from k3sboot.utils.retry import RetryPolicy
from k3sboot.utils.ssh import SSHClient


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="k3s cluster bootstrap CLI")
node_app = typer.Typer(help="Manage node")
app.add_typer(node_app, name="node")


def _bootstrapper(cluster, *, logger=None, run_id=None, wait_attempts: int = 5, init_attempts: int = 10) -> Bootstrapper:
    observers = [LoggerObserver(logger)] if logger else [ConsoleObserver()]
    return K3sBootstrapper(
        InventoryNodeManager([cluster], attempts=wait_attempts),
        bus=EventBus(observers=observers),
        init_retry=RetryPolicy(attempts=init_attempts or None),
        run_id=run_id,
    )


def _fail(prefix: str, e: Exception) -> None:
    typer.secho(f"{prefix}: {e}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


@app.command()
def deploy(
    config: Path = typer.Argument(..., help="Cluster definition YAML"),
    wait_attempts: int = typer.Option(5, "--wait-attempts", help="Readiness probes before giving up"),
    init_attempts: int = typer.Option(
        10,
        "--init-attempts",
        help="SSH connection attempts per node during initialization (0 = unbounded)",
    ),
    kubeconfig: bool = typer.Option(True, "--kubeconfig/--no-kubeconfig", help="Download kubeconfig after deploy"),
    debug: bool = typer.Option(False, "--debug"),
):
    """Initialize, bootstrap and join every node of the cluster."""
    logger, run_id, log_path = init_logging(verbose=debug)

    typer.echo("")
    typer.secho("k3s Deployment Started", bold=True)
    typer.echo(f"  Run ID   : {run_id}")
    typer.echo(f"  Logs     : {log_path}")
    typer.echo("")

    try:
        cluster = load_cluster(config)
        bootstrapper = _bootstrapper(
            cluster,
            logger=logger,
            run_id=run_id,
            wait_attempts=wait_attempts,
            init_attempts=init_attempts,
        )
        bootstrapper.deploy(cluster)
        if kubeconfig:
            path = bootstrapper.download_kubeconfig(cluster)
            typer.echo(f"KUBECONFIG={path}")
    except K3sBootError as e:
        _fail("Deploy failed", e)

    typer.secho(f"Cluster {cluster.name} is ready", fg=typer.colors.GREEN)


@app.command("kubeconfig")
def download_kubeconfig(
    config: Path = typer.Argument(..., help="Cluster definition YAML"),
    dest: Optional[Path] = typer.Option(None, "--dest", help="Directory to write admin.conf into"),
):
    """Download the admin kubeconfig from the first master."""
    try:
        cluster = load_cluster(config)
        path = _bootstrapper(cluster).download_kubeconfig(cluster, dest)
    except K3sBootError as e:
        _fail("Download failed", e)
    typer.echo(f"KUBECONFIG={path}")


@app.command()
def env(
    config: Path = typer.Argument(..., help="Cluster definition YAML"),
):
    """Print environment values of the cluster."""
    try:
        cluster = load_cluster(config)
    except K3sBootError as e:
        _fail("Invalid cluster", e)
    typer.echo(f"KUBECONFIG={cluster.local_kubeconfig(load_settings().config_dir)}")


# ------------------------------------------------------------------------------
# node
# ------------------------------------------------------------------------------

def interactive_ssh_args(node: Node, prikey: Path, user: str) -> List[str]:
    return [
        "ssh",
        "-i", str(prikey),
        "-o", "StrictHostKeyChecking=no",
        "-o", "UserKnownHostsFile=/dev/null",
        f"{user}@{node.address}",
    ]


@node_app.command("ssh")
def node_ssh(
    config: Path = typer.Argument(..., help="Cluster definition YAML"),
    name: str = typer.Argument(..., help="Node name, e.g. demo-master-1"),
    cmd: Optional[str] = typer.Option(None, "--cmd", help="Run a command instead of opening a shell"),
):
    """SSH into a node of the cluster."""
    try:
        cluster = load_cluster(config)
        node = InventoryNodeManager([cluster]).get_node(name)
        spec = cluster.spec_for(node)
        user = load_settings().ssh_user

        if cmd:
            with SSHClient.connect(node.name, spec.prikey, user, node.address) as ssh:
                typer.echo(ssh.output(cmd), nl=False)
            return
    except K3sBootError as e:
        _fail("SSH failed", e)

    # an interactive session needs a local terminal, so hand it to the ssh client
    rc = subprocess.run(interactive_ssh_args(node, spec.prikey, user)).returncode
    raise typer.Exit(code=rc)


if __name__ == "__main__":
    app()
