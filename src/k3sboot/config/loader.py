# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/k3sboot/config/loader.py

import logging
import os
import yaml
from pathlib import Path
from pydantic import ValidationError

from k3sboot.bootstrap.errors import ConfigError
from .models import Cluster

log = logging.getLogger("k3sboot")


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    return yaml.safe_load(expanded) or {}


def load_cluster(path: str | Path) -> Cluster:
    """
    Load and validate a cluster definition.

    Example::

        name: demo
        spec:
          version: v1.29.4+k3s1
          prikey: ~/.ssh/id_ed25519
          extra_options:
            ServerInstallOpts: --disable=traefik
        nodes:
          - role: master
            address: 10.0.0.11
          - role: worker
            address: 10.0.0.12

    ``${ENV_VAR}`` placeholders are resolved at load time and ``~`` in the
    key path is expanded.
    """
    path = Path(path)
    try:
        data = _load_yaml(path)
    except OSError as e:
        raise ConfigError(f"unable to read cluster file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"cluster file {path} must contain a mapping")

    spec = data.get("spec")
    if isinstance(spec, dict) and spec.get("prikey"):
        spec["prikey"] = str(Path(spec["prikey"]).expanduser())

    try:
        cluster = Cluster.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid cluster definition in {path}:\n{e}") from e
    log.debug("Loaded cluster %s with %d node(s) from %s", cluster.name, len(cluster.nodes), path)
    return cluster
