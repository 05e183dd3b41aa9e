# src/k3sboot/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import uuid


class DeployPhase(str, Enum):
    INIT = "init"
    WAITING_READY = "waiting_ready"
    INITIALIZING = "initializing"
    BOOTSTRAPPING_PRIMARY = "bootstrapping_primary"
    JOINING = "joining"
    DONE = "done"
    FAILED = "failed"


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single deploy invocation
    cluster: str

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(cluster: str, run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "run_id": run_id or str(uuid.uuid4()),
        "cluster": cluster,
    }


# ---------------------------------------------------------------------
# Deploy lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class DeployPhaseChanged(BaseEvent):
    phase: DeployPhase
    error: Optional[str] = None


# ---------------------------------------------------------------------
# Node lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class NodeInitialized(BaseEvent):
    node: str
    ok: bool
    error: Optional[str] = None

@dataclass(frozen=True)
class PrimaryBootstrapped(BaseEvent):
    node: str
    cluster_init: bool

@dataclass(frozen=True)
class NodeJoined(BaseEvent):
    node: str
    as_server: bool
