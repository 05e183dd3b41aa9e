# src/k3sboot/config/settings.py

from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
import os

DEFAULT_SCRIPT_BASE_URL = "https://raw.githubusercontent.com/innobead/kubefire/master/scripts"


@dataclass(frozen=True)
class Settings:
    script_base_url: str
    ssh_user: str
    config_dir: Path

    def script_url(self, script: str) -> str:
        return f"{self.script_base_url.rstrip('/')}/{script}"


def load_settings() -> Settings:
    # defaults match upstream scripts; override via env
    return Settings(
        script_base_url=os.getenv("K3SBOOT_SCRIPT_BASE_URL", DEFAULT_SCRIPT_BASE_URL),
        ssh_user=os.getenv("K3SBOOT_SSH_USER", "root"),
        config_dir=Path(os.getenv("K3SBOOT_CONFIG_DIR", str(Path.home() / ".k3sboot"))),
    )
