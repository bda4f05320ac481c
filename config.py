"""
Load monitor config from config.yaml into an immutable MonitorConfig.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_REGISTRY_URL = (
    "https://raw.githubusercontent.com/TribecaHQ/tribeca-registry-build/"
    "master/registry/governor-metas.mainnet.json"
)
DEFAULT_PROPOSAL_URL = "https://tribeca.so/gov/{slug}/proposals/{index}"


class DiffConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    strategy: Literal["threshold", "set_add"] = "threshold"
    threshold: int = Field(1, ge=1)


class SinkConfig(BaseModel):
    """One delivery target. Credentials are read from the environment, not from here."""
    model_config = ConfigDict(frozen=True, extra="allow")

    type: Literal["console", "twitter", "log"]
    name: str | None = None


class MonitorConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    poll_interval: float = Field(5.0, gt=0)
    registry_url: str = DEFAULT_REGISTRY_URL
    ledger_url: str = Field(default_factory=lambda: os.environ.get("RPC_URL", "http://localhost:8899"))
    max_concurrent_sources: int = Field(8, ge=1)
    max_inflight_details: int = Field(16, ge=1)
    source_timeout: float = Field(30.0, gt=0)
    max_message_length: int = Field(250, ge=1)
    proposal_url_template: str = DEFAULT_PROPOSAL_URL
    diff: DiffConfig = DiffConfig()
    sinks: tuple[SinkConfig, ...] = (SinkConfig(type="console"),)
    log_level: str = "INFO"
    notification_log_path: str = "data/notifications.jsonl"
    cycle_log_path: str = "data/cycles.jsonl"


def load_config(path: str | Path | None = None) -> MonitorConfig:
    """Load config from path (default $GOVWATCH_CONFIG or config.yaml). A missing file yields defaults."""
    if path is None:
        path = os.environ.get("GOVWATCH_CONFIG", "config.yaml")
    path = Path(path)
    if not path.exists():
        return MonitorConfig()
    with open(path) as f:
        raw = yaml.safe_load(f) or {}
    return MonitorConfig(**raw)


if __name__ == "__main__":
    cfg = load_config()
    print("Loaded config:")
    for key, value in cfg.model_dump().items():
        print(f"  {key}: {value}")
