from __future__ import annotations

import pydantic
import pytest

from config import DEFAULT_REGISTRY_URL, load_config


def test_missing_file_gives_defaults(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("RPC_URL", "http://rpc.example:8899")
    cfg = load_config(tmp_path / "absent.yaml")

    assert cfg.poll_interval == 5
    assert cfg.registry_url == DEFAULT_REGISTRY_URL
    assert cfg.ledger_url == "http://rpc.example:8899"
    assert cfg.max_message_length == 250
    assert cfg.diff.strategy == "threshold"
    assert [s.type for s in cfg.sinks] == ["console"]


def test_yaml_overrides(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        "poll_interval: 10\n"
        "diff:\n  strategy: set_add\n"
        "sinks:\n  - type: twitter\n  - type: log\n    name: archive\n"
    )

    cfg = load_config(path)

    assert cfg.poll_interval == 10
    assert cfg.diff.strategy == "set_add"
    assert [(s.type, s.name) for s in cfg.sinks] == [("twitter", None), ("log", "archive")]


def test_config_env_path(tmp_path, monkeypatch) -> None:
    path = tmp_path / "other.yaml"
    path.write_text("max_message_length: 280\n")
    monkeypatch.setenv("GOVWATCH_CONFIG", str(path))

    assert load_config().max_message_length == 280


def test_config_is_immutable_and_validated(tmp_path) -> None:
    cfg = load_config(tmp_path / "absent.yaml")
    with pytest.raises(pydantic.ValidationError):
        cfg.poll_interval = 1

    bad = tmp_path / "bad.yaml"
    bad.write_text("diff:\n  strategy: threshold\n  threshold: 0\n")
    with pytest.raises(pydantic.ValidationError):
        load_config(bad)
