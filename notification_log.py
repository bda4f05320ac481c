"""
Append-only JSONL logs: dispatched notifications and per-cycle stats.
Each file is trimmed to its last 24h when it exceeds 100KB.
"""
from __future__ import annotations

import json
import os
from datetime import datetime, timedelta, timezone

from models import NotificationPayload

LOG_PATH = os.environ.get("NOTIFICATIONS_LOG_PATH", "data/notifications.jsonl")
CYCLES_LOG_PATH = os.environ.get("CYCLES_LOG_PATH", "data/cycles.jsonl")
MAX_FILE_BYTES = 100 * 1024  # 100KB
KEEP_LAST_N_WHEN_EMPTY = 100


def _ensure_dir(path: str) -> None:
    d = os.path.dirname(path)
    if d:
        os.makedirs(d, exist_ok=True)


def _parse_line(line: str) -> dict | None:
    line = line.strip()
    if not line:
        return None
    try:
        return json.loads(line)
    except json.JSONDecodeError:
        return None


def _parse_ts(d: dict) -> datetime | None:
    # notifications carry created_at, cycle lines started_at
    raw = d.get("created_at") or d.get("started_at")
    if not raw:
        return None
    try:
        ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except (ValueError, TypeError, AttributeError):
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _trim(path: str) -> None:
    """Rewrite keeping only the last 24h (or the last KEEP_LAST_N_WHEN_EMPTY lines if none are that recent)."""
    cutoff = datetime.now(timezone.utc) - timedelta(hours=24)
    with open(path, "r", encoding="utf-8") as f:
        all_lines = [ln.rstrip("\n") for ln in f if ln.strip()]
    kept: list[str] = []
    for line in all_lines:
        d = _parse_line(line)
        if not d:
            continue
        ts = _parse_ts(d)
        if ts and ts >= cutoff:
            kept.append(line)
    if not kept:
        kept = all_lines[-KEEP_LAST_N_WHEN_EMPTY:]
    with open(path, "w", encoding="utf-8") as f:
        for line in kept:
            f.write(line + "\n")


def _append_records(records: list[dict], path: str) -> None:
    if not records:
        return
    _ensure_dir(path)
    with open(path, "a", encoding="utf-8") as f:
        for d in records:
            f.write(json.dumps(d, ensure_ascii=False) + "\n")
    if os.path.getsize(path) > MAX_FILE_BYTES:
        _trim(path)


def _read_last(limit: int, path: str) -> list[dict]:
    if not os.path.exists(path):
        return []
    with open(path, "r", encoding="utf-8") as f:
        lines = [line for line in f if line.strip()]
    out: list[dict] = []
    for line in reversed(lines[-limit:] if limit > 0 else []):
        d = _parse_line(line)
        if d:
            out.append(d)
    return out


def append_notifications(payloads: list[NotificationPayload], path: str = LOG_PATH) -> None:
    """Append payloads to the log file. If file size > 100KB, rewrite keeping only last 24h."""
    _append_records([p.model_dump(mode="json") for p in payloads], path)


def read_last_notifications(limit: int = 200, path: str = LOG_PATH) -> list[dict]:
    """Return the last `limit` logged notifications as dicts (newest first)."""
    return _read_last(limit, path)


def append_cycle(summary: dict, path: str = CYCLES_LOG_PATH) -> None:
    """Append one cycle summary line."""
    _append_records([summary], path)


def read_last_cycles(limit: int = 50, path: str = CYCLES_LOG_PATH) -> list[dict]:
    """Return the last `limit` cycle summaries (newest first)."""
    return _read_last(limit, path)
