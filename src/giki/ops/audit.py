from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any

from giki.config import get_settings
from giki.utils.log import _redact_str  # type: ignore[attr-defined]

_lock = Lock()

# Never written verbatim, only their presence/length.
_AUDIT_SECRET_KEYS = {"signature", "message", "token", "access_token", "refresh_token"}


def _audit_dir() -> Path:
    return Path(get_settings().log_dir)


def _audit_path(ts: datetime) -> Path:
    return _audit_dir() / f"audit-{ts:%Y%m%d}.log"


def audit_path_latest() -> Path:
    return _audit_dir() / "audit.jsonl"


def _scrub_meta_safe(meta: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for kk, vv in meta.items():
        kks = str(kk)
        kl = kks.strip().lower()
        if kl in _AUDIT_SECRET_KEYS:
            if isinstance(vv, str):
                out[kks] = {"redacted": True, "len": len(vv)}
            else:
                out[kks] = {"redacted": True}
            continue
        if isinstance(vv, str):
            if len(vv) > 200:
                out[kks] = {"redacted": True, "len": len(vv)}
            else:
                out[kks] = _redact_str(vv)
            continue
        if isinstance(vv, dict):
            out[kks] = {"keys": len(vv)}
            continue
        if isinstance(vv, list):
            out[kks] = {"count": len(vv)}
            continue
        out[kks] = vv
    return out


def _write_record(rec: dict[str, Any]) -> None:
    ts = datetime.now(tz=timezone.utc)
    daily = _audit_path(ts)
    latest = audit_path_latest()
    daily.parent.mkdir(parents=True, exist_ok=True)
    line = json.dumps(rec, ensure_ascii=False, separators=(",", ":"))
    with _lock:
        with daily.open("a", encoding="utf-8") as f:
            f.write(line + "\n")
        with latest.open("a", encoding="utf-8") as f:
            f.write(line + "\n")


def emit(
    event_type: str,
    *,
    request_id: str | None = None,
    user_id: str | None = None,
    meta: dict[str, Any] | None = None,
    outcome: str | None = None,
) -> None:
    """
    Append-only audit log (newline-delimited JSON), daily rotated by date.
    """
    ts = datetime.now(tz=timezone.utc)
    rec: dict[str, Any] = {
        "ts": ts.isoformat(),
        "event": str(event_type),
        "outcome": str(outcome or "unknown"),
    }
    if request_id:
        rec["request_id"] = request_id
    if user_id:
        rec["user_id"] = user_id
    if meta:
        rec["meta"] = _scrub_meta_safe(meta)
    _write_record(rec)


def read_recent(limit: int = 100) -> list[dict[str, Any]]:
    p = audit_path_latest()
    if not p.exists():
        return []
    lines = p.read_text(encoding="utf-8").splitlines()[-max(1, int(limit)) :]
    out: list[dict[str, Any]] = []
    for ln in lines:
        try:
            out.append(json.loads(ln))
        except ValueError:
            continue
    return out
