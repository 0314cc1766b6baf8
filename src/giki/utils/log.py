from __future__ import annotations

import logging
import re
import sys
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

from giki.config import ConfigError, get_settings

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)

REDACTED = "***REDACTED***"

_JWT_RE = re.compile(r"\beyJ[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+\b")
# 65-byte secp256k1 signatures as produced by personal_sign
_SIG_RE = re.compile(r"\b0x[0-9a-fA-F]{130}\b")
_BEARER_RE = re.compile(r"(?i)\bBearer\s+([A-Za-z0-9_\-\.=]+)")
_KV_RE = re.compile(
    r"(?i)\b(jwt_secret|access_token|refresh_token|signature|token)\b\s*=\s*([^\s,;]+)"
)
# structured fields whose values are credentials regardless of shape
_SECRET_KEYS = frozenset({"access_token", "refresh_token", "signature", "jwt_secret"})


def set_request_id(rid: str | None) -> None:
    request_id_var.set(rid)


def set_user_id(uid: str | None) -> None:
    user_id_var.set(uid)


def _jwt_secret() -> str | None:
    try:
        raw = get_settings().secret.jwt_secret.get_secret_value()
    except ConfigError:
        return None
    # short values would blank out ordinary words
    return raw if raw and len(raw) >= 8 else None


def _redact_str(s: str) -> str:
    secret = _jwt_secret()
    if secret and secret in s:
        s = s.replace(secret, REDACTED)
    s = _JWT_RE.sub(REDACTED, s)
    s = _SIG_RE.sub(REDACTED, s)
    s = _BEARER_RE.sub(f"Bearer {REDACTED}", s)
    return _KV_RE.sub(lambda m: f"{m.group(1)}={REDACTED}", s)


def _redact_value(key: str, v: Any) -> Any:
    if key.lower() in _SECRET_KEYS and v is not None:
        return REDACTED
    if isinstance(v, str):
        return _redact_str(v)
    if isinstance(v, dict):
        return {k: _redact_value(str(k), x) for k, x in v.items()}
    if isinstance(v, list):
        return [_redact_value(key, x) for x in v]
    if isinstance(v, tuple):
        # exc_info tuples must stay tuples for format_exc_info
        return tuple(_redact_value(key, x) for x in v)
    return v


def redact_event(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    for k, v in list(event_dict.items()):
        event_dict[k] = _redact_value(k, v)
    return event_dict


def add_contextvars(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    rid = request_id_var.get()
    uid = user_id_var.get()
    if rid:
        event_dict.setdefault("request_id", rid)
    if uid:
        event_dict.setdefault("user_id", uid)
    return event_dict


def rename_event_to_msg(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    if "msg" not in event_dict and "event" in event_dict:
        event_dict["msg"] = event_dict.pop("event")
    return event_dict


def _shared_processors() -> list[Any]:
    # Applied to structlog events and to records from plain `logging` callers alike.
    return [
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
        structlog.stdlib.add_log_level,
        add_contextvars,
        redact_event,
        structlog.processors.format_exc_info,
        rename_event_to_msg,
    ]


def _configure_structlog() -> structlog.stdlib.BoundLogger:
    s = get_settings()
    log_path = Path(s.log_dir) / "app.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(str(s.log_level).upper())
    if getattr(root, "_giki_structlog_configured", False):
        return structlog.get_logger("giki")

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=_shared_processors(),
    )
    file_handler = RotatingFileHandler(
        filename=str(log_path),
        maxBytes=int(s.log_max_bytes),
        backupCount=int(s.log_backup_count),
        encoding="utf-8",
    )
    stream_handler = logging.StreamHandler(sys.stdout)
    root.handlers.clear()
    for h in (file_handler, stream_handler):
        h.setFormatter(formatter)
        root.addHandler(h)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    root._giki_structlog_configured = True  # type: ignore[attr-defined]
    return structlog.get_logger("giki")


logger = _configure_structlog()


def set_log_level(level: str) -> None:
    """Override the level for the root logger and its handlers (CLI --log-level)."""
    lvl = getattr(logging, str(level).upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(lvl)
    for h in root.handlers:
        h.setLevel(lvl)
