"""Dual-write audit logger: JSONL file + SQLite database.

Every mutating siteforge command (deploy, remove, prune, restore, discard,
supervise) is wrapped in :func:`audit` so operators can trace who changed
which vhost and whether the change went through.
"""

from __future__ import annotations

import getpass
import os
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

from siteforge_common import AuditEvent

from siteforge.config import get_config

_SCHEMA = """
CREATE TABLE IF NOT EXISTS audit_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    node_id TEXT NOT NULL,
    actor TEXT NOT NULL,
    action TEXT NOT NULL,
    target TEXT NOT NULL DEFAULT '',
    params TEXT NOT NULL DEFAULT '{}',
    result TEXT NOT NULL DEFAULT 'success',
    error TEXT,
    duration_ms INTEGER
);
CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_logs(timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_action ON audit_logs(action);
CREATE INDEX IF NOT EXISTS idx_audit_target ON audit_logs(target);
"""

_SECRET_MARKERS = ("password", "token", "secret")
_REDACTED = "***"


def _ensure_dirs(cfg: Any) -> None:
    cfg.log_dir.mkdir(parents=True, exist_ok=True)
    cfg.audit_jsonl_path.parent.mkdir(parents=True, exist_ok=True)
    cfg.audit_db_path.parent.mkdir(parents=True, exist_ok=True)


def _get_actor() -> str:
    return os.environ.get("SITEFORGE_ACTOR") or getpass.getuser()


def redact(params: dict[str, Any]) -> dict[str, Any]:
    """Mask credential-looking values so they never reach the audit trail."""
    clean: dict[str, Any] = {}
    for key, value in params.items():
        if any(marker in key.lower() for marker in _SECRET_MARKERS):
            clean[key] = _REDACTED
        elif isinstance(value, dict):
            clean[key] = redact(value)
        else:
            clean[key] = value
    return clean


def _init_db(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path))
    conn.executescript(_SCHEMA)
    return conn


def _write_jsonl(path: Path, event: AuditEvent) -> None:
    with open(path, "a") as f:
        f.write(event.to_jsonl() + "\n")


def _write_sqlite(db_path: Path, event: AuditEvent) -> None:
    conn = _init_db(db_path)
    try:
        conn.execute(
            """INSERT INTO audit_logs
               (timestamp, node_id, actor, action, target, params, result, error, duration_ms)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                event.timestamp.isoformat(),
                event.node_id,
                event.actor,
                event.action,
                event.target,
                event.model_dump_json(include={"params"}),
                event.result,
                event.error,
                event.duration_ms,
            ),
        )
        conn.commit()
    finally:
        conn.close()


def log_event(event: AuditEvent) -> None:
    """Write an audit event to both JSONL and SQLite."""
    cfg = get_config()
    _ensure_dirs(cfg)
    _write_jsonl(cfg.audit_jsonl_path, event)
    _write_sqlite(cfg.audit_db_path, event)


def recent_events(db_path: Path, *, target: str | None = None, limit: int = 20) -> list[dict[str, Any]]:
    """Return the newest audit rows, optionally filtered to one domain."""
    if not db_path.exists():
        return []
    conn = _init_db(db_path)
    conn.row_factory = sqlite3.Row
    try:
        if target:
            rows = conn.execute(
                "SELECT * FROM audit_logs WHERE target = ? ORDER BY id DESC LIMIT ?",
                (target, limit),
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM audit_logs ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
    finally:
        conn.close()
    return [dict(row) for row in rows]


@contextmanager
def audit(action: str, target: str = "", **params: Any) -> Generator[AuditEvent, None, None]:
    """Context manager that records timing and success/failure."""
    cfg = get_config()
    event = AuditEvent(
        node_id=cfg.node_id,
        actor=_get_actor(),
        action=action,
        target=target,
        params=redact(params),
    )
    start = time.monotonic()
    try:
        yield event
        # Commands may mark structured (non-raising) failures themselves.
        if event.result != "failure":
            event.result = "success"
    except Exception as exc:
        event.result = "failure"
        event.error = str(exc) or event.error
        raise
    finally:
        event.duration_ms = int((time.monotonic() - start) * 1000)
        log_event(event)
