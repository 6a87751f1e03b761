"""Central configuration for siteforge tools."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field

from siteforge_common.constants import (
    ACME_DIR,
    AUDIT_DB_PATH,
    AUDIT_JSONL_PATH,
    CERTS_DIR,
    CONF_D_DIR,
    EMERGENCY_FALLBACK_NAME,
    HTPASSWD_DIR,
    LOCK_DIR,
    LOG_DIR,
    NGINX_ROOT,
    PROBE_TIMEOUT,
    PROXY_COMMAND_TIMEOUT,
    QUARANTINE_LOG_PATH,
    RELOAD_FLAG_NAME,
    SITES_ENABLED_DIR,
    SITES_QUARANTINE_DIR,
    TEST_HARNESS_DIR,
)


def _env_path(name: str, default: Path) -> Path:
    env = os.environ.get(name)
    return Path(env) if env else default


def _env_bool(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


class SiteforgeConfig(BaseModel):
    """Runtime configuration resolved once at startup."""

    node_id: str = Field(default_factory=lambda: os.environ.get("SITEFORGE_NODE_ID", "node-01"))
    nginx_root: Path = Field(default_factory=lambda: _env_path("SITEFORGE_NGINX_ROOT", NGINX_ROOT))
    acme_dir: Path = Field(default_factory=lambda: _env_path("SITEFORGE_ACME_DIR", ACME_DIR))
    nginx_container: str | None = Field(
        default_factory=lambda: os.environ.get("SITEFORGE_NGINX_CONTAINER") or None
    )
    nginx_binary: str = "nginx"
    proxy_command_timeout: int = PROXY_COMMAND_TIMEOUT
    probe_timeout: float = PROBE_TIMEOUT
    dev_mode_headers: bool = Field(default_factory=lambda: _env_bool("SITEFORGE_DEV_MODE_HEADERS"))
    log_dir: Path = Field(default=LOG_DIR)
    audit_jsonl_path: Path = Field(default=AUDIT_JSONL_PATH)
    audit_db_path: Path = Field(default=AUDIT_DB_PATH)
    quarantine_log_path: Path = Field(default=QUARANTINE_LOG_PATH)

    @property
    def active_dir(self) -> Path:
        return self.nginx_root / SITES_ENABLED_DIR

    @property
    def quarantine_dir(self) -> Path:
        return self.nginx_root / SITES_QUARANTINE_DIR

    @property
    def cert_dir(self) -> Path:
        return self.nginx_root / CERTS_DIR

    @property
    def htpasswd_dir(self) -> Path:
        return self.nginx_root / HTPASSWD_DIR

    @property
    def conf_d_dir(self) -> Path:
        return self.nginx_root / CONF_D_DIR

    @property
    def mime_types_path(self) -> Path:
        return self.nginx_root / "mime.types"

    @property
    def harness_dir(self) -> Path:
        return self.nginx_root / TEST_HARNESS_DIR

    @property
    def lock_dir(self) -> Path:
        return self.nginx_root / LOCK_DIR

    @property
    def reload_flag(self) -> Path:
        return self.active_dir / RELOAD_FLAG_NAME

    @property
    def emergency_fallback(self) -> Path:
        return self.active_dir / EMERGENCY_FALLBACK_NAME
