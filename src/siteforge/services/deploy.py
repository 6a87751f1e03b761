"""Active config store writes and the shared reload flag."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable

from siteforge_common import EMERGENCY_FALLBACK_NAME, ConfigText, DeployResult

from siteforge.services.fsutil import DomainLocks, atomic_write, remove_stale_temps
from siteforge.services.htpasswd import write_htpasswd_line

log = logging.getLogger(__name__)

_UPSTREAM_RE = re.compile(r"^\s*upstream\s+(\S+)\s*\{", re.MULTILINE)


def _snapshot(path: Path) -> bytes | None:
    return path.read_bytes() if path.is_file() else None


def _restore(path: Path, data: bytes | None) -> None:
    """Put ``path`` back to a snapshot taken before a failed deploy."""
    try:
        if data is None:
            path.unlink(missing_ok=True)
        elif _snapshot(path) != data:
            atomic_write(path, data, mode=0o644)
    except OSError as exc:
        log.error("Failed to roll back %s: %s", path, exc)


class ConfigDeployer:
    """Write compiled artifacts and signal that a reload is needed.

    Never reloads the proxy itself; the supervisor reacts to the flag.
    """

    def __init__(
        self,
        active_dir: Path,
        htpasswd_dir: Path,
        reload_flag: Path,
        locks: DomainLocks | None = None,
    ):
        self.active_dir = active_dir
        self.htpasswd_dir = htpasswd_dir
        self.reload_flag = reload_flag
        self.locks = locks or DomainLocks()

    def artifact_path(self, domain: str) -> Path:
        return self.active_dir / f"{domain}.conf"

    def credential_path(self, domain: str) -> Path:
        return self.htpasswd_dir / domain

    def write(self, config: ConfigText) -> DeployResult:
        path = self.artifact_path(config.domain)
        credential = self.credential_path(config.domain)
        with self.locks.hold(config.domain):
            previous: dict[Path, bytes | None] = {}
            try:
                previous = {p: _snapshot(p) for p in (path, credential)}
                remove_stale_temps(self.active_dir, path.name)
                # Credentials land before the artifact that references them.
                if config.htpasswd_line:
                    write_htpasswd_line(credential, config.htpasswd_line)
                else:
                    credential.unlink(missing_ok=True)
                atomic_write(path, config.content, mode=0o644)
                self.request_reload()
            except OSError as exc:
                log.error("Failed to deploy %s: %s", config.domain, exc)
                for target, data in previous.items():
                    _restore(target, data)
                return DeployResult(ok=False, domain=config.domain, path=path, error=str(exc))
        log.info("Deployed %s -> %s", config.domain, path)
        return DeployResult(ok=True, domain=config.domain, path=path, reload_requested=True)

    def remove(self, domain: str) -> DeployResult:
        path = self.artifact_path(domain)
        with self.locks.hold(domain):
            try:
                existed = path.exists() or path.is_symlink()
                path.unlink(missing_ok=True)
                self.credential_path(domain).unlink(missing_ok=True)
                remove_stale_temps(self.active_dir, path.name)
                if existed:
                    self.request_reload()
            except OSError as exc:
                log.error("Failed to remove %s: %s", domain, exc)
                return DeployResult(ok=False, domain=domain, path=path, error=str(exc))
        if existed:
            log.info("Removed %s", path)
        return DeployResult(ok=True, domain=domain, path=path, reload_requested=existed)

    def list_domains(self) -> list[str]:
        if not self.active_dir.is_dir():
            return []
        return sorted(
            p.stem
            for p in self.active_dir.glob("*.conf")
            if not p.name.startswith(".") and p.name != EMERGENCY_FALLBACK_NAME
        )

    def read(self, domain: str) -> str | None:
        path = self.artifact_path(domain)
        return path.read_text() if path.is_file() else None

    def prune_orphans(self, known_domains: Iterable[str]) -> list[str]:
        """Remove artifacts for domains that no longer exist. Returns them."""
        known = set(known_domains)
        removed = []
        for domain in self.list_domains():
            if domain in known:
                continue
            result = self.remove(domain)
            if result.ok:
                removed.append(domain)
        if removed:
            log.info("Pruned orphaned configs: %s", ", ".join(removed))
        return removed

    def active_upstreams(self) -> dict[str, str]:
        """Map upstream name -> owning domain across the active store."""
        owners: dict[str, str] = {}
        for domain in self.list_domains():
            content = self.read(domain) or ""
            for name in _UPSTREAM_RE.findall(content):
                owners.setdefault(name, domain)
        return owners

    def request_reload(self) -> None:
        self.reload_flag.parent.mkdir(parents=True, exist_ok=True)
        self.reload_flag.touch()

    def reload_requested(self) -> bool:
        return self.reload_flag.exists()

    def clear_reload_flag(self) -> None:
        self.reload_flag.unlink(missing_ok=True)
