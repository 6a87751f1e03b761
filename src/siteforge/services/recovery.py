"""Quarantine store: inspect, restore with rollback, discard."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from siteforge_common import EmergencyStatus, ProxyCommandResult, QuarantinedConfig, QuarantineEvent, RestoreResult

from siteforge.errors import QuarantineNotFoundError, SpecValidationError
from siteforge.services.fsutil import DomainLocks, atomic_write
from siteforge.services.nginx import ProxyController

log = logging.getLogger(__name__)


def _check_domain(domain: str) -> str:
    if not domain or "/" in domain or domain.startswith(".") or "\\" in domain:
        raise SpecValidationError("domain", f"invalid domain {domain!r}")
    return domain


class QuarantineLog:
    """Append-only JSONL history of quarantine events."""

    def __init__(self, path: Path):
        self.path = path

    def record(self, domain: str, action: str, detail: str = "") -> QuarantineEvent:
        event = QuarantineEvent(domain=domain, action=action, detail=detail)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a") as f:
            f.write(event.to_jsonl() + "\n")
        return event

    def tail(self, limit: int = 100) -> list[QuarantineEvent]:
        """Most recent ``limit`` events, newest first."""
        if not self.path.exists():
            return []
        events = []
        for line in self.path.read_text().splitlines():
            if not line.strip():
                continue
            try:
                events.append(QuarantineEvent.model_validate_json(line))
            except ValidationError:
                log.warning("Skipping malformed quarantine log line: %.80s", line)
        return list(reversed(events))[:limit]


class RecoveryManager:
    """Sole consumer of the quarantine store."""

    def __init__(
        self,
        quarantine_dir: Path,
        active_dir: Path,
        proxy: ProxyController,
        history_log: QuarantineLog,
        emergency_file: Path,
        locks: DomainLocks | None = None,
    ):
        self.quarantine_dir = quarantine_dir
        self.active_dir = active_dir
        self.proxy = proxy
        self.history_log = history_log
        self.emergency_file = emergency_file
        self.locks = locks or DomainLocks()

    def quarantine_path(self, domain: str) -> Path:
        return self.quarantine_dir / f"{_check_domain(domain)}.conf"

    def active_path(self, domain: str) -> Path:
        return self.active_dir / f"{_check_domain(domain)}.conf"

    def list_quarantined(self) -> list[QuarantinedConfig]:
        if not self.quarantine_dir.is_dir():
            return []
        configs = []
        for path in self.quarantine_dir.glob("*.conf"):
            if path.name.startswith(".") or not path.is_file():
                continue
            stat = path.stat()
            configs.append(
                QuarantinedConfig(
                    domain=path.stem,
                    content=path.read_text(errors="replace"),
                    quarantined_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                    size_bytes=stat.st_size,
                )
            )
        configs.sort(key=lambda c: (c.quarantined_at, c.domain), reverse=True)
        return configs

    def get(self, domain: str) -> QuarantinedConfig:
        for config in self.list_quarantined():
            if config.domain == domain:
                return config
        raise QuarantineNotFoundError(f"No quarantined config for {domain}")

    def quarantine(self, domain: str, reason: str = "") -> Path:
        """Move the active artifact for ``domain`` into quarantine."""
        with self.locks.hold(domain):
            return self._quarantine_locked(domain, reason)

    def quarantine_if_invalid(self, domain: str) -> ProxyCommandResult:
        """Test the active artifact in isolation and quarantine it if it fails.

        Test and move happen under one domain lock, so an artifact rewritten
        by a concurrent deploy is never quarantined on a stale verdict. A
        timed-out test quarantines nothing.
        """
        with self.locks.hold(domain):
            source = self.active_path(domain)
            if not source.is_file():
                return ProxyCommandResult(ok=True)
            result = self.proxy.test_isolated(source)
            if not result.ok and not result.timed_out:
                self._quarantine_locked(domain, result.output)
            return result

    def _quarantine_locked(self, domain: str, reason: str) -> Path:
        target = self.quarantine_path(domain)
        self.quarantine_dir.mkdir(parents=True, exist_ok=True)
        os.replace(self.active_path(domain), target)
        self.history_log.record(domain, "quarantined", reason)
        log.warning("Quarantined %s: %s", domain, reason or "failed validation")
        return target

    def restore(self, domain: str) -> RestoreResult:
        """Validate a quarantined artifact in isolation, promote it, reload.

        A reload failure puts the candidate back in quarantine and the
        previous active artifact (if any) back in place.
        """
        candidate = self.quarantine_path(domain)
        active = self.active_path(domain)
        with self.locks.hold(domain):
            if not candidate.is_file():
                raise QuarantineNotFoundError(f"No quarantined config for {domain}")

            test = self.proxy.test_isolated(candidate)
            if not test.ok:
                self.history_log.record(domain, "restore_rejected", test.output)
                return RestoreResult(
                    ok=False, domain=domain, message="Config is still invalid", output=test.output
                )

            backup = active.read_bytes() if active.is_file() else None
            try:
                self.active_dir.mkdir(parents=True, exist_ok=True)
                os.replace(candidate, active)
            except OSError as exc:
                log.error("Failed to promote %s: %s", domain, exc)
                return RestoreResult(ok=False, domain=domain, message=f"Failed to restore config: {exc}")

            reload = self.proxy.reload()
            if reload.ok:
                self.history_log.record(domain, "restored")
                log.info("Restored %s from quarantine", domain)
                return RestoreResult(
                    ok=True, domain=domain, message=f"Config for {domain} restored", output=reload.output
                )

            os.replace(active, candidate)
            if backup is not None:
                atomic_write(active, backup, mode=0o644)
            self.history_log.record(domain, "rolled_back", reload.output)
            log.error("Reload failed after restoring %s, rolled back", domain)
            return RestoreResult(
                ok=False,
                domain=domain,
                message="NGINX reload failed, config re-quarantined",
                output=reload.output,
                rolled_back=True,
            )

    def discard(self, domain: str) -> None:
        """Delete a quarantined artifact permanently."""
        path = self.quarantine_path(domain)
        with self.locks.hold(domain):
            if not path.is_file():
                raise QuarantineNotFoundError(f"No quarantined config for {domain}")
            path.unlink()
        self.history_log.record(domain, "discarded")
        log.info("Discarded quarantined config for %s", domain)

    def emergency_status(self) -> EmergencyStatus:
        emergency = self.emergency_file.exists()
        count = 0
        if self.quarantine_dir.is_dir():
            count = sum(1 for p in self.quarantine_dir.glob("*.conf") if not p.name.startswith("."))
        return EmergencyStatus(
            emergency_mode=emergency,
            quarantined_count=count,
            status="emergency" if emergency else "normal",
        )

    def history(self, limit: int = 100) -> list[QuarantineEvent]:
        return self.history_log.tail(limit)
