"""Shared test fixtures."""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import pytest

from siteforge_common import PROBE_UNKNOWN, CertificateOutcome, ProbeResult, ProxyCommandResult, SiteforgeConfig


@pytest.fixture
def tmp_config(tmp_path: Path) -> SiteforgeConfig:
    """Return a SiteforgeConfig pointing at temp directories."""
    nginx_root = tmp_path / "nginx"
    (nginx_root / "sites-enabled").mkdir(parents=True)
    (nginx_root / "conf.d").mkdir(parents=True)
    return SiteforgeConfig(
        node_id="test-node",
        nginx_root=nginx_root,
        acme_dir=tmp_path / "acme",
        nginx_container=None,
        dev_mode_headers=False,
        log_dir=tmp_path / "log",
        audit_jsonl_path=tmp_path / "log" / "audit.jsonl",
        audit_db_path=tmp_path / "lib" / "audit.db",
        quarantine_log_path=tmp_path / "log" / "quarantine.jsonl",
    )


class FakeProber:
    def __init__(self, result: ProbeResult = PROBE_UNKNOWN):
        self.result = result
        self.calls: list[str] = []

    def probe_pool(self, backends, domain):
        self.calls.append(domain)
        return self.result


class FakeResolver:
    def __init__(self, outcome: CertificateOutcome | None = None):
        self.outcome = outcome or CertificateOutcome(
            ok=True,
            cert_path=Path("/etc/nginx/certs/example.com/fullchain.pem"),
            key_path=Path("/etc/nginx/certs/example.com/key.pem"),
        )
        self.calls: list[tuple[str, str]] = []

    def resolve(self, domain, challenge_type):
        self.calls.append((domain, challenge_type))
        return self.outcome


class FakeProxy:
    """Scriptable stand-in for NginxController."""

    def __init__(self, *, test_ok=True, reload_ok=True, broken: set[str] | None = None):
        self.test_ok = test_ok
        self.reload_ok = reload_ok
        self.broken = broken or set()
        self.calls: list[tuple[str, str]] = []

    def test_config(self, path=None):
        self.calls.append(("test", str(path or "")))
        return ProxyCommandResult(ok=self.test_ok, output="" if self.test_ok else "emerg: bad config")

    def test_isolated(self, candidate):
        self.calls.append(("isolated", candidate.stem))
        ok = candidate.stem not in self.broken
        return ProxyCommandResult(ok=ok, output="" if ok else f"emerg: {candidate.stem} invalid")

    def reload(self):
        self.calls.append(("reload", ""))
        return ProxyCommandResult(ok=self.reload_ok, output="" if self.reload_ok else "reload failed")


@pytest.fixture
def fake_prober() -> FakeProber:
    return FakeProber()


@pytest.fixture
def fake_resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
def fake_proxy() -> FakeProxy:
    return FakeProxy()


_TRY_FLOCK = """
import fcntl, os, sys
fd = os.open(sys.argv[1], os.O_CREAT | os.O_RDWR)
try:
    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
except BlockingIOError:
    sys.exit(1)
"""


def locked_elsewhere(lock_path: Path) -> bool:
    """True if a separate process cannot take the flock on ``lock_path``."""
    result = subprocess.run([sys.executable, "-c", _TRY_FLOCK, str(lock_path)], timeout=30)
    return result.returncode == 1
