"""Assemble services from a :class:`SiteforgeConfig`."""

from __future__ import annotations

from pathlib import Path

from siteforge_common import SiteforgeConfig

from siteforge.services.certificates import CertificateResolver
from siteforge.services.compiler import SiteCompiler
from siteforge.services.deploy import ConfigDeployer
from siteforge.services.fsutil import DomainLocks
from siteforge.services.nginx import NginxController, ProxyController
from siteforge.services.prober import BackendProber
from siteforge.services.recovery import QuarantineLog, RecoveryManager
from siteforge.services.supervisor import ReloadSupervisor

# Threads in one process share the DomainLocks of a lock directory.
_LOCKS: dict[Path, DomainLocks] = {}


def build_locks(cfg: SiteforgeConfig) -> DomainLocks:
    if cfg.lock_dir not in _LOCKS:
        _LOCKS[cfg.lock_dir] = DomainLocks(cfg.lock_dir)
    return _LOCKS[cfg.lock_dir]


def build_resolver(cfg: SiteforgeConfig) -> CertificateResolver:
    return CertificateResolver(cfg.cert_dir, cfg.acme_dir)


def build_compiler(cfg: SiteforgeConfig) -> SiteCompiler:
    return SiteCompiler(
        BackendProber(timeout=cfg.probe_timeout),
        build_resolver(cfg),
        dev_mode_headers=cfg.dev_mode_headers,
        htpasswd_dir=cfg.htpasswd_dir,
    )


def build_deployer(cfg: SiteforgeConfig) -> ConfigDeployer:
    return ConfigDeployer(cfg.active_dir, cfg.htpasswd_dir, cfg.reload_flag, locks=build_locks(cfg))


def build_proxy(cfg: SiteforgeConfig) -> NginxController:
    return NginxController(cfg)


def build_recovery(cfg: SiteforgeConfig, proxy: ProxyController | None = None) -> RecoveryManager:
    return RecoveryManager(
        cfg.quarantine_dir,
        cfg.active_dir,
        proxy or build_proxy(cfg),
        QuarantineLog(cfg.quarantine_log_path),
        cfg.emergency_fallback,
        locks=build_locks(cfg),
    )


def build_supervisor(cfg: SiteforgeConfig) -> ReloadSupervisor:
    proxy = build_proxy(cfg)
    return ReloadSupervisor(build_deployer(cfg), proxy, build_recovery(cfg, proxy))
