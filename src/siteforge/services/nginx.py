"""NGINX config validation and reload."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Protocol

from siteforge_common import ProxyCommandResult, SiteforgeConfig

from siteforge.errors import DockerError
from siteforge.services import docker
from siteforge.services.fsutil import atomic_write
from siteforge.services.vhost_renderer import render_test_harness

log = logging.getLogger(__name__)


class ProxyController(Protocol):
    def test_config(self, path: Path | None = None) -> ProxyCommandResult: ...

    def test_isolated(self, candidate: Path) -> ProxyCommandResult: ...

    def reload(self) -> ProxyCommandResult: ...


class NginxController:
    """Run ``nginx -t`` and ``nginx -s reload``, locally or via ``docker exec``.

    Every command is bounded by ``proxy_command_timeout``; a timeout is
    reported as a failed result and never retried here.
    """

    def __init__(self, config: SiteforgeConfig):
        self.config = config

    def _command(self, *args: str) -> list[str]:
        cmd = [self.config.nginx_binary, *args]
        if self.config.nginx_container:
            return docker.exec_prefix(self.config.nginx_container) + cmd
        return cmd

    def _execute(self, *args: str) -> ProxyCommandResult:
        cmd = self._command(*args)
        try:
            result = docker._run(cmd, check=False, timeout=self.config.proxy_command_timeout)
        except subprocess.TimeoutExpired:
            log.error("Timed out after %ss: %s", self.config.proxy_command_timeout, " ".join(cmd))
            return ProxyCommandResult(
                ok=False,
                output=f"timed out after {self.config.proxy_command_timeout}s",
                timed_out=True,
            )
        except DockerError as exc:
            log.error("%s", exc)
            return ProxyCommandResult(ok=False, output=str(exc))
        # nginx -t reports on stderr even on success.
        output = "\n".join(part for part in (result.stdout.strip(), result.stderr.strip()) if part)
        return ProxyCommandResult(ok=result.returncode == 0, output=output)

    def test_config(self, path: Path | None = None) -> ProxyCommandResult:
        if path is None:
            return self._execute("-t")
        return self._execute("-t", "-c", str(path))

    def test_isolated(self, candidate: Path) -> ProxyCommandResult:
        """Syntax-check one artifact against the shared base config only."""
        harness_dir = self.config.harness_dir
        harness = harness_dir / f"{candidate.stem}.harness.conf"
        pid_path = harness_dir / f"{candidate.stem}.pid"
        conf_d = self.config.conf_d_dir if self.config.conf_d_dir.is_dir() else None
        try:
            atomic_write(
                harness,
                render_test_harness(
                    candidate,
                    mime_types=self.config.mime_types_path,
                    conf_d=conf_d,
                    pid_path=pid_path,
                ),
            )
        except OSError as exc:
            return ProxyCommandResult(ok=False, output=f"cannot write test harness: {exc}")
        try:
            return self.test_config(harness)
        finally:
            harness.unlink(missing_ok=True)
            pid_path.unlink(missing_ok=True)

    def reload(self) -> ProxyCommandResult:
        result = self._execute("-s", "reload")
        if result.ok:
            log.info("NGINX reloaded")
        else:
            log.error("NGINX reload failed: %s", result.output)
        return result
