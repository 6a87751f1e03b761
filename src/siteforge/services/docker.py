"""Docker subprocess wrappers for a containerised proxy."""

from __future__ import annotations

import subprocess

from siteforge.errors import DockerError


def _run(
    cmd: list[str],
    *,
    check: bool = True,
    capture: bool = True,
    timeout: float | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run ``cmd``. ``subprocess.TimeoutExpired`` propagates to the caller."""
    try:
        return subprocess.run(
            cmd,
            check=check,
            capture_output=capture,
            text=True,
            timeout=timeout,
        )
    except subprocess.CalledProcessError as exc:
        raise DockerError(
            f"Command failed: {' '.join(cmd)}\nstderr: {exc.stderr}"
        ) from exc
    except FileNotFoundError as exc:
        raise DockerError(f"Command not found: {cmd[0]}") from exc


def exec_prefix(container: str) -> list[str]:
    return ["docker", "exec", container]
