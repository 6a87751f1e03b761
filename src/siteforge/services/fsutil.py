"""Atomic file replacement and per-domain serialization."""

from __future__ import annotations

import fcntl
import os
import re
import tempfile
import threading
from collections import defaultdict
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

_LOCK_NAME_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def atomic_write(path: Path, data: str | bytes, *, mode: int | None = None) -> None:
    """Write ``data`` to ``path`` so readers never observe a partial file.

    The temp file lives in the destination directory so ``os.replace`` stays a
    same-filesystem rename. A symlink at ``path`` is replaced, not followed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = data.encode("utf-8") if isinstance(data, str) else data
    tmp_path = ""
    try:
        with tempfile.NamedTemporaryFile(
            mode="wb", delete=False, dir=path.parent, prefix=f".tmp-{path.name}-"
        ) as f:
            tmp_path = f.name
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
        tmp_path = ""
    finally:
        if tmp_path and os.path.exists(tmp_path):
            os.unlink(tmp_path)


def remove_stale_temps(directory: Path, name: str) -> None:
    """Drop leftovers of interrupted :func:`atomic_write` calls for ``name``."""
    if not directory.is_dir():
        return
    for leftover in directory.glob(f".tmp-{name}-*"):
        leftover.unlink(missing_ok=True)


class DomainLocks:
    """One lock per domain: same-domain work is serialized, others run freely.

    With ``lock_dir`` set the lock also holds across processes through an
    ``flock`` on ``<lock_dir>/<domain>.lock``, so a CLI deploy and the
    supervisor daemon never interleave on the same domain.
    """

    def __init__(self, lock_dir: Path | None = None) -> None:
        self.lock_dir = lock_dir
        self._guard = threading.Lock()
        self._locks: defaultdict[str, threading.Lock] = defaultdict(threading.Lock)

    def lock_path(self, domain: str) -> Path | None:
        if self.lock_dir is None:
            return None
        return self.lock_dir / f"{_LOCK_NAME_UNSAFE.sub('_', domain)}.lock"

    @contextmanager
    def hold(self, domain: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks[domain]
        with lock:
            path = self.lock_path(domain)
            if path is None:
                yield
                return
            path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(path, os.O_CREAT | os.O_RDWR, 0o644)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX)
                yield
            finally:
                # Closing the descriptor drops the flock.
                os.close(fd)
