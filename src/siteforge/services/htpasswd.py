"""HTTP Basic Auth — Apache ``$apr1$`` MD5-crypt htpasswd generation.

NGINX's auth_basic module reads these files directly, so the digest layout
must match Apache's ``htpasswd -m`` output byte for byte.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
import string
from pathlib import Path

from siteforge.services.fsutil import atomic_write

APR1_MAGIC = "$apr1$"
SALT_ALPHABET = string.ascii_lowercase + string.digits
SALT_LENGTH = 8
_ROUNDS = 1000

_B64_STANDARD = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_B64_CRYPT = "./0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
_TO_CRYPT64 = str.maketrans(_B64_STANDARD, _B64_CRYPT)


def _md5(data: bytes) -> bytes:
    return hashlib.md5(data).digest()


def generate_salt() -> str:
    """Eight distinct characters from ``a-z0-9``."""
    return "".join(secrets.SystemRandom().sample(SALT_ALPHABET, SALT_LENGTH))


def apr1_hash(plaintext: str, salt: str | None = None) -> str:
    """Return ``$apr1$<salt>$<digest>`` for ``plaintext``.

    An empty password still yields a valid digest; rejecting it is up to the
    caller.
    """
    salt = (salt if salt is not None else generate_salt())[:SALT_LENGTH]
    pw = plaintext.encode("utf-8")
    salt_b = salt.encode("utf-8")

    text = pw + APR1_MAGIC.encode() + salt_b
    final = _md5(pw + salt_b + pw)
    remaining = len(pw)
    while remaining > 0:
        text += final[: min(16, remaining)]
        remaining -= 16
    bits = len(pw)
    while bits > 0:
        text += b"\x00" if bits & 1 else pw[:1]
        bits >>= 1
    digest = _md5(text)

    for i in range(_ROUNDS):
        block = pw if i & 1 else digest
        if i % 3:
            block += salt_b
        if i % 7:
            block += pw
        block += digest if i & 1 else pw
        digest = _md5(block)

    shuffled = b""
    for i in range(5):
        j = i + 12
        if j == 16:
            j = 5
        shuffled = bytes((digest[i], digest[i + 6], digest[j])) + shuffled
    shuffled = b"\x00\x00" + digest[11:12] + shuffled

    encoded = base64.b64encode(shuffled).decode("ascii")[2:][::-1]
    return f"{APR1_MAGIC}{salt}${encoded.translate(_TO_CRYPT64)}"


def verify_apr1(plaintext: str, digest: str) -> bool:
    """Check ``plaintext`` against an existing ``$apr1$`` digest."""
    if not digest.startswith(APR1_MAGIC):
        return False
    salt = digest[len(APR1_MAGIC):].split("$", 1)[0]
    return secrets.compare_digest(apr1_hash(plaintext, salt), digest)


def create_htpasswd(username: str, password: str, *, salt: str | None = None) -> str:
    """Return a single htpasswd line: user:$apr1$salt$digest."""
    return f"{username}:{apr1_hash(password, salt)}"


def write_htpasswd_file(path: Path, username: str, password: str) -> None:
    """Write an htpasswd file with a single user entry."""
    write_htpasswd_line(path, create_htpasswd(username, password))


def write_htpasswd_line(path: Path, line: str) -> None:
    """Atomically replace ``path`` with one pre-hashed entry."""
    atomic_write(path, line + "\n", mode=0o644)


def read_htpasswd_users(path: Path) -> list[str]:
    """Return list of usernames from an htpasswd file."""
    if not path.exists():
        return []
    users = []
    for line in path.read_text().splitlines():
        line = line.strip()
        if line and ":" in line:
            users.append(line.split(":")[0])
    return users


def read_htpasswd_digest(path: Path, username: str) -> str | None:
    if not path.exists():
        return None
    for line in path.read_text().splitlines():
        user, sep, digest = line.strip().partition(":")
        if sep and user == username:
            return digest
    return None
