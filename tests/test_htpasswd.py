"""Tests for apr1 htpasswd service."""

from __future__ import annotations

from pathlib import Path

import pytest

from siteforge.services.htpasswd import (
    SALT_ALPHABET,
    apr1_hash,
    create_htpasswd,
    generate_salt,
    read_htpasswd_digest,
    read_htpasswd_users,
    verify_apr1,
    write_htpasswd_file,
)

# Reference digests produced by `openssl passwd -apr1 -salt <salt> <password>`.
GOLDEN = [
    ("myPassword", "r31.....", "$apr1$r31.....$HqJZimcKQFAMYayBlzkrA/"),
    ("secret", "abcd1234", "$apr1$abcd1234$KISB.4aBzP4pecxr2tTpg1"),
    ("", "0123abcd", "$apr1$0123abcd$5CfKTUzx/RwoJidpYir71/"),
    ("a-much-longer-password-over-16-bytes", "xyzw9876", "$apr1$xyzw9876$OFe/QIKPewIOT0htIN0Ae."),
]


class TestApr1:
    @pytest.mark.parametrize("password,salt,expected", GOLDEN)
    def test_matches_reference(self, password, salt, expected):
        assert apr1_hash(password, salt) == expected

    def test_deterministic_for_fixed_salt(self):
        assert apr1_hash("pw", "saltsalt") == apr1_hash("pw", "saltsalt")

    def test_salt_truncated_to_eight(self):
        assert apr1_hash("secret", "abcd1234extra") == apr1_hash("secret", "abcd1234")

    def test_random_salt_shape(self):
        digest = apr1_hash("secret")
        _, magic, salt, encoded = digest.split("$")
        assert magic == "apr1"
        assert len(salt) == 8
        assert len(encoded) == 22

    def test_generate_salt(self):
        salt = generate_salt()
        assert len(salt) == 8
        assert set(salt) <= set(SALT_ALPHABET)

    def test_verify(self):
        digest = apr1_hash("hunter2", "qwertyui")
        assert verify_apr1("hunter2", digest)
        assert not verify_apr1("hunter3", digest)
        assert not verify_apr1("hunter2", "$2b$12$notapr1")


class TestHtpasswdFiles:
    def test_create_htpasswd_line(self):
        line = create_htpasswd("admin", "secret", salt="abcd1234")
        assert line == "admin:$apr1$abcd1234$KISB.4aBzP4pecxr2tTpg1"

    def test_write_and_read(self, tmp_path: Path):
        path = tmp_path / "example.com"
        write_htpasswd_file(path, "testuser", "testpass")
        assert read_htpasswd_users(path) == ["testuser"]
        digest = read_htpasswd_digest(path, "testuser")
        assert digest is not None and verify_apr1("testpass", digest)
        assert read_htpasswd_digest(path, "other") is None

    def test_read_nonexistent(self, tmp_path: Path):
        assert read_htpasswd_users(tmp_path / "nonexistent") == []
        assert read_htpasswd_digest(tmp_path / "nonexistent", "user") is None

    def test_creates_parent_dirs(self, tmp_path: Path):
        path = tmp_path / "deep" / "nested" / "auth"
        write_htpasswd_file(path, "user", "pass")
        assert path.exists()
        assert not list(path.parent.glob(".tmp-*"))
