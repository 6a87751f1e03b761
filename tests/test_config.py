"""Tests for SiteforgeConfig."""

from __future__ import annotations

from pathlib import Path

from siteforge_common import SiteforgeConfig


class TestSiteforgeConfig:
    def test_derived_paths(self, tmp_config: SiteforgeConfig):
        root = tmp_config.nginx_root
        assert tmp_config.active_dir == root / "sites-enabled"
        assert tmp_config.quarantine_dir == root / "sites-quarantine"
        assert tmp_config.cert_dir == root / "certs"
        assert tmp_config.htpasswd_dir == root / "htpasswd"
        assert tmp_config.conf_d_dir == root / "conf.d"
        assert tmp_config.mime_types_path == root / "mime.types"

    def test_flag_and_fallback_live_in_active_store(self, tmp_config: SiteforgeConfig):
        assert tmp_config.reload_flag == tmp_config.active_dir / ".reload_needed"
        assert tmp_config.emergency_fallback == tmp_config.active_dir / "emergency-fallback.conf"

    def test_defaults(self, monkeypatch):
        for name in ("SITEFORGE_NGINX_ROOT", "SITEFORGE_NGINX_CONTAINER", "SITEFORGE_DEV_MODE_HEADERS"):
            monkeypatch.delenv(name, raising=False)
        cfg = SiteforgeConfig()
        assert cfg.nginx_root == Path("/etc/nginx")
        assert cfg.nginx_container is None
        assert cfg.probe_timeout == 2.0
        assert cfg.proxy_command_timeout == 60
        assert cfg.dev_mode_headers is False

    def test_from_env(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("SITEFORGE_NGINX_ROOT", str(tmp_path))
        monkeypatch.setenv("SITEFORGE_NODE_ID", "edge-7")
        monkeypatch.setenv("SITEFORGE_NGINX_CONTAINER", "waf-nginx")
        monkeypatch.setenv("SITEFORGE_DEV_MODE_HEADERS", "true")
        cfg = SiteforgeConfig()
        assert cfg.nginx_root == tmp_path
        assert cfg.node_id == "edge-7"
        assert cfg.nginx_container == "waf-nginx"
        assert cfg.dev_mode_headers is True
