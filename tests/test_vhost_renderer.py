"""Tests for Jinja2 vhost renderer."""

from __future__ import annotations

from pathlib import Path

from siteforge_common import PROBE_UNKNOWN, Backend, CertificateOutcome, LoadBalanceMethod, ProbeResult, SiteSpec
from siteforge.services.vhost_renderer import (
    escape_nginx_string,
    render_site_config,
    render_test_harness,
    server_line,
    upstream_name,
)

CERT = CertificateOutcome(
    ok=True,
    cert_path=Path("/etc/nginx/certs/example.com/fullchain.pem"),
    key_path=Path("/etc/nginx/certs/example.com/key.pem"),
)


def _spec(**overrides) -> SiteSpec:
    data = {"domain": "example.com", "backend_url": "app:3000"}
    data.update(overrides)
    return SiteSpec(**data)


class TestHelpers:
    def test_upstream_name(self):
        assert upstream_name("Shop.Example.com") == "shop_example_com_backend"
        assert upstream_name("a-b.example.com") == "a_b_example_com_backend"

    def test_server_line_markers(self):
        backend = Backend(address="b:2", weight=5, max_fails=1, fail_timeout=10, backup=True)
        assert server_line(backend, LoadBalanceMethod.ROUND_ROBIN) == "b:2 weight=5 max_fails=1 fail_timeout=10s backup"

    def test_weighted_always_emits_weight(self):
        line = server_line(Backend(address="a:1"), LoadBalanceMethod.WEIGHTED)
        assert "weight=1" in line
        assert "weight=" not in server_line(Backend(address="a:1"), LoadBalanceMethod.ROUND_ROBIN)

    def test_escape(self):
        assert escape_nginx_string('say "hi"\nbye\\') == 'say \\"hi\\"\\nbye\\\\'


class TestHttpOnly:
    def test_basic(self):
        config = render_site_config(_spec())
        assert "upstream example_com_backend {" in config
        assert "    server app:3000 max_fails=3 fail_timeout=30s;" in config
        assert "    keepalive 32;" in config
        assert "    listen 80;" in config
        assert "    server_name example.com;" in config
        assert "location ^~ /.well-known/acme-challenge/ {" in config
        assert "proxy_pass http://example_com_backend;" in config
        assert "listen 443" not in config
        assert "return 301" not in config

    def test_feature_order(self):
        config = render_site_config(
            _spec(
                custom_headers=["X-Custom yes"],
                access={"ip_allowlist": ["203.0.113.0/24"]},
                basic_auth={"enabled": True, "username": "u", "plaintext_password": "p"},
                caching={"enabled": True, "cache_static_assets": True},
                image_optimization={"enabled": True},
                security={"geoip_blocking": True, "blocked_countries": ["RU"]},
            ),
            dev_mode_headers=True,
        )
        markers = [
            "if ($ban)",
            "if ($bot_detected)",
            "# GeoIP blocking disabled",
            "allow 203.0.113.0/24;",
            "auth_basic_user_file",
            "limit_req zone=general",
            "modsecurity on;",
            "access_log /var/log/nginx/example.com-access.log waf;",
            "X-Protected-By",
            "X-Request-ID",
            "X-Dev-Backend-Addr",
            "add_header X-Custom yes always;",
            "# Static asset cache",
            "# Image optimization",
            "    location / {",
        ]
        positions = [config.index(m) for m in markers]
        assert positions == sorted(positions)

    def test_cache_zone_precedes_upstream(self):
        config = render_site_config(_spec(caching={"enabled": True, "max_size": "2g"}))
        zone = (
            "proxy_cache_path /var/cache/nginx/example_com_backend levels=1:2 "
            "keys_zone=example_com_backend_cache:10m max_size=2g inactive=60m use_temp_path=off;"
        )
        assert zone in config
        assert config.index(zone) < config.index("upstream example_com_backend")
        assert "proxy_cache example_com_backend_cache;" in config

    def test_no_cache_zone_by_default(self):
        assert "proxy_cache" not in render_site_config(_spec())

    def test_load_balance_directive(self):
        assert "    least_conn;" in render_site_config(_spec(load_balance_method="least_conn"))
        assert "round_robin" not in render_site_config(_spec())

    def test_pool_order_and_markers(self):
        config = render_site_config(
            _spec(backend_pool=[{"address": "a:1"}, {"address": "b:2", "backup": True}, {"address": "c:3", "down": True}])
        )
        assert config.index("server a:1") < config.index("server b:2") < config.index("server c:3")
        assert "server b:2 max_fails=3 fail_timeout=30s backup;" in config
        assert "server c:3 max_fails=3 fail_timeout=30s down;" in config

    def test_wildcard_server_name(self):
        config = render_site_config(_spec(wildcard_subdomains=True))
        assert "server_name *.example.com example.com;" in config


class TestTls:
    def test_https_block_and_redirect(self):
        config = render_site_config(_spec(tls={"enabled": True}), PROBE_UNKNOWN, CERT)
        assert "    listen 443 ssl;" in config
        assert "    listen 443 quic;" in config
        assert "    http2 on;" in config
        assert "ssl_certificate /etc/nginx/certs/example.com/fullchain.pem;" in config
        assert "ssl_certificate_key /etc/nginx/certs/example.com/key.pem;" in config
        assert "Strict-Transport-Security" in config
        assert "return 301 https://$host$request_uri;" in config
        # Redirect-only port 80 block does not proxy.
        assert config.count("proxy_pass http://example_com_backend;") == 1

    def test_redirect_disabled_proxies_both(self):
        spec = _spec(tls={"enabled": True, "disable_http_redirect": True})
        config = render_site_config(spec, PROBE_UNKNOWN, CERT)
        assert "return 301" not in config
        assert config.count("    location / {") == 2

    def test_failed_certificate_means_no_https_block(self):
        failed = CertificateOutcome(ok=False, error="read-only filesystem")
        config = render_site_config(_spec(tls={"enabled": True}), PROBE_UNKNOWN, failed)
        assert "listen 443" not in config
        assert "ssl_certificate" not in config
        assert "return 301" not in config

    def test_tls_disabled_ignores_certificate(self):
        assert "listen 443" not in render_site_config(_spec(), PROBE_UNKNOWN, CERT)

    def test_https_backend(self):
        config = render_site_config(_spec(), ProbeResult(speaks_https=True))
        assert "proxy_pass https://example_com_backend;" in config
        assert "proxy_ssl_server_name on;" in config
        assert "proxy_ssl_verify off;" in config


class TestChallengeGate:
    def test_gate_only_on_https(self):
        spec = _spec(
            tls={"enabled": True, "disable_http_redirect": True},
            challenge={"enabled": True, "difficulty": 20, "duration_days": 3},
        )
        config = render_site_config(spec, PROBE_UNKNOWN, CERT)
        assert config.count("if ($challenge_passed = 0)") == 1
        assert "return 302 /challenge.html?difficulty=20&duration=3&redirect=$scheme://$host$request_uri;" in config
        assert "location = /challenge.html {" in config
        https_block = config[config.index("listen 443 ssl;"):]
        assert "if ($challenge_passed = 0)" in https_block

    def test_cdn_bypass(self):
        spec = _spec(tls={"enabled": True}, challenge={"enabled": True, "bypass_for_cdn": True})
        config = render_site_config(spec, PROBE_UNKNOWN, CERT)
        assert 'if ($http_cf_connecting_ip != "") {' in config

    def test_gate_precedes_proxy_pass(self):
        spec = _spec(tls={"enabled": True}, challenge={"enabled": True})
        config = render_site_config(spec, PROBE_UNKNOWN, CERT)
        location = config[config.rindex("    location / {"):]
        assert location.index("$challenge_passed") < location.index("proxy_pass")


class TestRateLimiting:
    def test_default_single_zone(self):
        config = render_site_config(_spec())
        assert "limit_req zone=general burst=20 nodelay;" in config
        assert "limit_conn addr 20;" in config

    def test_disabled(self):
        config = render_site_config(_spec(rate_limit={"enabled": False}))
        assert "# Rate limiting: DISABLED" in config
        assert "limit_req" not in config

    def test_huge_burst_is_unlimited(self):
        config = render_site_config(_spec(rate_limit={"burst": 50000}))
        assert "burst above 10000 treated as unlimited" in config
        assert "limit_req" not in config

    def test_cdn_split(self):
        config = render_site_config(
            _spec(rate_limit={"cdn_bypass": {"enabled": True, "direct_limit": 5, "cdn_limit": 50, "cdn_burst": 100}})
        )
        assert "map $http_cf_connecting_ip $example_com_backend_direct_key {" in config
        assert "limit_req_zone $example_com_backend_direct_key zone=example_com_backend_direct:10m rate=5r/s;" in config
        assert "limit_req_zone $example_com_backend_cdn_key zone=example_com_backend_cdn:10m rate=50r/s;" in config
        assert "limit_req zone=example_com_backend_direct burst=20 nodelay;" in config
        assert "limit_req zone=example_com_backend_cdn burst=100 nodelay;" in config
        assert config.index("limit_req_zone") < config.index("upstream example_com_backend")


class TestOptionalBlocks:
    def test_basic_auth_file(self):
        spec = _spec(basic_auth={"enabled": True, "username": "admin", "plaintext_password": "pw"})
        config = render_site_config(spec)
        assert 'auth_basic "Restricted Access";' in config
        assert "auth_basic_user_file /etc/nginx/htpasswd/example.com;" in config

    def test_basic_auth_custom_dir(self):
        spec = _spec(basic_auth={"enabled": True, "username": "admin", "plaintext_password": "pw"})
        config = render_site_config(spec, htpasswd_dir=Path("/srv/auth"))
        assert "auth_basic_user_file /srv/auth/example.com;" in config

    def test_local_only_beats_allowlist(self):
        config = render_site_config(_spec(access={"local_only": True, "ip_allowlist": ["198.51.100.1"]}))
        assert "allow 10.0.0.0/8;" in config
        assert "198.51.100.1" not in config
        assert "deny all;" in config

    def test_security_toggles(self):
        config = render_site_config(
            _spec(security={"modsecurity": False, "bot_protection": False, "waf_headers": False, "telemetry_headers": False})
        )
        assert "modsecurity off;" in config
        assert "$bot_detected" not in config
        assert "X-Protected-By" not in config
        assert "X-Request-ID" not in config
        assert "if ($ban)" in config

    def test_custom_error_pages(self):
        config = render_site_config(_spec(error_pages={"mode": "custom", "overrides": {503: "/down.html", 404: "/nf.html"}}))
        assert config.index("error_page 404 /nf.html;") < config.index("error_page 503 /down.html;")
        assert "/errors/429.html" not in config

    def test_template_error_pages(self):
        config = render_site_config(_spec())
        assert "error_page 429 /errors/429.html;" in config
        assert "alias /usr/share/nginx/error-pages/;" in config

    def test_well_known_files(self):
        config = render_site_config(_spec(well_known={"robots.txt": "User-agent: *\nDisallow: /"}))
        assert "location = /robots.txt {" in config
        assert 'return 200 "User-agent: *\\nDisallow: /";' in config

    def test_websocket_location(self):
        config = render_site_config(_spec(websocket={"enabled": True, "path": "/ws"}))
        assert "location /ws {" in config
        assert "proxy_pass http://example_com_backend;" in config
        assert 'proxy_set_header Connection "upgrade";' in config

    def test_websocket_on_root_path_is_inline(self):
        config = render_site_config(_spec(websocket={"enabled": True, "path": "/"}))
        assert config.count("    location / {") == 1
        assert "proxy_set_header Upgrade $http_upgrade;" in config

    def test_wss_needs_https_block(self):
        spec = _spec(websocket={"enabled": True, "protocol": "wss", "path": "/ws", "port": 9000})
        assert "location /ws {" not in render_site_config(spec)
        with_tls = render_site_config(spec.model_copy(update={"tls": spec.tls.model_copy(update={"enabled": True})}), PROBE_UNKNOWN, CERT)
        assert "proxy_pass http://app:9000;" in with_tls

    def test_compression(self):
        config = render_site_config(_spec(compression={"gzip": True, "brotli": False, "level": 11}))
        assert "gzip_comp_level 9;" in config
        assert "brotli" not in config

    def test_image_optimization(self):
        config = render_site_config(_spec(image_optimization={"enabled": True, "quality": 70}))
        assert "image_filter_jpeg_quality 70;" in config

    def test_no_blank_line_runs(self):
        config = render_site_config(_spec(tls={"enabled": True}), PROBE_UNKNOWN, CERT)
        assert "\n\n\n" not in config
        assert config.endswith("}\n")


class TestCatchall:
    def test_catchall_block(self):
        config = render_site_config(SiteSpec(domain="_"))
        assert "listen 80 default_server;" in config
        assert "return 444;" in config
        assert "ssl_reject_handshake on;" in config
        assert "upstream" not in config
        assert "proxy_pass" not in config


class TestHarness:
    def test_includes_only_base_and_candidate(self, tmp_path: Path):
        text = render_test_harness(
            tmp_path / "a.conf",
            mime_types=Path("/etc/nginx/mime.types"),
            conf_d=Path("/etc/nginx/conf.d"),
            pid_path=tmp_path / "a.pid",
        )
        assert "include /etc/nginx/mime.types;" in text
        assert "include /etc/nginx/conf.d/*.conf;" in text
        assert f"include {tmp_path / 'a.conf'};" in text
        assert "sites-enabled" not in text
