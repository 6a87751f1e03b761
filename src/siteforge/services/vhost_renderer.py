"""Jinja2-based NGINX vhost config renderer."""

from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from siteforge_common import (
    PROBE_UNKNOWN,
    UPSTREAM_SUFFIX,
    Backend,
    CertificateOutcome,
    ErrorPageMode,
    LoadBalanceMethod,
    ProbeResult,
    SiteSpec,
)
from siteforge_common.constants import (
    CDN_CLIENT_IP_HEADER,
    CONNECTION_LIMIT,
    HTPASSWD_DIR,
    NGINX_ROOT,
    RATE_LIMIT_UNLIMITED_BURST,
)

_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"

# filename -> location path
WELL_KNOWN_LOCATIONS = {
    "robots.txt": "/robots.txt",
    "security.txt": "/.well-known/security.txt",
    "humans.txt": "/humans.txt",
    "ads.txt": "/ads.txt",
}

_UPSTREAM_UNSAFE = re.compile(r"[^a-z0-9_]")


@lru_cache(maxsize=1)
def _get_env() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(_TEMPLATE_DIR)),
        autoescape=select_autoescape([]),
        undefined=StrictUndefined,
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def upstream_name(domain: str) -> str:
    """``a.example.com`` -> ``a_example_com_backend``."""
    return _UPSTREAM_UNSAFE.sub("_", domain.lower()) + UPSTREAM_SUFFIX


def server_line(backend: Backend, method: LoadBalanceMethod) -> str:
    parts = [backend.server]
    if backend.weight != 1 or method is LoadBalanceMethod.WEIGHTED:
        parts.append(f"weight={backend.weight}")
    parts.append(f"max_fails={backend.max_fails}")
    parts.append(f"fail_timeout={backend.fail_timeout}s")
    if backend.backup:
        parts.append("backup")
    if backend.down:
        parts.append("down")
    return " ".join(parts)


def server_names(spec: SiteSpec) -> str:
    if spec.wildcard_subdomains:
        return f"*.{spec.domain} {spec.domain}"
    return spec.domain


def escape_nginx_string(text: str) -> str:
    """Escape text for a double-quoted nginx string literal."""
    return (
        text.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\r", "")
        .replace("\n", "\\n")
    )


def _lb_directive(method: LoadBalanceMethod) -> str | None:
    if method in (LoadBalanceMethod.LEAST_CONN, LoadBalanceMethod.IP_HASH):
        return method.value
    return None


def _cache_view(spec: SiteSpec, upstream: str) -> dict | None:
    if not spec.caching.enabled:
        return None
    return {
        "path": f"{spec.caching.path_prefix.rstrip('/')}/{upstream}",
        "zone": f"{upstream}_cache",
        "max_size": spec.caching.max_size,
        "ttl": spec.caching.ttl_seconds,
    }


def _rate_limit_view(spec: SiteSpec, upstream: str) -> dict:
    rl = spec.rate_limit
    view = {
        "zone": rl.zone,
        "burst": rl.burst,
        "connections": CONNECTION_LIMIT,
        "ceiling": RATE_LIMIT_UNLIMITED_BURST,
    }
    if not rl.enabled:
        view["mode"] = "disabled"
    elif rl.burst > RATE_LIMIT_UNLIMITED_BURST:
        view["mode"] = "unlimited"
    elif rl.cdn_bypass.enabled:
        view.update(
            mode="split",
            direct_zone=f"{upstream}_direct",
            cdn_zone=f"{upstream}_cdn",
            direct_limit=rl.cdn_bypass.direct_limit,
            cdn_limit=rl.cdn_bypass.cdn_limit,
            cdn_burst=rl.cdn_bypass.cdn_burst,
        )
    else:
        view["mode"] = "single"
    return view


def _websocket_target(spec: SiteSpec, upstream: str, proxy_scheme: str) -> str | None:
    ws = spec.websocket
    if not ws.enabled or ws.path == "/":
        return None
    if ws.port is None:
        return f"{proxy_scheme}://{upstream}"
    live = [b for b in spec.backend_pool if not b.down] or spec.backend_pool
    return f"{proxy_scheme}://{live[0].host}:{ws.port}"


def _tidy(text: str) -> str:
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"\n\n(\s*\})", r"\n\1", text)
    return text.rstrip("\n") + "\n"


def render_catchall() -> str:
    return _tidy(_get_env().get_template("catchall.conf.j2").render())


def render_site_config(
    spec: SiteSpec,
    probe: ProbeResult = PROBE_UNKNOWN,
    certificate: CertificateOutcome | None = None,
    *,
    dev_mode_headers: bool = False,
    htpasswd_dir: Path = NGINX_ROOT / HTPASSWD_DIR,
) -> str:
    """Render the complete artifact for one site.

    Pure: the same spec, probe and certificate always give the same text.
    The HTTPS block is emitted only when TLS is enabled and the certificate
    outcome is ok.
    """
    if spec.is_catchall:
        return render_catchall()

    upstream = upstream_name(spec.domain)
    proxy_scheme = "https" if probe.speaks_https else "http"
    tls = None
    if spec.tls.enabled and certificate is not None and certificate.ok:
        tls = {"cert": certificate.cert_path, "key": certificate.key_path}

    error_pages = {
        "mode": spec.error_pages.mode.value,
        "overrides": sorted(spec.error_pages.overrides.items())
        if spec.error_pages.mode is ErrorPageMode.CUSTOM
        else [],
    }
    well_known = [
        (WELL_KNOWN_LOCATIONS[name], escape_nginx_string(body))
        for name, body in sorted(spec.well_known.items())
        if name in WELL_KNOWN_LOCATIONS and body
    ]

    context = {
        "site": spec,
        "upstream": upstream,
        "server_name": server_names(spec),
        "servers": [server_line(b, spec.load_balance_method) for b in spec.backend_pool],
        "lb_directive": _lb_directive(spec.load_balance_method),
        "cache": _cache_view(spec, upstream),
        "rate_limit": _rate_limit_view(spec, upstream),
        "cdn_header": CDN_CLIENT_IP_HEADER,
        "proxy_scheme": proxy_scheme,
        "tls": tls,
        "http_redirect": tls is not None and not spec.tls.disable_http_redirect,
        "error_pages": error_pages,
        "well_known": well_known,
        "basic_auth_file": htpasswd_dir / spec.domain if spec.basic_auth.active else None,
        "blocked_countries": ", ".join(sorted(spec.security.blocked_countries)),
        "custom_headers": [h.strip() for h in spec.custom_headers if h.strip()],
        "dev_mode_headers": dev_mode_headers,
        "websocket_protocol": spec.websocket.protocol if spec.websocket.enabled else None,
        "websocket_inline": spec.websocket.enabled and spec.websocket.path == "/",
        "websocket_target": _websocket_target(spec, upstream, proxy_scheme),
    }
    return _tidy(_get_env().get_template("site.conf.j2").render(**context))


def render_test_harness(candidate: Path, *, mime_types: Path, conf_d: Path | None, pid_path: Path) -> str:
    """Minimal nginx.conf that loads the shared base plus one candidate file."""
    template = _get_env().get_template("test_harness.conf.j2")
    return template.render(candidate=candidate, mime_types=mime_types, conf_d=conf_d, pid_path=pid_path)
