"""Site spec validation and compilation into deployable config text."""

from __future__ import annotations

import ipaddress
import logging
import re
from pathlib import Path
from typing import Iterable, Mapping, Protocol

from siteforge_common import (
    Backend,
    CertificateOutcome,
    CompileResult,
    ConfigText,
    LoadBalanceMethod,
    ProbeResult,
    SiteSpec,
)
from siteforge_common.constants import HTPASSWD_DIR, NGINX_ROOT

from siteforge.errors import SpecValidationError, UpstreamCollisionError
from siteforge.services.htpasswd import create_htpasswd
from siteforge.services.vhost_renderer import (
    WELL_KNOWN_LOCATIONS,
    render_catchall,
    render_site_config,
    upstream_name,
)

log = logging.getLogger(__name__)

__all__ = [
    "SiteCompiler",
    "check_upstream_collisions",
    "upstream_name",
    "validate_spec",
]

_DOMAIN_FORBIDDEN = re.compile(r"[\s/{};\"'$\\]")
_SIZE_RE = re.compile(r"^\d+[kKmMgG]?$")
_ZONE_RE = re.compile(r"^[A-Za-z0-9_]+$")
_HEADER_RE = re.compile(r"^[A-Za-z0-9-]+\s+\S.*$")
_DIRECTIVE_UNSAFE = re.compile(r"[;{}\r\n]")
_PATH_RE = re.compile(r"^/[^\s;{}]*$")


class Prober(Protocol):
    def probe_pool(self, backends: Iterable[Backend], domain: str) -> ProbeResult: ...


class CertificateStore(Protocol):
    def resolve(self, domain: str, challenge_type: str) -> CertificateOutcome: ...


def _validate_pool(spec: SiteSpec) -> None:
    if not spec.backend_pool:
        raise SpecValidationError("backend_pool", "no backend: set backend_pool or backend_url")
    seen: set[str] = set()
    for backend in spec.backend_pool:
        parsed = backend.parse()
        if parsed is None:
            raise SpecValidationError(
                "backend_pool", f"malformed address {backend.address!r}, expected host:port"
            )
        if not 1 <= parsed[2] <= 65535:
            raise SpecValidationError("backend_pool", f"port out of range in {backend.address!r}")
        if backend.server in seen:
            raise SpecValidationError("backend_pool", f"duplicate backend {backend.server}")
        seen.add(backend.server)
        if backend.backup and spec.load_balance_method is LoadBalanceMethod.IP_HASH:
            raise SpecValidationError("backend_pool", "ip_hash does not support backup servers")


def validate_spec(spec: SiteSpec) -> None:
    """Reject a spec that would yield a broken or unsafe artifact.

    Raises :class:`SpecValidationError` naming the offending field. Nothing is
    probed, resolved or written before this passes.
    """
    domain = spec.domain.strip()
    if not domain:
        raise SpecValidationError("domain", "must not be empty")
    if _DOMAIN_FORBIDDEN.search(spec.domain):
        raise SpecValidationError("domain", f"invalid characters in {spec.domain!r}")
    if spec.is_catchall:
        return

    _validate_pool(spec)

    if not _SIZE_RE.match(spec.client_max_body_size):
        raise SpecValidationError("client_max_body_size", f"invalid size {spec.client_max_body_size!r}")
    if not _ZONE_RE.match(spec.rate_limit.zone):
        raise SpecValidationError("rate_limit.zone", f"invalid zone name {spec.rate_limit.zone!r}")
    if spec.caching.enabled:
        if not _SIZE_RE.match(spec.caching.max_size):
            raise SpecValidationError("caching.max_size", f"invalid size {spec.caching.max_size!r}")
        if not _PATH_RE.match(spec.caching.path_prefix):
            raise SpecValidationError("caching.path_prefix", "must be an absolute path")

    for entry in spec.access.ip_allowlist:
        try:
            ipaddress.ip_network(entry, strict=False)
        except ValueError:
            raise SpecValidationError("access.ip_allowlist", f"not an address or CIDR: {entry!r}") from None

    if spec.basic_auth.enabled:
        if not spec.basic_auth.username or not spec.basic_auth.plaintext_password:
            raise SpecValidationError("basic_auth", "enabled without username and password")
        if ":" in spec.basic_auth.username or _DIRECTIVE_UNSAFE.search(spec.basic_auth.username):
            raise SpecValidationError("basic_auth.username", "must not contain ':' or control characters")

    for header in spec.custom_headers:
        if header.strip() and (not _HEADER_RE.match(header.strip()) or _DIRECTIVE_UNSAFE.search(header)):
            raise SpecValidationError("custom_headers", f"expected 'Name value', got {header!r}")

    for code, url in spec.error_pages.overrides.items():
        if not 300 <= code <= 599:
            raise SpecValidationError("error_pages.overrides", f"invalid status code {code}")
        if not url or _DIRECTIVE_UNSAFE.search(url) or " " in url:
            raise SpecValidationError("error_pages.overrides", f"invalid URL for {code}: {url!r}")

    for name, body in spec.well_known.items():
        if name not in WELL_KNOWN_LOCATIONS:
            raise SpecValidationError("well_known", f"unsupported file {name!r}")
        if "$" in body:
            raise SpecValidationError("well_known", f"'$' is not allowed in {name}")

    if spec.websocket.enabled:
        if spec.websocket.protocol not in ("ws", "wss"):
            raise SpecValidationError("websocket.protocol", "must be 'ws' or 'wss'")
        if not _PATH_RE.match(spec.websocket.path):
            raise SpecValidationError("websocket.path", f"invalid location path {spec.websocket.path!r}")
        if spec.websocket.port is not None and not 1 <= spec.websocket.port <= 65535:
            raise SpecValidationError("websocket.port", "port out of range")


def check_upstream_collisions(
    specs: Iterable[SiteSpec],
    taken: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Fail if two different domains would share an upstream name.

    ``taken`` maps upstream names already deployed to their domain. Returns
    the combined mapping.
    """
    owners = dict(taken or {})
    for spec in specs:
        if spec.is_catchall:
            continue
        name = upstream_name(spec.domain)
        other = owners.get(name)
        if other is not None and other != spec.domain:
            raise UpstreamCollisionError(name, spec.domain, other)
        owners[name] = spec.domain
    return owners


class SiteCompiler:
    """Turn a :class:`SiteSpec` into a :class:`CompileResult`.

    The prober and certificate store are injected so tests can pin their
    outcomes. Degraded capabilities become warnings, never exceptions.
    """

    def __init__(
        self,
        prober: Prober,
        resolver: CertificateStore,
        *,
        dev_mode_headers: bool = False,
        htpasswd_dir: Path = NGINX_ROOT / HTPASSWD_DIR,
    ):
        self.prober = prober
        self.resolver = resolver
        self.dev_mode_headers = dev_mode_headers
        self.htpasswd_dir = htpasswd_dir

    def compile(self, spec: SiteSpec, taken_upstreams: Mapping[str, str] | None = None) -> CompileResult:
        validate_spec(spec)
        if spec.is_catchall:
            return CompileResult(config=ConfigText(domain=spec.domain, content=render_catchall()))
        check_upstream_collisions([spec], taken_upstreams)

        warnings: list[str] = []
        probe = self.prober.probe_pool(spec.backend_pool, spec.domain)
        if probe.redirects_to_https and not probe.speaks_https and not spec.tls.disable_http_redirect:
            spec = spec.model_copy(
                update={"tls": spec.tls.model_copy(update={"disable_http_redirect": True})}
            )
            warnings.append(
                f"{spec.domain}: backend redirects to HTTPS without serving it; HTTP redirect disabled"
            )

        certificate = None
        if spec.tls.enabled:
            certificate = self.resolver.resolve(spec.domain, spec.tls.challenge_type)
            if not certificate.ok:
                log.warning("TLS block skipped for %s: %s", spec.domain, certificate.error)
                warnings.append(f"{spec.domain}: no HTTPS block ({certificate.error or 'certificate unavailable'})")

        content = render_site_config(
            spec,
            probe,
            certificate,
            dev_mode_headers=self.dev_mode_headers,
            htpasswd_dir=self.htpasswd_dir,
        )
        htpasswd_line = None
        if spec.basic_auth.active:
            htpasswd_line = create_htpasswd(spec.basic_auth.username, spec.basic_auth.plaintext_password)

        return CompileResult(
            config=ConfigText(
                domain=spec.domain,
                content=content,
                upstream=upstream_name(spec.domain),
                htpasswd_line=htpasswd_line,
            ),
            probe=probe,
            certificate=certificate,
            warnings=warnings,
        )

    def compile_many(
        self,
        specs: Iterable[SiteSpec],
        taken_upstreams: Mapping[str, str] | None = None,
    ) -> list[CompileResult]:
        """Validate the whole batch before compiling any of it."""
        specs = list(specs)
        for spec in specs:
            validate_spec(spec)
        owners = check_upstream_collisions(specs, taken_upstreams)
        return [self.compile(spec, owners) for spec in specs]
