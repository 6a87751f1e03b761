"""Site specification model — one record per virtual host."""

from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from siteforge_common.constants import (
    CATCHALL_DOMAIN,
    DEFAULT_CACHE_PATH_PREFIX,
    DEFAULT_CLIENT_MAX_BODY_SIZE,
)

_ADDRESS_RE = re.compile(
    r"^(?:(?P<scheme>https?)://)?(?P<host>\[[0-9A-Fa-f:.]+\]|[A-Za-z0-9._-]+):(?P<port>\d+)/?$"
)


class LoadBalanceMethod(str, Enum):
    ROUND_ROBIN = "round_robin"
    LEAST_CONN = "least_conn"
    IP_HASH = "ip_hash"
    WEIGHTED = "weighted"


class ChallengeType(str, Enum):
    HTTP_01 = "http-01"
    DNS_01 = "dns-01"
    SNAKEOIL = "snakeoil"


class ErrorPageMode(str, Enum):
    TEMPLATE = "template"
    CUSTOM = "custom"


class Backend(BaseModel):
    """One server entry in an upstream pool."""

    address: str
    weight: int = Field(default=1, ge=1)
    max_fails: int = Field(default=3, ge=0)
    fail_timeout: int = Field(default=30, ge=0)
    backup: bool = False
    down: bool = False

    def parse(self) -> tuple[str, str, int] | None:
        """Return (scheme, host, port) or None if the address is malformed."""
        match = _ADDRESS_RE.match(self.address.strip())
        if not match:
            return None
        return match.group("scheme") or "", match.group("host"), int(match.group("port"))

    @property
    def scheme(self) -> str:
        parsed = self.parse()
        return parsed[0] if parsed else ""

    @property
    def host(self) -> str:
        parsed = self.parse()
        return parsed[1] if parsed else ""

    @property
    def port(self) -> int:
        parsed = self.parse()
        return parsed[2] if parsed else 0

    @property
    def server(self) -> str:
        return f"{self.host}:{self.port}"


class DnsCredential(BaseModel):
    token: str = Field(default="", repr=False)
    zone_id: str = ""


class TlsSettings(BaseModel):
    enabled: bool = False
    challenge_type: ChallengeType = ChallengeType.HTTP_01
    dns_credential: DnsCredential = Field(default_factory=DnsCredential)
    disable_http_redirect: bool = False


class CdnBypass(BaseModel):
    enabled: bool = False
    direct_limit: int = 10
    cdn_limit: int = 100
    cdn_burst: int = 200


class RateLimitSettings(BaseModel):
    enabled: bool = True
    zone: str = "general"
    rate: int = 10
    burst: int = 20
    cdn_bypass: CdnBypass = Field(default_factory=CdnBypass)


class CachingSettings(BaseModel):
    enabled: bool = False
    ttl_seconds: int = 3600
    cache_static_assets: bool = False
    max_size: str = "1g"
    path_prefix: str = DEFAULT_CACHE_PATH_PREFIX


class CompressionSettings(BaseModel):
    gzip: bool = True
    brotli: bool = True
    level: int = Field(default=6, ge=1, le=11)


class SecuritySettings(BaseModel):
    modsecurity: bool = True
    bot_protection: bool = True
    geoip_blocking: bool = False
    blocked_countries: set[str] = Field(default_factory=set)
    waf_headers: bool = True
    telemetry_headers: bool = True


class AccessSettings(BaseModel):
    ip_allowlist: list[str] = Field(default_factory=list)
    local_only: bool = False


class BasicAuthSettings(BaseModel):
    enabled: bool = False
    username: str = ""
    plaintext_password: str = Field(default="", exclude=True, repr=False)

    @property
    def active(self) -> bool:
        return self.enabled and bool(self.username) and bool(self.plaintext_password)


class ChallengeSettings(BaseModel):
    enabled: bool = False
    difficulty: int = 18
    duration_days: int = 1
    bypass_for_cdn: bool = False


class ErrorPageSettings(BaseModel):
    mode: ErrorPageMode = ErrorPageMode.TEMPLATE
    overrides: dict[int, str] = Field(default_factory=dict)


class ImageOptimizationSettings(BaseModel):
    enabled: bool = False
    quality: int = Field(default=85, ge=1, le=100)


class WebSocketSettings(BaseModel):
    enabled: bool = False
    protocol: str = "ws"
    path: str = "/"
    port: int | None = None


class SiteSpec(BaseModel):
    """Declarative description of one virtual host."""

    model_config = ConfigDict(extra="ignore")

    domain: str
    enabled: bool = True
    backend_pool: list[Backend] = Field(default_factory=list)
    backend_url: str | None = None
    load_balance_method: LoadBalanceMethod = LoadBalanceMethod.ROUND_ROBIN
    wildcard_subdomains: bool = False
    client_max_body_size: str = DEFAULT_CLIENT_MAX_BODY_SIZE
    tls: TlsSettings = Field(default_factory=TlsSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    caching: CachingSettings = Field(default_factory=CachingSettings)
    compression: CompressionSettings = Field(default_factory=CompressionSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    access: AccessSettings = Field(default_factory=AccessSettings)
    basic_auth: BasicAuthSettings = Field(default_factory=BasicAuthSettings)
    challenge: ChallengeSettings = Field(default_factory=ChallengeSettings)
    custom_headers: list[str] = Field(default_factory=list)
    error_pages: ErrorPageSettings = Field(default_factory=ErrorPageSettings)
    image_optimization: ImageOptimizationSettings = Field(default_factory=ImageOptimizationSettings)
    websocket: WebSocketSettings = Field(default_factory=WebSocketSettings)
    well_known: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _pool_from_legacy_url(self) -> SiteSpec:
        if not self.backend_pool and self.backend_url:
            self.backend_pool = [Backend(address=normalize_backend_url(self.backend_url))]
        return self

    @property
    def is_catchall(self) -> bool:
        return self.domain == CATCHALL_DOMAIN


def normalize_backend_url(url: str) -> str:
    """Turn a legacy ``backend_url`` into a ``host:port`` pool address.

    Only an explicit ``https`` scheme is kept, since that is what the prober
    treats as a TLS backend.
    """
    url = url.strip().rstrip("/")
    scheme = ""
    for prefix in ("https://", "http://"):
        if url.lower().startswith(prefix):
            scheme = prefix[:-3].lower()
            url = url[len(prefix):]
            break
    if ":" not in url.rsplit("]", 1)[-1]:
        url = f"{url}:{443 if scheme == 'https' else 80}"
    return f"https://{url}" if scheme == "https" else url
