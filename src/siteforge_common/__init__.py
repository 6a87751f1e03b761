"""siteforge common — shared models, constants and configuration."""

from siteforge_common.config import SiteforgeConfig
from siteforge_common.constants import (
    CATCHALL_DOMAIN,
    EMERGENCY_FALLBACK_NAME,
    RELOAD_FLAG_NAME,
    UPSTREAM_SUFFIX,
)
from siteforge_common.models import (
    PROBE_UNKNOWN,
    AuditEvent,
    Backend,
    CertificateOutcome,
    ChallengeType,
    CompileResult,
    ConfigText,
    DeployResult,
    EmergencyStatus,
    ErrorPageMode,
    LoadBalanceMethod,
    ProbeResult,
    ProxyCommandResult,
    QuarantinedConfig,
    QuarantineEvent,
    RestoreResult,
    SiteSpec,
)

__all__ = [
    "AuditEvent",
    "Backend",
    "CATCHALL_DOMAIN",
    "CertificateOutcome",
    "ChallengeType",
    "CompileResult",
    "ConfigText",
    "DeployResult",
    "EMERGENCY_FALLBACK_NAME",
    "EmergencyStatus",
    "ErrorPageMode",
    "LoadBalanceMethod",
    "PROBE_UNKNOWN",
    "ProbeResult",
    "ProxyCommandResult",
    "QuarantineEvent",
    "QuarantinedConfig",
    "RELOAD_FLAG_NAME",
    "RestoreResult",
    "SiteSpec",
    "SiteforgeConfig",
    "UPSTREAM_SUFFIX",
]
