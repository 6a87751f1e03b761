"""Shared Pydantic models."""

from siteforge_common.models.artifacts import (
    PROBE_UNKNOWN,
    CertificateOutcome,
    CompileResult,
    ConfigText,
    DeployResult,
    EmergencyStatus,
    ProbeResult,
    ProxyCommandResult,
    QuarantinedConfig,
    QuarantineEvent,
    RestoreResult,
)
from siteforge_common.models.audit_event import AuditEvent
from siteforge_common.models.site import (
    Backend,
    ChallengeType,
    ErrorPageMode,
    LoadBalanceMethod,
    SiteSpec,
)

__all__ = [
    "AuditEvent",
    "Backend",
    "CertificateOutcome",
    "ChallengeType",
    "CompileResult",
    "ConfigText",
    "DeployResult",
    "EmergencyStatus",
    "ErrorPageMode",
    "LoadBalanceMethod",
    "PROBE_UNKNOWN",
    "ProbeResult",
    "ProxyCommandResult",
    "QuarantineEvent",
    "QuarantinedConfig",
    "RestoreResult",
    "SiteSpec",
]
