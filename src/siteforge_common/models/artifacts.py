"""Compile, deploy and recovery result models."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConfigText(BaseModel):
    """A compiled vhost artifact. Regenerated wholesale, never edited in place."""

    model_config = ConfigDict(frozen=True)

    domain: str
    content: str
    upstream: str | None = None
    htpasswd_line: str | None = Field(default=None, repr=False)
    generated_at: datetime = Field(default_factory=_utcnow)


class ProbeResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    speaks_https: bool = False
    redirects_to_https: bool = False

    def merge(self, other: ProbeResult) -> ProbeResult:
        return ProbeResult(
            speaks_https=self.speaks_https or other.speaks_https,
            redirects_to_https=self.redirects_to_https or other.redirects_to_https,
        )


# No information: network failure, timeout or malformed response.
PROBE_UNKNOWN = ProbeResult()


class CertificateOutcome(BaseModel):
    ok: bool
    cert_path: Path | None = None
    key_path: Path | None = None
    synthesized: bool = False
    promoted: bool = False
    error: str | None = None


class CompileResult(BaseModel):
    config: ConfigText
    probe: ProbeResult = PROBE_UNKNOWN
    certificate: CertificateOutcome | None = None
    warnings: list[str] = Field(default_factory=list)


class DeployResult(BaseModel):
    ok: bool
    domain: str
    path: Path | None = None
    reload_requested: bool = False
    error: str | None = None


class ProxyCommandResult(BaseModel):
    ok: bool
    output: str = ""
    timed_out: bool = False


class QuarantinedConfig(BaseModel):
    domain: str
    content: str
    quarantined_at: datetime
    size_bytes: int


QuarantineAction = Literal["quarantined", "restored", "restore_rejected", "rolled_back", "discarded"]


class QuarantineEvent(BaseModel):
    timestamp: datetime = Field(default_factory=_utcnow)
    domain: str
    action: QuarantineAction
    detail: str = ""

    def to_jsonl(self) -> str:
        return self.model_dump_json()


class RestoreResult(BaseModel):
    ok: bool
    domain: str
    message: str = ""
    output: str = ""
    rolled_back: bool = False


class EmergencyStatus(BaseModel):
    emergency_mode: bool
    quarantined_count: int
    status: Literal["emergency", "normal"]
