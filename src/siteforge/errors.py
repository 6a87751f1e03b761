"""Custom exceptions for siteforge."""

from __future__ import annotations


class SiteforgeError(Exception):
    """Base exception for all siteforge operations."""

    def __init__(self, message: str, *, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


class SpecValidationError(SiteforgeError):
    """A site spec was rejected before compilation."""

    def __init__(self, field: str, reason: str):
        super().__init__(f"{field}: {reason}", exit_code=2)
        self.field = field
        self.reason = reason


class UpstreamCollisionError(SpecValidationError):
    """Two domains sanitize to the same upstream name."""

    def __init__(self, upstream: str, domain: str, other: str):
        super().__init__(
            "domain",
            f"upstream name {upstream} of {domain} collides with {other}",
        )
        self.upstream = upstream
        self.domains = (domain, other)


class QuarantineNotFoundError(SiteforgeError):
    """No quarantined config exists for the requested domain."""


class DockerError(SiteforgeError):
    """Docker command failed."""


class ProxyCommandError(SiteforgeError):
    """The proxy test or reload command failed."""
