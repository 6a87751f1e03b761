"""CLI configuration — singleton SiteforgeConfig resolved at startup."""

from __future__ import annotations

from functools import lru_cache

from siteforge_common import SiteforgeConfig


@lru_cache(maxsize=1)
def get_config() -> SiteforgeConfig:
    """Return the global SiteforgeConfig (resolved once, cached)."""
    return SiteforgeConfig()
