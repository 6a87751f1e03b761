"""Backend protocol probing — does the upstream speak or demand HTTPS?"""

from __future__ import annotations

import logging
from typing import Iterable

import httpx

from siteforge_common import PROBE_UNKNOWN, Backend, ProbeResult
from siteforge_common.constants import PROBE_TIMEOUT

log = logging.getLogger(__name__)


class BackendProber:
    """Best-effort HEAD probe against a backend.

    Never raises: any network or protocol failure means "no information",
    and the compiler falls back to a plain-HTTP upstream.
    """

    def __init__(self, timeout: float = PROBE_TIMEOUT, transport: httpx.BaseTransport | None = None):
        self.timeout = timeout
        self.transport = transport

    def probe(self, backend: Backend, domain: str) -> ProbeResult:
        if backend.scheme == "https" or backend.port == 443:
            return ProbeResult(speaks_https=True)

        url = f"http://{backend.server}/"
        try:
            with httpx.Client(
                timeout=self.timeout,
                follow_redirects=False,
                transport=self.transport,
            ) as client:
                response = client.head(url, headers={"Host": domain})
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            log.debug("Probe of %s for %s failed: %s", url, domain, exc)
            return PROBE_UNKNOWN

        location = response.headers.get("location", "")
        if location.lower().startswith("https://"):
            log.info("Backend %s redirects %s to HTTPS", backend.server, domain)
            return ProbeResult(redirects_to_https=True)
        return PROBE_UNKNOWN

    def probe_pool(self, backends: Iterable[Backend], domain: str) -> ProbeResult:
        """Probe every live backend once and combine the answers."""
        result = PROBE_UNKNOWN
        for backend in backends:
            if backend.down:
                continue
            result = result.merge(self.probe(backend, domain))
        return result
