"""Out-of-band reload supervisor: reacts to the reload flag."""

from __future__ import annotations

import logging
import time
from typing import Callable, Literal

from pydantic import BaseModel, Field

from siteforge.services.deploy import ConfigDeployer
from siteforge.services.nginx import ProxyController
from siteforge.services.recovery import RecoveryManager

log = logging.getLogger(__name__)


class SupervisorReport(BaseModel):
    status: Literal["idle", "reloaded", "recovered", "failed"]
    quarantined: list[str] = Field(default_factory=list)
    output: str = ""


class ReloadSupervisor:
    """Test, isolate and reload. The one place that quarantines artifacts.

    A failed cycle leaves the flag set so the next cycle retries; the running
    proxy keeps serving its last good configuration meanwhile.
    """

    def __init__(self, deployer: ConfigDeployer, proxy: ProxyController, recovery: RecoveryManager):
        self.deployer = deployer
        self.proxy = proxy
        self.recovery = recovery

    def run_once(self) -> SupervisorReport:
        if not self.deployer.reload_requested():
            return SupervisorReport(status="idle")

        full = self.proxy.test_config()
        if full.ok:
            return self._reload([])
        if full.timed_out:
            return SupervisorReport(status="failed", output=full.output)

        log.warning("Full config test failed, isolating artifacts")
        quarantined = []
        for domain in self.deployer.list_domains():
            result = self.recovery.quarantine_if_invalid(domain)
            if result.timed_out:
                return SupervisorReport(status="failed", quarantined=quarantined, output=result.output)
            if not result.ok:
                quarantined.append(domain)

        retest = self.proxy.test_config()
        if not retest.ok:
            log.error("Config still invalid after quarantining %d artifact(s)", len(quarantined))
            return SupervisorReport(status="failed", quarantined=quarantined, output=retest.output)
        return self._reload(quarantined)

    def _reload(self, quarantined: list[str]) -> SupervisorReport:
        result = self.proxy.reload()
        if not result.ok:
            return SupervisorReport(status="failed", quarantined=quarantined, output=result.output)
        self.deployer.clear_reload_flag()
        return SupervisorReport(
            status="recovered" if quarantined else "reloaded",
            quarantined=quarantined,
            output=result.output,
        )

    def watch(
        self,
        interval: float = 5.0,
        *,
        max_cycles: int | None = None,
        on_cycle: Callable[[SupervisorReport], None] | None = None,
    ) -> None:
        """Poll the reload flag. ``on_cycle`` sees every non-idle report."""
        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            report = self.run_once()
            if report.status != "idle":
                log.info("Supervisor cycle: %s %s", report.status, ", ".join(report.quarantined))
                if on_cycle is not None:
                    on_cycle(report)
            cycles += 1
            if max_cycles is None or cycles < max_cycles:
                time.sleep(interval)
