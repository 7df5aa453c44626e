"""
AgentStats (the heartbeat reporting window) and per-device results.

The orchestrator owns exactly one AgentStats value. Each device step returns a
DeviceResult; the cycle folds it into the stats with ``absorb()``. A successful
heartbeat swaps the window for a fresh one (``AgentStats()``), a failed one
leaves it alone.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional


@dataclass
class DeviceResult:
    device_id: int
    pulled: int = 0
    pushed: int = 0
    errors: int = 0
    drift_minutes: Optional[float] = None
    batches_committed: int = 0
    clock_synced: bool = False
    cursor: Optional[Dict[str, Any]] = None   # last committed cursor, if any
    error: Optional[str] = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.errors == 0


@dataclass(frozen=True)
class AgentStats:
    pulled: int = 0
    pushed: int = 0
    errors: int = 0
    max_drift_minutes: float = 0.0

    def absorb(self, result: DeviceResult) -> "AgentStats":
        """Return a new window with one device's outcome added."""
        drift = self.max_drift_minutes
        if result.drift_minutes is not None and result.drift_minutes > drift:
            drift = result.drift_minutes
        return AgentStats(
            pulled=self.pulled + result.pulled,
            pushed=self.pushed + result.pushed,
            errors=self.errors + result.errors,
            max_drift_minutes=drift,
        )

    def with_error(self, count=1) -> "AgentStats":
        return replace(self, errors=self.errors + count)


@dataclass
class CycleReport:
    devices_seen: int = 0
    devices_active: int = 0
    results: list = field(default_factory=list)
    aborted: bool = False
    error: Optional[str] = None

    @property
    def failed_devices(self):
        return [r.device_id for r in self.results if not r.ok]
