"""
Orchestrator: one sync cycle across all devices, plus registration and
heartbeat.

Per device (strictly sequential, one device session at a time):

  clock check → cursor resolve → read → chunk → ingest → commit cursor

A cursor is committed (remote first, then local store) only after the server
acknowledged the chunk it describes. A rejected chunk stops that device for
this cycle; chunks committed before it stay committed and the rest are read
again next cycle from the last committed cursor.

Counters live in a single AgentStats value. Every device step returns a
DeviceResult that the cycle folds into it; nothing else touches the stats.
"""

import uuid
import threading

from .config import log
from .constants import DRIFT_THRESHOLD_SEC, MAX_BATCH_SIZE, AGENT_VERSION
from .cursor import (
    accept_cursor, chunk_events, empty_cursor, next_cursor, parse_device_time,
)
from .devices import ClockCapable, device_now
from .errors import Cancelled
from .models import Batch, HeartbeatReport
from .state import AgentStats, CycleReport, DeviceResult


class Orchestrator:
    def __init__(self, api, reader, store, config, stop_event=None,
                 clock=device_now, on_registered=None):
        self._api = api
        self._reader = reader
        self._store = store
        self._config = config
        self._stop = stop_event or threading.Event()
        self._clock = clock
        self._on_registered = on_registered
        self.stats = AgentStats()

    @property
    def max_batch_size(self) -> int:
        return int(self._config.get("maxBatchSize") or MAX_BATCH_SIZE)

    def _check_cancel(self):
        if self._stop.is_set():
            raise Cancelled("Stop requested")

    # ─── Startup ─────────────────────────────────────────────

    def initialize(self):
        """Prepare the local store and register if no identity is configured.

        Registration errors propagate: the agent cannot run without one.
        """
        log.info("Initializing orchestrator...")
        self._check_cancel()
        self._store.initialize()

        agent_id = self._config.get("agentId")
        api_key = self._config.get("apiKey")
        if agent_id is None or not api_key:
            log.info("Agent not registered, registering now...")
            registration = self._api.register(
                self._config.get("agentName"),
                self._config.get("version") or AGENT_VERSION,
            )
            self._config["agentId"] = registration.agent_id
            self._config["apiKey"] = registration.api_key
            if self._on_registered is not None:
                self._on_registered(self._config)
        else:
            self._api.set_credentials(agent_id, api_key)

        log.info("Agent initialized: ID=%s", self._config["agentId"])

    # ─── Cycle ───────────────────────────────────────────────

    def run_cycle(self):
        """Sync every active device once. Returns a CycleReport.

        Only Cancelled escapes; every other failure becomes an error count.
        """
        report = CycleReport()
        self._check_cancel()
        log.info("Starting agent cycle...")

        try:
            devices = self._api.list_devices()
        except Cancelled:
            raise
        except Exception as e:
            log.error("Device list fetch failed, cycle aborted: %s", e, exc_info=True)
            self.stats = self.stats.with_error()
            report.aborted = True
            report.error = str(e)
            return report

        active = [d for d in devices if d.is_active]
        report.devices_seen = len(devices)
        report.devices_active = len(active)
        log.info("Found %d devices (%d active)", len(devices), len(active))

        for device in active:
            self._check_cancel()
            result = self.process_device(device)
            self.stats = self.stats.absorb(result)
            report.results.append(result)
            if result.cancelled:
                raise Cancelled(f"Stop requested while processing device {device.id}")

        log.info(
            "Cycle completed: %d devices, %d pulled, %d pushed, %d failed",
            len(active),
            sum(r.pulled for r in report.results),
            sum(r.pushed for r in report.results),
            len(report.failed_devices),
        )
        return report

    def process_device(self, device):
        """Sync one device. Never raises; the outcome is in the DeviceResult."""
        result = DeviceResult(device_id=device.id)
        log.info("Processing device %s (%s)", device.id, device.address)
        try:
            self._sync_device(device, result)
        except Cancelled:
            log.info("Device %s: stop requested, leaving remaining chunks", device.id)
            result.cancelled = True
        except Exception as e:
            log.error("Error processing device %s: %s", device.id, e, exc_info=True)
            result.errors += 1
            result.error = str(e)
        return result

    def _sync_device(self, device, result):
        if isinstance(self._reader, ClockCapable):
            self._reconcile_clock(device, result)

        cursor = self._resolve_cursor(device)

        self._check_cancel()
        events = self._reader.read_events(device, dict(cursor))
        result.pulled = len(events)
        if not events:
            log.debug("No new events for device %s", device.id)
            return

        log.info("Read %d new events from device %s", len(events), device.id)
        # Oldest first, so a committed cursor never jumps past an unsent event.
        events = sorted(events, key=lambda e: parse_device_time(e.event_time_local))
        chunks = chunk_events(events, self.max_batch_size)

        committed = cursor
        for index, chunk in enumerate(chunks, start=1):
            self._check_cancel()
            batch = Batch(
                device_id=device.id,
                batch_id=uuid.uuid4().hex,
                events=chunk,
                cursor=next_cursor(committed, chunk),
            )
            ingest = self._api.ingest_batch(batch)
            if not ingest.ok:
                result.errors += 1
                result.error = ingest.error or f"batch {index}/{len(chunks)} rejected"
                log.warning(
                    "Device %s: batch %s (%d/%d, %d events) rejected; "
                    "stopping, %d batches left for next cycle",
                    device.id, batch.batch_id, index, len(chunks), len(chunk),
                    len(chunks) - index + 1,
                )
                return

            result.pushed += ingest.processed
            accepted = accept_cursor(batch.cursor, ingest.accepted_cursor)
            self._api.update_cursor(device.id, accepted)
            self._store.save(device.id, accepted)
            committed = accepted
            result.cursor = accepted
            result.batches_committed += 1
            log.info(
                "Device %s: batch %d/%d committed (%d processed, %d duplicates, %d rejected)",
                device.id, index, len(chunks), ingest.processed,
                ingest.duplicates, ingest.rejected,
            )

    def _resolve_cursor(self, device):
        """Server copy wins over the local store; nothing at all means start."""
        if device.last_cursor:
            return dict(device.last_cursor)
        stored = self._store.get(device.id)
        if stored:
            return stored
        return empty_cursor()

    def _reconcile_clock(self, device, result):
        """Record drift and correct it once if above threshold. Never fails."""
        self._check_cancel()
        try:
            device_time = self._reader.get_time(device)
        except Exception as e:
            log.warning("Device %s: clock read failed: %s", device.id, e)
            return

        agent_time = self._clock(device)
        drift = abs((device_time - agent_time).total_seconds())
        result.drift_minutes = drift / 60.0

        if drift <= DRIFT_THRESHOLD_SEC:
            return

        log.warning("Device %s: clock drift %.0fs exceeds %ds, syncing",
                    device.id, drift, DRIFT_THRESHOLD_SEC)
        self._check_cancel()
        try:
            self._reader.set_time(device, self._clock(device))
            result.clock_synced = True
        except Exception as e:
            log.warning("Device %s: clock sync failed: %s", device.id, e)

    # ─── Heartbeat ───────────────────────────────────────────

    def send_heartbeat(self):
        """Report the window and start a fresh one. Returns True on success."""
        self._check_cancel()
        window = self.stats
        report = HeartbeatReport(
            version=self._config.get("version") or AGENT_VERSION,
            pulled=window.pulled,
            pushed=window.pushed,
            errors=window.errors,
            drift_minutes=int(round(window.max_drift_minutes)),
        )
        try:
            self._api.send_heartbeat(report)
        except Cancelled:
            raise
        except Exception as e:
            log.error("Error sending heartbeat: %s", e)
            return False

        log.info("Heartbeat sent: pulled=%d pushed=%d errors=%d drift=%dmin",
                 report.pulled, report.pushed, report.errors, report.drift_minutes)
        self.stats = AgentStats()
        return True
