"""
Entry point, cycle scheduler and auto-restart wrapper.

Everything runs on one thread: cycle and heartbeat never overlap, and the stop
event (set by SIGINT/SIGTERM) interrupts the sleep between cycles at once. An
HTTP call already in flight finishes its current attempt (at most the connect
plus read timeout) and is not retried; a second signal exits immediately.
"""

import argparse
import signal
import threading
import time

from .constants import AGENT_VERSION, POLL_INTERVAL_SEC, HEARTBEAT_EVERY_CYCLES
from .config import log, safe_print, setup_logging, load_config, save_config
from .api import RemoteClient
from .devices import ZKDeviceReader
from .errors import Cancelled, ConfigError, RegistrationError
from .orchestrator import Orchestrator
from .store import CursorStore
from . import http_client


class Runner:
    """initialize() once, then run_cycle() every poll interval with a
    heartbeat after every Nth cycle."""

    def __init__(self, orchestrator, poll_interval=POLL_INTERVAL_SEC,
                 heartbeat_every=HEARTBEAT_EVERY_CYCLES, stop_event=None):
        self._orchestrator = orchestrator
        self._poll_interval = poll_interval
        self._heartbeat_every = max(1, int(heartbeat_every))
        self.stop_event = stop_event or threading.Event()
        self.cycles = 0

    def stop(self):
        self.stop_event.set()

    def run(self, max_cycles=None):
        """Blocks until stopped (or ``max_cycles`` cycles ran)."""
        try:
            self._orchestrator.initialize()

            since_heartbeat = 0
            while not self.stop_event.is_set():
                self._orchestrator.run_cycle()
                self.cycles += 1

                since_heartbeat += 1
                if since_heartbeat >= self._heartbeat_every:
                    self._orchestrator.send_heartbeat()
                    since_heartbeat = 0

                if max_cycles is not None and self.cycles >= max_cycles:
                    break
                if self.stop_event.wait(self._poll_interval):
                    break
        except Cancelled:
            log.info("Stop requested, shutting down gracefully")
        log.info("Runner stopped after %d cycles", self.cycles)

    def run_once(self):
        """
        Initialize, run one cycle and send one heartbeat.

        Returns True only if the device list was fetched, every device synced
        and the heartbeat was accepted.
        """
        try:
            safe_print("1. Initializing agent...")
            self._orchestrator.initialize()

            safe_print("2. Running one cycle...")
            report = self._orchestrator.run_cycle()
            self.cycles += 1

            safe_print("3. Sending heartbeat...")
            heartbeat_ok = self._orchestrator.send_heartbeat()
        except Cancelled:
            log.info("Stop requested during single run")
            return False

        failed = report.failed_devices
        ok = not report.aborted and not failed and heartbeat_ok
        if ok:
            log.info("Single run completed: %d devices synced", len(report.results))
        else:
            log.error("Single run failed: aborted=%s, failed devices=%s, heartbeat ok=%s",
                      report.aborted, failed or "none", heartbeat_ok)
        return ok


def build_runner(config, stop_event=None):
    """Wire store, HTTP session, client, reader and orchestrator from config."""
    stop_event = stop_event or threading.Event()
    auth = http_client.HmacAuth(
        config["agentName"], config["secretKey"], api_key=config.get("apiKey"),
    )
    session = http_client.create_session(auth, stop_event=stop_event)
    api = RemoteClient(
        session, config["serverUrl"], agent_id=config.get("agentId"), stop_event=stop_event,
    )
    orchestrator = Orchestrator(
        api,
        ZKDeviceReader(),
        CursorStore(config["databasePath"]),
        config,
        stop_event=stop_event,
        on_registered=save_config,
    )
    return Runner(
        orchestrator,
        poll_interval=config["pollIntervalSec"],
        heartbeat_every=config["heartbeatEveryCycles"],
        stop_event=stop_event,
    )


def _signal_handler(runner):
    def _handle(signum, _frame):
        if runner.stop_event.is_set():
            log.warning("Received signal %d again, exiting now", signum)
            raise KeyboardInterrupt
        log.info("Received signal %d, stopping", signum)
        runner.stop()

    return _handle


def _install_signal_handlers(runner):
    handler = _signal_handler(runner)
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            signal.signal(sig, handler)
        except (ValueError, OSError):
            # Not on the main thread, or not supported on this platform.
            pass


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Attendance Edge Agent")
    parser.add_argument("--config", default=None,
                        help="Config file path (default: config.json in the agent home)")
    parser.add_argument("--once", action="store_true",
                        help="Initialize, run one cycle, send one heartbeat and exit")
    return parser.parse_args(argv)


def main(args=None):
    """Primary agent entry point. Returns the process exit code."""
    args = args or parse_args([])
    safe_print("Attendance Agent v" + AGENT_VERSION)
    safe_print()

    config = load_config(args.config)
    setup_logging(config.get("logLevel", "INFO"))
    log.info("Loaded config for %s (server: %s, agent id: %s)",
             config["agentName"], config["serverUrl"], config.get("agentId") or "unregistered")

    runner = build_runner(config)
    _install_signal_handlers(runner)
    if args.once:
        return 0 if runner.run_once() else 1
    runner.run()
    return 0


def run_with_auto_restart(argv=None):
    """
    Wrapper that auto-restarts on crash. Gives up only on bad config or a
    failed registration (nothing to retry without an identity).
    Crash counter resets if the agent ran for 2+ minutes (not a boot-loop).
    With ``--once`` nothing is restarted: the exit code reports the run.
    """
    args = parse_args(argv)
    crash_count = 0
    crash_window = 120
    max_rapid_crashes = 10

    while True:
        start_time = time.time()
        try:
            code = main(args)
            if args.once:
                raise SystemExit(code)
            break
        except KeyboardInterrupt:
            safe_print("\nAgent stopped by user.")
            if args.once:
                raise SystemExit(1)
            break
        except (ConfigError, RegistrationError) as e:
            log.critical("Fatal startup error: %s", e)
            safe_print(f"Fatal: {e}")
            raise SystemExit(1)
        except Exception as e:
            elapsed = time.time() - start_time
            log.error("Agent crashed after %.0fs: %s", elapsed, e, exc_info=True)
            if args.once:
                raise SystemExit(1)

            if elapsed > crash_window:
                crash_count = 0
            crash_count += 1

            if crash_count >= max_rapid_crashes:
                wait = 120
                log.warning("Many rapid crashes (%d). Waiting %ds...", crash_count, wait)
            else:
                wait = min(10 * crash_count, 60)

            log.info("Restarting in %ds (crash %d)...", wait, crash_count)
            time.sleep(wait)
