"""
Sentry loop - notices tarts that died behind our back and restores them.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import logging
import threading
import time

from .errors import NotFound, TartError
from .store import TartStore
from .supervisor import Supervisor

log = logging.getLogger("pushtart.sentry")


class SentryLoop:
    def __init__(self, store: TartStore, supervisor: Supervisor, interval: float, clock=time.monotonic):
        self.store = store
        self.supervisor = supervisor
        self.interval = interval
        self.clock = clock
        self._stopped = threading.Event()
        self._thread = None

    @property
    def enabled(self) -> bool:
        return bool(self.interval) and self.interval > 0

    def tick(self):
        for push_url, tart in self.store.all().tarts.items():
            self.supervisor.rotate_log_if_needed(push_url)
            if tart.is_running:
                self.reconcile(push_url)

    def reconcile(self, push_url: str):
        with self.supervisor.locks.hold(push_url):
            # Re-read under the lock: a manual stop may have won the race
            try:
                tart = self.store.get(push_url)
            except NotFound:
                return
            if not tart.is_running or self.supervisor.is_live(tart):
                return

            if not tart.restart_on_stop:
                log.warning("[%s] Process died (PID %d), marking stopped", push_url, tart.pid)
                self.supervisor.mark_stopped(push_url)
                return

            now = self.clock()
            if not self.supervisor.pending_restart(push_url):
                log.warning("[%s] Process died (PID %d), restarting in %ds",
                            push_url, tart.pid, tart.restart_delay_secs)
            died_at = self.supervisor.death_detected(push_url, now)
            if now - died_at < tart.restart_delay_secs:
                return

            try:
                pid = self.supervisor.start(push_url)
            except TartError as e:
                log.error("[%s] Restart failed, retrying next tick: %s", push_url, e)
                return
            log.info("[%s] Restarted with PID %d", push_url, pid)

    def run(self):
        log.info("Sentry running every %ss", self.interval)
        while not self._stopped.wait(self.interval):
            try:
                self.tick()
            except Exception:
                log.exception("Sentry tick failed")

    def start(self):
        if not self.enabled:
            log.warning("Sentry disabled (run_sentry_interval=%s)", self.interval)
            return None
        self._thread = threading.Thread(target=self.run, name="pushtart-sentry", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self):
        self._stopped.set()
