"""
Process supervisor - starts and stops tart processes and keeps the store in step.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import logging
import os
import shutil
import threading
from contextlib import contextmanager
from pathlib import Path

from .errors import AlreadyRunning, ExecutionFailed, NotRunning
from .models import Tart
from .process import ProcessHandle, build_env, is_process_alive, sanitize_filename, terminate_pid
from .store import TartStore

log = logging.getLogger("pushtart.supervisor")


class LockRegistry:
    """One re-entrant lock per push URL, created on first use and never dropped,
    so a waiter on a deleted tart and a later caller share the same lock."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def lock_for(self, push_url: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(push_url)
            if lock is None:
                lock = self._locks[push_url] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, push_url: str):
        lock = self.lock_for(push_url)
        with lock:
            yield


class Supervisor:
    def __init__(self, store: TartStore, deployment_dir: Path, log_dir: Path,
                 startup_script: str = "startup.sh", stop_grace_seconds: float = 5,
                 max_log_size_mb: float = 10):
        self.store = store
        self.deployment_dir = Path(deployment_dir)
        self.log_dir = Path(log_dir)
        self.startup_script = startup_script
        self.stop_grace_seconds = stop_grace_seconds
        self.max_log_size_mb = max_log_size_mb
        self.locks = LockRegistry()
        self._handles: dict[str, ProcessHandle] = {}
        self._deaths: dict[str, float] = {}  # push_url -> when the sentry first saw it dead

    def deployment_dir_for(self, push_url: str) -> Path:
        return self.deployment_dir / push_url.lstrip("/")

    def log_file_for(self, push_url: str) -> Path:
        return self.log_dir / f"{sanitize_filename(push_url)}.log"

    def handle_for(self, push_url: str):
        return self._handles.get(push_url)

    def is_live(self, tart: Tart) -> bool:
        """Re-verify that a tart's recorded PID is still the process we started."""
        if not tart.is_running or not tart.pid:
            return False
        handle = self._handles.get(tart.push_url)
        if handle is not None and handle.pid == tart.pid:
            return handle.is_alive()
        return is_process_alive(tart.pid)

    def start(self, push_url: str) -> int:
        with self.locks.hold(push_url):
            tart = self.store.get(push_url)
            if tart.is_running and self.is_live(tart):
                raise AlreadyRunning(push_url, tart.pid)

            work_dir = self.deployment_dir_for(push_url)
            script_path = work_dir / self.startup_script
            if not script_path.exists():
                raise ExecutionFailed(f"Startup script not found: {script_path}")

            log_file = self.log_file_for(push_url) if tart.log_stdout else None
            try:
                handle = ProcessHandle.spawn(
                    ["sh", self.startup_script],
                    cwd=work_dir,
                    env=build_env(tart.env),
                    log_file=log_file,
                )
            except OSError as e:
                raise ExecutionFailed(f"Failed to start: {e}") from e

            tart.is_running = True
            tart.pid = handle.pid
            try:
                self.store.save(push_url, tart)
            except OSError:
                handle.terminate(self.stop_grace_seconds)
                raise
            self._handles[push_url] = handle
            self._deaths.pop(push_url, None)
            log.info("[%s] Started with PID %d", push_url, handle.pid)
            return handle.pid

    def stop(self, push_url: str):
        with self.locks.hold(push_url):
            tart = self.store.get(push_url)
            if not tart.is_running:
                raise NotRunning(push_url)

            # A deliberate stop cancels any restart the sentry was waiting on
            self._deaths.pop(push_url, None)
            handle = self._handles.pop(push_url, None)
            if handle is not None and handle.pid == tart.pid:
                code = handle.terminate(self.stop_grace_seconds)
                log.info("[%s] Stopped PID %d (exit code %s)", push_url, tart.pid, code)
            elif is_process_alive(tart.pid):
                terminate_pid(tart.pid, self.stop_grace_seconds)
                log.info("[%s] Stopped PID %d", push_url, tart.pid)
            else:
                log.info("[%s] PID %d was already gone", push_url, tart.pid)

            tart.is_running = False
            tart.pid = 0
            self.store.save(push_url, tart)

    def mark_stopped(self, push_url: str):
        """Record that a tart died and is not coming back on its own."""
        with self.locks.hold(push_url):
            tart = self.store.get(push_url)
            self._handles.pop(push_url, None)
            self._deaths.pop(push_url, None)
            tart.is_running = False
            tart.pid = 0
            self.store.save(push_url, tart)

    def death_detected(self, push_url: str, now: float) -> float:
        """Remember when a death was first seen; returns that first sighting."""
        return self._deaths.setdefault(push_url, now)

    def pending_restart(self, push_url: str) -> bool:
        return push_url in self._deaths

    def forget(self, push_url: str):
        self._handles.pop(push_url, None)
        self._deaths.pop(push_url, None)

    def rotate_log_if_needed(self, push_url: str):
        """Check log file size and rotate if needed using copytruncate method.

        This copies the log to .log.1 and truncates the original file.
        The tart keeps writing to the same fd, now at position 0.
        """
        log_file = self.log_file_for(push_url)
        if not log_file.exists():
            return

        try:
            size_mb = log_file.stat().st_size / (1024 * 1024)
            if size_mb < self.max_log_size_mb:
                return

            backup_file = log_file.with_name(log_file.name + ".1")
            shutil.copy2(log_file, backup_file)
            os.truncate(log_file, 0)
            log.info("[%s] Log rotated: %.1fMB -> %s", push_url, size_mb, backup_file.name)
        except OSError as e:
            log.warning("[%s] Failed to rotate log: %s", push_url, e)
