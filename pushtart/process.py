"""
Process handles - thin wrappers around one spawned OS process.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import logging
import os
import re
import signal
import subprocess
import time
from pathlib import Path

import psutil

log = logging.getLogger("pushtart.process")


def sanitize_filename(name: str) -> str:
    """Sanitize a name for use in filenames - replace slashes and special chars with underscore."""
    sanitized = re.sub(r'[^a-zA-Z0-9_-]', '_', name)
    sanitized = re.sub(r'_+', '_', sanitized)
    return sanitized.strip('_')


def build_env(env_list) -> dict:
    """Overlay a list of "KEY=VALUE" strings onto the current environment."""
    env = os.environ.copy()
    for env_var in env_list or []:
        if '=' in env_var:
            key, value = env_var.split('=', 1)
            env[key] = value
    return env


def create_time(pid: int):
    try:
        return psutil.Process(pid).create_time()
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
        return None


def is_process_alive(pid: int) -> bool:
    """Check if a process we did not spawn in this session is still alive.

    A live pid may belong to an unrelated process that reused it; nothing
    here can tell the difference.
    """
    if not pid:
        return False
    try:
        os.kill(pid, 0)  # Signal 0 doesn't kill, just checks if process exists
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, but owned by someone else
        return True
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        return True


def terminate_pid(pid: int, grace_seconds: float):
    """SIGTERM a process group by pid, escalating to SIGKILL after the grace period."""
    try:
        os.killpg(os.getpgid(pid), signal.SIGTERM)
    except ProcessLookupError:
        return
    deadline = time.monotonic() + grace_seconds
    while time.monotonic() < deadline:
        if not is_process_alive(pid):
            return
        time.sleep(0.1)
    log.warning("PID %d ignored SIGTERM for %ss, killing", pid, grace_seconds)
    try:
        os.killpg(os.getpgid(pid), signal.SIGKILL)
    except ProcessLookupError:
        pass


class ProcessHandle:
    """A process spawned by this supervisor session."""

    def __init__(self, process: subprocess.Popen, started_at: float = None):
        self.process = process
        self.started_at = started_at  # psutil create_time, the process "generation"

    @classmethod
    def spawn(cls, cmd: list, cwd: Path, env: dict, log_file: Path = None) -> "ProcessHandle":
        """Start cmd in its own session. Output is appended to log_file, or discarded."""
        if log_file is not None:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            with open(log_file, "a") as out:
                process = subprocess.Popen(
                    cmd,
                    cwd=cwd,
                    stdin=subprocess.DEVNULL,
                    stdout=out,
                    stderr=subprocess.STDOUT,
                    env=env,
                    start_new_session=True
                )
        else:
            process = subprocess.Popen(
                cmd,
                cwd=cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                env=env,
                start_new_session=True
            )
        return cls(process, create_time(process.pid))

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self):
        return self.process.returncode

    def is_alive(self) -> bool:
        # poll() also reaps the child, so a dead process never lingers as a zombie
        if self.process.poll() is not None:
            return False
        if self.started_at is None:
            return True
        return create_time(self.pid) == self.started_at

    def signal_group(self, sig):
        try:
            # start_new_session makes the child its own process group leader
            os.killpg(self.pid, sig)
        except ProcessLookupError:
            pass

    def wait(self, timeout: float = None):
        return self.process.wait(timeout=timeout)

    def terminate(self, grace_seconds: float):
        """SIGTERM, wait up to grace_seconds, then SIGKILL. Returns the exit code."""
        if self.process.poll() is not None:
            return self.process.returncode
        self.signal_group(signal.SIGTERM)
        try:
            return self.process.wait(timeout=grace_seconds)
        except subprocess.TimeoutExpired:
            log.warning("PID %d ignored SIGTERM for %ss, killing", self.pid, grace_seconds)
            self.signal_group(signal.SIGKILL)
            return self.process.wait()
