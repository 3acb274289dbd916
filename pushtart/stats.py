"""
Resource usage snapshots for running tarts.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import psutil

from .errors import ExecutionFailed, NotRunning
from .models import RunMetrics
from .store import TartStore
from .supervisor import Supervisor


class StatsCollector:
    def __init__(self, store: TartStore, supervisor: Supervisor):
        self.store = store
        self.supervisor = supervisor

    def get_stats(self, push_url: str) -> RunMetrics:
        tart = self.store.get(push_url)
        if not self.supervisor.is_live(tart):
            raise NotRunning(push_url)

        try:
            process = psutil.Process(tart.pid)
            with process.oneshot():
                memory = process.memory_info()
                cpu = process.cpu_times()
        except (psutil.NoSuchProcess, psutil.ZombieProcess) as e:
            raise NotRunning(push_url) from e
        except psutil.AccessDenied as e:
            raise ExecutionFailed(f"Cannot read stats for PID {tart.pid}: {e}") from e

        return RunMetrics(
            pid=tart.pid,
            resident_bytes=memory.rss,
            cpu_user_secs=cpu.user,
            cpu_system_secs=cpu.system,
        )


def format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    elif size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    elif size < 1024 * 1024 * 1024:
        return f"{size / (1024 * 1024):.1f} MB"
    return f"{size / (1024 * 1024 * 1024):.1f} GB"


def format_cpu_time(seconds: float) -> str:
    seconds = int(seconds)
    return f"{seconds // 3600} hours, {seconds // 60 % 60} minutes, {seconds % 60} seconds."
