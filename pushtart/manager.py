"""
Tart manager - ties the store, supervisor, deploy pipeline, sentry and stats together.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import logging
from datetime import datetime

from .auth import check_owner
from .config import Config
from .deploy import DeployPipeline, validate_push_url
from .errors import AlreadyExists, ExecutionFailed, InvalidArgument, LastOwner, NotFound, NotRunning
from .models import Principal, RunMetrics, TRUSTED, Tart
from .sentry import SentryLoop
from .stats import StatsCollector
from .store import TartStore, open_store
from .supervisor import Supervisor

log = logging.getLogger("pushtart.manager")


def set_env(env_list: list, entry: str = "", delete_key: str = "") -> list:
    """Return env_list with entry's key replaced (entry goes last) and delete_key removed."""
    key = entry.split("=", 1)[0] if entry else None
    output = []
    for existing in env_list:
        existing_key = existing.split("=", 1)[0]
        if existing_key == key or (delete_key and existing_key == delete_key):
            continue
        output.append(existing)
    if entry:
        output.append(entry)
    return output


class TartManager:
    def __init__(self, store: TartStore, config: Config = None):
        if config is None:
            config = store.all()
        self.store = store
        self.web_host = config.web_host
        self.web_port = config.web_port
        self.started_at = datetime.now()

        data_dir = config.data_dir
        self.supervisor = Supervisor(
            store,
            deployment_dir=config.deployment_dir,
            log_dir=data_dir / "logs",
            startup_script=config.startup_script,
            stop_grace_seconds=config.stop_grace_seconds,
            max_log_size_mb=config.max_log_size_mb,
        )
        self.deployer = DeployPipeline(store, self.supervisor, repo_dir=data_dir / "repos",
                                       config_path=config.path)
        self.stats = StatsCollector(store, self.supervisor)
        self.sentry = SentryLoop(store, self.supervisor, config.run_sentry_interval)

    @classmethod
    def from_config_file(cls, path) -> "TartManager":
        return cls(open_store(path))

    def restore_processes(self):
        """Report which tarts survived the previous manager session."""
        for push_url, tart in self.store.all().tarts.items():
            if not tart.is_running:
                continue
            if self.supervisor.is_live(tart):
                log.info("[%s] Restored running process with PID %d", push_url, tart.pid)
            else:
                log.warning("[%s] Previous process (PID %d) is no longer running", push_url, tart.pid)

    # --- lookups ---------------------------------------------------------

    def get(self, push_url: str) -> Tart:
        return self.store.get(push_url)

    def exists(self, push_url: str) -> bool:
        return self.store.exists(push_url)

    def find(self, name: str) -> Tart:
        """Resolve a tart by exact push URL, or by the same value with a leading '/'."""
        if self.store.exists(name):
            return self.store.get(name)
        if self.store.exists("/" + name):
            return self.store.get("/" + name)
        raise NotFound(name)

    def list_tarts(self) -> list:
        return list(self.store.all().tarts.values())

    # --- lifecycle -------------------------------------------------------

    def new(self, push_url: str, owner: str) -> Tart:
        validate_push_url(push_url)
        if not owner:
            raise InvalidArgument("A new tart needs an owner.")
        with self.supervisor.locks.hold(push_url):
            if self.store.exists(push_url):
                raise AlreadyExists(push_url)
            self.deployer.pre_git_receive(push_url)
            tart = Tart(push_url=push_url, name=push_url.lstrip("/"), owners=[owner])
            self.store.save(push_url, tart)
        log.info("[%s] Created for %s", push_url, owner)
        return tart

    def delete(self, push_url: str, principal: Principal = TRUSTED):
        with self.supervisor.locks.hold(push_url):
            tart = self.store.get(push_url)
            check_owner(principal, tart)
            if tart.is_running:
                self.supervisor.stop(push_url)
            self.store.delete(push_url)
            self.supervisor.forget(push_url)
        log.info("[%s] Deleted", push_url)

    def start(self, push_url: str, principal: Principal = TRUSTED) -> int:
        with self.supervisor.locks.hold(push_url):
            check_owner(principal, self.store.get(push_url))
            return self.supervisor.start(push_url)

    def stop(self, push_url: str, principal: Principal = TRUSTED):
        with self.supervisor.locks.hold(push_url):
            check_owner(principal, self.store.get(push_url))
            self.supervisor.stop(push_url)

    def pre_git_receive(self, push_url: str, principal: Principal = TRUSTED):
        self.deployer.pre_git_receive(push_url, principal)

    def deploy(self, push_url: str, out, commit: tuple = None) -> bool:
        return self.deployer.deploy(push_url, out, commit)

    def digest(self, push_url: str, out, principal: Principal = TRUSTED) -> bool:
        with self.supervisor.locks.hold(push_url):
            check_owner(principal, self.store.get(push_url))
            return self.deployer.digest(push_url, out)

    # --- edits -----------------------------------------------------------

    def edit(self, push_url: str, principal: Principal = TRUSTED, name: str = None,
             set_env_entry: str = None, delete_env: str = None, log_stdout: bool = None) -> Tart:
        if set_env_entry and ("=" not in set_env_entry or set_env_entry.startswith("=")):
            raise InvalidArgument("set-env expects <env-name>=<env-value>")
        with self.supervisor.locks.hold(push_url):
            tart = self.store.get(push_url)
            check_owner(principal, tart)
            if name:
                tart.name = name
            if set_env_entry:
                tart.env = set_env(tart.env, entry=set_env_entry)
            if delete_env:
                tart.env = set_env(tart.env, delete_key=delete_env)
            if log_stdout is not None:
                tart.log_stdout = log_stdout
            self.store.save(push_url, tart)
            return tart

    def set_restart_policy(self, push_url: str, enabled: bool, lull_period: int = None,
                           principal: Principal = TRUSTED) -> Tart:
        if lull_period is not None and lull_period < 0:
            raise InvalidArgument("lull-period cannot be negative")
        with self.supervisor.locks.hold(push_url):
            tart = self.store.get(push_url)
            check_owner(principal, tart)
            tart.restart_on_stop = enabled
            if lull_period is not None:
                tart.restart_delay_secs = lull_period
            self.store.save(push_url, tart)
            return tart

    def add_owner(self, push_url: str, username: str, principal: Principal = TRUSTED) -> Tart:
        with self.supervisor.locks.hold(push_url):
            tart = self.store.get(push_url)
            check_owner(principal, tart)
            if username in tart.owners:
                raise AlreadyExists(push_url, f"{username} is already set as an owner.")
            tart.owners.append(username)
            self.store.save(push_url, tart)
            return tart

    def remove_owner(self, push_url: str, username: str, principal: Principal = TRUSTED) -> Tart:
        with self.supervisor.locks.hold(push_url):
            tart = self.store.get(push_url)
            check_owner(principal, tart)
            if username not in tart.owners:
                raise InvalidArgument("That user is not a tart owner.")
            if len(tart.owners) == 1:
                raise LastOwner(push_url)
            tart.owners = [owner for owner in tart.owners if owner != username]
            self.store.save(push_url, tart)
            return tart

    # --- status ----------------------------------------------------------

    def get_stats(self, push_url: str) -> RunMetrics:
        return self.stats.get_stats(push_url)

    def get_status(self) -> list[dict]:
        status = []
        for push_url, tart in self.store.all().tarts.items():
            metrics = None
            if tart.is_running:
                try:
                    metrics = self.stats.get_stats(push_url)
                except (NotRunning, ExecutionFailed):
                    metrics = None

            log_file = self.supervisor.log_file_for(push_url)
            status.append({
                "push_url": push_url,
                "name": tart.name,
                "owners": list(tart.owners),
                "is_running": tart.is_running,
                "live": metrics is not None,
                "pid": tart.pid if tart.is_running else None,
                "restart_on_stop": tart.restart_on_stop,
                "restart_delay_secs": tart.restart_delay_secs,
                "restart_pending": self.supervisor.pending_restart(push_url),
                "log_stdout": tart.log_stdout,
                "log_size": log_file.stat().st_size if log_file.exists() else None,
                "last_hash": tart.last_hash,
                "last_git_message": tart.last_git_message,
                "resident_bytes": metrics.resident_bytes if metrics else None,
                "cpu_total_secs": round(metrics.cpu_total_secs, 2) if metrics else None,
            })
        return status

    def shutdown(self):
        """Shutdown the manager without stopping managed tarts."""
        log.info("Shutting down pushtart...")
        self.sentry.stop()
        log.info("pushtart stopped. Running tarts continue running.")
