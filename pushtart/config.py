"""
Global configuration for pushtart.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .models import Tart, User

log = logging.getLogger("pushtart.config")

DEFAULT_CONFIG_FILE = "pushtart.yaml"
DEFAULT_SENTRY_INTERVAL = 10
DEFAULT_STOP_GRACE_SECONDS = 5
DEFAULT_STARTUP_SCRIPT = "startup.sh"


@dataclass
class Config:
    name: str = "pushtart"
    path: Path = None  # Where the file lives; never written into it
    data_path: str = "data"
    deployment_path: str = "deployments"
    run_sentry_interval: int = DEFAULT_SENTRY_INTERVAL
    stop_grace_seconds: float = DEFAULT_STOP_GRACE_SECONDS
    startup_script: str = DEFAULT_STARTUP_SCRIPT
    web_host: str = "0.0.0.0"
    web_port: int = 8080
    log_level: str = "INFO"
    max_log_size_mb: float = 10
    users: dict = field(default_factory=dict)
    tarts: dict = field(default_factory=dict)

    @property
    def base_dir(self) -> Path:
        if self.path is None:
            return Path.cwd()
        return Path(self.path).parent.resolve()

    def resolve(self, location: str) -> Path:
        """Resolve a configured path relative to the config file's directory."""
        path = Path(location)
        if not path.is_absolute():
            path = self.base_dir / path
        return path

    @property
    def data_dir(self) -> Path:
        return self.resolve(self.data_path)

    @property
    def deployment_dir(self) -> Path:
        return self.resolve(self.deployment_path)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "data_path": self.data_path,
            "deployment_path": self.deployment_path,
            "run_sentry_interval": self.run_sentry_interval,
            "stop_grace_seconds": self.stop_grace_seconds,
            "startup_script": self.startup_script,
            "web_ui": {"host": self.web_host, "port": self.web_port},
            "logging": {"level": self.log_level, "max_size_mb": self.max_log_size_mb},
            "users": {name: user.to_dict() for name, user in self.users.items()},
            "tarts": {url: tart.to_dict() for url, tart in self.tarts.items()},
        }

    @classmethod
    def from_dict(cls, data: dict, path: Path = None) -> "Config":
        data = data or {}
        web_ui = data.get("web_ui", {}) or {}
        logging_cfg = data.get("logging", {}) or {}
        config = cls(
            name=data.get("name", "pushtart"),
            path=path,
            data_path=data.get("data_path", "data"),
            deployment_path=data.get("deployment_path", "deployments"),
            run_sentry_interval=data.get("run_sentry_interval", DEFAULT_SENTRY_INTERVAL),
            stop_grace_seconds=data.get("stop_grace_seconds", DEFAULT_STOP_GRACE_SECONDS),
            startup_script=data.get("startup_script", DEFAULT_STARTUP_SCRIPT),
            web_host=web_ui.get("host", "0.0.0.0"),
            web_port=web_ui.get("port", 8080),
            log_level=logging_cfg.get("level", "INFO"),
            max_log_size_mb=logging_cfg.get("max_size_mb", 10),
        )
        for name, user in (data.get("users") or {}).items():
            config.users[name] = User.from_dict({"name": name, **(user or {})})
        for url, tart in (data.get("tarts") or {}).items():
            config.tarts[url] = Tart.from_dict({**(tart or {}), "push_url": url})
        return config


def load_config(path) -> Config:
    """Load the config file, generating a default one if it does not exist."""
    path = Path(path).resolve()
    if not path.exists():
        log.info("Now generating default config to: %s", path)
        config = Config(path=path)
        write_config(config)
        return config

    with open(path) as f:
        data = yaml.safe_load(f)
    return Config.from_dict(data, path=path)


def write_config(config: Config):
    if config.path is None:
        raise ValueError("config has no path to write to")
    tmp_path = Path(f"{config.path}.tmp")
    try:
        with open(tmp_path, "w") as f:
            yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
        tmp_path.replace(config.path)
    except OSError as e:
        log.error("Failed to save config to %s: %s", config.path, e)
        raise
