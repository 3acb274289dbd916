"""
Data models for pushtart.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Union


@dataclass
class Tart:
    push_url: str
    name: str = ""
    owners: list = field(default_factory=list)
    is_running: bool = False
    pid: int = 0  # Only meaningful while is_running
    log_stdout: bool = False
    env: list = field(default_factory=list)  # "KEY=VALUE" strings, keys unique
    restart_on_stop: bool = False
    restart_delay_secs: int = 0  # Lull period before an automatic restart
    last_hash: str = ""
    last_git_message: str = ""

    def to_dict(self) -> dict:
        return {f.name: _copy_value(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict) -> "Tart":
        known = {f.name for f in fields(cls)}
        return cls(**{k: _copy_value(v) for k, v in data.items() if k in known})

    def copy(self) -> "Tart":
        return Tart.from_dict(self.to_dict())


@dataclass
class User:
    name: str
    password: str = ""
    allow_ssh_password: bool = False
    ssh_pub_key: str = ""

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict) -> "User":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class RunMetrics:
    pid: int
    resident_bytes: int
    cpu_user_secs: float
    cpu_system_secs: float
    taken_at: datetime = field(default_factory=datetime.now)

    @property
    def cpu_total_secs(self) -> float:
        return self.cpu_user_secs + self.cpu_system_secs


@dataclass(frozen=True)
class Trusted:
    """The management console. Ownership checks do not apply."""

    def __str__(self):
        return "<trusted>"


@dataclass(frozen=True)
class Account:
    """An authenticated user acting through the SSH transport."""
    name: str

    def __str__(self):
        return self.name


Principal = Union[Trusted, Account]

TRUSTED = Trusted()


def principal_from_username(username: str) -> Principal:
    """Map a transport username onto a principal; empty means trusted."""
    if not username:
        return TRUSTED
    return Account(username)


def _copy_value(value):
    if isinstance(value, list):
        return list(value)
    return value
