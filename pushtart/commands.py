"""
Command handlers - the text surface the SSH dispatcher and console call into.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

Every command receives a flat ``{"param": "value"}`` map, an output stream
and the acting principal. The map is parsed into a typed request before the
manager is called, so nothing below this module sees untyped parameters.
Failures are written as ``Err: ...`` lines; nothing is raised to the caller.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import psutil

from .errors import InvalidArgument, TartError
from .manager import TartManager
from .models import Account, Principal, Trusted
from .stats import format_bytes, format_cpu_time

log = logging.getLogger("pushtart.commands")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_UNKNOWN_COMMAND = 2


def parse_yes_no(value: str, field_name: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("yes", "y", "true", "on"):
        return True
    if lowered in ("no", "n", "false", "off"):
        return False
    raise InvalidArgument(f"could not read value for {field_name}. Expected yes or no.")


def parse_int(value: str, field_name: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise InvalidArgument(f"could not read value for {field_name}. Did you provide an integer?") from None


def _optional(params: dict, key: str) -> Optional[str]:
    value = params.get(key)
    return value if value else None


@dataclass
class TartRequest:
    tart: str

    @classmethod
    def from_params(cls, params: dict) -> "TartRequest":
        return cls(tart=params["tart"])


@dataclass
class NewTartRequest:
    tart: str
    owner: Optional[str]

    @classmethod
    def from_params(cls, params: dict) -> "NewTartRequest":
        return cls(tart=params["tart"], owner=_optional(params, "owner"))


@dataclass
class EditRequest:
    tart: str
    name: Optional[str] = None
    set_env: Optional[str] = None
    delete_env: Optional[str] = None
    log_stdout: Optional[bool] = None

    @classmethod
    def from_params(cls, params: dict) -> "EditRequest":
        log_stdout = _optional(params, "log-stdout")
        return cls(
            tart=params["tart"],
            name=_optional(params, "name"),
            set_env=_optional(params, "set-env"),
            delete_env=_optional(params, "delete-env"),
            log_stdout=parse_yes_no(log_stdout, "log-stdout") if log_stdout else None,
        )


@dataclass
class RestartModeRequest:
    tart: str
    enabled: bool
    lull_period: Optional[int] = None

    @classmethod
    def from_params(cls, params: dict) -> "RestartModeRequest":
        lull_period = _optional(params, "lull-period")
        return cls(
            tart=params["tart"],
            enabled=parse_yes_no(params["enabled"], "enabled"),
            lull_period=parse_int(lull_period, "lull-period") if lull_period else None,
        )


@dataclass
class OwnerRequest:
    tart: str
    username: str

    @classmethod
    def from_params(cls, params: dict) -> "OwnerRequest":
        return cls(tart=params["tart"], username=params["username"])


@dataclass
class Command:
    name: str
    usage: str
    required: tuple
    handler: Callable


COMMANDS: dict[str, Command] = {}


def command(name: str, usage: str, required: tuple = ()):
    def register(handler):
        COMMANDS[name] = Command(name, usage, required, handler)
        return handler
    return register


def missing_fields(required, params: dict) -> list:
    return [field_name for field_name in required if not params.get(field_name)]


def dispatch(manager: TartManager, name: str, params: dict, out, principal: Principal) -> int:
    """Run one command. Returns a process-style exit code."""
    cmd = COMMANDS.get(name)
    if cmd is None:
        out.write(f"Err: unknown command '{name}'\n")
        return EXIT_UNKNOWN_COMMAND

    missing = missing_fields(cmd.required, params)
    if missing:
        out.write(f"USAGE: {cmd.usage}\n")
        out.write("Missing fields: " + ", ".join(f"--{m}" for m in missing) + "\n")
        return EXIT_FAILED

    try:
        cmd.handler(manager, params, out, principal)
    except TartError as e:
        log.debug("%s by %s failed: %s", name, principal, e)
        out.write(f"Err: {e}\n")
        return EXIT_FAILED
    except (OSError, psutil.Error) as e:
        log.error("%s by %s failed: %s", name, principal, e)
        out.write(f"Err: {e}\n")
        return EXIT_FAILED
    return EXIT_OK


@command("list-tarts", "pushtart list-tarts")
def list_tarts(manager: TartManager, params: dict, out, principal: Principal):
    for tart in manager.list_tarts():
        out.write(f"{tart.name} ({tart.push_url}): ")
        if tart.is_running:
            out.write(f"Running (PID {tart.pid}) ")
        else:
            out.write("Stopped. ")
        if tart.log_stdout:
            out.write("[Stdout -> Log is ENABLED]\n")
        else:
            out.write("[Stdout -> Log is disabled]\n")
        for env in tart.env:
            out.write(f"\t{env}\n")


@command("new-tart", "pushtart new-tart --tart <pushURL> [--owner <username>]", ("tart",))
def new_tart(manager: TartManager, params: dict, out, principal: Principal):
    req = NewTartRequest.from_params(params)
    if isinstance(principal, Account):
        owner = principal.name
    elif isinstance(principal, Trusted):
        if not req.owner:
            raise InvalidArgument("New tarts created from the management console need --owner <username>.")
        owner = req.owner
    else:
        raise TypeError(f"unknown principal: {principal!r}")
    tart = manager.new(req.tart, owner)
    out.write(f"Created tart {tart.push_url} owned by {owner}\n")


@command("delete-tart", "pushtart delete-tart --tart <pushURL>", ("tart",))
def delete_tart(manager: TartManager, params: dict, out, principal: Principal):
    tart = manager.find(TartRequest.from_params(params).tart)
    manager.delete(tart.push_url, principal)
    out.write(f"Deleted tart {tart.push_url}\n")


@command("start-tart", "pushtart start-tart --tart <pushURL>", ("tart",))
def start_tart(manager: TartManager, params: dict, out, principal: Principal):
    tart = manager.find(TartRequest.from_params(params).tart)
    pid = manager.start(tart.push_url, principal)
    out.write(f"Started {tart.push_url} (PID {pid})\n")


@command("stop-tart", "pushtart stop-tart --tart <pushURL>", ("tart",))
def stop_tart(manager: TartManager, params: dict, out, principal: Principal):
    tart = manager.find(TartRequest.from_params(params).tart)
    manager.stop(tart.push_url, principal)
    out.write(f"Stopped {tart.push_url}\n")


@command("edit-tart",
         'pushtart edit-tart --tart <pushURL> [--name <name>] [--set-env "<env-name>=<env-value>"] '
         '[--delete-env <env-name>] [--log-stdout yes/no]',
         ("tart",))
def edit_tart(manager: TartManager, params: dict, out, principal: Principal):
    req = EditRequest.from_params(params)
    tart = manager.find(req.tart)
    manager.edit(
        tart.push_url,
        principal,
        name=req.name,
        set_env_entry=req.set_env,
        delete_env=req.delete_env,
        log_stdout=req.log_stdout,
    )
    out.write(f"Updated {tart.push_url}\n")


@command("tart-restart-mode",
         "pushtart tart-restart-mode --tart <pushURL> --enabled yes/no [--lull-period <seconds>]",
         ("tart", "enabled"))
def tart_restart_mode(manager: TartManager, params: dict, out, principal: Principal):
    req = RestartModeRequest.from_params(params)
    tart = manager.find(req.tart)
    tart = manager.set_restart_policy(tart.push_url, req.enabled, req.lull_period, principal)
    state = "enabled" if tart.restart_on_stop else "disabled"
    out.write(f"Restart on stop {state} for {tart.push_url} (lull period {tart.restart_delay_secs}s)\n")


@command("tart-add-owner", "pushtart tart-add-owner --tart <pushURL> --username <username>",
         ("tart", "username"))
def tart_add_owner(manager: TartManager, params: dict, out, principal: Principal):
    req = OwnerRequest.from_params(params)
    tart = manager.find(req.tart)
    manager.add_owner(tart.push_url, req.username, principal)
    out.write(f"Added {req.username} as an owner of {tart.push_url}\n")


@command("tart-remove-owner", "pushtart tart-remove-owner --tart <pushURL> --username <username>",
         ("tart", "username"))
def tart_remove_owner(manager: TartManager, params: dict, out, principal: Principal):
    req = OwnerRequest.from_params(params)
    tart = manager.find(req.tart)
    manager.remove_owner(tart.push_url, req.username, principal)
    out.write(f"Removed {req.username} from the owners of {tart.push_url}\n")


@command("digest-tartconfig", "pushtart digest-tartconfig --tart <pushURL>", ("tart",))
def digest_tartconfig(manager: TartManager, params: dict, out, principal: Principal):
    tart = manager.find(TartRequest.from_params(params).tart)
    if not manager.digest(tart.push_url, out, principal):
        raise TartError("tartconfig did not complete successfully")


@command("tart-stats", "pushtart tart-stats --tart <pushURL>", ("tart",))
def tart_stats(manager: TartManager, params: dict, out, principal: Principal):
    tart = manager.find(TartRequest.from_params(params).tart)
    metrics = manager.get_stats(tart.push_url)
    out.write(f"{tart.name} ({tart.push_url}): PID {metrics.pid}\n")
    out.write(f"\tReal Memory: {format_bytes(metrics.resident_bytes)}\n")
    out.write(f"\tCPU: {format_cpu_time(metrics.cpu_total_secs)}\n")
