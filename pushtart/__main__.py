#!/usr/bin/env python3
"""
pushtart - Entry point.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.

Usage:
    python -m pushtart [--config pushtart.yaml] run
    python -m pushtart [--config pushtart.yaml] deploy --tart /blog
    python -m pushtart [--config pushtart.yaml] <command> --tart /blog [--key value ...]
"""

import argparse
import logging
import signal
import sys
from http.server import ThreadingHTTPServer

from .commands import COMMANDS, dispatch
from .config import DEFAULT_CONFIG_FILE
from .errors import TartError
from .manager import TartManager
from .models import TRUSTED
from .web_handler import StatusHandler

log = logging.getLogger("pushtart")


def parse_params(args: list) -> dict:
    """Turn ["--tart", "/blog", "--log-stdout=yes"] into {"tart": "/blog", "log-stdout": "yes"}."""
    params = {}
    i = 0
    while i < len(args):
        arg = args[i]
        if not arg.startswith("--"):
            raise ValueError(f"unexpected argument: {arg}")
        key = arg[2:]
        if "=" in key:
            key, value = key.split("=", 1)
        elif i + 1 < len(args) and not args[i + 1].startswith("--"):
            i += 1
            value = args[i]
        else:
            value = "yes"
        params[key] = value
        i += 1
    return params


def serve(manager: TartManager):
    StatusHandler.manager = manager

    def signal_handler(sig, frame):
        manager.shutdown()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    manager.restore_processes()
    manager.sentry.start()

    server = ThreadingHTTPServer((manager.web_host, manager.web_port), StatusHandler)
    log.info("pushtart started")
    log.info("Status available at http://%s:%d/api/status", manager.web_host, manager.web_port)

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        manager.shutdown()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="pushtart")
    parser.add_argument("--config", default=DEFAULT_CONFIG_FILE, help="path to the YAML config file")
    parser.add_argument("command", help="run, deploy, or one of: " + ", ".join(sorted(COMMANDS)))
    parser.add_argument("params", nargs=argparse.REMAINDER)
    args = parser.parse_args(argv)

    manager = TartManager.from_config_file(args.config)
    logging.basicConfig(
        level=manager.store.all().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "run":
        serve(manager)
        return 0

    try:
        params = parse_params(args.params)
    except ValueError as e:
        print(f"Err: {e}")
        return 1

    if args.command == "deploy":
        if not params.get("tart"):
            print("USAGE: pushtart deploy --tart <pushURL>")
            return 1
        try:
            ok = manager.deploy(manager.find(params["tart"]).push_url, sys.stdout)
        except TartError as e:
            print(f"Err: {e}")
            return 1
        return 0 if ok else 1

    return dispatch(manager, args.command, params, sys.stdout, TRUSTED)


if __name__ == "__main__":
    sys.exit(main())
