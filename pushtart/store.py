"""
Tart store - the durable mapping from push URL to tart record.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import logging
import threading
from dataclasses import replace

from .config import Config, load_config, write_config
from .errors import ExecutionFailed, NotFound
from .models import Tart

log = logging.getLogger("pushtart.store")


class TartStore:
    """In-memory tart store. Records handed out are copies; call save() to
    make a change stick."""

    def __init__(self, config: Config = None):
        self._config = config if config is not None else Config()
        self._lock = threading.Lock()

    def all(self) -> Config:
        with self._lock:
            return replace(
                self._config,
                users=dict(self._config.users),
                tarts={url: tart.copy() for url, tart in self._config.tarts.items()},
            )

    def get(self, push_url: str) -> Tart:
        with self._lock:
            tart = self._config.tarts.get(push_url)
            if tart is None:
                raise NotFound(push_url)
            return tart.copy()

    def exists(self, push_url: str) -> bool:
        with self._lock:
            return push_url in self._config.tarts

    def save(self, push_url: str, tart: Tart):
        with self._lock:
            previous = self._config.tarts.get(push_url)
            self._config.tarts[push_url] = tart.copy()
            self._commit(push_url, previous)

    def delete(self, push_url: str):
        with self._lock:
            previous = self._config.tarts.pop(push_url, None)
            if previous is None:
                raise NotFound(push_url)
            self._commit(push_url, previous)

    def _commit(self, push_url: str, previous: Tart):
        """Flush, putting the previous record back if the write fails."""
        try:
            self._flush()
        except OSError as e:
            if previous is None:
                self._config.tarts.pop(push_url, None)
            else:
                self._config.tarts[push_url] = previous
            log.error("[%s] Failed to save config: %s", push_url, e)
            raise ExecutionFailed(f"Failed to save config: {e}") from e

    def _flush(self):
        pass


class YamlTartStore(TartStore):
    """Tart store that writes the whole config file on every mutation."""

    def _flush(self):
        write_config(self._config)


def open_store(path) -> YamlTartStore:
    return YamlTartStore(load_config(path))
