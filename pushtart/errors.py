"""
Error types raised by the tart orchestrator.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""


class TartError(Exception):
    """Base class for every failure the command layer renders as text."""


class NotFound(TartError):
    def __init__(self, push_url: str):
        super().__init__("A tart by that pushURL does not exist")
        self.push_url = push_url


class AlreadyExists(TartError):
    def __init__(self, push_url: str, message: str = "A tart by that pushURL already exists"):
        super().__init__(message)
        self.push_url = push_url


class Unauthorized(TartError):
    def __init__(self, username: str):
        super().__init__(f"You ({username}) are not an owner of the specified tart")
        self.username = username


class InvalidArgument(TartError):
    pass


class AlreadyRunning(TartError):
    def __init__(self, push_url: str, pid: int):
        super().__init__(f"Tart {push_url} is already running (PID {pid})")
        self.push_url = push_url
        self.pid = pid


class NotRunning(TartError):
    def __init__(self, push_url: str):
        super().__init__(f"Tart {push_url} is not running")
        self.push_url = push_url


class ExecutionFailed(TartError):
    pass


class LastOwner(TartError):
    def __init__(self, push_url: str):
        super().__init__("A tart must always have at least one owner. Add another owner or delete the tart.")
        self.push_url = push_url
