"""
Ownership checks for tart mutation.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

from .errors import Unauthorized
from .models import Account, Principal, Tart, Trusted


def is_owner(username: str, owners) -> bool:
    """Case-sensitive exact membership test."""
    return username in owners


def check_owner(principal: Principal, tart: Tart):
    """Raise Unauthorized unless the principal may act on the tart."""
    if isinstance(principal, Trusted):
        return
    if isinstance(principal, Account):
        if is_owner(principal.name, tart.owners):
            return
        raise Unauthorized(principal.name)
    raise TypeError(f"unknown principal: {principal!r}")
