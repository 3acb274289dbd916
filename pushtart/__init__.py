"""
pushtart - Push git repositories, get supervised long-running processes.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

from .commands import dispatch
from .manager import TartManager
from .models import RunMetrics, Tart, TRUSTED, principal_from_username
from .store import TartStore, YamlTartStore

__version__ = "1.0.0"
__all__ = [
    "TartManager", "Tart", "RunMetrics", "TartStore", "YamlTartStore",
    "TRUSTED", "principal_from_username", "dispatch",
]
