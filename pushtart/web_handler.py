"""
Read-only JSON status endpoint for pushtart.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

import json
from datetime import datetime
from http.server import BaseHTTPRequestHandler
from urllib.parse import unquote, urlparse

from .errors import NotFound, NotRunning


class StatusHandler(BaseHTTPRequestHandler):
    manager = None  # Will be set by main()

    def log_message(self, format, *args):
        pass

    def _send_json(self, code: int, payload):
        self.send_response(code)
        self.send_header("Content-type", "application/json")
        self.end_headers()
        self.wfile.write(json.dumps(payload).encode())

    def do_GET(self):
        path = urlparse(self.path).path
        if path == "/api/status":
            self._send_json(200, {
                "name": self.manager.store.all().name,
                "uptime": str(datetime.now() - self.manager.started_at).split(".")[0],
                "tarts": self.manager.get_status(),
            })
        elif path.startswith("/api/stats/"):
            # /api/stats/<pushURL without the leading slash>
            push_url = "/" + unquote(path[len("/api/stats/"):]).strip("/")
            try:
                metrics = self.manager.get_stats(push_url)
            except NotFound as e:
                self._send_json(404, {"error": str(e)})
                return
            except NotRunning as e:
                self._send_json(409, {"error": str(e)})
                return
            self._send_json(200, {
                "push_url": push_url,
                "pid": metrics.pid,
                "resident_bytes": metrics.resident_bytes,
                "cpu_user_secs": metrics.cpu_user_secs,
                "cpu_system_secs": metrics.cpu_system_secs,
                "cpu_total_secs": metrics.cpu_total_secs,
                "taken_at": metrics.taken_at.isoformat(),
            })
        else:
            self.send_response(404)
            self.end_headers()
