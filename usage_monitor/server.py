"""JSON HTTP API over the usage monitor.

Routes:
    GET    /api/data                  aggregated report (cached)
    GET    /api/keys                  key ids with masked keys
    POST   /api/keys                  {"key": ...} or [{"key": ...}, ...]
    POST   /api/keys/batch-delete     {"ids": [...]}
    DELETE /api/keys/<id>
    POST   /api/keys/<id>/refresh     single-key fetch, bypasses cache
"""

from __future__ import annotations

import asyncio
import json
import re
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Optional

from rich.console import Console

from usage_monitor.errors import DuplicateKeyError, KeyNotFoundError, UsageMonitorError
from usage_monitor.orchestrator import UsageMonitor

MAX_BODY = 1_048_576  # 1 MB
_REFRESH_RE = re.compile(r"^/api/keys/(.+)/refresh$")


class BadRequest(ValueError):
    pass


def make_handler(monitor: UsageMonitor) -> type[BaseHTTPRequestHandler]:

    class Handler(BaseHTTPRequestHandler):
        def log_message(self, format: str, *args: Any) -> None:
            pass  # suppress default stderr logging

        def _headers(self) -> None:
            self.send_header("Access-Control-Allow-Origin", "*")
            self.send_header("X-Content-Type-Options", "nosniff")
            self.send_header("X-Frame-Options", "DENY")
            self.send_header("Referrer-Policy", "no-referrer")

        def _json(self, data: Any, code: int = 200) -> None:
            body = json.dumps(data, ensure_ascii=False).encode()
            self.send_response(code)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self._headers()
            self.end_headers()
            self.wfile.write(body)

        def _error(self, message: str, code: int) -> None:
            self._json({"error": message}, code)

        def _read_json(self) -> Any:
            try:
                length = int(self.headers.get("Content-Length", 0) or 0)
            except ValueError:
                raise BadRequest("Invalid Content-Length") from None
            if length < 0:
                raise BadRequest("Invalid Content-Length")
            if length > MAX_BODY:
                raise BadRequest("Request body too large")
            raw = self.rfile.read(length) if length else b""
            try:
                return json.loads(raw or b"null")
            except (json.JSONDecodeError, UnicodeDecodeError):
                raise BadRequest("Invalid JSON") from None

        def _dispatch(self, method: str) -> None:
            path = self.path.split("?")[0]
            try:
                self._route(method, path)
            except ValueError as exc:
                self._error(str(exc), 400)
            except KeyNotFoundError:
                self._error("Key not found", 404)
            except DuplicateKeyError:
                self._error("API key already exists", 409)
            except UsageMonitorError as exc:
                self._error(str(exc), 500)
            except Exception as exc:
                self._error(str(exc) or "Internal Server Error", 500)

        def _route(self, method: str, path: str) -> None:
            if method == "GET" and path == "/api/data":
                report = asyncio.run(monitor.get_report())
                self._json(report.to_dict())
            elif method == "GET" and path == "/api/keys":
                self._json(monitor.list_keys())
            elif method == "POST" and path == "/api/keys":
                self._add_keys(self._read_json())
            elif method == "POST" and path == "/api/keys/batch-delete":
                body = self._read_json()
                ids = body.get("ids") if isinstance(body, dict) else None
                if not isinstance(ids, list) or not ids:
                    raise BadRequest("ids array is required")
                deleted = asyncio.run(monitor.delete_keys([str(i) for i in ids]))
                self._json({"success": True, "deleted": deleted})
            elif method == "POST" and _REFRESH_RE.match(path):
                key_id = _REFRESH_RE.match(path).group(1)
                result = asyncio.run(monitor.refresh_one(key_id))
                self._json({"success": True, "data": result.to_dict()})
            elif method == "DELETE" and path.startswith("/api/keys/"):
                key_id = path[len("/api/keys/"):]
                if not key_id:
                    raise BadRequest("Key ID is required")
                asyncio.run(monitor.delete_key(key_id))
                self._json({"success": True})
            else:
                self._error("Not found", 404)

        def _add_keys(self, body: Any) -> None:
            if isinstance(body, list):
                added, skipped = asyncio.run(monitor.import_keys(body))
                self._json({"success": True, "added": added, "skipped": skipped})
                return
            if not isinstance(body, dict) or "key" not in body:
                raise BadRequest("key is required")
            if not body["key"] or not isinstance(body["key"], str):
                raise BadRequest("key cannot be empty")
            asyncio.run(monitor.add_key(body["key"]))
            self._json({"success": True})

        def do_GET(self) -> None:
            self._dispatch("GET")

        def do_POST(self) -> None:
            self._dispatch("POST")

        def do_DELETE(self) -> None:
            self._dispatch("DELETE")

        def do_OPTIONS(self) -> None:
            self.send_response(204)
            self._headers()
            self.send_header("Access-Control-Allow-Methods", "GET, POST, DELETE, OPTIONS")
            self.send_header("Access-Control-Allow-Headers", "Content-Type")
            self.end_headers()

    return Handler


def run(monitor: UsageMonitor, host: str = "localhost", port: int = 8460,
        console: Optional[Console] = None) -> int:
    console = console or Console()
    server = HTTPServer((host, port), make_handler(monitor))
    console.print("\n  [bold]Usage Monitor — API[/bold]")
    console.print(f"  Listening on http://{host}:{port}/api/data")
    console.print("  Press Ctrl+C to stop\n")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        console.print("\n  Server stopped.")
    server.server_close()
    return 0
