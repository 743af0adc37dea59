# src/procmon/web.py
"""Read-only HTTP dashboard for a running watch session.

PULL-BASED DESIGN:
- The poll loop publishes a frozen MonitorSnapshot after each tick
- Each request renders whatever snapshot is current; no per-client state
- GET /api/processes returns JSON; every other path returns an HTML page
  that refreshes itself

Only enough HTTP/1.1 is spoken to answer one GET per connection.
"""

from __future__ import annotations

import asyncio
import html
import json
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog

from procmon.charts import level_style
from procmon.formatting import format_duration, format_iso_utc, round2

if TYPE_CHECKING:
    from procmon.monitor import MonitorSnapshot, SnapshotPublisher

log = structlog.get_logger()

API_PATH = "/api/processes"
REQUEST_TIMEOUT = 5.0  # seconds to wait for the request head

_HTML_COLORS = {"green": "#22c55e", "yellow": "#eab308", "red": "#ef4444"}

_STYLE = """
    * { box-sizing: border-box; margin: 0; padding: 0; }
    body { font-family: -apple-system, 'Segoe UI', Roboto, monospace;
           background: #0f172a; color: #e2e8f0; padding: 20px; }
    .header { display: flex; justify-content: space-between; align-items: center;
              margin-bottom: 20px; padding-bottom: 15px; border-bottom: 1px solid #334155; }
    h1 { font-size: 1.5rem; color: #38bdf8; }
    .meta { color: #94a3b8; font-size: 0.875rem; }
    .stats { display: grid; grid-template-columns: repeat(auto-fit, minmax(150px, 1fr));
             gap: 15px; margin-bottom: 20px; }
    .stat-card { background: #1e293b; padding: 15px; border-radius: 8px;
                 border: 1px solid #334155; }
    .stat-label { color: #94a3b8; font-size: 0.75rem; text-transform: uppercase; }
    .stat-value { font-size: 1.5rem; font-weight: bold; color: #f8fafc; }
    table { width: 100%; border-collapse: collapse; background: #1e293b; }
    th, td { padding: 12px 15px; text-align: left; border-bottom: 1px solid #334155; }
    th { background: #0f172a; color: #94a3b8; font-size: 0.75rem; text-transform: uppercase; }
    .process-name { max-width: 300px; overflow: hidden; text-overflow: ellipsis;
                    white-space: nowrap; }
    .bar-container { width: 100px; height: 8px; background: #334155; border-radius: 4px;
                     overflow: hidden; display: inline-block; margin-right: 10px; }
    .bar { height: 100%; border-radius: 4px; }
    .empty { text-align: center; padding: 40px; color: #94a3b8; }
    .footer { margin-top: 20px; text-align: center; color: #64748b; font-size: 0.75rem; }
"""


def build_api_payload(snapshot: MonitorSnapshot, now: datetime | None = None) -> dict:
    """JSON document served at /api/processes."""
    now = now or datetime.now(timezone.utc)
    return {
        "timestamp": format_iso_utc(now),
        "processType": snapshot.process_type,
        "filterPattern": snapshot.filter_pattern,
        "uptime": snapshot.uptime_ms,
        "processes": [
            {
                "pid": proc.pid,
                "name": snapshot.display_name(proc.pid, proc.name),
                "cmd": proc.cmd,
                "cpu": round2(proc.cpu),
                "memoryMB": round2(proc.memory_mb),
            }
            for proc in snapshot.processes
        ],
        "alerts": [alert.to_dict() for alert in snapshot.alerts],
    }


def _color(value: float, warn: float, high: float) -> str:
    return _HTML_COLORS[level_style(value, warn, high)]


def render_html(snapshot: MonitorSnapshot, refresh_seconds: int = 2) -> str:
    """Self-refreshing dashboard page. Every process-supplied string is escaped."""
    rows = []
    for proc in snapshot.processes:
        cpu_color = _color(proc.cpu, 30, 70)
        mem_color = _color(proc.memory_mb, 200, 500)
        cpu_bar = min(proc.cpu, 100)
        mem_bar = min(proc.memory_mb / 1000 * 100, 100)
        name = html.escape(snapshot.display_name(proc.pid, proc.name))
        title = html.escape(proc.cmd or proc.name, quote=True)
        rows.append(
            f"""
        <tr>
          <td>{proc.pid}</td>
          <td class="process-name" title="{title}">{name}</td>
          <td>
            <div class="bar-container">
              <div class="bar" style="width: {cpu_bar:.1f}%; background: {cpu_color};"></div>
            </div>
            <span style="color: {cpu_color}">{proc.cpu:.1f}%</span>
          </td>
          <td>
            <div class="bar-container">
              <div class="bar" style="width: {mem_bar:.1f}%; background: {mem_color};"></div>
            </div>
            <span style="color: {mem_color}">{proc.memory_mb:.1f} MB</span>
          </td>
        </tr>"""
        )

    if rows:
        rows_html = "".join(rows)
        body = f"""
  <table>
    <thead>
      <tr><th>PID</th><th>Process/Script</th><th>CPU</th><th>Memory</th></tr>
    </thead>
    <tbody>{rows_html}
    </tbody>
  </table>"""
    else:
        body = '<div class="empty">No matching processes found. Waiting...</div>'

    filter_part = ""
    if snapshot.filter_pattern:
        filter_part = f"| Filter: <strong>{html.escape(snapshot.filter_pattern)}</strong>"

    total_cpu = sum(p.cpu for p in snapshot.processes)
    total_mem = sum(p.memory_mb for p in snapshot.processes)

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <meta http-equiv="refresh" content="{refresh_seconds}">
  <title>procmon Web UI</title>
  <style>{_STYLE}</style>
</head>
<body>
  <div class="header">
    <h1>procmon</h1>
    <div class="meta">
      Monitoring: <strong>{html.escape(snapshot.process_type)}</strong>
      {filter_part}
    </div>
  </div>
  <div class="stats">
    <div class="stat-card">
      <div class="stat-label">Processes</div>
      <div class="stat-value">{len(snapshot.processes)}</div>
    </div>
    <div class="stat-card">
      <div class="stat-label">Uptime</div>
      <div class="stat-value">{format_duration(snapshot.uptime_ms)}</div>
    </div>
    <div class="stat-card">
      <div class="stat-label">Total CPU</div>
      <div class="stat-value">{total_cpu:.1f}%</div>
    </div>
    <div class="stat-card">
      <div class="stat-label">Total Memory</div>
      <div class="stat-value">{total_mem:.0f} MB</div>
    </div>
    <div class="stat-card">
      <div class="stat-label">Alerts</div>
      <div class="stat-value">{len(snapshot.alerts)}</div>
    </div>
  </div>
  {body}
  <div class="footer">
    Auto-refreshes every {refresh_seconds} seconds | Press Ctrl+C in terminal to stop
  </div>
</body>
</html>"""


def _response(status: str, content_type: str, body: str) -> bytes:
    payload = body.encode("utf-8")
    head = (
        f"HTTP/1.1 {status}\r\n"
        f"Content-Type: {content_type}; charset=utf-8\r\n"
        f"Content-Length: {len(payload)}\r\n"
        "Cache-Control: no-store\r\n"
        "Connection: close\r\n"
        "\r\n"
    )
    return head.encode("ascii") + payload


def _request_path(request_line: str) -> str | None:
    """Path of a GET request line, without query string."""
    parts = request_line.split()
    if len(parts) < 2 or parts[0] != "GET":
        return None
    return parts[1].split("?", 1)[0]


class DashboardServer:
    """TCP server answering dashboard requests from the current snapshot."""

    def __init__(
        self,
        publisher: SnapshotPublisher,
        host: str = "127.0.0.1",
        port: int | None = 3000,
        refresh_seconds: int = 2,
    ) -> None:
        self.publisher = publisher
        self.host = host
        self.port = 3000 if port is None else port
        self.refresh_seconds = refresh_seconds
        self._server: asyncio.Server | None = None

    @property
    def url(self) -> str:
        host = "localhost" if self.host in ("127.0.0.1", "0.0.0.0", "") else self.host
        return f"http://{host}:{self.port}"

    @property
    def is_running(self) -> bool:
        return self._server is not None

    async def start(self) -> None:
        """Start listening. Port 0 picks a free port; self.port is updated."""
        self._server = await asyncio.start_server(self._handle_client, self.host, self.port)
        sockets = self._server.sockets or []
        if sockets:
            self.port = sockets[0].getsockname()[1]
        log.info("dashboard_started", host=self.host, port=self.port)

    async def stop(self) -> None:
        """Stop the server."""
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        log.info("dashboard_stopped")

    def respond(self, path: str | None) -> bytes:
        """Full HTTP response for a request path (None for unsupported requests)."""
        if path is None:
            return _response("405 Method Not Allowed", "text/plain", "Method Not Allowed\n")

        snapshot = self.publisher.current
        if snapshot is None:
            return _response("503 Service Unavailable", "text/plain", "Starting...\n")

        if path == API_PATH:
            return _response("200 OK", "application/json", json.dumps(build_api_payload(snapshot)))
        return _response("200 OK", "text/html", render_html(snapshot, self.refresh_seconds))

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Read one request head, write one response, close."""
        try:
            request_line = await asyncio.wait_for(reader.readline(), timeout=REQUEST_TIMEOUT)
            # Drain headers up to the blank line
            while True:
                line = await asyncio.wait_for(reader.readline(), timeout=REQUEST_TIMEOUT)
                if line in (b"\r\n", b"\n", b""):
                    break
            path = _request_path(request_line.decode("latin-1"))
            writer.write(self.respond(path))
            await writer.drain()
        except (asyncio.TimeoutError, asyncio.LimitOverrunError, ValueError, ConnectionError) as e:
            # ValueError: request line longer than the stream limit
            log.debug("dashboard_client_error", error=str(e))
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass
