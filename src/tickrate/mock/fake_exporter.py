"""
Fake Prometheus exporter for trying the scrape collector without a real one.

    python -m tickrate.mock.fake_exporter
    tickrate --scrape http://localhost:9100
"""

from __future__ import annotations

import math
import random
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer, ThreadingHTTPServer


class ExporterState:
    """Counters that grow on every scrape, plus a couple of gauges."""

    def __init__(self, seed: int = 42):
        self._rng = random.Random(seed)
        self._lock = threading.Lock()
        self.tick = 0
        self.requests = {"GET": 0, "POST": 0}
        self.bytes_sent = 0

    def render(self) -> str:
        with self._lock:
            self.tick += 1
            load = 8 + 6 * math.sin(self.tick * 0.1)
            self.requests["GET"] += max(1, int(load * 3))
            self.requests["POST"] += max(1, int(load))
            self.bytes_sent += int(load * 1024 + self._rng.random() * 512)
            in_flight = max(0, int(load + self._rng.gauss(0, 1)))

            lines = [
                "# HELP http_requests_total Requests handled",
                "# TYPE http_requests_total counter",
            ]
            for method, count in sorted(self.requests.items()):
                lines.append(f'http_requests_total{{method="{method}"}} {count}')
            lines += [
                "",
                "# HELP http_response_bytes_total Bytes written to clients",
                "# TYPE http_response_bytes_total counter",
                f"http_response_bytes_total {self.bytes_sent}",
                "",
                "# HELP http_requests_in_flight Requests currently being served",
                "# TYPE http_requests_in_flight gauge",
                f"http_requests_in_flight {in_flight}",
                "",
                "# HELP process_start_time_seconds Start time of the process",
                "# TYPE process_start_time_seconds gauge",
                "process_start_time_seconds 1700000000",
            ]
            return "\n".join(lines) + "\n"


class _MetricsHandler(BaseHTTPRequestHandler):
    def do_GET(self):
        if self.path == "/metrics":
            body = self.server.state.render().encode()
            self.send_response(200)
            self.send_header("Content-Type", "text/plain; version=0.0.4; charset=utf-8")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
        else:
            self.send_response(404)
            self.end_headers()

    def log_message(self, format, *args):
        pass  # Suppress request logging noise


def make_server(host: str = "127.0.0.1", port: int = 9100, seed: int = 42) -> HTTPServer:
    """Bind a server; port 0 picks a free port (see server.server_address)."""
    server = ThreadingHTTPServer((host, port), _MetricsHandler)
    server.state = ExporterState(seed=seed)
    return server


def run_fake_exporter(host: str = "127.0.0.1", port: int = 9100):
    server = make_server(host, port)
    print(f"Fake exporter running at http://{host}:{port}/metrics")
    print("Press Ctrl+C to stop.\n")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    server.server_close()
    print("\nServer stopped.")


if __name__ == "__main__":
    run_fake_exporter()
