import socket
import sys
import threading

import pytest

# Ensure project root is importable (so `import npr` / `import main` work without installing)
import os as _os
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from npr.models import Port  # noqa: E402


class ScriptedBrowser:
    """Returns (or raises) one scripted item per discover() call."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def discover(self, service_type=None, timeout_s=None):
        self.calls.append((service_type, timeout_s))
        item = self.results.pop(0) if self.results else []
        if isinstance(item, Exception):
            raise item
        return list(item)


class RecordingProbe:
    """is_alive stand-in: addresses in `alive` answer, everything else is dead."""

    def __init__(self, alive=()):
        self.alive = set(alive)
        self.calls = []

    def __call__(self, address):
        self.calls.append(address)
        return address in self.alive


@pytest.fixture
def make_port():
    def _make(address, name, *ids):
        return Port(address=address, display_name=name, related_identifiers=tuple(ids))

    return _make


class DripServer:
    """TCP peer that sends `payload` one byte every `interval` seconds per connection,
    then holds the connection open until closed."""

    def __init__(self, payload: bytes, interval: float):
        self.payload = payload
        self.interval = interval
        self._stop = threading.Event()
        self._conns = []
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(32)
        self._sock.settimeout(0.05)
        self.port = self._sock.getsockname()[1]
        threading.Thread(target=self._accept, daemon=True).start()

    def _accept(self):
        while not self._stop.is_set():
            try:
                conn, _ = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            self._conns.append(conn)
            threading.Thread(target=self._serve, args=(conn,), daemon=True).start()

    def _serve(self, conn):
        try:
            for b in self.payload:
                if self._stop.wait(self.interval):
                    return
                conn.sendall(bytes([b]))
            self._stop.wait()
        except OSError:
            pass

    def close(self):
        self._stop.set()
        self._sock.close()
        for conn in self._conns:
            conn.close()


@pytest.fixture
def slow_http_peer():
    """Answers a valid 200 response, but takes ~2s to dribble it out."""
    srv = DripServer(b"HTTP/1.1 200 OK\r\nContent-Length: 0\r\n\r\n", interval=0.05)
    yield srv.port
    srv.close()


@pytest.fixture
def silent_peer():
    """Accepts connections and never sends anything."""
    srv = DripServer(b"", interval=0)
    yield srv.port
    srv.close()
