"""
pytest configuration and fixtures.
"""

import socket
import threading
import time
from collections import Counter
from typing import Generator, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from lineterm import ServerConfig, TerminalServer
from lineterm.core import ResourceRegistry
from lineterm.session import CommandHistory, EditBuffer, ProtocolEngine


class FakeTransport:
    """
    In-memory transport for the protocol engine.

    Args:
        capacity: Total bytes accepted before writes start coming up
                  short. None means unlimited.
    """

    def __init__(self, capacity: Optional[int] = None):
        self.sent = bytearray()
        self.writes: list[bytes] = []
        self.capacity = capacity

    def write(self, data: bytes) -> int:
        if self.capacity is None:
            accepted = len(data)
        else:
            accepted = max(0, min(len(data), self.capacity - len(self.sent)))
        self.sent += data[:accepted]
        self.writes.append(bytes(data[:accepted]))
        return accepted

    def clear(self):
        self.sent.clear()
        self.writes.clear()


class RecordingCloser:
    """Thread-safe closer that counts how often each resource is closed."""

    def __init__(self):
        self.calls: Counter = Counter()
        self._lock = threading.Lock()

    def __call__(self, resource):
        with self._lock:
            self.calls[id(resource)] += 1

    def count(self, resource) -> int:
        with self._lock:
            return self.calls[id(resource)]

    @property
    def total(self) -> int:
        with self._lock:
            return sum(self.calls.values())


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def make_transport():
    """Factory for extra fake transports."""
    return FakeTransport


@pytest.fixture
def history() -> CommandHistory:
    return CommandHistory(max_entries=100)


@pytest.fixture
def make_engine(transport: FakeTransport):
    """Factory for a ProtocolEngine wired to the fake transport."""

    def factory(
        max_length: int = 1023,
        history: Optional[CommandHistory] = None,
        responder=None,
        prompt: bytes = b"> ",
        transport: FakeTransport = transport,
        **kwargs,
    ) -> ProtocolEngine:
        return ProtocolEngine(
            transport=transport,
            prompt=prompt,
            buffer=EditBuffer(max_length),
            history=history if history is not None else CommandHistory(100),
            responder=responder,
            **kwargs,
        )

    return factory


@pytest.fixture
def socket_closer() -> RecordingCloser:
    return RecordingCloser()


@pytest.fixture
def buffer_releaser() -> RecordingCloser:
    return RecordingCloser()


@pytest.fixture
def recording_registry(socket_closer, buffer_releaser) -> ResourceRegistry:
    """Registry whose closers only count calls."""
    return ResourceRegistry(socket_closer=socket_closer, buffer_releaser=buffer_releaser)


@pytest.fixture
def config() -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        min_workers=2,
        max_workers=4,
        queue_size=4,
        log_level="WARNING",
        shutdown_timeout=2.0,
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


class TerminalClient:
    """Blocking loopback client with a read-until helper."""

    def __init__(self, address: tuple, timeout: float = 5.0):
        self.sock = socket.create_connection(address, timeout=timeout)
        self.received = bytearray()

    def send(self, data: bytes):
        self.sock.sendall(data)

    def read_until(self, marker: bytes, timeout: float = 5.0) -> bytes:
        """Read until marker appears in everything received so far."""
        deadline = time.time() + timeout
        while marker not in self.received:
            if time.time() > deadline:
                raise AssertionError(f"timed out waiting for {marker!r}, got {bytes(self.received)!r}")
            chunk = self.sock.recv(4096)
            if not chunk:
                raise AssertionError(f"connection closed before {marker!r}, got {bytes(self.received)!r}")
            self.received += chunk
        return bytes(self.received)

    def read_until_closed(self, timeout: float = 5.0) -> bytes:
        self.sock.settimeout(timeout)
        while True:
            try:
                chunk = self.sock.recv(4096)
            except ConnectionResetError:
                break
            if not chunk:
                break
            self.received += chunk
        return bytes(self.received)

    def close(self):
        self.sock.close()


class ServerThread:
    """Test server helper that runs in a background thread."""

    def __init__(self, server: TerminalServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None
        self.error: Optional[BaseException] = None

    def start(self):
        """Start server in background thread."""
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_listening(timeout=5.0):
            raise RuntimeError(f"Server failed to start: {self.error}")

    def _run(self):
        try:
            self.server.run()
        except BaseException as e:
            self.error = e

    @property
    def address(self) -> tuple:
        return ("127.0.0.1", self.server.address[1])

    def connect(self) -> TerminalClient:
        return TerminalClient(self.address)

    def stop(self):
        """Stop the server and wait for the shutdown sweep."""
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)

    @property
    def stopped(self) -> bool:
        return self._thread is not None and not self._thread.is_alive()


@pytest.fixture
def start_server(config: ServerConfig) -> Generator:
    """Factory starting TerminalServers; all are stopped at teardown."""
    started: list[ServerThread] = []

    def factory(server_config: Optional[ServerConfig] = None, **kwargs) -> ServerThread:
        harness = ServerThread(TerminalServer(server_config or config, **kwargs))
        harness.start()
        started.append(harness)
        return harness

    yield factory

    for harness in started:
        harness.stop()
