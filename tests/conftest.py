"""
pytest configuration and fixtures.
"""

import socket
from typing import Generator
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from healthgate import EchoController, GateConfig


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def config(free_port: int) -> GateConfig:
    """
    Test configuration on loopback with short timings.

    The idle timeout stays well above scheduling noise but far below the
    3 second production value so tests finish quickly.
    """
    return GateConfig(
        bind_address="127.0.0.1",
        bind_port=free_port,
        idle_timeout=0.5,
        accept_timeout=0.1,
    )


@pytest.fixture
def controller(config: GateConfig) -> Generator[EchoController, None, None]:
    """A controller that is always taken down after the test."""
    ctrl = EchoController(config)
    yield ctrl
    ctrl.down()


def connect(address, timeout: float = 5.0) -> socket.socket:
    """Open a client connection to an echo controller's address."""
    return socket.create_connection(address, timeout=timeout)


def recv_exactly(sock: socket.socket, size: int) -> bytes:
    """Read exactly size bytes, or fewer if the server closes first."""
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            break
        data += chunk
    return data


def read_until_closed(sock: socket.socket) -> bytes:
    """Read everything until the server closes the connection."""
    data = b""
    while True:
        try:
            chunk = sock.recv(4096)
        except ConnectionResetError:
            break
        if not chunk:
            break
        data += chunk
    return data
