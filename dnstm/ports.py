"""Local port allocation and waiting helpers."""

from __future__ import annotations

import socket
import threading
import time

_HOST = "127.0.0.1"
_MAX_PORT = 65535


def is_port_bindable(port: int) -> bool:
    """Return True if both TCP and UDP can bind the port on the loopback address."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as tcp:
            tcp.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            tcp.bind((_HOST, port))
            tcp.listen()
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as udp:
            udp.bind((_HOST, port))
    except (OSError, OverflowError):
        return False
    return True


class PortAllocator:
    """Hands out free local ports, scanning upward from a starting point."""

    def __init__(self, start: int = 15000) -> None:
        self._start = start
        self._last = start
        self._lock = threading.Lock()

    def allocate(self) -> int:
        """Return a port that is currently free for TCP and UDP."""
        with self._lock:
            for offset in range(100):
                port = self._last + 1 + offset
                if port > _MAX_PORT:
                    port = self._start + (port - _MAX_PORT)
                if is_port_bindable(port):
                    self._last = port
                    return port
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
                sock.bind((_HOST, 0))
                port = sock.getsockname()[1]
            self._last = port
            return port

    def allocate_many(self, n: int) -> list[int]:
        """Return n freshly allocated ports."""
        return [self.allocate() for _ in range(n)]

    def reset(self) -> None:
        """Restart the scan from the starting port."""
        with self._lock:
            self._last = self._start


def _tcp_connects(port: int) -> bool:
    try:
        with socket.create_connection((_HOST, port), timeout=0.1):
            return True
    except OSError:
        return False


def wait_for_port(port: int, timeout: float) -> None:
    """Wait until a TCP server accepts connections on the port."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if _tcp_connects(port):
            return
        time.sleep(0.05)
    raise TimeoutError(f"port {port} not available after {timeout}s")


def wait_for_udp_port(port: int, timeout: float) -> None:
    """Wait until something has bound the UDP port."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as udp:
                udp.bind((_HOST, port))
        except OSError:
            return
        time.sleep(0.05)
    raise TimeoutError(f"UDP port {port} not in use after {timeout}s")


def wait_for_port_closed(port: int, timeout: float) -> None:
    """Wait until no TCP server accepts connections on the port."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not _tcp_connects(port):
            return
        time.sleep(0.05)
    raise TimeoutError(f"port {port} still in use after {timeout}s")