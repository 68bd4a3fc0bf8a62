"""Port range used by tunnels behind the DNS router."""

from __future__ import annotations

from collections.abc import Iterable

from dnstm.ports import is_port_bindable

DEFAULT_PORT_START = 5310
DEFAULT_PORT_END = 5399


def is_port_free(port: int) -> bool:
    """Return True if nothing on the host holds the port."""
    return is_port_bindable(port)


def is_port_available(port: int, used_ports: Iterable[int]) -> bool:
    """Return True if the port is in range, unused by tunnels and free on the host."""
    if not DEFAULT_PORT_START <= port <= DEFAULT_PORT_END:
        return False
    if port in set(used_ports):
        return False
    return is_port_free(port)


def validate_port(port: int) -> None:
    """Raise ValueError if the port may not be used for a tunnel."""
    if port < 1024:
        raise ValueError(f"port {port} is a privileged port (< 1024)")
    if port > 65535:
        raise ValueError(f"port {port} is out of range (> 65535)")
    if not DEFAULT_PORT_START <= port <= DEFAULT_PORT_END:
        raise ValueError(
            f"port {port} is outside the router range ({DEFAULT_PORT_START}-{DEFAULT_PORT_END})"
        )


def port_range() -> str:
    """Return the tunnel port range as text."""
    return f"{DEFAULT_PORT_START}-{DEFAULT_PORT_END}"