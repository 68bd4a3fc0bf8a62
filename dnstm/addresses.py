"""Host address discovery and UDP port checks."""

from __future__ import annotations

import ipaddress
import socket
import subprocess
import time

import psutil

_PRIVATE_NETWORKS = tuple(
    ipaddress.ip_network(cidr)
    for cidr in ("10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16", "169.254.0.0/16")
)

_LISTEN_ANY_PREFIX = "0.0.0.0:"


def is_private_ip(ip: str | ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    """Return True if the address lies in a private or link-local IPv4 range."""
    address = ipaddress.ip_address(ip) if isinstance(ip, str) else ip
    if address.version != 4:
        return False
    return any(address in network for network in _PRIVATE_NETWORKS)


def _interface_is_usable(stats: object | None) -> bool:
    if stats is None or not getattr(stats, "isup", False):
        return False
    flags = str(getattr(stats, "flags", "") or "")
    return "loopback" not in flags.split(",")


def get_external_ip() -> str:
    """Return the first public IPv4 address of the host, or the first private one.

    Raises OSError if no usable IPv4 address is found.
    """
    all_stats = psutil.net_if_stats()
    fallback: str | None = None
    for name, addrs in psutil.net_if_addrs().items():
        if not _interface_is_usable(all_stats.get(name)):
            continue
        for addr in addrs:
            if addr.family != socket.AF_INET:
                continue
            try:
                address = ipaddress.IPv4Address(addr.address)
            except ValueError:
                continue
            if address.is_loopback:
                continue
            if is_private_ip(address):
                if fallback is None:
                    fallback = str(address)
                continue
            return str(address)
    if fallback is not None:
        return fallback
    raise OSError("no suitable IP address found")


def resolve_listen_address(addr: str) -> str:
    """Replace a 0.0.0.0 host in a listen address with the external IP."""
    if not addr.startswith(_LISTEN_ANY_PREFIX):
        return addr
    port = addr[len(_LISTEN_ANY_PREFIX):]
    try:
        external_ip = get_external_ip()
    except OSError:
        return addr
    return f"{external_ip}:{port}"


def _udp_bindable(host: str, port: int) -> bool:
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.bind((host, port))
    except (OSError, OverflowError):
        return False
    return True


def is_udp_port_available(port: int) -> bool:
    """Return True if the UDP port can be bound on the external IP (or on all addresses)."""
    try:
        external_ip = get_external_ip()
    except OSError:
        return _udp_bindable("", port)
    return _udp_bindable(external_ip, port)


def wait_for_port_available(port: int, timeout: float) -> bool:
    """Poll until the UDP port is free; return False if the timeout passes first."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if is_udp_port_available(port):
            return True
        time.sleep(0.1)
    return False


def kill_process_on_port(port: int) -> None:
    """Kill whatever holds the port and raise OSError if it stays in use."""
    for proto in ("udp", "tcp"):
        try:
            subprocess.run(
                ["fuser", "-k", f"{port}/{proto}"],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
        except OSError:
            pass
    time.sleep(0.5)
    if not is_udp_port_available(port):
        raise OSError(f"port {port} still in use after killing processes")