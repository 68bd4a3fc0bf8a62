import socket
from collections import namedtuple
from types import SimpleNamespace
from unittest import mock

import pytest

from dnstm import addresses

Addr = namedtuple("Addr", "family address netmask broadcast ptp")


def _addr(ip, family=socket.AF_INET):
    return Addr(family, ip, None, None, None)


def _up(flags="up,broadcast,running"):
    return SimpleNamespace(isup=True, flags=flags)


def _patch_interfaces(addrs, stats):
    return mock.patch.multiple(
        addresses.psutil,
        net_if_addrs=mock.Mock(return_value=addrs),
        net_if_stats=mock.Mock(return_value=stats),
    )


@pytest.mark.parametrize(
    "ip, expected",
    [
        ("10.1.2.3", True),
        ("172.16.0.1", True),
        ("172.31.255.255", True),
        ("172.32.0.1", False),
        ("192.168.1.1", True),
        ("169.254.10.10", True),
        ("8.8.8.8", False),
        ("::1", False),
    ],
)
def test_is_private_ip(ip, expected):
    assert addresses.is_private_ip(ip) is expected


def test_external_ip_preferred_over_private():
    ifaces = {"eth0": [_addr("192.168.1.5"), _addr("203.0.113.7")]}
    with _patch_interfaces(ifaces, {"eth0": _up()}):
        assert addresses.get_external_ip() == "203.0.113.7"


def test_private_ip_used_as_fallback():
    ifaces = {
        "eth0": [_addr("10.0.0.4"), _addr("fe80::1", socket.AF_INET6)],
        "eth1": [_addr("192.168.0.9")],
    }
    with _patch_interfaces(ifaces, {"eth0": _up(), "eth1": _up()}):
        assert addresses.get_external_ip() == "10.0.0.4"


def test_down_and_loopback_interfaces_are_skipped():
    ifaces = {
        "lo": [_addr("127.0.0.1")],
        "eth0": [_addr("203.0.113.7")],
    }
    stats = {
        "lo": _up("up,loopback,running"),
        "eth0": SimpleNamespace(isup=False, flags=""),
    }
    with _patch_interfaces(ifaces, stats):
        with pytest.raises(OSError):
            addresses.get_external_ip()


def test_resolve_listen_address_replaces_any_host():
    ifaces = {"eth0": [_addr("203.0.113.7")]}
    with _patch_interfaces(ifaces, {"eth0": _up()}):
        assert addresses.resolve_listen_address("0.0.0.0:53") == "203.0.113.7:53"


def test_resolve_listen_address_keeps_other_addresses():
    assert addresses.resolve_listen_address("127.0.0.1:5310") == "127.0.0.1:5310"
    assert addresses.resolve_listen_address("0.0.0.0") == "0.0.0.0"


def test_resolve_listen_address_without_external_ip():
    with _patch_interfaces({}, {}):
        assert addresses.resolve_listen_address("0.0.0.0:53") == "0.0.0.0:53"


def test_udp_port_in_use_is_not_available():
    with _patch_interfaces({}, {}):
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as held:
            held.bind(("", 0))
            port = held.getsockname()[1]
            assert addresses.is_udp_port_available(port) is False
            assert addresses.wait_for_port_available(port, 0.3) is False


def test_free_udp_port_is_available():
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as probe:
        probe.bind(("", 0))
        port = probe.getsockname()[1]
    with _patch_interfaces({}, {}):
        assert addresses.is_udp_port_available(port) is True
        assert addresses.wait_for_port_available(port, 1.0) is True


def test_kill_process_on_port_reports_port_still_in_use():
    with _patch_interfaces({}, {}), \
            mock.patch.object(addresses.subprocess, "run") as run, \
            mock.patch.object(addresses.time, "sleep"):
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as held:
            held.bind(("", 0))
            port = held.getsockname()[1]
            with pytest.raises(OSError, match="still in use"):
                addresses.kill_process_on_port(port)
    called = [call.args[0] for call in run.call_args_list]
    assert called == [["fuser", "-k", f"{port}/udp"], ["fuser", "-k", f"{port}/tcp"]]