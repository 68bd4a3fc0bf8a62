"""Firewall rules that route DNS traffic on port 53 to tunnel services."""

from __future__ import annotations

import enum
import os
import shutil
import subprocess
from pathlib import Path

LEGACY_PORTS = ("5300", "5301", "5302")

UFW_BEFORE_RULES_PATH = "/etc/ufw/before.rules"
UFW_BEFORE6_RULES_PATH = "/etc/ufw/before6.rules"
DNSTM_NAT_MARKER = "# NAT table rules for dnstm"
LEGACY_NAT_MARKER = "# NAT table rules for dnstt"

IPTABLES_PERSIST_PATHS = ("/etc/iptables/rules.v4", "/etc/sysconfig/iptables")
_ROUTE_LOCALNET_INTERFACES = ("eth0", "enp1s0", "ens3", "ens192")


class FirewallType(enum.Enum):
    """Kind of firewall managing the host."""

    NONE = 0
    FIREWALLD = 1
    UFW = 2
    IPTABLES = 3


class FirewallError(Exception):
    """A firewall command or rules file update failed."""


def _run(args: list[str], *, merge_stderr: bool = True) -> subprocess.CompletedProcess:
    try:
        result = subprocess.run(
            args,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT if merge_stderr else subprocess.DEVNULL,
            text=True,
            check=False,
        )
    except OSError as exc:
        return subprocess.CompletedProcess(args, 127, stdout=str(exc), stderr="")
    if result.stdout is None:
        result.stdout = ""
    return result


def _run_all(commands: list[list[str]]) -> None:
    for args in commands:
        _run(args)


def _check(args: list[str], tool: str) -> None:
    result = _run(args)
    if result.returncode != 0:
        raise FirewallError(
            f"{tool} command failed: {result.stdout}: exit status {result.returncode}"
        )


def _dnat_rules(binary: str, action: str, target: str) -> list[list[str]]:
    return [
        [binary, "-t", "nat", action, "PREROUTING", "-p", proto, "--dport", "53",
         "-j", "DNAT", "--to-destination", target]
        for proto in ("udp", "tcp")
    ]


def _redirect_rules(binary: str, port: str) -> list[list[str]]:
    return [
        [binary, "-t", "nat", "-D", "PREROUTING", "-p", proto, "--dport", "53",
         "-j", "REDIRECT", "--to-ports", port]
        for proto in ("udp", "tcp")
    ]


def _firewalld_direct_rule(action: str, port: str) -> list[str]:
    return [
        "firewall-cmd", "--permanent", "--direct", action, "ipv4", "nat", "PREROUTING",
        "0", "-p", "udp", "--dport", "53", "-j", "REDIRECT", "--to-ports", port,
    ]


def detect_firewall() -> FirewallType:
    """Work out which firewall is in charge of the host."""
    if shutil.which("firewall-cmd"):
        if _run(["systemctl", "is-active", "firewalld"]).returncode == 0:
            return FirewallType.FIREWALLD
    if shutil.which("ufw"):
        result = _run(["ufw", "status"], merge_stderr=False)
        if result.returncode == 0 and "active" in result.stdout:
            return FirewallType.UFW
    if shutil.which("iptables"):
        return FirewallType.IPTABLES
    return FirewallType.NONE


def _enable_route_localnet() -> None:
    # Needed so that DNAT to 127.0.0.1 is routed.
    _run(["sysctl", "-w", "net.ipv4.conf.all.route_localnet=1"])
    for iface in _ROUTE_LOCALNET_INTERFACES:
        _run(["sysctl", "-w", f"net.ipv4.conf.{iface}.route_localnet=1"])


def _clear_all_nat_prerouting() -> None:
    _run(["iptables", "-t", "nat", "-F", "PREROUTING"])


def _clear_all_nat_output() -> None:
    _run(["iptables", "-t", "nat", "-F", "OUTPUT"])
    _run(["ip6tables", "-t", "nat", "-F", "OUTPUT"])


def _save_iptables_rules() -> None:
    for path in IPTABLES_PERSIST_PATHS:
        if not os.path.exists(os.path.dirname(path)):
            continue
        result = _run(["iptables-save"], merge_stderr=False)
        if result.returncode != 0:
            continue
        try:
            Path(path).write_text(result.stdout)
            os.chmod(path, 0o600)
        except OSError:
            continue
        return
    if shutil.which("netfilter-persistent"):
        _run(["netfilter-persistent", "save"])


def _configure_firewalld(port: str) -> None:
    commands = [
        ["firewall-cmd", "--permanent", "--add-port=53/udp"],
        ["firewall-cmd", "--permanent", "--add-port=53/tcp"],
        ["firewall-cmd", "--permanent", f"--add-port={port}/udp"],
        ["firewall-cmd", "--permanent", f"--add-port={port}/tcp"],
        ["firewall-cmd", "--permanent", "--add-masquerade"],
        _firewalld_direct_rule("--add-rule", port),
        ["firewall-cmd", "--reload"],
    ]
    for args in commands:
        _check(args, "firewalld")


def _configure_iptables(port: str) -> None:
    _enable_route_localnet()
    _clear_all_nat_prerouting()
    for args in _dnat_rules("iptables", "-A", f"127.0.0.1:{port}"):
        _check(args, "iptables")
    _save_iptables_rules()


def _configure_ufw(port: str) -> None:
    _enable_route_localnet()
    # After PREROUTING redirects 53 to the target port, packets reach INPUT
    # with the target port, so both have to be allowed.
    _run_all([
        ["ufw", "allow", "53/udp"],
        ["ufw", "allow", "53/tcp"],
        ["ufw", "allow", f"{port}/udp"],
        ["ufw", "allow", f"{port}/tcp"],
    ])
    _clear_all_nat_prerouting()
    try:
        add_ufw_nat_rules(UFW_BEFORE_RULES_PATH, "127.0.0.1", port)
    except FirewallError:
        _configure_iptables(port)
        return
    _run(["ufw", "reload"])


def configure_firewall_for_port(port: int | str) -> None:
    """Redirect incoming DNS traffic on port 53 to the given local port."""
    port = str(port)
    fw_type = detect_firewall()
    if fw_type is FirewallType.FIREWALLD:
        _configure_firewalld(port)
    elif fw_type is FirewallType.UFW:
        _configure_ufw(port)
    else:
        _configure_iptables(port)


def configure_ipv6_for_port(port: int | str) -> None:
    """Redirect incoming IPv6 DNS traffic on port 53 to the given local port."""
    port = str(port)
    if detect_firewall() is FirewallType.UFW:
        # The IPv4 configuration already reloads ufw.
        add_ufw_nat_rules(UFW_BEFORE6_RULES_PATH, "[::1]", port, " (IPv6)")
        return
    _run(["ip6tables", "-t", "nat", "-F", "PREROUTING"])
    _run_all(_dnat_rules("ip6tables", "-A", f"[::1]:{port}"))


def _clear_iptables_rules_for_port(port: str) -> None:
    _run_all(_dnat_rules("iptables", "-D", f"127.0.0.1:{port}"))
    _run_all(_redirect_rules("iptables", port))


def _clear_ip6tables_rules_for_port(port: str) -> None:
    _run_all(_redirect_rules("ip6tables", port))


def _remove_firewalld_rules_for_port(port: str) -> None:
    _run_all([
        ["firewall-cmd", "--permanent", "--remove-port=53/udp"],
        ["firewall-cmd", "--permanent", "--remove-port=53/tcp"],
        ["firewall-cmd", "--permanent", f"--remove-port={port}/udp"],
        ["firewall-cmd", "--permanent", f"--remove-port={port}/tcp"],
        _firewalld_direct_rule("--remove-rule", port),
        ["firewall-cmd", "--reload"],
    ])


def _remove_ufw_rules_for_port(port: str) -> None:
    _run_all([
        ["ufw", "delete", "allow", "53/udp"],
        ["ufw", "delete", "allow", "53/tcp"],
        ["ufw", "delete", "allow", f"{port}/udp"],
        ["ufw", "delete", "allow", f"{port}/tcp"],
    ])
    remove_ufw_nat_rules(UFW_BEFORE_RULES_PATH)
    remove_ufw_nat_rules(UFW_BEFORE6_RULES_PATH)
    _run(["ufw", "reload"])


def remove_firewall_rules_for_port(port: int | str) -> None:
    """Remove the rules that redirect DNS traffic to the given port."""
    port = str(port)
    fw_type = detect_firewall()
    if fw_type is FirewallType.FIREWALLD:
        _remove_firewalld_rules_for_port(port)
    elif fw_type is FirewallType.UFW:
        _remove_ufw_rules_for_port(port)
    else:
        _clear_iptables_rules_for_port(port)
        _clear_ip6tables_rules_for_port(port)
        _save_iptables_rules()


def remove_all_firewall_rules() -> None:
    """Remove redirect rules for every legacy tunnel port."""
    fw_type = detect_firewall()
    if fw_type is FirewallType.FIREWALLD:
        for port in LEGACY_PORTS:
            _remove_firewalld_rules_for_port(port)
    elif fw_type is FirewallType.UFW:
        for port in LEGACY_PORTS:
            _remove_ufw_rules_for_port(port)
    else:
        for port in LEGACY_PORTS:
            _clear_iptables_rules_for_port(port)
            _clear_ip6tables_rules_for_port(port)
        _save_iptables_rules()


def switch_dns_routing(from_port: int | str, to_port: int | str) -> None:
    """Move the port 53 redirect from one local port to another."""
    remove_firewall_rules_for_port(from_port)
    configure_firewall_for_port(to_port)
    try:
        configure_ipv6_for_port(to_port)
    except FirewallError:
        pass


def allow_port53() -> None:
    """Open port 53 in the firewall without any NAT redirect."""
    fw_type = detect_firewall()
    if fw_type is FirewallType.FIREWALLD:
        _run_all([
            ["firewall-cmd", "--permanent", "--add-port=53/udp"],
            ["firewall-cmd", "--permanent", "--add-port=53/tcp"],
            ["firewall-cmd", "--reload"],
        ])
    elif fw_type is FirewallType.UFW:
        _run_all([["ufw", "allow", "53/udp"], ["ufw", "allow", "53/tcp"]])
    else:
        _run_all([
            ["iptables", "-A", "INPUT", "-p", proto, "--dport", "53", "-j", "ACCEPT"]
            for proto in ("udp", "tcp")
        ])


def clear_nat_only() -> None:
    """Remove NAT redirects while keeping port 53 open."""
    fw_type = detect_firewall()
    if fw_type is FirewallType.UFW:
        remove_ufw_nat_rules(UFW_BEFORE_RULES_PATH)
        remove_ufw_nat_rules(UFW_BEFORE6_RULES_PATH)
        _clear_all_nat_prerouting()
        _clear_all_nat_output()
        _run(["ip6tables", "-t", "nat", "-F", "PREROUTING"])
        _run(["ufw", "reload"])
    elif fw_type is FirewallType.FIREWALLD:
        for port in LEGACY_PORTS:
            _run(_firewalld_direct_rule("--remove-rule", port))
        _run(["firewall-cmd", "--reload"])
    else:
        _clear_all_nat_prerouting()
        _clear_all_nat_output()
        _run(["ip6tables", "-t", "nat", "-F", "PREROUTING"])


def render_ufw_nat_block(target_addr: str, port: int | str, comment: str = "") -> str:
    """Return the NAT block placed at the top of a ufw rules file."""
    target = f"{target_addr}:{port}"
    return (
        f"{DNSTM_NAT_MARKER} - DNAT port 53 to {target}{comment}\n"
        "*nat\n"
        ":PREROUTING ACCEPT [0:0]\n"
        f"-A PREROUTING -p udp --dport 53 -j DNAT --to-destination {target}\n"
        f"-A PREROUTING -p tcp --dport 53 -j DNAT --to-destination {target}\n"
        "COMMIT\n"
        "\n"
    )


def _has_marker(text: str) -> bool:
    return DNSTM_NAT_MARKER in text or LEGACY_NAT_MARKER in text


def strip_ufw_nat_block(content: str) -> str:
    """Return the rules file content without the NAT block this tool added."""
    if not _has_marker(content):
        return content
    kept: list[str] = []
    in_block = False
    skip_empty = False
    for line in content.split("\n"):
        if _has_marker(line):
            in_block = True
            continue
        if in_block:
            if line == "COMMIT":
                in_block = False
                skip_empty = True
                continue
            if line.startswith(("*nat", ":PREROUTING", "-A PREROUTING")):
                continue
        if skip_empty and line == "":
            skip_empty = False
            continue
        kept.append(line)
    return "\n".join(kept)


def add_ufw_nat_rules(
    file_path: str, target_addr: str, port: int | str, comment: str = ""
) -> None:
    """Put a fresh NAT block at the top of a ufw rules file."""
    path = Path(file_path)
    try:
        content = path.read_text()
    except OSError as exc:
        raise FirewallError(f"cannot read {file_path}: {exc}") from exc
    new_content = render_ufw_nat_block(target_addr, port, comment) + strip_ufw_nat_block(content)
    try:
        path.write_text(new_content)
    except OSError as exc:
        raise FirewallError(f"cannot write {file_path}: {exc}") from exc


def remove_ufw_nat_rules(file_path: str) -> None:
    """Remove this tool's NAT block from a ufw rules file; failures are ignored."""
    path = Path(file_path)
    try:
        content = path.read_text()
    except OSError:
        return
    if not _has_marker(content):
        return
    try:
        path.write_text(strip_ufw_nat_block(content))
    except OSError:
        pass