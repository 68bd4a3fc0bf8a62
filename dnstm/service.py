"""Creation and control of systemd service units."""

from __future__ import annotations

import abc
import dataclasses
import enum
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

SYSTEMD_UNIT_DIR = Path("/etc/systemd/system")


class ServiceStatus(str, enum.Enum):
    """Current state of a systemd service."""

    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"
    NOT_FOUND = "not-found"


class ServiceError(Exception):
    """A systemd operation failed."""

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.output = output


@dataclass
class ServiceConfig:
    """Settings for a generated systemd unit."""

    name: str = ""
    description: str = ""
    user: str = ""
    group: str = ""
    exec_start: str = ""
    read_only_paths: list[str] = field(default_factory=list)
    read_write_paths: list[str] = field(default_factory=list)
    bind_to_privileged: bool = False


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


def _systemctl(action: str, service_name: str) -> None:
    result = _run(["systemctl", action, service_name])
    if result.returncode != 0:
        raise ServiceError(
            f"failed to {action} service: {result.stdout.strip()}: "
            f"exit status {result.returncode}",
            output=result.stdout,
        )


def get_service_path(service_name: str) -> str:
    """Return the unit file path for a service name."""
    return str(Path(SYSTEMD_UNIT_DIR) / f"{service_name}.service")


def render_unit(cfg: ServiceConfig) -> str:
    """Return the text of the unit file for a service configuration."""
    paths_section = "".join(f"ReadOnlyPaths={p}\n" for p in cfg.read_only_paths)
    paths_section += "".join(f"ReadWritePaths={p}\n" for p in cfg.read_write_paths)
    caps_section = ""
    if cfg.bind_to_privileged:
        caps_section = (
            "AmbientCapabilities=CAP_NET_BIND_SERVICE\n"
            "CapabilityBoundingSet=CAP_NET_BIND_SERVICE\n"
        )
    return (
        "[Unit]\n"
        f"Description={cfg.description}\n"
        "After=network-online.target\n"
        "Wants=network-online.target\n"
        "\n"
        "[Service]\n"
        "Type=simple\n"
        f"User={cfg.user}\n"
        f"Group={cfg.group}\n"
        f"ExecStart={cfg.exec_start}\n"
        "Restart=always\n"
        "RestartSec=5\n"
        "StandardOutput=journal\n"
        "StandardError=journal\n"
        "\n"
        "# Security hardening\n"
        "NoNewPrivileges=yes\n"
        "ProtectSystem=strict\n"
        "ProtectHome=yes\n"
        "PrivateTmp=yes\n"
        f"{paths_section}{caps_section}"
        "ProtectKernelTunables=yes\n"
        "ProtectKernelModules=yes\n"
        "ProtectControlGroups=yes\n"
        "RestrictRealtime=yes\n"
        "RestrictSUIDSGID=yes\n"
        "MemoryDenyWriteExecute=yes\n"
        "LockPersonality=yes\n"
        "\n"
        "[Install]\n"
        "WantedBy=multi-user.target\n"
    )


def create_generic_service(cfg: ServiceConfig) -> None:
    """Write the unit file for a service and reload systemd."""
    path = Path(get_service_path(cfg.name))
    try:
        path.write_text(render_unit(cfg))
        os.chmod(path, 0o644)
    except OSError as exc:
        raise ServiceError(f"failed to write service file: {exc}") from exc
    daemon_reload()


def enable_service(service_name: str) -> None:
    """Enable a service to start on boot."""
    _systemctl("enable", service_name)


def disable_service(service_name: str) -> None:
    """Disable a service from starting on boot."""
    _systemctl("disable", service_name)


def start_service(service_name: str) -> None:
    """Start a service."""
    _systemctl("start", service_name)


def stop_service(service_name: str) -> None:
    """Stop a service."""
    _systemctl("stop", service_name)


def restart_service(service_name: str) -> None:
    """Restart a service."""
    _systemctl("restart", service_name)


def is_service_active(service_name: str) -> bool:
    """Return True if systemd reports the service as active."""
    result = _run(["systemctl", "is-active", service_name], merge_stderr=False)
    return result.stdout.strip() == "active"


def is_service_enabled(service_name: str) -> bool:
    """Return True if systemd reports the service as enabled."""
    result = _run(["systemctl", "is-enabled", service_name], merge_stderr=False)
    return result.stdout.strip() == "enabled"


def is_service_installed(service_name: str) -> bool:
    """Return True if the service's unit file exists."""
    return os.path.exists(get_service_path(service_name))


def get_service_status(service_name: str) -> str:
    """Return the output of ``systemctl status`` for a service."""
    result = _run(["systemctl", "status", service_name, "--no-pager", "-l"])
    if result.returncode != 0:
        raise ServiceError(f"exit status {result.returncode}", output=result.stdout)
    return result.stdout


def get_service_logs(service_name: str, lines: int) -> str:
    """Return the most recent journal lines of a service."""
    result = _run(["journalctl", "-u", service_name, "-n", str(lines), "--no-pager"])
    if result.returncode != 0:
        raise ServiceError(
            f"failed to get logs: exit status {result.returncode}", output=result.stdout
        )
    return result.stdout


def remove_service(service_name: str) -> None:
    """Delete a service's unit file and reload systemd."""
    try:
        Path(get_service_path(service_name)).unlink(missing_ok=True)
    except OSError as exc:
        raise ServiceError(f"failed to remove service file: {exc}") from exc
    daemon_reload()


def _run_checked(args: list[str], message: str) -> None:
    result = _run(args)
    if result.returncode != 0:
        raise ServiceError(f"{message}: exit status {result.returncode}", output=result.stdout)


def set_service_permissions(
    user: str,
    group: str,
    private_key_file: str,
    public_key_file: str,
    config_dir: str,
) -> None:
    """Set ownership and modes of a service's key files and config directory."""
    ownership = f"{user}:{group}"
    if private_key_file:
        _run_checked(["chown", ownership, private_key_file], "failed to chown private key")
        _run_checked(["chmod", "600", private_key_file], "failed to chmod private key")
    if public_key_file:
        _run_checked(["chown", ownership, public_key_file], "failed to chown public key")
        _run_checked(["chmod", "644", public_key_file], "failed to chmod public key")
    _run_checked(["chown", "-R", ownership, config_dir], "failed to chown config directory")


def daemon_reload() -> None:
    """Make systemd re-read its unit files."""
    result = _run(["systemctl", "daemon-reload"])
    if result.returncode != 0:
        raise ServiceError(
            f"daemon-reload failed: exit status {result.returncode}", output=result.stdout
        )


class SystemdManager(abc.ABC):
    """Interface for managing systemd services."""

    @abc.abstractmethod
    def create_service(self, name: str, cfg: ServiceConfig) -> None:
        """Create a service from a configuration."""

    @abc.abstractmethod
    def remove_service(self, name: str) -> None:
        """Remove a service."""

    @abc.abstractmethod
    def start_service(self, name: str) -> None:
        """Start a service."""

    @abc.abstractmethod
    def stop_service(self, name: str) -> None:
        """Stop a service."""

    @abc.abstractmethod
    def restart_service(self, name: str) -> None:
        """Restart a service."""

    @abc.abstractmethod
    def enable_service(self, name: str) -> None:
        """Enable a service on boot."""

    @abc.abstractmethod
    def disable_service(self, name: str) -> None:
        """Disable a service on boot."""

    @abc.abstractmethod
    def is_service_active(self, name: str) -> bool:
        """Return True if the service is running."""

    @abc.abstractmethod
    def is_service_enabled(self, name: str) -> bool:
        """Return True if the service starts on boot."""

    @abc.abstractmethod
    def is_service_installed(self, name: str) -> bool:
        """Return True if the unit file exists."""

    @abc.abstractmethod
    def get_service_status(self, name: str) -> str:
        """Return status text for diagnostics."""

    @abc.abstractmethod
    def get_service_logs(self, name: str, lines: int) -> str:
        """Return recent log lines."""

    @abc.abstractmethod
    def daemon_reload(self) -> None:
        """Reload the service manager's configuration."""


class RealSystemdManager(SystemdManager):
    """Manager that drives the host's systemd."""

    def create_service(self, name: str, cfg: ServiceConfig) -> None:
        create_generic_service(dataclasses.replace(cfg, name=name))

    def remove_service(self, name: str) -> None:
        remove_service(name)

    def start_service(self, name: str) -> None:
        start_service(name)

    def stop_service(self, name: str) -> None:
        stop_service(name)

    def restart_service(self, name: str) -> None:
        restart_service(name)

    def enable_service(self, name: str) -> None:
        enable_service(name)

    def disable_service(self, name: str) -> None:
        disable_service(name)

    def is_service_active(self, name: str) -> bool:
        return is_service_active(name)

    def is_service_enabled(self, name: str) -> bool:
        return is_service_enabled(name)

    def is_service_installed(self, name: str) -> bool:
        return is_service_installed(name)

    def get_service_status(self, name: str) -> str:
        return get_service_status(name)

    def get_service_logs(self, name: str, lines: int) -> str:
        return get_service_logs(name, lines)

    def daemon_reload(self) -> None:
        daemon_reload()


_default_manager: SystemdManager | None = None


def default_manager() -> SystemdManager:
    """Return the shared manager, creating a real one if none is set."""
    global _default_manager
    if _default_manager is None:
        _default_manager = RealSystemdManager()
    return _default_manager


def set_default_manager(manager: SystemdManager) -> None:
    """Replace the shared manager."""
    global _default_manager
    _default_manager = manager


def reset_default_manager() -> None:
    """Drop the shared manager so a real one is created on next use."""
    global _default_manager
    _default_manager = None