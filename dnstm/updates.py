"""Update reports and control of the services affected by updates."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from dnstm.service import ServiceError, default_manager


@dataclass(frozen=True)
class VersionInfo:
    """Installed and newest version of the program."""

    current: str
    latest: str


@dataclass
class BinaryUpdate:
    """An available update for one helper binary."""

    binary: str
    current_version: str
    latest_version: str
    affected_services: list[str] = field(default_factory=list)


@dataclass
class UpdateReport:
    """Updates found by an update check."""

    dnstm_update: VersionInfo | None = None
    binary_updates: list[BinaryUpdate] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def has_updates(self) -> bool:
        """Return True if any update is available."""
        return self.dnstm_update is not None or bool(self.binary_updates)

    def update_count(self) -> int:
        """Return the number of available updates."""
        return len(self.binary_updates) + (1 if self.dnstm_update is not None else 0)


def stop_services(service_names: Iterable[str]) -> list[str]:
    """Stop each service and return the names of those that stopped."""
    manager = default_manager()
    stopped = []
    for name in service_names:
        try:
            manager.stop_service(name)
        except ServiceError:
            continue
        stopped.append(name)
    return stopped


def start_services(service_names: Iterable[str]) -> None:
    """Start each service in turn, raising ServiceError at the first failure."""
    manager = default_manager()
    for name in service_names:
        manager.start_service(name)