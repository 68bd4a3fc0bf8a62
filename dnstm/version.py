"""Build version information for the running program."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BuildInfo:
    """Version string and build timestamp of the program."""

    version: str = "dev"
    build_time: str = "unknown"


_current = BuildInfo()


def set_version(version: str, build_time: str) -> None:
    """Record the version and build time of the program."""
    global _current
    _current = BuildInfo(version=version, build_time=build_time)


def current() -> BuildInfo:
    """Return the recorded build information."""
    return _current