"""Bind settings for tunnel services in single and multi mode."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from dnstm.addresses import get_external_ip

DNS_PORT = 53
LOCAL_HOST = "127.0.0.1"


class ServiceMode(str, enum.Enum):
    """How a transport service binds."""

    SINGLE = "single"
    MULTI = "multi"


@dataclass(frozen=True)
class BuildOptions:
    """Address a transport service listens on."""

    bind_host: str
    bind_port: int


class ServiceGenerator:
    """Works out the bind address of a tunnel service for a mode."""

    def get_bind_options(self, port: int, mode: ServiceMode | str) -> BuildOptions:
        """Return the external IP on port 53 in single mode, else loopback on the tunnel port.

        Raises OSError in single mode if no external IP can be found.
        """
        if mode == ServiceMode.SINGLE:
            return BuildOptions(bind_host=get_external_ip(), bind_port=DNS_PORT)
        return BuildOptions(bind_host=LOCAL_HOST, bind_port=port)