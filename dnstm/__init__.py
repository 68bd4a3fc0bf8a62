"""Building blocks for DNS tunnel services: systemd units, firewall redirects, tags, ports and version manifests."""

__version__ = "0.1.0"