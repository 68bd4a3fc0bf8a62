# dnstm

Python building blocks for running DNS tunnels on a Linux server. Each
tunnel runs as its own systemd service, and DNS traffic on port 53 reaches
it in one of two ways:

- **single mode**: one tunnel binds straight to the server's external IP on port 53;
- **multi mode**: each tunnel listens on `127.0.0.1` on a port from the router
  range (5310-5399), and a DNS router in front of it sends queries on.

The package is a library. Many of its functions need root, because they
write unit files to `/etc/systemd/system`, call `systemctl`, `iptables`,
`ip6tables`, `ufw`, `firewall-cmd` or `useradd`, and change file ownership.

## Installation

```
pip install .
```

To install with the test extra and run the test suite:

```
pip install ".[test]"
pytest
```

## Modules

| Module | Purpose |
| --- | --- |
| `dnstm.version` | Recorded version and build time (`set_version`, `current`, `BuildInfo`) |
| `dnstm.service` | systemd unit rendering and `systemctl`/`journalctl` calls; the `SystemdManager` interface, `RealSystemdManager`, and a replaceable `default_manager()` |
| `dnstm.system_user` | The shared `dnstm` system user and file ownership checks |
| `dnstm.firewall` | Detection of firewalld, ufw or iptables, and the port 53 redirect rules, including the NAT block in ufw's `before.rules` files |
| `dnstm.addresses` | External IPv4 lookup (via `psutil`), listen-address resolution, UDP port checks and `kill_process_on_port` |
| `dnstm.ports` | `PortAllocator` for free local ports, and waiting for a port to open or close |
| `dnstm.port_range` | Checks of ports against the tunnel router range |
| `dnstm.names` | Generation, validation and normalisation of tunnel tags, and service names |
| `dnstm.servicegen` | `ServiceMode`, `BuildOptions` and `ServiceGenerator` for single and multi mode bind addresses |
| `dnstm.versions` | `VersionManifest` (default path `/etc/dnstm/versions.json`), migration of the old flat manifest format, and version comparison |
| `dnstm.updates` | `UpdateReport`, `VersionInfo`, `BinaryUpdate`, and stopping and starting services through `default_manager()` |

## Examples

Tunnel tags:

```python
from dnstm.names import generate_unique_tag, normalize_tag, validate_tag, service_name

tag = normalize_tag("My_Tunnel Name")      # "my-tunnel-name"
validate_tag(tag)                           # raises ValueError if the tag is invalid
service_name(tag)                           # "dnstm-my-tunnel-name"
generate_unique_tag({"swift-tunnel"})       # e.g. "quiet-falcon"
```

Ports:

```python
from dnstm.port_range import port_range, validate_port, is_port_available

port_range()                          # "5310-5399"
validate_port(5320)                   # passes
validate_port(80)                     # raises ValueError: privileged port
is_port_available(5310, [5310, 5311]) # False, already used by a tunnel
```

Bind options for a service:

```python
from dnstm.servicegen import ServiceGenerator, ServiceMode

opts = ServiceGenerator().get_bind_options(5320, ServiceMode.MULTI)
opts.bind_host, opts.bind_port   # ("127.0.0.1", 5320)
```

In single mode the host is the external IP found by
`dnstm.addresses.get_external_ip()` and the port is 53.

A systemd unit:

```python
from dnstm.service import ServiceConfig, render_unit, create_generic_service

cfg = ServiceConfig(
    name="dnstm-example",
    description="dnstm tunnel: dnstm-example",
    user="dnstm",
    group="dnstm",
    exec_start="/usr/local/bin/dnstt-server -udp 127.0.0.1:5320 ...",
    bind_to_privileged=False,
)
print(render_unit(cfg))          # the unit file text
create_generic_service(cfg)      # writes the unit and reloads systemd (root)
```

Versions:

```python
from dnstm.versions import VersionManifest, compare_versions, is_newer

compare_versions("v1.0.0", "v1.0.1")   # -1
is_newer("dev", "v0.6.2")              # True

manifest = VersionManifest()
manifest.set_version("ssserver", "v1.23.0")
manifest.save("versions.json")
VersionManifest.load("versions.json").get_version("ssserver")   # "v1.23.0"
```

## Errors

Failures are raised as exceptions, not returned as status values.
`ServiceError` covers failed `systemctl`, `journalctl` and unit-file
operations, `FirewallError` failed firewall commands and rules-file
updates, and `UserError` problems with system users. Invalid tags and
ports raise `ValueError`; address lookups and `kill_process_on_port`
raise `OSError`; the `dnstm.ports` wait functions raise `TimeoutError`.

## What the package does not do

- It has no command-line program or interactive menu; it is used from Python.
- It has no tunnel object or tunnel configuration store. To control one
  tunnel, pass `service_name(tag)` to the functions in `dnstm.service`.
- It does not build transport command lines, download helper binaries,
  or run a DNS router.
- It does not look for updates over the network: `UpdateReport` only holds
  the results, and `dnstm.versions` only compares version strings and keeps
  the manifest.