"""Installed binary version manifest and version comparison."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

VERSION_MANIFEST_FILE = "versions.json"
MANIFEST_PATH = os.path.join("/etc/dnstm", VERSION_MANIFEST_FILE)

# Keys of the old flat manifest format, in the order they are migrated.
_LEGACY_KEYS = ("slipstream-server", "ssserver", "microsocks", "sshtun-user", "vaydns-server")

_NUMERIC_PREFIX = re.compile(r"\d+")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class VersionManifest:
    """Versions of the helper binaries installed on the host."""

    versions: dict[str, str] = field(default_factory=dict)
    updated_at: str | None = None

    @classmethod
    def load(cls, path: str | os.PathLike | None = None) -> VersionManifest:
        """Read a manifest from disk, converting the old format first if needed.

        Raises OSError if the file cannot be read and ValueError if it is malformed.
        """
        path = Path(path if path is not None else MANIFEST_PATH)
        migrate_manifest(path)
        data = json.loads(path.read_text())
        if not isinstance(data, dict):
            raise ValueError(f"{path}: manifest is not a JSON object")
        versions = data.get("versions") or {}
        if not isinstance(versions, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in versions.items()
        ):
            raise ValueError(f"{path}: malformed versions table")
        updated_at = data.get("updated_at")
        if updated_at is not None and not isinstance(updated_at, str):
            raise ValueError(f"{path}: malformed updated_at")
        return cls(versions=dict(versions), updated_at=updated_at)

    def save(self, path: str | os.PathLike | None = None) -> None:
        """Write the manifest to disk."""
        path = Path(path if path is not None else MANIFEST_PATH)
        payload = {"versions": self.versions, "updated_at": self.updated_at}
        path.write_text(json.dumps(payload, indent=2) + "\n")

    def get_version(self, name: str) -> str:
        """Return the recorded version of a binary, or an empty string."""
        return self.versions.get(name, "")

    def set_version(self, name: str, version: str) -> None:
        """Record the installed version of a binary."""
        self.versions[name] = version
        self.updated_at = _now()


def migrate_manifest(path: str | os.PathLike) -> None:
    """Rewrite a manifest in the old flat format into the current format.

    Does nothing if the file is missing, unreadable or already current.
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text())
    except (OSError, ValueError):
        return
    if not isinstance(raw, dict) or "versions" in raw:
        return

    values = {key: raw.get(key) for key in _LEGACY_KEYS}
    updated_at = raw.get("updated_at")
    if any(v is not None and not isinstance(v, str) for v in values.values()):
        return
    if updated_at is not None and not isinstance(updated_at, str):
        return

    manifest = VersionManifest()
    for key, value in values.items():
        if value:
            manifest.set_version(key, value)
    manifest.updated_at = updated_at
    try:
        manifest.save(path)
    except OSError:
        pass


def _parse(version: str) -> tuple[int, ...] | None:
    text = version.strip()
    if text[:1] in ("v", "V"):
        text = text[1:]
    if not text or not text[0].isdigit():
        return None
    text = re.split(r"[-+]", text, maxsplit=1)[0]
    parts = []
    for piece in text.split("."):
        match = _NUMERIC_PREFIX.match(piece)
        parts.append(int(match.group()) if match else 0)
    return tuple(parts)


def compare_versions(v1: str, v2: str) -> int:
    """Return -1, 0 or 1 as v1 is older than, equal to or newer than v2.

    Versions that are not numeric (empty, "dev", "unknown", ...) are older
    than any numeric version and equal to each other.
    """
    a, b = _parse(v1), _parse(v2)
    if a is None and b is None:
        return 0
    if a is None:
        return -1
    if b is None:
        return 1
    width = max(len(a), len(b))
    a += (0,) * (width - len(a))
    b += (0,) * (width - len(b))
    return (a > b) - (a < b)


def is_newer(current_version: str, new_version: str) -> bool:
    """Return True if new_version is newer than current_version."""
    return compare_versions(current_version, new_version) < 0