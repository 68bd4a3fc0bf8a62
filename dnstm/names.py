"""Tunnel tag generation, validation and normalisation."""

from __future__ import annotations

import random
import re
from collections.abc import Iterable

ADJECTIVES = (
    "swift", "quick", "silent", "hidden", "shadow",
    "bright", "dark", "rapid", "fast", "eager",
    "quiet", "stealth", "brave", "bold", "calm",
    "cool", "deep", "wild", "free", "pure",
    "safe", "sharp", "smart", "soft", "warm",
    "wise", "frost", "storm", "night", "dawn",
)

NOUNS = (
    "tunnel", "stream", "channel", "bridge", "gateway",
    "path", "route", "link", "portal", "passage",
    "conduit", "relay", "proxy", "node", "point",
    "eagle", "falcon", "hawk", "raven", "wolf",
    "tiger", "lion", "bear", "fox", "owl",
    "river", "ocean", "cloud", "star", "moon",
)

RESERVED_TAGS = frozenset({"coredns", "router", "default", "all", "none"})

_TAG_PATTERN = re.compile(r"[a-z][a-z0-9]*(-[a-z0-9]+)*")
_MAX_ATTEMPTS = 100


def generate_name() -> str:
    """Return a random adjective-noun name."""
    return f"{random.choice(ADJECTIVES)}-{random.choice(NOUNS)}"


def generate_unique_tag(existing_tags: Iterable[str]) -> str:
    """Return a generated tag not among the existing ones."""
    taken = set(existing_tags)
    for _ in range(_MAX_ATTEMPTS):
        tag = generate_name()
        if tag not in taken:
            return tag
    return f"{generate_name()}-{random.randrange(1000)}"


def validate_tag(tag: str) -> None:
    """Raise ValueError if the tag is not acceptable."""
    if tag == "":
        raise ValueError("tag cannot be empty")
    length = len(tag.encode("utf-8"))
    if length < 3:
        raise ValueError("tag must be at least 3 characters")
    if length > 63:
        raise ValueError("tag must be at most 63 characters")
    if not _TAG_PATTERN.fullmatch(tag):
        raise ValueError(
            "tag must start with a lowercase letter and contain only lowercase "
            "letters, numbers, and hyphens"
        )
    if tag in RESERVED_TAGS:
        raise ValueError(f"tag '{tag}' is reserved")


def normalize_tag(tag: str) -> str:
    """Lower-case the tag and turn underscores and spaces into hyphens."""
    return tag.lower().replace("_", "-").replace(" ", "-")


def suggest_similar_tags(base_tag: str, existing_tags: Iterable[str], count: int) -> list[str]:
    """Suggest up to count free tags resembling the base tag."""
    taken = set(existing_tags)
    suggestions: list[str] = []

    for i in range(2, count + 11):
        if len(suggestions) >= count:
            break
        candidate = f"{base_tag}-{i}"
        if candidate not in taken:
            suggestions.append(candidate)

    parts = base_tag.split("-")
    if len(parts) >= 2:
        noun = parts[-1]
        for adjective in ADJECTIVES:
            if len(suggestions) >= count:
                break
            candidate = f"{adjective}-{noun}"
            if candidate != base_tag and candidate not in taken:
                suggestions.append(candidate)

    return suggestions


def service_name(tag: str) -> str:
    """Return the systemd service name for a tunnel tag."""
    return f"dnstm-{tag}"