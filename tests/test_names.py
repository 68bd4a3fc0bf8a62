import re

import pytest

from dnstm import names


def test_generate_name_format_and_variety():
    generated = set()
    for _ in range(100):
        name = names.generate_name()
        adjective, noun = name.split("-")
        assert adjective in names.ADJECTIVES
        assert noun in names.NOUNS
        generated.add(name)
    assert len(generated) >= 10


@pytest.mark.parametrize("tag", ["swift-tunnel", "my-tunnel-123", "abc"])
def test_validate_tag_accepts(tag):
    assert names.validate_tag(tag) is None


@pytest.mark.parametrize(
    "tag, text",
    [
        ("", "cannot be empty"),
        ("ab", "at least 3"),
        ("a" * 64, "at most 63"),
        ("123-tunnel", "start with a lowercase letter"),
        ("Tunnel", "lowercase"),
        ("tunnel_name", "lowercase"),
        ("tunnel.name", "lowercase"),
        ("coredns", "reserved"),
        ("router", "reserved"),
        ("default", "reserved"),
        ("all", "reserved"),
        ("none", "reserved"),
    ],
)
def test_validate_tag_rejects(tag, text):
    with pytest.raises(ValueError, match=re.escape(text)):
        names.validate_tag(tag)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("MyTunnel", "mytunnel"),
        ("my_tunnel", "my-tunnel"),
        ("my tunnel", "my-tunnel"),
        ("My_Tunnel Name", "my-tunnel-name"),
        ("already-normalized", "already-normalized"),
    ],
)
def test_normalize_tag(raw, expected):
    assert names.normalize_tag(raw) == expected


def test_generate_unique_tag_is_valid():
    tag = names.generate_unique_tag([])
    assert tag != ""
    assert names.validate_tag(tag) is None


def test_generate_unique_tag_avoids_existing():
    existing = {"swift-tunnel", "quick-stream"}
    for _ in range(50):
        assert names.generate_unique_tag(existing) not in existing


def test_generate_unique_tag_falls_back_to_suffix():
    existing = {f"{a}-{n}" for a in names.ADJECTIVES for n in names.NOUNS}
    tag = names.generate_unique_tag(existing)
    assert tag not in existing
    assert re.fullmatch(r"[a-z]+-[a-z]+-\d{1,3}", tag)


def test_suggest_similar_tags_avoids_existing_and_duplicates():
    existing = ["swift-tunnel", "swift-tunnel-2"]
    suggestions = names.suggest_similar_tags("swift-tunnel", existing, 3)
    assert len(suggestions) >= 1
    assert not set(suggestions) & set(existing)
    assert len(set(suggestions)) == len(suggestions)


def test_suggest_similar_tags_numbers_first():
    suggestions = names.suggest_similar_tags("swift-tunnel", ["swift-tunnel", "swift-tunnel-2"], 3)
    assert suggestions == ["swift-tunnel-3", "swift-tunnel-4", "swift-tunnel-5"]


def test_suggest_similar_tags_uses_adjectives_when_numbers_taken():
    existing = {f"swift-tunnel-{i}" for i in range(2, 13)}
    suggestions = names.suggest_similar_tags("swift-tunnel", existing, 2)
    assert suggestions == ["quick-tunnel", "silent-tunnel"]


@pytest.mark.parametrize(
    "tag, expected",
    [("swift-tunnel", "dnstm-swift-tunnel"), ("my-tunnel", "dnstm-my-tunnel")],
)
def test_service_name(tag, expected):
    assert names.service_name(tag) == expected