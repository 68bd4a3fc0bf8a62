import dataclasses

import pytest

from dnstm import version


@pytest.fixture(autouse=True)
def restore_version():
    saved = version.current()
    yield
    version.set_version(saved.version, saved.build_time)


def test_defaults():
    info = version.current()
    assert info.version == "dev"
    assert info.build_time == "unknown"


def test_set_version_round_trip():
    version.set_version("v1.2.3", "2026-01-29T10:00:00Z")
    assert version.current() == version.BuildInfo("v1.2.3", "2026-01-29T10:00:00Z")


def test_set_version_replaces_previous():
    version.set_version("v1.0.0", "first")
    version.set_version("v2.0.0", "second")
    info = version.current()
    assert (info.version, info.build_time) == ("v2.0.0", "second")


def test_build_info_is_immutable():
    version.set_version("v3.0.0", "third")
    info = version.current()
    with pytest.raises(dataclasses.FrozenInstanceError):
        info.version = "changed"
    assert info.version == "v3.0.0"
    assert version.current() == version.BuildInfo("v3.0.0", "third")