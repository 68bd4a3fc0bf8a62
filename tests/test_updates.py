import pytest

from dnstm.service import (
    ServiceConfig,
    ServiceError,
    SystemdManager,
    reset_default_manager,
    set_default_manager,
)
from dnstm.updates import (
    BinaryUpdate,
    UpdateReport,
    VersionInfo,
    start_services,
    stop_services,
)


class FakeManager(SystemdManager):
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls = []

    def _act(self, action, name):
        self.calls.append((action, name))
        if name in self.failing:
            raise ServiceError(f"failed to {action} service")

    def create_service(self, name, cfg: ServiceConfig):
        self._act("create", name)

    def remove_service(self, name):
        self._act("remove", name)

    def start_service(self, name):
        self._act("start", name)

    def stop_service(self, name):
        self._act("stop", name)

    def restart_service(self, name):
        self._act("restart", name)

    def enable_service(self, name):
        self._act("enable", name)

    def disable_service(self, name):
        self._act("disable", name)

    def is_service_active(self, name):
        return False

    def is_service_enabled(self, name):
        return False

    def is_service_installed(self, name):
        return False

    def get_service_status(self, name):
        return ""

    def get_service_logs(self, name, lines):
        return ""

    def daemon_reload(self):
        pass


@pytest.fixture
def fake_manager():
    def install(failing=()):
        manager = FakeManager(failing)
        set_default_manager(manager)
        return manager

    yield install
    reset_default_manager()


def test_empty_report_has_no_updates():
    report = UpdateReport()
    assert report.has_updates() is False
    assert report.update_count() == 0


def test_report_with_program_update():
    report = UpdateReport(dnstm_update=VersionInfo(current="v0.6.1", latest="v0.6.2"))
    assert report.has_updates() is True
    assert report.update_count() == 1


def test_report_with_binary_updates():
    updates = [
        BinaryUpdate("ssserver", "v1.22.0", "v1.23.0", ["dnstm-swift-tunnel"]),
        BinaryUpdate("microsocks", "", "v1.0.4"),
    ]
    report = UpdateReport(binary_updates=updates)
    assert report.has_updates() is True
    assert report.update_count() == len(updates)


def test_update_count_counts_program_and_binaries():
    report = UpdateReport(
        dnstm_update=VersionInfo("dev", "v0.6.2"),
        binary_updates=[BinaryUpdate("ssserver", "v1.22.0", "v1.23.0")],
    )
    assert report.update_count() == 2


def test_warnings_alone_are_not_updates():
    report = UpdateReport(warnings=["Failed to check dnstm version: offline"])
    assert report.has_updates() is False


def test_stop_services_returns_stopped(fake_manager):
    manager = fake_manager(failing={"dnstm-bad"})
    stopped = stop_services(["dnstm-a", "dnstm-bad", "dnstm-b"])
    assert stopped == ["dnstm-a", "dnstm-b"]
    assert ("stop", "dnstm-bad") in manager.calls


def test_stop_services_empty(fake_manager):
    manager = fake_manager()
    assert stop_services([]) == []
    assert manager.calls == []


def test_start_services_starts_all(fake_manager):
    manager = fake_manager()
    start_services(["dnstm-a", "microsocks"])
    assert manager.calls == [("start", "dnstm-a"), ("start", "microsocks")]


def test_start_services_stops_at_first_failure(fake_manager):
    manager = fake_manager(failing={"dnstm-bad"})
    with pytest.raises(ServiceError):
        start_services(["dnstm-a", "dnstm-bad", "dnstm-b"])
    assert manager.calls == [("start", "dnstm-a"), ("start", "dnstm-bad")]