import json

import pytest

from zerodeploy.errors import DeployError
from zerodeploy.services.state import StateService


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None


def test_state_service_creates_and_updates_state(tmp_path):
    state_file = tmp_path / "live.zerodeploy-state.json"
    service = StateService(str(state_file), logger=DummyLogger())

    state = service.start("abc123", "/srv/releases/1.2", "full_release")

    assert state_file.exists()
    assert state["previous"] is None

    service.mark_step_started(state, "cutover")
    service.mark_step_completed(state, "cutover")
    service.set_value(state, "maintenance", True)

    loaded = json.loads(state_file.read_text(encoding="utf-8"))
    assert loaded["maintenance"] is True
    assert loaded["current_step"] is None
    assert loaded["completed_steps"] == ["cutover"]
    assert loaded["release_root"] == "/srv/releases/1.2"


def test_state_service_carries_a_summary_of_the_failed_previous_run(tmp_path):
    state_file = tmp_path / "state.json"
    service = StateService(str(state_file), logger=DummyLogger())

    first = service.start("first", "/srv/releases/1.2", "full_release")
    service.mark_step_started(first, "migrate")
    service.mark_step_failed(first, "migrate", "setup:upgrade exited 1")

    second = service.start("second", "/srv/releases/1.2", "full_release")

    assert second["previous"] == {
        "run_id": "first",
        "status": "failed",
        "release_root": "/srv/releases/1.2",
        "failed_step": "migrate",
        "maintenance": None,
        "restart_pending": False,
        "last_error": "setup:upgrade exited 1",
    }
    assert second["status"] == "running"


def test_state_service_rejects_corrupt_state_file(tmp_path):
    state_file = tmp_path / "state.json"
    state_file.write_text("[1, 2]", encoding="utf-8")
    service = StateService(str(state_file), logger=DummyLogger())

    with pytest.raises(DeployError, match="invalid format"):
        service.load()


def test_state_service_keeps_pending_restart_until_cleared(tmp_path):
    service = StateService(str(tmp_path / "state.json"), logger=DummyLogger())

    first = service.start("first", "/srv/releases/1.2", "full_release")
    service.set_value(first, "restart_pending", True)
    service.mark_step_failed(first, "reload_service", "systemctl exited 1")

    second = service.start("second", "/srv/releases/1.2", "full_release")
    assert second["restart_pending"] is True

    service.mark_step_failed(second, "link_shared_resources", "permission denied")
    third = service.start("third", "/srv/releases/1.2", "full_release")
    assert third["restart_pending"] is True

    service.set_value(third, "restart_pending", False)
    assert service.start("fourth", "/srv/releases/1.2", "full_release")["restart_pending"] is False
