import pytest

from zerodeploy.errors_catalog import actionable_error


def test_actionable_error_formats_message_with_suggested_action():
    message = actionable_error("deployment_locked", lock_path="/srv/live.zerodeploy.lock")

    assert "Another deployment holds the lock /srv/live.zerodeploy.lock." in message
    assert "Suggested action:" in message


def test_actionable_error_rejects_unknown_codes():
    with pytest.raises(KeyError):
        actionable_error("does_not_exist")
