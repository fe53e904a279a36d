"""
Tests for the status module
"""

# Standard
from datetime import datetime, timedelta

# Third Party
import pytest

# Local
from kreconcile import status
from kreconcile.exceptions import ResourceConflictError
from kreconcile.test_helpers.helpers import (
    TEST_NAMESPACE,
    FailOnce,
    MockTransport,
    library_config,
    make_widget,
)

## Helpers #####################################################################


def get_widget(transport):
    return transport.get_obj("Widget", "test-widget", TEST_NAMESPACE)


## make_phase_status ###########################################################


def test_make_phase_status():
    """Make sure the phase status holds the phase, reason and timestamp"""
    now = datetime(2021, 1, 1, 12, 0, 0)
    assert status.make_phase_status("Failed", "boom", now) == {
        status.PHASE_KEY: "Failed",
        status.REASON_KEY: "boom",
        status.TIMESTAMP_KEY: now.isoformat(),
    }


def test_make_phase_status_defaults():
    """Make sure the reason defaults to empty and the time to now"""
    phase_status = status.make_phase_status("Ready")
    assert phase_status[status.REASON_KEY] == ""
    assert datetime.fromisoformat(phase_status[status.TIMESTAMP_KEY])


## update_status ###############################################################


def test_update_status_writes():
    """Make sure a new status is written"""
    transport = MockTransport([make_widget()])
    widget = get_widget(transport)
    assert status.update_status(transport, widget, {"phase": "Ready"}) == (True, True)
    assert get_widget(transport)["status"] == {"phase": "Ready"}


def test_update_status_unchanged():
    """Make sure an unchanged status is not written"""
    transport = MockTransport([make_widget()])
    widget = get_widget(transport)
    widget["status"] = {"phase": "Ready"}
    assert status.update_status(transport, widget, {"phase": "Ready"}) == (True, False)
    transport.replace_status.assert_not_called()


def test_update_status_does_not_modify_input():
    """Make sure the given definition is left alone"""
    transport = MockTransport([make_widget()])
    widget = get_widget(transport)
    status.update_status(transport, widget, {"phase": "Ready"})
    assert "status" not in widget


def test_update_status_retries_conflict():
    """Make sure a conflict is retried against the latest resourceVersion"""
    transport = MockTransport(
        [make_widget()], replace_status_fail=FailOnce(ResourceConflictError)
    )
    widget = get_widget(transport)
    assert status.update_status(transport, widget, {"phase": "Ready"}) == (True, True)
    assert transport.replace_status.call_count == 2
    assert get_widget(transport)["status"] == {"phase": "Ready"}


def test_update_status_stale_version_retried():
    """Make sure a write with an outdated resourceVersion succeeds on retry"""
    transport = MockTransport([make_widget()])
    stale = get_widget(transport)
    status.update_status(transport, get_widget(transport), {"phase": "Pending"})
    assert status.update_status(transport, stale, {"phase": "Ready"}) == (True, True)
    assert get_widget(transport)["status"] == {"phase": "Ready"}


def test_update_status_retries_exhausted():
    """Make sure repeated conflicts give up after the configured retries"""
    transport = MockTransport([make_widget()], replace_status_fail=ResourceConflictError)
    widget = get_widget(transport)
    with library_config(status_update_retries=2):
        assert status.update_status(transport, widget, {"phase": "Ready"}) == (
            False,
            False,
        )
    assert transport.replace_status.call_count == 3


def test_update_status_other_failure():
    """Make sure other failures are not retried"""
    transport = MockTransport([make_widget()], replace_status_fail=True)
    widget = get_widget(transport)
    assert status.update_status(transport, widget, {"phase": "Ready"}) == (
        False,
        False,
    )
    assert transport.replace_status.call_count == 1


def test_update_status_deleted_during_retry():
    """Make sure a resource deleted during a retry fails the update"""
    transport = MockTransport([make_widget()])
    widget = get_widget(transport)

    def delete_then_conflict():
        transport.delete_object("Widget", "test-widget", TEST_NAMESPACE)
        raise ResourceConflictError("conflict")

    transport.replace_status.side_effect = lambda *_, **__: delete_then_conflict()
    assert status.update_status(transport, widget, {"phase": "Ready"}) == (
        False,
        False,
    )


def test_update_phase_status():
    """Make sure the phase status is written"""
    transport = MockTransport([make_widget()])
    widget = get_widget(transport)
    assert status.update_phase_status(transport, widget, "Failed", "boom") == (
        True,
        True,
    )
    written = get_widget(transport)["status"]
    assert written[status.PHASE_KEY] == "Failed"
    assert written[status.REASON_KEY] == "boom"


## status_changed ##############################################################


def test_status_changed_ignores_timestamp():
    """Make sure only the timestamp changing is not a change"""
    now = datetime.now()
    current = status.make_phase_status("Ready", last_transaction_time=now)
    new = status.make_phase_status(
        "Ready", last_transaction_time=now + timedelta(minutes=1)
    )
    assert not status.status_changed(current, new)
    assert status.status_changed(current, status.make_phase_status("Failed"))


@pytest.mark.parametrize("current", [None, "Ready", ["Ready"]])
def test_status_changed_non_dict(current):
    """Make sure a non-dict status is always a change"""
    assert status.status_changed(current, {"phase": "Ready"})


## get_condition ###############################################################


def test_get_condition():
    """Make sure conditions are found by type"""
    current = {
        "conditions": [
            {"type": "Complete", "status": "True"},
            {"type": "Failed", "status": "False"},
        ]
    }
    assert status.get_condition("Failed", current) == {
        "type": "Failed",
        "status": "False",
    }
    assert status.get_condition("Missing", current) == {}
    assert status.get_condition("Complete", None) == {}
    assert status.get_condition("Complete", {"conditions": None}) == {}


def test_get_condition_duplicate():
    """Make sure duplicate conditions are an error"""
    current = {"conditions": [{"type": "Ready"}, {"type": "Ready"}]}
    with pytest.raises(AssertionError):
        status.get_condition("Ready", current)
