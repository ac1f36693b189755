import pytest

from pveform.errors import (
    ReassembleError,
    SubmissionError,
    SubmissionInProgressError,
    ValidationError,
)
from pveform.properties import cdrom_property, memory_property, startup_property
from pveform.session import EditSession


def test_submit_sends_payload_once():
    calls = []
    session = EditSession(startup_property(), {"startup": "order=1"}, submit=calls.append)
    session.set_value("_startup_up", 10)
    session.submit()
    assert calls == [{"startup": "1,up=10"}]
    assert not session.submitting


def test_session_keeps_its_own_copy():
    record = {"startup": "order=1"}
    session = EditSession(startup_property(), record, submit=lambda payload: None)
    record["startup"] = "order=9"
    assert session.record["startup"] == "order=1"
    assert session.get("_startup_order") == 1


def test_reload_discards_edits():
    session = EditSession(startup_property(), {"startup": "order=1"}, submit=lambda p: None)
    session.set_value("_startup_order", 5)
    session.reload({"startup": "order=2"})
    assert session.get("_startup_order") == 2


def test_memory_sync_runs_on_edit():
    session = EditSession(
        memory_property(), {"memory": "2048", "balloon": 2048}, submit=lambda p: None
    )
    session.set_value("_memory_current", 4096)
    assert session.get("balloon") == 4096


def test_invalid_input_blocks_transport():
    calls = []
    session = EditSession(memory_property(), {"memory": "2048"}, submit=calls.append)
    session.set_invalid("_memory_current", "20x")
    with pytest.raises(ReassembleError) as exc:
        session.submit()
    assert exc.value.field == "_memory_current"
    assert calls == []


def test_invalid_disk_device_blocks_transport():
    calls = []
    session = EditSession(cdrom_property(), {}, submit=calls.append)
    session.set_value("_device_", {"controller": "scsi", "device_id": "invalid"})
    with pytest.raises(ValidationError) as exc:
        session.submit()
    assert exc.value.field == "_device_"
    assert calls == []


def test_transport_failure_keeps_working_record():
    def boom(payload):
        raise OSError("connection refused")

    session = EditSession(startup_property(), {"startup": "order=1"}, submit=boom)
    session.set_value("_startup_up", 10)
    with pytest.raises(SubmissionError, match="connection refused"):
        session.submit()
    assert session.get("_startup_up") == 10
    assert not session.submitting


def test_second_submit_while_in_flight_is_rejected():
    holder = {}

    def reenter(payload):
        holder["session"].submit()

    session = EditSession(startup_property(), {"startup": "order=1"}, submit=reenter)
    holder["session"] = session
    with pytest.raises(SubmissionInProgressError):
        session.submit()
    assert not session.submitting


def test_revert():
    calls = []
    session = EditSession(memory_property(), {"memory": "2048"}, submit=calls.append)
    session.revert()
    assert calls == [{"revert": "memory,balloon,shares"}]
