import httpx
import pytest
from fastapi.testclient import TestClient

from cfr import db
from cfr.control import ControlClient, create_app
from cfr.runtime import PassTrigger, StateRecord, UnitState
from cfr.units import Unit


@pytest.fixture
def record():
    r = StateRecord()
    r.record(Unit(name="web", source="/defs/web.yaml", content=""), UnitState.OK)
    r.record(Unit(name="db", source="/defs/db.yaml", content=""), UnitState.FAILED)
    return r


@pytest.fixture
def trigger():
    # Never started: fire() only fills the pending slot.
    return PassTrigger(lambda: None, name="apply")


@pytest.fixture
def client(record, trigger):
    return TestClient(create_app(record, trigger))


def test_apply_is_accepted_and_queues_a_pass(client, trigger):
    r = client.post("/apply")
    assert r.status_code == 202
    assert r.json() == {"accepted": True}
    assert trigger.pending == "control-plane"


def test_repeated_apply_requests_coalesce(client, trigger):
    for _ in range(3):
        assert client.post("/apply").status_code == 202
    assert trigger.pending == "control-plane"


def test_status_lists_units_sorted(client):
    r = client.get("/status")
    assert r.status_code == 200
    data = r.json()
    assert [u["name"] for u in data] == ["db", "web"]
    assert data[0]["state"] == "Failed"
    assert data[0]["source"] == "/defs/db.yaml"
    assert data[1]["state"] == "Ok"
    assert data[1]["last_updated"].endswith("Z")


def test_status_empty_record(trigger):
    c = TestClient(create_app(StateRecord(), trigger))
    assert c.get("/status").json() == []


def test_events_returns_latest_first(client):
    db.log_event("INFO", "Applying", unit="web")
    db.log_event("info", "Applied", unit="web")

    r = client.get("/events", params={"limit": 1})
    assert r.status_code == 200
    data = r.json()
    assert len(data) == 1
    assert data[0]["message"] == "Applied"
    assert data[0]["level"] == "INFO"
    assert data[0]["unit"] == "web"


def test_events_limit_is_bounded(client):
    assert client.get("/events", params={"limit": 0}).status_code == 422


def test_client_reports_unreachable_daemon(tmp_path):
    with ControlClient(str(tmp_path / "absent.sock"), timeout_s=1) as c:
        with pytest.raises(httpx.TransportError):
            c.get_status()
