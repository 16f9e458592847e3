import threading
import time

import pytest

from cfr.runtime import PassTrigger, StateRecord, UnitState
from cfr.units import Unit


def _unit(name, source=None):
    return Unit(name=name, source=source or f"/defs/{name}.yaml", content="services: {}\n")


def _wait_for(pred, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if pred():
            return True
        time.sleep(0.01)
    return pred()


def test_snapshot_is_sorted_copy():
    record = StateRecord()
    record.record_seen(_unit("zeta"))
    record.record(_unit("alpha"), UnitState.OK)

    snap = record.snapshot()
    assert [r.unit.name for r in snap] == ["alpha", "zeta"]
    assert [r.state for r in snap] == [UnitState.OK, UnitState.SEEN]

    record.record_state("zeta", UnitState.MISSING)
    assert snap[1].state == UnitState.SEEN
    assert record.get("zeta").state == UnitState.MISSING


def test_record_replaces_unit_wholesale():
    record = StateRecord()
    record.record_seen(_unit("web", "/old/web.yaml"))
    record.record_seen(_unit("web", "/new/web.yaml"))
    assert record.get("web").unit.source == "/new/web.yaml"
    assert record.names() == ["web"]


def test_record_state_for_unknown_unit_raises():
    with pytest.raises(KeyError):
        StateRecord().record_state("ghost", UnitState.MISSING)


def test_unit_state_values():
    assert [s.value for s in UnitState] == ["Seen", "Applying", "Ok", "Failed", "Missing"]


def test_trigger_coalesces_bursts():
    started = threading.Event()
    release = threading.Event()
    runs = []

    def executor():
        runs.append(1)
        started.set()
        release.wait(5)

    trigger = PassTrigger(executor, name="test")
    trigger.start()
    try:
        trigger.fire("first")
        assert started.wait(5)
        for i in range(5):
            trigger.fire(f"burst-{i}")
        assert trigger.pending == "burst-4"

        release.set()
        assert _wait_for(lambda: len(runs) == 2 and trigger.pending is None)
        time.sleep(0.1)
        assert len(runs) == 2
    finally:
        trigger.stop()
        trigger.join(5)


def test_fire_without_worker_only_fills_the_slot():
    trigger = PassTrigger(lambda: None)
    trigger.fire("a")
    trigger.fire("b")
    assert trigger.pending == "b"


def test_executor_errors_do_not_kill_worker():
    calls = []
    second = threading.Event()

    def executor():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")
        second.set()

    trigger = PassTrigger(executor)
    trigger.start()
    try:
        trigger.fire()
        assert _wait_for(lambda: len(calls) == 1)
        trigger.fire()
        assert second.wait(5)
    finally:
        trigger.stop()
        trigger.join(5)
