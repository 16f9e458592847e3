from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from threading import Condition, Lock, Thread
from typing import Callable

from .db import utc_now
from .units import Unit


logger = logging.getLogger(__name__)


class UnitState(str, Enum):
    SEEN = "Seen"
    APPLYING = "Applying"
    OK = "Ok"
    FAILED = "Failed"
    MISSING = "Missing"


@dataclass(frozen=True)
class UnitRecord:
    unit: Unit
    state: UnitState
    last_updated: str


class StateRecord:
    """Lifecycle state of every unit ever discovered by this process.

    Entries are never removed; units that disappear are marked Missing by the
    reconciliation pass. The record itself does not enforce transitions.
    """

    def __init__(self) -> None:
        self.lock = Lock()
        self._units: dict[str, UnitRecord] = {}

    def record(self, unit: Unit, state: UnitState) -> None:
        with self.lock:
            self._units[unit.name] = UnitRecord(unit=unit, state=state, last_updated=utc_now())

    def record_seen(self, unit: Unit) -> None:
        self.record(unit, UnitState.SEEN)

    def record_state(self, name: str, state: UnitState) -> None:
        with self.lock:
            current = self._units[name]
            self._units[name] = replace(current, state=state, last_updated=utc_now())

    def get(self, name: str) -> UnitRecord | None:
        with self.lock:
            return self._units.get(name)

    def names(self) -> list[str]:
        with self.lock:
            return list(self._units)

    def snapshot(self) -> list[UnitRecord]:
        """Point-in-time copy, sorted by unit name."""
        with self.lock:
            return sorted(self._units.values(), key=lambda r: r.unit.name)


class PassTrigger:
    """Single-slot command queue in front of a reconciliation pass.

    ``fire`` never blocks. While a pass runs, further requests collapse into one
    pending slot (the latest reason wins), so a burst of triggers costs at most
    one extra pass.
    """

    def __init__(self, executor: Callable[[], None], name: str = "pass"):
        self._executor = executor
        self.name = name
        self._cond = Condition()
        self._pending: str | None = None
        self._stop = False
        self._thr: Thread | None = None

    def fire(self, reason: str = "manual") -> None:
        with self._cond:
            if self._pending is not None:
                logger.debug("Coalescing %s trigger %r into pending %r", self.name, reason, self._pending)
            self._pending = reason
            self._cond.notify()

    @property
    def pending(self) -> str | None:
        with self._cond:
            return self._pending

    def start(self) -> None:
        if self._thr and self._thr.is_alive():
            return
        self._stop = False
        self._thr = Thread(target=self._loop, name=f"cfr-{self.name}", daemon=True)
        self._thr.start()

    def stop(self) -> None:
        with self._cond:
            self._stop = True
            self._cond.notify()

    def join(self, timeout: float | None = None) -> None:
        if self._thr:
            self._thr.join(timeout)

    def _take(self) -> str | None:
        with self._cond:
            while self._pending is None and not self._stop:
                self._cond.wait()
            if self._stop:
                return None
            reason, self._pending = self._pending, None
            return reason

    def _loop(self) -> None:
        while True:
            reason = self._take()
            if reason is None:
                return
            logger.info("Running %s pass (trigger: %s)", self.name, reason)
            try:
                self._executor()
            except Exception:
                logger.exception("%s pass failed", self.name)
