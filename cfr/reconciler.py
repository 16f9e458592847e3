from __future__ import annotations

import logging
from threading import Lock, Thread
from types import ModuleType
from typing import Any

from . import compose as compose_ops
from . import db
from .compose import ComposeError
from .control import create_app, serve
from .runtime import PassTrigger, StateRecord, UnitState
from .settings import settings
from .units import Unit, load_units
from .watcher import watch_and_execute


logger = logging.getLogger(__name__)


class Reconciler:
    """Brings every discovered compose unit up to date, one pass at a time.

    A pass: discover units, mark them Seen, mark vanished units Missing, then for
    each unit run a dry-run and apply only if the dry-run reports drift. One
    unit failing never stops the others.
    """

    def __init__(
        self,
        paths: list[str],
        record: StateRecord | None = None,
        dry_run: bool = False,
        compose: ModuleType | Any = compose_ops,
    ):
        self.paths = list(paths)
        self.record = record if record is not None else StateRecord()
        self.dry_run = dry_run
        self.compose = compose
        self._pass_lock = Lock()
        self.trigger = PassTrigger(self.run_once, name="apply")

    def run_pass(self) -> list[Unit]:
        """One apply pass. Discovery (traversal) errors propagate."""
        logger.info("Checking all units...")
        units = load_units(self.paths)

        discovered = set()
        for unit in units:
            self.record.record_seen(unit)
            discovered.add(unit.name)
        for name in self.record.names():
            if name in discovered:
                continue
            prev = self.record.get(name)
            self.record.record_state(name, UnitState.MISSING)
            if prev is not None and prev.state != UnitState.MISSING:
                db.log_event("WARN", "Unit no longer discovered, marked Missing", unit=name)

        for unit in units:
            self._reconcile_unit(unit)
        return units

    def _reconcile_unit(self, unit: Unit) -> None:
        try:
            drift = self.compose.needs_apply(unit)
        except ComposeError as e:
            logger.error("Dry run failed for %s (%s): %s", unit.name, unit.source, e)
            self.record.record(unit, UnitState.FAILED)
            db.log_event("ERROR", f"Dry run failed: {e}", unit=unit.name)
            return

        if not drift:
            logger.debug("Unit %s does not need applying", unit.name)
            self.record.record(unit, UnitState.OK)
            return

        logger.info("Unit %s needs applying (%s)", unit.name, unit.source)
        if self.dry_run:
            logger.info("Not applying %s because this is a dry run", unit.name)
            self.record.record(unit, UnitState.OK)
            return

        self.record.record(unit, UnitState.APPLYING)
        db.log_event("INFO", "Applying", unit=unit.name)
        try:
            self.compose.apply_unit(unit)
        except ComposeError as e:
            logger.error("Failed to apply %s (%s): %s", unit.name, unit.source, e)
            self.record.record(unit, UnitState.FAILED)
            db.log_event("ERROR", f"Apply failed: {e}", unit=unit.name)
            return
        self.record.record(unit, UnitState.OK)
        db.log_event("INFO", "Applied", unit=unit.name)

    def run_once(self) -> None:
        """Locked pass; failures are logged, never raised."""
        with self._pass_lock:
            try:
                self.run_pass()
            except Exception as e:
                logger.exception("Apply pass failed")
                db.log_event("ERROR", f"Apply pass failed: {type(e).__name__}: {e}")

    def launch(self) -> None:
        """Run as a daemon: control plane, trigger worker and path watcher. Blocks."""
        db.log_event("INFO", "Reconciler started")
        self.trigger.start()

        app = create_app(self.record, self.trigger)

        def _serve() -> None:
            try:
                serve(app)
            except Exception:
                logger.exception("Control plane stopped")

        Thread(target=_serve, name="cfr-control", daemon=True).start()

        try:
            watch_and_execute(
                self.paths,
                lambda: self.trigger.fire("watch"),
                every=settings.apply_interval_s,
            )
        finally:
            self.trigger.stop()
