from __future__ import annotations

import logging
import queue
from threading import Lock, Thread
from typing import Any

from docker.errors import DockerException

from . import db
from . import docker_ops
from . import nginx
from .bindings import (
    BindingResult,
    ContainerRuntime,
    binding_result_as_dict,
    get_bindings_for_all_projects,
    render_files,
)
from .events import RuntimeEvent, is_rebind_event, make_event_queue, subscribe_to_runtime_events
from .nginx import BindingConfiguration, NginxError
from .runtime import PassTrigger
from .settings import settings
from .units import load_units
from .watcher import watch_and_execute
from .writer import WriteFailed, write_file_set_with_diff


logger = logging.getLogger(__name__)


class Rebinder:
    """Keeps nginx config in line with the ports published by running units.

    Passes are triggered by container lifecycle events, changes to the unit
    definitions and a timer. Config is only rewritten when it differs, and nginx
    is only validated/reloaded after a rewrite.
    """

    def __init__(
        self,
        paths: list[str],
        config: BindingConfiguration,
        out_dir: str = ".",
        executable: str | None = None,
        service: str = "nginx",
        runtime: ContainerRuntime | Any = docker_ops,
    ):
        self.paths = list(paths)
        self.config = config
        self.out_dir = out_dir
        self.executable = executable
        self.service = service
        self.runtime = runtime
        self._pass_lock = Lock()
        self.trigger = PassTrigger(self.run_once, name="binding")

    def collect(self) -> BindingResult:
        """Current binding tree for every unit. Runtime errors propagate."""
        units = load_units(self.paths)
        return get_bindings_for_all_projects(units, self.runtime)

    def collect_json(self) -> dict[str, Any]:
        return binding_result_as_dict(self.collect())

    def run_pass(self) -> bool:
        """Render, write and (if anything changed) validate and reload nginx.

        Returns whether any file changed.
        """
        files = render_files(self.collect(), self.config, self.runtime)

        try:
            changed = write_file_set_with_diff(files, self.out_dir)
        except WriteFailed as e:
            if e.changed:
                logger.error("Failed to write all files, however some files were edited: %s", e)
            else:
                logger.error("Failed to write all files, no files were changed: %s", e)
            return e.changed

        if not changed:
            logger.info("No changes made")
            return False

        logger.info("Binding files written to %s", self.out_dir)
        if self.executable is None:
            logger.info("Not reloading nginx because no executable has been provided")
            return True
        if not nginx.validate_nginx(self.executable):
            logger.error("Not reloading nginx: the generated config is invalid")
            db.log_event("ERROR", "Generated nginx config failed validation")
            return True
        try:
            nginx.reload_nginx(self.service)
        except NginxError as e:
            logger.error("nginx config was valid but the reload failed: %s", e)
            db.log_event("ERROR", f"nginx reload failed: {e}")
            raise
        db.log_event("INFO", "nginx reloaded with new bindings")
        return True

    def run_once(self) -> None:
        """Locked pass; failures are logged, never raised."""
        with self._pass_lock:
            try:
                self.run_pass()
            except Exception:
                logger.exception("Binding pass failed")

    def consume(self, events: "queue.Queue[RuntimeEvent | None]") -> None:
        """Fire a pass for every rebind-worthy event, until a None sentinel arrives."""
        while True:
            ev = events.get()
            if ev is None:
                events.task_done()
                return
            try:
                if is_rebind_event(ev):
                    logger.info("Got event to trigger rebind: %s", ev.key)
                    self.trigger.fire(f"event:{ev.key}")
                else:
                    logger.debug("Ignoring event %s", ev.key)
            finally:
                events.task_done()

    def launch(self) -> None:
        """Run as a daemon: runtime events, path watcher and timer. Blocks."""
        if not docker_ops.docker_available():
            logger.warning("Docker is not reachable; binding passes will fail until it is")
        self.trigger.start()

        events = make_event_queue()
        Thread(target=self.consume, args=(events,), name="cfr-rebind", daemon=True).start()
        try:
            subscribe_to_runtime_events(events, self.runtime)
        except DockerException as e:
            logger.error("Could not subscribe to runtime events, relying on the watcher and timer: %s", e)

        try:
            watch_and_execute(
                self.paths,
                lambda: self.trigger.fire("watch"),
                every=settings.binding_interval_s,
            )
        finally:
            self.trigger.stop()

