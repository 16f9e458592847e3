from __future__ import annotations

import json
import logging
import queue
from dataclasses import dataclass, field
from threading import Thread
from typing import Any, Iterable

from . import docker_ops
from .settings import settings


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventDefinition:
    """One classification rule for docker runtime events.

    ``prefix`` rules match statuses docker decorates with detail, e.g.
    ``health_status: healthy`` or ``exec_start: sh -c ...``.
    """

    kind: str
    status: str
    prefix: bool = False

    @property
    def key(self) -> str:
        return f"{self.kind}.{self.status}"

    def matches(self, kind: str, status: str) -> bool:
        if kind != self.kind:
            return False
        if self.prefix:
            return status.startswith(self.status)
        return status == self.status


@dataclass(frozen=True)
class RuntimeEvent:
    definition: EventDefinition
    meta: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def key(self) -> str:
        return self.definition.key


class EventCatalog:
    """Exact (kind, status) lookup with per-kind prefix fallback."""

    def __init__(self, definitions: Iterable[EventDefinition]):
        self.definitions = tuple(definitions)
        self._exact: dict[tuple[str, str], EventDefinition] = {}
        self._prefix: dict[str, list[EventDefinition]] = {}
        for d in self.definitions:
            if d.prefix:
                self._prefix.setdefault(d.kind, []).append(d)
            else:
                if (d.kind, d.status) in self._exact:
                    raise ValueError(f"Duplicate event rule {d.key}")
                self._exact[(d.kind, d.status)] = d

    def classify(self, kind: str, status: str) -> EventDefinition | None:
        exact = self._exact.get((kind, status))
        if exact is not None:
            return exact
        for d in self._prefix.get(kind, []):
            if d.matches(kind, status):
                return d
        return None

    def check_unambiguous(self) -> None:
        """Raise ValueError if two rules of one kind could match the same status."""
        for kind, prefixes in self._prefix.items():
            for p in prefixes:
                for other in prefixes:
                    if other is not p and other.status.startswith(p.status):
                        raise ValueError(f"Prefix rule {p.key} overlaps {other.key}")
                for (k, status), exact in self._exact.items():
                    if k == kind and status.startswith(p.status):
                        raise ValueError(f"Prefix rule {p.key} overlaps exact rule {exact.key}")

    def __len__(self) -> int:
        return len(self.definitions)

    def __iter__(self):
        return iter(self.definitions)


# Statuses docker suffixes with ": <detail>".
_CONTAINER_PREFIXED = {"exec_create", "exec_detach", "exec_die", "exec_start", "health_status"}

_STATUSES: dict[str, list[str]] = {
    "container": [
        "attach", "commit", "copy", "create", "destroy", "detach", "die",
        "exec_create", "exec_detach", "exec_die", "exec_start", "export",
        "health_status", "kill", "oom", "pause", "rename", "resize", "restart",
        "start", "stop", "top", "unpause", "update",
    ],
    "image": ["delete", "import", "load", "pull", "push", "save", "tag", "untag"],
    "plugin": ["enable", "disable", "install", "remove"],
    "volume": ["create", "destroy", "mount", "unmount"],
    "network": ["create", "connect", "destroy", "disconnect", "remove"],
    "daemon": ["reload"],
    "service": ["create", "remove", "update"],
    "node": ["create", "remove", "update"],
    "secret": ["create", "remove", "update"],
    "config": ["create", "remove", "update"],
}


def _build_default_catalog() -> EventCatalog:
    defs: list[EventDefinition] = []
    for kind, statuses in _STATUSES.items():
        for status in statuses:
            defs.append(EventDefinition(kind, status, prefix=(kind == "container" and status in _CONTAINER_PREFIXED)))
    catalog = EventCatalog(defs)
    catalog.check_unambiguous()
    return catalog


CATALOG = _build_default_catalog()

# Container lifecycle changes that can move or remove published ports.
REBIND_EVENTS = frozenset(
    f"container.{s}" for s in ("destroy", "detach", "die", "kill", "restart", "oom", "start", "stop")
)


def is_rebind_event(event: RuntimeEvent) -> bool:
    return event.key in REBIND_EVENTS


def classify_record(data: Any, catalog: EventCatalog = CATALOG) -> RuntimeEvent | None:
    """Classify one decoded docker event record.

    Returns None (after logging) for incomplete or unknown records.
    """
    if not isinstance(data, dict):
        logger.error("Runtime event is not an object: %r", data)
        return None

    status = data.get("status")
    if not isinstance(status, str):
        logger.error("Runtime event has no string status: %r", data)
        return None
    kind = data.get("Type")
    if not isinstance(kind, str):
        logger.error("Runtime event has no string Type: %r", data)
        return None

    definition = catalog.classify(kind, status)
    if definition is None:
        logger.error("No matching event rule for type=%s status=%s", kind, status)
        return None
    logger.debug("Event classified as %s", definition.key)
    return RuntimeEvent(definition=definition, meta=data)


def parse_event(line: str | bytes, catalog: EventCatalog = CATALOG) -> RuntimeEvent | None:
    """Classify one JSON-encoded event record (as printed by `docker events --format '{{json .}}'`)."""
    try:
        data = json.loads(line)
    except (ValueError, TypeError) as e:
        logger.error("Failed to parse runtime event as JSON: %s (value=%r)", e, line)
        return None
    return classify_record(data, catalog)


def pump_records(records: Iterable[Any], events: "queue.Queue[RuntimeEvent]") -> None:
    """Classify decoded records and push matches onto ``events``.

    ``put`` blocks while the queue is full, so a slow consumer stalls the reader
    rather than losing events.
    """
    for data in records:
        ev = classify_record(data)
        if ev is not None:
            events.put(ev)


def pump_events(lines: Iterable[str | bytes], events: "queue.Queue[RuntimeEvent]") -> None:
    """Line-oriented variant of ``pump_records``; blank lines are skipped."""
    for line in lines:
        if not line.strip():
            continue
        ev = parse_event(line)
        if ev is not None:
            events.put(ev)


def make_event_queue(maxsize: int | None = None) -> "queue.Queue[RuntimeEvent]":
    return queue.Queue(maxsize=settings.event_queue_size if maxsize is None else maxsize)


def subscribe_to_runtime_events(events: "queue.Queue[RuntimeEvent]", runtime: Any = docker_ops) -> Thread:
    """Open the docker event stream and start a reader thread feeding ``events``.

    Docker errors while opening the stream propagate to the caller.
    """
    stream = runtime.event_stream()

    def _reader() -> None:
        try:
            pump_records(stream, events)
        except Exception:
            logger.exception("Runtime event stream failed")
        finally:
            stream.close()
            logger.error("Runtime event stream ended; no further runtime events")

    thr = Thread(target=_reader, name="cfr-events", daemon=True)
    thr.start()
    return thr
