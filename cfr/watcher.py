from __future__ import annotations

import logging
import os
import time
from threading import Event, Thread
from typing import Callable, Iterable

from .settings import settings


logger = logging.getLogger(__name__)

Snapshot = dict[str, tuple[int, int]]


def scan(paths: Iterable[str]) -> Snapshot:
    """Map every file under ``paths`` to its (mtime_ns, size)."""
    out: Snapshot = {}
    for root in paths:
        if os.path.isfile(root):
            candidates = [root]
        else:
            candidates = []
            for dirpath, _dirnames, filenames in os.walk(root):
                candidates.extend(os.path.join(dirpath, fn) for fn in filenames)
        for path in candidates:
            try:
                st = os.stat(path)
            except OSError:
                # Removed between listing and stat.
                continue
            out[path] = (st.st_mtime_ns, st.st_size)
    return out


def changed_paths(before: Snapshot, after: Snapshot) -> list[str]:
    """Files added, removed or modified between two snapshots, sorted."""
    changed = set(before.keys() ^ after.keys())
    changed.update(p for p in before.keys() & after.keys() if before[p] != after[p])
    return sorted(changed)


def _safe_call(executor: Callable[[], None], why: str) -> None:
    try:
        executor()
    except Exception:
        logger.exception("Executor failed (trigger: %s)", why)


def _every(executor: Callable[[], None], interval_s: float, stop: Event) -> None:
    while not stop.is_set():
        logger.info("Triggering executor due to time schedule")
        _safe_call(executor, "timer")
        stop.wait(interval_s)


def watch_and_execute(
    paths: list[str],
    executor: Callable[[], None],
    every: float | None = None,
    poll_s: float | None = None,
    stop: Event | None = None,
) -> None:
    """Call ``executor`` on every file change under ``paths``, and every ``every`` seconds.

    Blocks until ``stop`` is set. Raises FileNotFoundError up front if a path is
    missing. Overlapping calls are not deduplicated here; the executor decides
    how to serialize them.
    """
    for p in paths:
        if not os.path.exists(p):
            raise FileNotFoundError(f"Cannot watch missing path: {p}")
    if poll_s is None:
        poll_s = settings.watch_poll_s
    if stop is None:
        stop = Event()

    snapshot = scan(paths)
    logger.info("Watching %d path(s), %d file(s)", len(paths), len(snapshot))

    if every is not None:
        Thread(target=_every, args=(executor, every, stop), name="cfr-timer", daemon=True).start()

    while not stop.wait(poll_s):
        current = scan(paths)
        for path in changed_paths(snapshot, current):
            logger.info("Received a change on %s, launching executor", path)
            _safe_call(executor, f"change:{path}")
        snapshot = current
