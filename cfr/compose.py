from __future__ import annotations

import logging
import os
import tempfile

from . import shell
from .settings import settings
from .units import Unit


logger = logging.getLogger(__name__)

# Last line of `docker compose --dry-run up`.
DRY_RUN_TRAILER = "end of 'compose up'"
RUNNING_MARKER = "Running"


class ComposeError(Exception):
    def __init__(self, unit: str, returncode: int, output: str):
        super().__init__(f"docker compose failed for {unit} (exit {returncode})")
        self.unit = unit
        self.returncode = returncode
        self.output = output


def output_needs_apply(output: str) -> bool:
    """Best-effort drift check on dry-run output.

    The unit is up to date only if every line other than the trailer mentions
    ``Running``. This says nothing about config drift inside running containers.
    """
    for line in output.strip().split("\n"):
        if line.startswith(DRY_RUN_TRAILER):
            continue
        if RUNNING_MARKER not in line:
            return True
    return False


def _compose(unit: Unit, global_flags: list[str], command: list[str]) -> str:
    fd, path = tempfile.mkstemp(suffix=".cfr.yaml")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(unit.content)
        cmd = [settings.docker_bin, "compose", *global_flags, "-p", unit.name, "-f", path, *command]
        try:
            proc = shell.run(cmd)
        except OSError as e:
            raise ComposeError(unit.name, -1, str(e)) from e
        logger.debug("command output cmd=%s output=%s", cmd, shell.one_line(proc.stdout or ""))
        if proc.returncode != 0:
            raise ComposeError(unit.name, proc.returncode, proc.stdout or "")
        return proc.stdout or ""
    finally:
        try:
            os.remove(path)
        except OSError as e:
            logger.error("Failed to clean up temp file %s: %s", path, e)


def needs_apply(unit: Unit) -> bool:
    """Run `docker compose --dry-run up` for the unit and apply the drift heuristic."""
    out = _compose(unit, ["--dry-run"], ["up"])
    return output_needs_apply(out)


def apply_unit(unit: Unit) -> None:
    """Run `docker compose up -d` for the unit and wait for it."""
    _compose(unit, [], ["up", "-d"])
