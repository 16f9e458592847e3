import dataclasses
import os
import sys

import pytest

# Ensure project root is importable without an install.
_project_root = os.path.dirname(os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from cfr import db  # noqa: E402
from cfr.units import Unit  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_journal(tmp_path, monkeypatch):
    """Every test gets its own sqlite journal."""
    monkeypatch.setattr(db, "settings", dataclasses.replace(db.settings, db_path=str(tmp_path / "journal.db")))


@pytest.fixture
def write_unit(tmp_path):
    """Write a definition file under tmp_path/units and return its path."""
    root = tmp_path / "units"
    root.mkdir(exist_ok=True)

    def _write(rel: str, text: str) -> str:
        p = root / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")
        return str(p)

    _write.root = str(root)
    return _write


class FakeCompose:
    """Stand-in for cfr.compose: canned dry-run verdicts, records applies."""

    def __init__(self, drift=None, dry_run_fail=(), apply_fail=(), on_apply=None):
        self.drift = dict(drift or {})
        self.dry_run_fail = set(dry_run_fail)
        self.apply_fail = set(apply_fail)
        self.on_apply = on_apply
        self.dry_runs = []
        self.applied = []

    def needs_apply(self, unit: Unit) -> bool:
        from cfr.compose import ComposeError

        self.dry_runs.append(unit.name)
        if unit.name in self.dry_run_fail:
            raise ComposeError(unit.name, 1, "no such image")
        return self.drift.get(unit.name, False)

    def apply_unit(self, unit: Unit) -> None:
        from cfr.compose import ComposeError

        if self.on_apply:
            self.on_apply(unit)
        self.applied.append(unit.name)
        if unit.name in self.apply_fail:
            raise ComposeError(unit.name, 1, "pull access denied")


@pytest.fixture
def fake_compose_cls():
    return FakeCompose


class FakeRuntime:
    """Stand-in for cfr.docker_ops."""

    def __init__(self, containers=None, labels=None, fail_inspect=()):
        self.containers = containers or {}
        self.labels = labels or {}
        self.fail_inspect = set(fail_inspect)

    def list_project_containers(self, project):
        return list(self.containers.get(project, []))

    def container_labels(self, container_id):
        from docker.errors import NotFound

        if container_id in self.fail_inspect:
            raise NotFound(f"No such container: {container_id}")
        return dict(self.labels.get(container_id, {}))


@pytest.fixture
def fake_runtime_cls():
    return FakeRuntime
