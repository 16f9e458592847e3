import os
import subprocess

import pytest

from cfr import compose
from cfr.compose import ComposeError, output_needs_apply
from cfr.units import Unit


UP_TO_DATE = """\
 Container shop-db-1  Running
 Container shop-web-1  Running
end of 'compose up' output, interactive run is not supported in dry-run mode
"""

DRIFTED = """\
 Container shop-db-1  Running
 Container shop-web-1  Recreate
 Container shop-web-1  Recreated
end of 'compose up' output, interactive run is not supported in dry-run mode
"""


def test_all_running_means_no_apply():
    assert output_needs_apply(UP_TO_DATE) is False


def test_any_other_line_means_apply():
    assert output_needs_apply(DRIFTED) is True


def test_empty_output_counts_as_drift():
    assert output_needs_apply("") is True


def _unit():
    return Unit(name="shop", source="/defs/shop.yaml", content="services: {}\n")


def test_needs_apply_runs_dry_run_and_cleans_up(monkeypatch):
    calls = []

    def fake_run(args):
        calls.append(args)
        f_idx = args.index("-f") + 1
        with open(args[f_idx], encoding="utf-8") as fh:
            assert fh.read() == "services: {}\n"
        return subprocess.CompletedProcess(args, 0, stdout=UP_TO_DATE)

    monkeypatch.setattr(compose.shell, "run", fake_run)
    assert compose.needs_apply(_unit()) is False

    args = calls[0]
    assert args[:3] == ["docker", "compose", "--dry-run"]
    assert args[3:5] == ["-p", "shop"]
    assert args[-1] == "up"
    assert not os.path.exists(args[args.index("-f") + 1])


def test_apply_failure_raises_compose_error(monkeypatch):
    def fake_run(args):
        assert args[-2:] == ["up", "-d"]
        return subprocess.CompletedProcess(args, 1, stdout="pull access denied")

    monkeypatch.setattr(compose.shell, "run", fake_run)
    with pytest.raises(ComposeError) as exc:
        compose.apply_unit(_unit())
    assert exc.value.returncode == 1
    assert "pull access denied" in exc.value.output


def test_missing_docker_binary_is_a_compose_error(monkeypatch):
    def fake_run(args):
        raise FileNotFoundError(args[0])

    monkeypatch.setattr(compose.shell, "run", fake_run)
    with pytest.raises(ComposeError):
        compose.needs_apply(_unit())
