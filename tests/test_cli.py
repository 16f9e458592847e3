import json

import pytest

from cfr import cli


def test_launch_requires_a_path():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["launch"])


def test_binding_parses_nested_output():
    args = cli.build_parser().parse_args(
        ["binding", "--path", "/a", "--path", "/b", "--domain", "x.org", "nginx", "--dir", "/etc/nginx/conf.d"]
    )
    assert args.path == ["/a", "/b"]
    assert args.output == "nginx"
    assert args.dir == "/etc/nginx/conf.d"
    assert args.executable is None


def test_status_against_missing_socket_fails(tmp_path):
    assert cli.main(["status", "--socket", str(tmp_path / "nope.sock")]) == 1


def test_binding_json_prints_tree(write_unit, monkeypatch, capsys):
    write_unit("web.yaml", "services:\n  app:\n    image: nginx\n")
    monkeypatch.setattr(cli.Rebinder, "collect_json", lambda self: {"projects": {"web": {"project": "web", "containers": {}}}})

    assert cli.main(["binding", "--path", write_unit.root, "json"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["projects"]["web"]["containers"] == {}
