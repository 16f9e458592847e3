from __future__ import annotations

import argparse
import json
import logging
import sys

import httpx

from .control import ControlClient
from .nginx import BindingConfiguration
from .rebinder import Rebinder
from .reconciler import Reconciler
from .settings import settings
from .watcher import watch_and_execute


logger = logging.getLogger("cfr")


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _cmd_launch(args: argparse.Namespace) -> int:
    Reconciler(args.path, dry_run=args.dry_run).launch()
    return 0


def _cmd_binding(args: argparse.Namespace) -> int:
    config = BindingConfiguration(
        default_domain=args.domain,
        ssl_certificate=args.ssl_cert,
        ssl_private_key=args.ssl_privkey,
        label_prefix=args.label_prefix,
    )
    if args.output == "json":
        rebinder = Rebinder(args.path, config)
        if args.watch:
            watch_and_execute(args.path, lambda: _print(rebinder.collect_json()), every=settings.binding_interval_s)
            return 0
        _print(rebinder.collect_json())
        return 0

    rebinder = Rebinder(args.path, config, out_dir=args.dir, executable=args.executable, service=args.service)
    if args.watch:
        rebinder.launch()
        return 0
    rebinder.run_pass()
    return 0


def _with_client(args: argparse.Namespace, fn) -> int:
    try:
        with ControlClient(args.socket) as client:
            return fn(client)
    except httpx.TransportError as e:
        logger.error("Could not reach the daemon at %s: %s", args.socket, e)
        return 1
    except httpx.HTTPStatusError as e:
        logger.error("Daemon refused the request: %s", e)
        return 1


def _cmd_apply(args: argparse.Namespace) -> int:
    def _go(client: ControlClient) -> int:
        client.force_apply()
        logger.info("Request submitted successfully")
        return 0

    return _with_client(args, _go)


def _cmd_status(args: argparse.Namespace) -> int:
    def _go(client: ControlClient) -> int:
        _print(client.get_status())
        return 0

    return _with_client(args, _go)


def _cmd_events(args: argparse.Namespace) -> int:
    def _go(client: ControlClient) -> int:
        _print(client.events(limit=args.limit))
        return 0

    return _with_client(args, _go)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="cfr", description="Compose Fleet Reconciler")
    p.add_argument("--log-level", default=settings.log_level, help="DEBUG, INFO, WARNING, ERROR")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_launch = sub.add_parser("launch", help="Run the reconciliation daemon")
    s_launch.add_argument("--path", action="append", required=True, help="Folder to watch for compose definitions (repeatable)")
    s_launch.add_argument("--dry-run", action="store_true", help="Only report which units need applying")
    s_launch.set_defaults(func=_cmd_launch)

    s_bind = sub.add_parser("binding", help="Derive proxy bindings from running units")
    s_bind.add_argument("--path", action="append", required=True, help="Folder with compose definitions (repeatable)")
    s_bind.add_argument("--watch", action="store_true", help="Keep running and rebind on changes")
    s_bind.add_argument("--domain", default="", help="Default server_name for http bindings")
    s_bind.add_argument("--ssl-cert", default="", help="ssl_certificate path")
    s_bind.add_argument("--ssl-privkey", default="", help="ssl_certificate_key path")
    s_bind.add_argument("--label-prefix", default=settings.label_prefix, help="Container label namespace")
    bind_sub = s_bind.add_subparsers(dest="output", required=True)

    s_nginx = bind_sub.add_parser("nginx", help="Write nginx config files")
    s_nginx.add_argument("--dir", default=".", help="Output directory")
    s_nginx.add_argument("--executable", default=None, help="nginx binary used to validate before reloading")
    s_nginx.add_argument("--service", default="nginx", help="Service name to restart")
    bind_sub.add_parser("json", help="Print the binding tree as JSON")
    s_bind.set_defaults(func=_cmd_binding)

    for name, func, text in (
        ("apply", _cmd_apply, "Ask the daemon for a reconciliation pass"),
        ("status", _cmd_status, "Show the state of every unit"),
        ("events", _cmd_events, "Show the daemon's event journal"),
    ):
        s = sub.add_parser(name, help=text)
        s.add_argument("--socket", default=settings.socket_path, help="Daemon socket")
        if name == "events":
            s.add_argument("--limit", type=int, default=20)
        s.set_defaults(func=func)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.log_level)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
