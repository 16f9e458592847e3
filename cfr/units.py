from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Iterable

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError

from .naming import normalize_name
from .settings import settings


logger = logging.getLogger(__name__)


class UnitParseError(Exception):
    """A single definition file could not be turned into a unit."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class ServiceSpec(BaseModel):
    """The parts of a compose service we rewrite. Everything else passes through."""

    model_config = ConfigDict(extra="allow")

    auto_volumes: list[str] | None = None
    volumes: list[Any] | None = None


class ComposeDocument(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str | None = None
    services: dict[str, ServiceSpec] | None = None


@dataclass(frozen=True)
class Unit:
    # Normalized project name, passed to `docker compose -p`.
    name: str
    # Definition file the unit was loaded from.
    source: str
    # Processed compose body, ready to hand to docker compose.
    content: str


def auto_volume_entry(token: str, unit_name: str, namespace: str | None = None) -> str:
    """Expand one ``auto_volumes`` token into an explicit bind mount.

    ``/var/lib/data`` in unit ``shop`` becomes ``/mnt/cfr/shop/var_lib_data:/var/lib/data``.
    """
    if namespace is None:
        namespace = settings.volume_namespace
    sub = token.lstrip("/")
    if not sub:
        raise ValueError(f"auto volume {token!r} is empty once leading slashes are removed")
    cleaned = normalize_name(sub.replace("/", "_"))
    return f"/mnt/{namespace}/{unit_name}/{cleaned}:{token}"


def _expand_auto_volumes(body: dict[str, Any], unit_name: str) -> None:
    services = body.get("services") or {}
    for service_name, service in services.items():
        if not isinstance(service, dict) or "auto_volumes" not in service:
            continue
        tokens = service.pop("auto_volumes") or []
        volumes = service.get("volumes")
        if volumes is None:
            volumes = []
        for token in tokens:
            volumes.append(auto_volume_entry(token, unit_name))
        service["volumes"] = volumes
        logger.info("Expanded %d auto volume(s) for service %s in %s", len(tokens), service_name, unit_name)


def parse_unit(text: str, path: str) -> Unit:
    """Parse and normalize one definition body read from ``path``."""
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise UnitParseError(path, f"invalid YAML: {e}") from e
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise UnitParseError(path, f"expected a mapping at the top level, got {type(raw).__name__}")

    try:
        doc = ComposeDocument.model_validate(raw)
    except ValidationError as e:
        raise UnitParseError(path, f"invalid definition: {e}") from e

    base = os.path.splitext(os.path.basename(path))[0]
    try:
        name = normalize_name(doc.name if doc.name is not None else base)
    except ValueError as e:
        raise UnitParseError(path, str(e)) from e

    body = dict(raw)
    body.pop("name", None)
    try:
        _expand_auto_volumes(body, name)
    except ValueError as e:
        raise UnitParseError(path, str(e)) from e

    content = yaml.safe_dump(body, sort_keys=False)
    return Unit(name=name, source=path, content=content)


def load_unit(path: str) -> Unit:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            text = fh.read()
    except (OSError, UnicodeDecodeError) as e:
        raise UnitParseError(path, f"unreadable: {e}") from e
    return parse_unit(text, path)


def _raise(err: OSError) -> None:
    raise err


def find_definition_files(paths: Iterable[str], extension: str | None = None) -> list[str]:
    """Walk every root and return candidate definition files.

    Any traversal error (including a missing root) is raised to the caller.
    """
    if extension is None:
        extension = settings.definition_ext
    files: list[str] = []
    for root in paths:
        if not os.path.exists(root):
            raise FileNotFoundError(f"No such definition path: {root}")
        if os.path.isfile(root):
            if os.path.splitext(root)[1] == extension:
                files.append(root)
            continue
        for dirpath, dirnames, filenames in os.walk(root, onerror=_raise):
            dirnames.sort()
            for fn in sorted(filenames):
                if os.path.splitext(fn)[1] == extension:
                    files.append(os.path.join(dirpath, fn))
    return files


def load_units(paths: Iterable[str], extension: str | None = None) -> list[Unit]:
    """Load every unit under ``paths``. Broken files are logged and skipped."""
    units: list[Unit] = []
    seen: dict[str, str] = {}
    for path in find_definition_files(paths, extension):
        try:
            unit = load_unit(path)
        except UnitParseError as e:
            logger.error("Failed to load definition %s: %s", e.path, e.reason)
            continue
        if unit.name in seen:
            logger.error(
                "Skipping %s: unit name %r is already defined by %s", path, unit.name, seen[unit.name]
            )
            continue
        seen[unit.name] = path
        units.append(unit)
    return units
