"""Derive nginx routing config from the published ports of running compose projects.

Routing attributes come from container labels under a namespace prefix
(``org.cfr`` by default). Every attribute can be set globally for a container or
for a single container port; the per-port label wins:

    org.cfr.ssl=true              all ports of the container use TLS
    org.cfr.$port.ssl=false       ...except this one ($port is the container port)

Attributes: ``domain``, ``http.nonstandard``, ``ssl``, ``bind``, ``type``,
``port.override`` and ``hide``.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, Protocol

from . import docker_ops
from .nginx import BindingConfiguration, http_server, tcp_server, udp_server
from .units import Unit


logger = logging.getLogger(__name__)

TYPE_HTTP = "http"
TYPE_HTTPS = "https"
TYPE_TCP = "tcp"
TYPE_UDP = "udp"

IPV6_WILDCARD = "::"

# (declared, observed) combinations that cannot work.
_INCOMPATIBLE = {
    (TYPE_TCP, TYPE_UDP),
    (TYPE_UDP, TYPE_TCP),
    (TYPE_HTTP, TYPE_UDP),
    (TYPE_HTTPS, TYPE_UDP),
}


class ContainerRuntime(Protocol):
    def list_project_containers(self, project: str) -> list[dict[str, Any]]: ...

    def container_labels(self, container_id: str) -> dict[str, str]: ...


@dataclass(frozen=True)
class BindingPortMapping:
    container_port: int
    host_port: int
    # Host address the port is published on.
    binding: str
    # "tcp" or "udp", as reported by docker.
    type: str


@dataclass(frozen=True)
class BindingContainer:
    name: str
    ports: tuple[BindingPortMapping, ...] = ()


@dataclass(frozen=True)
class BindingProject:
    project: str
    containers: dict[str, BindingContainer] = field(default_factory=dict)


@dataclass(frozen=True)
class BindingResult:
    projects: dict[str, BindingProject] = field(default_factory=dict)


@dataclass(frozen=True)
class NginxProjectBinding:
    http_content: str = ""
    service_content: str = ""


@dataclass(frozen=True)
class LabelKeys:
    prefix: str

    def global_key(self, suffix: str) -> str:
        return f"{self.prefix}.{suffix}"

    def port_key(self, suffix: str) -> str:
        return f"{self.prefix}.$port.{suffix}"


def resolve_label(labels: dict[str, str], global_key: str | None, port_key: str, port: int) -> str | None:
    """Most specific label value for ``port``: per-port, then global, else None."""
    resolved = port_key.replace("$port", str(int(port)))
    if resolved in labels:
        return labels[resolved]
    if global_key is not None and global_key in labels:
        return labels[global_key]
    return None


def _label(labels: dict[str, str], keys: LabelKeys, suffix: str, port: int, default: str) -> str:
    value = resolve_label(labels, keys.global_key(suffix), keys.port_key(suffix), port)
    return default if value is None else value


def _port_sort_key(p: dict[str, Any]) -> tuple[int, int, str, str]:
    return (
        int(p.get("PublicPort") or 0),
        int(p.get("PrivatePort") or 0),
        str(p.get("IP") or ""),
        str(p.get("Type") or ""),
    )


def ports_from_runtime(raw_ports: Iterable[dict[str, Any]]) -> tuple[BindingPortMapping, ...]:
    """Sort published ports and drop the ones without a host port."""
    out: list[BindingPortMapping] = []
    for p in sorted(raw_ports, key=_port_sort_key):
        host_port = int(p.get("PublicPort") or 0)
        if host_port == 0:
            continue
        out.append(
            BindingPortMapping(
                container_port=int(p.get("PrivatePort") or 0),
                host_port=host_port,
                binding=str(p.get("IP") or ""),
                type=str(p.get("Type") or ""),
            )
        )
    return tuple(out)


def get_project_binding(unit: Unit, runtime: ContainerRuntime = docker_ops) -> BindingProject:
    containers = sorted(runtime.list_project_containers(unit.name), key=lambda c: c["Id"])
    logger.debug("Found %d container(s) for project %s (%s)", len(containers), unit.name, unit.source)
    bound: dict[str, BindingContainer] = {}
    for c in containers:
        bound[c["Id"]] = BindingContainer(name=c["Id"], ports=ports_from_runtime(c.get("Ports") or []))
    return BindingProject(project=unit.name, containers=bound)


def get_bindings_for_all_projects(units: Iterable[Unit], runtime: ContainerRuntime = docker_ops) -> BindingResult:
    """Binding tree for every unit. Any runtime error aborts the whole result."""
    projects: dict[str, BindingProject] = {}
    for unit in units:
        binding = get_project_binding(unit, runtime)
        projects[binding.project] = binding
    return BindingResult(projects=projects)


def binding_result_as_dict(result: BindingResult) -> dict[str, Any]:
    """JSON-ready view of the binding tree."""
    return {
        "projects": {
            name: {
                "project": project.project,
                "containers": {
                    cid: {"name": c.name, "ports": [asdict(p) for p in c.ports]}
                    for cid, c in project.containers.items()
                },
            }
            for name, project in result.projects.items()
        }
    }


def render_container(
    container: BindingContainer,
    labels: dict[str, str],
    config: BindingConfiguration,
) -> NginxProjectBinding:
    """Render the http and plain (tcp/udp) server blocks for one container."""
    keys = LabelKeys(config.label_prefix)
    http = ""
    service = ""

    for port in container.ports:
        cport = port.container_port

        if _label(labels, keys, "hide", cport, "false") == "true":
            logger.debug("Skipping hidden port %s on %s", cport, container.name)
            continue

        if port.binding == IPV6_WILDCARD:
            logger.debug("Skipping IPv6 wildcard binding for port %s on %s", cport, container.name)
            continue

        port_type = _label(labels, keys, "type", cport, port.type)
        if (port_type, port.type) in _INCOMPATIBLE:
            logger.warning(
                "Port %s on %s is declared %s but docker publishes it as %s; using %s",
                cport, container.name, port_type, port.type, port.type,
            )
            port_type = port.type

        use_ssl = _label(labels, keys, "ssl", cport, "true") == "true"
        bind = _label(labels, keys, "bind", cport, "0.0.0.0")
        domain = _label(labels, keys, "domain", cport, config.default_domain)

        if port_type in (TYPE_HTTP, TYPE_HTTPS):
            nonstandard = _label(labels, keys, "http.nonstandard", cport, "false") == "true"
            if nonstandard:
                listen_port = _label(labels, keys, "port.override", cport, str(cport))
            elif use_ssl:
                listen_port = "443"
            else:
                listen_port = "80"
            logger.debug(
                "Port configuration type=%s ssl=%s bind=%s domain=%s nonstandard=%s listen=%s port=%s binding=%s",
                port_type, use_ssl, bind, domain, nonstandard, listen_port, cport, port.binding,
            )
            http += http_server(f"{bind}:{listen_port}", use_ssl, domain, port_type, port.binding, port.host_port, config)
        elif port_type == TYPE_TCP:
            service += tcp_server(f"{bind}:{cport}", use_ssl, port.binding, port.host_port, config)
        elif port_type == TYPE_UDP:
            service += udp_server(f"{bind}:{cport}", port.binding, port.host_port)
        else:
            logger.warning("Not binding port %s on %s: unknown protocol %r", cport, container.name, port_type)

    return NginxProjectBinding(http_content=http, service_content=service)


def render_project(
    project: BindingProject,
    config: BindingConfiguration,
    runtime: ContainerRuntime = docker_ops,
) -> NginxProjectBinding:
    http = ""
    service = ""
    for container in project.containers.values():
        try:
            labels = runtime.container_labels(container.name)
        except Exception:
            logger.error("Failed to inspect container %s of project %s", container.name, project.project)
            raise
        rendered = render_container(container, labels, config)
        http += rendered.http_content
        service += rendered.service_content
    return NginxProjectBinding(http_content=http, service_content=service)


def render_files(
    result: BindingResult,
    config: BindingConfiguration,
    runtime: ContainerRuntime = docker_ops,
) -> dict[str, str]:
    """File name -> content for every project; empty files are left out."""
    files: dict[str, str] = {}
    for project in result.projects.values():
        rendered = render_project(project, config, runtime)
        if rendered.http_content:
            files[f"{project.project}.svc.http.conf"] = rendered.http_content
        if rendered.service_content:
            files[f"{project.project}.svc.plain.conf"] = rendered.service_content
    return files
