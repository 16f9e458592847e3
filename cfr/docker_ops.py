from __future__ import annotations

from typing import Any

import docker
from docker.errors import DockerException


COMPOSE_PROJECT_LABEL = "com.docker.compose.project"


def _client() -> docker.DockerClient:
    return docker.from_env()


def docker_available() -> bool:
    try:
        c = _client()
        c.ping()
        return True
    except DockerException:
        return False


def list_project_containers(project: str) -> list[dict[str, Any]]:
    """Running containers of a compose project, as returned by the list API.

    Each entry carries at least ``Id`` and ``Ports``
    (``[{"IP", "PrivatePort", "PublicPort", "Type"}]``). Docker errors propagate.
    """
    c = _client()
    containers = c.containers.list(filters={"label": f"{COMPOSE_PROJECT_LABEL}={project}"}, sparse=True)
    out: list[dict[str, Any]] = []
    for x in containers:
        out.append({"Id": x.id, "Ports": list(x.attrs.get("Ports") or [])})
    return out


def container_labels(container_id: str) -> dict[str, str]:
    """Labels from a full inspect of the container. Docker errors propagate."""
    c = _client()
    cont = c.containers.get(container_id)
    return dict(cont.labels or {})


def event_stream():
    """Decoded docker event records; ``close()`` the stream to stop it."""
    return _client().events(decode=True)
