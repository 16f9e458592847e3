"""Control plane: a small HTTP API served on a local unix socket.

Anyone who can open the socket can use it; there is no other authentication.
"""
from __future__ import annotations

import logging
import os
from typing import Any

import httpx
import uvicorn
from fastapi import FastAPI, Query, Request

from . import db
from .api_models import ApplyAccepted, JournalEvent, UnitStatus
from .runtime import PassTrigger, StateRecord
from .settings import settings


logger = logging.getLogger(__name__)


def create_app(record: StateRecord, trigger: PassTrigger) -> FastAPI:
    app = FastAPI(title="Compose Fleet Reconciler")
    app.state.record = record
    app.state.trigger = trigger

    @app.post("/apply", response_model=ApplyAccepted, status_code=202)
    def force_apply(request: Request) -> ApplyAccepted:
        # Accepted, not completed: the pass runs on the trigger worker.
        request.app.state.trigger.fire("control-plane")
        return ApplyAccepted()

    @app.get("/status", response_model=list[UnitStatus])
    def get_status(request: Request) -> list[UnitStatus]:
        return [UnitStatus.from_record(r) for r in request.app.state.record.snapshot()]

    @app.get("/events", response_model=list[JournalEvent])
    def events(limit: int = Query(100, ge=1, le=1000)) -> list[dict[str, Any]]:
        return db.latest_events(limit)

    return app


def serve(app: FastAPI, socket_path: str | None = None) -> None:
    """Serve ``app`` on a unix socket until the process exits. Blocks."""
    path = socket_path or settings.socket_path
    if os.path.exists(path):
        os.unlink(path)
    logger.info("Control plane listening on %s", path)
    config = uvicorn.Config(app, uds=path, log_level=settings.log_level.lower())
    uvicorn.Server(config).run()


class ControlClient:
    """Client side of the control plane. Transport errors propagate as httpx errors."""

    def __init__(self, socket_path: str | None = None, timeout_s: float = 10.0):
        self.socket_path = socket_path or settings.socket_path
        self._http = httpx.Client(
            transport=httpx.HTTPTransport(uds=self.socket_path),
            base_url="http://cfr",
            timeout=timeout_s,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "ControlClient":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def force_apply(self) -> None:
        r = self._http.post("/apply")
        r.raise_for_status()

    def get_status(self) -> list[dict[str, Any]]:
        r = self._http.get("/status")
        r.raise_for_status()
        return r.json()

    def events(self, limit: int = 20) -> list[dict[str, Any]]:
        r = self._http.get("/events", params={"limit": limit})
        r.raise_for_status()
        return r.json()
