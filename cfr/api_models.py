from __future__ import annotations

from pydantic import BaseModel, Field

from .runtime import UnitRecord, UnitState


class UnitStatus(BaseModel):
    name: str = Field(..., description="Normalized unit (compose project) name")
    source: str = Field(..., description="Definition file the unit was loaded from")
    last_updated: str = Field(..., description="UTC timestamp of the last state change")
    state: UnitState

    @classmethod
    def from_record(cls, rec: UnitRecord) -> "UnitStatus":
        return cls(name=rec.unit.name, source=rec.unit.source, last_updated=rec.last_updated, state=rec.state)


class ApplyAccepted(BaseModel):
    accepted: bool = True


class JournalEvent(BaseModel):
    id: int
    ts: str
    level: str
    unit: str | None = None
    message: str
