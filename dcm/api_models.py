from __future__ import annotations

from pydantic import BaseModel, Field


class ContainerStatusResponse(BaseModel):
    name: str
    version: str = Field(..., description="Version token of the definition the supervisor holds")
    image: str
    state: str = Field(..., description="active|closed")
    passes: int
    last_action: str | None = None
    last_error: str | None = None
    last_pass_at: str | None = None


class ReloadResponse(BaseModel):
    definitions: list[str] = Field(default_factory=list, description="Names present in the definitions file")
    started: list[str] = Field(default_factory=list, description="Containers that were not supervised before")
    reloaded: list[str] = Field(default_factory=list, description="Supervisors asked to re-check")


class EventResponse(BaseModel):
    id: int
    ts: str
    level: str
    container: str | None = None
    version: str | None = None
    message: str
