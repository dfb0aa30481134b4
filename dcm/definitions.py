from __future__ import annotations

import hashlib
import json
import os
import re
from threading import Lock
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .settings import settings


CONTAINER_NAME_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.\-]{0,127}$")


class DefinitionError(ValueError):
    """The definitions file could not be read or failed validation."""


def validate_container_name(name: str) -> None:
    if not CONTAINER_NAME_RE.match(name):
        raise ValueError(
            "Invalid container name. Use letters/numbers and _.- starting with a letter or number (max 128 chars)."
        )


class ContainerDefinition(BaseModel):
    """Desired definition of one container.

    ``version`` is an opaque token stamped on the created container. When the
    file does not set one it is derived from the content, so any edit to the
    definition yields a new token.
    """

    name: str
    image: str = Field(..., min_length=1, description="Docker image (name:tag)")
    command: list[str] | str | None = None
    environment: dict[str, str] = Field(default_factory=dict)
    ports: dict[str, int | str | None] = Field(default_factory=dict, description='e.g. {"80/tcp": 8080}')
    volumes: list[str] = Field(default_factory=list, description='e.g. ["/srv/data:/data:rw"]')
    network: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    restart_policy: str = "no"
    version: str = ""

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        validate_container_name(v)
        return v

    @field_validator("environment", "labels", mode="before")
    @classmethod
    def _stringify_values(cls, v: Any) -> Any:
        # YAML turns `PORT: 8080` into an int; the engine wants strings.
        if isinstance(v, dict):
            return {str(k): "" if val is None else str(val) for k, val in v.items()}
        return v

    @field_validator("version", "image", mode="before")
    @classmethod
    def _stringify_scalar(cls, v: Any) -> Any:
        # `version: 2` or `image: 1.0` arrive as numbers from YAML.
        if isinstance(v, (int, float)):
            return str(v)
        return v

    @field_validator("ports", mode="before")
    @classmethod
    def _stringify_port_keys(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {str(k): val for k, val in v.items()}
        return v

    @model_validator(mode="after")
    def _fill_version(self) -> "ContainerDefinition":
        if not self.version:
            self.version = self.content_hash()
        return self

    def content_hash(self) -> str:
        payload = self.model_dump(mode="json", exclude={"name", "version"})
        raw = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:12]


def parse_definitions(data: Any) -> dict[str, ContainerDefinition]:
    """Turn the loaded YAML document into definitions keyed by name.

    Expected shape::

        containers:
          web:
            image: nginx:1.27
            ports: {"80/tcp": 8080}
    """
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise DefinitionError("Definitions file must be a mapping with a 'containers' key.")
    containers = data.get("containers") or {}
    if not isinstance(containers, dict):
        raise DefinitionError("'containers' must be a mapping of name -> definition.")

    out: dict[str, ContainerDefinition] = {}
    for name, params in containers.items():
        if not isinstance(params, dict):
            raise DefinitionError(f"Definition for {name!r} must be a mapping.")
        try:
            out[str(name)] = ContainerDefinition(name=str(name), **params)
        except ValidationError as e:
            raise DefinitionError(f"Invalid definition for {name!r}: {e}") from e
        except TypeError as e:
            raise DefinitionError(f"Invalid definition for {name!r}: {e}") from e
    return out


def load_definitions(path: str) -> dict[str, ContainerDefinition]:
    if not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise DefinitionError(f"Cannot read definitions from {path}: {e}") from e
    return parse_definitions(data)


class DefinitionStore:
    """Desired-state provider backed by a YAML file.

    Lookups are served from memory; ``reload()`` re-reads the file and swaps
    the whole set in one step. A broken file leaves the previous set intact.
    """

    def __init__(self, path: str | None = None) -> None:
        self.path = path or settings.definitions_path
        self._lock = Lock()
        self._definitions: dict[str, ContainerDefinition] = {}

    def reload(self) -> list[str]:
        definitions = load_definitions(self.path)
        with self._lock:
            self._definitions = definitions
        return sorted(definitions)

    def lookup(self, name: str) -> ContainerDefinition | None:
        with self._lock:
            return self._definitions.get(name)

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._definitions)
