from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock

import docker
import requests
from docker.errors import DockerException, ImageNotFound, NotFound

from .definitions import ContainerDefinition
from .settings import settings


VERSION_LABEL = "dcm.version"
MANAGED_LABEL = "dcm.managed"


class RuntimeClientError(Exception):
    """An engine call failed. Treated as transient by the supervisor."""


class ContainerNotFound(RuntimeClientError):
    """The engine has no container with the requested name."""


@dataclass(frozen=True)
class ObservedState:
    id: str
    name: str
    running: bool
    labels: dict[str, str] = field(default_factory=dict)

    @property
    def version(self) -> str | None:
        return self.labels.get(VERSION_LABEL)


def container_labels(definition: ContainerDefinition) -> dict[str, str]:
    """User labels plus the labels we rely on to re-discover the container."""
    labels = dict(definition.labels)
    labels[MANAGED_LABEL] = "true"
    labels[VERSION_LABEL] = definition.version
    return labels


class DockerRuntime:
    """Runtime client backed by docker-py.

    Every call goes through a client built with ``timeout=engine_timeout_s``,
    so a hung daemon surfaces as a ``RuntimeClientError`` instead of stalling
    the calling supervisor forever. Errors are translated so that callers only
    ever see ``ContainerNotFound`` (from ``inspect``) or ``RuntimeClientError``.
    """

    def __init__(
        self,
        client: docker.DockerClient | None = None,
        timeout_s: int | None = None,
        stop_timeout_s: int | None = None,
    ) -> None:
        self._client = client
        self._lock = Lock()
        self.timeout_s = timeout_s if timeout_s is not None else settings.engine_timeout_s
        self.stop_timeout_s = stop_timeout_s if stop_timeout_s is not None else settings.stop_timeout_s

    def client(self) -> docker.DockerClient:
        with self._lock:
            if self._client is None:
                try:
                    self._client = docker.from_env(timeout=self.timeout_s)
                except DockerException as e:
                    raise RuntimeClientError(f"Docker is not available: {e}") from e
            return self._client

    def available(self) -> bool:
        try:
            self.client().ping()
            return True
        except (RuntimeClientError, DockerException, requests.exceptions.RequestException):
            return False

    def inspect(self, name: str) -> ObservedState:
        try:
            cont = self.client().containers.get(name)
        except NotFound as e:
            raise ContainerNotFound(f"container {name!r} not found") from e
        except (DockerException, requests.exceptions.RequestException) as e:
            raise RuntimeClientError(f"cannot inspect container: {e}") from e
        state = cont.attrs.get("State") or {}
        labels = (cont.attrs.get("Config") or {}).get("Labels") or {}
        return ObservedState(id=cont.id, name=name, running=bool(state.get("Running")), labels=dict(labels))

    def create(self, name: str, definition: ContainerDefinition) -> str:
        kwargs = dict(
            command=definition.command,
            name=name,
            environment=definition.environment,
            ports=definition.ports or None,
            volumes=definition.volumes or None,
            network=definition.network,
            labels=container_labels(definition),
            restart_policy={"Name": definition.restart_policy},
            detach=True,
        )
        c = self.client()
        try:
            try:
                cont = c.containers.create(definition.image, **kwargs)
            except ImageNotFound:
                # Same fallback as `containers.run`: pull once, then retry.
                c.images.pull(definition.image)
                cont = c.containers.create(definition.image, **kwargs)
        except (DockerException, requests.exceptions.RequestException) as e:
            raise RuntimeClientError(f"cannot create container: {e}") from e
        return cont.id

    def start(self, container_id: str) -> None:
        try:
            self.client().api.start(container_id)
        except (DockerException, requests.exceptions.RequestException) as e:
            raise RuntimeClientError(f"cannot start container: {e}") from e

    def stop(self, name: str) -> None:
        try:
            self.client().api.stop(name, timeout=self.stop_timeout_s)
        except (DockerException, requests.exceptions.RequestException) as e:
            raise RuntimeClientError(f"cannot stop container: {e}") from e

    def remove(self, name: str, force: bool = True) -> None:
        try:
            self.client().api.remove_container(name, force=force)
        except (DockerException, requests.exceptions.RequestException) as e:
            raise RuntimeClientError(f"cannot remove container: {e}") from e
