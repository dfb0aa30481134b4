from __future__ import annotations

from threading import Lock

from . import db
from .definitions import ContainerDefinition
from .supervisor import Supervisor


class Registry:
    """Maps container names to their live supervisor.

    All mutation happens under one lock, so at most one active supervisor
    exists per name.
    """

    def __init__(self, runtime, provider, reload_interval_s: float | None = None) -> None:
        self.runtime = runtime
        self.provider = provider
        self.reload_interval_s = reload_interval_s
        self._lock = Lock()
        self._supervisors: dict[str, Supervisor] = {}

    def manage(self, name: str, definition: ContainerDefinition) -> Supervisor:
        """Return the live supervisor for ``name``, creating and starting one if needed."""
        with self._lock:
            sup = self._supervisors.get(name)
            if sup is not None and not sup.closed:
                return sup
            sup = Supervisor(
                name,
                definition,
                runtime=self.runtime,
                provider=self.provider,
                registry=self,
                reload_interval_s=self.reload_interval_s,
            )
            self._supervisors[name] = sup
            sup.start()
            return sup

    def get(self, name: str) -> Supervisor | None:
        with self._lock:
            return self._supervisors.get(name)

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._supervisors)

    def supervisors(self) -> list[Supervisor]:
        with self._lock:
            return [self._supervisors[n] for n in sorted(self._supervisors)]

    def deregister_and_close(self, sup: Supervisor) -> None:
        """Drop ``sup`` from the map and close it, as one step w.r.t. other mutators."""
        with self._lock:
            if self._supervisors.get(sup.name) is sup:
                del self._supervisors[sup.name]
            sup.close()

    def sync(self) -> list[str]:
        """Start supervising newly defined containers and nudge every existing one.

        Supervisors whose definition disappeared tear their container down on
        the pass triggered here. Returns the names that were newly managed.
        """
        started: list[str] = []
        for name in self.provider.names():
            definition = self.provider.lookup(name)
            if definition is None:
                continue
            with self._lock:
                existing = self._supervisors.get(name)
            if existing is None or existing.closed:
                self.manage(name, definition)
                started.append(name)
        for sup in self.supervisors():
            if sup.name not in started:
                sup.request_reload()
        if started:
            db.log_event("INFO", f"Managing new containers: {', '.join(started)}")
        return started

    def forget(self, name: str, wait_s: float | None = None) -> bool:
        """Stop supervising ``name`` without touching the container."""
        with self._lock:
            sup = self._supervisors.pop(name, None)
            if sup is None:
                return False
            sup.close()
        db.log_event("INFO", "Supervision stopped on request", container=name)
        if wait_s is not None:
            sup.wait_closed(wait_s)
        return True

    def close_all(self, wait_s: float | None = None) -> None:
        with self._lock:
            sups = list(self._supervisors.values())
            self._supervisors.clear()
            for sup in sups:
                sup.close()
        if wait_s is not None:
            for sup in sups:
                sup.wait_closed(wait_s)
