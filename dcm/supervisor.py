from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from queue import Empty, Full, Queue
from threading import Event, Lock, Thread
from typing import TYPE_CHECKING

from . import db
from .db import utc_now
from .definitions import ContainerDefinition
from .docker_ops import ContainerNotFound, ObservedState, RuntimeClientError
from .reconcile import Action, decide
from .settings import settings

if TYPE_CHECKING:
    from .registry import Registry

logger = logging.getLogger("dcm")


ACTIVE = "active"
CLOSED = "closed"


@dataclass(frozen=True)
class SupervisorStatus:
    name: str
    version: str
    image: str
    state: str  # active|closed
    passes: int
    last_action: str | None
    last_error: str | None
    last_pass_at: str | None


class Supervisor:
    """Keeps one container converging toward its definition.

    A single daemon thread waits for the next of {close, periodic tick, reload
    request} and runs one reconcile pass per wakeup, so passes for the same
    container never overlap. ``request_reload`` and ``close`` only set signals
    and are safe to call from any thread.
    """

    def __init__(
        self,
        name: str,
        definition: ContainerDefinition,
        runtime,
        provider,
        registry: Registry | None = None,
        reload_interval_s: float | None = None,
    ):
        self.name = name
        self.definition = definition
        self.runtime = runtime
        self.provider = provider
        self.registry = registry
        interval = settings.reload_interval_s if reload_interval_s is None else reload_interval_s
        self.reload_interval_s = max(0.01, float(interval))

        # Single-slot mailbox: one pending reload at most, extra requests are absorbed.
        self._reload: Queue[None] = Queue(maxsize=1)
        self._reload.put_nowait(None)  # first pass runs right away

        self._close_lock = Lock()
        self._closed = False
        self._close_event = Event()
        self._exited = Event()
        self._thr: Thread | None = None

        self.passes = 0
        self.last_action: str | None = None
        self.last_error: str | None = None
        self.last_pass_at: str | None = None

    # -- control surface -------------------------------------------------

    def start(self) -> None:
        with self._close_lock:
            if self._closed or (self._thr and self._thr.is_alive()):
                return
            self._thr = Thread(target=self._loop, name=f"dcm-{self.name}", daemon=True)
            self._thr.start()

    @property
    def closed(self) -> bool:
        return self._close_event.is_set()

    @property
    def reload_pending(self) -> bool:
        return not self._reload.empty()

    def request_reload(self) -> None:
        if self._close_event.is_set():
            return
        try:
            self._reload.put_nowait(None)
        except Full:
            pass

    def close(self) -> bool:
        """Signal the loop to exit. Returns True only for the call that closed it."""
        with self._close_lock:
            if self._closed:
                return False
            self._closed = True
            self._close_event.set()
            never_started = self._thr is None
        if never_started:
            self._exited.set()
        # Wake the loop if it is waiting on the mailbox.
        try:
            self._reload.put_nowait(None)
        except Full:
            pass
        return True

    def wait_closed(self, timeout: float | None = None) -> bool:
        """Block until the loop thread has fully exited."""
        return self._exited.wait(timeout)

    def status(self) -> SupervisorStatus:
        d = self.definition
        return SupervisorStatus(
            name=self.name,
            version=d.version,
            image=d.image,
            state=CLOSED if self.closed else ACTIVE,
            passes=self.passes,
            last_action=self.last_action,
            last_error=self.last_error,
            last_pass_at=self.last_pass_at,
        )

    # -- loop ------------------------------------------------------------

    def _loop(self) -> None:
        try:
            self._log("INFO", "Supervisor started")
            next_tick = time.monotonic() + self.reload_interval_s
            while not self._close_event.is_set():
                try:
                    self._reload.get(timeout=max(0.0, next_tick - time.monotonic()))
                except Empty:
                    now = time.monotonic()
                    next_tick += self.reload_interval_s
                    if next_tick <= now:
                        next_tick = now + self.reload_interval_s
                if self._close_event.is_set():
                    break
                try:
                    self.reconcile()
                except Exception as e:
                    self.last_error = f"{type(e).__name__}: {e}"
                    self._log("ERROR", f"Reconcile pass failed: {self.last_error}")
            self._log("INFO", "Supervisor stopped")
        except Exception:
            logger.exception("[%s] Supervisor loop crashed", self.name)
        finally:
            # A loop that is gone must read as closed so the registry replaces it.
            with self._close_lock:
                self._closed = True
                self._close_event.set()
            self._exited.set()

    # -- reconcile pass --------------------------------------------------

    def reconcile(self) -> Action | None:
        """Run one pass. Returns the action taken, or None if an engine call failed."""
        self.passes += 1
        self.last_pass_at = utc_now()
        try:
            action = self._reconcile()
        except RuntimeClientError as e:
            self.last_error = str(e)
            self._log("ERROR", str(e))
            return None
        self.last_action = action.value
        self.last_error = None
        return action

    def _reconcile(self) -> Action:
        try:
            observed: ObservedState | None = self.runtime.inspect(self.name)
        except ContainerNotFound:
            observed = None
        desired = self.provider.lookup(self.name)
        action = decide(observed, desired)

        if action is Action.CREATE:
            self._log("INFO", "Container not found, creating new container")
            self._adopt(desired)
            self._create_and_start()
        elif action is Action.START:
            self._log("INFO", "Container not running, starting container")
            self.runtime.start(observed.id)
        elif action is Action.REPLACE:
            self._log("INFO", f"Container definition changed ({observed.version} -> {desired.version}), replacing")
            self._stop_if_running(observed, "Stopping old container")
            self._log("INFO", "Removing old container")
            self.runtime.remove(self.name, force=True)
            self._adopt(desired)
            self._create_and_start()
        elif action is Action.REMOVE:
            self._log("INFO", "Container definition not found, removing container")
            self._stop_if_running(observed, "Stopping container")
            self._log("INFO", "Removing stale container")
            self.runtime.remove(self.name, force=True)
            self._retire()
        return action

    def _adopt(self, desired: ContainerDefinition) -> None:
        if desired.version != self.definition.version:
            self._log("INFO", f"Adopting definition version {desired.version}")
        self.definition = desired

    def _create_and_start(self) -> None:
        self._log("INFO", f"Creating container from image {self.definition.image}")
        container_id = self.runtime.create(self.name, self.definition)
        self._log("INFO", "Starting new container")
        self.runtime.start(container_id)

    def _stop_if_running(self, observed: ObservedState, message: str) -> None:
        if observed.running:
            self._log("INFO", message)
            self.runtime.stop(self.name)

    def _retire(self) -> None:
        self._log("INFO", "Deregistering supervisor")
        if self.registry is not None:
            self.registry.deregister_and_close(self)
        else:
            self.close()

    def _log(self, level: str, message: str) -> None:
        # The event log is observational; a failing sink must not stop reconciling.
        try:
            db.log_event(level, message, container=self.name, version=self.definition.version)
        except Exception:
            logger.exception("[%s] Cannot record event: %s", self.name, message)
