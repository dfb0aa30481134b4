from __future__ import annotations

from dataclasses import asdict

from fastapi import FastAPI, HTTPException, Query

from . import db
from .api_models import ContainerStatusResponse, EventResponse, ReloadResponse
from .definitions import DefinitionError, DefinitionStore
from .docker_ops import DockerRuntime
from .registry import Registry
from .settings import settings


def create_app(
    runtime=None,
    store: DefinitionStore | None = None,
    reload_interval_s: float | None = None,
) -> FastAPI:
    """Build the control API around a registry of supervisors.

    ``runtime`` and ``store`` default to the docker engine and the configured
    definitions file.
    """
    runtime = runtime if runtime is not None else DockerRuntime()
    store = store if store is not None else DefinitionStore()
    registry = Registry(runtime, store, reload_interval_s=reload_interval_s)

    app = FastAPI(title="Declarative Container Manager")
    app.state.registry = registry
    app.state.store = store

    @app.on_event("startup")
    def startup() -> None:
        db.init_db()
        try:
            names = store.reload()
        except DefinitionError as e:
            db.log_event("ERROR", f"Cannot load definitions: {e}")
            return
        db.log_event("INFO", f"Loaded {len(names)} container definition(s) from {store.path}")
        registry.sync()

    @app.on_event("shutdown")
    def shutdown() -> None:
        registry.close_all(wait_s=settings.close_wait_s)

    def _status(name: str) -> ContainerStatusResponse:
        sup = registry.get(name)
        if sup is None:
            raise HTTPException(status_code=404, detail=f"Container '{name}' is not supervised.")
        return ContainerStatusResponse(**asdict(sup.status()))

    @app.get("/health")
    def health() -> dict[str, str]:
        engine = "available" if runtime.available() else "unavailable"
        return {"status": "healthy" if engine == "available" else "degraded", "engine": engine}

    @app.get("/containers", response_model=list[ContainerStatusResponse])
    def list_containers() -> list[ContainerStatusResponse]:
        return [ContainerStatusResponse(**asdict(s.status())) for s in registry.supervisors()]

    @app.get("/containers/{name}", response_model=ContainerStatusResponse)
    def get_container(name: str) -> ContainerStatusResponse:
        return _status(name)

    @app.post("/reload", response_model=ReloadResponse)
    def reload_all() -> ReloadResponse:
        try:
            names = store.reload()
        except DefinitionError as e:
            db.log_event("ERROR", f"Reload rejected: {e}")
            raise HTTPException(status_code=422, detail=str(e))
        started = registry.sync()
        reloaded = [n for n in registry.names() if n not in started]
        db.log_event("INFO", f"Definitions reloaded ({len(names)} defined)")
        return ReloadResponse(definitions=names, started=started, reloaded=reloaded)

    @app.post("/containers/{name}/reload", response_model=ContainerStatusResponse)
    def reload_container(name: str) -> ContainerStatusResponse:
        sup = registry.get(name)
        if sup is None:
            definition = store.lookup(name)
            if definition is None:
                raise HTTPException(status_code=404, detail=f"Container '{name}' is not defined.")
            sup = registry.manage(name, definition)
        else:
            sup.request_reload()
        return ContainerStatusResponse(**asdict(sup.status()))

    @app.delete("/containers/{name}")
    def forget_container(name: str) -> dict[str, str]:
        if not registry.forget(name, wait_s=settings.close_wait_s):
            raise HTTPException(status_code=404, detail=f"Container '{name}' is not supervised.")
        return {"status": "forgotten", "name": name}

    @app.get("/events", response_model=list[EventResponse])
    def events(limit: int = Query(100, ge=1, le=1000), container: str | None = None) -> list[dict]:
        return db.latest_events(limit=limit, container=container)

    return app
