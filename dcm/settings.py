from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("DCM_DB_PATH", "dcm.db")
    definitions_path: str = os.getenv("DCM_DEFINITIONS_PATH", "containers.yml")
    reload_interval_s: float = _env_float("DCM_RELOAD_INTERVAL_S", 60.0)

    # Engine calls
    # Per-call HTTP deadline for the docker client; a hung daemon call fails instead of blocking forever.
    engine_timeout_s: int = _env_int("DCM_ENGINE_TIMEOUT_S", 60)
    stop_timeout_s: int = _env_int("DCM_STOP_TIMEOUT_S", 10)

    # API
    api_host: str = os.getenv("DCM_API_HOST", "0.0.0.0")
    api_port: int = _env_int("DCM_API_PORT", 8000)
    close_wait_s: float = _env_float("DCM_CLOSE_WAIT_S", 30.0)

    # Mirror every event to stderr through logging.
    echo_events: bool = _env_bool("DCM_ECHO_EVENTS", True)


settings = Settings()
