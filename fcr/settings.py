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


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("FCR_DB_PATH", "fcr.db")
    docker_network: str = os.getenv("FCR_DOCKER_NETWORK", "fcr")
    worker_image: str = os.getenv("FCR_WORKER_IMAGE", "fatedier/frpc:v0.43.0")
    workers: int = _env_int("FCR_WORKERS", 2)

    # Reconcile timing (seconds)
    worker_start_delay_s: int = _env_int("FCR_WORKER_START_DELAY_S", 10)
    not_ready_requeue_s: int = _env_int("FCR_NOT_READY_REQUEUE_S", 10)
    steady_requeue_s: int = _env_int("FCR_STEADY_REQUEUE_S", 30)
    backoff_base_s: int = _env_int("FCR_BACKOFF_BASE_S", 1)
    backoff_max_s: int = _env_int("FCR_BACKOFF_MAX_S", 300)

    # Live reload
    reload_timeout_s: int = _env_int("FCR_RELOAD_TIMEOUT_S", 5)

    # Rewrite the stored artifact after a successful reload. Off means the
    # artifact keeps its first rendered content and is only compared.
    write_back_artifact: bool = _env_bool("FCR_WRITE_BACK_ARTIFACT", True)


settings = Settings()
