from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from controller.src.updater import RetryPolicy


class ConfigError(RuntimeError):
    """Raised when the controller configuration is invalid."""


@dataclass(frozen=True)
class ControllerConfig:
    """Immutable controller configuration loaded at startup.

    Attributes:
        namespace:      Namespace to watch when not cluster-scoped.
        cluster_scoped: Manage TikvClusters in every namespace.
        resync_seconds: Informer resync period; ``0`` disables resync.
        workers:        Number of reconcile workers.
        update_conflict_retries: Conflicts a guaranteed update retries
                        before giving up.
        log_level:      Root log level name.
    """

    namespace: str = "tikv-operator"
    cluster_scoped: bool = False
    resync_seconds: int = 30
    workers: int = 5
    update_conflict_retries: int = 4
    log_level: str = "INFO"

    def watch_namespace(self) -> str | None:
        """Namespace for informers, or ``None`` to watch all namespaces."""
        if self.cluster_scoped:
            return None
        return self.namespace

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(retries=self.update_conflict_retries)


def parse_bool(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def env_int(
    values: Mapping[str, str],
    name: str,
    default: int,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    raw = values.get(name)
    if raw is None:
        value = default
    else:
        try:
            value = int(raw)
        except ValueError as exc:
            raise ConfigError(f"{name} must be an integer") from exc

    if minimum is not None and value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got: {value}")
    if maximum is not None and value > maximum:
        raise ConfigError(f"{name} must be <= {maximum}, got: {value}")
    return value


def load_config(env: Mapping[str, str] | None = None) -> ControllerConfig:
    """Load controller config from the environment.

    Environment variables (with defaults):
        ``WATCH_NAMESPACE``        : namespace to watch (``tikv-operator``).
        ``CLUSTER_SCOPED``         : watch every namespace (``false``).
        ``RESYNC_SECONDS``         : informer resync period (``30``).
        ``WORKERS``                : reconcile worker count (``5``).
        ``UPDATE_CONFLICT_RETRIES``: conflict retries per update (``4``, at most ``10``).
        ``LOG_LEVEL``              : log level name (``INFO``).
    """
    values = env if env is not None else os.environ

    cluster_scoped = parse_bool(values.get("CLUSTER_SCOPED"))
    namespace = values.get("WATCH_NAMESPACE", "tikv-operator").strip()
    if not cluster_scoped and not namespace:
        raise ConfigError("WATCH_NAMESPACE must be a non-empty string unless CLUSTER_SCOPED=true")

    return ControllerConfig(
        namespace=namespace,
        cluster_scoped=cluster_scoped,
        resync_seconds=env_int(values, "RESYNC_SECONDS", 30, minimum=0),
        workers=env_int(values, "WORKERS", 5, minimum=1),
        update_conflict_retries=env_int(
            values, "UPDATE_CONFLICT_RETRIES", 4, minimum=0, maximum=10
        ),
        log_level=values.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )
