from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any

from kubernetes.client import CustomObjectsApi

from controller.src.config import ControllerConfig, load_config
from controller.src.events import EventSource
from controller.src.informer import Informer
from controller.src.kube import (
    CustomObjectStore,
    build_clients,
    load_kube_configuration,
    tikv_cluster_store,
)
from controller.src.logs import configure_logging
from controller.src.router import ControllerEnqueuer, watch_for_controller, watch_for_object
from controller.src.updater import UpdateOutcome, guaranteed_update
from controller.src.worker import RateLimitingQueue, SyncFn, start_workers

LOGGER = logging.getLogger(__name__)


class TikvClusterController:
    """TikvCluster informer, event routing, workers and updater bound to one config.

    The informer caches every TikvCluster in scope and enqueues the key of
    each one that changes.  Child resources feed the same queue through
    :meth:`watch_children`, which resolves them to their TikvCluster via the
    informer's cache.  ``sync`` is called with those keys and may commit its
    changes through :meth:`update`.
    """

    def __init__(
        self,
        config: ControllerConfig,
        store: CustomObjectStore,
        informer: Informer,
        queue: RateLimitingQueue,
        sync: SyncFn,
    ) -> None:
        self.config = config
        self.store = store
        self.informer = informer
        self.queue = queue
        self.sync = sync

    def watch_children(
        self,
        source: EventSource,
        label_filter: Mapping[str, str] | None = None,
    ) -> ControllerEnqueuer:
        """Enqueue the owning TikvCluster of every child object *source* reports."""
        return watch_for_controller(source, self.queue, self.informer.get, label_filter)

    def update(
        self,
        tikv_cluster: dict[str, Any],
        mutate: Callable[[], None],
        *,
        sleep: Callable[[float], None] | None = None,
    ) -> UpdateOutcome:
        """Commit *mutate* to *tikv_cluster* with the configured conflict retries."""
        kwargs: dict[str, Any] = {"policy": self.config.retry_policy()}
        if sleep is not None:
            kwargs["sleep"] = sleep
        return guaranteed_update(self.store, tikv_cluster, mutate, **kwargs)

    def run(self, stop_event: threading.Event, join_timeout_seconds: float = 5.0) -> None:
        """Run the informer and, once its cache is filled, the workers until *stop_event*."""
        informer_thread = threading.Thread(
            target=self.informer.run_forever,
            kwargs={"shutdown_event": stop_event},
            name="tikvcluster-informer",
            daemon=True,
        )
        informer_thread.start()

        # Workers read the cache, so they wait for the initial list.
        while not self.informer.ready.wait(timeout=1.0):
            if stop_event.is_set() or not informer_thread.is_alive():
                break

        workers: list[threading.Thread] = []
        if self.informer.ready.is_set() and not stop_event.is_set():
            workers = start_workers(self.queue, self.sync, self.config.workers, stop_event)
            stop_event.wait()
        else:
            LOGGER.error("TikvCluster informer stopped before its cache was ready")

        self.queue.shut_down()
        self.informer.request_stop()
        for thread in (informer_thread, *workers):
            thread.join(timeout=join_timeout_seconds)
        LOGGER.info("TikvCluster controller stopped")


def build_controller(
    config: ControllerConfig,
    custom_api: CustomObjectsApi,
    queue: RateLimitingQueue,
    sync: SyncFn,
) -> TikvClusterController:
    """Assemble a :class:`TikvClusterController` from *config*."""
    store = tikv_cluster_store(custom_api)
    list_fn, list_kwargs = store.list_call(config.watch_namespace())
    informer = Informer(
        list_fn,
        list_kwargs=list_kwargs,
        resync_seconds=config.resync_seconds,
    )
    watch_for_object(informer, queue)
    LOGGER.info(
        "Watching TikvClusters in %s with %d worker(s)",
        config.watch_namespace() or "all namespaces",
        config.workers,
    )
    return TikvClusterController(config, store, informer, queue, sync)


def build_controller_from_env(
    queue: RateLimitingQueue,
    sync: SyncFn,
    env: Mapping[str, str] | None = None,
) -> TikvClusterController:
    """Load config from the environment, set up logging and the API client, then assemble."""
    config = load_config(env)
    configure_logging(config.log_level)
    load_kube_configuration()
    _, _, custom_api = build_clients()
    return build_controller(config, custom_api, queue, sync)
