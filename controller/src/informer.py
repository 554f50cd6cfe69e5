from __future__ import annotations

import logging
import random
import threading
import time
from collections.abc import Callable, Mapping
from typing import Any

from kubernetes import watch
from kubernetes.client import ApiException

from controller.src.errors import NotFoundError
from controller.src.events import EventType, ResourceEvent, ResourceEventHandler, dispatch
from controller.src.keys import DeletedFinalStateUnknown, join_key, key_of
from controller.src.meta import get_metadata, get_resource_version
from controller.src.metrics import METRICS

LOGGER = logging.getLogger(__name__)

ListFn = Callable[..., Any]


def _items(listing: Any) -> list[Any]:
    if isinstance(listing, dict):
        return list(listing.get("items") or [])
    return list(getattr(listing, "items", None) or [])


def _list_resource_version(listing: Any) -> str | None:
    metadata = get_metadata(listing)
    if metadata is None:
        return None
    if isinstance(metadata, dict):
        return metadata.get("resourceVersion") or None
    return getattr(metadata, "resource_version", None) or None


class Informer:
    """List-then-watch notification source with a local object cache.

    ``list_fn`` is the generated client method itself (e.g.
    ``apps_api.list_namespaced_stateful_set``) and ``list_kwargs`` its
    arguments (``{"namespace": "tikv"}``).  The watch reads the model type
    off the method's docstring, so wrapping it (``functools.partial``,
    lambdas) would turn typed watch events into plain dicts.

    Every event updates the cache and is delivered to all registered
    handlers on the watch thread:

    * ``ADDED`` → ``on_add(obj)``
    * ``MODIFIED`` → ``on_update(cached_old, obj)``
    * ``DELETED`` → ``on_delete(obj)``

    On ``410 Gone`` the informer re-lists and diffs the result against its
    cache: objects that vanished while the watch was down are delivered as
    :class:`DeletedFinalStateUnknown` tombstones carrying their last key.

    With ``resync_seconds > 0`` every cached object is re-delivered as an
    update once per period, so dropped events are eventually retried.

    The cache is guarded by a lock; :meth:`get` may be called from any
    thread and never touches the network.
    """

    def __init__(
        self,
        list_fn: ListFn,
        *,
        list_kwargs: Mapping[str, Any] | None = None,
        label_selector: str | None = None,
        resync_seconds: int = 0,
        watch_timeout_seconds: int = 30,
        logger: logging.Logger | None = None,
    ) -> None:
        self.list_fn = list_fn
        self.list_kwargs = dict(list_kwargs or {})
        self.label_selector = label_selector
        self.resync_seconds = resync_seconds
        self.watch_timeout_seconds = watch_timeout_seconds
        self.logger = logger or LOGGER

        self._handlers: list[ResourceEventHandler] = []
        self._cache: dict[str, Any] = {}
        self._cache_lock = threading.Lock()
        self._next_resync: float | None = None

        self.ready = threading.Event()
        self._external_stop = threading.Event()
        self._active_watcher: watch.Watch | None = None
        self._watcher_lock = threading.Lock()

    def add_event_handler(self, handler: ResourceEventHandler) -> None:
        """Register *handler*; objects already cached are replayed as adds."""
        with self._cache_lock:
            self._handlers.append(handler)
            existing = list(self._cache.values())
        for obj in existing:
            self._deliver(handler, ResourceEvent(EventType.ADDED, obj))

    def get(self, namespace: str, name: str) -> Any:
        """Return the cached object, raising :class:`NotFoundError` if absent."""
        key = join_key(namespace, name)
        with self._cache_lock:
            obj = self._cache.get(key)
        if obj is None:
            raise NotFoundError(f"{key} not found")
        return obj

    def list(self) -> list[Any]:
        with self._cache_lock:
            return list(self._cache.values())

    def request_stop(self) -> None:
        """Request a cooperative stop and immediately interrupt any open watch stream."""
        self._external_stop.set()
        with self._watcher_lock:
            active_watcher = self._active_watcher
        if active_watcher is not None:
            active_watcher.stop()

    def _should_stop(self, stop_event: threading.Event) -> bool:
        return stop_event.is_set() or self._external_stop.is_set()

    def _list_kwargs(self) -> dict[str, Any]:
        kwargs = dict(self.list_kwargs)
        if self.label_selector:
            kwargs["label_selector"] = self.label_selector
        return kwargs

    def _deliver(self, handler: ResourceEventHandler, event: ResourceEvent) -> None:
        try:
            dispatch(handler, event)
        except Exception:
            self.logger.exception("Event handler failed for %s event", event.type.value)

    def _distribute(self, event: ResourceEvent) -> None:
        with self._cache_lock:
            handlers = list(self._handlers)
        for handler in handlers:
            self._deliver(handler, event)

    def handle_watch_event(self, event_type: str, obj: Any) -> None:
        """Apply one watch event to the cache and notify handlers."""
        if event_type not in {member.value for member in EventType}:
            self.logger.debug("Ignoring %s watch event", event_type)
            return

        try:
            key = key_of(obj)
        except Exception:
            self.logger.exception("Skipping %s event for object without identity", event_type)
            return

        if event_type == EventType.DELETED.value:
            with self._cache_lock:
                self._cache.pop(key, None)
            self._distribute(ResourceEvent(EventType.DELETED, obj))
            return

        with self._cache_lock:
            old = self._cache.get(key)
            self._cache[key] = obj
        if old is None:
            self._distribute(ResourceEvent(EventType.ADDED, obj))
        else:
            self._distribute(ResourceEvent(EventType.MODIFIED, obj, old=old))

    def replace(self, items: list[Any]) -> None:
        """Replace the cache with a fresh listing, emitting the implied events."""
        fresh: dict[str, Any] = {}
        for obj in items:
            try:
                fresh[key_of(obj)] = obj
            except Exception:
                self.logger.exception("Skipping listed object without identity")

        with self._cache_lock:
            previous = self._cache
            self._cache = dict(fresh)

        for key, old in previous.items():
            if key not in fresh:
                self._distribute(
                    ResourceEvent(EventType.DELETED, DeletedFinalStateUnknown(key=key, obj=old))
                )
        for key, obj in fresh.items():
            old = previous.get(key)
            if old is None:
                self._distribute(ResourceEvent(EventType.ADDED, obj))
            else:
                self._distribute(ResourceEvent(EventType.MODIFIED, obj, old=old))

    def resync(self) -> None:
        """Re-deliver every cached object as an update with itself as old state."""
        for obj in self.list():
            self._distribute(ResourceEvent(EventType.MODIFIED, obj, old=obj))

    def _maybe_resync(self, now_monotonic: float) -> None:
        if self.resync_seconds <= 0:
            return
        if self._next_resync is None:
            self._next_resync = now_monotonic + self.resync_seconds
            return
        if now_monotonic >= self._next_resync:
            self.logger.debug("Resyncing cached objects")
            self.resync()
            self._next_resync = now_monotonic + self.resync_seconds

    def _next_watch_timeout_seconds(self, now_monotonic: float) -> int:
        """Return the watch timeout, shortened so a due resync is not missed."""
        if self.resync_seconds <= 0 or self._next_resync is None:
            return self.watch_timeout_seconds
        remaining = max(1, int(self._next_resync - now_monotonic))
        return min(self.watch_timeout_seconds, remaining)

    def _list(self) -> str | None:
        listing = self.list_fn(**self._list_kwargs())
        self.replace(_items(listing))
        return _list_resource_version(listing)

    def run_forever(self, shutdown_event: threading.Event | None = None) -> None:
        """List then watch until shutdown.

        1. Retries the initial list with jittered exponential backoff.
        2. Opens a watch from the list's ``resourceVersion``.
        3. On ``410 Gone`` re-lists and resumes from the new version.
        4. On transient errors backs off (capped at 30 s) and reconnects.
        5. ``401``/``403`` stop the informer: they are RBAC problems, not
           something a retry will fix.
        """
        stop = shutdown_event or threading.Event()
        self._external_stop.clear()

        resource_version: str | None = None
        startup_backoff_seconds = 1
        while not self._should_stop(stop):
            try:
                resource_version = self._list()
                self.ready.set()
                self.logger.info("Starting watch from resourceVersion %s", resource_version)
                break
            except ApiException as exc:
                if exc.status in {401, 403}:
                    self.logger.error(
                        "Kubernetes API access denied during initial list (status=%s). "
                        "Check controller RBAC and service account permissions.",
                        exc.status,
                    )
                    self.ready.clear()
                    return
                self.logger.exception("Initial Kubernetes list failed")
                METRICS.informer_watch_errors_total.inc()
            except Exception:
                self.logger.exception("Unexpected error during initial list")
                METRICS.informer_watch_errors_total.inc()

            jittered = startup_backoff_seconds * (0.5 + random.random())  # noqa: S311
            stop.wait(timeout=jittered)
            startup_backoff_seconds = min(startup_backoff_seconds * 2, 30)

        if self._should_stop(stop):
            self.ready.clear()
            return

        backoff_seconds = 1
        watch_stream_count = 0

        while not self._should_stop(stop):
            self._maybe_resync(now_monotonic=time.monotonic())
            watcher = watch.Watch()
            with self._watcher_lock:
                self._active_watcher = watcher
            try:
                if resource_version is None:
                    resource_version = self._list()
                    METRICS.informer_relists_total.inc()
                timeout_seconds = self._next_watch_timeout_seconds(now_monotonic=time.monotonic())
                if watch_stream_count > 0:
                    METRICS.informer_watch_reconnects_total.inc()
                watch_stream_count += 1
                stream = watcher.stream(
                    self.list_fn,
                    resource_version=resource_version,
                    timeout_seconds=timeout_seconds,
                    **self._list_kwargs(),
                )

                for event in stream:
                    if self._should_stop(stop):
                        break

                    obj = event.get("object")
                    if obj is None:
                        continue

                    event_resource_version = get_resource_version(obj)
                    if event_resource_version:
                        resource_version = event_resource_version

                    self.handle_watch_event(str(event.get("type", "")), obj)

                backoff_seconds = 1
            except ApiException as exc:
                # 410 Gone: the resource version was compacted away; re-list
                # on the next iteration and resume from there.
                if exc.status == 410:
                    self.logger.warning("Watch resource version expired, re-listing")
                    resource_version = None
                    continue

                if exc.status in {401, 403}:
                    self.logger.error(
                        "Kubernetes API watch denied (status=%s). "
                        "Check controller RBAC and service account permissions.",
                        exc.status,
                    )
                    METRICS.informer_watch_errors_total.inc()
                    self.ready.clear()
                    return

                self.logger.exception("Kubernetes API watch error")
                METRICS.informer_watch_errors_total.inc()
                jittered = backoff_seconds * (0.5 + random.random())  # noqa: S311
                stop.wait(timeout=jittered)
                backoff_seconds = min(backoff_seconds * 2, 30)
            except Exception:
                self.logger.exception("Unexpected watch error")
                METRICS.informer_watch_errors_total.inc()
                jittered = backoff_seconds * (0.5 + random.random())  # noqa: S311
                stop.wait(timeout=jittered)
                backoff_seconds = min(backoff_seconds * 2, 30)
            finally:
                watcher.stop()
                with self._watcher_lock:
                    if self._active_watcher is watcher:
                        self._active_watcher = None

        self.ready.clear()
