from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol

from controller.src.errors import handle_error
from controller.src.events import EventSource
from controller.src.keys import DeletedFinalStateUnknown, deletion_handling_key_of, key_of
from controller.src.logs import log_context
from controller.src.meta import get_labels, get_name, get_namespace, has_metadata, is_sub_map_of
from controller.src.metrics import METRICS
from controller.src.owner import GetControllerFn, lookup_controller

LOGGER = logging.getLogger(__name__)

LABEL_MISMATCH = "label_mismatch"
ERROR = "error"

ErrorHandler = Callable[[BaseException], None]


class Queue(Protocol):
    def add(self, key: str) -> None: ...


class ObjectEnqueuer:
    """Enqueue the key of every added, updated or deleted object.

    Updates key off the current object only.  Deletes accept tombstones so
    an object whose live metadata is already gone still maps to its key.
    Key failures are reported through ``error_handler`` and the event is
    dropped; the notification source never sees an exception.
    """

    mode = "object"

    def __init__(self, queue: Queue, *, error_handler: ErrorHandler = handle_error) -> None:
        self.queue = queue
        self.error_handler = error_handler

    def _add(self, key: str) -> None:
        self.queue.add(key)
        METRICS.enqueued_total.labels(mode=self.mode).inc()

    def _drop(self, reason: str, obj: Any = None) -> None:
        METRICS.events_dropped_total.labels(reason=reason).inc()
        if obj is not None:
            LOGGER.debug(
                "Dropped event for %s/%s: %s",
                get_namespace(obj),
                get_name(obj),
                reason,
                extra=log_context(reason=reason, mode=self.mode),
            )

    def enqueue(self, obj: Any) -> None:
        try:
            key = deletion_handling_key_of(obj)
        except Exception as exc:
            self._drop(ERROR)
            self.error_handler(RuntimeError(f"Couldn't get key for object {obj!r}: {exc}"))
            return
        self._add(key)

    def on_add(self, obj: Any) -> None:
        self.enqueue(obj)

    def on_update(self, old: Any, new: Any) -> None:
        self.enqueue(new)

    def on_delete(self, obj: Any) -> None:
        self.enqueue(obj)


class ControllerEnqueuer(ObjectEnqueuer):
    """Enqueue the key of the object controlling the changed object.

    With ``label_filter`` set, only objects whose labels contain every
    filter pair are considered.  The controller is fetched with
    ``get_controller`` (expected to read a local cache) and must match the
    controlling reference's kind and group.
    """

    mode = "controller"

    def __init__(
        self,
        queue: Queue,
        get_controller: GetControllerFn,
        label_filter: Mapping[str, str] | None = None,
        *,
        error_handler: ErrorHandler = handle_error,
    ) -> None:
        super().__init__(queue, error_handler=error_handler)
        self.get_controller = get_controller
        self.label_filter = dict(label_filter) if label_filter is not None else None

    def enqueue(self, obj: Any) -> None:
        if isinstance(obj, DeletedFinalStateUnknown):
            obj = obj.obj
        if not has_metadata(obj):
            self._drop(ERROR)
            self.error_handler(
                RuntimeError(f"{obj!r} has no object metadata, cannot get controller from it")
            )
            return

        if self.label_filter is not None and not is_sub_map_of(self.label_filter, get_labels(obj)):
            self._drop(LABEL_MISMATCH, obj)
            return

        try:
            resolution = lookup_controller(obj, self.get_controller)
        except Exception as exc:
            self._drop(ERROR)
            self.error_handler(
                RuntimeError(
                    f"cannot get controller of {get_namespace(obj)}/{get_name(obj)}: {exc}"
                )
            )
            return

        if resolution.controller is None:
            self._drop(resolution.reason or ERROR, obj)
            return

        try:
            key = key_of(resolution.controller)
        except Exception as exc:
            self._drop(ERROR)
            self.error_handler(
                RuntimeError(f"Couldn't get key for object {resolution.controller!r}: {exc}")
            )
            return
        self._add(key)


def watch_for_object(
    source: EventSource,
    queue: Queue,
    *,
    error_handler: ErrorHandler = handle_error,
) -> ObjectEnqueuer:
    """Enqueue every object *source* reports a change for."""
    enqueuer = ObjectEnqueuer(queue, error_handler=error_handler)
    source.add_event_handler(enqueuer)
    return enqueuer


def watch_for_controller(
    source: EventSource,
    queue: Queue,
    get_controller: GetControllerFn,
    label_filter: Mapping[str, str] | None = None,
    *,
    error_handler: ErrorHandler = handle_error,
) -> ControllerEnqueuer:
    """Enqueue the controller of every object *source* reports a change for."""
    enqueuer = ControllerEnqueuer(
        queue,
        get_controller,
        label_filter,
        error_handler=error_handler,
    )
    source.add_event_handler(enqueuer)
    return enqueuer
