from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol


class EventType(str, Enum):
    """Watch event types, named as the Kubernetes watch API names them."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass(frozen=True)
class ResourceEvent:
    """A single change notification.

    ``old`` is only set for ``MODIFIED`` events.  For ``DELETED`` events
    ``obj`` may be a :class:`~controller.src.keys.DeletedFinalStateUnknown`
    tombstone.
    """

    type: EventType
    obj: Any
    old: Any = None


class ResourceEventHandler(Protocol):
    def on_add(self, obj: Any) -> None: ...

    def on_update(self, old: Any, new: Any) -> None: ...

    def on_delete(self, obj: Any) -> None: ...


class EventSource(Protocol):
    def add_event_handler(self, handler: ResourceEventHandler) -> None: ...


def _noop(*_: Any) -> None:
    return None


@dataclass(frozen=True)
class ResourceEventHandlerFuncs:
    """Adapter turning plain callables into a :class:`ResourceEventHandler`."""

    add_func: Callable[[Any], None] = _noop
    update_func: Callable[[Any, Any], None] = _noop
    delete_func: Callable[[Any], None] = _noop

    def on_add(self, obj: Any) -> None:
        self.add_func(obj)

    def on_update(self, old: Any, new: Any) -> None:
        self.update_func(old, new)

    def on_delete(self, obj: Any) -> None:
        self.delete_func(obj)


def dispatch(handler: ResourceEventHandler, event: ResourceEvent) -> None:
    """Deliver *event* to the matching callback of *handler*."""
    if event.type is EventType.ADDED:
        handler.on_add(event.obj)
    elif event.type is EventType.MODIFIED:
        handler.on_update(event.old, event.obj)
    elif event.type is EventType.DELETED:
        handler.on_delete(event.obj)
    else:
        raise ValueError(f"unknown event type: {event.type!r}")
