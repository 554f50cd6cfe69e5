from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from controller.src.errors import EncodingError
from controller.src.meta import get_name, get_namespace, has_metadata


@dataclass(frozen=True)
class DeletedFinalStateUnknown:
    """Tombstone for an object whose deletion was observed only after a re-list.

    The live object may already be gone, so the last key it was cached
    under travels with it.
    """

    key: str
    obj: Any


def key_of(obj: Any) -> str:
    """Return the ``namespace/name`` queue key for *obj* (``name`` if cluster-scoped)."""
    if not has_metadata(obj):
        raise EncodingError(f"object has no meta: {obj!r}")
    name = get_name(obj)
    if not name:
        raise EncodingError(f"object has no name: {obj!r}")
    return join_key(get_namespace(obj), name)


def join_key(namespace: str | None, name: str) -> str:
    """Format a queue key from its parts; an empty namespace yields ``name``."""
    if not name:
        raise EncodingError("cannot build a key without a name")
    if namespace:
        return f"{namespace}/{name}"
    return name


def deletion_handling_key_of(obj: Any) -> str:
    """Like :func:`key_of`, but returns the cached key of a deletion tombstone."""
    if isinstance(obj, DeletedFinalStateUnknown):
        return obj.key
    return key_of(obj)


def split_key(key: str) -> tuple[str, str]:
    """Split a queue key into ``(namespace, name)``; namespace is ``""`` if cluster-scoped."""
    parts = key.split("/")
    if len(parts) == 1 and parts[0]:
        return "", parts[0]
    if len(parts) == 2 and parts[0] and parts[1]:
        return parts[0], parts[1]
    raise EncodingError(f"unexpected key format: {key!r}")
