from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from kubernetes.client import V1ObjectMeta


@dataclass(frozen=True)
class OwnerReference:
    """Pointer from a child object to an object that owns it.

    At most one reference on an object carries ``controller=True``; that
    one is the controlling reference.
    """

    api_version: str
    kind: str
    name: str
    uid: str | None = None
    controller: bool = False
    block_owner_deletion: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Render the reference in the API server's camelCase wire form."""
        body: dict[str, Any] = {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "controller": self.controller,
            "blockOwnerDeletion": self.block_owner_deletion,
        }
        if self.uid is not None:
            body["uid"] = self.uid
        return body


def _field(obj: Any, attr: str, key: str | None = None) -> Any:
    """Read a field from a kubernetes model (snake_case) or a raw dict (camelCase)."""
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(key or attr)
    return getattr(obj, attr, None)


def get_metadata(obj: Any) -> Any:
    return _field(obj, "metadata")


def has_metadata(obj: Any) -> bool:
    return get_metadata(obj) is not None


def get_name(obj: Any) -> str | None:
    return _field(get_metadata(obj), "name") or None


def get_namespace(obj: Any) -> str | None:
    return _field(get_metadata(obj), "namespace") or None


def get_uid(obj: Any) -> str | None:
    return _field(get_metadata(obj), "uid") or None


def get_resource_version(obj: Any) -> str | None:
    return _field(get_metadata(obj), "resource_version", "resourceVersion") or None


def get_labels(obj: Any) -> dict[str, str]:
    labels = _field(get_metadata(obj), "labels")
    if not isinstance(labels, Mapping):
        return {}
    return dict(labels)


def get_api_version(obj: Any) -> str:
    return _field(obj, "api_version", "apiVersion") or ""


def get_kind(obj: Any) -> str:
    return _field(obj, "kind") or ""


def get_owner_references(obj: Any) -> list[OwnerReference]:
    raw_refs = _field(get_metadata(obj), "owner_references", "ownerReferences") or []
    refs: list[OwnerReference] = []
    for raw in raw_refs:
        refs.append(
            OwnerReference(
                api_version=_field(raw, "api_version", "apiVersion") or "",
                kind=_field(raw, "kind") or "",
                name=_field(raw, "name") or "",
                uid=_field(raw, "uid"),
                controller=bool(_field(raw, "controller")),
                block_owner_deletion=bool(
                    _field(raw, "block_owner_deletion", "blockOwnerDeletion")
                ),
            )
        )
    return refs


def get_controller_of(obj: Any) -> OwnerReference | None:
    """Return the controlling owner reference of *obj*, or ``None``."""
    for ref in get_owner_references(obj):
        if ref.controller:
            return ref
    return None


def is_sub_map_of(first: Mapping[str, str], second: Mapping[str, str]) -> bool:
    """Return True when every key/value pair of *first* is present in *second*."""
    return all(key in second and second[key] == value for key, value in first.items())


def empty_clone(obj: Any) -> Any:
    """Return an object of the same type and kind with only name and namespace set.

    Useful as the target of a guaranteed update: the fetch at the start of
    every attempt fills in the rest.
    """
    if not has_metadata(obj):
        raise ValueError(f"{obj!r} has no metadata, cannot clone it")
    name = get_name(obj)
    namespace = get_namespace(obj)

    if isinstance(obj, Mapping):
        metadata: dict[str, Any] = {"name": name}
        if namespace:
            metadata["namespace"] = namespace
        clone: dict[str, Any] = {"metadata": metadata}
        if get_api_version(obj):
            clone["apiVersion"] = get_api_version(obj)
        if get_kind(obj):
            clone["kind"] = get_kind(obj)
        return clone

    clone = type(obj)()
    if hasattr(clone, "api_version"):
        clone.api_version = get_api_version(obj) or None
    if hasattr(clone, "kind"):
        clone.kind = get_kind(obj) or None
    clone.metadata = V1ObjectMeta(name=name, namespace=namespace)
    return clone


def replace_contents(target: Any, source: Any) -> None:
    """Overwrite *target* in place with a deep copy of *source*.

    Callers hold a reference to *target* (typically closed over by a
    mutation callback), so the object identity must survive the refresh.
    """
    fresh = copy.deepcopy(source)
    if isinstance(target, dict):
        if not isinstance(fresh, Mapping):
            raise TypeError(f"cannot refresh dict from {type(source).__name__}")
        target.clear()
        target.update(fresh)
        return
    if type(fresh) is not type(target):
        raise TypeError(
            f"cannot refresh {type(target).__name__} from {type(source).__name__}"
        )
    target.__dict__.clear()
    target.__dict__.update(fresh.__dict__)


def semantic_form(obj: Any) -> Any:
    """Return a plain structure suitable for structural equality checks."""
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(obj, Mapping):
        return {key: semantic_form(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [semantic_form(value) for value in obj]
    if hasattr(obj, "__dict__") and not isinstance(obj, type):
        return {key: semantic_form(value) for key, value in vars(obj).items()}
    return obj
