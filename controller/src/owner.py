from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from controller.src.errors import GroupVersionError, is_not_found
from controller.src.meta import (
    OwnerReference,
    get_api_version,
    get_controller_of,
    get_kind,
    get_name,
    get_namespace,
    get_uid,
)

LOGGER = logging.getLogger(__name__)

GetControllerFn = Callable[[str, str], Any]


@dataclass(frozen=True)
class GroupVersionKind:
    group: str
    version: str
    kind: str

    @property
    def api_version(self) -> str:
        """Render ``group/version``, or the bare version for the core group."""
        if not self.group:
            return self.version
        return f"{self.group}/{self.version}"


CONTROLLER_KIND = GroupVersionKind(group="tikv.org", version="v1alpha1", kind="TikvCluster")


def parse_group_version(api_version: str) -> tuple[str, str]:
    """Split an ``apiVersion`` string into ``(group, version)``.

    ``"v1"`` belongs to the core group and yields ``("", "v1")``.  More than
    one ``/`` is malformed.
    """
    if not api_version or api_version == "/":
        return "", ""
    slashes = api_version.count("/")
    if slashes == 0:
        return "", api_version
    if slashes == 1:
        group, version = api_version.split("/", 1)
        return group, version
    raise GroupVersionError(f"unexpected GroupVersion string: {api_version}")


def get_owner_ref(tikv_cluster: Any) -> OwnerReference:
    """Return the controlling reference stamped on every child of a TikvCluster."""
    return OwnerReference(
        api_version=CONTROLLER_KIND.api_version,
        kind=CONTROLLER_KIND.kind,
        name=get_name(tikv_cluster) or "",
        uid=get_uid(tikv_cluster),
        controller=True,
        block_owner_deletion=True,
    )


NO_CONTROLLER = "no_controller"
CONTROLLER_NOT_FOUND = "controller_not_found"
KIND_MISMATCH = "kind_mismatch"


@dataclass(frozen=True)
class Resolution:
    """Outcome of a controller lookup; ``reason`` says why ``controller`` is ``None``."""

    controller: Any | None
    reason: str | None = None


def resolve_controller(child: Any, lookup: GetControllerFn) -> Any | None:
    """Return the object that controls *child*, or ``None`` when there is none."""
    return lookup_controller(child, lookup).controller


def lookup_controller(child: Any, lookup: GetControllerFn) -> Resolution:
    """Resolve the controller of *child*, recording why resolution came up empty.

    Only the single controlling reference is considered.  The candidate is
    fetched by namespace and name and must match the reference's kind and
    group exactly; a name match alone is not proof of ownership.

    Raises :class:`GroupVersionError` for a malformed reference and
    propagates lookup failures other than not-found.
    """
    ref = get_controller_of(child)
    if ref is None:
        return Resolution(controller=None, reason=NO_CONTROLLER)

    ref_group, _ = parse_group_version(ref.api_version)
    namespace = get_namespace(child) or ""
    child_name = get_name(child)

    try:
        candidate = lookup(namespace, ref.name)
    except Exception as exc:
        if is_not_found(exc):
            LOGGER.debug(
                "controller %s/%s of %s/%s not found, ignore",
                namespace,
                ref.name,
                namespace,
                child_name,
            )
            return Resolution(controller=None, reason=CONTROLLER_NOT_FOUND)
        raise

    candidate_group, _ = parse_group_version(get_api_version(candidate))
    if get_kind(candidate) != ref.kind or candidate_group != ref_group:
        LOGGER.debug(
            "object %s/%s does not match controller reference %s (%s) of %s/%s, ignore",
            namespace,
            ref.name,
            ref.kind,
            ref.api_version,
            namespace,
            child_name,
        )
        return Resolution(controller=None, reason=KIND_MISMATCH)
    return Resolution(controller=candidate)
