from __future__ import annotations

from typing import Any

import pytest
from kubernetes.client import ApiException

from controller.src.errors import GroupVersionError, NotFoundError
from controller.src.owner import (
    CONTROLLER_KIND,
    CONTROLLER_NOT_FOUND,
    KIND_MISMATCH,
    NO_CONTROLLER,
    GroupVersionKind,
    get_owner_ref,
    lookup_controller,
    parse_group_version,
    resolve_controller,
)


def make_tikv_cluster(
    name: str = "basic",
    namespace: str = "tikv",
    kind: str = "TikvCluster",
    api_version: str = "tikv.org/v1alpha1",
) -> dict[str, Any]:
    return {
        "apiVersion": api_version,
        "kind": kind,
        "metadata": {"name": name, "namespace": namespace, "uid": f"uid-{name}"},
    }


def make_child(
    name: str = "basic-tikv",
    namespace: str = "tikv",
    owner_kind: str = "TikvCluster",
    owner_api_version: str = "tikv.org/v1alpha1",
    owner_name: str = "basic",
    controller: bool = True,
) -> dict[str, Any]:
    return {
        "apiVersion": "apps/v1",
        "kind": "StatefulSet",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "ownerReferences": [
                {
                    "apiVersion": owner_api_version,
                    "kind": owner_kind,
                    "name": owner_name,
                    "controller": controller,
                }
            ],
        },
    }


class FakeLister:
    def __init__(self, objects: list[dict[str, Any]] | None = None, error: Exception | None = None) -> None:
        self.objects = {
            (obj["metadata"]["namespace"], obj["metadata"]["name"]): obj for obj in objects or []
        }
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def __call__(self, namespace: str, name: str) -> dict[str, Any]:
        self.calls.append((namespace, name))
        if self.error is not None:
            raise self.error
        try:
            return self.objects[(namespace, name)]
        except KeyError:
            raise NotFoundError(f"{namespace}/{name}") from None


def test_resolves_matching_controller() -> None:
    tc = make_tikv_cluster()
    lister = FakeLister([tc])

    assert resolve_controller(make_child(), lister) is tc
    assert lister.calls == [("tikv", "basic")]


def test_no_controller_reference_returns_none_without_lookup() -> None:
    lister = FakeLister([make_tikv_cluster()])

    resolution = lookup_controller(make_child(controller=False), lister)

    assert resolution.controller is None
    assert resolution.reason == NO_CONTROLLER
    assert lister.calls == []


def test_controller_not_found_returns_none() -> None:
    resolution = lookup_controller(make_child(), FakeLister([]))

    assert resolution.controller is None
    assert resolution.reason == CONTROLLER_NOT_FOUND


def test_api_404_counts_as_not_found() -> None:
    lister = FakeLister(error=ApiException(status=404, reason="Not Found"))

    assert resolve_controller(make_child(), lister) is None


def test_other_lookup_errors_propagate() -> None:
    lister = FakeLister(error=ApiException(status=500, reason="boom"))

    with pytest.raises(ApiException):
        resolve_controller(make_child(), lister)


def test_kind_mismatch_returns_none_even_when_name_matches() -> None:
    imposter = make_tikv_cluster(kind="TidbCluster")

    resolution = lookup_controller(make_child(), FakeLister([imposter]))

    assert resolution.controller is None
    assert resolution.reason == KIND_MISMATCH


def test_group_mismatch_returns_none_even_when_name_matches() -> None:
    imposter = make_tikv_cluster(api_version="pingcap.com/v1alpha1")

    assert resolve_controller(make_child(), FakeLister([imposter])) is None


def test_version_difference_is_not_a_mismatch() -> None:
    tc = make_tikv_cluster(api_version="tikv.org/v1beta1")

    assert resolve_controller(make_child(), FakeLister([tc])) is tc


def test_malformed_reference_api_version_raises() -> None:
    child = make_child(owner_api_version="tikv.org/v1/extra")

    with pytest.raises(GroupVersionError):
        resolve_controller(child, FakeLister([make_tikv_cluster()]))


@pytest.mark.parametrize(
    ("api_version", "expected"),
    [
        ("v1", ("", "v1")),
        ("apps/v1", ("apps", "v1")),
        ("tikv.org/v1alpha1", ("tikv.org", "v1alpha1")),
        ("", ("", "")),
    ],
)
def test_parse_group_version(api_version: str, expected: tuple[str, str]) -> None:
    assert parse_group_version(api_version) == expected


def test_group_version_kind_renders_api_version() -> None:
    assert CONTROLLER_KIND.api_version == "tikv.org/v1alpha1"
    assert GroupVersionKind(group="", version="v1", kind="Pod").api_version == "v1"


def test_get_owner_ref_marks_controller() -> None:
    ref = get_owner_ref(make_tikv_cluster())

    assert ref.api_version == "tikv.org/v1alpha1"
    assert ref.kind == "TikvCluster"
    assert ref.name == "basic"
    assert ref.uid == "uid-basic"
    assert ref.controller is True
    assert ref.block_owner_deletion is True


def test_owner_ref_round_trips_through_resolver() -> None:
    tc = make_tikv_cluster()
    child = {
        "metadata": {
            "name": "basic-pd",
            "namespace": "tikv",
            "ownerReferences": [get_owner_ref(tc).to_dict()],
        }
    }

    assert resolve_controller(child, FakeLister([tc])) is tc
