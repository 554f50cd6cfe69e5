from __future__ import annotations

from types import SimpleNamespace

import pytest
from kubernetes.client import V1ObjectMeta, V1StatefulSet

from controller.src.errors import EncodingError
from controller.src.keys import (
    DeletedFinalStateUnknown,
    deletion_handling_key_of,
    join_key,
    key_of,
    split_key,
)


def test_key_of_namespaced_model() -> None:
    sts = V1StatefulSet(metadata=V1ObjectMeta(name="basic-tikv", namespace="tikv"))

    assert key_of(sts) == "tikv/basic-tikv"


def test_key_of_custom_object_dict() -> None:
    tc = {"apiVersion": "tikv.org/v1alpha1", "kind": "TikvCluster", "metadata": {"name": "basic", "namespace": "tikv"}}

    assert key_of(tc) == "tikv/basic"


def test_key_of_cluster_scoped_omits_namespace() -> None:
    node = SimpleNamespace(metadata=SimpleNamespace(name="node-1", namespace=None))

    assert key_of(node) == "node-1"


def test_key_depends_only_on_namespace_and_name() -> None:
    first = {"metadata": {"name": "basic", "namespace": "tikv", "labels": {"a": "1"}}, "spec": {"x": 1}}
    second = {"metadata": {"name": "basic", "namespace": "tikv", "resourceVersion": "9"}, "status": {}}

    assert key_of(first) == key_of(second)


@pytest.mark.parametrize(
    "obj",
    [
        None,
        {"spec": {}},
        {"metadata": {"namespace": "tikv"}},
        SimpleNamespace(metadata=SimpleNamespace(name="", namespace="tikv")),
    ],
)
def test_key_of_requires_identity(obj: object) -> None:
    with pytest.raises(EncodingError):
        key_of(obj)


def test_deletion_handling_key_uses_tombstone_key() -> None:
    tombstone = DeletedFinalStateUnknown(key="tikv/basic-pd", obj={"spec": {}})

    assert deletion_handling_key_of(tombstone) == "tikv/basic-pd"


def test_deletion_handling_key_falls_back_to_live_key() -> None:
    assert deletion_handling_key_of({"metadata": {"name": "a", "namespace": "b"}}) == "b/a"


def test_split_key() -> None:
    assert split_key("tikv/basic") == ("tikv", "basic")
    assert split_key("node-1") == ("", "node-1")


@pytest.mark.parametrize("key", ["", "a/b/c", "/name", "ns/"])
def test_split_key_rejects_malformed(key: str) -> None:
    with pytest.raises(EncodingError):
        split_key(key)


def test_join_key_matches_key_of() -> None:
    tc = {"metadata": {"name": "basic", "namespace": "tikv"}}
    node = {"metadata": {"name": "node-1"}}

    assert join_key("tikv", "basic") == key_of(tc)
    assert join_key("", "node-1") == key_of(node)
    assert join_key(None, "node-1") == "node-1"
    assert split_key(join_key("tikv", "basic")) == ("tikv", "basic")


def test_join_key_requires_name() -> None:
    with pytest.raises(EncodingError):
        join_key("tikv", "")
