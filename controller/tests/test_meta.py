from __future__ import annotations

from types import SimpleNamespace

import pytest
from kubernetes.client import V1ObjectMeta, V1OwnerReference, V1StatefulSet

from controller.src.meta import (
    OwnerReference,
    empty_clone,
    get_controller_of,
    get_labels,
    get_owner_references,
    is_sub_map_of,
    replace_contents,
    semantic_form,
)


def test_owner_references_from_model() -> None:
    sts = V1StatefulSet(
        metadata=V1ObjectMeta(
            name="basic-tikv",
            namespace="tikv",
            owner_references=[
                V1OwnerReference(
                    api_version="tikv.org/v1alpha1",
                    kind="TikvCluster",
                    name="basic",
                    uid="uid-1",
                    controller=True,
                    block_owner_deletion=True,
                )
            ],
        )
    )

    assert get_owner_references(sts) == [
        OwnerReference(
            api_version="tikv.org/v1alpha1",
            kind="TikvCluster",
            name="basic",
            uid="uid-1",
            controller=True,
            block_owner_deletion=True,
        )
    ]


def test_controller_of_dict_skips_non_controller_refs() -> None:
    obj = {
        "metadata": {
            "name": "basic-pd-0",
            "ownerReferences": [
                {"apiVersion": "v1", "kind": "ConfigMap", "name": "cfg"},
                {"apiVersion": "apps/v1", "kind": "StatefulSet", "name": "basic-pd", "controller": True},
            ],
        }
    }

    ref = get_controller_of(obj)

    assert ref is not None
    assert ref.kind == "StatefulSet"
    assert ref.name == "basic-pd"


def test_controller_of_returns_none_without_controller_flag() -> None:
    obj = {"metadata": {"name": "x", "ownerReferences": [{"apiVersion": "v1", "kind": "Pod", "name": "p"}]}}

    assert get_controller_of(obj) is None


def test_owner_reference_wire_form() -> None:
    ref = OwnerReference(api_version="tikv.org/v1alpha1", kind="TikvCluster", name="basic", uid="u")

    assert ref.to_dict() == {
        "apiVersion": "tikv.org/v1alpha1",
        "kind": "TikvCluster",
        "name": "basic",
        "uid": "u",
        "controller": False,
        "blockOwnerDeletion": False,
    }


def test_get_labels_tolerates_missing_labels() -> None:
    assert get_labels({"metadata": {"name": "x"}}) == {}
    assert get_labels(SimpleNamespace(metadata=SimpleNamespace(labels=None))) == {}


def test_is_sub_map_of() -> None:
    assert is_sub_map_of({}, {"a": "1"})
    assert is_sub_map_of({"a": "1"}, {"a": "1", "b": "2"})
    assert not is_sub_map_of({"a": "1"}, {"a": "2"})
    assert not is_sub_map_of({"a": "1", "c": "3"}, {"a": "1"})


def test_empty_clone_of_custom_object() -> None:
    tc = {
        "apiVersion": "tikv.org/v1alpha1",
        "kind": "TikvCluster",
        "metadata": {"name": "basic", "namespace": "tikv", "labels": {"a": "b"}},
        "spec": {"pd": {"replicas": 3}},
    }

    assert empty_clone(tc) == {
        "apiVersion": "tikv.org/v1alpha1",
        "kind": "TikvCluster",
        "metadata": {"name": "basic", "namespace": "tikv"},
    }


def test_empty_clone_of_model() -> None:
    sts = V1StatefulSet(
        api_version="apps/v1",
        kind="StatefulSet",
        metadata=V1ObjectMeta(name="basic-tikv", namespace="tikv", labels={"a": "b"}),
    )

    clone = empty_clone(sts)

    assert isinstance(clone, V1StatefulSet)
    assert clone.metadata.name == "basic-tikv"
    assert clone.metadata.namespace == "tikv"
    assert clone.metadata.labels is None
    assert clone.spec is None


def test_empty_clone_requires_metadata() -> None:
    with pytest.raises(ValueError):
        empty_clone({"spec": {}})


def test_replace_contents_keeps_dict_identity() -> None:
    target = {"metadata": {"name": "a"}, "stale": True}
    source = {"metadata": {"name": "a", "resourceVersion": "2"}}

    replace_contents(target, source)

    assert target == source
    target["metadata"]["resourceVersion"] = "3"
    assert source["metadata"]["resourceVersion"] == "2"


def test_replace_contents_keeps_model_identity() -> None:
    target = V1StatefulSet(metadata=V1ObjectMeta(name="a", resource_version="1"))
    source = V1StatefulSet(metadata=V1ObjectMeta(name="a", resource_version="2"))
    alias = target

    replace_contents(target, source)

    assert alias.metadata.resource_version == "2"
    assert alias.metadata is not source.metadata


def test_replace_contents_rejects_type_change() -> None:
    with pytest.raises(TypeError):
        replace_contents({"a": 1}, V1StatefulSet())


def test_semantic_form_compares_models_structurally() -> None:
    first = V1StatefulSet(metadata=V1ObjectMeta(name="a", labels={"x": "1"}))
    second = V1StatefulSet(metadata=V1ObjectMeta(name="a", labels={"x": "1"}))

    assert semantic_form(first) == semantic_form(second)
    second.metadata.labels["x"] = "2"
    assert semantic_form(first) != semantic_form(second)
