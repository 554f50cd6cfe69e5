from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from kubernetes import client, config
from kubernetes.client import AppsV1Api, CoreV1Api, CustomObjectsApi
from kubernetes.config.config_exception import ConfigException

from controller.src.keys import key_of, split_key
from controller.src.owner import CONTROLLER_KIND, GroupVersionKind

LOGGER = logging.getLogger(__name__)

TIKV_CLUSTER_PLURAL = "tikvclusters"


def load_kube_configuration() -> None:
    """Load Kubernetes client configuration.

    Attempts in-cluster config first (running inside a pod), falling back
    to the local kubeconfig for development.
    """
    try:
        config.load_incluster_config()
        LOGGER.info("Loaded in-cluster Kubernetes configuration")
    except ConfigException:
        config.load_kube_config()
        LOGGER.info("Loaded local kubeconfig")


def build_clients() -> tuple[CoreV1Api, AppsV1Api, CustomObjectsApi]:
    """Return CoreV1, AppsV1 and CustomObjects API clients using the active kube configuration."""
    return client.CoreV1Api(), client.AppsV1Api(), client.CustomObjectsApi()


class NamespacedObjectStore:
    """Object store over a typed namespaced resource.

    ``read_fn`` and ``replace_fn`` are the generated client calls for one
    resource, e.g. ``apps_api.read_namespaced_stateful_set`` and
    ``apps_api.replace_namespaced_stateful_set``.  A stale
    ``resourceVersion`` in the replaced body makes the API server answer
    ``409 Conflict``, which surfaces as :class:`ApiException` unchanged.
    """

    def __init__(
        self,
        read_fn: Callable[..., Any],
        replace_fn: Callable[..., Any],
    ) -> None:
        self.read_fn = read_fn
        self.replace_fn = replace_fn

    def get(self, key: str) -> Any:
        namespace, name = split_key(key)
        return self.read_fn(name=name, namespace=namespace)

    def update(self, obj: Any) -> Any:
        namespace, name = split_key(key_of(obj))
        return self.replace_fn(name=name, namespace=namespace, body=obj)


class CustomObjectStore:
    """Object store over a namespaced custom resource served as plain dicts."""

    def __init__(self, api: CustomObjectsApi, gvk: GroupVersionKind, plural: str) -> None:
        self.api = api
        self.gvk = gvk
        self.plural = plural

    def get(self, key: str) -> dict[str, Any]:
        namespace, name = split_key(key)
        return self.api.get_namespaced_custom_object(
            group=self.gvk.group,
            version=self.gvk.version,
            namespace=namespace,
            plural=self.plural,
            name=name,
        )

    def update(self, obj: dict[str, Any]) -> dict[str, Any]:
        namespace, name = split_key(key_of(obj))
        return self.api.replace_namespaced_custom_object(
            group=self.gvk.group,
            version=self.gvk.version,
            namespace=namespace,
            plural=self.plural,
            name=name,
            body=obj,
        )

    def list_call(self, namespace: str | None = None) -> tuple[Callable[..., Any], dict[str, Any]]:
        """Return ``(list_fn, list_kwargs)`` for an :class:`Informer`; ``None`` lists every namespace."""
        kwargs: dict[str, Any] = {
            "group": self.gvk.group,
            "version": self.gvk.version,
            "plural": self.plural,
        }
        if namespace:
            kwargs["namespace"] = namespace
            return self.api.list_namespaced_custom_object, kwargs
        return self.api.list_cluster_custom_object, kwargs


def tikv_cluster_store(api: CustomObjectsApi) -> CustomObjectStore:
    return CustomObjectStore(api, CONTROLLER_KIND, TIKV_CLUSTER_PLURAL)
