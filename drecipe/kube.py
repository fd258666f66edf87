"""
Kubernetes-backed Cluster adapter.

Wraps kubernetes.dynamic.DynamicClient so that any apiVersion/kind served
by the API server (including freshly registered custom resources) can be
read and written as plain dicts. Discovery is refreshed lazily by the
dynamic client when a lookup misses.

Client-library exceptions are translated into drecipe errors here and
nowhere else.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import urllib3
from kubernetes import client, config as kube_config, dynamic
from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic import exceptions as dynamic_exceptions

from drecipe import selector, unstruct
from drecipe.cluster import Cluster
from drecipe.errors import (
    AlreadyExistsError,
    ClusterError,
    ConflictError,
    DiscoveryError,
    NotFoundError,
)

logger = logging.getLogger(__name__)


def _reason(exc: dynamic_exceptions.DynamicApiError) -> str:
    body = getattr(exc, "body", None)
    if not body:
        return ""
    try:
        return json.loads(body).get("reason", "")
    except (TypeError, ValueError):
        return ""


def _message(exc: dynamic_exceptions.DynamicApiError) -> str:
    body = getattr(exc, "body", None)
    if body:
        try:
            return json.loads(body).get("message") or str(exc)
        except (TypeError, ValueError):
            pass
    return str(exc)


@contextmanager
def _translate_errors() -> Iterator[None]:
    """Map client and transport exceptions onto drecipe ClusterError subclasses."""
    try:
        yield
    except dynamic_exceptions.NotFoundError as e:
        raise NotFoundError(_message(e)) from e
    except dynamic_exceptions.ConflictError as e:
        if _reason(e) == "AlreadyExists":
            raise AlreadyExistsError(_message(e)) from e
        raise ConflictError(_message(e)) from e
    except dynamic_exceptions.DynamicApiError as e:
        raise ClusterError(_message(e), status=getattr(e, "status", None)) from e
    except ApiException as e:
        raise ClusterError(e.reason or str(e), status=e.status) from e
    except urllib3.exceptions.HTTPError as e:
        raise ClusterError(f"Cluster API unavailable: {e}") from e


class KubernetesCluster(Cluster):
    """
    Cluster implementation backed by the Kubernetes API server.

    Args:
        kubeconfig: Path to a kubeconfig file (default: KUBECONFIG / ~/.kube/config)
        context: Kube context name
        in_cluster: Load service-account credentials instead of a kubeconfig
        api_client: Pre-built kubernetes.client.ApiClient (overrides the above)
    """

    def __init__(
        self,
        kubeconfig: Optional[str] = None,
        context: Optional[str] = None,
        in_cluster: bool = False,
        api_client: Optional[client.ApiClient] = None,
    ):
        if api_client is None:
            try:
                if in_cluster:
                    kube_config.load_incluster_config()
                else:
                    kube_config.load_kube_config(config_file=kubeconfig, context=context)
            except kube_config.ConfigException as e:
                raise ClusterError(f"Failed to load cluster credentials: {e}") from e
            api_client = client.ApiClient()
        self.dynamic = dynamic.DynamicClient(api_client)

    def _resource(self, api_version: str, kind: Optional[str] = None, plural: Optional[str] = None):
        with _translate_errors():
            try:
                if plural is not None:
                    return self.dynamic.resources.get(api_version=api_version, name=plural)
                return self.dynamic.resources.get(api_version=api_version, kind=kind)
            except dynamic_exceptions.ResourceNotFoundError as e:
                raise DiscoveryError(api_version, plural or kind or "") from e

    @staticmethod
    def _ns(resource, namespace: str) -> Optional[str]:
        if not resource.namespaced:
            return None
        return namespace or None

    def get(self, api_version: str, kind: str, name: str, namespace: str = "") -> dict[str, Any]:
        resource = self._resource(api_version, kind=kind)
        with _translate_errors():
            got = resource.get(name=name, namespace=self._ns(resource, namespace or "default"))
        return got.to_dict()

    def list(
        self,
        api_version: str,
        kind: str,
        namespace: str = "",
        labels: Optional[dict[str, str]] = None,
    ) -> list[dict[str, Any]]:
        resource = self._resource(api_version, kind=kind)
        return self._list(resource, namespace, labels)

    def _list(self, resource, namespace: str, labels: Optional[dict[str, str]]) -> list[dict[str, Any]]:
        kwargs: dict[str, Any] = {"namespace": self._ns(resource, namespace)}
        if labels:
            kwargs["label_selector"] = selector.to_selector_string(labels)
        with _translate_errors():
            got = resource.get(**kwargs)
        return list(got.to_dict().get("items") or [])

    def list_resource(self, api_version: str, resource: str, namespace: str = "") -> list[dict[str, Any]]:
        res = self._resource(api_version, plural=resource)
        return self._list(res, namespace, None)

    def create(self, obj: dict[str, Any]) -> dict[str, Any]:
        resource = self._resource(unstruct.api_version(obj), kind=unstruct.kind(obj))
        with _translate_errors():
            got = resource.create(
                body=obj,
                namespace=self._ns(resource, unstruct.namespace(obj) or "default"),
            )
        return got.to_dict()

    def update(self, obj: dict[str, Any]) -> dict[str, Any]:
        resource = self._resource(unstruct.api_version(obj), kind=unstruct.kind(obj))
        with _translate_errors():
            got = resource.replace(
                body=obj,
                namespace=self._ns(resource, unstruct.namespace(obj) or "default"),
            )
        return got.to_dict()

    def update_status(self, obj: dict[str, Any]) -> dict[str, Any]:
        resource = self._resource(unstruct.api_version(obj), kind=unstruct.kind(obj))
        status = resource.subresources.get("status")
        if status is None:
            return obj
        with _translate_errors():
            got = status.replace(
                body=obj,
                namespace=self._ns(resource, unstruct.namespace(obj) or "default"),
            )
        return got.to_dict()

    def delete(self, api_version: str, kind: str, name: str, namespace: str = "") -> None:
        resource = self._resource(api_version, kind=kind)
        with _translate_errors():
            resource.delete(name=name, namespace=self._ns(resource, namespace or "default"))
        logger.debug(f"Deleted {kind} {namespace} {name}")
