"""
Cluster - capability interface over the cluster API.

The engine never talks to a client library directly. Executors receive a
Cluster (via RunContext) and use it to get, list, create, update and
delete unstructured objects addressed by apiVersion + kind.

Implementations:
- InMemoryCluster: dict-backed cluster for tests and dry runs
- KubernetesCluster (drecipe.kube): dynamic-client backed adapter

Error contract (all implementations):
- DiscoveryError: apiVersion/kind (or plural resource) is not served
- NotFoundError: object does not exist
- AlreadyExistsError: create of an existing object
- ConflictError: update with a stale resourceVersion
"""

from __future__ import annotations

import copy
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

from drecipe import selector, unstruct
from drecipe.errors import (
    AlreadyExistsError,
    ConflictError,
    DiscoveryError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

CRD_KIND = "CustomResourceDefinition"


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class Cluster(ABC):
    """
    Abstract cluster access.

    Namespaces are ignored for cluster-scoped kinds. An empty namespace on
    list means all namespaces.
    """

    @abstractmethod
    def get(self, api_version: str, kind: str, name: str, namespace: str = "") -> dict[str, Any]:
        """
        Fetch one object.

        Raises:
            DiscoveryError: If the type is not served
            NotFoundError: If the object does not exist
        """
        pass

    @abstractmethod
    def list(
        self,
        api_version: str,
        kind: str,
        namespace: str = "",
        labels: Optional[dict[str, str]] = None,
    ) -> list[dict[str, Any]]:
        """
        List objects of a type, optionally filtered by equality labels.

        Raises:
            DiscoveryError: If the type is not served
        """
        pass

    @abstractmethod
    def list_resource(
        self,
        api_version: str,
        resource: str,
        namespace: str = "",
    ) -> list[dict[str, Any]]:
        """
        List objects of a type addressed by its plural resource name.

        Used to verify that a freshly created custom resource type is
        discoverable.

        Raises:
            DiscoveryError: If the resource is not served
        """
        pass

    @abstractmethod
    def create(self, obj: dict[str, Any]) -> dict[str, Any]:
        """
        Create obj and return the stored object.

        Raises:
            AlreadyExistsError: If an object with the same name exists
        """
        pass

    @abstractmethod
    def update(self, obj: dict[str, Any]) -> dict[str, Any]:
        """
        Replace obj and return the stored object.

        Raises:
            NotFoundError: If the object does not exist
            ConflictError: If obj carries a stale resourceVersion
        """
        pass

    @abstractmethod
    def update_status(self, obj: dict[str, Any]) -> dict[str, Any]:
        """
        Write obj's status through the status subresource when the type has
        one. Types without a status subresource return obj unchanged.
        """
        pass

    @abstractmethod
    def delete(self, api_version: str, kind: str, name: str, namespace: str = "") -> None:
        """
        Delete one object.

        Raises:
            NotFoundError: If the object does not exist
        """
        pass


class _KindInfo:
    def __init__(self, plural: str, namespaced: bool, status_subresource: bool):
        self.plural = plural
        self.namespaced = namespaced
        self.status_subresource = status_subresource


# Built-in kinds served by a fresh InMemoryCluster
DEFAULT_KINDS: dict[tuple[str, str], tuple[str, bool, bool]] = {
    ("v1", "ConfigMap"): ("configmaps", True, False),
    ("v1", "Secret"): ("secrets", True, False),
    ("v1", "Pod"): ("pods", True, True),
    ("v1", "Service"): ("services", True, True),
    ("v1", "ServiceAccount"): ("serviceaccounts", True, False),
    ("v1", "Namespace"): ("namespaces", False, True),
    ("apps/v1", "Deployment"): ("deployments", True, True),
    ("apps/v1", "StatefulSet"): ("statefulsets", True, True),
    ("apiextensions.k8s.io/v1", CRD_KIND): ("customresourcedefinitions", False, True),
    ("apiextensions.k8s.io/v1beta1", CRD_KIND): ("customresourcedefinitions", False, True),
    ("dope.mayadata.io/v1", "Recipe"): ("recipes", True, True),
    ("dope.mayadata.io/v1", "Job"): ("jobs", True, True),
}


class InMemoryCluster(Cluster):
    """
    Dict-backed cluster for testing and dry-run mode.

    Mirrors the API server behaviours the engine relies on:
    - create is atomic and fails with AlreadyExistsError on duplicates
    - update with a stale resourceVersion fails with ConflictError
    - deleting an object with finalizers only sets deletionTimestamp
    - creating a CRD makes its custom resource type discoverable
    """

    def __init__(self, objects: Optional[list[dict[str, Any]]] = None, serve_crds: bool = True):
        self._lock = threading.RLock()
        self._kinds: dict[tuple[str, str], _KindInfo] = {
            key: _KindInfo(*info) for key, info in DEFAULT_KINDS.items()
        }
        self._objects: dict[tuple[str, str, str, str], dict[str, Any]] = {}
        self._versions = itertools.count(1)
        self.serve_crds = serve_crds
        for obj in objects or []:
            self.create(obj)

    # ----------------------------------------------------------------- kinds

    def register_kind(
        self,
        api_version: str,
        kind: str,
        plural: str,
        namespaced: bool = True,
        status_subresource: bool = False,
    ) -> None:
        """Make api_version/kind discoverable."""
        with self._lock:
            self._kinds[(api_version, kind)] = _KindInfo(plural, namespaced, status_subresource)

    def unregister_kind(self, api_version: str, kind: str) -> None:
        with self._lock:
            self._kinds.pop((api_version, kind), None)

    def _kind(self, api_version: str, kind: str) -> _KindInfo:
        info = self._kinds.get((api_version, kind))
        if info is None:
            raise DiscoveryError(api_version, kind)
        return info

    def _kind_by_plural(self, api_version: str, resource: str) -> str:
        for (av, k), info in self._kinds.items():
            if av == api_version and info.plural == resource:
                return k
        raise DiscoveryError(api_version, resource)

    def _serve_crd(self, crd: dict[str, Any]) -> None:
        spec = crd.get("spec") or {}
        group = spec.get("group", "")
        names = spec.get("names") or {}
        namespaced = spec.get("scope", "Namespaced") == "Namespaced"
        versions = [v.get("name") for v in spec.get("versions") or [] if v.get("name")]
        if spec.get("version"):
            versions.append(spec["version"])
        for version in versions:
            self.register_kind(
                f"{group}/{version}",
                names.get("kind", ""),
                names.get("plural", ""),
                namespaced=namespaced,
            )

    # --------------------------------------------------------------- objects

    def _key(self, api_version: str, kind: str, name: str, namespace: str) -> tuple[str, str, str, str]:
        info = self._kind(api_version, kind)
        ns = (namespace or "default") if info.namespaced else ""
        return (api_version, kind, ns, name)

    def _obj_key(self, obj: dict[str, Any]) -> tuple[str, str, str, str]:
        return self._key(
            unstruct.api_version(obj),
            unstruct.kind(obj),
            unstruct.name(obj),
            unstruct.namespace(obj),
        )

    def get(self, api_version: str, kind: str, name: str, namespace: str = "") -> dict[str, Any]:
        with self._lock:
            key = self._key(api_version, kind, name, namespace)
            if key not in self._objects:
                raise NotFoundError(f'{kind} "{name}" not found')
            return copy.deepcopy(self._objects[key])

    def list(
        self,
        api_version: str,
        kind: str,
        namespace: str = "",
        labels: Optional[dict[str, str]] = None,
    ) -> list[dict[str, Any]]:
        with self._lock:
            info = self._kind(api_version, kind)
            items = []
            for (av, k, ns, _), obj in sorted(self._objects.items()):
                if (av, k) != (api_version, kind):
                    continue
                if info.namespaced and namespace and ns != namespace:
                    continue
                if labels and not selector.matches({"matchLabels": labels}, unstruct.labels(obj)):
                    continue
                items.append(copy.deepcopy(obj))
            return items

    def list_resource(self, api_version: str, resource: str, namespace: str = "") -> list[dict[str, Any]]:
        with self._lock:
            kind = self._kind_by_plural(api_version, resource)
            return self.list(api_version, kind, namespace)

    def create(self, obj: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            if not unstruct.name(obj):
                raise ValueError("create requires metadata.name")
            key = self._obj_key(obj)
            if key in self._objects:
                raise AlreadyExistsError(
                    f'{unstruct.kind(obj)} "{unstruct.name(obj)}" already exists'
                )
            stored = copy.deepcopy(obj)
            meta = stored.setdefault("metadata", {})
            if key[2]:
                meta["namespace"] = key[2]
            meta["resourceVersion"] = str(next(self._versions))
            meta.setdefault("creationTimestamp", _utcnow().isoformat())
            self._objects[key] = stored
            if unstruct.kind(obj) == CRD_KIND and self.serve_crds:
                self._serve_crd(stored)
            logger.debug(f"Created {unstruct.describe(stored)}")
            return copy.deepcopy(stored)

    def update(self, obj: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            key = self._obj_key(obj)
            current = self._objects.get(key)
            if current is None:
                raise NotFoundError(f'{unstruct.kind(obj)} "{unstruct.name(obj)}" not found')
            want_rv = unstruct.metadata(obj).get("resourceVersion")
            have_rv = current["metadata"].get("resourceVersion")
            if want_rv and want_rv != have_rv:
                raise ConflictError(
                    f'Operation cannot be fulfilled on {unstruct.kind(obj)} '
                    f'"{unstruct.name(obj)}": the object has been modified'
                )
            stored = copy.deepcopy(obj)
            meta = stored.setdefault("metadata", {})
            for keep in ("namespace", "creationTimestamp", "deletionTimestamp", "uid"):
                if keep in current["metadata"] and keep not in meta:
                    meta[keep] = current["metadata"][keep]
            info = self._kind(key[0], key[1])
            if info.status_subresource:
                # status is only written via update_status
                if "status" in current:
                    stored["status"] = copy.deepcopy(current["status"])
                else:
                    stored.pop("status", None)
            meta["resourceVersion"] = str(next(self._versions))
            if meta.get("deletionTimestamp") and not meta.get("finalizers"):
                del self._objects[key]
                return copy.deepcopy(stored)
            self._objects[key] = stored
            return copy.deepcopy(stored)

    def update_status(self, obj: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            key = self._obj_key(obj)
            if not self._kind(key[0], key[1]).status_subresource:
                return obj
            current = self._objects.get(key)
            if current is None:
                raise NotFoundError(f'{unstruct.kind(obj)} "{unstruct.name(obj)}" not found')
            current["status"] = copy.deepcopy(obj.get("status"))
            current["metadata"]["resourceVersion"] = str(next(self._versions))
            return copy.deepcopy(current)

    def delete(self, api_version: str, kind: str, name: str, namespace: str = "") -> None:
        with self._lock:
            key = self._key(api_version, kind, name, namespace)
            current = self._objects.get(key)
            if current is None:
                raise NotFoundError(f'{kind} "{name}" not found')
            if unstruct.finalizers(current):
                current["metadata"].setdefault("deletionTimestamp", _utcnow().isoformat())
                return
            del self._objects[key]
            if kind == CRD_KIND and self.serve_crds:
                names = (current.get("spec") or {}).get("names") or {}
                for (av, k) in list(self._kinds):
                    if k == names.get("kind") and av.startswith(
                        f"{(current.get('spec') or {}).get('group', '')}/"
                    ):
                        self.unregister_kind(av, k)
            logger.debug(f"Deleted {kind} {namespace} {name}")

    def objects(self) -> list[dict[str, Any]]:
        """Snapshot of every stored object."""
        with self._lock:
            return [copy.deepcopy(o) for _, o in sorted(self._objects.items())]
