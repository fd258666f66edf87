"""Tests for InMemoryCluster and unstructured helpers."""

import pytest

from drecipe import unstruct
from drecipe.cluster import InMemoryCluster
from drecipe.errors import AlreadyExistsError, ConflictError, DiscoveryError, NotFoundError

from conftest import configmap

CRD_V1 = {
    "apiVersion": "apiextensions.k8s.io/v1",
    "kind": "CustomResourceDefinition",
    "metadata": {"name": "widgets.example.com"},
    "spec": {
        "group": "example.com",
        "scope": "Namespaced",
        "names": {"kind": "Widget", "plural": "widgets"},
        "versions": [{"name": "v1alpha1", "served": True}],
    },
}


class TestUnstruct:
    """Tests for unstructured object helpers."""

    def test_accessors(self):
        """Basic accessors read metadata."""
        obj = configmap("cm", "ns", labels={"a": "b"})
        assert unstruct.name(obj) == "cm"
        assert unstruct.namespace(obj) == "ns"
        assert unstruct.labels(obj) == {"a": "b"}
        assert unstruct.gvk(obj) == "v1, Kind=ConfigMap"
        assert unstruct.describe(obj) == "ns cm: GVK v1, Kind=ConfigMap"

    def test_nested_field(self):
        """A key holding None is found; a missing key is not."""
        obj = {"spec": None, "a": {"b": 1}}
        assert unstruct.nested_field(obj, "spec") == (None, True)
        assert unstruct.nested_field(obj, "a", "b") == (1, True)
        assert unstruct.nested_field(obj, "a", "c") == (None, False)
        assert unstruct.nested_field(obj, "spec", "x") == (None, False)

    def test_with_name(self):
        """with_name copies and drops generateName."""
        obj = {"metadata": {"generateName": "cm-"}}
        named = unstruct.with_name(obj, "cm-0")
        assert named["metadata"] == {"name": "cm-0"}
        assert obj["metadata"] == {"generateName": "cm-"}


class TestInMemoryCluster:
    """Tests for the in-memory cluster."""

    def test_create_and_get(self, cluster):
        """Created objects can be read back."""
        cluster.create(configmap("cm", data={"k": "v"}))
        got = cluster.get("v1", "ConfigMap", "cm", "default")
        assert got["data"] == {"k": "v"}
        assert got["metadata"]["resourceVersion"]

    def test_namespace_defaults(self, cluster):
        """Namespaced objects without namespace land in default."""
        cluster.create({"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "cm"}})
        assert unstruct.namespace(cluster.get("v1", "ConfigMap", "cm")) == "default"

    def test_create_duplicate(self, cluster):
        """Creating an existing object raises AlreadyExistsError."""
        cluster.create(configmap("cm"))
        with pytest.raises(AlreadyExistsError):
            cluster.create(configmap("cm"))

    def test_get_missing(self, cluster):
        """Missing objects raise NotFoundError."""
        with pytest.raises(NotFoundError):
            cluster.get("v1", "ConfigMap", "nope", "default")

    def test_unknown_kind(self, cluster):
        """Unserved types raise DiscoveryError."""
        with pytest.raises(DiscoveryError):
            cluster.get("example.com/v1", "Widget", "w", "default")
        with pytest.raises(DiscoveryError):
            cluster.list("example.com/v1", "Widget")

    def test_list_filters(self, cluster):
        """list filters by namespace and labels."""
        cluster.create(configmap("a", "ns1", labels={"app": "x"}))
        cluster.create(configmap("b", "ns1", labels={"app": "y"}))
        cluster.create(configmap("c", "ns2", labels={"app": "x"}))
        assert len(cluster.list("v1", "ConfigMap")) == 3
        assert [unstruct.name(o) for o in cluster.list("v1", "ConfigMap", "ns1")] == ["a", "b"]
        assert [unstruct.name(o) for o in cluster.list("v1", "ConfigMap", labels={"app": "x"})] == ["a", "c"]

    def test_update_conflict(self, cluster):
        """A stale resourceVersion raises ConflictError."""
        cluster.create(configmap("cm"))
        first = cluster.get("v1", "ConfigMap", "cm", "default")
        cluster.update(first)
        with pytest.raises(ConflictError):
            cluster.update(first)

    def test_update_missing(self, cluster):
        """Updating a missing object raises NotFoundError."""
        with pytest.raises(NotFoundError):
            cluster.update(configmap("cm"))

    def test_status_subresource(self, cluster):
        """update keeps status for kinds with a status subresource."""
        recipe = {"apiVersion": "dope.mayadata.io/v1", "kind": "Recipe", "metadata": {"name": "r"}}
        cluster.create(recipe)
        current = cluster.get("dope.mayadata.io/v1", "Recipe", "r")
        current["status"] = {"phase": "Passed"}
        stored = cluster.update(current)
        assert "status" not in stored
        stored["status"] = {"phase": "Passed"}
        cluster.update_status(stored)
        assert cluster.get("dope.mayadata.io/v1", "Recipe", "r")["status"] == {"phase": "Passed"}

    def test_delete(self, cluster):
        """Deleted objects are gone; deleting twice raises NotFoundError."""
        cluster.create(configmap("cm"))
        cluster.delete("v1", "ConfigMap", "cm", "default")
        with pytest.raises(NotFoundError):
            cluster.delete("v1", "ConfigMap", "cm", "default")

    def test_delete_with_finalizers(self, cluster):
        """Objects with finalizers are only marked for deletion."""
        obj = configmap("cm")
        obj["metadata"]["finalizers"] = ["x/y"]
        cluster.create(obj)
        cluster.delete("v1", "ConfigMap", "cm", "default")
        got = cluster.get("v1", "ConfigMap", "cm", "default")
        assert unstruct.deletion_timestamp(got)

    def test_crd_registers_kind(self, cluster):
        """Creating a CRD serves its custom resource."""
        cluster.create(CRD_V1)
        assert cluster.list_resource("example.com/v1alpha1", "widgets") == []
        cluster.create({"apiVersion": "example.com/v1alpha1", "kind": "Widget", "metadata": {"name": "w"}})
        cluster.delete("apiextensions.k8s.io/v1", "CustomResourceDefinition", "widgets.example.com")
        with pytest.raises(DiscoveryError):
            cluster.list("example.com/v1alpha1", "Widget")

    def test_crd_not_served(self):
        """With serve_crds off, CRDs never become discoverable."""
        cluster = InMemoryCluster(serve_crds=False)
        cluster.create(CRD_V1)
        with pytest.raises(DiscoveryError):
            cluster.list_resource("example.com/v1alpha1", "widgets")

    def test_returns_copies(self, cluster):
        """Mutating a returned object doesn't change the store."""
        cluster.create(configmap("cm", data={"k": "v"}))
        got = cluster.get("v1", "ConfigMap", "cm", "default")
        got["data"]["k"] = "changed"
        assert cluster.get("v1", "ConfigMap", "cm", "default")["data"]["k"] == "v"
