"""Tests for the Kubernetes cluster adapter.

The dynamic client is mocked; these tests cover argument mapping and the
translation of client exceptions into drecipe errors.
"""

import json
from unittest.mock import MagicMock, patch

import pytest
import urllib3
from kubernetes.client.exceptions import ApiException
from kubernetes.config import ConfigException
from kubernetes.dynamic import exceptions as dynamic_exceptions

from drecipe.actions.base import get_observed
from drecipe.context import RunContext
from drecipe.errors import (
    AlreadyExistsError,
    ClusterError,
    ConflictError,
    DiscoveryError,
    NotFoundError,
    RetryTimeout,
)
from drecipe.kube import KubernetesCluster

from conftest import configmap


def api_error(cls, status, reason="", message="boom"):
    exc = ApiException(status=status, reason=reason)
    exc.body = json.dumps({"reason": reason, "message": message})
    return cls(exc)


@pytest.fixture
def dynamic_client():
    with patch("drecipe.kube.dynamic.DynamicClient") as mock_cls:
        yield mock_cls.return_value


@pytest.fixture
def resource(dynamic_client):
    res = MagicMock()
    res.namespaced = True
    dynamic_client.resources.get.return_value = res
    return res


@pytest.fixture
def kube(dynamic_client):
    return KubernetesCluster(api_client=MagicMock())


class TestKubernetesCluster:
    """Tests for KubernetesCluster."""

    def test_get(self, kube, resource, dynamic_client):
        resource.get.return_value.to_dict.return_value = configmap("cm")
        assert kube.get("v1", "ConfigMap", "cm") == configmap("cm")
        dynamic_client.resources.get.assert_called_with(api_version="v1", kind="ConfigMap")
        resource.get.assert_called_with(name="cm", namespace="default")

    def test_cluster_scoped_ignores_namespace(self, kube, resource):
        resource.namespaced = False
        resource.get.return_value.to_dict.return_value = {}
        kube.get("apiextensions.k8s.io/v1", "CustomResourceDefinition", "x", "ns")
        resource.get.assert_called_with(name="x", namespace=None)

    def test_list_with_labels(self, kube, resource):
        resource.get.return_value.to_dict.return_value = {"items": [configmap("a")]}
        items = kube.list("v1", "ConfigMap", "ns", labels={"b": "2", "a": "1"})
        assert items == [configmap("a")]
        resource.get.assert_called_with(namespace="ns", label_selector="a=1,b=2")

    def test_list_all_namespaces(self, kube, resource):
        resource.get.return_value.to_dict.return_value = {"items": None}
        assert kube.list("v1", "ConfigMap") == []
        resource.get.assert_called_with(namespace=None)

    def test_list_resource_by_plural(self, kube, resource, dynamic_client):
        resource.get.return_value.to_dict.return_value = {"items": []}
        kube.list_resource("example.com/v1", "widgets")
        dynamic_client.resources.get.assert_called_with(api_version="example.com/v1", name="widgets")

    def test_discovery_error(self, kube, dynamic_client):
        dynamic_client.resources.get.side_effect = dynamic_exceptions.ResourceNotFoundError("no")
        with pytest.raises(DiscoveryError) as exc_info:
            kube.get("example.com/v1", "Widget", "w")
        assert exc_info.value.resource == "Widget"

    def test_not_found(self, kube, resource):
        resource.get.side_effect = api_error(dynamic_exceptions.NotFoundError, 404, "NotFound", 'configmaps "cm" not found')
        with pytest.raises(NotFoundError, match='configmaps "cm" not found'):
            kube.get("v1", "ConfigMap", "cm")

    def test_already_exists(self, kube, resource):
        resource.create.side_effect = api_error(dynamic_exceptions.ConflictError, 409, "AlreadyExists")
        with pytest.raises(AlreadyExistsError):
            kube.create(configmap("cm"))

    def test_conflict(self, kube, resource):
        resource.replace.side_effect = api_error(dynamic_exceptions.ConflictError, 409, "Conflict")
        with pytest.raises(ConflictError):
            kube.update(configmap("cm"))

    def test_other_api_error(self, kube, resource):
        resource.delete.side_effect = api_error(dynamic_exceptions.DynamicApiError, 500, "InternalError")
        with pytest.raises(ClusterError) as exc_info:
            kube.delete("v1", "ConfigMap", "cm")
        assert exc_info.value.status == 500

    def test_plain_api_exception(self, kube, resource):
        resource.get.side_effect = ApiException(status=503, reason="Service Unavailable")
        with pytest.raises(ClusterError) as exc_info:
            kube.get("v1", "ConfigMap", "cm")
        assert exc_info.value.status == 503

    def test_connection_error(self, kube, resource):
        """Transport failures surface as ClusterError."""
        resource.get.side_effect = urllib3.exceptions.MaxRetryError(None, "/api/v1", "refused")
        with pytest.raises(ClusterError, match="Cluster API unavailable"):
            kube.get("v1", "ConfigMap", "cm")

    def test_connection_error_during_discovery(self, kube, dynamic_client):
        dynamic_client.resources.get.side_effect = urllib3.exceptions.NewConnectionError(None, "refused")
        with pytest.raises(ClusterError):
            kube.list("v1", "ConfigMap")

    def test_connection_error_is_retried(self, kube, resource, retry, clock):
        """An unreachable API server is polled until the retry timeout."""
        resource.get.side_effect = urllib3.exceptions.MaxRetryError(None, "/api/v1", "refused")
        ctx = RunContext(cluster=kube, retry=retry)
        with pytest.raises(RetryTimeout):
            get_observed(ctx, configmap("cm"), "Get cm")
        assert resource.get.call_count > 1

    def test_update_status_without_subresource(self, kube, resource):
        resource.subresources = {}
        obj = configmap("cm")
        assert kube.update_status(obj) is obj

    def test_update_status(self, kube, resource):
        status = MagicMock()
        status.replace.return_value.to_dict.return_value = {"status": {"phase": "Passed"}}
        resource.subresources = {"status": status}
        assert kube.update_status(configmap("cm")) == {"status": {"phase": "Passed"}}
        status.replace.assert_called_once()


class TestCredentials:
    """Tests for credential loading."""

    def test_kubeconfig_error(self):
        with patch("drecipe.kube.kube_config.load_kube_config", side_effect=ConfigException("no config")):
            with pytest.raises(ClusterError, match="Failed to load cluster credentials"):
                KubernetesCluster(kubeconfig="/nope")

    def test_in_cluster(self, dynamic_client):
        with patch("drecipe.kube.kube_config.load_incluster_config") as load, \
                patch("drecipe.kube.client.ApiClient"):
            KubernetesCluster(in_cluster=True)
        load.assert_called_once()
