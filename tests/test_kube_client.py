"""Tests for the Kubernetes client wrapper."""
from unittest.mock import MagicMock, Mock

import pytest
from kubernetes.client.rest import ApiException

from deployhub.domain.errors import ExternalServiceError, ValidationError
from deployhub.kube.client import BentoDeploymentClient, KubeClient, load_api_client, pod_with_status

COORDINATES = {
    "group": "serving.yatai.ai",
    "version": "v1alpha2",
    "namespace": "serving",
    "plural": "bentodeployments",
}


@pytest.fixture
def custom_objects():
    return MagicMock()


@pytest.fixture
def cli(custom_objects):
    return BentoDeploymentClient(custom_objects, "serving")


class TestBentoDeploymentClient:

    def test_get(self, cli, custom_objects):
        custom_objects.get_namespaced_custom_object.return_value = {"metadata": {"name": "iris"}}

        assert cli.get("iris") == {"metadata": {"name": "iris"}}
        custom_objects.get_namespaced_custom_object.assert_called_once_with(name="iris", **COORDINATES)

    def test_get_with_timeout(self, cli, custom_objects):
        cli.get("iris", timeout=5)
        custom_objects.get_namespaced_custom_object.assert_called_once_with(
            name="iris", _request_timeout=5, **COORDINATES
        )

    def test_get_missing(self, cli, custom_objects):
        custom_objects.get_namespaced_custom_object.side_effect = ApiException(status=404)
        assert cli.get("iris") is None

    def test_get_error(self, cli, custom_objects):
        custom_objects.get_namespaced_custom_object.side_effect = ApiException(status=500)
        with pytest.raises(ApiException):
            cli.get("iris")

    def test_create(self, cli, custom_objects):
        body = {"metadata": {"name": "iris"}}
        cli.create(body)
        custom_objects.create_namespaced_custom_object.assert_called_once_with(body=body, **COORDINATES)

    def test_update(self, cli, custom_objects):
        body = {"metadata": {"name": "iris", "resourceVersion": "7"}}
        cli.update(body)
        custom_objects.replace_namespaced_custom_object.assert_called_once_with(
            name="iris", body=body, **COORDINATES
        )

    def test_delete(self, cli, custom_objects):
        assert cli.delete("iris") is True
        custom_objects.delete_namespaced_custom_object.assert_called_once_with(name="iris", **COORDINATES)

    def test_delete_missing(self, cli, custom_objects):
        custom_objects.delete_namespaced_custom_object.side_effect = ApiException(status=404)
        assert cli.delete("iris") is False


class TestKubeClient:

    @pytest.fixture
    def kube(self):
        kube = KubeClient.__new__(KubeClient)
        kube.core_v1 = MagicMock()
        kube.custom_objects = MagicMock()
        return kube

    def test_list_pods_selector(self, kube):
        kube.core_v1.list_namespaced_pod.return_value.items = ["pod"]

        assert kube.list_pods("builders", {"b": "2", "a": "1"}) == ["pod"]
        kube.core_v1.list_namespaced_pod.assert_called_once_with(namespace="builders", label_selector="a=1,b=2")

    def test_list_pods_error(self, kube):
        kube.core_v1.list_namespaced_pod.side_effect = ApiException(status=403, reason="Forbidden")
        with pytest.raises(ExternalServiceError):
            kube.list_pods("builders", {"a": "1"})

    def test_bento_deployments_bound_to_namespace(self, kube):
        cli = kube.bento_deployments("serving")
        assert cli.namespace == "serving"
        assert cli.custom_objects is kube.custom_objects


def test_pod_with_status_without_status():
    pod = Mock()
    pod.metadata.name = "p"
    pod.metadata.namespace = "ns"
    pod.metadata.labels = None
    pod.spec = None
    pod.status = None

    assert pod_with_status(pod) == {
        "name": "p",
        "namespace": "ns",
        "node_name": None,
        "phase": "Unknown",
        "ready": False,
        "start_time": None,
        "labels": {},
    }


def test_invalid_kube_config():
    with pytest.raises(ValidationError):
        load_api_client("{not: [valid")
