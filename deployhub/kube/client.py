"""
Kubernetes client wrapper for the control plane.
"""

from typing import Any, Dict, List, Optional
import logging

import yaml
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from deployhub.domain.consts import (
    BENTO_DEPLOYMENT_GROUP,
    BENTO_DEPLOYMENT_VERSION,
    BENTO_DEPLOYMENT_PLURAL,
)
from deployhub.domain.errors import ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)


def load_api_client(kube_config: Optional[str] = None) -> client.ApiClient:
    """
    Build an API client for one cluster.

    Args:
        kube_config: kubeconfig YAML stored on the cluster row. When empty,
            the in-cluster service account is used, then the local kubeconfig.
    """
    if kube_config and kube_config.strip():
        try:
            config_dict = yaml.safe_load(kube_config)
        except yaml.YAMLError as e:
            raise ValidationError(f"Invalid kubeconfig: {e}") from e
        return config.new_client_from_config_dict(config_dict)

    try:
        # Try loading in-cluster config first
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        # Fall back to local kubeconfig
        config.load_kube_config()
        logger.info("Loaded kubeconfig from local filesystem")
    return client.ApiClient()


class KubeClient:
    """
    Wrapper around the Kubernetes API clients the control plane needs.
    """

    def __init__(self, api_client: client.ApiClient):
        self.api_client = api_client
        self.core_v1 = client.CoreV1Api(api_client)
        self.custom_objects = client.CustomObjectsApi(api_client)

    def bento_deployments(self, namespace: str) -> "BentoDeploymentClient":
        """Return a BentoDeployment client bound to a namespace."""
        return BentoDeploymentClient(self.custom_objects, namespace)

    def list_pods(self, namespace: str, labels: Dict[str, str]) -> List[client.V1Pod]:
        """
        List pods matching all of the given labels.

        Args:
            namespace: Namespace to search
            labels: Label key/values joined into an equality selector
        """
        selector = ",".join(f"{key}={value}" for key, value in sorted(labels.items()))
        try:
            return self.core_v1.list_namespaced_pod(namespace=namespace, label_selector=selector).items
        except ApiException as e:
            logger.error(f"Failed to list pods in {namespace} with {selector}: {e}", exc_info=True)
            raise ExternalServiceError(f"failed to list pods: {e.reason}") from e


def pod_with_status(pod: client.V1Pod) -> Dict[str, Any]:
    """Flatten the parts of a pod the API reports about builder pods."""
    status = pod.status
    container_statuses = (status.container_statuses if status else None) or []
    return {
        "name": pod.metadata.name,
        "namespace": pod.metadata.namespace,
        "node_name": pod.spec.node_name if pod.spec else None,
        "phase": status.phase if status else "Unknown",
        "ready": bool(container_statuses) and all(cs.ready for cs in container_statuses),
        "start_time": status.start_time if status else None,
        "labels": dict(pod.metadata.labels or {}),
    }


class BentoDeploymentClient:
    """
    CRUD on BentoDeployment custom resources in one namespace.

    Resources are plain dicts as returned by ``CustomObjectsApi``.
    """

    def __init__(self, custom_objects: client.CustomObjectsApi, namespace: str):
        self.custom_objects = custom_objects
        self.namespace = namespace

    def _coordinates(self) -> Dict[str, str]:
        return {
            "group": BENTO_DEPLOYMENT_GROUP,
            "version": BENTO_DEPLOYMENT_VERSION,
            "namespace": self.namespace,
            "plural": BENTO_DEPLOYMENT_PLURAL,
        }

    def get(self, name: str, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """
        Get a BentoDeployment.

        Returns:
            The resource, or None if not found

        Raises:
            ApiException: for any error other than 404
        """
        kwargs = {"_request_timeout": timeout} if timeout else {}
        try:
            return self.custom_objects.get_namespaced_custom_object(name=name, **self._coordinates(), **kwargs)
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def create(self, body: Dict[str, Any]) -> Dict[str, Any]:
        return self.custom_objects.create_namespaced_custom_object(body=body, **self._coordinates())

    def update(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Replace a BentoDeployment; body must carry metadata.resourceVersion."""
        return self.custom_objects.replace_namespaced_custom_object(
            name=body["metadata"]["name"], body=body, **self._coordinates()
        )

    def delete(self, name: str) -> bool:
        """
        Delete a BentoDeployment.

        Returns:
            False if it was already gone
        """
        try:
            self.custom_objects.delete_namespaced_custom_object(name=name, **self._coordinates())
        except ApiException as e:
            if e.status == 404:
                return False
            raise
        logger.info(f"Deleted BentoDeployment {name} in namespace {self.namespace}")
        return True
