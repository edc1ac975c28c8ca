"""
Reconcile deployment targets into BentoDeployment custom resources.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from kubernetes.client.rest import ApiException
from sqlalchemy.orm import Session

from deployhub.config import settings
from deployhub.db.database import transaction
from deployhub.db.models import Cluster, DeploymentTarget
from deployhub.domain.consts import BENTO_DEPLOYMENT_GROUP, BENTO_DEPLOYMENT_KIND, BENTO_DEPLOYMENT_VERSION
from deployhub.domain.enums import DeploymentStatus
from deployhub.domain.errors import ExternalServiceError
from deployhub.domain.events import event_publisher, DeploymentDeployed
from deployhub.kube.client import KubeClient
from deployhub.services.bentos import BentoService
from deployhub.services.clusters import ClusterService, build_kube_client
from deployhub.services.deployments import DeploymentService

logger = logging.getLogger(__name__)


@dataclass
class DeployOption:
    # Re-apply even when the live resource is still the version we last wrote
    force: bool = False


def _copy_envs(envs: Optional[List[Dict[str, Any]]]) -> List[Dict[str, str]]:
    return [{"key": env.get("key", ""), "value": env.get("value", "")} for env in (envs or [])]


class KubeBentoDeploymentService:

    def __init__(
        self,
        db: Session,
        deployments: Optional[DeploymentService] = None,
        bentos: Optional[BentoService] = None,
    ):
        self.db = db
        self._deployments = deployments or DeploymentService(db)
        self._bentos = bentos or BentoService(db)

    def build(self, target: DeploymentTarget) -> Dict[str, Any]:
        """Build the desired BentoDeployment for a target, without resourceVersion."""
        deployment = target.deployment
        target_config = target.config or {}

        runners = []
        for name, runner in (target_config.get("runners") or {}).items():
            runner = runner or {}
            runners.append({
                "name": name,
                "resources": runner.get("resources"),
                "autoscaling": runner.get("hpa_conf"),
                "envs": _copy_envs(runner.get("envs")),
            })

        return {
            "apiVersion": f"{BENTO_DEPLOYMENT_GROUP}/{BENTO_DEPLOYMENT_VERSION}",
            "kind": BENTO_DEPLOYMENT_KIND,
            "metadata": {
                "name": deployment.name,
                "namespace": self._deployments.get_kube_namespace(deployment),
            },
            "spec": {
                "bento_tag": self._bentos.get_tag(target.bento),
                "autoscaling": target_config.get("hpa_conf"),
                "envs": _copy_envs(target_config.get("envs")),
                "resources": target_config.get("resources"),
                "runners": runners,
                "ingress": {"enabled": bool(target_config.get("enable_ingress"))},
            },
        }

    def deploy(self, target: DeploymentTarget, deploy_option: Optional[DeployOption] = None) -> Dict[str, Any]:
        """
        Create or update the BentoDeployment of a target's deployment.

        When the target remembers a resourceVersion and the live resource
        still carries it, nothing is written and the live resource is
        returned. Otherwise the resource is created or replaced and the
        deployment moves to ``deploying``.

        Returns:
            The BentoDeployment as stored by the API server
        """
        deploy_option = deploy_option or DeployOption()
        deployment = target.deployment
        cli = self._deployments.get_kube_bento_deployment_cli(deployment)

        known_version = (target.config or {}).get("kube_resource_version")
        if known_version and not deploy_option.force:
            live = self._get_live(cli, deployment.name)
            if live is not None and live["metadata"].get("resourceVersion") == known_version:
                logger.info(f"BentoDeployment {deployment.name} is unchanged at {known_version}")
                return live

        body = self.build(target)
        name = body["metadata"]["name"]
        live = self._get_live(cli, name)
        if live is None:
            try:
                resource = cli.create(body)
            except ApiException as e:
                logger.error(f"Failed to create BentoDeployment {name}: {e}", exc_info=True)
                raise ExternalServiceError(f"failed to create kube bento deployment {name}: {e.reason}") from e
        else:
            body["metadata"]["resourceVersion"] = live["metadata"].get("resourceVersion")
            try:
                resource = cli.update(body)
            except ApiException as e:
                logger.error(f"Failed to update BentoDeployment {name}: {e}", exc_info=True)
                raise ExternalServiceError(f"failed to update kube bento deployment {name}: {e.reason}") from e

        metadata = resource.get("metadata") or {}
        resource_version = metadata.get("resourceVersion", "")
        with transaction(self.db):
            # Reassign so the JSON column is flagged dirty
            target.config = {
                **(target.config or {}),
                "kube_resource_version": resource_version,
                "kube_resource_uid": metadata.get("uid", ""),
            }
            self._deployments.update_status(deployment, DeploymentStatus.DEPLOYING)
        event_publisher.publish(DeploymentDeployed(
            event_id="",
            timestamp=None,
            aggregate_id=deployment.uid,
            namespace=body["metadata"]["namespace"],
            name=name,
            bento_tag=body["spec"]["bento_tag"],
            resource_version=resource_version,
        ))
        return resource

    def deploy_active_targets(self, deployment, deploy_option: Optional[DeployOption] = None) -> List[Dict[str, Any]]:
        return [self.deploy(target, deploy_option) for target in self._deployments.list_active_targets(deployment)]

    @staticmethod
    def _get_live(cli, name: str) -> Optional[Dict[str, Any]]:
        try:
            return cli.get(name)
        except ApiException as e:
            logger.error(f"Failed to get BentoDeployment {name}: {e}", exc_info=True)
            raise ExternalServiceError(f"failed to get kube bento deployment: {e.reason}") from e


def sync_deployment_status(
    session_factory: Callable[[], Session],
    deployment_id: int,
    kube_client_factory: Callable[[Cluster], KubeClient] = build_kube_client,
    timeout: Optional[float] = None,
) -> None:
    """
    Refresh a deployment's status after a deploy, in a session of its own.

    Runs after the response is sent, so failures are logged and dropped.
    """
    timeout = timeout if timeout is not None else settings.STATUS_SYNC_TIMEOUT_SECONDS
    db = session_factory()
    try:
        deployments = DeploymentService(db, clusters=ClusterService(db, kube_client_factory))
        deployment = deployments.get(deployment_id)
        deployments.sync_status(deployment, timeout=timeout)
    except Exception:
        logger.exception(f"Failed to sync status of deployment {deployment_id}")
    finally:
        db.close()
