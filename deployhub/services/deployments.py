"""
Deployments and their revisions.

A deployment is a named BentoDeployment in one cluster. Each change of what
it runs creates a new active revision holding the deployment targets; the
previous revision is kept as inactive history.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from kubernetes.client.rest import ApiException
from sqlalchemy.orm import Session

from deployhub.application.name_validation import validate_name
from deployhub.db.database import transaction
from deployhub.db.models import (
    Bento, Cluster, Deployment, DeploymentRevision, DeploymentTarget, User, utcnow,
)
from deployhub.domain.enums import (
    DeploymentRevisionStatus, DeploymentStatus, DeploymentTargetType, ResourceType,
)
from deployhub.domain.errors import ConflictError, ExternalServiceError, NotFoundError, ValidationError
from deployhub.domain.events import event_publisher, DeploymentCreated, DeploymentStatusChanged
from deployhub.kube.client import BentoDeploymentClient
from deployhub.services.base import (
    UNSET, BaseListOption, apply_keywords, apply_label_selectors, apply_limit, apply_order,
)
from deployhub.services.clusters import ClusterService
from deployhub.services.labels import LabelItem, LabelService

logger = logging.getLogger(__name__)

# Condition types reported by the BentoDeployment operator that mean the rollout broke
_FAILED_CONDITION_TYPES = ("Failed", "Degraded")


@dataclass
class CreateDeploymentTargetOption:
    bento: Bento
    type: DeploymentTargetType = DeploymentTargetType.STABLE
    config: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CreateDeploymentOption:
    cluster: Cluster
    name: str
    targets: List[CreateDeploymentTargetOption]
    description: str = ""
    kube_namespace: str = ""
    creator: Optional[User] = None
    labels: List[LabelItem] = field(default_factory=list)


@dataclass
class ListDeploymentOption(BaseListOption):
    cluster_id: Optional[int] = None
    organization_id: Optional[int] = None
    statuses: Optional[List[str]] = None
    creator_id: Optional[int] = None
    order: Optional[str] = None


ORDERABLE_COLUMNS = ["created_at", "updated_at", "name", "id"]


class DeploymentService:

    def __init__(self, db: Session, clusters: Optional[ClusterService] = None, labels: Optional[LabelService] = None):
        self.db = db
        self._clusters = clusters or ClusterService(db)
        self._labels = labels or LabelService(db)

    def create(self, opt: CreateDeploymentOption) -> Deployment:
        name = validate_name(opt.name, "Deployment")
        if opt.kube_namespace:
            validate_name(opt.kube_namespace, "Kube namespace")
        if not opt.targets:
            raise ValidationError("A deployment needs at least one target")
        exists = (
            self.db.query(Deployment)
            .filter(Deployment.cluster_id == opt.cluster.id, Deployment.name == name)
            .first()
        )
        if exists:
            raise ConflictError(f"Deployment with name '{name}' already exists in cluster {opt.cluster.name}")

        creator_id = opt.creator.id if opt.creator else None
        deployment = Deployment(
            cluster_id=opt.cluster.id,
            name=name,
            description=opt.description or "",
            kube_namespace=opt.kube_namespace or "",
            status=DeploymentStatus.NON_DEPLOYED.value,
            creator_id=creator_id,
        )
        with transaction(self.db):
            self.db.add(deployment)
            self.db.flush()
            self._create_revision(deployment, opt.targets, creator_id)
            self._labels.create_or_update_labels(
                opt.labels, creator_id, opt.cluster.organization_id, ResourceType.DEPLOYMENT, deployment.id
            )

        event_publisher.publish(DeploymentCreated(
            event_id="",
            timestamp=None,
            aggregate_id=deployment.uid,
            cluster=opt.cluster.name,
            name=name,
        ))
        return deployment

    def _create_revision(
        self,
        deployment: Deployment,
        targets: List[CreateDeploymentTargetOption],
        creator_id: Optional[int],
    ) -> DeploymentRevision:
        revision = DeploymentRevision(
            deployment_id=deployment.id,
            status=DeploymentRevisionStatus.ACTIVE.value,
            creator_id=creator_id,
        )
        self.db.add(revision)
        self.db.flush()
        for target in targets:
            self.db.add(DeploymentTarget(
                deployment_id=deployment.id,
                deployment_revision_id=revision.id,
                bento_id=target.bento.id,
                type=DeploymentTargetType(target.type).value,
                config=dict(target.config or {}),
                creator_id=creator_id,
            ))
        self.db.flush()
        return revision

    def get(self, deployment_id: int) -> Deployment:
        deployment = self.db.query(Deployment).filter(Deployment.id == deployment_id).first()
        if not deployment:
            raise NotFoundError(f"Deployment not found: {deployment_id}")
        return deployment

    def get_by_uid(self, uid: str) -> Deployment:
        deployment = self.db.query(Deployment).filter(Deployment.uid == uid).first()
        if not deployment:
            raise NotFoundError(f"Deployment not found: {uid}")
        return deployment

    def get_by_name(self, cluster: Cluster, name: str) -> Deployment:
        deployment = (
            self.db.query(Deployment)
            .filter(Deployment.cluster_id == cluster.id, Deployment.name == name)
            .first()
        )
        if not deployment:
            raise NotFoundError(f"Deployment not found: {name}")
        return deployment

    def list(self, opt: Optional[ListDeploymentOption] = None) -> Tuple[List[Deployment], int]:
        opt = opt or ListDeploymentOption()
        query = self.db.query(Deployment).join(Cluster, Deployment.cluster_id == Cluster.id)
        if opt.cluster_id is not None:
            query = query.filter(Deployment.cluster_id == opt.cluster_id)
        if opt.organization_id is not None:
            query = query.filter(Cluster.organization_id == opt.organization_id)
        if opt.statuses is not None:
            query = query.filter(Deployment.status.in_(opt.statuses))
        if opt.creator_id is not None:
            query = query.filter(Deployment.creator_id == opt.creator_id)
        query = apply_keywords(query, opt.search, Deployment.name)
        query = apply_label_selectors(query, opt.label_selectors, ResourceType.DEPLOYMENT, Deployment.id)

        total = query.count()
        query = apply_order(query, opt.order, Deployment, ORDERABLE_COLUMNS, Deployment.id.desc())
        items = apply_limit(query, opt).all()
        return items, total

    def update(
        self,
        deployment: Deployment,
        description=UNSET,
        targets=UNSET,
        labels=UNSET,
        creator: Optional[User] = None,
    ) -> Deployment:
        """
        Update a deployment.

        Passing ``targets`` starts a new active revision holding them and
        marks the current active revision inactive.
        """
        creator_id = creator.id if creator else None
        with transaction(self.db):
            if description is not UNSET:
                deployment.description = description or ""
            if targets is not UNSET:
                if not targets:
                    raise ValidationError("A deployment needs at least one target")
                for revision in self.list_revisions(deployment, DeploymentRevisionStatus.ACTIVE):
                    revision.status = DeploymentRevisionStatus.INACTIVE.value
                self._create_revision(deployment, targets, creator_id)
            if labels is not UNSET:
                self._labels.create_or_update_labels(
                    labels or [], creator_id, deployment.cluster.organization_id,
                    ResourceType.DEPLOYMENT, deployment.id,
                )
        self.db.refresh(deployment)
        return deployment

    def list_labels(self, deployment: Deployment) -> list:
        return self._labels.list_by_resource(ResourceType.DEPLOYMENT, deployment.id)

    def list_revisions(
        self, deployment: Deployment, status: Optional[DeploymentRevisionStatus] = None
    ) -> List[DeploymentRevision]:
        query = self.db.query(DeploymentRevision).filter(DeploymentRevision.deployment_id == deployment.id)
        if status is not None:
            query = query.filter(DeploymentRevision.status == status.value)
        return query.order_by(DeploymentRevision.id.desc()).all()

    def get_active_revision(self, deployment: Deployment) -> Optional[DeploymentRevision]:
        revisions = self.list_revisions(deployment, DeploymentRevisionStatus.ACTIVE)
        return revisions[0] if revisions else None

    def list_active_targets(self, deployment: Deployment) -> List[DeploymentTarget]:
        revision = self.get_active_revision(deployment)
        return list(revision.targets) if revision else []

    def update_status(
        self,
        deployment: Deployment,
        status: DeploymentStatus,
        syncing_at=UNSET,
        updated_at=UNSET,
    ) -> Deployment:
        old_status = deployment.status
        with transaction(self.db):
            deployment.status = DeploymentStatus(status).value
            if syncing_at is not UNSET:
                deployment.status_syncing_at = syncing_at
            if updated_at is not UNSET:
                deployment.status_updated_at = updated_at
        if old_status != deployment.status:
            event_publisher.publish(DeploymentStatusChanged(
                event_id="",
                timestamp=None,
                aggregate_id=deployment.uid,
                name=deployment.name,
                old_status=old_status,
                new_status=deployment.status,
            ))
        return deployment

    def get_kube_namespace(self, deployment: Deployment) -> str:
        if deployment.kube_namespace:
            return deployment.kube_namespace
        return self._clusters.get_default_kube_namespace(deployment.cluster)

    def get_kube_bento_deployment_cli(self, deployment: Deployment) -> BentoDeploymentClient:
        kube = self._clusters.get_kube_client(deployment.cluster)
        return kube.bento_deployments(self.get_kube_namespace(deployment))

    def sync_status(self, deployment: Deployment, timeout: Optional[float] = None) -> Deployment:
        """Read the live BentoDeployment and store the status derived from it."""
        syncing_at = utcnow()
        cli = self.get_kube_bento_deployment_cli(deployment)
        try:
            resource = cli.get(deployment.name, timeout=timeout)
        except ApiException as e:
            logger.error(f"Failed to get BentoDeployment {deployment.name}: {e}", exc_info=True)
            raise ExternalServiceError(f"failed to get kube bento deployment {deployment.name}: {e.reason}") from e

        status = derive_status(resource)
        if resource is None and deployment.status in (
            DeploymentStatus.TERMINATING.value, DeploymentStatus.TERMINATED.value,
        ):
            status = DeploymentStatus.TERMINATED
        return self.update_status(deployment, status, syncing_at=syncing_at, updated_at=utcnow())

    def terminate(self, deployment: Deployment) -> Deployment:
        """Delete the BentoDeployment; the rows are kept."""
        cli = self.get_kube_bento_deployment_cli(deployment)
        try:
            deleted = cli.delete(deployment.name)
        except ApiException as e:
            logger.error(f"Failed to delete BentoDeployment {deployment.name}: {e}", exc_info=True)
            raise ExternalServiceError(f"failed to delete kube bento deployment {deployment.name}: {e.reason}") from e
        status = DeploymentStatus.TERMINATING if deleted else DeploymentStatus.TERMINATED
        return self.update_status(deployment, status, updated_at=utcnow())


def derive_status(resource: Optional[Dict[str, Any]]) -> DeploymentStatus:
    """Map a live BentoDeployment (or its absence) to a deployment status."""
    if resource is None:
        return DeploymentStatus.NON_DEPLOYED
    conditions = (resource.get("status") or {}).get("conditions") or []
    for condition in conditions:
        if condition.get("type") in _FAILED_CONDITION_TYPES and condition.get("status") == "True":
            return DeploymentStatus.FAILED
    for condition in conditions:
        if condition.get("type") == "Available" and condition.get("status") == "True":
            return DeploymentStatus.RUNNING
    return DeploymentStatus.DEPLOYING
