"""
Deployment endpoints.

Writes that change what runs are reconciled into the cluster right away;
the deployment status is then refreshed in the background.
"""
import logging
from typing import Callable, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from deployhub.db.models import Cluster, Deployment, Organization, User
from deployhub.dependencies import (
    get_bento_repository_service,
    get_bento_service,
    get_cluster_service,
    get_current_organization,
    get_current_user,
    get_deployment_service,
    get_kube_bento_deployment_service,
    get_kube_client_factory,
    get_session_factory,
)
from deployhub.domain.enums import DeploymentTargetType
from deployhub.domain.errors import ValidationError
from deployhub.schemas.api_schemas import (
    DeploymentCreate,
    DeploymentList,
    DeploymentRevisionSchema,
    DeploymentSchema,
    DeploymentTargetCreate,
    DeploymentUpdate,
)
from deployhub.schemas.transformers import to_deployment_schema, to_revision_schema
from deployhub.services.base import UNSET, parse_label_selectors
from deployhub.services.bentos import BentoService
from deployhub.services.clusters import ClusterService
from deployhub.services.deployments import (
    CreateDeploymentOption,
    CreateDeploymentTargetOption,
    DeploymentService,
    ListDeploymentOption,
)
from deployhub.services.kube_bento_deployment import KubeBentoDeploymentService, sync_deployment_status
from deployhub.services.labels import LabelItem
from deployhub.services.repositories import BentoRepositoryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")


def get_cluster(
    cluster_name: str,
    organization: Organization = Depends(get_current_organization),
    clusters: ClusterService = Depends(get_cluster_service),
) -> Cluster:
    return clusters.get_by_name(organization, cluster_name)


def get_deployment(
    deployment_name: str,
    cluster: Cluster = Depends(get_cluster),
    deployments: DeploymentService = Depends(get_deployment_service),
) -> Deployment:
    return deployments.get_by_name(cluster, deployment_name)


class TargetResolver:
    """Turns target requests into options, resolving bento tags in the organization."""

    def __init__(
        self,
        organization: Organization = Depends(get_current_organization),
        repositories: BentoRepositoryService = Depends(get_bento_repository_service),
        bentos: BentoService = Depends(get_bento_service),
    ):
        self.organization = organization
        self.repositories = repositories
        self.bentos = bentos

    def __call__(self, targets: List[DeploymentTargetCreate]) -> List[CreateDeploymentTargetOption]:
        options = []
        for target in targets:
            try:
                target_type = DeploymentTargetType(target.type)
            except ValueError as e:
                raise ValidationError(f"Unknown deployment target type '{target.type}'") from e
            repository = self.repositories.get_by_name(self.organization, target.bento_repository)
            options.append(CreateDeploymentTargetOption(
                bento=self.bentos.get_by_version(repository.id, target.bento),
                type=target_type,
                config=target.config.model_dump(),
            ))
        return options


def _to_schema(deployment: Deployment, deployments: DeploymentService) -> DeploymentSchema:
    return to_deployment_schema(
        deployment,
        deployments.get_kube_namespace(deployment),
        deployments.list_labels(deployment),
    )


def _deploy(
    deployment: Deployment,
    kube_deployments: KubeBentoDeploymentService,
    background_tasks: BackgroundTasks,
    session_factory: Callable[[], Session],
    kube_client_factory,
) -> None:
    kube_deployments.deploy_active_targets(deployment)
    background_tasks.add_task(sync_deployment_status, session_factory, deployment.id, kube_client_factory)


@router.get("/deployments", response_model=DeploymentList)
def list_organization_deployments(
    start: int = Query(0, ge=0),
    count: int = Query(20, ge=1, le=1000),
    search: Optional[str] = None,
    labels: List[str] = Query([]),
    statuses: Optional[List[str]] = Query(None),
    order: Optional[str] = None,
    organization: Organization = Depends(get_current_organization),
    deployments: DeploymentService = Depends(get_deployment_service),
):
    """List deployments across all clusters of the organization."""
    items, total = deployments.list(ListDeploymentOption(
        start=start,
        count=count,
        search=search,
        label_selectors=parse_label_selectors(labels),
        organization_id=organization.id,
        statuses=statuses,
        order=order,
    ))
    return DeploymentList(
        start=start,
        count=len(items),
        total=total,
        items=[_to_schema(deployment, deployments) for deployment in items],
    )


@router.get("/clusters/{cluster_name}/deployments", response_model=DeploymentList)
def list_deployments(
    start: int = Query(0, ge=0),
    count: int = Query(20, ge=1, le=1000),
    search: Optional[str] = None,
    labels: List[str] = Query([]),
    statuses: Optional[List[str]] = Query(None),
    order: Optional[str] = None,
    cluster: Cluster = Depends(get_cluster),
    deployments: DeploymentService = Depends(get_deployment_service),
):
    items, total = deployments.list(ListDeploymentOption(
        start=start,
        count=count,
        search=search,
        label_selectors=parse_label_selectors(labels),
        cluster_id=cluster.id,
        statuses=statuses,
        order=order,
    ))
    return DeploymentList(
        start=start,
        count=len(items),
        total=total,
        items=[_to_schema(deployment, deployments) for deployment in items],
    )


@router.post("/clusters/{cluster_name}/deployments", response_model=DeploymentSchema, status_code=201)
def create_deployment(
    body: DeploymentCreate,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    cluster: Cluster = Depends(get_cluster),
    resolve_targets: TargetResolver = Depends(TargetResolver),
    deployments: DeploymentService = Depends(get_deployment_service),
    kube_deployments: KubeBentoDeploymentService = Depends(get_kube_bento_deployment_service),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    kube_client_factory=Depends(get_kube_client_factory),
):
    deployment = deployments.create(CreateDeploymentOption(
        cluster=cluster,
        name=body.name,
        targets=resolve_targets(body.targets),
        description=body.description,
        kube_namespace=body.kube_namespace,
        creator=user,
        labels=[LabelItem(key=label.key, value=label.value) for label in body.labels],
    ))
    if not body.do_not_deploy:
        _deploy(deployment, kube_deployments, background_tasks, session_factory, kube_client_factory)
    return _to_schema(deployment, deployments)


@router.get("/clusters/{cluster_name}/deployments/{deployment_name}", response_model=DeploymentSchema)
def get_deployment_detail(
    deployment: Deployment = Depends(get_deployment),
    deployments: DeploymentService = Depends(get_deployment_service),
):
    return _to_schema(deployment, deployments)


@router.patch("/clusters/{cluster_name}/deployments/{deployment_name}", response_model=DeploymentSchema)
def update_deployment(
    body: DeploymentUpdate,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    deployment: Deployment = Depends(get_deployment),
    resolve_targets: TargetResolver = Depends(TargetResolver),
    deployments: DeploymentService = Depends(get_deployment_service),
    kube_deployments: KubeBentoDeploymentService = Depends(get_kube_bento_deployment_service),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    kube_client_factory=Depends(get_kube_client_factory),
):
    """
    Update a deployment; new targets start a new revision and are deployed.
    """
    passed = body.model_fields_set
    targets = UNSET
    if body.targets is not None:
        targets = resolve_targets(body.targets)
    labels = UNSET
    if "labels" in passed:
        labels = [LabelItem(key=label.key, value=label.value) for label in body.labels or []]
    deployment = deployments.update(
        deployment,
        description=body.description if "description" in passed else UNSET,
        targets=targets,
        labels=labels,
        creator=user,
    )
    if targets is not UNSET and not body.do_not_deploy:
        _deploy(deployment, kube_deployments, background_tasks, session_factory, kube_client_factory)
    return _to_schema(deployment, deployments)


@router.post("/clusters/{cluster_name}/deployments/{deployment_name}/sync_status", response_model=DeploymentSchema)
def sync_deployment(
    deployment: Deployment = Depends(get_deployment),
    deployments: DeploymentService = Depends(get_deployment_service),
):
    return _to_schema(deployments.sync_status(deployment), deployments)


@router.post("/clusters/{cluster_name}/deployments/{deployment_name}/terminate", response_model=DeploymentSchema)
def terminate_deployment(
    background_tasks: BackgroundTasks,
    deployment: Deployment = Depends(get_deployment),
    deployments: DeploymentService = Depends(get_deployment_service),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    kube_client_factory=Depends(get_kube_client_factory),
):
    deployment = deployments.terminate(deployment)
    background_tasks.add_task(sync_deployment_status, session_factory, deployment.id, kube_client_factory)
    return _to_schema(deployment, deployments)


@router.get(
    "/clusters/{cluster_name}/deployments/{deployment_name}/revisions",
    response_model=List[DeploymentRevisionSchema],
)
def list_deployment_revisions(
    deployment: Deployment = Depends(get_deployment),
    deployments: DeploymentService = Depends(get_deployment_service),
):
    return [to_revision_schema(revision) for revision in deployments.list_revisions(deployment)]
