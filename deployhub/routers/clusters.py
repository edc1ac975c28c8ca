"""
Cluster endpoints, scoped to the current organization.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from deployhub.db.models import Organization, User
from deployhub.dependencies import get_cluster_service, get_current_organization, get_current_user
from deployhub.schemas.api_schemas import (
    ClusterCreate,
    ClusterFullSchema,
    ClusterList,
    ClusterSchema,
    ClusterUpdate,
)
from deployhub.services.base import UNSET, BaseListOption
from deployhub.services.clusters import ClusterService

router = APIRouter(prefix="/api/v1/clusters")


@router.get("", response_model=ClusterList)
def list_clusters(
    start: int = Query(0, ge=0),
    count: int = Query(20, ge=1, le=1000),
    search: Optional[str] = None,
    organization: Organization = Depends(get_current_organization),
    clusters: ClusterService = Depends(get_cluster_service),
):
    items, total = clusters.list(organization, BaseListOption(start=start, count=count, search=search))
    return ClusterList(
        start=start,
        count=len(items),
        total=total,
        items=[ClusterSchema.model_validate(cluster) for cluster in items],
    )


@router.post("", response_model=ClusterFullSchema, status_code=201)
def create_cluster(
    body: ClusterCreate,
    user: User = Depends(get_current_user),
    organization: Organization = Depends(get_current_organization),
    clusters: ClusterService = Depends(get_cluster_service),
):
    cluster = clusters.create(
        organization,
        body.name,
        description=body.description,
        kube_config=body.kube_config,
        config=body.config,
        creator=user,
    )
    return ClusterFullSchema.model_validate(cluster)


@router.get("/{cluster_name}", response_model=ClusterFullSchema)
def get_cluster(
    cluster_name: str,
    organization: Organization = Depends(get_current_organization),
    clusters: ClusterService = Depends(get_cluster_service),
):
    return ClusterFullSchema.model_validate(clusters.get_by_name(organization, cluster_name))


@router.patch("/{cluster_name}", response_model=ClusterFullSchema)
def update_cluster(
    cluster_name: str,
    body: ClusterUpdate,
    organization: Organization = Depends(get_current_organization),
    clusters: ClusterService = Depends(get_cluster_service),
):
    passed = body.model_fields_set
    cluster = clusters.update(
        clusters.get_by_name(organization, cluster_name),
        description=body.description if "description" in passed else UNSET,
        kube_config=body.kube_config if "kube_config" in passed else UNSET,
        config=body.config if "config" in passed else UNSET,
    )
    return ClusterFullSchema.model_validate(cluster)
