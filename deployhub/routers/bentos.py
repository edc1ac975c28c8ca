"""
Bento repository and bento endpoints.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi import Path as FastAPIPath

from deployhub.db.models import Bento, Organization, User
from deployhub.dependencies import (
    get_current_organization,
    get_current_user,
    get_bento_repository_service,
    get_bento_service,
)
from deployhub.domain.enums import ImageBuildStatus
from deployhub.domain.errors import ValidationError
from deployhub.routers.artifact_transfers import add_transfer_routes
from deployhub.schemas.api_schemas import (
    ArtifactUpdate,
    BentoCreate,
    BentoList,
    BentoSchema,
    RepositoryCreate,
    RepositoryList,
    RepositorySchema,
    RepositoryUpdate,
)
from deployhub.schemas.transformers import to_bento_schema, to_repository_schema
from deployhub.services.artifacts import UpdateArtifactOption
from deployhub.services.base import UNSET, parse_label_selectors
from deployhub.services.labels import LabelItem
from deployhub.services.bentos import CreateBentoOption, ListBentoOption, BentoService
from deployhub.services.repositories import ListRepositoryOption, BentoRepositoryService

router = APIRouter(prefix="/api/v1")


def get_bento_repository(
    repository_name: str = FastAPIPath(..., title="Name of the bento repository"),
    organization: Organization = Depends(get_current_organization),
    repositories: BentoRepositoryService = Depends(get_bento_repository_service),
):
    return repositories.get_by_name(organization, repository_name)


def get_bento(
    version: str = FastAPIPath(..., title="Version of the bento"),
    repository=Depends(get_bento_repository),
    bentos: BentoService = Depends(get_bento_service),
) -> Bento:
    return bentos.get_by_version(repository.id, version)


def _bento_list(bentos: BentoService, items: List[Bento], total: int, start: int) -> BentoList:
    labels = bentos.list_labels_by_artifacts(items)
    return BentoList(
        start=start,
        count=len(items),
        total=total,
        items=[to_bento_schema(bento, labels.get(bento.id)) for bento in items],
    )


# --------------- Repositories ---------------
@router.get("/bento_repositories", response_model=RepositoryList)
def list_bento_repositories(
    start: int = Query(0, ge=0),
    count: int = Query(20, ge=1, le=1000),
    search: Optional[str] = None,
    labels: List[str] = Query([], description="Label selectors: key, !key, key=a|b, key!=a|b"),
    organization: Organization = Depends(get_current_organization),
    repositories: BentoRepositoryService = Depends(get_bento_repository_service),
    bentos: BentoService = Depends(get_bento_service),
):
    items, total = repositories.list(ListRepositoryOption(
        start=start,
        count=count,
        search=search,
        label_selectors=parse_label_selectors(labels),
        organization_id=organization.id,
    ))
    latest = {
        bento.bento_repository_id: bento
        for bento in bentos.list_latest_by_repository_ids([repository.id for repository in items])
    }
    return RepositoryList(
        start=start,
        count=len(items),
        total=total,
        items=[
            to_repository_schema(repository, repositories.list_labels(repository), latest.get(repository.id))
            for repository in items
        ],
    )


@router.post("/bento_repositories", response_model=RepositorySchema, status_code=201)
def create_bento_repository(
    body: RepositoryCreate,
    user: User = Depends(get_current_user),
    organization: Organization = Depends(get_current_organization),
    repositories: BentoRepositoryService = Depends(get_bento_repository_service),
):
    repository = repositories.create(
        organization,
        body.name,
        description=body.description,
        creator=user,
        labels=[LabelItem(key=label.key, value=label.value) for label in body.labels],
    )
    return to_repository_schema(repository, repositories.list_labels(repository))


@router.get("/bento_repositories/{repository_name}", response_model=RepositorySchema)
def get_bento_repository_detail(
    repository=Depends(get_bento_repository),
    repositories: BentoRepositoryService = Depends(get_bento_repository_service),
    bentos: BentoService = Depends(get_bento_service),
):
    latest = bentos.list_latest_by_repository_ids([repository.id])
    return to_repository_schema(repository, repositories.list_labels(repository), latest[0] if latest else None)


@router.patch("/bento_repositories/{repository_name}", response_model=RepositorySchema)
def update_bento_repository(
    body: RepositoryUpdate,
    user: User = Depends(get_current_user),
    repository=Depends(get_bento_repository),
    repositories: BentoRepositoryService = Depends(get_bento_repository_service),
):
    passed = body.model_fields_set
    labels = UNSET
    if "labels" in passed:
        labels = [LabelItem(key=label.key, value=label.value) for label in body.labels or []]
    repository = repositories.update(
        repository,
        description=body.description if "description" in passed else UNSET,
        labels=labels,
        creator_id=user.id,
    )
    return to_repository_schema(repository, repositories.list_labels(repository))


# --------------- Bentos ---------------
@router.get("/bentos", response_model=BentoList)
def list_bentos(
    start: int = Query(0, ge=0),
    count: int = Query(20, ge=1, le=1000),
    search: Optional[str] = None,
    labels: List[str] = Query([]),
    versions: Optional[List[str]] = Query(None),
    order: Optional[str] = Query(None, description="'<column> asc|desc'"),
    organization: Organization = Depends(get_current_organization),
    bentos: BentoService = Depends(get_bento_service),
):
    """List bentos across all repositories of the organization."""
    items, total = bentos.list(ListBentoOption(
        start=start,
        count=count,
        search=search,
        label_selectors=parse_label_selectors(labels),
        organization_id=organization.id,
        versions=versions,
        order=order,
    ))
    return _bento_list(bentos, items, total, start)


@router.get("/bento_repositories/{repository_name}/bentos", response_model=BentoList)
def list_repository_bentos(
    start: int = Query(0, ge=0),
    count: int = Query(20, ge=1, le=1000),
    search: Optional[str] = None,
    labels: List[str] = Query([]),
    order: Optional[str] = None,
    repository=Depends(get_bento_repository),
    bentos: BentoService = Depends(get_bento_service),
):
    items, total = bentos.list(ListBentoOption(
        start=start,
        count=count,
        search=search,
        label_selectors=parse_label_selectors(labels),
        bento_repository_id=repository.id,
        order=order,
    ))
    return _bento_list(bentos, items, total, start)


@router.post("/bento_repositories/{repository_name}/bentos", response_model=BentoSchema, status_code=201)
def create_bento(
    body: BentoCreate,
    user: User = Depends(get_current_user),
    repository=Depends(get_bento_repository),
    bentos: BentoService = Depends(get_bento_service),
):
    bento = bentos.create(CreateBentoOption(
        bento_repository=repository,
        version=body.version,
        creator=user,
        description=body.description,
        build_at=body.build_at,
        manifest=body.manifest,
        labels=[LabelItem(key=label.key, value=label.value) for label in body.labels],
        model_tags=body.models,
    ))
    return to_bento_schema(bento, bentos.list_labels(bento))


@router.get("/bento_repositories/{repository_name}/bentos/{version}", response_model=BentoSchema)
def get_bento_detail(
    bento: Bento = Depends(get_bento),
    bentos: BentoService = Depends(get_bento_service),
):
    return to_bento_schema(bento, bentos.list_labels(bento))


@router.patch("/bento_repositories/{repository_name}/bentos/{version}", response_model=BentoSchema)
def update_bento(
    body: ArtifactUpdate,
    user: User = Depends(get_current_user),
    bento: Bento = Depends(get_bento),
    bentos: BentoService = Depends(get_bento_service),
):
    opt = UpdateArtifactOption()
    if body.image_build_status is not None:
        try:
            opt.image_build_status = ImageBuildStatus(body.image_build_status)
        except ValueError as e:
            raise ValidationError(f"Unknown image build status '{body.image_build_status}'") from e
    if "labels" in body.model_fields_set:
        opt.labels = [LabelItem(key=label.key, value=label.value) for label in body.labels or []]
    bento = bentos.update(bento, opt, creator_id=user.id)
    return to_bento_schema(bento, bentos.list_labels(bento))


add_transfer_routes(
    router,
    "/bento_repositories/{repository_name}/bentos/{version}",
    get_bento,
    get_bento_service,
    to_bento_schema,
    BentoSchema,
)
