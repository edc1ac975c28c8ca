"""
Model repository and model endpoints.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi import Path as FastAPIPath

from deployhub.db.models import Model, Organization, User
from deployhub.dependencies import (
    get_current_organization,
    get_current_user,
    get_model_repository_service,
    get_model_service,
)
from deployhub.domain.enums import ImageBuildStatus
from deployhub.domain.errors import ValidationError
from deployhub.routers.artifact_transfers import add_transfer_routes
from deployhub.schemas.api_schemas import (
    ArtifactUpdate,
    ModelCreate,
    ModelList,
    ModelSchema,
    RepositoryCreate,
    RepositoryList,
    RepositorySchema,
    RepositoryUpdate,
)
from deployhub.schemas.transformers import to_model_schema, to_repository_schema
from deployhub.services.artifacts import UpdateArtifactOption
from deployhub.services.base import UNSET, parse_label_selectors
from deployhub.services.labels import LabelItem
from deployhub.services.models import CreateModelOption, ListModelOption, ModelService
from deployhub.services.repositories import ListRepositoryOption, ModelRepositoryService

router = APIRouter(prefix="/api/v1")


def get_model_repository(
    repository_name: str = FastAPIPath(..., title="Name of the model repository"),
    organization: Organization = Depends(get_current_organization),
    repositories: ModelRepositoryService = Depends(get_model_repository_service),
):
    return repositories.get_by_name(organization, repository_name)


def get_model(
    version: str = FastAPIPath(..., title="Version of the model"),
    repository=Depends(get_model_repository),
    models: ModelService = Depends(get_model_service),
) -> Model:
    return models.get_by_version(repository.id, version)


def _model_list(models: ModelService, items: List[Model], total: int, start: int) -> ModelList:
    labels = models.list_labels_by_artifacts(items)
    return ModelList(
        start=start,
        count=len(items),
        total=total,
        items=[to_model_schema(model, labels.get(model.id)) for model in items],
    )


# --------------- Repositories ---------------
@router.get("/model_repositories", response_model=RepositoryList)
def list_model_repositories(
    start: int = Query(0, ge=0),
    count: int = Query(20, ge=1, le=1000),
    search: Optional[str] = None,
    labels: List[str] = Query([], description="Label selectors: key, !key, key=a|b, key!=a|b"),
    organization: Organization = Depends(get_current_organization),
    repositories: ModelRepositoryService = Depends(get_model_repository_service),
    models: ModelService = Depends(get_model_service),
):
    items, total = repositories.list(ListRepositoryOption(
        start=start,
        count=count,
        search=search,
        label_selectors=parse_label_selectors(labels),
        organization_id=organization.id,
    ))
    latest = {
        model.model_repository_id: model
        for model in models.list_latest_by_repository_ids([repository.id for repository in items])
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


@router.post("/model_repositories", response_model=RepositorySchema, status_code=201)
def create_model_repository(
    body: RepositoryCreate,
    user: User = Depends(get_current_user),
    organization: Organization = Depends(get_current_organization),
    repositories: ModelRepositoryService = Depends(get_model_repository_service),
):
    repository = repositories.create(
        organization,
        body.name,
        description=body.description,
        creator=user,
        labels=[LabelItem(key=label.key, value=label.value) for label in body.labels],
    )
    return to_repository_schema(repository, repositories.list_labels(repository))


@router.get("/model_repositories/{repository_name}", response_model=RepositorySchema)
def get_model_repository_detail(
    repository=Depends(get_model_repository),
    repositories: ModelRepositoryService = Depends(get_model_repository_service),
    models: ModelService = Depends(get_model_service),
):
    latest = models.list_latest_by_repository_ids([repository.id])
    return to_repository_schema(repository, repositories.list_labels(repository), latest[0] if latest else None)


@router.patch("/model_repositories/{repository_name}", response_model=RepositorySchema)
def update_model_repository(
    body: RepositoryUpdate,
    user: User = Depends(get_current_user),
    repository=Depends(get_model_repository),
    repositories: ModelRepositoryService = Depends(get_model_repository_service),
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


# --------------- Models ---------------
@router.get("/models", response_model=ModelList)
def list_models(
    start: int = Query(0, ge=0),
    count: int = Query(20, ge=1, le=1000),
    search: Optional[str] = None,
    labels: List[str] = Query([]),
    modules: Optional[List[str]] = Query(None),
    order: Optional[str] = Query(None, description="'<column> asc|desc'"),
    organization: Organization = Depends(get_current_organization),
    models: ModelService = Depends(get_model_service),
):
    """List models across all repositories of the organization."""
    items, total = models.list(ListModelOption(
        start=start,
        count=count,
        search=search,
        label_selectors=parse_label_selectors(labels),
        organization_id=organization.id,
        modules=modules,
        order=order,
    ))
    return _model_list(models, items, total, start)


@router.get("/models/modules", response_model=List[str])
def list_model_modules(
    organization: Organization = Depends(get_current_organization),
    models: ModelService = Depends(get_model_service),
):
    return models.list_all_modules(organization.id)


@router.get("/model_repositories/{repository_name}/models", response_model=ModelList)
def list_repository_models(
    start: int = Query(0, ge=0),
    count: int = Query(20, ge=1, le=1000),
    search: Optional[str] = None,
    labels: List[str] = Query([]),
    order: Optional[str] = None,
    repository=Depends(get_model_repository),
    models: ModelService = Depends(get_model_service),
):
    items, total = models.list(ListModelOption(
        start=start,
        count=count,
        search=search,
        label_selectors=parse_label_selectors(labels),
        model_repository_id=repository.id,
        order=order,
    ))
    return _model_list(models, items, total, start)


@router.post("/model_repositories/{repository_name}/models", response_model=ModelSchema, status_code=201)
def create_model(
    body: ModelCreate,
    user: User = Depends(get_current_user),
    repository=Depends(get_model_repository),
    models: ModelService = Depends(get_model_service),
):
    model = models.create(CreateModelOption(
        model_repository=repository,
        version=body.version,
        creator=user,
        description=body.description,
        build_at=body.build_at,
        manifest=body.manifest,
        labels=[LabelItem(key=label.key, value=label.value) for label in body.labels],
    ))
    return to_model_schema(model, models.list_labels(model))


@router.get("/model_repositories/{repository_name}/models/{version}", response_model=ModelSchema)
def get_model_detail(
    model: Model = Depends(get_model),
    models: ModelService = Depends(get_model_service),
):
    return to_model_schema(model, models.list_labels(model))


@router.patch("/model_repositories/{repository_name}/models/{version}", response_model=ModelSchema)
def update_model(
    body: ArtifactUpdate,
    user: User = Depends(get_current_user),
    model: Model = Depends(get_model),
    models: ModelService = Depends(get_model_service),
):
    opt = UpdateArtifactOption()
    if body.image_build_status is not None:
        try:
            opt.image_build_status = ImageBuildStatus(body.image_build_status)
        except ValueError as e:
            raise ValidationError(f"Unknown image build status '{body.image_build_status}'") from e
    if "labels" in body.model_fields_set:
        opt.labels = [LabelItem(key=label.key, value=label.value) for label in body.labels or []]
    model = models.update(model, opt, creator_id=user.id)
    return to_model_schema(model, models.list_labels(model))


add_transfer_routes(
    router,
    "/model_repositories/{repository_name}/models/{version}",
    get_model,
    get_model_service,
    to_model_schema,
    ModelSchema,
)
