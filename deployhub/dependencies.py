from __future__ import annotations

from typing import Callable, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from deployhub.config import settings
from deployhub.db.database import SessionLocal, get_db
from deployhub.db.models import ApiToken, Cluster, Organization, User
from deployhub.domain.consts import API_TOKEN_HEADER, ORGANIZATION_HEADER
from deployhub.domain.errors import ForbiddenError, NotFoundError, UnauthorizedError, ValidationError
from deployhub.kube.client import KubeClient
from deployhub.services.api_tokens import ApiTokenService
from deployhub.services.bentos import BentoService
from deployhub.services.clusters import ClusterService, build_kube_client
from deployhub.services.deployments import DeploymentService
from deployhub.services.kube_bento_deployment import KubeBentoDeploymentService
from deployhub.services.labels import LabelService
from deployhub.services.models import ModelService
from deployhub.services.organizations import OrganizationService
from deployhub.services.repositories import BentoRepositoryService, ModelRepositoryService
from deployhub.services.users import UserService
from deployhub.storage.interface import ObjectStorage
from deployhub.storage.s3 import S3Config, S3Storage


# Factories for outside systems, overridden in tests
def get_storage_factory() -> Callable[[S3Config], ObjectStorage]:
    return S3Storage


def get_kube_client_factory() -> Callable[[Cluster], KubeClient]:
    return build_kube_client


def get_session_factory() -> Callable[[], Session]:
    """Sessions for work that outlives the request, like background status syncs."""
    return SessionLocal


def get_user_service(db: Session = Depends(get_db)) -> UserService:
    return UserService(db)


def get_api_token_service(db: Session = Depends(get_db)) -> ApiTokenService:
    return ApiTokenService(db)


def get_organization_service(db: Session = Depends(get_db)) -> OrganizationService:
    return OrganizationService(db)


def get_cluster_service(
    db: Session = Depends(get_db),
    kube_client_factory: Callable[[Cluster], KubeClient] = Depends(get_kube_client_factory),
) -> ClusterService:
    return ClusterService(db, kube_client_factory)


def get_label_service(db: Session = Depends(get_db)) -> LabelService:
    return LabelService(db)


def get_model_repository_service(db: Session = Depends(get_db)) -> ModelRepositoryService:
    return ModelRepositoryService(db)


def get_bento_repository_service(db: Session = Depends(get_db)) -> BentoRepositoryService:
    return BentoRepositoryService(db)


def get_model_service(
    db: Session = Depends(get_db),
    clusters: ClusterService = Depends(get_cluster_service),
    storage_factory: Callable[[S3Config], ObjectStorage] = Depends(get_storage_factory),
) -> ModelService:
    return ModelService(db, clusters=clusters, storage_factory=storage_factory)


def get_bento_service(
    db: Session = Depends(get_db),
    clusters: ClusterService = Depends(get_cluster_service),
    storage_factory: Callable[[S3Config], ObjectStorage] = Depends(get_storage_factory),
) -> BentoService:
    return BentoService(db, clusters=clusters, storage_factory=storage_factory)


def get_deployment_service(
    db: Session = Depends(get_db),
    clusters: ClusterService = Depends(get_cluster_service),
) -> DeploymentService:
    return DeploymentService(db, clusters=clusters)


def get_kube_bento_deployment_service(
    db: Session = Depends(get_db),
    deployments: DeploymentService = Depends(get_deployment_service),
    bentos: BentoService = Depends(get_bento_service),
) -> KubeBentoDeploymentService:
    return KubeBentoDeploymentService(db, deployments=deployments, bentos=bentos)


def get_current_api_token(
    api_token: Optional[str] = Header(None, alias=API_TOKEN_HEADER),
    tokens: ApiTokenService = Depends(get_api_token_service),
) -> Optional[ApiToken]:
    if not api_token:
        return None
    return tokens.authenticate(api_token)


def get_current_user(
    request: Request,
    api_token: Optional[ApiToken] = Depends(get_current_api_token),
    users: UserService = Depends(get_user_service),
) -> User:
    """The caller, from the API token header or else the username cookie."""
    if api_token is not None:
        return api_token.user
    username = request.cookies.get(settings.USERNAME_COOKIE_NAME)
    if not username:
        raise UnauthorizedError("Authentication required")
    try:
        return users.get_by_name(username)
    except NotFoundError as e:
        raise UnauthorizedError(f"Unknown user: {username}") from e


def get_requested_organization(
    organization_name: Optional[str] = Header(None, alias=ORGANIZATION_HEADER),
    api_token: Optional[ApiToken] = Depends(get_current_api_token),
    user: User = Depends(get_current_user),
    organizations: OrganizationService = Depends(get_organization_service),
) -> Optional[Organization]:
    """
    The organization named by the X-Organization header, else the token's.

    A header naming another organization than the token's is only honored
    for admins and the organization's creator.
    """
    token_organization = api_token.organization if api_token is not None else None
    if not organization_name:
        return token_organization
    organization = organizations.get_by_name(organization_name)
    if token_organization is not None and token_organization.id == organization.id:
        return organization
    if user.is_admin or organization.creator_id == user.id:
        return organization
    raise ForbiddenError(f"No access to organization {organization_name}")


def get_current_organization(
    organization: Optional[Organization] = Depends(get_requested_organization),
) -> Organization:
    if organization is None:
        raise ValidationError(f"{ORGANIZATION_HEADER} header is required")
    return organization
