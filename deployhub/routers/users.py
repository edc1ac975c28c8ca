"""
Setup, current user and user management endpoints.
"""
from typing import List

from fastapi import APIRouter, Depends
from fastapi import Path as FastAPIPath

from deployhub.db.database import transaction
from deployhub.db.models import User
from deployhub.dependencies import (
    get_api_token_service,
    get_current_user,
    get_organization_service,
    get_user_service,
)
from deployhub.domain.errors import ConflictError, ForbiddenError
from deployhub.schemas.api_schemas import SetupRequest, SetupResponse, UserCreate, UserSchema
from deployhub.services.api_tokens import ApiTokenService, CreateApiTokenOption
from deployhub.services.organizations import OrganizationService
from deployhub.services.users import UserService

router = APIRouter(prefix="/api/v1")


@router.post("/setup", response_model=SetupResponse, status_code=201)
def setup(
    body: SetupRequest,
    users: UserService = Depends(get_user_service),
    organizations: OrganizationService = Depends(get_organization_service),
    tokens: ApiTokenService = Depends(get_api_token_service),
):
    """
    Create the first admin user, its organization and an API token.

    Only allowed while no user exists.
    """
    if users.count() > 0:
        raise ConflictError("Setup has already been done")
    with transaction(users.db):
        user = users.create(
            body.name, email=body.email, first_name=body.first_name, last_name=body.last_name, is_admin=True,
        )
        organization = organizations.create(body.organization_name, creator=user)
        _, raw_token = tokens.create(user, organization, CreateApiTokenOption(name="setup"))
    return SetupResponse(
        user=UserSchema.model_validate(user),
        organization_name=organization.name,
        api_token=raw_token,
    )


@router.get("/auth/current", response_model=UserSchema)
def get_current(user: User = Depends(get_current_user)):
    return UserSchema.model_validate(user)


@router.get("/users", response_model=List[UserSchema])
def list_users(
    _: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    return [UserSchema.model_validate(user) for user in users.list()]


@router.post("/users", response_model=UserSchema, status_code=201)
def create_user(
    body: UserCreate,
    current_user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    if not current_user.is_admin:
        raise ForbiddenError("Only admins can create users")
    user = users.create(
        body.name, email=body.email, first_name=body.first_name, last_name=body.last_name, is_admin=body.is_admin,
    )
    return UserSchema.model_validate(user)


@router.get("/users/{user_name}", response_model=UserSchema)
def get_user(
    user_name: str = FastAPIPath(..., title="Login name of the user"),
    _: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    return UserSchema.model_validate(users.get_by_name(user_name))
