"""
Personal API tokens of the current user.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends

from deployhub.db.models import Organization, User
from deployhub.dependencies import get_api_token_service, get_current_user, get_requested_organization
from deployhub.schemas.api_schemas import ApiTokenCreate, ApiTokenCreated, ApiTokenSchema, ApiTokenUpdate
from deployhub.services.api_tokens import ApiTokenService, CreateApiTokenOption, UpdateApiTokenOption
from deployhub.services.base import UNSET

router = APIRouter(prefix="/api/v1/current/api_tokens")


@router.get("", response_model=List[ApiTokenSchema])
def list_api_tokens(
    user: User = Depends(get_current_user),
    tokens: ApiTokenService = Depends(get_api_token_service),
):
    return [ApiTokenSchema.model_validate(token) for token in tokens.list(user)]


@router.post("", response_model=ApiTokenCreated, status_code=201)
def create_api_token(
    body: ApiTokenCreate,
    user: User = Depends(get_current_user),
    tokens: ApiTokenService = Depends(get_api_token_service),
    organization: Optional[Organization] = Depends(get_requested_organization),
):
    """
    Issue a token. The raw token is only part of this response.
    """
    api_token, raw_token = tokens.create(user, organization, CreateApiTokenOption(
        name=body.name,
        description=body.description,
        scopes=body.scopes,
        expired_at=body.expired_at,
    ))
    return ApiTokenCreated(**ApiTokenSchema.model_validate(api_token).model_dump(), token=raw_token)


@router.get("/{uid}", response_model=ApiTokenSchema)
def get_api_token(
    uid: str,
    user: User = Depends(get_current_user),
    tokens: ApiTokenService = Depends(get_api_token_service),
):
    return ApiTokenSchema.model_validate(tokens.get_by_uid(user, uid))


@router.patch("/{uid}", response_model=ApiTokenSchema)
def update_api_token(
    uid: str,
    body: ApiTokenUpdate,
    user: User = Depends(get_current_user),
    tokens: ApiTokenService = Depends(get_api_token_service),
):
    passed = body.model_fields_set
    api_token = tokens.update(tokens.get_by_uid(user, uid), UpdateApiTokenOption(
        description=body.description if "description" in passed else UNSET,
        scopes=body.scopes if "scopes" in passed else UNSET,
        expired_at=body.expired_at if "expired_at" in passed else UNSET,
    ))
    return ApiTokenSchema.model_validate(api_token)


@router.delete("/{uid}")
def delete_api_token(
    uid: str,
    user: User = Depends(get_current_user),
    tokens: ApiTokenService = Depends(get_api_token_service),
):
    tokens.delete(tokens.get_by_uid(user, uid))
    return {"success": True, "uid": uid}
