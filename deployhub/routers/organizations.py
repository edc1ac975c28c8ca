"""
Organization endpoints.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from deployhub.db.models import Organization, User
from deployhub.dependencies import get_current_organization, get_current_user, get_organization_service
from deployhub.domain.errors import ForbiddenError
from deployhub.schemas.api_schemas import (
    OrganizationCreate,
    OrganizationFullSchema,
    OrganizationList,
    OrganizationSchema,
    OrganizationUpdate,
)
from deployhub.services.base import UNSET, BaseListOption
from deployhub.services.organizations import OrganizationService

router = APIRouter(prefix="/api/v1")


@router.get("/orgs", response_model=OrganizationList)
def list_organizations(
    start: int = Query(0, ge=0),
    count: int = Query(20, ge=1, le=1000),
    search: Optional[str] = None,
    _: User = Depends(get_current_user),
    organizations: OrganizationService = Depends(get_organization_service),
):
    items, total = organizations.list(BaseListOption(start=start, count=count, search=search))
    return OrganizationList(
        start=start,
        count=len(items),
        total=total,
        items=[OrganizationSchema.model_validate(org) for org in items],
    )


@router.post("/orgs", response_model=OrganizationFullSchema, status_code=201)
def create_organization(
    body: OrganizationCreate,
    user: User = Depends(get_current_user),
    organizations: OrganizationService = Depends(get_organization_service),
):
    if not user.is_admin:
        raise ForbiddenError("Only admins can create organizations")
    org = organizations.create(body.name, description=body.description, config=body.config, creator=user)
    return OrganizationFullSchema.model_validate(org)


@router.get("/current_org", response_model=OrganizationFullSchema)
def get_current_org(organization: Organization = Depends(get_current_organization)):
    return OrganizationFullSchema.model_validate(organization)


@router.patch("/current_org", response_model=OrganizationFullSchema)
def update_current_org(
    body: OrganizationUpdate,
    user: User = Depends(get_current_user),
    organization: Organization = Depends(get_current_organization),
    organizations: OrganizationService = Depends(get_organization_service),
):
    if not user.is_admin and organization.creator_id != user.id:
        raise ForbiddenError("Only admins and the creator can change an organization")
    passed = body.model_fields_set
    org = organizations.update(
        organization,
        description=body.description if "description" in passed else UNSET,
        config=body.config if "config" in passed else UNSET,
    )
    return OrganizationFullSchema.model_validate(org)
