from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from deployhub.application.name_validation import validate_name
from deployhub.config import settings
from deployhub.db.database import transaction
from deployhub.db.models import Cluster, Organization, User
from deployhub.domain.consts import S3_CREDENTIAL_KEYS, SECRET_MASK
from deployhub.domain.errors import ConflictError, NotFoundError, ValidationError
from deployhub.services.base import UNSET, BaseListOption, apply_keywords, apply_limit
from deployhub.storage.s3 import S3Config

_S3_CONFIG_KEYS = {
    "endpoint", "endpoint_in_cluster", "access_key", "secret_key", "region", "secure",
    "models_bucket_name", "bentos_bucket_name",
}


class OrganizationService:
    """Organizations own clusters, repositories and their S3 settings."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        name: str,
        description: str = "",
        config: Optional[Dict[str, Any]] = None,
        creator: Optional[User] = None,
    ) -> Organization:
        name = validate_name(name, "Organization")
        if self.db.query(Organization).filter(Organization.name == name).first():
            raise ConflictError(f"Organization with name '{name}' already exists")
        _check_config(config)

        org = Organization(
            name=name,
            description=description or "",
            config=config or {},
            creator_id=creator.id if creator else None,
        )
        with transaction(self.db):
            self.db.add(org)
        return org

    def get(self, org_id: int) -> Organization:
        org = self.db.query(Organization).filter(Organization.id == org_id).first()
        if not org:
            raise NotFoundError(f"Organization not found: {org_id}")
        return org

    def get_by_uid(self, uid: str) -> Organization:
        org = self.db.query(Organization).filter(Organization.uid == uid).first()
        if not org:
            raise NotFoundError(f"Organization not found: {uid}")
        return org

    def get_by_name(self, name: str) -> Organization:
        org = self.db.query(Organization).filter(Organization.name == name).first()
        if not org:
            raise NotFoundError(f"Organization not found: {name}")
        return org

    def list(self, opt: Optional[BaseListOption] = None) -> Tuple[List[Organization], int]:
        opt = opt or BaseListOption()
        query = apply_keywords(self.db.query(Organization), opt.search, Organization.name)
        total = query.count()
        items = apply_limit(query.order_by(Organization.id), opt).all()
        return items, total

    def update(self, org: Organization, description=UNSET, config=UNSET) -> Organization:
        with transaction(self.db):
            if description is not UNSET:
                org.description = description or ""
            if config is not UNSET:
                _check_config(config)
                # Reassign so the JSON column is flagged dirty
                org.config = _keep_masked_credentials(dict(config or {}), org.config or {})
        return org

    def get_s3_config(self, org: Organization) -> S3Config:
        """Organization S3 settings layered over the global defaults."""
        s3 = dict((org.config or {}).get("s3") or {})
        return S3Config(
            endpoint=s3.get("endpoint") or settings.S3_ENDPOINT,
            endpoint_in_cluster=s3.get("endpoint_in_cluster") or settings.S3_ENDPOINT_IN_CLUSTER,
            access_key=s3.get("access_key") or settings.S3_ACCESS_KEY,
            secret_key=s3.get("secret_key") or settings.S3_SECRET_KEY,
            region=s3.get("region") or settings.S3_REGION,
            secure=s3.get("secure", settings.S3_SECURE),
            models_bucket_name=s3.get("models_bucket_name") or settings.S3_MODELS_BUCKET,
            bentos_bucket_name=s3.get("bentos_bucket_name") or settings.S3_BENTOS_BUCKET,
        )

    def get_associated_organization(self, resource) -> Organization:
        """Organization owning a cluster, repository, artifact or deployment."""
        if isinstance(resource, Organization):
            return resource
        organization_id = getattr(resource, "organization_id", None)
        if organization_id is not None:
            return self.get(organization_id)
        for parent_attr in ("cluster", "model_repository", "bento_repository"):
            parent = getattr(resource, parent_attr, None)
            if parent is not None:
                return self.get_associated_organization(parent)
        raise ValidationError(f"{type(resource).__name__} is not owned by an organization")

    def get_major_cluster(self, org: Organization) -> Cluster:
        """The organization's oldest cluster, where org-wide workloads run."""
        cluster = (
            self.db.query(Cluster)
            .filter(Cluster.organization_id == org.id)
            .order_by(Cluster.id.asc())
            .first()
        )
        if not cluster:
            raise NotFoundError(f"Organization {org.name} has no cluster")
        return cluster


def _check_config(config: Optional[Dict[str, Any]]) -> None:
    if not config:
        return
    s3 = config.get("s3")
    if s3 is None:
        return
    if not isinstance(s3, dict):
        raise ValidationError("Organization config 's3' must be an object")
    unknown = set(s3) - _S3_CONFIG_KEYS
    if unknown:
        raise ValidationError(f"Unknown S3 config keys: {', '.join(sorted(unknown))}")


def _keep_masked_credentials(config: Dict[str, Any], current: Dict[str, Any]) -> Dict[str, Any]:
    """Credentials sent back as the response mask keep their stored value."""
    s3 = config.get("s3")
    if not isinstance(s3, dict):
        return config
    current_s3 = current.get("s3") or {}
    s3 = dict(s3)
    for key in S3_CREDENTIAL_KEYS:
        if s3.get(key) == SECRET_MASK:
            s3[key] = current_s3.get(key, "")
    config["s3"] = s3
    return config
