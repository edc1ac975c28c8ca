from __future__ import annotations

import datetime
import hashlib
import secrets
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from deployhub.db.database import transaction
from deployhub.db.models import ApiToken, Organization, User, utcnow
from deployhub.domain.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from deployhub.domain.events import event_publisher, ApiTokenCreated
from deployhub.services.base import UNSET

TOKEN_PREFIX = "dh_"
AVAILABLE_SCOPES = ("api", "read_organization", "write_organization", "read_cluster", "write_cluster")


def hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


@dataclass
class UpdateApiTokenOption:
    description: object = UNSET
    scopes: object = UNSET
    expired_at: object = UNSET


@dataclass
class CreateApiTokenOption:
    name: str
    description: str = ""
    scopes: List[str] = field(default_factory=lambda: ["api"])
    expired_at: Optional[datetime.datetime] = None


class ApiTokenService:
    """Personal API tokens; the raw token is only returned by ``create``."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self, user: User, organization: Optional[Organization], opt: CreateApiTokenOption
    ) -> Tuple[ApiToken, str]:
        name = (opt.name or "").strip()
        if not name:
            raise ValidationError("API token name is required")
        _check_scopes(opt.scopes)
        if opt.expired_at is not None and opt.expired_at < utcnow():
            raise ValidationError("API token expiry must be in the future")
        exists = self.db.query(ApiToken).filter(ApiToken.user_id == user.id, ApiToken.name == name).first()
        if exists:
            raise ConflictError(f"API token with name '{name}' already exists")

        raw_token = TOKEN_PREFIX + secrets.token_urlsafe(32)
        api_token = ApiToken(
            name=name,
            description=opt.description,
            user_id=user.id,
            organization_id=organization.id if organization else None,
            token_hash=hash_token(raw_token),
            scopes=list(opt.scopes),
            expired_at=opt.expired_at,
        )
        with transaction(self.db):
            self.db.add(api_token)

        event_publisher.publish(ApiTokenCreated(
            event_id="",
            timestamp=None,
            aggregate_id=api_token.uid,
            user=user.name,
            name=name,
        ))
        return api_token, raw_token

    def list(self, user: User) -> List[ApiToken]:
        return self.db.query(ApiToken).filter(ApiToken.user_id == user.id).order_by(ApiToken.id.desc()).all()

    def get_by_uid(self, user: User, uid: str) -> ApiToken:
        api_token = (
            self.db.query(ApiToken)
            .filter(ApiToken.user_id == user.id, ApiToken.uid == uid)
            .first()
        )
        if not api_token:
            raise NotFoundError(f"API token not found: {uid}")
        return api_token

    def update(self, api_token: ApiToken, opt: UpdateApiTokenOption) -> ApiToken:
        with transaction(self.db):
            if opt.description is not UNSET:
                api_token.description = opt.description or ""
            if opt.scopes is not UNSET:
                _check_scopes(opt.scopes)
                api_token.scopes = list(opt.scopes)
            if opt.expired_at is not UNSET:
                api_token.expired_at = opt.expired_at
        return api_token

    def delete(self, api_token: ApiToken) -> None:
        with transaction(self.db):
            self.db.delete(api_token)

    def authenticate(self, raw_token: str) -> ApiToken:
        """
        Resolve a raw token presented by a client.

        Raises:
            UnauthorizedError: unknown or expired token
        """
        if not raw_token:
            raise UnauthorizedError("API token is required")
        api_token = self.db.query(ApiToken).filter(ApiToken.token_hash == hash_token(raw_token)).first()
        if not api_token:
            raise UnauthorizedError("Invalid API token")
        if api_token.is_expired:
            raise UnauthorizedError(f"API token '{api_token.name}' has expired")
        with transaction(self.db):
            api_token.last_used_at = utcnow()
        return api_token


def _check_scopes(scopes) -> None:
    unknown = [scope for scope in scopes or [] if scope not in AVAILABLE_SCOPES]
    if unknown:
        raise ValidationError(f"Unknown API token scopes: {', '.join(unknown)}")
