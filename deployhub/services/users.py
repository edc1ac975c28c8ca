from __future__ import annotations

from typing import List, Optional

from sqlalchemy.orm import Session

from deployhub.application.name_validation import validate_name
from deployhub.db.database import transaction
from deployhub.db.models import User
from deployhub.domain.errors import ConflictError, NotFoundError


class UserService:
    """User accounts."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        name: str,
        email: Optional[str] = None,
        first_name: str = "",
        last_name: str = "",
        is_admin: bool = False,
    ) -> User:
        name = validate_name(name, "User")
        if self.db.query(User).filter(User.name == name).first():
            raise ConflictError(f"User with name '{name}' already exists")

        user = User(name=name, email=email, first_name=first_name, last_name=last_name, is_admin=is_admin)
        with transaction(self.db):
            self.db.add(user)
        return user

    def get(self, user_id: int) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError(f"User not found: {user_id}")
        return user

    def get_by_name(self, name: str) -> User:
        user = self.db.query(User).filter(User.name == name).first()
        if not user:
            raise NotFoundError(f"User not found: {name}")
        return user

    def list(self) -> List[User]:
        return self.db.query(User).order_by(User.id).all()

    def count(self) -> int:
        return self.db.query(User).count()
