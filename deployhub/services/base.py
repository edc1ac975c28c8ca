"""Shared pieces of the service layer: list options, label selectors, sentinels."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import or_, select

from deployhub.db.models import Label
from deployhub.domain.enums import LabelOperator, ResourceType
from deployhub.domain.errors import ValidationError


class _Unset:
    """Marks an update option that was not passed, as opposed to an explicit None."""

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()

_LABEL_KEY_RE = re.compile(r"^[A-Za-z0-9]([-A-Za-z0-9_./]*[A-Za-z0-9])?$")


@dataclass
class LabelSelector:
    key: str
    operator: LabelOperator = LabelOperator.EXISTS
    values: List[str] = field(default_factory=list)

    @classmethod
    def parse(cls, expression: str) -> "LabelSelector":
        """
        Parse one selector expression.

        ``key`` -> Exists, ``!key`` -> DoesNotExist, ``key=a|b`` -> In,
        ``key!=a|b`` -> NotIn.
        """
        expression = expression.strip()
        if not expression:
            raise ValidationError("Empty label selector")
        if expression.startswith("!"):
            return cls(key=_check_key(expression[1:]), operator=LabelOperator.DOES_NOT_EXIST)
        if "!=" in expression:
            key, _, raw = expression.partition("!=")
            return cls(key=_check_key(key), operator=LabelOperator.NOT_IN, values=raw.split("|"))
        if "=" in expression:
            key, _, raw = expression.partition("=")
            return cls(key=_check_key(key), operator=LabelOperator.IN, values=raw.split("|"))
        return cls(key=_check_key(expression), operator=LabelOperator.EXISTS)


def _check_key(key: str) -> str:
    key = key.strip()
    if not _LABEL_KEY_RE.match(key):
        raise ValidationError(f"Invalid label key '{key}'")
    return key


@dataclass
class BaseListOption:
    start: Optional[int] = None
    count: Optional[int] = None
    search: Optional[str] = None
    label_selectors: List[LabelSelector] = field(default_factory=list)


def apply_limit(query, opt: BaseListOption):
    if opt.start:
        query = query.offset(opt.start)
    if opt.count is not None:
        query = query.limit(opt.count)
    return query


def apply_keywords(query, search: Optional[str], *columns):
    """Require every whitespace-separated keyword to match one of the columns."""
    if not search:
        return query
    for keyword in search.split():
        pattern = f"%{keyword}%"
        clauses = [column.ilike(pattern) for column in columns]
        query = query.filter(or_(*clauses))
    return query


def apply_label_selectors(query, selectors: List[LabelSelector], resource_type: ResourceType, id_column):
    """Filter rows of ``resource_type`` whose labels satisfy all selectors."""
    for selector in selectors:
        labelled = select(Label.resource_id).where(
            Label.resource_type == resource_type.value,
            Label.key == selector.key,
        )
        if selector.operator == LabelOperator.IN:
            query = query.filter(id_column.in_(labelled.where(Label.value.in_(selector.values))))
        elif selector.operator == LabelOperator.NOT_IN:
            query = query.filter(~id_column.in_(labelled.where(Label.value.in_(selector.values))))
        elif selector.operator == LabelOperator.EXISTS:
            query = query.filter(id_column.in_(labelled))
        elif selector.operator == LabelOperator.DOES_NOT_EXIST:
            query = query.filter(~id_column.in_(labelled))
    return query


def apply_order(query, order: Optional[str], entity, allowed: List[str], default):
    """
    Order by ``"<column> asc|desc"`` when the column is whitelisted.

    Args:
        default: Clause used when no order is given
    """
    if not order:
        return query.order_by(default)
    column_name, _, direction = order.strip().partition(" ")
    direction = (direction or "asc").strip().lower()
    if column_name not in allowed or direction not in ("asc", "desc"):
        raise ValidationError(f"Unsupported order '{order}'")
    column = getattr(entity, column_name)
    return query.order_by(column.desc() if direction == "desc" else column.asc())


def parse_label_selectors(expressions: Optional[List[str]]) -> List[LabelSelector]:
    """Parse repeated selector query values; each value may hold comma separated selectors."""
    selectors = []
    for expression in expressions or []:
        for part in expression.split(","):
            if part.strip():
                selectors.append(LabelSelector.parse(part))
    return selectors
