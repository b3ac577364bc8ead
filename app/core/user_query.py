"""Scoped and criteria-based user listing.

Listing and counting are built from the same id subquery, so a count of 0
always means an empty list and paging through every page yields exactly
``count`` distinct users, ordered by ascending id.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Generic, List, Optional, Sequence, Tuple, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from app.core.areas import AreaScopeResolver, ScopeRequest
from app.core.errors import ValidationFailure
from app.core.filters import Between, Clause, Contains, Eq, In, compile_clauses
from app.core.models import Role, User, UserArea, users_roles

logger = logging.getLogger(__name__)

T = TypeVar("T")

USER_COLUMNS = {
    "id": User.id,
    "username": User.username,
    "nick_name": User.nick_name,
    "phone": User.phone,
    "email": User.email,
    "enabled": User.enabled,
    "dept_id": User.dept_id,
    "create_time": User.create_time,
    "area.province": UserArea.province,
    "area.city": UserArea.city,
    "area.county": UserArea.county,
    "role.level": Role.level,
}

BLURRY_FIELDS_SCOPED = ("username", "nick_name", "phone")
BLURRY_FIELDS_CRITERIA = ("email", "username", "nick_name")


@dataclass(frozen=True)
class PageRequest:
    """Zero-based row offset and page size."""
    offset: int = 0
    size: int = 10

    def __post_init__(self):
        if self.offset < 0:
            raise ValidationFailure("Page offset must be >= 0")
        if self.size <= 0:
            raise ValidationFailure("Page size must be > 0")

    @classmethod
    def of(cls, page: int, size: int) -> "PageRequest":
        """Build from a zero-based page number."""
        if page < 0:
            raise ValidationFailure("Page number must be >= 0")
        return cls(offset=page * size, size=size)


@dataclass
class PageResult(Generic[T]):
    content: List[T]
    total: int


@dataclass(frozen=True)
class ScopedCriteria:
    """Inputs of a scoped listing.

    ``enabled`` is tri-state: True/False filter, None leaves it unfiltered.
    """
    scope: ScopeRequest
    min_role_level: int
    blurry: Optional[str] = None
    enabled: Optional[bool] = None


@dataclass(frozen=True)
class UserCriteria:
    """Inputs of the generic, unscoped listing."""
    id: Optional[int] = None
    dept_ids: Sequence[int] = field(default_factory=tuple)
    blurry: Optional[str] = None
    enabled: Optional[bool] = None
    create_time: Optional[Tuple[datetime, datetime]] = None

    def to_clauses(self) -> List[Clause]:
        clauses: List[Clause] = []
        if self.id is not None:
            clauses.append(Eq("id", self.id))
        if self.dept_ids:
            clauses.append(In("dept_id", tuple(self.dept_ids)))
        if self.blurry:
            clauses.append(Contains(BLURRY_FIELDS_CRITERIA, self.blurry))
        if self.enabled is not None:
            clauses.append(Eq("enabled", self.enabled))
        if self.create_time is not None:
            start, end = self.create_time
            clauses.append(Between("create_time", start, end))
        return clauses


class ScopedUserQuery:
    """Lists and counts users visible under an area scope and role floor."""

    def __init__(self, session: Session, resolver: AreaScopeResolver):
        self.session = session
        self.resolver = resolver

    def clauses_for(self, criteria: ScopedCriteria) -> List[Clause]:
        clauses = self.resolver.resolve(criteria.scope, criteria.min_role_level)
        clauses.append(Contains(BLURRY_FIELDS_SCOPED, criteria.blurry or ""))
        if criteria.enabled is not None:
            clauses.append(Eq("enabled", criteria.enabled))
        return clauses

    def matching_ids(self, criteria: ScopedCriteria) -> Select:
        """Distinct ids of matching users. The joins may yield one row per area x role."""
        return (
            select(User.id)
            .join(UserArea, UserArea.user_id == User.id)
            .join(users_roles, users_roles.c.user_id == User.id)
            .join(Role, Role.id == users_roles.c.role_id)
            .where(compile_clauses(self.clauses_for(criteria), USER_COLUMNS))
            .distinct()
        )

    def list(self, criteria: ScopedCriteria, page: PageRequest) -> List[User]:
        ids = self.matching_ids(criteria).subquery()
        stmt = (
            select(User)
            .where(User.id.in_(select(ids.c.id)))
            .order_by(User.id.asc())
            .offset(page.offset)
            .limit(page.size)
        )
        users = list(self.session.scalars(stmt).unique())
        logger.debug("[query] scoped list offset=%s size=%s -> %s rows", page.offset, page.size, len(users))
        return users

    def count(self, criteria: ScopedCriteria) -> int:
        ids = self.matching_ids(criteria).subquery()
        return self.session.scalar(select(func.count()).select_from(ids)) or 0

    def page(self, criteria: ScopedCriteria, page: PageRequest) -> PageResult[User]:
        return PageResult(content=self.list(criteria, page), total=self.count(criteria))


class UserQuery:
    """Generic criteria listing over all users."""

    def __init__(self, session: Session):
        self.session = session

    def _filtered(self, criteria: UserCriteria) -> Select:
        return select(User).where(compile_clauses(criteria.to_clauses(), USER_COLUMNS))

    def query_all(self, criteria: UserCriteria, page: Optional[PageRequest] = None):
        """Return a ``PageResult`` when paged, otherwise every match as a list."""
        stmt = self._filtered(criteria).order_by(User.id.asc())
        if page is None:
            return list(self.session.scalars(stmt).unique())
        content = list(self.session.scalars(stmt.offset(page.offset).limit(page.size)).unique())
        total_stmt = select(func.count()).select_from(self._filtered(criteria).subquery())
        return PageResult(content=content, total=self.session.scalar(total_stmt) or 0)
