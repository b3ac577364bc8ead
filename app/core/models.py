"""SQLAlchemy models for local users and their area assignments."""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from app.core.areas import AreaScope


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


users_roles = Table(
    "users_roles",
    Base.metadata,
    Column("user_id", BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id"), primary_key=True),
)

users_jobs = Table(
    "users_jobs",
    Base.metadata,
    Column("user_id", BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("job_id", Integer, ForeignKey("jobs.id"), primary_key=True),
)


class Role(Base):
    """Role with an authority level (lower = broader)."""

    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    def __repr__(self):
        return f"<Role(id={self.id}, name={self.name}, level={self.level})>"


class Dept(Base):
    __tablename__ = "depts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)


class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)


class UserArea(Base):
    """One (user, province, city, county) assignment."""

    __tablename__ = "user_areas"

    id: Mapped[int] = mapped_column("area_id", Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    province: Mapped[Optional[int]] = mapped_column(Integer, index=True)
    city: Mapped[Optional[int]] = mapped_column(Integer, index=True)
    county: Mapped[Optional[int]] = mapped_column(Integer, index=True)

    user: Mapped["User"] = relationship(back_populates="areas")

    @classmethod
    def from_scope(cls, scope: AreaScope) -> "UserArea":
        return cls(
            province=scope.province,
            city=scope.city or None,
            county=scope.county or None,
        )

    @property
    def scope(self) -> AreaScope:
        return AreaScope(self.province or 0, self.city or 0, self.county or 0)

    @property
    def scope_key(self) -> tuple:
        """Identity of the assignment, independent of the row id."""
        return (self.user_id, self.scope)

    def __repr__(self):
        return f"<UserArea(user_id={self.user_id}, scope={self.scope.units})>"


class User(Base):
    """Local user record. ``id`` is issued by the remote system on creation."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    username: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    nick_name: Mapped[Optional[str]] = mapped_column(String(255))
    gender: Mapped[Optional[str]] = mapped_column(String(16))
    phone: Mapped[Optional[str]] = mapped_column(String(32), unique=True, index=True)
    # Email uniqueness is not enforced
    email: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    password: Mapped[Optional[str]] = mapped_column(String(255))
    avatar_name: Mapped[Optional[str]] = mapped_column(String(255))
    avatar_path: Mapped[Optional[str]] = mapped_column(String(255))
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    mirrored: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    dept_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("depts.id"))
    # Role sent to the remote system; roles themselves load ordered by id
    primary_role_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("roles.id"))
    pwd_reset_time: Mapped[Optional[datetime]] = mapped_column(DateTime)
    create_time: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    update_time: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    dept: Mapped[Optional[Dept]] = relationship(lazy="joined")
    roles: Mapped[List[Role]] = relationship(secondary=users_roles, order_by=Role.id, lazy="selectin")
    jobs: Mapped[List[Job]] = relationship(secondary=users_jobs, order_by=Job.id, lazy="selectin")
    areas: Mapped[List[UserArea]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        order_by=UserArea.id,
        lazy="selectin",
    )

    @property
    def area_scopes(self) -> List[AreaScope]:
        return [area.scope for area in self.areas]

    def ordered_role_ids(self) -> List[int]:
        """Role ids with the primary role first, the rest by id."""
        ids = [role.id for role in self.roles]
        if self.primary_role_id in ids:
            ids.remove(self.primary_role_id)
            ids.insert(0, self.primary_role_id)
        return ids

    def __repr__(self):
        return f"<User(id={self.id}, username={self.username}, enabled={self.enabled})>"


@dataclass(frozen=True)
class UserDraft:
    """Incoming values for create/update. ``role_ids[0]`` is the primary role."""
    username: str
    phone: Optional[str] = None
    nick_name: Optional[str] = None
    email: Optional[str] = None
    gender: Optional[str] = None
    enabled: bool = True
    dept_id: Optional[int] = None
    role_ids: tuple = ()
    job_ids: tuple = ()
    areas: tuple = ()
    password: Optional[str] = None
    id: Optional[int] = None

    @property
    def primary_role_id(self) -> Optional[int]:
        return self.role_ids[0] if self.role_ids else None

    @classmethod
    def from_user(cls, user: User) -> "UserDraft":
        """Snapshot an existing user so single fields can be changed with ``with_changes``."""
        return cls(
            id=user.id,
            username=user.username,
            phone=user.phone,
            nick_name=user.nick_name,
            email=user.email,
            gender=user.gender,
            enabled=user.enabled,
            dept_id=user.dept_id,
            role_ids=tuple(user.ordered_role_ids()),
            job_ids=tuple(job.id for job in user.jobs),
            areas=tuple(user.area_scopes),
        )

    def with_changes(self, **changes) -> "UserDraft":
        return replace(self, **changes)
