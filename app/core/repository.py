"""Persistence access for users, roles, depts, jobs and area assignments."""
from __future__ import annotations
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.core.areas import AreaScope
from app.core.models import Dept, Job, Role, User, UserArea, users_jobs, users_roles


class UserRepository:
    """Repository over a SQLAlchemy session.

    Writes are flushed, never committed: the caller owns the transaction and
    decides when ``commit()`` or ``rollback()`` runs.
    """

    def __init__(self, session: Session):
        self.session = session

    # ── lookups ────────────────────────────────────────────────────────────
    def find_by_id(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def find_by_username(self, username: str) -> Optional[User]:
        return self.session.scalars(select(User).where(User.username == username)).first()

    def find_by_phone(self, phone: str) -> Optional[User]:
        if not phone:
            return None
        return self.session.scalars(select(User).where(User.phone == phone)).first()

    def find_by_email(self, email: str) -> Optional[User]:
        return self.session.scalars(select(User).where(User.email == email)).first()

    def find_by_role_id(self, role_id: int) -> List[User]:
        stmt = select(User).join(users_roles).where(users_roles.c.role_id == role_id).order_by(User.id)
        return list(self.session.scalars(stmt).unique())

    def find_roles(self, ids: Iterable[int]) -> List[Role]:
        """Return roles in the order of ``ids`` (missing ids are skipped)."""
        ids = list(ids)
        by_id = {role.id: role for role in self.session.scalars(select(Role).where(Role.id.in_(ids)))}
        return [by_id[i] for i in ids if i in by_id]

    def find_jobs(self, ids: Iterable[int]) -> List[Job]:
        ids = list(ids)
        if not ids:
            return []
        return list(self.session.scalars(select(Job).where(Job.id.in_(ids)).order_by(Job.id)))

    def find_dept(self, dept_id: Optional[int]) -> Optional[Dept]:
        if dept_id is None:
            return None
        return self.session.get(Dept, dept_id)

    def areas_of(self, user_id: int) -> List[AreaScope]:
        stmt = select(UserArea).where(UserArea.user_id == user_id).order_by(UserArea.id)
        return [area.scope for area in self.session.scalars(stmt)]

    # ── counts used by role/dept/job maintenance ───────────────────────────
    def count_by_roles(self, role_ids: Iterable[int]) -> int:
        stmt = select(func.count()).select_from(users_roles).where(users_roles.c.role_id.in_(list(role_ids)))
        return self.session.scalar(stmt) or 0

    def count_by_depts(self, dept_ids: Iterable[int]) -> int:
        stmt = select(func.count()).select_from(User).where(User.dept_id.in_(list(dept_ids)))
        return self.session.scalar(stmt) or 0

    def count_by_jobs(self, job_ids: Iterable[int]) -> int:
        stmt = select(func.count()).select_from(users_jobs).where(users_jobs.c.job_id.in_(list(job_ids)))
        return self.session.scalar(stmt) or 0

    # ── writes ─────────────────────────────────────────────────────────────
    def save(self, user: User) -> User:
        self.session.add(user)
        self.session.flush()
        return user

    def delete_all_by_id_in(self, ids: Iterable[int]) -> int:
        """Delete all users with the given ids in one flush. Returns rows removed."""
        users = list(self.session.scalars(select(User).where(User.id.in_(list(ids)))))
        for user in users:
            self.session.delete(user)
        self.session.flush()
        return len(users)

    def update_pass(self, username: str, password: str, reset_time: datetime) -> None:
        self.session.execute(
            update(User)
            .where(User.username == username)
            .values(password=password, pwd_reset_time=reset_time)
            .execution_options(synchronize_session="fetch")
        )

    def update_email(self, username: str, email: str) -> None:
        self.session.execute(
            update(User)
            .where(User.username == username)
            .values(email=email)
            .execution_options(synchronize_session="fetch")
        )

    def reset_pwd(self, ids: Iterable[int], password: str) -> None:
        self.session.execute(
            update(User)
            .where(User.id.in_(list(ids)))
            .values(password=password)
            .execution_options(synchronize_session="fetch")
        )

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
