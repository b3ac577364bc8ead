"""
User Service Layer: create / update / delete with remote mirroring

Every mutation follows the same order:

    validate locally ──> mirror to remote ──> persist locally ──> invalidate caches

A remote failure aborts the workflow before anything local is written or
invalidated. Remote calls are made only for mirrored users (``User.mirrored``);
local-only accounts behave as if the remote side had accepted the change.

The service owns the transaction: it commits after a successful workflow and
rolls back on any error raised after the first local write.
"""
from __future__ import annotations
import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from app.core.areas import AreaScope, AreaScopeResolver
from app.core.cache import UserCache
from app.core.errors import AlreadyExists, NotFound, ValidationFailure
from app.core.models import Role, User, UserArea, UserDraft
from app.core.remote import RemoteProfile, RemoteUserService
from app.core.repository import UserRepository
from app.core.sessions import OnlineSessionService
from app.core.user_query import (
    PageRequest,
    PageResult,
    ScopedCriteria,
    ScopedUserQuery,
    UserCriteria,
    UserQuery,
)
from scripts import audit

logger = logging.getLogger(__name__)

AuditLogger = Callable[..., bool]


class UserService:
    """Orchestrates user mutations across the local store, remote system, cache and sessions."""

    def __init__(
        self,
        repository: UserRepository,
        remote: RemoteUserService,
        cache: UserCache,
        sessions: OnlineSessionService,
        scoped_query: Optional[ScopedUserQuery] = None,
        user_query: Optional[UserQuery] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.repository = repository
        self.remote = remote
        self.cache = cache
        self.sessions = sessions
        self.scoped_query = scoped_query or ScopedUserQuery(
            repository.session, AreaScopeResolver(repository.areas_of)
        )
        self.user_query = user_query or UserQuery(repository.session)
        self.audit_logger = audit_logger or audit.safe_log_user_event

    # ── helpers ────────────────────────────────────────────────────────────
    def _audit(
        self,
        event_type: str,
        username: str,
        operator_id: Optional[int],
        *,
        user_ids: Iterable[int] = (),
        remote: Optional[str] = None,
        **details,
    ) -> None:
        operator = str(operator_id) if operator_id is not None else "system"
        self.audit_logger(
            event_type,
            username,
            operator=operator,
            user_ids=tuple(user_ids),
            remote=remote,
            details=details,
        )

    @staticmethod
    def _remote_outcome(user: User) -> str:
        return audit.REMOTE_SYNCED if user.mirrored else audit.REMOTE_SKIPPED

    def _check_unique(self, draft: UserDraft, current_id: Optional[int] = None) -> None:
        """Raise AlreadyExists if username or phone belongs to another user."""
        taken = self.repository.find_by_username(draft.username)
        if taken is not None and taken.id != current_id:
            raise AlreadyExists("User", "username", draft.username)
        taken = self.repository.find_by_phone(draft.phone)
        if taken is not None and taken.id != current_id:
            raise AlreadyExists("User", "phone", draft.phone)

    @staticmethod
    def _require_role(draft: UserDraft) -> int:
        if not draft.role_ids:
            raise ValidationFailure("A user must have at least one role")
        return draft.primary_role_id

    def _resolve_roles(self, draft: UserDraft) -> List[Role]:
        """Load the draft's roles and check its department, before any remote call."""
        roles = self.repository.find_roles(draft.role_ids)
        if len(roles) != len(set(draft.role_ids)):
            missing = set(draft.role_ids) - {role.id for role in roles}
            raise NotFound("Role", "id", sorted(missing))
        if draft.dept_id is not None and self.repository.find_dept(draft.dept_id) is None:
            raise NotFound("Dept", "id", draft.dept_id)
        return roles

    def _apply_draft(self, user: User, draft: UserDraft, roles: List[Role]) -> None:
        user.username = draft.username
        user.phone = draft.phone
        user.nick_name = draft.nick_name
        user.email = draft.email
        user.gender = draft.gender
        user.enabled = draft.enabled
        user.dept_id = draft.dept_id
        user.roles = roles
        user.primary_role_id = draft.primary_role_id
        user.jobs = self.repository.find_jobs(draft.job_ids)
        self._reconcile_areas(user, draft.areas)

    @staticmethod
    def _reconcile_areas(user: User, wanted: Iterable[AreaScope]) -> None:
        """Keep rows whose scope is still wanted, drop the rest, add what is new."""
        wanted = list(dict.fromkeys(wanted))
        kept = [area for area in user.areas if area.scope in wanted]
        kept_scopes = {area.scope for area in kept}
        added = [UserArea.from_scope(scope) for scope in wanted if scope not in kept_scopes]
        user.areas = kept + added

    # ── reads ──────────────────────────────────────────────────────────────
    def find_by_id(self, user_id: int) -> User:
        user = self.repository.find_by_id(user_id)
        if user is None:
            raise NotFound("User", "id", user_id)
        return user

    def find_by_name(self, username: str) -> User:
        user = self.repository.find_by_username(username)
        if user is None:
            raise NotFound("User", "name", username)
        return user

    def list_in_area(self, criteria: ScopedCriteria, page: PageRequest) -> List[User]:
        return self.scoped_query.list(criteria, page)

    def count_in_area(self, criteria: ScopedCriteria) -> int:
        return self.scoped_query.count(criteria)

    def page_in_area(self, criteria: ScopedCriteria, page: PageRequest) -> PageResult[User]:
        return self.scoped_query.page(criteria, page)

    def query_all(self, criteria: UserCriteria, page: Optional[PageRequest] = None):
        return self.user_query.query_all(criteria, page)

    # ── mutations ──────────────────────────────────────────────────────────
    def create(self, draft: UserDraft, operator_id: Optional[int] = None) -> User:
        """Create the remote user first, then persist locally under the remote id.

        Raises:
            ValidationFailure: No role given
            AlreadyExists: Username or phone already taken
            RemoteSyncFailure: Remote creation failed (nothing is written locally)
        """
        primary_role_id = self._require_role(draft)
        self._check_unique(draft)
        roles = self._resolve_roles(draft)

        profile = RemoteProfile(draft.nick_name, draft.phone, draft.gender)
        remote_id = self.remote.create_remote_user(profile, primary_role_id, draft.areas, operator_id)

        try:
            user = User(id=remote_id, mirrored=not self.remote.is_reserved(remote_id), password=draft.password)
            self._apply_draft(user, draft, roles)
            self.repository.save(user)
            self.repository.commit()
        except Exception:
            # The remote record already exists at this point
            logger.error("[create] Local persist failed after remote user %s was created", remote_id)
            self.repository.rollback()
            raise

        logger.info("[create] Created user '%s' (id=%s, mirrored=%s)", user.username, user.id, user.mirrored)
        self._audit("user_create", user.username, operator_id, user_ids=(user.id,),
                    remote=audit.REMOTE_SYNCED, mirrored=user.mirrored)
        return user

    def update(self, draft: UserDraft, operator_id: Optional[int] = None) -> User:
        """Apply a full update.

        Remote calls (profile, then status) all run before any local side
        effect. Cache invalidation and session revocation only happen once
        the local commit succeeded: role and department changes drop the
        permission caches, and disabling a user revokes their online sessions.

        Raises:
            NotFound: No user with ``draft.id``
            AlreadyExists: Username or phone belongs to another user
            RemoteSyncFailure: Remote update or status change failed
        """
        if draft.id is None:
            raise ValidationFailure("Update requires a user id")
        user = self.find_by_id(draft.id)
        primary_role_id = self._require_role(draft)
        self._check_unique(draft, current_id=user.id)
        roles = self._resolve_roles(draft)

        roles_changed = {role.id for role in user.roles} != set(draft.role_ids)
        dept_changed = user.dept_id != draft.dept_id
        was_enabled = user.enabled

        if user.mirrored:
            profile = RemoteProfile(draft.nick_name, draft.phone, draft.gender)
            self.remote.update_remote_user(user.id, profile, primary_role_id, draft.areas, operator_id)
            self.remote.set_remote_user_status(user.id, not draft.enabled, operator_id)
        else:
            logger.debug("[update] User %s is local-only, remote sync skipped", user.id)

        old_username = user.username
        try:
            self._apply_draft(user, draft, roles)
            self.repository.save(user)
            self.repository.commit()
        except Exception:
            self.repository.rollback()
            raise

        if roles_changed:
            self.cache.del_permissions(user.id)
        if dept_changed:
            self.cache.del_data_scope(user.id)
        self.cache.del_user(user.id, user.username)
        if old_username != user.username:
            self.cache.flush_login(old_username)
        if not user.enabled:
            revoked = self.sessions.kick_out_for_username(old_username)
            if revoked:
                self._audit("session_revoke", old_username, operator_id,
                            user_ids=(user.id,), sessions=revoked)

        if was_enabled and not user.enabled:
            event = "user_disable"
        elif not was_enabled and user.enabled:
            event = "user_enable"
        else:
            event = "user_update"
        logger.info("[update] Updated user '%s' (id=%s)", user.username, user.id)
        self._audit(event, user.username, operator_id, user_ids=(user.id,),
                    remote=self._remote_outcome(user), roles_changed=roles_changed, dept_changed=dept_changed)
        return user

    def update_center(
        self,
        user_id: int,
        nick_name: Optional[str],
        phone: Optional[str],
        gender: Optional[str],
        operator_id: Optional[int] = None,
    ) -> User:
        """Self-service profile update. Local only, never mirrored."""
        user = self.find_by_id(user_id)
        taken = self.repository.find_by_phone(phone)
        if taken is not None and taken.id != user.id:
            raise AlreadyExists("User", "phone", phone)

        try:
            user.nick_name = nick_name
            user.phone = phone
            user.gender = gender
            self.repository.save(user)
            self.repository.commit()
        except Exception:
            self.repository.rollback()
            raise

        self.cache.del_user(user.id, user.username)
        self._audit("user_update_center", user.username, operator_id, user_ids=(user.id,))
        return user

    def delete(self, ids: Iterable[int], operator_id: Optional[int] = None) -> int:
        """Disable every id remotely, then delete all of them locally in one go.

        All-or-nothing: a failure on any id aborts the batch before the local
        delete. Ids disabled remotely before the failure stay disabled, and
        re-running the same batch is safe since the status call is idempotent.

        Returns:
            Number of local rows deleted
        """
        ids = list(dict.fromkeys(ids))
        users = [self.find_by_id(user_id) for user_id in ids]

        for user in users:
            if user.mirrored:
                self.remote.set_remote_user_status(user.id, True, operator_id)

        usernames = [user.username for user in users]
        outcomes = [self._remote_outcome(user) for user in users]
        try:
            removed = self.repository.delete_all_by_id_in(ids)
            self.repository.commit()
        except Exception:
            self.repository.rollback()
            raise

        for user_id, username in zip(ids, usernames):
            self.cache.del_user(user_id, username)

        logger.info("[delete] Deleted %s user(s): %s", removed, ", ".join(usernames))
        for user_id, username, outcome in zip(ids, usernames, outcomes):
            self._audit("user_delete", username, operator_id, user_ids=(user_id,),
                        remote=outcome, batch=ids)
        return removed

    def update_pass(self, username: str, password: str, operator_id: Optional[int] = None) -> None:
        """Store a new password hash and stamp the reset time."""
        self.find_by_name(username)
        try:
            self.repository.update_pass(username, password, datetime.now())
            self.repository.commit()
        except Exception:
            self.repository.rollback()
            raise
        self.cache.flush_login(username)
        self._audit("user_password", username, operator_id)

    def update_email(self, username: str, email: str, operator_id: Optional[int] = None) -> None:
        self.find_by_name(username)
        try:
            self.repository.update_email(username, email)
            self.repository.commit()
        except Exception:
            self.repository.rollback()
            raise
        self.cache.flush_login(username)
        self._audit("user_update", username, operator_id, email_changed=True)

    def reset_pwd(self, ids: Iterable[int], password: str) -> None:
        """Bulk password reset (no cache or remote effect)."""
        try:
            self.repository.reset_pwd(ids, password)
            self.repository.commit()
        except Exception:
            self.repository.rollback()
            raise
