"""Redis-backed cache invalidation for user data.

Keys follow the ``<prefix><id|username>`` layout shared with the login and
permission layers that populate them; this module only ever deletes.
"""
from __future__ import annotations
import logging
from typing import Optional

import redis

logger = logging.getLogger(__name__)


class CacheKey:
    USER_ID = "user::id:"
    DATA_USER = "data::user:"
    MENU_USER = "menu::user:"
    ROLE_AUTH = "role::auth:"
    LOGIN_USER = "user-login-cache:"


class UserCache:
    """Key-based invalidation of cached user entries."""

    def __init__(self, client: redis.Redis):
        self.client = client

    def _delete(self, *keys: str) -> int:
        removed = self.client.delete(*keys)
        logger.debug("[cache] Deleted %s of %s key(s): %s", removed, len(keys), ", ".join(keys))
        return removed

    def flush_login(self, username: Optional[str]) -> None:
        """Drop the cached login data for a username."""
        if username:
            self._delete(f"{CacheKey.LOGIN_USER}{username}")

    def del_user(self, user_id: int, username: Optional[str]) -> None:
        """Drop the cached profile for an id and the login data for its username."""
        self._delete(f"{CacheKey.USER_ID}{user_id}")
        self.flush_login(username)

    def del_permissions(self, user_id: int) -> None:
        """Drop data-scope, menu and role-auth entries (role set changed)."""
        self._delete(
            f"{CacheKey.DATA_USER}{user_id}",
            f"{CacheKey.MENU_USER}{user_id}",
            f"{CacheKey.ROLE_AUTH}{user_id}",
        )

    def del_data_scope(self, user_id: int) -> None:
        """Drop the data-scope entry (department changed)."""
        self._delete(f"{CacheKey.DATA_USER}{user_id}")
