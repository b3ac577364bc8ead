"""Online session management backed by Redis."""
from __future__ import annotations
import json
import logging
from typing import Dict, List

import redis

logger = logging.getLogger(__name__)

DEFAULT_ONLINE_KEY_PREFIX = "online-token-"


class OnlineSessionService:
    """Service for inspecting and evicting online user sessions.

    Each session is stored as JSON under ``<prefix><token>`` and carries the
    owning ``userName``.
    """

    def __init__(self, client: redis.Redis, prefix: str = DEFAULT_ONLINE_KEY_PREFIX):
        """Initialize session service.

        Args:
            client: Redis client (decode_responses=True)
            prefix: Key prefix of online-session entries
        """
        self.client = client
        self.prefix = prefix

    def get_user_sessions(self, username: str) -> List[str]:
        """Return the keys of every online session owned by ``username``."""
        keys = []
        for key in self.client.scan_iter(match=f"{self.prefix}*"):
            raw = self.client.get(key)
            if raw is None:
                continue
            try:
                session: Dict = json.loads(raw)
            except ValueError:
                logger.warning("[sessions] Skipping unreadable session entry %s", key)
                continue
            if session.get("userName") == username:
                keys.append(key)
        return keys

    def kick_out_for_username(self, username: str) -> int:
        """Terminate all active sessions of a user.

        Returns:
            Number of sessions removed
        """
        keys = self.get_user_sessions(username)
        if not keys:
            return 0
        removed = self.client.delete(*keys)
        logger.info("[sessions] Revoked %s active session(s) for '%s'", removed, username)
        return removed
