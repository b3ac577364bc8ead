"""Mirrored user operations against the remote user-management system."""
from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from app.core.areas import AreaScope
from .client import RemoteAdminClient
from .envelope import RemoteSyncResult
from .exceptions import RemoteSyncFailure

logger = logging.getLogger(__name__)

RESERVED_ID_THRESHOLD = 1000

STATUS_ACTIVE = 0
STATUS_DISABLED = 1

# Gender values that encode as 1; everything else encodes as 2
MALE_GENDERS = frozenset({"男", "male", "m"})

ADD_USER_PATH = "/user/addUser"
UPDATE_USER_PATH = "/user/updateUser"
UPDATE_STATUS_PATH = "/user/updateUserStatus"


def gender_code(gender: Optional[str]) -> int:
    """Encode a gender label the way the remote system expects (1 or 2)."""
    if gender and gender.strip().lower() in MALE_GENDERS:
        return 1
    return 2


def area_range(areas: Iterable[AreaScope]) -> str:
    """Serialize area assignments into the remote ``areaRange`` field.

    One integer per assignment (its most specific unit), comma-joined in
    assignment order: [(1,0,0), (1,2,3)] -> "1,3".
    """
    return ",".join(str(area.most_specific) for area in areas)


@dataclass(frozen=True)
class RemoteProfile:
    """Profile fields the remote system mirrors."""
    name: Optional[str]
    phone: Optional[str]
    gender: Optional[str]

    def to_payload(self) -> dict:
        return {
            "name": self.name,
            "phone": self.phone,
            "gender": gender_code(self.gender),
        }


def _extract_user_id(payload: Any) -> int:
    """Pull the remote user id out of a creation payload."""
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError:
            pass
    if isinstance(payload, dict):
        payload = payload.get("userId", payload.get("id"))
    if isinstance(payload, bool) or payload is None:
        raise RemoteSyncFailure("remote response carried no userId", endpoint=ADD_USER_PATH)
    try:
        return int(payload)
    except (TypeError, ValueError):
        raise RemoteSyncFailure(f"remote userId is not numeric: {payload!r}", endpoint=ADD_USER_PATH)


class RemoteUserService:
    """Service for mirroring local user mutations to the remote system."""

    def __init__(self, client: RemoteAdminClient, reserved_id_threshold: int = RESERVED_ID_THRESHOLD):
        """Initialize remote user service.

        Args:
            client: Remote HTTP client
            reserved_id_threshold: Ids below this are never mirrored
        """
        self.client = client
        self.reserved_id_threshold = reserved_id_threshold

    def is_reserved(self, user_id: Optional[int]) -> bool:
        """Return True when the id belongs to a local-only account."""
        return user_id is not None and user_id < self.reserved_id_threshold

    def _post(self, path: str, payload: dict) -> RemoteSyncResult:
        result = self.client.post(path, json=payload)
        if not result.ok:
            logger.warning("[remote] %s rejected: [%s] %s", path, result.status, result.message)
            raise RemoteSyncFailure(result.message, status=result.status, endpoint=path)
        return result

    def create_remote_user(
        self,
        profile: RemoteProfile,
        primary_role_id: int,
        areas: Iterable[AreaScope],
        operator_id: Optional[int],
    ) -> int:
        """Create the remote user and return the id it was assigned.

        Always runs: the local id does not exist yet.

        Raises:
            RemoteSyncFailure: On non-success status or missing id in payload
        """
        payload = profile.to_payload()
        payload.update({
            "role": primary_role_id,
            "areaRange": area_range(areas),
            "operator": operator_id,
        })
        result = self._post(ADD_USER_PATH, payload)
        user_id = _extract_user_id(result.payload)
        logger.info("[remote] Created remote user (id=%s)", user_id)
        return user_id

    def update_remote_user(
        self,
        remote_user_id: int,
        profile: RemoteProfile,
        primary_role_id: int,
        areas: Iterable[AreaScope],
        operator_id: Optional[int],
    ) -> bool:
        """Mirror a profile update. Returns False when skipped for a reserved id."""
        if self.is_reserved(remote_user_id):
            logger.debug("[remote] Skipping update for reserved id %s", remote_user_id)
            return False
        payload = {"userId": remote_user_id}
        payload.update(profile.to_payload())
        payload.update({
            "role": primary_role_id,
            "areaRange": area_range(areas),
            "operator": operator_id,
        })
        self._post(UPDATE_USER_PATH, payload)
        logger.info("[remote] Updated remote user %s", remote_user_id)
        return True

    def set_remote_user_status(self, remote_user_id: int, disabled: bool, operator_id: Optional[int]) -> bool:
        """Flip the remote status (0 = active, 1 = disabled).

        Returns False when skipped for a reserved id.
        """
        if self.is_reserved(remote_user_id):
            logger.debug("[remote] Skipping status change for reserved id %s", remote_user_id)
            return False
        status = STATUS_DISABLED if disabled else STATUS_ACTIVE
        self._post(UPDATE_STATUS_PATH, {
            "userId": remote_user_id,
            "status": status,
            "operator": operator_id,
        })
        logger.info("[remote] Remote user %s status set to %s", remote_user_id, status)
        return True
