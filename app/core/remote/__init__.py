"""Remote user-management API client library.

Architecture:
- client.py: HTTP client with timeout and envelope normalization
- envelope.py: Response envelope shapes and the normalizer
- users.py: Mirrored user operations (create, update, set status)
- exceptions.py: Typed exceptions for error handling

Usage:
    from app.core.remote import RemoteAdminClient, RemoteUserService

    client = RemoteAdminClient("http://localhost:8013/ljadmin", timeout=5)
    remote = RemoteUserService(client)
    remote_id = remote.create_remote_user(profile, role_id, areas, operator_id)
"""
from .client import RemoteAdminClient, REQUEST_TIMEOUT
from .envelope import (
    EnvelopeShape,
    RemoteSyncResult,
    SUCCESS_STATUS,
    detect_shape,
    normalize,
    reason_phrase,
)
from .exceptions import RemoteError, RemoteSyncFailure
from .users import (
    RemoteProfile,
    RemoteUserService,
    RESERVED_ID_THRESHOLD,
    STATUS_ACTIVE,
    STATUS_DISABLED,
    area_range,
    gender_code,
)

__all__ = [
    # Client
    "RemoteAdminClient",
    "REQUEST_TIMEOUT",

    # Envelope
    "EnvelopeShape",
    "RemoteSyncResult",
    "SUCCESS_STATUS",
    "detect_shape",
    "normalize",
    "reason_phrase",

    # Exceptions
    "RemoteError",
    "RemoteSyncFailure",

    # Users
    "RemoteProfile",
    "RemoteUserService",
    "RESERVED_ID_THRESHOLD",
    "STATUS_ACTIVE",
    "STATUS_DISABLED",
    "area_range",
    "gender_code",
]
