"""Remote user-management exceptions."""
from __future__ import annotations

from typing import Optional


class RemoteError(Exception):
    """Base exception for all remote user-management operations."""
    pass


class RemoteSyncFailure(RemoteError):
    """Remote call did not report success.

    Attributes:
        message: Normalized message from the remote envelope (or transport error)
        status: Normalized status code, None for transport failures
        endpoint: Endpoint path that failed
        transient: True when the failure came from the transport (timeout, refused)
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        endpoint: str = "",
        transient: bool = False,
    ):
        self.message = message
        self.status = status
        self.endpoint = endpoint
        self.transient = transient
        prefix = f"[{status}] " if status is not None else ""
        super().__init__(f"{prefix}{endpoint}: {message}" if endpoint else f"{prefix}{message}")
