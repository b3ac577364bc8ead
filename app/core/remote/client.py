"""Low-level HTTP client for the remote user-management API.

Handles the base URL, optional bearer token, timeouts and envelope
normalization. HTTP error codes are not raised here: the remote system
reports its own status inside the body, so every answer is normalized and
the caller decides what counts as success.
"""
from __future__ import annotations
import logging
import os
from typing import Optional, Dict, Any

import requests

from .envelope import RemoteSyncResult, normalize
from .exceptions import RemoteSyncFailure

REQUEST_TIMEOUT = 5

logger = logging.getLogger(__name__)


class RemoteAdminClient:
    """HTTP client for the remote user-management system.

    Usage:
        client = RemoteAdminClient("http://localhost:8013/ljadmin", timeout=5)
        result = client.post("/user/addUser", json={"name": "Alice"})
        if not result.ok:
            ...
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        """Initialize remote client.

        Args:
            base_url: Remote base URL (defaults to REMOTE_ADMIN_URL env var)
            token: Optional bearer token sent with every request
            timeout: Per-request timeout in seconds
        """
        self.base_url = (base_url or os.environ.get("REMOTE_ADMIN_URL", "http://localhost:8013/ljadmin")).rstrip("/")
        self._token = token
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def post(self, path: str, json: Optional[Dict[str, Any]] = None) -> RemoteSyncResult:
        """Execute a JSON POST and normalize the answer.

        Args:
            path: API endpoint path (e.g., "/user/addUser")
            json: JSON payload

        Returns:
            Normalized remote result (may carry a non-success status)

        Raises:
            RemoteSyncFailure: On timeout or any other transport error
        """
        url = f"{self.base_url}{path}"
        try:
            resp = requests.post(url, json=json, headers=self._headers(), timeout=self.timeout)
        except requests.Timeout as exc:
            logger.warning("[remote] POST %s timed out after %ss", path, self.timeout)
            raise RemoteSyncFailure(f"timed out after {self.timeout}s: {exc}", endpoint=path, transient=True) from exc
        except requests.RequestException as exc:
            logger.warning("[remote] POST %s failed: %s", path, exc)
            raise RemoteSyncFailure(str(exc), endpoint=path, transient=True) from exc

        result = normalize(resp.status_code, resp.text)
        logger.debug("[remote] POST %s -> %s (%s)", path, result.status, result.shape.value)
        return result
