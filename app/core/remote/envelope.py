"""Normalization of remote response bodies into one envelope.

The remote system answers in three incompatible shapes:

    {"status": 200, "message": "ok", "data": ...}
    {"code": 200, "msg": "ok", "data": ...}     (``message`` accepted in place of ``msg``)
    anything else (raw JSON or plain text)

``normalize`` collapses all of them into a ``RemoteSyncResult``. When a body
matches both keyed shapes, the code/msg shape wins because it is applied last.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from http import HTTPStatus
from typing import Any, Optional

SUCCESS_STATUS = 200


class EnvelopeShape(str, Enum):
    RAW = "raw"
    STATUS_MESSAGE = "status_message"
    CODE_MSG = "code_msg"


@dataclass(frozen=True)
class RemoteSyncResult:
    """Canonical remote result."""
    status: int
    message: str
    payload: Optional[Any] = None
    shape: EnvelopeShape = EnvelopeShape.RAW

    @property
    def ok(self) -> bool:
        return self.status == SUCCESS_STATUS


def reason_phrase(status: int) -> str:
    """Return the standard reason phrase for an HTTP status code."""
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Unknown Status"


def _parse_body(body: Optional[str]) -> Any:
    if body is None or not body.strip():
        return None
    try:
        return json.loads(body)
    except ValueError:
        return body


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("boolean is not a status code")
    if isinstance(value, (int, float)):
        return int(value)
    return int(str(value).strip())


def _as_text(value: Any) -> Optional[str]:
    """Render a JSON value as text, the way string getters on a JSON object do."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return str(value)


def detect_shape(parsed: Any) -> EnvelopeShape:
    """Classify a parsed body. Code/msg takes precedence (last-applied wins)."""
    if not isinstance(parsed, dict):
        return EnvelopeShape.RAW
    if "code" in parsed and ("msg" in parsed or "message" in parsed):
        return EnvelopeShape.CODE_MSG
    if "status" in parsed and "message" in parsed:
        return EnvelopeShape.STATUS_MESSAGE
    return EnvelopeShape.RAW


def normalize(http_status: int, body: Optional[str]) -> RemoteSyncResult:
    """Convert an HTTP status and raw body into a ``RemoteSyncResult``.

    Malformed keyed bodies (e.g. a non-numeric ``code``) fall back to the
    HTTP-derived default instead of raising.
    """
    parsed = _parse_body(body)
    default = RemoteSyncResult(http_status, reason_phrase(http_status), parsed, EnvelopeShape.RAW)

    shape = detect_shape(parsed)
    try:
        if shape is EnvelopeShape.CODE_MSG:
            msg = parsed.get("msg")
            message = msg if msg is not None else parsed.get("message")
            return RemoteSyncResult(
                _as_int(parsed["code"]),
                _as_text(message) or "",
                _as_text(parsed.get("data")),
                shape,
            )
        if shape is EnvelopeShape.STATUS_MESSAGE:
            return RemoteSyncResult(
                _as_int(parsed["status"]),
                _as_text(parsed["message"]) or "",
                _as_text(parsed.get("data")),
                shape,
            )
    except (TypeError, ValueError):
        return default
    return default
