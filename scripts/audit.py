"""Signed audit trail of user lifecycle events.

Each line of the trail is one JSON record describing a user mutation: the
local ids it touched, whether the change reached the remote system, and an
HMAC-SHA256 signature over the record's canonical form. Verification is
reported per event type so an operator can see which workflow was tampered
with.
"""
from __future__ import annotations
import datetime
import hashlib
import hmac
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator

from app.config.settings import DEMO_AUDIT_SIGNING_KEY, _load_secret_from_file

logger = logging.getLogger(__name__)

AUDIT_LOG_FILE = Path(os.environ.get("AUDIT_LOG_DIR", ".runtime/audit")) / "user-events.jsonl"

EVENT_TYPES = (
    "user_create",
    "user_update",
    "user_disable",
    "user_enable",
    "user_delete",
    "user_update_center",
    "user_password",
    "session_revoke",
)

# Remote outcome of a mutation
REMOTE_SYNCED = "synced"
REMOTE_SKIPPED = "skipped"
REMOTE_FAILED = "failed"
REMOTE_OUTCOMES = (REMOTE_SYNCED, REMOTE_SKIPPED, REMOTE_FAILED)

UNREADABLE = "unreadable"


def _utc_now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


@dataclass(frozen=True)
class UserEvent:
    """One audited user mutation.

    ``remote`` is None for events that never involve the remote system
    (self-service profile edits, password changes).
    """
    event_type: str
    username: str
    operator: str = "system"
    success: bool = True
    user_ids: tuple[int, ...] = ()
    remote: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=_utc_now)

    def __post_init__(self):
        if self.event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown audit event type: {self.event_type}")
        if self.remote is not None and self.remote not in REMOTE_OUTCOMES:
            raise ValueError(f"Unknown remote outcome: {self.remote}")

    def to_record(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "event_type": self.event_type,
            "username": self.username,
            "operator": self.operator,
            "success": self.success,
            "user_ids": list(self.user_ids),
            "remote": self.remote,
            "details": self.details,
        }


@dataclass
class VerifyReport:
    """Signature check results, overall and per event type."""
    total: int = 0
    valid: int = 0
    by_type: dict[str, list[int]] = field(default_factory=dict)

    def add(self, event_type: str, valid: bool) -> None:
        counts = self.by_type.setdefault(event_type, [0, 0])
        counts[0] += 1
        self.total += 1
        if valid:
            counts[1] += 1
            self.valid += 1

    @property
    def ok(self) -> bool:
        return self.total == self.valid


class AuditTrail:
    """Append-only JSONL file of signed user events.

    An empty key writes unsigned records, and unsigned records never verify.
    """

    def __init__(self, path: Path, key: bytes):
        self.path = Path(path)
        self.key = key

    def _sign(self, record: dict[str, Any]) -> str:
        canonical = json.dumps(record, sort_keys=True, separators=(",", ":"), default=str)
        return hmac.new(self.key, canonical.encode("utf-8"), hashlib.sha256).hexdigest()

    def append(self, event: UserEvent) -> dict[str, Any]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.parent.chmod(0o700)

        record = event.to_record()
        if self.key:
            record["signature"] = self._sign(record)

        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
        self.path.chmod(0o600)
        return record

    def records(self) -> Iterator[dict[str, Any] | None]:
        """Yield each stored record, or None for a line that is not a JSON object."""
        if not self.path.exists():
            return
        with self.path.open("r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError:
                    yield None
                    continue
                yield record if isinstance(record, dict) else None

    def verify(self) -> VerifyReport:
        report = VerifyReport()
        for record in self.records():
            if record is None:
                report.add(UNREADABLE, False)
                continue
            signature = record.pop("signature", "")
            valid = (
                bool(self.key)
                and isinstance(signature, str)
                and bool(signature)
                and hmac.compare_digest(signature, self._sign(record))
            )
            report.add(str(record.get("event_type", UNREADABLE)), valid)
        return report


def _signing_key() -> bytes:
    """Key from /run/secrets or AUDIT_LOG_SIGNING_KEY, else the demo key in demo mode."""
    key = _load_secret_from_file("audit_log_signing_key", "AUDIT_LOG_SIGNING_KEY")
    if not key and os.environ.get("DEMO_MODE", "false").lower() == "true":
        key = os.environ.get("AUDIT_LOG_SIGNING_KEY_DEMO", DEMO_AUDIT_SIGNING_KEY)
    return (key or "").strip().encode("utf-8")


def default_trail() -> AuditTrail:
    return AuditTrail(AUDIT_LOG_FILE, _signing_key())


def log_user_event(
    event_type: str,
    username: str,
    *,
    operator: str = "system",
    details: dict[str, Any] | None = None,
    success: bool = True,
    user_ids: Iterable[int] = (),
    remote: str | None = None,
) -> None:
    """Append one user event to the default trail.

    Args:
        event_type: One of EVENT_TYPES
        username: Username the event is about
        operator: Operator id as a string, "cli" or "system"
        details: Workflow specific context (changed flags, batch ids, error)
        success: Whether the workflow completed
        user_ids: Local ids affected by the workflow
        remote: REMOTE_SYNCED, REMOTE_SKIPPED, REMOTE_FAILED or None
    """
    event = UserEvent(
        event_type,
        username,
        operator=operator,
        success=success,
        user_ids=tuple(user_ids),
        remote=remote,
        details=dict(details or {}),
    )
    default_trail().append(event)


def safe_log_user_event(
    event_type: str,
    username: str,
    *,
    operator: str = "system",
    details: dict[str, Any] | None = None,
    success: bool = True,
    user_ids: Iterable[int] = (),
    remote: str | None = None,
) -> bool:
    """Like log_user_event, but reports failures through logging instead of raising."""
    try:
        log_user_event(
            event_type,
            username,
            operator=operator,
            details=details,
            success=success,
            user_ids=user_ids,
            remote=remote,
        )
        return True
    except Exception as e:
        logger.warning("[audit] Failed to log %s event for %s: %s", event_type, username, e)
        return False


def verify_report() -> VerifyReport:
    return default_trail().verify()

