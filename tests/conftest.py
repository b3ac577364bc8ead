"""Pytest shared fixtures: in-memory database, Redis double and remote double."""
import fnmatch
import json
import os
import pathlib
import sys
from typing import Optional
from unittest.mock import MagicMock

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Configure test environment BEFORE any app imports
os.environ.setdefault("DEMO_MODE", "true")

import pytest
import requests
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.areas import AreaScope
from app.core.cache import UserCache
from app.core.models import Base, Dept, Job, Role, User, UserArea
from app.core.remote import RemoteSyncResult, RemoteUserService
from app.core.remote.envelope import EnvelopeShape
from app.core.repository import UserRepository
from app.core.sessions import OnlineSessionService
from app.core.user_service import UserService


# ─────────────────────────────────────────────────────────────────────────────
# Network Guard Rails
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
def _block_network(monkeypatch, request):
    """Fail any unit test that reaches for the real remote system."""
    if request.node.get_closest_marker("integration"):
        return

    def _stub_post(url, *args, **kwargs):
        raise RuntimeError(f"Unexpected HTTP POST in unit test: {url}")

    def _stub_get(url, *args, **kwargs):
        raise RuntimeError(f"Unexpected HTTP GET in unit test: {url}")

    monkeypatch.setattr(requests, "post", _stub_post)
    monkeypatch.setattr(requests, "get", _stub_get)


# ─────────────────────────────────────────────────────────────────────────────
# Database
# ─────────────────────────────────────────────────────────────────────────────
ROLE_LEVELS = {1: ("admin", 1), 2: ("manager", 2), 3: ("operator", 3)}


@pytest.fixture()
def db_session():
    """Fresh in-memory SQLite session with seeded roles, depts and jobs."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()

    for role_id, (name, level) in ROLE_LEVELS.items():
        session.add(Role(id=role_id, name=name, level=level))
    session.add_all([Dept(id=1, name="Operations"), Dept(id=2, name="Finance")])
    session.add_all([Job(id=1, name="Engineer"), Job(id=2, name="Auditor")])
    session.commit()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def add_user(
    session,
    user_id: int,
    username: str,
    role_ids=(3,),
    areas=(),
    enabled: bool = True,
    phone: Optional[str] = None,
    nick_name: Optional[str] = None,
    dept_id: Optional[int] = 1,
    mirrored: Optional[bool] = None,
    email: Optional[str] = None,
) -> User:
    """Insert a user directly, bypassing the service."""
    user = User(
        id=user_id,
        username=username,
        nick_name=nick_name or username.title(),
        phone=phone or f"1380000{user_id:04d}",
        email=email or f"{username}@example.com",
        gender="男",
        enabled=enabled,
        mirrored=user_id >= 1000 if mirrored is None else mirrored,
        dept_id=dept_id,
        primary_role_id=role_ids[0] if role_ids else None,
    )
    user.roles = [session.get(Role, role_id) for role_id in role_ids]
    user.areas = [UserArea.from_scope(AreaScope.from_units(units)) for units in areas]
    session.add(user)
    session.commit()
    return user


@pytest.fixture()
def seeded_users(db_session):
    """A small population spread across provinces, cities and role levels."""
    return {
        "alice": add_user(db_session, 1001, "alice", role_ids=(2,), areas=[(1, 3, 5)]),
        "bob": add_user(db_session, 1002, "bob", role_ids=(2, 3), areas=[(1, 3, 6)]),
        "carol": add_user(db_session, 1003, "carol", role_ids=(3,), areas=[(1, 4)]),
        "dave": add_user(db_session, 1004, "dave", role_ids=(3,), areas=[(2, 7, 8)]),
        "eve": add_user(db_session, 5, "eve", role_ids=(1,), areas=[(1,)]),
        "frank": add_user(db_session, 1006, "frank", role_ids=(2, 3), areas=[(1, 3, 5), (1, 4)],
                          enabled=False),
    }


# ─────────────────────────────────────────────────────────────────────────────
# Redis double
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def fake_redis():
    """MagicMock Redis backed by a dict. ``deleted_keys`` lists every key passed to DEL."""
    store = {}
    client = MagicMock()
    client.store = store
    client.deleted_keys = []

    def _delete(*keys):
        client.deleted_keys.extend(keys)
        return sum(1 for key in keys if store.pop(key, None) is not None)

    def _scan_iter(match=None, **kwargs):
        return [key for key in list(store) if match is None or fnmatch.fnmatchcase(key, match)]

    client.get.side_effect = store.get
    client.set.side_effect = lambda key, value, **kwargs: store.__setitem__(key, value)
    client.delete.side_effect = _delete
    client.scan_iter.side_effect = _scan_iter
    return client


def add_online_session(client, token: str, username: str, prefix: str = "online-token-") -> str:
    key = f"{prefix}{token}"
    client.store[key] = json.dumps({"userName": username, "ip": "127.0.0.1"})
    return key


# ─────────────────────────────────────────────────────────────────────────────
# Remote double
# ─────────────────────────────────────────────────────────────────────────────
class RecordingRemoteClient:
    """Stands in for RemoteAdminClient: records calls and answers from a script.

    ``responses`` maps a path to a RemoteSyncResult or an exception to raise.
    Creation answers with sequential ids starting at ``next_id`` by default.
    """

    def __init__(self, next_id: int = 2001):
        self.calls = []
        self.responses = {}
        self.next_id = next_id

    def post(self, path, json=None):
        self.calls.append((path, dict(json or {})))
        scripted = self.responses.get(path)
        if isinstance(scripted, Exception):
            raise scripted
        if scripted is not None:
            return scripted
        if path == "/user/addUser":
            user_id = self.next_id
            self.next_id += 1
            return RemoteSyncResult(200, "ok", f'{{"userId": {user_id}}}', EnvelopeShape.STATUS_MESSAGE)
        return RemoteSyncResult(200, "ok", None, EnvelopeShape.STATUS_MESSAGE)

    def paths(self):
        return [path for path, _ in self.calls]

    def calls_to(self, path):
        return [payload for called, payload in self.calls if called == path]


@pytest.fixture()
def remote_client():
    return RecordingRemoteClient()


@pytest.fixture()
def audit_logger():
    return MagicMock(return_value=True)


@pytest.fixture()
def service(db_session, remote_client, fake_redis, audit_logger):
    """UserService wired to the in-memory database and the doubles."""
    return UserService(
        repository=UserRepository(db_session),
        remote=RemoteUserService(remote_client, reserved_id_threshold=1000),
        cache=UserCache(fake_redis),
        sessions=OnlineSessionService(fake_redis),
        audit_logger=audit_logger,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (requires running stack)"
    )
