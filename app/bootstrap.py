"""Process wiring: logging, database engine, Redis and the user service."""
from __future__ import annotations
import logging
import sys
from pathlib import Path

import redis
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.config import AppConfig
from app.core.cache import UserCache
from app.core.models import Base
from app.core.remote import RemoteAdminClient, RemoteUserService
from app.core.repository import UserRepository
from app.core.sessions import OnlineSessionService
from app.core.user_service import UserService

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(cfg: AppConfig) -> None:
    """Install a single stderr handler at the configured level."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(getattr(logging, cfg.log_level, logging.INFO))


def make_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        db_path = database_url.split("///", 1)[-1]
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)


def init_schema(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(bind=engine)


def make_session(engine: Engine) -> Session:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


def create_user_service(cfg: AppConfig, session: Session | None = None) -> UserService:
    """Build a UserService wired to the configured database, Redis and remote system."""
    if session is None:
        engine = make_engine(cfg.database_url)
        init_schema(engine)
        session = make_session(engine)

    redis_client = redis.Redis.from_url(cfg.redis_url, decode_responses=True)
    client = RemoteAdminClient(cfg.remote_admin_url, token=cfg.remote_admin_token or None, timeout=cfg.remote_timeout)

    return UserService(
        repository=UserRepository(session),
        remote=RemoteUserService(client, cfg.reserved_id_threshold),
        cache=UserCache(redis_client),
        sessions=OnlineSessionService(redis_client, cfg.online_key_prefix),
    )
