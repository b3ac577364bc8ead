"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

SECRETS_DIR = Path("/run/secrets")

DEFAULT_REMOTE_ADMIN_URL = "http://localhost:8013/ljadmin"
DEMO_DATABASE_URL = "sqlite:///.runtime/usersync.db"
DEMO_REDIS_URL = "redis://localhost:6379/0"
DEMO_AUDIT_SIGNING_KEY = "demo-audit-signing-key-change-in-production"


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback

    Returns:
        Secret value or None if not found
    """
    secret_file = SECRETS_DIR / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                logger.info("[settings] Loaded %s from %s", secret_name, SECRETS_DIR)
                return secret_value
        except OSError as e:
            logger.warning("[settings] Failed to read %s/%s: %s", SECRETS_DIR, secret_name, e)

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            logger.info("[settings] Loaded %s from environment (fallback)", env_var)
            return secret_value

    return None


@dataclass
class AppConfig:
    """Application configuration container."""
    # Mode
    demo_mode: bool

    # Local store and cache
    database_url: str
    redis_url: str

    # Remote user-management system
    remote_admin_url: str = DEFAULT_REMOTE_ADMIN_URL
    remote_admin_token: str = ""
    remote_timeout: float = 5.0
    reserved_id_threshold: int = 1000

    # Sessions
    online_key_prefix: str = "online-token-"

    # Logging
    log_level: str = "INFO"

    # Audit
    audit_log_signing_key: str = ""


def _get_or_generate(var_name: str, demo_default: Optional[str] = None, required: bool = True, demo_mode: bool = False) -> str:
    """Get environment variable or use demo default."""
    value = os.environ.get(var_name)
    if value:
        return value

    if demo_mode and demo_default is not None:
        logger.info("[demo-mode] Using default for %s", var_name)
        os.environ[var_name] = demo_default
        return demo_default

    if not required:
        return ""

    raise RuntimeError(f"Environment variable {var_name} is required in production mode.")


def _get_number(var_name: str, default, cast):
    raw = os.environ.get(var_name, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {var_name} must be numeric, got {raw!r}")


def load_settings() -> AppConfig:
    """Load application settings from environment and /run/secrets."""
    demo_mode = os.environ.get("DEMO_MODE", "false").lower() == "true"

    database_url = _get_or_generate("DATABASE_URL", demo_default=DEMO_DATABASE_URL, demo_mode=demo_mode)
    redis_url = _get_or_generate("REDIS_URL", demo_default=DEMO_REDIS_URL, demo_mode=demo_mode)

    remote_admin_url = os.environ.get("REMOTE_ADMIN_URL", DEFAULT_REMOTE_ADMIN_URL).rstrip("/")
    remote_admin_token = _load_secret_from_file("remote_admin_token", "REMOTE_ADMIN_TOKEN") or ""
    remote_timeout = _get_number("REMOTE_ADMIN_TIMEOUT", 5.0, float)
    if remote_timeout <= 0:
        raise RuntimeError("REMOTE_ADMIN_TIMEOUT must be > 0")
    reserved_id_threshold = _get_number("RESERVED_ID_THRESHOLD", 1000, int)

    online_key_prefix = os.environ.get("ONLINE_KEY_PREFIX", "online-token-")
    log_level = os.environ.get("LOG_LEVEL", "INFO").strip().upper()

    # Audit log signing key
    audit_log_signing_key = _load_secret_from_file("audit_log_signing_key", "AUDIT_LOG_SIGNING_KEY")
    if audit_log_signing_key:
        os.environ["AUDIT_LOG_SIGNING_KEY"] = audit_log_signing_key
    elif demo_mode:
        audit_log_signing_key = os.environ.get("AUDIT_LOG_SIGNING_KEY_DEMO", DEMO_AUDIT_SIGNING_KEY)
        os.environ["AUDIT_LOG_SIGNING_KEY"] = audit_log_signing_key
        logger.info("[demo-mode] Using demo AUDIT_LOG_SIGNING_KEY")
    else:
        audit_log_signing_key = ""

    mode_label = "DEMO" if demo_mode else "PRODUCTION"
    logger.info("[settings] Mode=%s; remote=%s; timeout=%ss", mode_label, remote_admin_url, remote_timeout)

    if demo_mode:
        logger.warning("[settings] Demo defaults in use. Do not deploy with these defaults.")

    return AppConfig(
        demo_mode=demo_mode,
        database_url=database_url,
        redis_url=redis_url,
        remote_admin_url=remote_admin_url,
        remote_admin_token=remote_admin_token,
        remote_timeout=remote_timeout,
        reserved_id_threshold=reserved_id_threshold,
        online_key_prefix=online_key_prefix,
        log_level=log_level,
        audit_log_signing_key=audit_log_signing_key,
    )
