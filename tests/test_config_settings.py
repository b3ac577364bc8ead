import pytest

from app.config import settings
from app.config.settings import _get_or_generate

ENV_VARS = [
    "DATABASE_URL", "REDIS_URL", "REMOTE_ADMIN_URL", "REMOTE_ADMIN_TOKEN", "REMOTE_ADMIN_TIMEOUT",
    "RESERVED_ID_THRESHOLD", "ONLINE_KEY_PREFIX", "LOG_LEVEL", "AUDIT_LOG_SIGNING_KEY",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(settings, "SECRETS_DIR", tmp_path)
    return tmp_path


def test_demo_mode_uses_local_defaults(monkeypatch, clean_env):
    monkeypatch.setenv("DEMO_MODE", "true")
    cfg = settings.load_settings()

    assert cfg.demo_mode is True
    assert cfg.database_url == settings.DEMO_DATABASE_URL
    assert cfg.redis_url == settings.DEMO_REDIS_URL
    assert cfg.remote_admin_url == "http://localhost:8013/ljadmin"
    assert cfg.remote_timeout == 5.0
    assert cfg.reserved_id_threshold == 1000
    assert cfg.online_key_prefix == "online-token-"
    assert cfg.audit_log_signing_key == settings.DEMO_AUDIT_SIGNING_KEY


def test_production_requires_database_url(monkeypatch, clean_env):
    monkeypatch.setenv("DEMO_MODE", "false")
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        settings.load_settings()


def test_production_reads_environment(monkeypatch, clean_env):
    monkeypatch.setenv("DEMO_MODE", "false")
    monkeypatch.setenv("DATABASE_URL", "postgresql://db/users")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/1")
    monkeypatch.setenv("REMOTE_ADMIN_URL", "https://remote.example/ljadmin/")
    monkeypatch.setenv("REMOTE_ADMIN_TIMEOUT", "2.5")
    monkeypatch.setenv("RESERVED_ID_THRESHOLD", "500")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    cfg = settings.load_settings()

    assert cfg.demo_mode is False
    assert cfg.database_url == "postgresql://db/users"
    assert cfg.remote_admin_url == "https://remote.example/ljadmin"
    assert cfg.remote_timeout == 2.5
    assert cfg.reserved_id_threshold == 500
    assert cfg.log_level == "DEBUG"
    assert cfg.audit_log_signing_key == ""


def test_invalid_timeout_is_rejected(monkeypatch, clean_env):
    monkeypatch.setenv("DEMO_MODE", "true")
    monkeypatch.setenv("REMOTE_ADMIN_TIMEOUT", "soon")
    with pytest.raises(RuntimeError, match="REMOTE_ADMIN_TIMEOUT"):
        settings.load_settings()


def test_secret_file_takes_priority(monkeypatch, clean_env):
    (clean_env / "remote_admin_token").write_text("file-token\n")
    monkeypatch.setenv("REMOTE_ADMIN_TOKEN", "env-token")
    monkeypatch.setenv("DEMO_MODE", "true")

    assert settings.load_settings().remote_admin_token == "file-token"


def test_secret_falls_back_to_env(monkeypatch, clean_env):
    monkeypatch.setenv("REMOTE_ADMIN_TOKEN", "env-token")
    assert settings._load_secret_from_file("remote_admin_token", "REMOTE_ADMIN_TOKEN") == "env-token"


def test_secret_missing(clean_env):
    assert settings._load_secret_from_file("remote_admin_token", "REMOTE_ADMIN_TOKEN") is None


def test_get_or_generate_uses_demo_default(monkeypatch):
    monkeypatch.delenv("SAMPLE_VAR", raising=False)
    assert _get_or_generate("SAMPLE_VAR", demo_default="demo", demo_mode=True) == "demo"


def test_get_or_generate_optional(monkeypatch):
    monkeypatch.delenv("OPTIONAL_VAR", raising=False)
    assert _get_or_generate("OPTIONAL_VAR", required=False) == ""


def test_get_or_generate_missing_required(monkeypatch):
    monkeypatch.delenv("REQUIRED_VAR", raising=False)
    with pytest.raises(RuntimeError):
        _get_or_generate("REQUIRED_VAR", required=True, demo_mode=False)
