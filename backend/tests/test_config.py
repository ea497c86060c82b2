import pytest

from carecircle.core.config import get_settings


def test_postgres_scheme_is_normalized(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://care:pw@db/care")
    assert get_settings().database.url == "postgresql://care:pw@db/care"


def test_database_url_is_required(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError):
        get_settings()


def test_production_refuses_default_secret(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("JWT_SECRET", "dev-secret")
    with pytest.raises(RuntimeError):
        get_settings()


def test_default_role_is_validated(monkeypatch):
    monkeypatch.setenv("DEFAULT_ROLE", "family")
    assert get_settings().default_role == "FAMILY"

    monkeypatch.setenv("DEFAULT_ROLE", "ADMIN")
    with pytest.raises(RuntimeError):
        get_settings()


def test_numeric_settings_must_be_integers(monkeypatch):
    monkeypatch.setenv("DB_POOL_SIZE", "ten")
    with pytest.raises(RuntimeError):
        get_settings()


def test_secret_log_fields_from_csv(monkeypatch):
    monkeypatch.setenv("LOG_SECRET_FIELDS", "Password, api_key ,")
    assert get_settings().logging.secret_fields == ("password", "api_key")
