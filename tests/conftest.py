from __future__ import annotations

import pytest

_ENVIRONMENT = (
    "SUPABASE_URL",
    "SUPABASE_PROJECT_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "SUPABASE_ANON_KEY",
    "SUPABASE_API_KEY",
    "SUPABASE_DB_POOL_URL",
    "UPSTASH_REDIS_URL",
    "STUDENTS_TABLE",
    "FLASK_ENV",
    "SESSION_COOKIE_SECURE",
)


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Run every test against local storage in a fresh temporary directory."""

    for name in _ENVIRONMENT:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("STORAGE_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("LOCAL_DATABASE_URI", f"sqlite:///{tmp_path / 'sessions.db'}")
    monkeypatch.setenv("FLASK_SECRET_KEY", "testing-secret")
    yield tmp_path
