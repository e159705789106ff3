"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-with-at-least-32-bytes!")
os.environ.setdefault("SECURITY__PASSWORD_PEPPER", "test-pepper")
os.environ.setdefault("SECURITY__ALLOWED_ORIGINS", "http://localhost:3000,https://*.example.com")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from core.security import create_access_token  # noqa: E402


@pytest.fixture
def app():
    from main import create_app

    return create_app()


@pytest.fixture
def client(app):
    # 兜底的 Exception 处理器位于 ServerErrorMiddleware，响应后会重新抛出
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def auth_headers():
    token = create_access_token("alice", roles=["user"])
    return {"Authorization": f"Bearer {token}"}
