"""
测试配置与 fixtures（API 层）

- 覆盖 get_db 依赖，路由使用测试内的 SQLite
- 直接签发真实 JWT 作为管理员/普通用户 token
- LinuxDo 上游接口通过 monkeypatch 替换
"""
from collections.abc import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.core.config import settings
from app.core.database import get_db
from app.models import User
from app.services.users import oauth_linuxdo_service as oauth_svc
from app.utils.security import create_access_token
from main import app


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_db, None)


async def _add_user(session_factory, *, username: str, is_superuser: bool, is_active: bool = True) -> User:
    async with session_factory() as session:
        user = User(id=uuid4(), username=username, is_superuser=is_superuser, is_active=is_active)
        session.add(user)
        await session.commit()
        return user


@pytest_asyncio.fixture
async def admin_user(session_factory) -> User:
    return await _add_user(session_factory, username="Admin", is_superuser=True)


@pytest_asyncio.fixture
async def normal_user(session_factory) -> User:
    return await _add_user(session_factory, username="Test User", is_superuser=False)


@pytest.fixture
def admin_headers(admin_user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(admin_user.id)}"}


@pytest.fixture
def user_headers(normal_user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(normal_user.id)}"}


@pytest.fixture
def linuxdo_enabled(monkeypatch):
    monkeypatch.setattr(settings, "LINUXDO_OAUTH_ENABLED", True)
    monkeypatch.setattr(settings, "LINUXDO_CLIENT_ID", "dummy-client")
    monkeypatch.setattr(settings, "LINUXDO_CLIENT_SECRET", "dummy-secret")
    monkeypatch.setattr(settings, "LINUXDO_REDIRECT_URI", "https://example.com/callback")


@pytest.fixture
def linuxdo_profile(monkeypatch, linuxdo_enabled):
    """替换 token 交换与用户信息接口，返回可修改的 profile 字段。"""
    profile = {"external_id": "ext-uid-1", "username": "linuxdo_user"}

    async def fake_exchange(client, code):
        return oauth_svc.LinuxDoToken("atk", "Bearer", 3600)

    async def fake_profile(client, token):
        return oauth_svc.LinuxDoUserProfile(
            external_id=profile["external_id"],
            username=profile["username"],
            display_name="LinuxDo User",
            avatar_url="https://example.com/avatar.png",
            is_active=True,
        )

    monkeypatch.setattr(oauth_svc, "_exchange_code", fake_exchange)
    monkeypatch.setattr(oauth_svc, "_fetch_profile", fake_profile)
    return profile
