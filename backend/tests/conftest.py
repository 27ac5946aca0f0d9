"""
测试全局配置

- 默认禁用真实 Redis 连接，统一使用内存 DummyRedis
- 数据库使用 sqlite+aiosqlite，每个测试独立建库，避免状态串扰
- 该文件在 backend/tests 下的所有测试生效
"""
from __future__ import annotations

import os
import sys
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

# 确保 backend/ 在 sys.path，便于导入 app.* 与 main
BASE_DIR = Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

# 测试环境不读取外部 Redis/PostgreSQL，日志不落盘
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_FILE_PATH", "")
os.environ.setdefault("LOG_ASYNC", "false")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.cache import cache
from app.core.config import settings
from app.models import Base

settings.REDIS_URL = ""


class DummyRedis:
    """
    轻量内存 Redis 替身，覆盖 CacheService 用到的方法：
    - get/set/delete/exists/flushall
    - 提供 store 属性，便于断言
    """

    def __init__(self):
        self.store: dict[str, Any] = {}

    async def get(self, key: str):
        return self.store.get(key)

    async def set(self, key: str, value, ex=None, nx: bool | None = None):
        if nx and key in self.store:
            return False
        self.store[key] = value
        return True

    async def delete(self, *keys):
        removed = 0
        for k in keys:
            removed += 1 if self.store.pop(k, None) is not None else 0
        return removed

    async def exists(self, *keys):
        return sum(1 for k in keys if k in self.store)

    async def flushall(self):
        self.store.clear()

    async def close(self):
        return None


# 将 CacheService 指向内存 Redis
cache._redis = DummyRedis()  # type: ignore[assignment]


@pytest_asyncio.fixture(autouse=True)
async def _reset_dummy_redis():
    """每个测试前清空内存 Redis（OAuth state 等）。"""
    await cache._redis.flushall()  # type: ignore[union-attr]
    yield


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def async_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as sess:
        yield sess
