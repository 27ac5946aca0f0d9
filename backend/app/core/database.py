from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings


def _engine_kwargs(db_url: str) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if db_url.startswith("sqlite"):
        # aiosqlite 在线程中执行，同一连接会跨线程使用
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs.update(pool_size=20, max_overflow=10)
    return kwargs


engine = create_async_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))

# expire_on_commit=False：提交后仍可读取 ORM 对象（路由序列化响应时需要）
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI 依赖：每个请求一个 Session，事务边界由 Service 控制。"""
    async with AsyncSessionLocal() as session:
        yield session
