"""
Invite Gate - FastAPI Application Entry Point

启动命令:
    uvicorn main:app --reload --host 0.0.0.0 --port 8000
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core import cache, engine, settings, setup_logging
from app.models import Base


# 设置日志
setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    from app.core.logging import logger

    logger.info("application_startup", extra={"project": settings.PROJECT_NAME})
    try:
        cache.init()
    except Exception as exc:
        logger.warning(f"cache_init_failed: {exc}")

    # 表结构随模型创建（邀请码、系统设置、用户/身份）
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    await cache.close()
    await engine.dispose()
    logger.info("application_shutdown")


def create_app() -> FastAPI:
    """创建 FastAPI 应用"""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        lifespan=lifespan,
    )

    # CORS 配置
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=settings.BACKEND_CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.BACKEND_CORS_ALLOW_METHODS,
        allow_headers=settings.BACKEND_CORS_ALLOW_HEADERS,
    )

    # 注册路由
    register_routes(app)

    return app


def register_routes(app: FastAPI) -> None:
    """注册所有 API 路由"""
    from app.api.v1 import (
        admin_invite_codes_router,
        admin_settings_router,
        auth_router,
    )

    api_prefix = settings.API_V1_STR

    app.include_router(auth_router, prefix=api_prefix, tags=["Authentication"])
    app.include_router(admin_invite_codes_router, prefix=api_prefix, tags=["Admin - Invite Codes"])
    app.include_router(admin_settings_router, prefix=api_prefix, tags=["Admin - Settings"])


# 创建应用实例
app = create_app()


def run():
    """脚本入口点"""
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    run()
