"""
Auth 依赖

认证模式：JWT Bearer Token（Authorization: Bearer <token>）

依赖使用：
- get_current_user: 获取当前用户
- get_current_active_user: 确保用户已激活
"""
import uuid

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.logging import logger
from app.models import User
from app.repositories import UserRepository
from app.utils.security import decode_token


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _get_user_from_jwt(
    token: str,
    db: AsyncSession,
) -> User:
    """从 JWT token 解析并验证用户"""
    try:
        payload = decode_token(token)
    except ValueError as e:
        logger.warning("jwt_decode_failed", extra={"error": str(e)})
        raise _unauthorized("Invalid token")

    # 验证 token 类型
    if payload.get("type") != "access":
        raise _unauthorized("Invalid token type")

    jti = payload.get("jti")
    user_id_str = payload.get("sub")
    if not jti or not user_id_str:
        raise _unauthorized("Invalid token payload")

    try:
        user_uuid = uuid.UUID(user_id_str)
    except ValueError:
        raise _unauthorized("Invalid user id in token")

    user = await UserRepository(db).get_by_id(user_uuid)
    if not user:
        raise _unauthorized("User not found")

    return user


async def get_current_user(
    db: AsyncSession = Depends(get_db),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> User:
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:]  # 移除 "Bearer " 前缀
        return await _get_user_from_jwt(token, db)

    raise _unauthorized("Missing authentication credentials")


async def get_current_active_user(
    user: User = Depends(get_current_user),
) -> User:
    """确保用户已激活"""
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is not activated",
        )
    return user
