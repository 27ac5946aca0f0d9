"""
认证 API (/api/v1/auth)

端点:
- GET /auth/oauth/linuxdo/authorize - 生成 LinuxDo 授权地址并重定向（可携带邀请码）
- POST /auth/oauth/invite_code - 设置注册邀请码，返回新的授权地址
- POST /auth/oauth/callback - 处理 LinuxDo OAuth 回调
"""
from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.invite_code_errors import invite_code_http_error
from app.core.config import settings
from app.core.database import get_db
from app.core.http_client import create_async_http_client
from app.schemas.auth import (
    OAuthAuthorizeUrlResponse,
    OAuthCallbackRequest,
    OAuthCallbackResponse,
    OAuthInviteCodeRequest,
)
from app.services.users.invite_code_service import InviteCodeError
from app.services.users.oauth_linuxdo_service import (
    NeedsInviteCode,
    build_authorize_url,
    complete_oauth,
    prepare_invite_code,
    to_legacy_message,
)
from app.utils.security import create_access_token

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.get("/oauth/linuxdo/authorize", status_code=307)
async def linuxdo_authorize(invite_code: str | None = None):
    """生成 LinuxDo 授权 URL 并 307 重定向，可携带邀请码。"""
    url = await build_authorize_url(invite_code.strip() if invite_code else None)
    return RedirectResponse(url, status_code=307)


@router.post("/oauth/invite_code", response_model=OAuthAuthorizeUrlResponse)
async def set_oauth_invite_code(
    payload: OAuthInviteCodeRequest,
    db: AsyncSession = Depends(get_db),
):
    """校验邀请码（不消费）并返回携带该邀请码的新授权地址。"""
    try:
        url = await prepare_invite_code(db=db, invite_code=payload.invite_code)
    except InviteCodeError as exc:
        raise invite_code_http_error(exc) from exc
    return OAuthAuthorizeUrlResponse(authorize_url=url)


@router.post("/oauth/callback", response_model=OAuthCallbackResponse)
async def linuxdo_callback(
    payload: OAuthCallbackRequest,
    db: AsyncSession = Depends(get_db),
):
    """处理 LinuxDo OAuth 回调：准入时签发 JWT，需要邀请码时返回旧协议 message。"""
    client = create_async_http_client()
    try:
        outcome = await complete_oauth(
            db=db,
            client=client,
            code=payload.code,
            state=payload.state,
        )
    except InviteCodeError as exc:
        raise invite_code_http_error(exc) from exc
    finally:
        await client.aclose()

    if isinstance(outcome, NeedsInviteCode):
        return OAuthCallbackResponse(
            success=False,
            outcome="needs_invite_code",
            message=to_legacy_message(outcome),
            prompt=outcome.prompt,
        )

    user = outcome.user
    return OAuthCallbackResponse(
        success=True,
        outcome="admitted",
        user_id=str(user.id),
        access_token=create_access_token(user.id),
        token_type="bearer",
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
