"""认证相关 Pydantic Schema"""

from typing import Literal

from pydantic import Field

from app.schemas.base import BaseSchema


class OAuthCallbackRequest(BaseSchema):
    """LinuxDo OAuth 回调请求"""

    code: str = Field(..., description="授权码")
    state: str | None = Field(None, description="state 参数")


class OAuthCallbackResponse(BaseSchema):
    """
    LinuxDo OAuth 回调响应

    需要邀请码时 message 为 "NEED_INVITE_CODE:<提示>"，兼容旧客户端。
    """

    success: bool
    outcome: Literal["admitted", "needs_invite_code"]
    message: str = ""
    prompt: str | None = Field(None, description="需要邀请码时的提示文本")
    user_id: str | None = Field(None, description="用户 ID")
    access_token: str | None = Field(None, description="访问令牌")
    token_type: str | None = Field(None, description="令牌类型")
    expires_in: int | None = Field(None, description="访问令牌有效期（秒）")


class OAuthInviteCodeRequest(BaseSchema):
    """OAuth 注册前设置邀请码"""

    invite_code: str = Field(..., max_length=64, description="邀请码")


class OAuthAuthorizeUrlResponse(BaseSchema):
    authorize_url: str = Field(..., description="重新发起授权的跳转地址")
