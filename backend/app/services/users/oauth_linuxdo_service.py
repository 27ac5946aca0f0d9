"""
LinuxDo OAuth 登录服务（邀请码注册闸门的服务端一侧）。

职责：
- 生成授权跳转 URL（state 一次性写入 Redis，可携带邀请码）
- 设置邀请码：只校验不消费，并返回新的授权 URL（不重放旧授权码）
- 使用授权码换取 access token 并拉取 LinuxDo 用户信息
- 通过 UserProvisioningService 创建/绑定本地用户
- 以 OAuthOutcome 标签联合返回结果，需要邀请码时保留旧协议字符串
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Any, Union

import httpx
from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import cache
from app.core.cache_keys import CacheKeys
from app.core.config import settings
from app.core.logging import logger
from app.repositories import InviteCodeRepository, SystemSettingRepository
from app.services.users.invite_code_service import InviteCodeService
from app.services.users.registration_policy import InviteCodeRequiredError
from app.services.users.registration_settings_service import RegistrationSettingsService
from app.services.users.user_provisioning_service import UserProvisioningService
from app.utils.time_utils import Datetime

LINUXDO_PROVIDER = "linuxdo"
NEED_INVITE_CODE_PREFIX = "NEED_INVITE_CODE:"


class LinuxDoOAuthError(HTTPException):
    """封装 OAuth 相关错误为 HTTPException，便于路由捕获。"""

    def __init__(self, detail: str, status_code: int = status.HTTP_400_BAD_REQUEST):
        super().__init__(status_code=status_code, detail=detail)


@dataclass(frozen=True)
class Admitted:
    user: Any = None


@dataclass(frozen=True)
class NeedsInviteCode:
    prompt: str


@dataclass(frozen=True)
class GenericFailure:
    message: str


OAuthOutcome = Union[Admitted, NeedsInviteCode, GenericFailure]


def to_legacy_message(outcome: OAuthOutcome) -> str:
    """转换为旧客户端可识别的 message 字符串。"""
    if isinstance(outcome, NeedsInviteCode):
        return f"{NEED_INVITE_CODE_PREFIX}{outcome.prompt}"
    if isinstance(outcome, GenericFailure):
        return outcome.message
    return ""


def parse_exchange_message(message: str) -> NeedsInviteCode | GenericFailure:
    """把旧协议的失败 message 解析回标签联合。"""
    if message.startswith(NEED_INVITE_CODE_PREFIX):
        return NeedsInviteCode(prompt=message[len(NEED_INVITE_CODE_PREFIX):])
    return GenericFailure(message=message)


@dataclass
class LinuxDoToken:
    access_token: str
    token_type: str
    expires_in: int | None


@dataclass
class LinuxDoUserProfile:
    external_id: str
    username: str | None
    display_name: str | None
    avatar_url: str | None
    is_active: bool


def _ensure_enabled() -> None:
    if not settings.LINUXDO_OAUTH_ENABLED:
        raise LinuxDoOAuthError("LinuxDo OAuth 尚未启用", status.HTTP_503_SERVICE_UNAVAILABLE)

    required = {
        "LINUXDO_CLIENT_ID": settings.LINUXDO_CLIENT_ID,
        "LINUXDO_CLIENT_SECRET": settings.LINUXDO_CLIENT_SECRET,
        "LINUXDO_REDIRECT_URI": settings.LINUXDO_REDIRECT_URI,
    }
    missing = [k for k, v in required.items() if not v]
    if missing:
        raise LinuxDoOAuthError(
            f"LinuxDo OAuth 配置缺失: {', '.join(missing)}",
            status.HTTP_503_SERVICE_UNAVAILABLE,
        )


async def build_authorize_url(invite_code: str | None = None) -> str:
    """生成携带 state 的授权 URL，并将 state 写入 Redis 以防重放。

    invite_code（如有）随 state 一起缓存，回调时取出并在注册事务内消费。
    """

    _ensure_enabled()
    state = secrets.token_urlsafe(32)
    await cache.set(
        CacheKeys.oauth_linuxdo_state(state),
        {
            "provider": LINUXDO_PROVIDER,
            "created_at": Datetime.now(),
            "invite_code": invite_code,
        },
        ttl=settings.OAUTH_STATE_TTL_SECONDS,
    )

    base = httpx.URL(settings.LINUXDO_AUTHORIZE_ENDPOINT)
    params = dict(base.params)
    params.update(
        {
            "client_id": settings.LINUXDO_CLIENT_ID,
            "redirect_uri": settings.LINUXDO_REDIRECT_URI,
            "response_type": "code",
            "state": state,
        }
    )
    return str(base.copy_with(params=params))


async def prepare_invite_code(*, db: AsyncSession, invite_code: str | None) -> str:
    """
    设置 OAuth 注册用的邀请码。

    只做可用性校验（不消费），邀请码无效时抛 InviteCodeError 子类；
    校验通过后返回新的授权 URL，客户端需重新走一遍授权。
    """
    code = (invite_code or "").strip()
    if not code:
        raise LinuxDoOAuthError("邀请码不能为空")

    invite_repo = InviteCodeRepository(db)
    settings_service = RegistrationSettingsService(SystemSettingRepository(db), invite_repo)
    if not await settings_service.is_invite_registration_enabled():
        raise LinuxDoOAuthError("未开启邀请码注册")

    await InviteCodeService(invite_repo).check(code)
    logger.info("oauth_invite_code_prepared", extra={"provider": LINUXDO_PROVIDER, "code": code})
    return await build_authorize_url(invite_code=code)


async def complete_oauth(
    *,
    db: AsyncSession,
    client: httpx.AsyncClient,
    code: str,
    state: str | None,
) -> Admitted | NeedsInviteCode:
    """完成 LinuxDo OAuth 流程。

    - 校验 state 并提取 invite_code
    - 换取用户信息
    - 通过统一的 UserProvisioning 管线创建/绑定用户
    需要邀请码时返回 NeedsInviteCode；其余失败以异常抛出。
    """

    _ensure_enabled()
    if not code:
        raise LinuxDoOAuthError("缺少授权码参数")
    if not state:
        raise LinuxDoOAuthError("缺少 state 参数")

    state_data = await _consume_state(state)
    invite_code = state_data.get("invite_code")

    token = await _exchange_code(client, code)
    profile = await _fetch_profile(client, token.access_token)

    provisioner = UserProvisioningService(db)
    try:
        user = await provisioner.provision_user(
            provider=LINUXDO_PROVIDER,
            external_id=profile.external_id,
            username=profile.display_name or profile.username,
            avatar_url=profile.avatar_url,
            is_active=profile.is_active,
            invite_code=invite_code,
        )
    except InviteCodeRequiredError as exc:
        logger.info("oauth_needs_invite_code", extra={"provider": LINUXDO_PROVIDER, "external_id": profile.external_id})
        return NeedsInviteCode(prompt=exc.prompt)

    return Admitted(user=user)


async def _consume_state(state: str) -> dict:
    stored = await cache.pop(CacheKeys.oauth_linuxdo_state(state))

    if not stored or stored.get("provider") != LINUXDO_PROVIDER:
        raise LinuxDoOAuthError("state 无效或已过期")

    return stored


async def _exchange_code(client: httpx.AsyncClient, code: str) -> LinuxDoToken:
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": settings.LINUXDO_REDIRECT_URI,
        "client_id": settings.LINUXDO_CLIENT_ID,
        "client_secret": settings.LINUXDO_CLIENT_SECRET,
    }

    try:
        resp = await client.post(settings.LINUXDO_TOKEN_ENDPOINT, data=data, headers={"Content-Type": "application/x-www-form-urlencoded"})
    except httpx.HTTPError as exc:  # pragma: no cover
        raise LinuxDoOAuthError(f"LinuxDo token 接口请求失败: {exc}", status.HTTP_502_BAD_GATEWAY)

    if resp.status_code >= 400:
        raise LinuxDoOAuthError(
            f"LinuxDo token 接口返回错误状态 {resp.status_code}",
            status.HTTP_502_BAD_GATEWAY,
        )

    try:
        payload: dict[str, Any] = resp.json()
    except ValueError as exc:
        raise LinuxDoOAuthError("LinuxDo token 接口返回非 JSON 数据", status.HTTP_502_BAD_GATEWAY) from exc

    access_token = payload.get("access_token")
    if not isinstance(access_token, str):
        raise LinuxDoOAuthError("LinuxDo token 接口缺少 access_token", status.HTTP_502_BAD_GATEWAY)

    token_type = payload.get("token_type") or "Bearer"
    expires_in = payload.get("expires_in")
    try:
        expires = int(expires_in) if expires_in is not None else None
    except (TypeError, ValueError):  # pragma: no cover - 容忍非整数
        expires = None

    return LinuxDoToken(access_token=access_token, token_type=str(token_type), expires_in=expires)


async def _fetch_profile(client: httpx.AsyncClient, access_token: str) -> LinuxDoUserProfile:
    headers = {"Authorization": f"Bearer {access_token}"}
    try:
        resp = await client.get(settings.LINUXDO_USERINFO_ENDPOINT, headers=headers)
    except httpx.HTTPError as exc:  # pragma: no cover
        raise LinuxDoOAuthError(f"LinuxDo 用户信息接口请求失败: {exc}", status.HTTP_502_BAD_GATEWAY)

    if resp.status_code >= 400:
        raise LinuxDoOAuthError(
            f"LinuxDo 用户信息接口返回错误状态 {resp.status_code}",
            status.HTTP_502_BAD_GATEWAY,
        )

    try:
        payload: dict[str, Any] = resp.json()
    except ValueError as exc:
        raise LinuxDoOAuthError("LinuxDo 用户信息接口返回非 JSON 数据", status.HTTP_502_BAD_GATEWAY) from exc

    user_payload = payload.get("user") if isinstance(payload.get("user"), dict) else payload
    user_id = user_payload.get("id")
    if user_id is None:
        raise LinuxDoOAuthError("LinuxDo 用户信息缺少 id", status.HTTP_502_BAD_GATEWAY)

    username = user_payload.get("username")
    name = user_payload.get("name")
    is_active = user_payload.get("active", True)

    return LinuxDoUserProfile(
        external_id=str(user_id),
        username=str(username) if username else None,
        display_name=str(name) if name else (str(username) if username else None),
        avatar_url=_build_avatar_url(user_payload.get("avatar_template")),
        is_active=bool(is_active),
    )


def _build_avatar_url(template: Any) -> str | None:
    if not isinstance(template, str):
        return None
    url = template.replace("{size}", "240")
    if url.startswith("//"):
        url = f"https:{url}"
    return url


__all__ = [
    "Admitted",
    "GenericFailure",
    "LINUXDO_PROVIDER",
    "LinuxDoOAuthError",
    "NEED_INVITE_CODE_PREFIX",
    "NeedsInviteCode",
    "OAuthOutcome",
    "build_authorize_url",
    "complete_oauth",
    "parse_exchange_message",
    "prepare_invite_code",
    "to_legacy_message",
]
