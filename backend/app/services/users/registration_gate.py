"""
客户端注册闸门（OAuth 回调页的状态机）。

状态：idle -> exchanging -> {admitted | needs_invite_code | rejected | retrying}

- 普通失败按固定间隔重试，次数上限由 max_retries 注入
- 需要邀请码时停止自动重试，等待 submit_invite_code
- 提交邀请码成功后重新发起完整授权（旧授权码不可重放）
- dismiss() 同步取消：打断正在等待的重试，之后不再触发任何回调
"""
from __future__ import annotations

import asyncio
import enum
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from app.core.config import settings
from app.core.http_client import create_async_http_client
from app.core.logging import logger
from app.services.users.oauth_linuxdo_service import (
    Admitted,
    GenericFailure,
    NeedsInviteCode,
    OAuthOutcome,
    parse_exchange_message,
)

RETRY_MESSAGE = "登录出现错误，第 {count} 次重试中..."
REJECTED_MESSAGE = "登录失败，即将返回登录页"
REAUTHORIZING_MESSAGE = "邀请码已设置，正在重新授权..."
DEFAULT_NEEDS_INVITE_PROMPT = "需要邀请码"


class GateState(str, enum.Enum):
    IDLE = "idle"
    EXCHANGING = "exchanging"
    ADMITTED = "admitted"
    NEEDS_INVITE_CODE = "needs_invite_code"
    REJECTED = "rejected"
    RETRYING = "retrying"


class InviteCodeRejectedError(Exception):
    """账户服务拒绝了提交的邀请码，message 直接展示给用户。"""


ExchangeFn = Callable[[str, str | None], Awaitable[OAuthOutcome]]
SubmitInviteCodeFn = Callable[[str], Awaitable[None]]
ReauthorizeFn = Callable[[], Awaitable[tuple[str, str | None]]]
RedirectFn = Callable[[], None]
StatusFn = Callable[[str], None]


class RegistrationGate:
    def __init__(
        self,
        *,
        exchange: ExchangeFn,
        submit_invite_code: SubmitInviteCodeFn,
        reauthorize: ReauthorizeFn,
        redirect: RedirectFn,
        on_status: StatusFn | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ):
        self._exchange = exchange
        self._submit_invite_code = submit_invite_code
        self._reauthorize = reauthorize
        self._redirect = redirect
        self._on_status = on_status
        self.max_retries = settings.OAUTH_GATE_MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay = settings.OAUTH_GATE_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        self.state = GateState.IDLE
        self.attempt = 0
        self.prompt: str | None = None
        self.result: Admitted | None = None
        self._cancelled = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    async def run(self, auth_code: str, state: str | None) -> GateState:
        """用一组授权码/state 驱动一次完整的交换（含有限次重试）。"""
        self.attempt = 0
        while not self.cancelled:
            self._transition(GateState.EXCHANGING)
            outcome = await self._exchange(auth_code, state)
            if self.cancelled:
                break

            if isinstance(outcome, Admitted):
                self.attempt = 0
                self.prompt = None
                self.result = outcome
                self._transition(GateState.ADMITTED)
                return self.state

            if isinstance(outcome, NeedsInviteCode):
                self.prompt = outcome.prompt or DEFAULT_NEEDS_INVITE_PROMPT
                self._transition(GateState.NEEDS_INVITE_CODE)
                self._emit(self.prompt)
                return self.state

            if outcome.message:
                self._emit(outcome.message)

            if self.attempt < self.max_retries:
                self.attempt += 1
                self._transition(GateState.RETRYING)
                self._emit(RETRY_MESSAGE.format(count=self.attempt))
                logger.info(
                    "registration_gate_retry",
                    extra={"attempt": self.attempt, "max_retries": self.max_retries, "reason": outcome.message},
                )
                if not await self._sleep():
                    break
                continue

            self._transition(GateState.REJECTED)
            self._emit(REJECTED_MESSAGE)
            logger.info("registration_gate_rejected", extra={"attempts": self.attempt, "reason": outcome.message})
            if await self._sleep():
                self._redirect()
            return self.state

        return self.state

    async def submit_invite_code(self, invite_code: str) -> GateState:
        """提交邀请码；失败时保持 needs_invite_code 并把错误作为新提示。"""
        if self.state != GateState.NEEDS_INVITE_CODE:
            raise RuntimeError(f"invite code not expected in state {self.state.value}")

        try:
            await self._submit_invite_code(invite_code)
        except InviteCodeRejectedError as exc:
            self.prompt = str(exc) or DEFAULT_NEEDS_INVITE_PROMPT
            self._emit(self.prompt)
            return self.state
        if self.cancelled:
            return self.state

        self._emit(REAUTHORIZING_MESSAGE)
        auth_code, state = await self._reauthorize()
        if self.cancelled:
            return self.state
        return await self.run(auth_code, state)

    def dismiss(self) -> None:
        """用户关闭邀请码提示或离开页面。"""
        if self.cancelled or self.state == GateState.ADMITTED:
            return
        self._cancelled.set()
        self.prompt = None
        self._transition(GateState.REJECTED)
        self._redirect()

    async def _sleep(self) -> bool:
        """等待固定间隔；被取消时提前返回 False。"""
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=self.retry_delay)
        except TimeoutError:
            return True
        return False

    def _transition(self, state: GateState) -> None:
        logger.debug(f"registration gate {self.state.value} -> {state.value}")
        self.state = state

    def _emit(self, message: str) -> None:
        if self._on_status and not self.cancelled:
            self._on_status(message)


class HttpExchangeClient:
    """
    通过本服务的 /auth/oauth/* 接口实现闸门所需的三个协作方。

    authorize 负责浏览器侧的授权往返：拿到授权 URL，返回提供方回调带回的 (code, state)。
    """

    def __init__(
        self,
        base_url: str,
        *,
        authorize: Callable[[str], Awaitable[tuple[str, str | None]]],
        client: httpx.AsyncClient | None = None,
        api_prefix: str = settings.API_V1_STR,
    ):
        self._authorize = authorize
        self._client = client or create_async_http_client(base_url=base_url)
        self._prefix = f"{api_prefix}/auth/oauth"
        self._pending_authorize_url: str | None = None
        self.access_token: str | None = None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def exchange(self, auth_code: str, state: str | None) -> OAuthOutcome:
        try:
            resp = await self._client.post(
                f"{self._prefix}/callback",
                json={"code": auth_code, "state": state},
            )
        except httpx.HTTPError as exc:
            return GenericFailure(message=f"网络错误: {exc}")

        data = _json_or_empty(resp)
        if resp.status_code >= 400:
            return GenericFailure(message=_error_detail(data, resp.status_code))
        if data.get("success"):
            self.access_token = data.get("access_token")
            return Admitted(user=data.get("user_id"))
        return parse_exchange_message(str(data.get("message") or ""))

    async def submit_invite_code(self, invite_code: str) -> None:
        code = invite_code.strip()
        if not code:
            raise InviteCodeRejectedError("请输入邀请码")
        try:
            resp = await self._client.post(f"{self._prefix}/invite_code", json={"invite_code": code})
        except httpx.HTTPError as exc:
            raise InviteCodeRejectedError("网络错误，请重试") from exc

        data = _json_or_empty(resp)
        if resp.status_code >= 400:
            raise InviteCodeRejectedError(_error_detail(data, resp.status_code))
        self._pending_authorize_url = data.get("authorize_url")

    async def reauthorize(self) -> tuple[str, str | None]:
        url = self._pending_authorize_url
        self._pending_authorize_url = None
        if not url:
            resp = await self._client.get(f"{self._prefix}/linuxdo/authorize", follow_redirects=False)
            if not resp.has_redirect_location:
                raise httpx.HTTPStatusError(
                    f"authorize endpoint returned {resp.status_code} without redirect",
                    request=resp.request,
                    response=resp,
                )
            url = resp.headers["location"]
        return await self._authorize(url)


def _json_or_empty(resp: httpx.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _error_detail(data: dict[str, Any], status_code: int) -> str:
    detail = data.get("detail") or data.get("message")
    if isinstance(detail, str) and detail:
        return detail
    return f"请求失败 ({status_code})"


__all__ = [
    "GateState",
    "HttpExchangeClient",
    "InviteCodeRejectedError",
    "RegistrationGate",
]
