import asyncio
import time

import pytest

from app.core.config import settings
from app.services.users.oauth_linuxdo_service import (
    NEED_INVITE_CODE_PREFIX,
    Admitted,
    GenericFailure,
    NeedsInviteCode,
    parse_exchange_message,
    to_legacy_message,
)
from app.services.users.registration_gate import (
    REAUTHORIZING_MESSAGE,
    REJECTED_MESSAGE,
    GateState,
    InviteCodeRejectedError,
    RegistrationGate,
)


class FakeCollaborators:
    """按脚本返回交换结果，并记录调用。"""

    def __init__(self, outcomes, *, submit_error: str | None = None):
        self.outcomes = list(outcomes)
        self.exchanges: list[tuple[str, str | None]] = []
        self.submitted: list[str] = []
        self.reauthorized = 0
        self.redirects = 0
        self.messages: list[str] = []
        self.submit_error = submit_error

    async def exchange(self, auth_code, state):
        self.exchanges.append((auth_code, state))
        return self.outcomes.pop(0)

    async def submit_invite_code(self, code):
        self.submitted.append(code)
        if self.submit_error:
            raise InviteCodeRejectedError(self.submit_error)

    async def reauthorize(self):
        self.reauthorized += 1
        return f"code-{self.reauthorized + 1}", f"state-{self.reauthorized + 1}"

    def redirect(self):
        self.redirects += 1

    def gate(self, **kwargs) -> RegistrationGate:
        kwargs.setdefault("retry_delay", 0.01)
        return RegistrationGate(
            exchange=self.exchange,
            submit_invite_code=self.submit_invite_code,
            reauthorize=self.reauthorize,
            redirect=self.redirect,
            on_status=self.messages.append,
            **kwargs,
        )


# ===== 旧协议字符串 =====


def test_parse_exchange_message():
    assert parse_exchange_message("NEED_INVITE_CODE:请输入邀请码") == NeedsInviteCode(prompt="请输入邀请码")
    assert parse_exchange_message("NEED_INVITE_CODE:") == NeedsInviteCode(prompt="")
    assert parse_exchange_message("state 无效或已过期") == GenericFailure(message="state 无效或已过期")


def test_legacy_message_is_prefix_plus_prompt():
    prompt = "管理员开启了邀请码注册，请提供邀请码"
    message = to_legacy_message(NeedsInviteCode(prompt=prompt))
    assert message == NEED_INVITE_CODE_PREFIX + prompt
    assert parse_exchange_message(message) == NeedsInviteCode(prompt=prompt)


# ===== 状态机 =====


def test_defaults_come_from_settings():
    gate = RegistrationGate(
        exchange=None,
        submit_invite_code=None,
        reauthorize=None,
        redirect=lambda: None,
    )
    assert gate.max_retries == settings.OAUTH_GATE_MAX_RETRIES == 3
    assert gate.retry_delay == settings.OAUTH_GATE_RETRY_DELAY_SECONDS == 2.0
    assert gate.state == GateState.IDLE


@pytest.mark.asyncio
async def test_admitted_on_first_try():
    fakes = FakeCollaborators([Admitted(user="u-1")])
    gate = fakes.gate()

    assert await gate.run("code-1", "state-1") == GateState.ADMITTED
    assert gate.result == Admitted(user="u-1")
    assert gate.attempt == 0
    assert gate.prompt is None
    assert fakes.redirects == 0


@pytest.mark.asyncio
async def test_needs_invite_code_stops_retrying():
    fakes = FakeCollaborators([parse_exchange_message("NEED_INVITE_CODE:请输入邀请码")])
    gate = fakes.gate()

    assert await gate.run("code-1", "state-1") == GateState.NEEDS_INVITE_CODE
    assert gate.prompt == "请输入邀请码"
    assert len(fakes.exchanges) == 1
    assert fakes.messages == ["请输入邀请码"]


@pytest.mark.asyncio
async def test_generic_failures_retry_then_reject():
    fakes = FakeCollaborators([GenericFailure(message="upstream down")] * 4)
    gate = fakes.gate(max_retries=3, retry_delay=0.05)

    started = time.perf_counter()
    assert await gate.run("code-1", "state-1") == GateState.REJECTED
    elapsed = time.perf_counter() - started

    assert len(fakes.exchanges) == 4
    assert gate.attempt == 3
    assert fakes.redirects == 1
    # 3 次重试间隔 + 拒绝后的一次等待
    assert elapsed >= 0.15
    assert fakes.messages == [
        "upstream down",
        "登录出现错误，第 1 次重试中...",
        "upstream down",
        "登录出现错误，第 2 次重试中...",
        "upstream down",
        "登录出现错误，第 3 次重试中...",
        "upstream down",
        REJECTED_MESSAGE,
    ]


@pytest.mark.asyncio
async def test_retry_recovers_before_cap():
    fakes = FakeCollaborators([GenericFailure(message="flaky"), Admitted()])
    gate = fakes.gate()

    assert await gate.run("code-1", "state-1") == GateState.ADMITTED
    assert gate.attempt == 0
    assert fakes.exchanges == [("code-1", "state-1"), ("code-1", "state-1")]


@pytest.mark.asyncio
async def test_zero_retries_rejects_immediately():
    fakes = FakeCollaborators([GenericFailure(message="")])
    gate = fakes.gate(max_retries=0)

    assert await gate.run("code-1", "state-1") == GateState.REJECTED
    assert fakes.messages == [REJECTED_MESSAGE]
    assert fakes.redirects == 1


@pytest.mark.asyncio
async def test_submit_invite_code_reauthorizes_from_scratch():
    fakes = FakeCollaborators([NeedsInviteCode(prompt="请输入邀请码"), Admitted(user="u-2")])
    gate = fakes.gate()
    await gate.run("code-1", "state-1")

    assert await gate.submit_invite_code("join-us") == GateState.ADMITTED
    assert fakes.submitted == ["join-us"]
    assert fakes.reauthorized == 1
    # 新一轮授权使用新的授权码，旧授权码不会被重放
    assert fakes.exchanges == [("code-1", "state-1"), ("code-2", "state-2")]
    assert REAUTHORIZING_MESSAGE in fakes.messages


@pytest.mark.asyncio
async def test_rejected_invite_code_keeps_prompt_open():
    fakes = FakeCollaborators([NeedsInviteCode(prompt="请输入邀请码")], submit_error="邀请码已过期")
    gate = fakes.gate()
    await gate.run("code-1", "state-1")

    assert await gate.submit_invite_code("old-code") == GateState.NEEDS_INVITE_CODE
    assert gate.prompt == "邀请码已过期"
    assert fakes.reauthorized == 0
    assert len(fakes.exchanges) == 1


@pytest.mark.asyncio
async def test_submit_outside_prompt_state_is_an_error():
    fakes = FakeCollaborators([Admitted()])
    gate = fakes.gate()
    await gate.run("code-1", "state-1")

    with pytest.raises(RuntimeError):
        await gate.submit_invite_code("join-us")


@pytest.mark.asyncio
async def test_dismiss_prompt_redirects():
    fakes = FakeCollaborators([NeedsInviteCode(prompt="请输入邀请码")])
    gate = fakes.gate()
    await gate.run("code-1", "state-1")

    gate.dismiss()

    assert gate.state == GateState.REJECTED
    assert gate.prompt is None
    assert fakes.redirects == 1
    gate.dismiss()
    assert fakes.redirects == 1


@pytest.mark.asyncio
async def test_dismiss_interrupts_pending_retry():
    fakes = FakeCollaborators([GenericFailure(message="boom")] * 5)
    gate = fakes.gate(retry_delay=30)

    task = asyncio.create_task(gate.run("code-1", "state-1"))
    while gate.state != GateState.RETRYING:
        await asyncio.sleep(0)

    gate.dismiss()
    state = await asyncio.wait_for(task, timeout=1)

    assert state == GateState.REJECTED
    assert len(fakes.exchanges) == 1
    assert fakes.redirects == 1
    # 取消之后不再发出任何提示
    assert fakes.messages == ["boom", "登录出现错误，第 1 次重试中..."]


def test_negative_max_retries_rejected():
    with pytest.raises(ValueError):
        RegistrationGate(
            exchange=None,
            submit_invite_code=None,
            reauthorize=None,
            redirect=lambda: None,
            max_retries=-1,
        )
