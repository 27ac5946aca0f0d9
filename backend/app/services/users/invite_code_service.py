from __future__ import annotations

import enum
import re
import secrets
import string
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from app.core.config import settings
from app.core.logging import logger
from app.models import InviteCode, InviteCodeStatus
from app.repositories import InviteCodeRepository
from app.utils.time_utils import Datetime

CODE_ALPHABET = string.ascii_letters + string.digits
CODE_PATTERN = re.compile(r"^[A-Za-z0-9_-]{3,32}$")
NAME_MAX_LENGTH = 100

# 条件更新未命中、但回查时又判定为可用（并发修改）时的重试次数
_REDEEM_ATTEMPTS = 3


class UnusableReason(str, enum.Enum):
    DISABLED = "disabled"
    EXHAUSTED = "exhausted"
    NOT_STARTED = "not_started"
    EXPIRED = "expired"


_REASON_MESSAGES = {
    UnusableReason.DISABLED: "邀请码已被禁用",
    UnusableReason.EXHAUSTED: "邀请码使用次数已达上限",
    UnusableReason.NOT_STARTED: "邀请码尚未生效",
    UnusableReason.EXPIRED: "邀请码已过期",
}


class InviteCodeError(Exception):
    """邀请码相关错误基类。"""


class InviteCodeNotFoundError(InviteCodeError):
    def __init__(self, message: str = "邀请码不存在"):
        super().__init__(message)


class InviteCodeNotUsableError(InviteCodeError):
    def __init__(self, reason: UnusableReason):
        self.reason = reason
        super().__init__(_REASON_MESSAGES[reason])


class NoUsableInviteCodesError(InviteCodeError):
    def __init__(self, message: str = "没有可用的邀请码，无法开启邀请码注册"):
        super().__init__(message)


class InviteCodeValidationError(InviteCodeError, ValueError):
    pass


class InviteCodeGenerationError(InviteCodeError):
    def __init__(self, message: str = "邀请码生成失败，请稍后重试"):
        super().__init__(message)


def unusable_reason(invite: InviteCode, now: datetime) -> UnusableReason | None:
    """
    按固定顺序返回第一个不可用原因：禁用 > 次数耗尽 > 未生效 > 已过期。
    全部通过时返回 None。
    """
    now = Datetime.ensure_utc(now)
    if invite.status != InviteCodeStatus.ENABLED:
        return UnusableReason.DISABLED
    if invite.max_uses > 0 and invite.used_count >= invite.max_uses:
        return UnusableReason.EXHAUSTED
    if invite.starts_at is not None and now < Datetime.ensure_utc(invite.starts_at):
        return UnusableReason.NOT_STARTED
    if invite.expires_at is not None and now >= Datetime.ensure_utc(invite.expires_at):
        return UnusableReason.EXPIRED
    return None


def is_usable(invite: InviteCode, now: datetime) -> bool:
    return unusable_reason(invite, now) is None


def _normalize_time(value: datetime | None) -> datetime | None:
    return Datetime.ensure_utc(value) if value is not None else None


def _validate_window(starts_at: datetime | None, expires_at: datetime | None) -> None:
    if starts_at is not None and expires_at is not None:
        if Datetime.ensure_utc(starts_at) >= Datetime.ensure_utc(expires_at):
            raise InviteCodeValidationError("生效开始时间必须早于结束时间")


def _validate_name(name: str | None) -> None:
    if name is not None and len(name) > NAME_MAX_LENGTH:
        raise InviteCodeValidationError(f"名称长度不能超过 {NAME_MAX_LENGTH} 个字符")


def _validate_max_uses(max_uses: int) -> None:
    if max_uses < 0:
        raise InviteCodeValidationError("可使用次数不能为负数")


class InviteCodeService:
    """
    邀请码池：创建/编辑/删除/查询，以及注册时的原子兑换。

    兑换依赖 InviteCodeRepository.increment_if_usable 的条件更新，
    同一邀请码的并发兑换由数据库行锁串行化。
    """

    def __init__(self, repo: InviteCodeRepository):
        self.repo = repo
        self.session = repo.session

    # ===== 兑换 =====

    async def redeem(self, code: str, now: datetime | None = None, *, commit: bool = True) -> InviteCode:
        """
        原子地校验并消费一次邀请码。

        commit=False 时只在当前事务内执行更新，由调用方决定提交或回滚
        （UserProvisioningService 与用户创建放在同一事务）。
        """
        now = Datetime.ensure_utc(now or Datetime.now())
        for _ in range(_REDEEM_ATTEMPTS):
            invite = await self.repo.increment_if_usable(code, now)
            if invite is not None:
                if commit:
                    await self.session.commit()
                logger.info(
                    "invite_code_redeemed",
                    extra={"code": code, "used_count": invite.used_count, "max_uses": invite.max_uses},
                )
                return invite

            current = await self.repo.get_by_code(code)
            if current is None:
                raise InviteCodeNotFoundError()
            reason = unusable_reason(current, now)
            if reason is not None:
                logger.info("invite_code_redeem_rejected", extra={"code": code, "reason": reason.value})
                raise InviteCodeNotUsableError(reason)
            # 两次读取之间被并发修改为可用，重新尝试条件更新

        logger.warning("invite_code_redeem_contended", extra={"code": code})
        raise InviteCodeNotUsableError(UnusableReason.EXHAUSTED)

    async def check(self, code: str, now: datetime | None = None) -> InviteCode:
        """只读校验，错误类型与 redeem 一致，不修改使用次数。"""
        now = Datetime.ensure_utc(now or Datetime.now())
        invite = await self.repo.get_by_code(code)
        if invite is None:
            raise InviteCodeNotFoundError()
        reason = unusable_reason(invite, now)
        if reason is not None:
            raise InviteCodeNotUsableError(reason)
        return invite

    async def has_any_usable(self, now: datetime | None = None) -> bool:
        now = Datetime.ensure_utc(now or Datetime.now())
        return await self.repo.any_usable(now)

    # ===== 生成 =====

    async def generate_code(self, *, exclude: set[str] | None = None) -> str:
        taken = exclude or set()
        for _ in range(settings.INVITE_CODE_GENERATE_RETRIES):
            candidate = "".join(secrets.choice(CODE_ALPHABET) for _ in range(settings.INVITE_CODE_LENGTH))
            if candidate in taken:
                continue
            if not await self.repo.code_exists(candidate):
                return candidate
        logger.error("invite_code_generation_exhausted", extra={"attempts": settings.INVITE_CODE_GENERATE_RETRIES})
        raise InviteCodeGenerationError()

    # ===== 管理 =====

    async def create(
        self,
        *,
        code: str | None = None,
        name: str = "",
        max_uses: int = 0,
        status: InviteCodeStatus = InviteCodeStatus.ENABLED,
        starts_at: datetime | None = None,
        expires_at: datetime | None = None,
        created_by: UUID | None = None,
    ) -> InviteCode:
        _validate_name(name)
        _validate_max_uses(max_uses)
        _validate_window(starts_at, expires_at)

        generated = not code
        if code:
            code = code.strip()
            if not CODE_PATTERN.match(code):
                raise InviteCodeValidationError("邀请码只能包含字母、数字、下划线和连字符，长度 3-32")
            if await self.repo.code_exists(code):
                raise InviteCodeValidationError("邀请码已存在")
        else:
            code = await self.generate_code()

        try:
            invite = await self.repo.create(
                {
                    "code": code,
                    "name": name or "",
                    "max_uses": max_uses,
                    "status": status,
                    "starts_at": _normalize_time(starts_at),
                    "expires_at": _normalize_time(expires_at),
                    "created_by": created_by,
                }
            )
        except IntegrityError as exc:
            await self.session.rollback()
            # 生成的邀请码在检查与写入之间被占用
            if generated:
                raise InviteCodeGenerationError() from exc
            raise InviteCodeValidationError("邀请码已存在") from exc

        logger.info("invite_code_created", extra={"code": invite.code, "max_uses": max_uses})
        return invite

    async def create_batch(
        self,
        *,
        count: int,
        name: str = "",
        max_uses: int = 0,
        status: InviteCodeStatus = InviteCodeStatus.ENABLED,
        starts_at: datetime | None = None,
        expires_at: datetime | None = None,
        created_by: UUID | None = None,
    ) -> list[InviteCode]:
        """批量创建，全部成功或全部回滚。count > 1 时名称追加 _<序号>。"""
        if count < 1 or count > settings.INVITE_CODE_MAX_BATCH:
            raise InviteCodeValidationError(f"批量创建数量必须在 1-{settings.INVITE_CODE_MAX_BATCH} 之间")
        _validate_name(name)
        _validate_max_uses(max_uses)
        _validate_window(starts_at, expires_at)

        codes: set[str] = set()
        rows: list[dict[str, Any]] = []
        for index in range(1, count + 1):
            code = await self.generate_code(exclude=codes)
            codes.add(code)
            rows.append(
                {
                    "code": code,
                    "name": f"{name}_{index}" if name and count > 1 else (name or ""),
                    "max_uses": max_uses,
                    "status": status,
                    "starts_at": _normalize_time(starts_at),
                    "expires_at": _normalize_time(expires_at),
                    "created_by": created_by,
                }
            )

        try:
            invites = await self.repo.bulk_create(rows)
        except IntegrityError as exc:
            raise InviteCodeGenerationError("批量创建时邀请码冲突，已全部回滚") from exc

        logger.info("invite_code_batch_created", extra={"count": len(invites), "name": name})
        return invites

    async def update(self, invite_id: UUID, changes: dict[str, Any]) -> InviteCode:
        """
        编辑名称/次数/状态/生效窗口。

        changes 只包含调用方显式提供的字段；窗口字段显式传 None 表示清除边界。
        """
        invite = await self.get(invite_id)

        new_code = changes.pop("code", None)
        if new_code is not None and new_code != invite.code:
            raise InviteCodeValidationError("邀请码创建后不可修改")

        allowed = {"name", "max_uses", "status", "starts_at", "expires_at"}
        unknown = set(changes) - allowed
        if unknown:
            raise InviteCodeValidationError(f"不支持修改的字段: {', '.join(sorted(unknown))}")

        for field in ("max_uses", "status"):
            if field in changes and changes[field] is None:
                raise InviteCodeValidationError(f"字段 {field} 不能为空")
        if "name" in changes:
            changes["name"] = changes["name"] or ""
            _validate_name(changes["name"])
        if "max_uses" in changes:
            max_uses = changes["max_uses"]
            _validate_max_uses(max_uses)
            if max_uses != 0 and max_uses < invite.used_count:
                raise InviteCodeValidationError("可使用次数不能小于已使用次数")
        for field in ("starts_at", "expires_at"):
            if field in changes:
                changes[field] = _normalize_time(changes[field])
        _validate_window(
            changes.get("starts_at", invite.starts_at),
            changes.get("expires_at", invite.expires_at),
        )

        invite = await self.repo.update(invite, changes)
        logger.info("invite_code_updated", extra={"code": invite.code, "fields": sorted(changes)})
        return invite

    async def delete(self, invite_id: UUID) -> None:
        deleted = await self.repo.delete(invite_id)
        if deleted is None:
            raise InviteCodeNotFoundError()
        logger.info("invite_code_deleted", extra={"code": deleted.code})

    async def batch_delete(self, ids: list[UUID]) -> int:
        if not ids:
            raise InviteCodeValidationError("请选择要删除的邀请码")
        deleted = await self.repo.delete_many(ids)
        logger.info("invite_code_batch_deleted", extra={"requested": len(ids), "deleted": deleted})
        return deleted

    async def get(self, invite_id: UUID) -> InviteCode:
        invite = await self.repo.get(invite_id)
        if invite is None:
            raise InviteCodeNotFoundError()
        return invite

    async def list(
        self,
        *,
        keyword: str | None = None,
        status: InviteCodeStatus | None = None,
        starts_at_from: datetime | None = None,
        starts_at_to: datetime | None = None,
    ) -> list[InviteCode]:
        return await self.repo.list_filtered(
            keyword=keyword.strip() if keyword else None,
            status=status,
            starts_at_from=_normalize_time(starts_at_from),
            starts_at_to=_normalize_time(starts_at_to),
        )

    async def statistics(self, now: datetime | None = None) -> dict[str, int]:
        now = Datetime.ensure_utc(now or Datetime.now())
        return await self.repo.statistics(now)


__all__ = [
    "InviteCodeError",
    "InviteCodeGenerationError",
    "InviteCodeNotFoundError",
    "InviteCodeNotUsableError",
    "InviteCodeService",
    "InviteCodeValidationError",
    "NoUsableInviteCodesError",
    "UnusableReason",
    "is_usable",
    "unusable_reason",
]
