from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import ColumnElement, and_, case, delete, exists, func, or_, select, update

from app.models import InviteCode, InviteCodeStatus
from app.repositories.base import BaseRepository


def usable_clause(now: datetime) -> ColumnElement[bool]:
    """SQL 版本的可用性判定，与 InviteCodeService.unusable_reason 保持一致。"""
    return and_(
        InviteCode.status == InviteCodeStatus.ENABLED,
        or_(InviteCode.max_uses == 0, InviteCode.used_count < InviteCode.max_uses),
        or_(InviteCode.starts_at.is_(None), InviteCode.starts_at <= now),
        or_(InviteCode.expires_at.is_(None), InviteCode.expires_at > now),
    )


class InviteCodeRepository(BaseRepository[InviteCode]):
    model = InviteCode

    async def get_by_code(self, code: str) -> InviteCode | None:
        # 兑换失败后需要读到最新的 used_count/status，不能用会话里的旧对象
        stmt = (
            select(InviteCode)
            .where(InviteCode.code == code)
            .execution_options(populate_existing=True)
        )
        res = await self.session.execute(stmt)
        return res.scalar_one_or_none()

    async def code_exists(self, code: str) -> bool:
        res = await self.session.execute(select(exists().where(InviteCode.code == code)))
        return bool(res.scalar())

    async def bulk_create(self, rows: Iterable[dict[str, Any]]) -> list[InviteCode]:
        """同一事务内批量写入，任一失败整体回滚。"""
        invites = [InviteCode(**row) for row in rows]
        try:
            self.session.add_all(invites)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        for invite in invites:
            await self.session.refresh(invite)
        return invites

    async def increment_if_usable(self, code: str, now: datetime) -> InviteCode | None:
        """原子地“校验可用 + 使用次数 +1”，不可用时返回 None。

        条件更新由数据库按行串行化，同一邀请码的并发兑换不会同时成功。
        """
        stmt = (
            update(InviteCode)
            .where(InviteCode.code == code)
            .where(usable_clause(now))
            .values(used_count=InviteCode.used_count + 1)
            .returning(InviteCode)
            .execution_options(populate_existing=True)
        )
        res = await self.session.execute(stmt)
        return res.scalar_one_or_none()

    async def any_usable(self, now: datetime) -> bool:
        res = await self.session.execute(select(exists().where(usable_clause(now))))
        return bool(res.scalar())

    async def list_filtered(
        self,
        *,
        keyword: str | None = None,
        status: InviteCodeStatus | None = None,
        starts_at_from: datetime | None = None,
        starts_at_to: datetime | None = None,
    ) -> list[InviteCode]:
        query = select(InviteCode)
        if keyword:
            pattern = f"%{keyword}%"
            query = query.where(or_(InviteCode.code.like(pattern), InviteCode.name.like(pattern)))
        if status:
            query = query.where(InviteCode.status == status)
        # 生效期与查询区间有交集；空 starts_at 视为立即生效，空 expires_at 视为永不过期
        if starts_at_from is not None:
            query = query.where(or_(InviteCode.expires_at.is_(None), InviteCode.expires_at >= starts_at_from))
        if starts_at_to is not None:
            query = query.where(or_(InviteCode.starts_at.is_(None), InviteCode.starts_at <= starts_at_to))
        res = await self.session.execute(query.order_by(InviteCode.created_at.desc()))
        return list(res.scalars().all())

    async def delete_many(self, ids: list[UUID]) -> int:
        res = await self.session.execute(delete(InviteCode).where(InviteCode.id.in_(ids)))
        await self.session.commit()
        return res.rowcount or 0

    async def statistics(self, now: datetime) -> dict[str, int]:
        exhausted = and_(InviteCode.max_uses > 0, InviteCode.used_count >= InviteCode.max_uses)
        expired = and_(InviteCode.expires_at.is_not(None), InviteCode.expires_at <= now)

        def _count(cond: ColumnElement[bool]):
            return func.coalesce(func.sum(case((cond, 1), else_=0)), 0)

        stmt = select(
            func.count(InviteCode.id),
            _count(InviteCode.status == InviteCodeStatus.ENABLED),
            _count(InviteCode.status == InviteCodeStatus.DISABLED),
            _count(usable_clause(now)),
            _count(exhausted),
            _count(expired),
            func.coalesce(func.sum(InviteCode.used_count), 0),
        )
        row = (await self.session.execute(stmt)).one()
        total, enabled, disabled, usable, exhausted_count, expired_count, used = row
        return {
            "total": int(total),
            "enabled": int(enabled),
            "disabled": int(disabled),
            "usable": int(usable),
            "exhausted": int(exhausted_count),
            "expired": int(expired_count),
            "total_used": int(used),
        }


__all__ = ["InviteCodeRepository", "usable_clause"]
