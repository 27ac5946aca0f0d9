from typing import Any

from sqlalchemy import select

from app.models.system_setting import SystemSetting
from app.repositories.base import BaseRepository


class SystemSettingRepository(BaseRepository[SystemSetting]):
    model = SystemSetting

    async def get_by_key(self, key: str, *, fresh: bool = False) -> SystemSetting | None:
        """fresh=True 时忽略会话中已加载的对象，直接以数据库当前值为准。"""
        stmt = select(SystemSetting).where(SystemSetting.key == key)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def upsert(self, key: str, value: dict[str, Any]) -> SystemSetting:
        existing = await self.get_by_key(key)
        if existing:
            return await self.update(existing, {"value": value})
        return await self.create({"key": key, "value": value})
