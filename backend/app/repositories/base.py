from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    单表 Repository 基类，子类通过 `model` 声明对应的 ORM 模型。

    写操作默认提交事务；commit=False 时只 flush，
    由调用方把多个写入放进同一个事务里统一提交或回滚。
    """

    model: type[ModelType]

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _persist(self, db_obj: ModelType, commit: bool) -> ModelType:
        if commit:
            await self.session.commit()
            await self.session.refresh(db_obj)
        else:
            await self.session.flush()
        return db_obj

    async def create(self, obj_in: dict[str, Any], *, commit: bool = True) -> ModelType:
        db_obj = self.model(**obj_in)
        self.session.add(db_obj)
        return await self._persist(db_obj, commit)

    async def get(self, id: UUID) -> ModelType | None:
        result = await self.session.execute(select(self.model).where(self.model.id == id))
        return result.scalars().first()

    async def update(self, db_obj: ModelType, obj_in: dict[str, Any], *, commit: bool = True) -> ModelType:
        for field, value in obj_in.items():
            setattr(db_obj, field, value)
        self.session.add(db_obj)
        return await self._persist(db_obj, commit)

    async def delete(self, id: UUID) -> ModelType | None:
        """删除并返回被删除的对象；不存在时返回 None。"""
        obj = await self.get(id)
        if obj is not None:
            await self.session.delete(obj)
            await self.session.commit()
        return obj
