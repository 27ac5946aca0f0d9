from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Identity, User


class UserRepository:
    """
    用户与外部身份的仓库封装，避免在业务层直接写 SQL/ORM。

    写方法只 add/flush，不提交；事务边界由调用方（UserProvisioningService）控制。
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: UUID) -> User | None:
        return await self.session.get(User, user_id)

    async def get_by_identity(self, provider: str, external_id: str) -> User | None:
        stmt = (
            select(User)
            .join(Identity, Identity.user_id == User.id)
            .where(Identity.provider == provider, Identity.external_id == external_id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_with_identity(
        self,
        *,
        provider: str,
        external_id: str,
        username: str | None,
        avatar_url: str | None = None,
        is_active: bool = True,
        used_invite_code: str | None = None,
    ) -> User:
        user = User(
            username=username,
            avatar_url=avatar_url,
            is_active=is_active,
            used_invite_code=used_invite_code,
        )
        self.session.add(user)
        await self.session.flush()
        self.session.add(
            Identity(
                user_id=user.id,
                provider=provider,
                external_id=external_id,
                display_name=username,
            )
        )
        await self.session.flush()
        return user
