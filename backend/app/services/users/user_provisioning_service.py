from __future__ import annotations

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import logger
from app.models import User
from app.repositories import InviteCodeRepository, SystemSettingRepository, UserRepository
from app.services.users.invite_code_service import InviteCodeService
from app.services.users.registration_policy import RegistrationPolicy
from app.services.users.registration_settings_service import RegistrationSettingsService


class UserProvisioningService:
    """
    统一的用户创建/绑定管线：
    - 以 (provider, external_id) 为唯一锚点，已绑定的身份直接返回
    - 新用户时按策略要求邀请码，兑换与用户、身份写入在同一事务内提交
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.user_repo = UserRepository(db)
        invite_repo = InviteCodeRepository(db)
        self.invite_service = InviteCodeService(invite_repo)
        self.policy = RegistrationPolicy(
            RegistrationSettingsService(SystemSettingRepository(db), invite_repo)
        )

    async def provision_user(
        self,
        *,
        provider: str,
        external_id: str,
        username: str | None = None,
        avatar_url: str | None = None,
        is_active: bool = True,
        invite_code: str | None = None,
    ) -> User:
        """
        - 身份已存在：直接返回对应用户，不做准入检查，也不消费邀请码。
        - 新用户：策略要求时抛 InviteCodeRequiredError；
          邀请码无效时抛 InviteCodeError 子类，整个事务回滚。
        """
        existing = await self.user_repo.get_by_identity(provider, external_id)
        if existing:
            return existing

        must_redeem = await self.policy.ensure_can_register(invite_code=invite_code)
        used_code = invite_code.strip() if must_redeem and invite_code else None

        try:
            if used_code:
                await self.invite_service.redeem(used_code, commit=False)
            user = await self.user_repo.create_with_identity(
                provider=provider,
                external_id=external_id,
                username=username,
                avatar_url=avatar_url,
                is_active=is_active,
                used_invite_code=used_code,
            )
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            # 同一身份并发首次登录，另一方已创建成功
            raced = await self.user_repo.get_by_identity(provider, external_id)
            if raced:
                return raced
            raise
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(user)
        logger.info(
            "user_provisioned",
            extra={
                "user_id": str(user.id),
                "provider": provider,
                "invite_used": bool(used_code),
            },
        )
        return user


__all__ = ["UserProvisioningService"]
