from __future__ import annotations

from datetime import datetime

from app.core.logging import logger
from app.repositories import InviteCodeRepository, SystemSettingRepository
from app.services.users.invite_code_service import InviteCodeService, NoUsableInviteCodesError

INVITE_REGISTRATION_SETTING_KEY = "invite_registration"


class RegistrationSettingsService:
    """
    邀请码注册开关（system_setting: invite_registration -> {"enabled": bool}）。

    每次注册都直接读库，不走缓存，管理员切换后立即对下一次注册生效。
    """

    def __init__(
        self,
        settings_repo: SystemSettingRepository,
        invite_repo: InviteCodeRepository,
    ):
        self.settings_repo = settings_repo
        self.invite_repo = invite_repo

    async def is_invite_registration_enabled(self) -> bool:
        setting = await self.settings_repo.get_by_key(INVITE_REGISTRATION_SETTING_KEY, fresh=True)
        if not setting:
            return False
        value = setting.value
        if isinstance(value, dict):
            return bool(value.get("enabled", False))
        return False

    async def set_invite_registration_enabled(self, enabled: bool, now: datetime | None = None) -> bool:
        """开启前要求至少有一个当前可用的邀请码；关闭总是允许。"""
        if enabled:
            invite_service = InviteCodeService(self.invite_repo)
            if not await invite_service.has_any_usable(now):
                raise NoUsableInviteCodesError()

        await self.settings_repo.upsert(INVITE_REGISTRATION_SETTING_KEY, {"enabled": enabled})
        logger.info("invite_registration_toggled", extra={"enabled": enabled})
        return enabled


__all__ = ["INVITE_REGISTRATION_SETTING_KEY", "RegistrationSettingsService"]
