from app.services.users.registration_settings_service import RegistrationSettingsService

DEFAULT_INVITE_CODE_PROMPT = "管理员开启了邀请码注册，请提供邀请码"


class InviteCodeRequiredError(Exception):
    """开启邀请码注册但新用户未提供邀请码。"""

    def __init__(self, prompt: str = DEFAULT_INVITE_CODE_PROMPT):
        self.prompt = prompt
        super().__init__(prompt)


class RegistrationPolicy:
    """
    单一注册准入策略：
    - 邀请码注册开关打开时，所有新用户必须提供邀请码
    - 开关关闭时允许自由注册（即使带了邀请码也不消费）
    备注：邀请码有效性与次数由 InviteCodeService 处理，这里只做准入决策。
    """

    def __init__(self, settings_service: RegistrationSettingsService):
        self.settings_service = settings_service

    async def ensure_can_register(self, *, invite_code: str | None) -> bool:
        """返回是否需要消费邀请码；需要但缺失时抛 InviteCodeRequiredError。"""
        # 已存在用户的情况应在调用方提前返回，这里只关心“新用户能否创建”
        if not await self.settings_service.is_invite_registration_enabled():
            return False

        if invite_code and invite_code.strip():
            return True

        raise InviteCodeRequiredError()


__all__ = ["DEFAULT_INVITE_CODE_PROMPT", "InviteCodeRequiredError", "RegistrationPolicy"]
