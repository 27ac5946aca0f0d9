"""
用户注册与邀请码服务模块
"""
from app.services.users.invite_code_service import (
    InviteCodeError,
    InviteCodeGenerationError,
    InviteCodeNotFoundError,
    InviteCodeNotUsableError,
    InviteCodeService,
    InviteCodeValidationError,
    NoUsableInviteCodesError,
    UnusableReason,
)
from app.services.users.registration_gate import GateState, HttpExchangeClient, RegistrationGate
from app.services.users.registration_policy import InviteCodeRequiredError, RegistrationPolicy
from app.services.users.registration_settings_service import RegistrationSettingsService
from app.services.users.user_provisioning_service import UserProvisioningService

__all__ = [
    "GateState",
    "HttpExchangeClient",
    "InviteCodeError",
    "InviteCodeGenerationError",
    "InviteCodeNotFoundError",
    "InviteCodeNotUsableError",
    "InviteCodeRequiredError",
    "InviteCodeService",
    "InviteCodeValidationError",
    "NoUsableInviteCodesError",
    "RegistrationGate",
    "RegistrationPolicy",
    "RegistrationSettingsService",
    "UnusableReason",
    "UserProvisioningService",
]
