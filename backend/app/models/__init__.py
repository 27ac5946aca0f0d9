from .base import Base
from .identity import Identity
from .invite_code import InviteCode, InviteCodeStatus
from .system_setting import SystemSetting
from .user import User

__all__ = [
    "Base",
    "Identity",
    "InviteCode",
    "InviteCodeStatus",
    "SystemSetting",
    "User",
]
