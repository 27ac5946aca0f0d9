from .base import BaseRepository
from .invite_code import InviteCodeRepository
from .system_setting_repository import SystemSettingRepository
from .user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "InviteCodeRepository",
    "SystemSettingRepository",
    "UserRepository",
]
