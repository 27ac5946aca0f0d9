from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class SystemSetting(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """
    运行期可调的系统开关（键值对，值为 JSON）。

    目前只有 invite_registration -> {"enabled": bool}，
    由 RegistrationSettingsService 读写；缺省记录视为关闭。
    """

    __tablename__ = "system_setting"

    key: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True, comment="开关名")
    value: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict, comment="开关值（JSON）")

    def __repr__(self) -> str:
        return f"<SystemSetting(key={self.key}, value={self.value})>"


__all__ = ["SystemSetting"]
