from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "user_account"

    username: Mapped[str | None] = mapped_column(String(100), nullable=True, comment="展示名")
    avatar_url: Mapped[str | None] = mapped_column(String(512), nullable=True, comment="头像地址")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true", comment="是否启用")
    is_superuser: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false", comment="是否超级管理员")
    used_invite_code: Mapped[str | None] = mapped_column(String(32), nullable=True, comment="注册时使用的邀请码")

    identities: Mapped[list["Identity"]] = relationship(
        "Identity",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<User(username={self.username})>"


__all__ = ["User"]
