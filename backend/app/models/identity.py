from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy import UUID as SA_UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Identity(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """
    OAuth 提供方身份到本地用户的绑定。

    (provider, external_id) 唯一：同一 LinuxDo 账号只会对应一个本地用户，
    再次登录时按此查回用户，不再经过邀请码准入。
    """

    __tablename__ = "identity"
    __table_args__ = (
        UniqueConstraint("provider", "external_id", name="uq_identity_provider_external"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        SA_UUID(as_uuid=True),
        ForeignKey("user_account.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    provider: Mapped[str] = mapped_column(String(50), nullable=False, comment="如 linuxdo")
    external_id: Mapped[str] = mapped_column(String(255), nullable=False, comment="提供方用户 ID")
    # 首次绑定时的展示名，之后不随提供方资料更新
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    user = relationship("User", back_populates="identities")

    def __repr__(self) -> str:
        return f"<Identity(provider={self.provider}, external_id={self.external_id})>"


__all__ = ["Identity"]
