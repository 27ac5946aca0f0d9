import enum
import uuid
from datetime import datetime

from sqlalchemy import UUID as SA_UUID
from sqlalchemy import CheckConstraint, DateTime, Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class InviteCodeStatus(str, enum.Enum):
    ENABLED = "enabled"
    DISABLED = "disabled"


class InviteCode(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """注册邀请码：次数上限 + 生效时间窗口，开启邀请码注册后新用户必须消费一次。"""

    __tablename__ = "invite_codes"
    __table_args__ = (
        CheckConstraint("max_uses >= 0", name="max_uses_non_negative"),
        CheckConstraint("used_count >= 0", name="used_count_non_negative"),
    )

    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True, comment="邀请码")
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="", comment="名称，用于搜索")
    max_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="可使用次数，0 表示无限制")
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="已使用次数")
    status: Mapped[InviteCodeStatus] = mapped_column(
        Enum(
            InviteCodeStatus,
            name="invitecodestatus",
            native_enum=False,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        default=InviteCodeStatus.ENABLED,
    )
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, comment="生效开始时间，空表示立即生效")
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, comment="生效结束时间，空表示永不过期")
    created_by: Mapped[uuid.UUID | None] = mapped_column(SA_UUID(as_uuid=True), nullable=True, comment="创建者 ID")

    def __repr__(self) -> str:
        return f"<InviteCode(code={self.code})>"


__all__ = ["InviteCode", "InviteCodeStatus"]
