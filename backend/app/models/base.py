import uuid
from datetime import datetime

from sqlalchemy import UUID as SA_UUID
from sqlalchemy import DateTime, MetaData
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.utils.time_utils import Datetime

# 约束命名约定：invite_codes 的 CheckConstraint 依赖 ck 模板生成
# ck_invite_codes_max_uses_non_negative 这类名字，SQLite 与 PostgreSQL 一致
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """邀请码、系统开关、用户与身份表的声明式基类，表结构由 create_all 创建。"""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class UUIDPrimaryKeyMixin:
    id: Mapped[uuid.UUID] = mapped_column(SA_UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


class TimestampMixin:
    """
    创建/更新时间，统一取 Datetime.now()（带时区的 UTC）。

    SQLite 读回时不带时区，比较前需经 Datetime.ensure_utc。
    """

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=Datetime.now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=Datetime.now,
        onupdate=Datetime.now,
        nullable=False,
    )
