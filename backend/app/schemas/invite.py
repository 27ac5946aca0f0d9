from datetime import datetime
from uuid import UUID

from pydantic import Field, model_validator

from app.models.invite_code import InviteCodeStatus
from app.schemas.base import BaseSchema, IDSchema, TimestampSchema


class InviteCodeCreateRequest(BaseSchema):
    """创建邀请码；count > 1 时为批量创建，批量成员一律自动生成 code。"""

    code: str | None = Field(None, max_length=32, description="自定义邀请码，留空自动生成")
    name: str = Field("", max_length=100, description="名称")
    max_uses: int = Field(0, ge=0, description="可使用次数，0 表示无限制")
    status: InviteCodeStatus = Field(InviteCodeStatus.ENABLED, description="状态")
    starts_at: datetime | None = Field(None, description="生效开始时间")
    expires_at: datetime | None = Field(None, description="生效结束时间")
    count: int = Field(1, ge=1, le=100, description="创建数量")

    @model_validator(mode="after")
    def _batch_without_custom_code(self):
        if self.count > 1 and self.code:
            raise ValueError("批量创建时不能指定邀请码")
        return self


class InviteCodeUpdateRequest(BaseSchema):
    """只更新显式提供的字段；窗口字段传 null 表示清除边界。"""

    code: str | None = Field(None, max_length=32, description="邀请码（不可修改，仅用于一致性校验）")
    name: str | None = Field(None, max_length=100)
    max_uses: int | None = Field(None, ge=0)
    status: InviteCodeStatus | None = None
    starts_at: datetime | None = None
    expires_at: datetime | None = None


class InviteCodeRead(IDSchema, TimestampSchema):
    code: str
    name: str
    max_uses: int
    used_count: int
    status: InviteCodeStatus
    starts_at: datetime | None
    expires_at: datetime | None
    created_by: UUID | None
    is_usable: bool = False


class InviteCodeBatchDeleteRequest(BaseSchema):
    ids: list[UUID] = Field(..., min_length=1, description="待删除的邀请码 ID")


class InviteCodeBatchDeleteResponse(BaseSchema):
    deleted: int


class InviteCodeGenerateResponse(BaseSchema):
    code: str


class InviteCodeStatistics(BaseSchema):
    total: int
    enabled: int
    disabled: int
    usable: int
    exhausted: int
    expired: int
    total_used: int


__all__ = [
    "InviteCodeBatchDeleteRequest",
    "InviteCodeBatchDeleteResponse",
    "InviteCodeCreateRequest",
    "InviteCodeGenerateResponse",
    "InviteCodeRead",
    "InviteCodeStatistics",
    "InviteCodeUpdateRequest",
]
