from pydantic import Field

from app.schemas.base import BaseSchema


class InviteRegistrationSettingDTO(BaseSchema):
    enabled: bool = False


class InviteRegistrationSettingUpdateRequest(BaseSchema):
    enabled: bool = Field(..., description="是否开启邀请码注册")
