from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.invite_code_errors import invite_code_http_error
from app.core.database import get_db
from app.deps.superuser import get_current_superuser
from app.models import User
from app.repositories import InviteCodeRepository, SystemSettingRepository
from app.schemas.system_settings import (
    InviteRegistrationSettingDTO,
    InviteRegistrationSettingUpdateRequest,
)
from app.services.users.invite_code_service import InviteCodeError
from app.services.users.registration_settings_service import RegistrationSettingsService

router = APIRouter(prefix="/admin/settings", tags=["Admin - Settings"])


def get_registration_settings_service(
    db: AsyncSession = Depends(get_db),
) -> RegistrationSettingsService:
    return RegistrationSettingsService(
        SystemSettingRepository(db),
        InviteCodeRepository(db),
    )


@router.get("/invite-registration", response_model=InviteRegistrationSettingDTO)
async def get_invite_registration_setting(
    _user: User = Depends(get_current_superuser),
    service: RegistrationSettingsService = Depends(get_registration_settings_service),
) -> InviteRegistrationSettingDTO:
    enabled = await service.is_invite_registration_enabled()
    return InviteRegistrationSettingDTO(enabled=enabled)


@router.put("/invite-registration", response_model=InviteRegistrationSettingDTO)
async def update_invite_registration_setting(
    payload: InviteRegistrationSettingUpdateRequest,
    _user: User = Depends(get_current_superuser),
    service: RegistrationSettingsService = Depends(get_registration_settings_service),
) -> InviteRegistrationSettingDTO:
    try:
        enabled = await service.set_invite_registration_enabled(payload.enabled)
    except InviteCodeError as exc:
        raise invite_code_http_error(exc) from exc
    return InviteRegistrationSettingDTO(enabled=enabled)
