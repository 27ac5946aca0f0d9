"""
管理员邀请码 API (/api/v1/admin/invite-codes)

能力：
- 列表（关键字/状态/生效区间过滤，不分页）
- 单个或批量创建、生成随机邀请码
- 查看/编辑/删除、批量删除
- 统计
"""
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.invite_code_errors import invite_code_http_error
from app.core.database import get_db
from app.deps.superuser import get_current_superuser
from app.models import InviteCode, InviteCodeStatus, User
from app.repositories import InviteCodeRepository
from app.schemas.invite import (
    InviteCodeBatchDeleteRequest,
    InviteCodeBatchDeleteResponse,
    InviteCodeCreateRequest,
    InviteCodeGenerateResponse,
    InviteCodeRead,
    InviteCodeStatistics,
    InviteCodeUpdateRequest,
)
from app.services.users.invite_code_service import InviteCodeError, InviteCodeService, is_usable
from app.utils.time_utils import Datetime

router = APIRouter(prefix="/admin/invite-codes", tags=["Admin - Invite Codes"])


def get_invite_code_service(
    db: AsyncSession = Depends(get_db),
) -> InviteCodeService:
    return InviteCodeService(InviteCodeRepository(db))


def _to_read(invite: InviteCode, now: datetime) -> InviteCodeRead:
    data = InviteCodeRead.model_validate(invite)
    data.is_usable = is_usable(invite, now)
    return data


@router.get("", response_model=list[InviteCodeRead])
async def list_invite_codes(
    keyword: str | None = Query(None, description="按邀请码或名称模糊搜索"),
    status_filter: InviteCodeStatus | None = Query(None, alias="status"),
    starts_at_from: datetime | None = Query(None, description="生效区间起点"),
    starts_at_to: datetime | None = Query(None, description="生效区间终点"),
    _user: User = Depends(get_current_superuser),
    service: InviteCodeService = Depends(get_invite_code_service),
) -> list[InviteCodeRead]:
    invites = await service.list(
        keyword=keyword,
        status=status_filter,
        starts_at_from=starts_at_from,
        starts_at_to=starts_at_to,
    )
    now = Datetime.now()
    return [_to_read(invite, now) for invite in invites]


@router.post("", response_model=list[InviteCodeRead], status_code=status.HTTP_201_CREATED)
async def create_invite_codes(
    payload: InviteCodeCreateRequest,
    user: User = Depends(get_current_superuser),
    service: InviteCodeService = Depends(get_invite_code_service),
) -> list[InviteCodeRead]:
    """count == 1 时可指定 code；count > 1 时批量生成，整体成功或整体失败。"""
    try:
        if payload.count > 1:
            invites = await service.create_batch(
                count=payload.count,
                name=payload.name,
                max_uses=payload.max_uses,
                status=payload.status,
                starts_at=payload.starts_at,
                expires_at=payload.expires_at,
                created_by=user.id,
            )
        else:
            invites = [
                await service.create(
                    code=payload.code,
                    name=payload.name,
                    max_uses=payload.max_uses,
                    status=payload.status,
                    starts_at=payload.starts_at,
                    expires_at=payload.expires_at,
                    created_by=user.id,
                )
            ]
    except InviteCodeError as exc:
        raise invite_code_http_error(exc) from exc
    now = Datetime.now()
    return [_to_read(invite, now) for invite in invites]


@router.get("/generate", response_model=InviteCodeGenerateResponse)
async def generate_invite_code(
    _user: User = Depends(get_current_superuser),
    service: InviteCodeService = Depends(get_invite_code_service),
) -> InviteCodeGenerateResponse:
    try:
        code = await service.generate_code()
    except InviteCodeError as exc:
        raise invite_code_http_error(exc) from exc
    return InviteCodeGenerateResponse(code=code)


@router.get("/statistics", response_model=InviteCodeStatistics)
async def invite_code_statistics(
    _user: User = Depends(get_current_superuser),
    service: InviteCodeService = Depends(get_invite_code_service),
) -> InviteCodeStatistics:
    return InviteCodeStatistics(**await service.statistics())


@router.post("/batch-delete", response_model=InviteCodeBatchDeleteResponse)
async def batch_delete_invite_codes(
    payload: InviteCodeBatchDeleteRequest,
    _user: User = Depends(get_current_superuser),
    service: InviteCodeService = Depends(get_invite_code_service),
) -> InviteCodeBatchDeleteResponse:
    try:
        deleted = await service.batch_delete(payload.ids)
    except InviteCodeError as exc:
        raise invite_code_http_error(exc) from exc
    return InviteCodeBatchDeleteResponse(deleted=deleted)


@router.get("/{invite_id}", response_model=InviteCodeRead)
async def get_invite_code(
    invite_id: UUID,
    _user: User = Depends(get_current_superuser),
    service: InviteCodeService = Depends(get_invite_code_service),
) -> InviteCodeRead:
    try:
        invite = await service.get(invite_id)
    except InviteCodeError as exc:
        raise invite_code_http_error(exc) from exc
    return _to_read(invite, Datetime.now())


@router.put("/{invite_id}", response_model=InviteCodeRead)
async def update_invite_code(
    invite_id: UUID,
    payload: InviteCodeUpdateRequest,
    _user: User = Depends(get_current_superuser),
    service: InviteCodeService = Depends(get_invite_code_service),
) -> InviteCodeRead:
    try:
        invite = await service.update(invite_id, payload.model_dump(exclude_unset=True))
    except InviteCodeError as exc:
        raise invite_code_http_error(exc) from exc
    return _to_read(invite, Datetime.now())


@router.delete("/{invite_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invite_code(
    invite_id: UUID,
    _user: User = Depends(get_current_superuser),
    service: InviteCodeService = Depends(get_invite_code_service),
) -> None:
    try:
        await service.delete(invite_id)
    except InviteCodeError as exc:
        raise invite_code_http_error(exc) from exc
