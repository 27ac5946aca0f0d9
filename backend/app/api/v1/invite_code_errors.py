from fastapi import HTTPException, status

from app.services.users.invite_code_service import (
    InviteCodeError,
    InviteCodeGenerationError,
    InviteCodeNotFoundError,
    InviteCodeNotUsableError,
    InviteCodeValidationError,
    NoUsableInviteCodesError,
)

_STATUS_BY_ERROR: dict[type[InviteCodeError], int] = {
    InviteCodeNotFoundError: status.HTTP_404_NOT_FOUND,
    InviteCodeNotUsableError: status.HTTP_400_BAD_REQUEST,
    NoUsableInviteCodesError: status.HTTP_409_CONFLICT,
    InviteCodeValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InviteCodeGenerationError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def invite_code_http_error(exc: InviteCodeError) -> HTTPException:
    """邀请码业务异常 -> HTTPException，detail 原样透传给调用方。"""
    status_code = _STATUS_BY_ERROR.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=status_code, detail=str(exc))


__all__ = ["invite_code_http_error"]
