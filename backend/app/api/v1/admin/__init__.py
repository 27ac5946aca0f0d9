"""
Admin API 路由包
"""
from app.api.v1.admin.invite_codes_route import router as invite_codes_router
from app.api.v1.admin.settings_route import router as settings_router

__all__ = [
    "invite_codes_router",
    "settings_router",
]
