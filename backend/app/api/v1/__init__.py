"""
v1 路由聚合
"""

from app.api.v1.admin import invite_codes_router as admin_invite_codes_router
from app.api.v1.admin import settings_router as admin_settings_router
from app.api.v1.auth_route import router as auth_router

__all__ = [
    "admin_invite_codes_router",
    "admin_settings_router",
    "auth_router",
]
