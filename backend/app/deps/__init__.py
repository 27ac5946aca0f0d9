from .auth import get_current_active_user, get_current_user
from .superuser import get_current_superuser

__all__ = [
    "get_current_active_user",
    "get_current_superuser",
    "get_current_user",
]
