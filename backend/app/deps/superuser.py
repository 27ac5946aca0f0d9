from fastapi import Depends, HTTPException, status

from app.deps.auth import get_current_active_user
from app.models import User


async def get_current_superuser(
    user: User = Depends(get_current_active_user),
) -> User:
    if not user.is_superuser:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Superuser privileges required"
        )
    return user
