from __future__ import annotations
from typing import Optional
from fastapi import Depends, Header

from ..errors import UnauthorizedError
from ..settings import Settings, get_settings


def current_user_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> Optional[str]:
    """Caller identity set by the upstream auth gateway; None means guest."""
    if x_user_id is None:
        return None
    return x_user_id.strip() or None


def require_user(user_id: Optional[str] = Depends(current_user_id)) -> str:
    if not user_id:
        raise UnauthorizedError("Authentication required", field="X-User-Id")
    return user_id


def is_admin(
    x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token"),
    settings: Settings = Depends(get_settings),
) -> bool:
    return bool(x_admin_token) and x_admin_token == settings.admin_token


def require_admin(admin: bool = Depends(is_admin)) -> None:
    if not admin:
        raise UnauthorizedError("Admin token required", field="X-Admin-Token")
