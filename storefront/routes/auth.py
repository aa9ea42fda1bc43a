from __future__ import annotations
import secrets
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..errors import UnauthorizedError
from ..settings import Settings, get_settings

router = APIRouter(prefix="/auth", tags=["auth"])

# Admin credentials come from settings (simple, no JWT to keep it minimal)


class LoginBody(BaseModel):
    username: str
    password: str


@router.post("/login")
def login(body: LoginBody, settings: Settings = Depends(get_settings)):
    user_ok = secrets.compare_digest(body.username, settings.admin_username)
    pass_ok = secrets.compare_digest(body.password, settings.admin_password)
    if user_ok and pass_ok:
        return {"token": settings.admin_token}
    raise UnauthorizedError("invalid credentials")


@router.get("/me")
def me(token: str, settings: Settings = Depends(get_settings)):
    if secrets.compare_digest(token, settings.admin_token):
        return {"ok": True}
    raise UnauthorizedError("invalid token", field="token")
