# lifemate/api/v1/responses.py
from typing import Any, Dict, Optional

from fastapi import Response

from lifemate.core.config import Settings
from lifemate.models.user import UserPublic
from lifemate.services.auth import AuthSession


def ok(message: str, data: Optional[Any] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    return body


def session_data(session: AuthSession) -> Dict[str, Any]:
    return {
        "user": UserPublic.from_user(session.user),
        "access_token": session.access_token,
        "next_path": session.next_path,
    }


def set_refresh_cookie(response: Response, settings: Settings, token: str) -> None:
    response.set_cookie(
        settings.REFRESH_COOKIE_NAME,
        token,
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 3600,
        httponly=True,
        secure=settings.REFRESH_COOKIE_SECURE,
        samesite=settings.REFRESH_COOKIE_SAMESITE,
        path=settings.REFRESH_COOKIE_PATH,
    )


def clear_refresh_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        settings.REFRESH_COOKIE_NAME,
        path=settings.REFRESH_COOKIE_PATH,
        httponly=True,
        secure=settings.REFRESH_COOKIE_SECURE,
        samesite=settings.REFRESH_COOKIE_SAMESITE,
    )
