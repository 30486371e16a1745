# lifemate/api/v1/oauth.py
# mounted under both /api/oauth and /api/auth
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, RedirectResponse

from lifemate.api.deps import get_google_sign_in
from lifemate.services.oauth import GoogleSignIn

router = APIRouter()


@router.get("/google")
async def start_google(
    role: Optional[str] = Query(None),
    redirect_uri: Optional[str] = Query(None, alias="redirectUri"),
    sign_in: GoogleSignIn = Depends(get_google_sign_in),
):
    return RedirectResponse(sign_in.start_url(role, redirect_uri), status_code=302)


@router.get("/google/callback")
async def google_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    sign_in: GoogleSignIn = Depends(get_google_sign_in),
):
    return RedirectResponse(await sign_in.callback_url(code, state), status_code=302)


@router.get("/google/failure")
async def google_failure():
    return JSONResponse(status_code=401, content={"success": False, "message": "Google OAuth failed"})
