# lifemate/api/v1/auth.py
from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from lifemate.api.deps import get_auth_service, get_current_user, get_settings
from lifemate.api.v1.responses import clear_refresh_cookie, ok, session_data, set_refresh_cookie
from lifemate.api.v1.schemas import (
    ChangePasswordIn,
    EmailIn,
    ForgotPasswordOtpVerifyIn,
    LoginIn,
    OAuthCompleteIn,
    OAuthExchangeIn,
    OAuthSendOtpIn,
    ProfileUpdateIn,
    RegisterIn,
    RegisterOtpRequestIn,
    RegisterOtpVerifyIn,
    ResetPasswordIn,
)
from lifemate.core.config import Settings
from lifemate.core.errors import ExpiredTokenError
from lifemate.models.otp import IssueResult
from lifemate.models.user import User, UserPublic
from lifemate.services.auth import GENERIC_OTP_SENT, AuthService

router = APIRouter()

REGISTERED = "User registered successfully. Please check your email for verification."
DEV_FALLBACK_SENT = "OTP generated in development fallback mode. Check backend logs."


def _otp_message(result: IssueResult, sent: str = "OTP sent to your email address.") -> str:
    return sent if result.delivered_via_email else DEV_FALLBACK_SENT


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterIn,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    session = await auth.register(
        payload.email, payload.password, payload.first_name, payload.last_name, payload.role, payload.phone
    )
    set_refresh_cookie(response, settings, session.refresh_token)
    return ok(REGISTERED, session_data(session))


@router.post("/register/send-otp")
async def send_registration_otp(payload: RegisterOtpRequestIn, auth: AuthService = Depends(get_auth_service)):
    result = await auth.send_registration_otp(payload.email, payload.first_name or "")
    return ok(_otp_message(result))


@router.post("/register/verify-otp", status_code=status.HTTP_201_CREATED)
async def verify_registration_otp(
    payload: RegisterOtpVerifyIn,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    session = await auth.verify_registration_otp(
        payload.email,
        payload.otp,
        payload.password,
        payload.first_name,
        payload.last_name,
        payload.role,
        payload.phone,
    )
    set_refresh_cookie(response, settings, session.refresh_token)
    return ok(REGISTERED, session_data(session))


@router.post("/login")
async def login(
    payload: LoginIn,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    session = await auth.login(payload.email, payload.password)
    set_refresh_cookie(response, settings, session.refresh_token)
    return ok("Login successful", session_data(session))


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    await auth.logout(user.id, request.cookies.get(settings.REFRESH_COOKIE_NAME))
    clear_refresh_cookie(response, settings)
    return ok("Logout successful")


@router.post("/refresh-token")
async def refresh_token(
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    try:
        session = await auth.refresh(request.cookies.get(settings.REFRESH_COOKIE_NAME))
    except ExpiredTokenError as exc:
        expired = JSONResponse(status_code=exc.status_code, content=exc.to_dict())
        clear_refresh_cookie(expired, settings)
        return expired
    set_refresh_cookie(response, settings, session.refresh_token)
    return ok("Token refreshed successfully", {"access_token": session.access_token})


@router.post("/oauth/exchange")
async def oauth_exchange(
    payload: OAuthExchangeIn,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    session = await auth.oauth_exchange(payload.code)
    set_refresh_cookie(response, settings, session.refresh_token)
    return ok("OAuth exchange successful", session_data(session))


@router.post("/oauth/send-otp")
async def send_oauth_otp(payload: OAuthSendOtpIn, auth: AuthService = Depends(get_auth_service)):
    result = await auth.send_oauth_otp(payload.pending_code)
    return ok(_otp_message(result, "OTP sent to your Google email address."))


@router.post("/oauth/complete")
async def complete_oauth(
    payload: OAuthCompleteIn,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
):
    session = await auth.complete_oauth(payload.pending_code, payload.otp, payload.role, payload.phone)
    set_refresh_cookie(response, settings, session.refresh_token)
    return ok("OAuth login successful", session_data(session))


@router.get("/verify-email/{token}")
async def verify_email(token: str, auth: AuthService = Depends(get_auth_service)):
    await auth.verify_email(token)
    return ok("Email verified successfully")


@router.post("/resend-verification")
async def resend_verification(payload: EmailIn, auth: AuthService = Depends(get_auth_service)):
    await auth.resend_verification_email(payload.email)
    return ok("Verification email sent successfully")


@router.post("/forgot-password")
async def forgot_password(payload: EmailIn, auth: AuthService = Depends(get_auth_service)):
    await auth.forgot_password(payload.email)
    return ok("If the email exists, a password reset link has been sent.")


@router.post("/forgot-password/send-otp")
async def send_forgot_password_otp(payload: EmailIn, auth: AuthService = Depends(get_auth_service)):
    result = await auth.send_forgot_password_otp(payload.email)
    # same answer whether or not the account exists
    return ok(_otp_message(result, GENERIC_OTP_SENT))


@router.post("/forgot-password/verify-otp")
async def verify_forgot_password_otp(
    payload: ForgotPasswordOtpVerifyIn, auth: AuthService = Depends(get_auth_service)
):
    await auth.verify_forgot_password_otp(payload.email, payload.otp, payload.password)
    return ok("Password reset successfully.")


@router.post("/reset-password/{token}")
async def reset_password(token: str, payload: ResetPasswordIn, auth: AuthService = Depends(get_auth_service)):
    await auth.reset_password(token, payload.password)
    return ok("Password reset successfully")


@router.get("/profile")
async def get_profile(user: User = Depends(get_current_user), auth: AuthService = Depends(get_auth_service)):
    user = await auth.get_profile(user.id)
    return ok("Profile retrieved successfully", {"user": UserPublic.from_user(user)})


@router.put("/profile")
async def update_profile(
    payload: ProfileUpdateIn,
    user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
):
    user = await auth.update_profile(
        user.id, payload.first_name, payload.last_name, payload.phone, payload.profile_image
    )
    return ok("Profile updated successfully", {"user": UserPublic.from_user(user)})


@router.put("/change-password")
async def change_password(
    payload: ChangePasswordIn,
    user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
):
    await auth.change_password(user.id, payload.current_password, payload.new_password)
    return ok("Password changed successfully")
