# lifemate/api/deps.py
"""
FastAPI dependencies wiring settings into the services.

Tests replace `get_settings`, `get_clock`, `get_mailer`, `get_storage` or
`get_google_client` through `app.dependency_overrides`.
"""
from functools import lru_cache
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from lifemate.core.config import Settings, settings
from lifemate.core.errors import ForbiddenError, UnauthorizedError
from lifemate.core.security import PasswordHasher, utcnow
from lifemate.models.user import User
from lifemate.services.auth import AuthService
from lifemate.services.jobseekers import JobSeekerService
from lifemate.services.mailer import SmtpMailer
from lifemate.services.oauth import GoogleOAuthClient, GoogleSignIn
from lifemate.services.otp import OtpService
from lifemate.services.resumes import ResumeService
from lifemate.services.storage import BlobStorage
from lifemate.services.tokens import TokenIssuer

bearer = HTTPBearer(auto_error=False)


def get_settings() -> Settings:
    return settings


def get_clock():
    return utcnow


@lru_cache(maxsize=4)
def _hasher(rounds: int) -> PasswordHasher:
    return PasswordHasher(rounds=rounds)


def get_mailer(s: Settings = Depends(get_settings)):
    return SmtpMailer(s)


def get_storage(s: Settings = Depends(get_settings)) -> BlobStorage:
    return BlobStorage(s)


def get_token_issuer(s: Settings = Depends(get_settings), clock=Depends(get_clock)) -> TokenIssuer:
    return TokenIssuer(s, clock=clock)


def get_otp_service(
    s: Settings = Depends(get_settings), mailer=Depends(get_mailer), clock=Depends(get_clock)
) -> OtpService:
    return OtpService(s, mailer, clock=clock)


def get_auth_service(
    s: Settings = Depends(get_settings),
    mailer=Depends(get_mailer),
    otp: OtpService = Depends(get_otp_service),
    issuer: TokenIssuer = Depends(get_token_issuer),
    clock=Depends(get_clock),
) -> AuthService:
    return AuthService(s, mailer, otp, issuer, _hasher(s.BCRYPT_ROUNDS), clock=clock)


def get_resume_service(
    s: Settings = Depends(get_settings), storage: BlobStorage = Depends(get_storage), clock=Depends(get_clock)
) -> ResumeService:
    return ResumeService(s, storage, clock=clock)


def get_jobseeker_service(
    s: Settings = Depends(get_settings), storage: BlobStorage = Depends(get_storage), clock=Depends(get_clock)
) -> JobSeekerService:
    return JobSeekerService(s, storage, clock=clock)


def get_google_client(s: Settings = Depends(get_settings)) -> GoogleOAuthClient:
    return GoogleOAuthClient(s)


def get_google_sign_in(
    s: Settings = Depends(get_settings),
    client: GoogleOAuthClient = Depends(get_google_client),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> GoogleSignIn:
    return GoogleSignIn(s, client, issuer)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    auth: AuthService = Depends(get_auth_service),
) -> User:
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Access denied. No token provided.")
    return await auth.resolve_user(credentials.credentials)


async def get_current_jobseeker(user: User = Depends(get_current_user)) -> User:
    if user.role != "jobseeker":
        raise ForbiddenError("Access denied. Job seeker account required.")
    return user
