# lifemate/models/user.py
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Role(str, Enum):
    JOBSEEKER = "jobseeker"
    EMPLOYER = "employer"
    ADMIN = "admin"


# roles a user may pick for themselves (admins are provisioned out of band)
SELF_SERVICE_ROLES = (Role.JOBSEEKER.value, Role.EMPLOYER.value)


class RefreshTokenEntry(BaseModel):
    token: str
    created_at: datetime


class UserCreate(BaseModel):
    """Fields required to insert a new user document."""
    model_config = ConfigDict(use_enum_values=True)

    email: str
    role: Role = Role.JOBSEEKER
    first_name: str
    last_name: str
    password_hash: Optional[str] = None
    phone: Optional[str] = None
    profile_image: Optional[str] = None
    is_email_verified: bool = False
    oauth_provider: Optional[str] = None
    oauth_id: Optional[str] = None

    @model_validator(mode="after")
    def _password_or_oauth(self):
        if not self.password_hash and not self.oauth_provider:
            raise ValueError("password is required unless an OAuth provider is set")
        return self


class User(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    id: str
    email: str
    role: Role = Role.JOBSEEKER
    first_name: str = ""
    last_name: str = ""
    password_hash: Optional[str] = None
    phone: Optional[str] = None
    profile_image: Optional[str] = None
    profile_image_file_id: Optional[str] = None

    is_email_verified: bool = False
    is_active: bool = True
    is_blocked: bool = False

    oauth_provider: Optional[str] = None
    oauth_id: Optional[str] = None

    email_verification_token: Optional[str] = None
    email_verification_expires: Optional[datetime] = None
    password_reset_token: Optional[str] = None
    password_reset_expires: Optional[datetime] = None

    refresh_tokens: List[RefreshTokenEntry] = Field(default_factory=list)
    login_attempts: int = 0
    lock_until: Optional[datetime] = None
    last_login: Optional[datetime] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def is_locked(self, now: datetime) -> bool:
        return bool(self.lock_until and self.lock_until > now)

    def can_sign_in(self, now: datetime) -> bool:
        return self.is_active and not self.is_blocked and not self.is_locked(now)

    def holds_refresh_token(self, token: str, now: datetime, max_age: timedelta) -> bool:
        return any(
            entry.token == token and entry.created_at + max_age > now
            for entry in self.refresh_tokens
        )


class UserPublic(BaseModel):
    """User projection returned to clients; never carries credentials."""
    id: str
    email: str
    first_name: str
    last_name: str
    role: str
    phone: Optional[str] = None
    profile_image: Optional[str] = None
    is_email_verified: bool = False
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserPublic":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            phone=user.phone,
            profile_image=user.profile_image,
            is_email_verified=user.is_email_verified,
            last_login=user.last_login,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )
