# lifemate/api/v1/schemas.py
"""
Request bodies. Field checks raise ValueError with the user-facing message;
`lifemate.main` turns them into a 400 `{success, message, errors}` response.
Fields default to None and are validated anyway so a missing field reports
"<Field> is required" instead of pydantic's generic text.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from lifemate.core.security import (
    EMAIL_PATTERN,
    OTP_PATTERN,
    PHONE_PATTERN,
    normalize_email,
    password_strength_error,
)
from lifemate.models.user import SELF_SERVICE_ROLES


def _required():
    return Field(None, validate_default=True)


def check_email(value: Optional[str]) -> str:
    value = normalize_email(value)
    if not value:
        raise ValueError("Email is required")
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Please enter a valid email address")
    return value


def check_strong_password(value: Optional[str], label: str = "Password") -> str:
    error = password_strength_error(value)
    if error:
        raise ValueError(error.replace("Password", label, 1))
    return value


def check_name(value: Optional[str], label: str, required: bool = True) -> Optional[str]:
    if value is None or not value.strip():
        if required:
            raise ValueError(f"{label} is required")
        return None
    value = value.strip()
    if len(value) < 2:
        raise ValueError(f"{label} must be at least 2 characters long")
    if len(value) > 50:
        raise ValueError(f"{label} cannot exceed 50 characters")
    return value


def check_phone(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    if value and not PHONE_PATTERN.match(value):
        raise ValueError("Please enter a valid phone number")
    return value or None


def check_otp(value: Any) -> str:
    value = str(value or "").strip()
    if not value:
        raise ValueError("OTP is required")
    if not OTP_PATTERN.match(value):
        raise ValueError("OTP must be a 6-digit number")
    return value


class EmailIn(BaseModel):
    email: Optional[str] = _required()

    @field_validator("email")
    @classmethod
    def _email(cls, v):
        return check_email(v)


class RegisterIn(EmailIn):
    password: Optional[str] = _required()
    first_name: Optional[str] = _required()
    last_name: Optional[str] = _required()
    role: Optional[str] = _required()
    phone: Optional[str] = None

    @field_validator("password")
    @classmethod
    def _password(cls, v):
        return check_strong_password(v)

    @field_validator("first_name")
    @classmethod
    def _first_name(cls, v):
        return check_name(v, "First name")

    @field_validator("last_name")
    @classmethod
    def _last_name(cls, v):
        return check_name(v, "Last name")

    @field_validator("role")
    @classmethod
    def _role(cls, v):
        if not v:
            raise ValueError("Role is required")
        if v not in SELF_SERVICE_ROLES:
            raise ValueError("Role must be either jobseeker or employer")
        return v

    @field_validator("phone")
    @classmethod
    def _phone(cls, v):
        return check_phone(v)


class RegisterOtpRequestIn(EmailIn):
    first_name: Optional[str] = None


class RegisterOtpVerifyIn(RegisterIn):
    otp: Optional[str] = _required()

    @field_validator("otp", mode="before")
    @classmethod
    def _otp(cls, v):
        return check_otp(v)


class LoginIn(EmailIn):
    password: Optional[str] = _required()

    @field_validator("password")
    @classmethod
    def _password(cls, v):
        if not v:
            raise ValueError("Password is required")
        return v


class OAuthExchangeIn(BaseModel):
    code: Optional[str] = None


class OAuthSendOtpIn(BaseModel):
    pending_code: Optional[str] = None


class OAuthCompleteIn(BaseModel):
    # checked by the service so role and OTP errors keep their order
    pending_code: Optional[str] = None
    otp: Optional[str] = None
    role: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("otp", mode="before")
    @classmethod
    def _otp_text(cls, v):
        return None if v is None else str(v)


class ForgotPasswordOtpVerifyIn(EmailIn):
    otp: Optional[str] = _required()
    password: Optional[str] = _required()

    @field_validator("otp", mode="before")
    @classmethod
    def _otp(cls, v):
        return check_otp(v)

    @field_validator("password")
    @classmethod
    def _password(cls, v):
        return check_strong_password(v)


class ResetPasswordIn(BaseModel):
    password: Optional[str] = _required()

    @field_validator("password")
    @classmethod
    def _password(cls, v):
        return check_strong_password(v)


class ProfileUpdateIn(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    profile_image: Optional[str] = None

    @field_validator("first_name")
    @classmethod
    def _first_name(cls, v):
        return check_name(v, "First name", required=False)

    @field_validator("last_name")
    @classmethod
    def _last_name(cls, v):
        return check_name(v, "Last name", required=False)

    @field_validator("phone")
    @classmethod
    def _phone(cls, v):
        return check_phone(v)


class ChangePasswordIn(BaseModel):
    current_password: Optional[str] = _required()
    new_password: Optional[str] = _required()

    @field_validator("current_password")
    @classmethod
    def _current(cls, v):
        if not v:
            raise ValueError("Current password is required")
        return v

    @field_validator("new_password")
    @classmethod
    def _new(cls, v):
        return check_strong_password(v, "New password")


class ResumeIn(BaseModel):
    """Resume create/update body; content is validated by the resume service."""
    model_config = ConfigDict(extra="allow")

    auto_populate: bool = False
    regenerate_pdf: bool = False

    def content(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"auto_populate", "regenerate_pdf"}, exclude_unset=True)


class ProjectIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    description: Optional[str] = None
    technologies: Optional[List[str]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    url: Optional[str] = None
    role: Optional[str] = None


class LanguageIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    proficiency: Optional[str] = None
