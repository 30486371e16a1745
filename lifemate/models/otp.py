# lifemate/models/otp.py
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict


class OtpPurpose(str, Enum):
    REGISTER = "register"
    FORGOT_PASSWORD = "forgot_password"
    OAUTH_LOGIN = "oauth_login"


@dataclass(frozen=True)
class OtpPolicy:
    ttl: timedelta
    resend_cooldown: timedelta
    max_attempts: int
    email_title: str
    email_description: str


OTP_POLICIES: Dict[OtpPurpose, OtpPolicy] = {
    OtpPurpose.REGISTER: OtpPolicy(
        ttl=timedelta(minutes=10),
        resend_cooldown=timedelta(seconds=60),
        max_attempts=5,
        email_title="Registration OTP",
        email_description="Use this OTP to complete your account registration.",
    ),
    OtpPurpose.FORGOT_PASSWORD: OtpPolicy(
        ttl=timedelta(minutes=10),
        resend_cooldown=timedelta(seconds=60),
        max_attempts=5,
        email_title="Password Reset OTP",
        email_description="Use this OTP to reset your account password.",
    ),
    OtpPurpose.OAUTH_LOGIN: OtpPolicy(
        ttl=timedelta(minutes=10),
        resend_cooldown=timedelta(seconds=60),
        max_attempts=5,
        email_title="Google Sign-in OTP",
        email_description="Use this OTP to finish signing in with your Google account.",
    ),
}

_unmapped = set(OtpPurpose) - set(OTP_POLICIES)
if _unmapped:
    raise RuntimeError(f"OTP purposes without a policy: {sorted(p.value for p in _unmapped)}")


def policy_for(purpose: OtpPurpose) -> OtpPolicy:
    return OTP_POLICIES[OtpPurpose(purpose)]


class OtpFailure(str, Enum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    INVALID = "invalid"


OTP_FAILURE_MESSAGES: Dict[OtpFailure, str] = {
    OtpFailure.NOT_FOUND: "Invalid or expired OTP.",
    OtpFailure.EXPIRED: "OTP has expired. Please request a new one.",
    OtpFailure.TOO_MANY_ATTEMPTS: "OTP verification failed too many times. Please request a new OTP.",
    OtpFailure.INVALID: "Invalid OTP.",
}


class OtpRecord(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    id: str
    email: str
    purpose: OtpPurpose
    otp_hash: str
    expires_at: datetime
    attempts: int = 0
    last_sent_at: Optional[datetime] = None


@dataclass(frozen=True)
class IssueResult:
    delivered_via_email: bool


@dataclass(frozen=True)
class VerifyResult:
    success: bool
    reason: Optional[OtpFailure] = None

    @property
    def message(self) -> Optional[str]:
        return OTP_FAILURE_MESSAGES[self.reason] if self.reason else None
