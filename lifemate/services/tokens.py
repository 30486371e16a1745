# lifemate/services/tokens.py
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel

from lifemate.core.config import Settings
from lifemate.core.errors import ExpiredTokenError, InvalidTokenError

ACCESS = "access"
REFRESH = "refresh"
OAUTH_EXCHANGE = "oauth_exchange"
OAUTH_PENDING = "oauth_pending"
EMAIL_VERIFICATION = "email_verification"
PASSWORD_RESET = "password_reset"


class AccessClaims(BaseModel):
    sub: str
    role: str
    email: str


class PendingOAuthContext(BaseModel):
    """Google identity waiting for OTP confirmation; lives only inside a signed token."""
    email: str
    google_id: str
    first_name: str = ""
    last_name: str = ""
    profile_image: Optional[str] = None
    existing_user_id: Optional[str] = None
    existing_role: Optional[str] = None
    requested_role: Optional[str] = None


class TokenIssuer:
    """Signs and verifies every JWT the service hands out."""

    def __init__(self, settings: Settings, clock=None):
        self._settings = settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # --- encoding -----------------------------------------------------------

    def _encode(self, claims: Dict[str, Any], token_type: str, ttl: timedelta, secret: str) -> str:
        now = self._clock()
        payload = {**claims, "type": token_type, "iat": now, "exp": now + ttl}
        return jwt.encode(payload, secret, algorithm=self._settings.JWT_ALGORITHM)

    def access_token(self, user_id: str, role: str, email: str) -> str:
        return self._encode(
            {"sub": user_id, "role": role, "email": email},
            ACCESS,
            timedelta(minutes=self._settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            self._settings.JWT_SECRET,
        )

    def refresh_token(self, user_id: str) -> str:
        # jti keeps tokens minted in the same second distinct
        return self._encode(
            {"sub": user_id, "jti": uuid.uuid4().hex},
            REFRESH,
            self.refresh_ttl,
            self._settings.JWT_REFRESH_SECRET,
        )

    def oauth_exchange_token(self, user_id: str) -> str:
        return self._encode(
            {"sub": user_id},
            OAUTH_EXCHANGE,
            timedelta(seconds=self._settings.OAUTH_EXCHANGE_TOKEN_EXPIRE_SECONDS),
            self._settings.JWT_SECRET,
        )

    def oauth_pending_token(self, context: PendingOAuthContext) -> str:
        return self._encode(
            context.model_dump(),
            OAUTH_PENDING,
            timedelta(minutes=self._settings.OAUTH_PENDING_TOKEN_EXPIRE_MINUTES),
            self._settings.JWT_SECRET,
        )

    def email_verification_token(self, user_id: str) -> str:
        return self._encode(
            {"sub": user_id},
            EMAIL_VERIFICATION,
            self.email_verification_ttl,
            self._settings.JWT_SECRET,
        )

    def password_reset_token(self, user_id: str) -> str:
        return self._encode(
            {"sub": user_id},
            PASSWORD_RESET,
            self.password_reset_ttl,
            self._settings.JWT_SECRET,
        )

    @property
    def refresh_ttl(self) -> timedelta:
        return timedelta(days=self._settings.REFRESH_TOKEN_EXPIRE_DAYS)

    @property
    def email_verification_ttl(self) -> timedelta:
        return timedelta(hours=self._settings.EMAIL_VERIFICATION_EXPIRE_HOURS)

    @property
    def password_reset_ttl(self) -> timedelta:
        return timedelta(minutes=self._settings.PASSWORD_RESET_EXPIRE_MINUTES)

    # --- decoding -----------------------------------------------------------

    def _decode(self, token: str, token_type: str, secret: str) -> Dict[str, Any]:
        if not token:
            raise InvalidTokenError()
        try:
            # exp is checked against our clock below so tests can move time
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self._settings.JWT_ALGORITHM],
                options={"verify_exp": False},
            )
        except ExpiredSignatureError:
            raise ExpiredTokenError()
        except JWTError:
            raise InvalidTokenError()
        if payload.get("type") != token_type:
            raise InvalidTokenError()
        exp = payload.get("exp")
        if not isinstance(exp, (int, float)):
            raise InvalidTokenError()
        if exp <= self._clock().timestamp():
            raise ExpiredTokenError()
        return payload

    def _subject(self, payload: Dict[str, Any]) -> str:
        sub = payload.get("sub")
        if not sub:
            raise InvalidTokenError()
        return str(sub)

    def verify_access(self, token: str) -> AccessClaims:
        payload = self._decode(token, ACCESS, self._settings.JWT_SECRET)
        return AccessClaims(sub=self._subject(payload), role=payload.get("role", ""), email=payload.get("email", ""))

    def verify_refresh(self, token: str) -> str:
        return self._subject(self._decode(token, REFRESH, self._settings.JWT_REFRESH_SECRET))

    def verify_oauth_exchange(self, token: str) -> str:
        return self._subject(self._decode(token, OAUTH_EXCHANGE, self._settings.JWT_SECRET))

    def verify_oauth_pending(self, token: str) -> PendingOAuthContext:
        payload = self._decode(token, OAUTH_PENDING, self._settings.JWT_SECRET)
        if not payload.get("email") or not payload.get("google_id"):
            raise InvalidTokenError()
        return PendingOAuthContext(**{k: payload.get(k) for k in PendingOAuthContext.model_fields if k in payload})

    def verify_email_verification(self, token: str) -> str:
        return self._subject(self._decode(token, EMAIL_VERIFICATION, self._settings.JWT_SECRET))

    def verify_password_reset(self, token: str) -> str:
        return self._subject(self._decode(token, PASSWORD_RESET, self._settings.JWT_SECRET))
