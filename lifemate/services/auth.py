# lifemate/services/auth.py
"""
Account and session workflows.

`AuthService` composes the user repository, the OTP service, the token
issuer and the mailer. Every public method normalizes the email first and
raises `lifemate.core.errors` exceptions; routes only translate results into
responses.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from lifemate.core.config import Settings
from lifemate.core.errors import (
    AlreadyExistsError,
    ExpiredTokenError,
    InvalidTokenError,
    NotFoundError,
    UnauthorizedError,
    UpstreamDeliveryError,
    ValidationFailedError,
)
from lifemate.core.security import (
    OTP_PATTERN,
    PHONE_PATTERN,
    PasswordHasher,
    normalize_email,
    password_strength_error,
    utcnow,
)
from lifemate.models.otp import IssueResult, OtpPurpose
from lifemate.models.user import Role, SELF_SERVICE_ROLES, User, UserCreate
from lifemate.repositories import employers as employer_repo
from lifemate.repositories import jobseekers as jobseeker_repo
from lifemate.repositories import users as user_repo
from lifemate.services.email_templates import password_reset_email, verification_email, welcome_email
from lifemate.services.mailer import MailDeliveryError, MailerAuthError
from lifemate.services.oauth import GOOGLE_PROVIDER
from lifemate.services.otp import OtpService
from lifemate.services.tokens import TokenIssuer

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password."
ACCOUNT_LOCKED = "Account is temporarily locked due to multiple failed login attempts. Please try again later."
ACCOUNT_BLOCKED = "Account is blocked. Please contact support."
ACCOUNT_DEACTIVATED = "Account is deactivated. Please contact support."
ACCOUNT_NOT_ACTIVE = "Account is not active."
USER_EXISTS = "User already exists with this email address."
OAUTH_SESSION_EXPIRED = "OAuth session expired. Please continue with Google again."
GENERIC_OTP_SENT = "If the email exists, an OTP has been sent."


@dataclass(frozen=True)
class AuthSession:
    user: User
    access_token: str
    refresh_token: str
    next_path: str


@dataclass(frozen=True)
class OAuthLinkPolicy:
    """
    When a Google sign-in matches an existing account by email:
    link_by_verified_email: attach the Google identity to that account.
    require_verified_account: only when the account's email was already verified.
    """
    link_by_verified_email: bool = True
    require_verified_account: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "OAuthLinkPolicy":
        return cls(
            link_by_verified_email=settings.OAUTH_LINK_BY_VERIFIED_EMAIL,
            require_verified_account=settings.OAUTH_LINK_REQUIRES_VERIFIED_ACCOUNT,
        )


def landing_path_for(role: str, has_employer_profile: bool = False) -> str:
    if role == Role.EMPLOYER.value:
        return "/dashboard/employee/jobs" if has_employer_profile else "/dashboard/employee/profile/create"
    if role == Role.ADMIN.value:
        return "/dashboard/admin"
    return "/dashboard/jobseeker"


def _require_strong_password(password: Optional[str], field: str = "password") -> None:
    error = password_strength_error(password)
    if error:
        raise ValidationFailedError.for_field(field, error)


def _clean_phone(phone: Optional[str]) -> Optional[str]:
    phone = (phone or "").strip()
    if phone and not PHONE_PATTERN.match(phone):
        raise ValidationFailedError.for_field("phone", "Please enter a valid phone number")
    return phone or None


class AuthService:
    def __init__(
        self,
        settings: Settings,
        mailer,
        otp: OtpService,
        issuer: TokenIssuer,
        hasher: PasswordHasher,
        clock=utcnow,
    ):
        self.settings = settings
        self.mailer = mailer
        self.otp = otp
        self.issuer = issuer
        self.hasher = hasher
        self.clock = clock
        self.link_policy = OAuthLinkPolicy.from_settings(settings)
        self.lock_duration = timedelta(minutes=settings.LOCK_DURATION_MINUTES)

    # --- helpers -------------------------------------------------------------

    async def _hash(self, password: str) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.hasher.hash, password)

    async def _check_password(self, password: Optional[str], password_hash: Optional[str]) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.hasher.verify, password, password_hash)

    async def next_path(self, user: User) -> str:
        has_profile = False
        if user.role == Role.EMPLOYER.value:
            has_profile = await employer_repo.exists_for_user(user.id)
        return landing_path_for(user.role, has_profile)

    async def _start_session(self, user: User) -> AuthSession:
        access = self.issuer.access_token(user.id, user.role, user.email)
        refresh = self.issuer.refresh_token(user.id)
        await user_repo.push_refresh_token(user.id, refresh, self.clock(), self.issuer.refresh_ttl)
        return AuthSession(user=user, access_token=access, refresh_token=refresh, next_path=await self.next_path(user))

    async def _send_best_effort(self, to: str, rendered, what: str) -> bool:
        try:
            await self.mailer.send(to, rendered.subject, rendered.html, rendered.text)
            return True
        except MailDeliveryError as exc:
            logger.warning("%s email to %s failed: %s", what, to, exc)
            return False

    async def _issue_otp(self, email: str, purpose: OtpPurpose, display_name: str) -> IssueResult:
        try:
            return await self.otp.issue(email, purpose, display_name)
        except MailerAuthError:
            raise UpstreamDeliveryError()
        except MailDeliveryError:
            raise UpstreamDeliveryError("Failed to send OTP. Please try again.")

    async def _require_otp(self, email: str, purpose: OtpPurpose, code: str) -> None:
        result = await self.otp.verify(email, purpose, code)
        if not result.success:
            raise ValidationFailedError.for_field("otp", result.message)

    async def _send_verification(self, user: User) -> None:
        now = self.clock()
        token = self.issuer.email_verification_token(user.id)
        await user_repo.set_verification_token(user.id, token, now + self.issuer.email_verification_ttl, now)
        url = f"{self.settings.FRONTEND_URL.rstrip('/')}/verify-email/{token}"
        await self._send_best_effort(user.email, verification_email(user.first_name, url), "Verification")

    async def _ensure_jobseeker_profile(self, user: User) -> None:
        if user.role == Role.JOBSEEKER.value:
            await jobseeker_repo.ensure_for_user(user.id, self.clock())

    async def _create_account(self, data: UserCreate) -> User:
        """Insert the user and, for job seekers, the profile; never leaves one without the other."""
        user = await user_repo.insert(data, self.clock())
        try:
            await self._ensure_jobseeker_profile(user)
        except Exception:
            logger.exception("Profile creation failed for %s; removing the new user", user.email)
            await user_repo.delete(user.id)
            raise
        return user

    # --- registration ----------------------------------------------------------

    async def register(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        role: str = Role.JOBSEEKER.value,
        phone: Optional[str] = None,
    ) -> AuthSession:
        email = normalize_email(email)
        _require_strong_password(password)
        if role not in SELF_SERVICE_ROLES:
            raise ValidationFailedError.for_field("role", "Role must be either jobseeker or employer")
        phone = _clean_phone(phone)
        if await user_repo.exists_by_email(email):
            raise AlreadyExistsError(USER_EXISTS)

        user = await self._create_account(
            UserCreate(
                email=email,
                password_hash=await self._hash(password),
                first_name=first_name.strip(),
                last_name=last_name.strip(),
                role=role,
                phone=phone,
            )
        )
        await self._send_verification(user)
        logger.info("Registered %s user %s", user.role, user.id)
        return await self._start_session(user)

    async def send_registration_otp(self, email: str, first_name: str = "") -> IssueResult:
        email = normalize_email(email)
        if await user_repo.exists_by_email(email):
            raise AlreadyExistsError(USER_EXISTS)
        return await self._issue_otp(email, OtpPurpose.REGISTER, first_name)

    async def verify_registration_otp(
        self,
        email: str,
        otp: str,
        password: str,
        first_name: str,
        last_name: str,
        role: str = Role.JOBSEEKER.value,
        phone: Optional[str] = None,
    ) -> AuthSession:
        email = normalize_email(email)
        _require_strong_password(password)
        if await user_repo.exists_by_email(email):
            raise AlreadyExistsError(USER_EXISTS)
        await self._require_otp(email, OtpPurpose.REGISTER, otp)
        return await self.register(email, password, first_name, last_name, role, phone)

    # --- login / logout / refresh ----------------------------------------------

    async def login(self, email: str, password: str) -> AuthSession:
        email = normalize_email(email)
        now = self.clock()
        user = await user_repo.find_by_email(email)
        if user is None:
            raise UnauthorizedError(INVALID_CREDENTIALS)
        if user.is_locked(now):
            raise UnauthorizedError(ACCOUNT_LOCKED)
        if user.is_blocked:
            raise UnauthorizedError(ACCOUNT_BLOCKED)
        if not user.is_active:
            raise UnauthorizedError(ACCOUNT_DEACTIVATED)

        max_attempts = self.settings.MAX_LOGIN_ATTEMPTS
        attempt = await user_repo.reserve_login_attempt(user.id, now, max_attempts)
        if attempt is None:
            # counter already at the limit; make sure a window is open so it can expire
            await user_repo.lock_account(user.id, now, max_attempts, self.lock_duration)
            raise UnauthorizedError(ACCOUNT_LOCKED)

        if not await self._check_password(password, user.password_hash):
            if attempt.login_attempts >= max_attempts:
                await user_repo.lock_account(user.id, now, max_attempts, self.lock_duration)
            logger.info("Failed login for user %s", user.id)
            raise UnauthorizedError(INVALID_CREDENTIALS)

        await user_repo.reset_login_state(user.id, now)
        user = user.model_copy(update={"login_attempts": 0, "lock_until": None, "last_login": now})
        return await self._start_session(user)

    async def logout(self, user_id: str, refresh_token: Optional[str]) -> None:
        if refresh_token:
            await user_repo.pull_refresh_token(user_id, refresh_token)

    async def refresh(self, refresh_token: Optional[str]) -> AuthSession:
        if not refresh_token:
            raise UnauthorizedError("Refresh token not provided.")
        try:
            user_id = self.issuer.verify_refresh(refresh_token)
        except ExpiredTokenError:
            raise ExpiredTokenError("Refresh token has expired. Please login again.")
        except InvalidTokenError:
            raise InvalidTokenError("Invalid refresh token.")

        now = self.clock()
        user = await user_repo.find_by_id(user_id)
        if user is None or not user.holds_refresh_token(refresh_token, now, self.issuer.refresh_ttl):
            raise InvalidTokenError("Invalid refresh token.")
        if not user.can_sign_in(now):
            raise UnauthorizedError(ACCOUNT_NOT_ACTIVE)

        access = self.issuer.access_token(user.id, user.role, user.email)
        new_refresh = self.issuer.refresh_token(user.id)
        if not await user_repo.rotate_refresh_token(user.id, refresh_token, new_refresh, now):
            # a concurrent refresh already consumed this token
            raise InvalidTokenError("Invalid refresh token.")
        return AuthSession(user=user, access_token=access, refresh_token=new_refresh, next_path=await self.next_path(user))

    async def resolve_user(self, access_token: str) -> User:
        """User behind a bearer access token."""
        claims = self.issuer.verify_access(access_token)
        user = await user_repo.find_by_id(claims.sub)
        if user is None:
            raise UnauthorizedError("User not found.")
        if not user.is_active or user.is_blocked:
            raise UnauthorizedError(ACCOUNT_NOT_ACTIVE)
        return user

    # --- Google sign-in ----------------------------------------------------------

    async def oauth_exchange(self, code: Optional[str]) -> AuthSession:
        if not code:
            raise UnauthorizedError("OAuth exchange code is required.")
        try:
            user_id = self.issuer.verify_oauth_exchange(code)
        except UnauthorizedError:
            raise UnauthorizedError("OAuth exchange failed. Please login again.")
        user = await user_repo.find_by_id(user_id)
        if user is None or not user.can_sign_in(self.clock()):
            raise UnauthorizedError("OAuth exchange failed.")
        return await self._start_session(user)

    def _pending(self, pending_code: Optional[str]):
        if not pending_code:
            raise ValidationFailedError.for_field("pending_code", "OAuth pending code is required.")
        try:
            return self.issuer.verify_oauth_pending(pending_code)
        except UnauthorizedError:
            raise UnauthorizedError(OAUTH_SESSION_EXPIRED)

    async def send_oauth_otp(self, pending_code: Optional[str]) -> IssueResult:
        pending = self._pending(pending_code)
        return await self._issue_otp(pending.email, OtpPurpose.OAUTH_LOGIN, pending.first_name or "User")

    def _check_link_allowed(self, user: User, google_id: str) -> None:
        if user.oauth_provider == GOOGLE_PROVIDER and user.oauth_id:
            if user.oauth_id != google_id:
                raise UnauthorizedError("This email is linked to a different Google account.")
            return
        if not self.link_policy.link_by_verified_email:
            raise UnauthorizedError("This email is already registered. Please sign in with your password.")
        if self.link_policy.require_verified_account and not user.is_email_verified:
            raise UnauthorizedError(
                "Please verify your email address before signing in with Google."
            )

    async def complete_oauth(
        self,
        pending_code: Optional[str],
        otp: Optional[str],
        role: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> AuthSession:
        otp = str(otp or "").strip()
        if not otp:
            raise ValidationFailedError.for_field("otp", "OTP is required.")
        if not OTP_PATTERN.match(otp):
            raise ValidationFailedError.for_field("otp", "OTP must be a 6-digit number.")
        pending = self._pending(pending_code)
        phone = _clean_phone(phone)

        requested = str(role or pending.requested_role or "").lower()
        selected_role = requested if requested in SELF_SERVICE_ROLES else None
        email = normalize_email(pending.email)
        now = self.clock()

        user = None
        if pending.existing_user_id:
            user = await user_repo.find_by_id(pending.existing_user_id)
        if user is None:
            user = await user_repo.find_by_email(email)

        # every rejection happens before the OTP is consumed
        if user is not None:
            if not user.can_sign_in(now):
                raise UnauthorizedError(ACCOUNT_NOT_ACTIVE)
            if selected_role and user.role != selected_role:
                raise ValidationFailedError.for_field(
                    "role", f"This email is already registered as {user.role}. Please continue as {user.role}."
                )
            self._check_link_allowed(user, pending.google_id)
        elif not selected_role:
            raise ValidationFailedError.for_field("role", "Please select a role to continue.")

        await self._require_otp(email, OtpPurpose.OAUTH_LOGIN, otp)

        if user is not None:
            changes = {}
            if not user.oauth_provider or not user.oauth_id:
                changes.update(oauth_provider=GOOGLE_PROVIDER, oauth_id=pending.google_id, is_email_verified=True)
                if not user.profile_image and pending.profile_image:
                    changes["profile_image"] = pending.profile_image
            if phone and user.phone != phone:
                changes["phone"] = phone
            if changes:
                user = await user_repo.update_fields(user.id, changes, now) or user
                logger.info("Linked Google identity to user %s", user.id)
            await self._ensure_jobseeker_profile(user)
        else:
            user = await self._create_account(
                UserCreate(
                    email=email,
                    role=selected_role,
                    first_name=pending.first_name or "User",
                    last_name=pending.last_name or "Google",
                    is_email_verified=True,
                    oauth_provider=GOOGLE_PROVIDER,
                    oauth_id=pending.google_id,
                    profile_image=pending.profile_image,
                    phone=phone,
                )
            )
            logger.info("Created %s user %s from Google sign-in", user.role, user.id)

        return await self._start_session(user)

    # --- email verification ------------------------------------------------------

    async def verify_email(self, token: str) -> User:
        invalid = ValidationFailedError("Invalid or expired verification token.")
        try:
            user_id = self.issuer.verify_email_verification(token)
        except UnauthorizedError:
            raise invalid
        now = self.clock()
        user = await user_repo.find_by_verification_token(token, now)
        if user is None or user.id != user_id:
            raise invalid
        await user_repo.mark_email_verified(user.id, now)
        dashboard = f"{self.settings.FRONTEND_URL.rstrip('/')}{await self.next_path(user)}"
        await self._send_best_effort(user.email, welcome_email(user.first_name, user.role, dashboard), "Welcome")
        return user.model_copy(update={"is_email_verified": True})

    async def resend_verification_email(self, email: str) -> None:
        user = await user_repo.find_by_email(normalize_email(email))
        if user is None:
            raise NotFoundError("User not found.")
        if user.is_email_verified:
            raise ValidationFailedError("Email is already verified.")
        now = self.clock()
        token = self.issuer.email_verification_token(user.id)
        await user_repo.set_verification_token(user.id, token, now + self.issuer.email_verification_ttl, now)
        url = f"{self.settings.FRONTEND_URL.rstrip('/')}/verify-email/{token}"
        rendered = verification_email(user.first_name, url)
        try:
            await self.mailer.send(user.email, rendered.subject, rendered.html, rendered.text)
        except MailerAuthError:
            raise UpstreamDeliveryError()
        except MailDeliveryError:
            raise UpstreamDeliveryError("Failed to send verification email. Please try again.")

    # --- password recovery ---------------------------------------------------------

    async def forgot_password(self, email: str) -> None:
        """Mail a reset link when the account exists. Same outcome either way."""
        user = await user_repo.find_by_email(normalize_email(email))
        if user is None:
            return
        now = self.clock()
        token = self.issuer.password_reset_token(user.id)
        await user_repo.set_reset_token(user.id, token, now + self.issuer.password_reset_ttl, now)
        url = f"{self.settings.FRONTEND_URL.rstrip('/')}/reset-password/{token}"
        await self._send_best_effort(user.email, password_reset_email(user.first_name, url), "Password reset")

    async def reset_password(self, token: str, password: str) -> None:
        _require_strong_password(password)
        invalid = ValidationFailedError("Invalid or expired password reset token.")
        try:
            user_id = self.issuer.verify_password_reset(token)
        except UnauthorizedError:
            raise invalid
        now = self.clock()
        user = await user_repo.find_by_reset_token(token, now)
        if user is None or user.id != user_id:
            raise invalid
        await user_repo.set_password(user.id, await self._hash(password), now)
        logger.info("Password reset for user %s", user.id)

    async def send_forgot_password_otp(self, email: str) -> IssueResult:
        email = normalize_email(email)
        user = await user_repo.find_by_email(email)
        if user is None:
            return IssueResult(delivered_via_email=True)
        return await self._issue_otp(email, OtpPurpose.FORGOT_PASSWORD, user.first_name)

    async def verify_forgot_password_otp(self, email: str, otp: str, password: str) -> None:
        _require_strong_password(password)
        email = normalize_email(email)
        user = await user_repo.find_by_email(email)
        if user is None:
            raise ValidationFailedError("Invalid OTP or email.")
        await self._require_otp(email, OtpPurpose.FORGOT_PASSWORD, otp)
        await user_repo.set_password(user.id, await self._hash(password), self.clock())
        logger.info("Password reset by OTP for user %s", user.id)

    # --- profile ----------------------------------------------------------------------

    async def get_profile(self, user_id: str) -> User:
        user = await user_repo.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found.")
        return user

    async def update_profile(
        self,
        user_id: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        phone: Optional[str] = None,
        profile_image: Optional[str] = None,
    ) -> User:
        changes = {}
        if first_name:
            changes["first_name"] = first_name.strip()
        if last_name:
            changes["last_name"] = last_name.strip()
        if phone:
            changes["phone"] = _clean_phone(phone)
        if profile_image:
            changes["profile_image"] = profile_image
        if not changes:
            return await self.get_profile(user_id)
        user = await user_repo.update_fields(user_id, changes, self.clock())
        if user is None:
            raise NotFoundError("User not found.")
        return user

    async def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        user = await self.get_profile(user_id)
        if not await self._check_password(current_password, user.password_hash):
            raise ValidationFailedError.for_field("current_password", "Current password is incorrect.")
        if current_password == new_password:
            raise ValidationFailedError.for_field(
                "new_password", "New password must be different from current password"
            )
        _require_strong_password(new_password, field="new_password")
        await user_repo.set_password(user.id, await self._hash(new_password), self.clock())
        logger.info("Password changed for user %s", user.id)
