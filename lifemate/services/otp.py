# lifemate/services/otp.py
"""
One-time passcodes for registration, password reset and Google sign-in.

Only an HMAC of the code is stored. A live record is unique per
(email, purpose); issuing again replaces it once the resend cooldown has
passed. Cooldown and attempt limits live in the filters of the conditional
updates in `lifemate.repositories.otps`, never in reads made here.
"""
import hashlib
import hmac
import logging
import math
import secrets

from pymongo.errors import DuplicateKeyError

from lifemate.core.config import Settings
from lifemate.core.errors import RateLimitedError
from lifemate.core.security import normalize_email, utcnow
from lifemate.models.otp import IssueResult, OtpFailure, OtpPurpose, VerifyResult, policy_for
from lifemate.repositories import otps as otp_repo
from lifemate.services.email_templates import otp_email
from lifemate.services.mailer import MailDeliveryError

logger = logging.getLogger(__name__)


def generate_code() -> str:
    return str(secrets.randbelow(900000) + 100000)


class OtpService:
    def __init__(self, settings: Settings, mailer, clock=utcnow):
        self._settings = settings
        self._mailer = mailer
        self._clock = clock

    def hash_code(self, email: str, purpose: OtpPurpose, code: str) -> str:
        message = f"{email}:{OtpPurpose(purpose).value}:{code}".encode("utf-8")
        return hmac.new(self._settings.otp_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()

    @property
    def dev_fallback_enabled(self) -> bool:
        return self._settings.OTP_DEV_FALLBACK and not self._settings.is_production

    async def issue(self, email: str, purpose: OtpPurpose, display_name: str = "") -> IssueResult:
        purpose = OtpPurpose(purpose)
        policy = policy_for(purpose)
        email = normalize_email(email)
        now = self._clock()

        try:
            previous = await otp_repo.reserve_send(
                email, purpose, now, now - policy.resend_cooldown, now + policy.ttl
            )
        except DuplicateKeyError:
            raise RateLimitedError(retry_after_seconds=await self._cooldown_left(email, purpose, now))

        code = generate_code()
        rendered = otp_email(display_name, code, purpose)
        delivered = True
        try:
            await self._mailer.send(email, rendered.subject, rendered.html, rendered.text)
        except MailDeliveryError:
            if not self.dev_fallback_enabled:
                await otp_repo.release_send(email, purpose, now, previous.last_sent_at if previous else None)
                raise
            delivered = False
            logger.warning("OTP email failed; dev fallback code for %s (%s): %s", email, purpose.value, code)

        # the code goes live only after delivery so a failed send leaves none behind
        otp_hash = self.hash_code(email, purpose, code)
        if not await otp_repo.store_code(email, purpose, otp_hash, now + policy.ttl, now):
            logger.error("OTP record for %s (%s) vanished before the code was stored", email, purpose.value)
        return IssueResult(delivered_via_email=delivered)

    async def _cooldown_left(self, email: str, purpose: OtpPurpose, now) -> int:
        cooldown = policy_for(purpose).resend_cooldown.total_seconds()
        existing = await otp_repo.find(email, purpose)
        if existing is None or existing.last_sent_at is None:
            return max(1, math.ceil(cooldown))
        elapsed = (now - existing.last_sent_at).total_seconds()
        return max(1, math.ceil(cooldown - elapsed))

    async def verify(self, email: str, purpose: OtpPurpose, code: str) -> VerifyResult:
        purpose = OtpPurpose(purpose)
        policy = policy_for(purpose)
        email = normalize_email(email)
        now = self._clock()

        record = await otp_repo.reserve_attempt(email, purpose, policy.max_attempts, now)
        if record is None:
            return await self._explain_rejection(email, purpose, policy.max_attempts, now)

        expected = self.hash_code(email, purpose, str(code or "").strip())
        if not hmac.compare_digest(expected, record.otp_hash):
            return VerifyResult(False, OtpFailure.INVALID)

        # a concurrent request holding the same code may have consumed it first
        if not await otp_repo.consume(record.id, expected):
            return VerifyResult(False, OtpFailure.NOT_FOUND)
        return VerifyResult(True)

    async def _explain_rejection(self, email: str, purpose: OtpPurpose, max_attempts: int, now) -> VerifyResult:
        record = await otp_repo.find(email, purpose)
        if record is None or not record.otp_hash:
            return VerifyResult(False, OtpFailure.NOT_FOUND)
        if record.expires_at <= now:
            await otp_repo.discard(record.id, record.otp_hash)
            return VerifyResult(False, OtpFailure.EXPIRED)
        if record.attempts >= max_attempts:
            await otp_repo.discard(record.id, record.otp_hash)
            return VerifyResult(False, OtpFailure.TOO_MANY_ATTEMPTS)
        # reissued between the two reads
        return VerifyResult(False, OtpFailure.INVALID)
