# tests/test_otp_service.py
import asyncio

import pytest

from lifemate.core.errors import RateLimitedError
from lifemate.db.mongo import OTPS_COLLECTION
from lifemate.models.otp import OtpFailure, OtpPurpose
from lifemate.services.mailer import MailDeliveryError
from lifemate.services.otp import OtpService, generate_code


@pytest.fixture
def otp(settings, mailer, clock, db):
    return OtpService(settings, mailer, clock=clock)


def test_generated_codes_are_six_digits():
    for _ in range(200):
        code = generate_code()
        assert len(code) == 6 and code.isdigit() and code[0] != "0"


@pytest.mark.asyncio
async def test_issue_mails_code_and_stores_only_a_hash(otp, mailer, db):
    result = await otp.issue(" User@Example.com ", OtpPurpose.REGISTER, "Uma")
    assert result.delivered_via_email

    code = mailer.last_otp("user@example.com")
    assert code is not None
    assert mailer.sent[-1]["subject"] == "Registration OTP - LifeMate"

    stored = await db[OTPS_COLLECTION].find_one({"email": "user@example.com", "purpose": "register"})
    assert stored["attempts"] == 0
    assert code not in stored["otp_hash"]
    assert stored["otp_hash"] == otp.hash_code("user@example.com", OtpPurpose.REGISTER, code)


@pytest.mark.asyncio
async def test_correct_code_verifies_once(otp, mailer):
    await otp.issue("a@example.com", OtpPurpose.REGISTER)
    code = mailer.last_otp()

    first = await otp.verify("a@example.com", OtpPurpose.REGISTER, code)
    second = await otp.verify("a@example.com", OtpPurpose.REGISTER, code)
    assert first.success
    assert not second.success
    assert second.reason == OtpFailure.NOT_FOUND
    assert second.message == "Invalid or expired OTP."


@pytest.mark.asyncio
async def test_purposes_are_isolated(otp, mailer):
    await otp.issue("a@example.com", OtpPurpose.REGISTER)
    code = mailer.last_otp()
    result = await otp.verify("a@example.com", OtpPurpose.FORGOT_PASSWORD, code)
    assert result.reason == OtpFailure.NOT_FOUND


@pytest.mark.asyncio
async def test_expired_code_is_rejected_and_removed(otp, mailer, clock, db):
    await otp.issue("a@example.com", OtpPurpose.FORGOT_PASSWORD)
    code = mailer.last_otp()
    clock.advance(minutes=10, seconds=1)

    result = await otp.verify("a@example.com", OtpPurpose.FORGOT_PASSWORD, code)
    assert result.reason == OtpFailure.EXPIRED
    assert await db[OTPS_COLLECTION].count_documents({}) == 0


@pytest.mark.asyncio
async def test_wrong_codes_exhaust_attempts(otp, mailer):
    await otp.issue("a@example.com", OtpPurpose.REGISTER)
    code = mailer.last_otp()
    wrong = "000000" if code != "000000" else "111111"

    for _ in range(5):
        result = await otp.verify("a@example.com", OtpPurpose.REGISTER, wrong)
        assert result.reason == OtpFailure.INVALID

    # the right code no longer helps once the limit is reached
    result = await otp.verify("a@example.com", OtpPurpose.REGISTER, code)
    assert result.reason == OtpFailure.TOO_MANY_ATTEMPTS
    again = await otp.verify("a@example.com", OtpPurpose.REGISTER, code)
    assert again.reason == OtpFailure.NOT_FOUND


@pytest.mark.asyncio
async def test_resend_cooldown(otp, mailer, clock):
    await otp.issue("a@example.com", OtpPurpose.REGISTER)
    clock.advance(seconds=20)

    with pytest.raises(RateLimitedError) as exc_info:
        await otp.issue("a@example.com", OtpPurpose.REGISTER)
    assert 0 < exc_info.value.retry_after_seconds <= 60
    assert exc_info.value.retry_after_seconds == 40
    assert len(mailer.sent) == 1

    clock.advance(seconds=40)
    await otp.issue("a@example.com", OtpPurpose.REGISTER)
    assert len(mailer.sent) == 2


@pytest.mark.asyncio
async def test_reissue_replaces_previous_code(otp, mailer, clock):
    await otp.issue("a@example.com", OtpPurpose.REGISTER)
    old = mailer.last_otp()
    clock.advance(seconds=61)
    await otp.issue("a@example.com", OtpPurpose.REGISTER)
    new = mailer.last_otp()

    if old != new:
        assert (await otp.verify("a@example.com", OtpPurpose.REGISTER, old)).reason == OtpFailure.INVALID
    assert (await otp.verify("a@example.com", OtpPurpose.REGISTER, new)).success


@pytest.mark.asyncio
async def test_delivery_failure_leaves_no_code(otp, mailer, db):
    mailer.fail_with = MailDeliveryError("smtp down")
    with pytest.raises(MailDeliveryError):
        await otp.issue("a@example.com", OtpPurpose.REGISTER)
    assert await db[OTPS_COLLECTION].count_documents({}) == 0


@pytest.mark.asyncio
async def test_dev_fallback_stores_code_when_mail_fails(settings, mailer, clock, db, fixed_otp):
    dev = OtpService(settings.model_copy(update={"OTP_DEV_FALLBACK": True}), mailer, clock=clock)
    mailer.fail_with = MailDeliveryError("smtp down")

    result = await dev.issue("a@example.com", OtpPurpose.REGISTER)
    assert not result.delivered_via_email
    assert (await dev.verify("a@example.com", OtpPurpose.REGISTER, fixed_otp)).success


@pytest.mark.asyncio
async def test_dev_fallback_is_ignored_in_production(settings, mailer, clock, db):
    prod = OtpService(
        settings.model_copy(update={"OTP_DEV_FALLBACK": True, "APP_ENV": "production"}), mailer, clock=clock
    )
    mailer.fail_with = MailDeliveryError("smtp down")
    with pytest.raises(MailDeliveryError):
        await prod.issue("a@example.com", OtpPurpose.REGISTER)


@pytest.mark.asyncio
async def test_failed_resend_keeps_old_code_and_frees_the_cooldown(otp, mailer, clock, db):
    await otp.issue("a@example.com", OtpPurpose.REGISTER)
    old = mailer.last_otp()
    clock.advance(seconds=61)

    mailer.fail_with = MailDeliveryError("smtp down")
    with pytest.raises(MailDeliveryError):
        await otp.issue("a@example.com", OtpPurpose.REGISTER)
    stored = await db[OTPS_COLLECTION].find_one({"email": "a@example.com"})
    assert stored["otp_hash"] == otp.hash_code("a@example.com", OtpPurpose.REGISTER, old)

    mailer.fail_with = None
    await otp.issue("a@example.com", OtpPurpose.REGISTER)
    assert len(mailer.sent) == 2


# --- concurrent requests, on the in-memory store and a real server -----------

@pytest.fixture
def shared_otp(settings, mailer, live_clock, any_db):
    return OtpService(settings, mailer, clock=live_clock)


@pytest.mark.asyncio
async def test_concurrent_correct_codes_succeed_once(shared_otp, mailer):
    await shared_otp.issue("a@example.com", OtpPurpose.REGISTER)
    code = mailer.last_otp()

    results = await asyncio.gather(
        *(shared_otp.verify("a@example.com", OtpPurpose.REGISTER, code) for _ in range(3))
    )
    assert sum(r.success for r in results) == 1
    assert {r.reason for r in results if not r.success} == {OtpFailure.NOT_FOUND}


@pytest.mark.asyncio
async def test_concurrent_guesses_stop_at_the_attempt_limit(shared_otp, mailer, monkeypatch):
    await shared_otp.issue("a@example.com", OtpPurpose.REGISTER)
    code = mailer.last_otp()
    wrong = "000000" if code != "000000" else "111111"

    # a code is hashed for comparison only once an attempt has been reserved
    compared = []
    real_hash = shared_otp.hash_code

    def counting_hash(email, purpose, candidate):
        compared.append(candidate)
        return real_hash(email, purpose, candidate)

    monkeypatch.setattr(shared_otp, "hash_code", counting_hash)
    results = await asyncio.gather(
        *(shared_otp.verify("a@example.com", OtpPurpose.REGISTER, wrong) for _ in range(20))
    )

    assert len(compared) == 5
    assert sum(r.reason == OtpFailure.INVALID for r in results) == 5
    assert sum(r.reason in (OtpFailure.TOO_MANY_ATTEMPTS, OtpFailure.NOT_FOUND) for r in results) == 15
    assert not (await shared_otp.verify("a@example.com", OtpPurpose.REGISTER, code)).success


@pytest.mark.asyncio
async def test_concurrent_issues_send_a_single_mail(shared_otp, mailer):
    results = await asyncio.gather(
        *(shared_otp.issue("a@example.com", OtpPurpose.REGISTER) for _ in range(3)), return_exceptions=True
    )

    assert len(mailer.sent) == 1
    limited = [r for r in results if isinstance(r, RateLimitedError)]
    assert len(limited) == 2
    assert all(r.retry_after_seconds == 60 for r in limited)
    assert (await shared_otp.verify("a@example.com", OtpPurpose.REGISTER, mailer.last_otp())).success
