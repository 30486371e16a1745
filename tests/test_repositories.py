# tests/test_repositories.py
import asyncio
from datetime import timedelta

import pytest
from pymongo.errors import DuplicateKeyError

from lifemate.core.errors import AlreadyExistsError
from lifemate.models.otp import OtpPurpose
from lifemate.models.user import UserCreate
from lifemate.repositories import jobseekers as jobseeker_repo
from lifemate.repositories import otps as otp_repo
from lifemate.repositories import users as user_repo

EMAIL = "repo@example.com"
PURPOSE = OtpPurpose.REGISTER


async def _claim(now):
    return await otp_repo.reserve_send(
        EMAIL, PURPOSE, now, now - timedelta(seconds=60), now + timedelta(minutes=10)
    )


async def _user(now, email=EMAIL):
    return await user_repo.insert(
        UserCreate(email=email, first_name="Repo", last_name="Tester", password_hash="x"), now
    )


# --- otps --------------------------------------------------------------------

@pytest.mark.asyncio
async def test_send_claim_respects_the_cooldown(any_db, live_clock):
    now = live_clock()
    assert await _claim(now) is None

    live_clock.advance(seconds=30)
    later = live_clock()
    with pytest.raises(DuplicateKeyError):
        await _claim(later)

    live_clock.advance(seconds=31)
    latest = live_clock()
    previous = await _claim(latest)
    assert previous.last_sent_at == now


@pytest.mark.asyncio
async def test_placeholder_cannot_be_verified_and_is_released(any_db, live_clock):
    now = live_clock()
    await _claim(now)
    assert await otp_repo.reserve_attempt(EMAIL, PURPOSE, 5, now) is None

    await otp_repo.release_send(EMAIL, PURPOSE, now, None)
    assert await otp_repo.find(EMAIL, PURPOSE) is None


@pytest.mark.asyncio
async def test_stored_code_is_consumed_exactly_once(any_db, live_clock):
    now = live_clock()
    await _claim(now)
    assert await otp_repo.store_code(EMAIL, PURPOSE, "hash-1", now + timedelta(minutes=10), now)

    record = await otp_repo.reserve_attempt(EMAIL, PURPOSE, 5, now)
    assert record.attempts == 1
    assert record.otp_hash == "hash-1"

    outcomes = await asyncio.gather(*(otp_repo.consume(record.id, "hash-1") for _ in range(3)))
    assert sorted(outcomes) == [False, False, True]


@pytest.mark.asyncio
async def test_attempts_stop_at_the_limit(any_db, live_clock):
    now = live_clock()
    await _claim(now)
    await otp_repo.store_code(EMAIL, PURPOSE, "hash-1", now + timedelta(minutes=10), now)

    reserved = await asyncio.gather(*(otp_repo.reserve_attempt(EMAIL, PURPOSE, 5, now) for _ in range(8)))
    assert sorted(r.attempts for r in reserved if r is not None) == [1, 2, 3, 4, 5]

    # an expired code is no longer attemptable either
    live_clock.advance(minutes=10)
    await otp_repo.store_code(EMAIL, PURPOSE, "hash-2", now + timedelta(minutes=10), now)
    assert await otp_repo.reserve_attempt(EMAIL, PURPOSE, 5, live_clock()) is None


@pytest.mark.asyncio
async def test_discard_leaves_a_reissued_code_alone(any_db, live_clock):
    now = live_clock()
    await _claim(now)
    await otp_repo.store_code(EMAIL, PURPOSE, "hash-new", now + timedelta(minutes=10), now)
    record = await otp_repo.find(EMAIL, PURPOSE)

    await otp_repo.discard(record.id, "hash-old")
    assert (await otp_repo.find(EMAIL, PURPOSE)).otp_hash == "hash-new"
    await otp_repo.discard(record.id, "hash-new")
    assert await otp_repo.find(EMAIL, PURPOSE) is None


# --- users -------------------------------------------------------------------

@pytest.mark.asyncio
async def test_duplicate_email_is_rejected(any_db, live_clock):
    await _user(live_clock())
    with pytest.raises(AlreadyExistsError):
        await _user(live_clock())


@pytest.mark.asyncio
async def test_login_attempts_lock_and_recover(any_db, live_clock):
    user = await _user(live_clock())
    now = live_clock()
    window = timedelta(hours=2)

    reserved = await asyncio.gather(*(user_repo.reserve_login_attempt(user.id, now, 5) for _ in range(7)))
    assert sorted(r.login_attempts for r in reserved if r is not None) == [1, 2, 3, 4, 5]

    await user_repo.lock_account(user.id, now, 5, window)
    locked = await user_repo.find_by_id(user.id)
    assert locked.lock_until == now + window

    # an active lock is never extended
    live_clock.advance(minutes=30)
    await user_repo.lock_account(user.id, live_clock(), 5, window)
    assert (await user_repo.find_by_id(user.id)).lock_until == now + window

    live_clock.advance(hours=2)
    attempt = await user_repo.reserve_login_attempt(user.id, live_clock(), 5)
    assert attempt.login_attempts == 1
    assert attempt.lock_until is None


@pytest.mark.asyncio
async def test_refresh_rotation_has_a_single_winner(any_db, live_clock):
    user = await _user(live_clock())
    await user_repo.push_refresh_token(user.id, "old", live_clock(), timedelta(days=30))

    outcomes = await asyncio.gather(
        *(user_repo.rotate_refresh_token(user.id, "old", f"new-{i}", live_clock()) for i in range(3))
    )
    assert outcomes.count(True) == 1
    stored = await user_repo.find_by_id(user.id)
    assert [entry.token for entry in stored.refresh_tokens] == [f"new-{outcomes.index(True)}"]


@pytest.mark.asyncio
async def test_old_refresh_tokens_are_pruned(any_db, live_clock):
    user = await _user(live_clock())
    await user_repo.push_refresh_token(user.id, "stale", live_clock(), timedelta(days=30))
    live_clock.advance(days=31)
    await user_repo.push_refresh_token(user.id, "fresh", live_clock(), timedelta(days=30))

    stored = await user_repo.find_by_id(user.id)
    assert [entry.token for entry in stored.refresh_tokens] == ["fresh"]


# --- job-seeker profiles -----------------------------------------------------

@pytest.mark.asyncio
async def test_profile_creation_is_idempotent(any_db, live_clock):
    first, second = await asyncio.gather(
        jobseeker_repo.ensure_for_user("user-1", live_clock()),
        jobseeker_repo.ensure_for_user("user-1", live_clock()),
    )
    assert first.id == second.id
    assert first.user_id == "user-1"


@pytest.mark.asyncio
async def test_embedded_items_are_addressed_by_id(any_db, live_clock):
    await jobseeker_repo.ensure_for_user("user-1", live_clock())
    await jobseeker_repo.push_item("user-1", "languages", {"name": "Hindi"}, live_clock())
    profile = await jobseeker_repo.push_item("user-1", "languages", {"name": "Tamil"}, live_clock())
    tamil = profile.languages[1].id

    profile = await jobseeker_repo.update_item("user-1", "languages", tamil, {"name": "Telugu"}, live_clock())
    assert [item.name for item in profile.languages] == ["Hindi", "Telugu"]

    profile = await jobseeker_repo.pull_item("user-1", "languages", tamil, live_clock())
    assert [item.name for item in profile.languages] == ["Hindi"]
    assert await jobseeker_repo.update_item("user-1", "languages", tamil, {"name": "x"}, live_clock()) is None
