# lifemate/repositories/otps.py
"""
Reads and writes of the `otps` collection.

Every state change is a conditional single-document update or delete; the
filters carry the precondition so concurrent requests cannot both win.
"""
from datetime import datetime
from typing import Optional

from bson import ObjectId
from pymongo import ReturnDocument

from lifemate.db.mongo import OTPS_COLLECTION, get_db
from lifemate.models.otp import OtpPurpose, OtpRecord


def _to_record(doc) -> Optional[OtpRecord]:
    if not doc:
        return None
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return OtpRecord(**doc)


def _key(email: str, purpose: OtpPurpose) -> dict:
    return {"email": email, "purpose": OtpPurpose(purpose).value}


async def find(email: str, purpose: OtpPurpose) -> Optional[OtpRecord]:
    doc = await get_db()[OTPS_COLLECTION].find_one(_key(email, purpose))
    return _to_record(doc)


async def reserve_send(
    email: str, purpose: OtpPurpose, now: datetime, not_sent_since: datetime, expires_at: datetime
) -> Optional[OtpRecord]:
    """
    Claim the right to send a new code by stamping `last_sent_at`.

    Matches only a record last sent at or before `not_sent_since`. With no
    record at all a placeholder with an empty hash is inserted; it never verifies.
    Returns the record as it was before the claim, None for a fresh insert.
    Raises DuplicateKeyError while a record inside the cooldown exists.
    """
    doc = await get_db()[OTPS_COLLECTION].find_one_and_update(
        {**_key(email, purpose), "last_sent_at": {"$lte": not_sent_since}},
        {
            "$set": {"last_sent_at": now},
            "$setOnInsert": {"otp_hash": "", "expires_at": expires_at, "attempts": 0, "created_at": now},
        },
        upsert=True,
        return_document=ReturnDocument.BEFORE,
    )
    return _to_record(doc)


async def store_code(
    email: str, purpose: OtpPurpose, otp_hash: str, expires_at: datetime, sent_at: datetime
) -> bool:
    """Make `otp_hash` the live code on the record claimed at `sent_at`; resets attempts."""
    res = await get_db()[OTPS_COLLECTION].update_one(
        {**_key(email, purpose), "last_sent_at": sent_at},
        {"$set": {"otp_hash": otp_hash, "expires_at": expires_at, "attempts": 0}},
    )
    return res.matched_count == 1


async def release_send(
    email: str, purpose: OtpPurpose, sent_at: datetime, previous_sent_at: Optional[datetime]
) -> None:
    """Undo a claim whose mail was never delivered."""
    otps = get_db()[OTPS_COLLECTION]
    claimed = {**_key(email, purpose), "last_sent_at": sent_at}
    if previous_sent_at is None:
        await otps.delete_one({**claimed, "otp_hash": ""})
    else:
        await otps.update_one(claimed, {"$set": {"last_sent_at": previous_sent_at}})


async def reserve_attempt(
    email: str, purpose: OtpPurpose, max_attempts: int, now: datetime
) -> Optional[OtpRecord]:
    """
    Spend one verification attempt on a live, unexhausted code.

    Returns the record after the increment, or None when there is no code
    left to try (missing, expired or out of attempts).
    """
    doc = await get_db()[OTPS_COLLECTION].find_one_and_update(
        {
            **_key(email, purpose),
            "otp_hash": {"$ne": ""},
            "attempts": {"$lt": max_attempts},
            "expires_at": {"$gt": now},
        },
        {"$inc": {"attempts": 1}},
        return_document=ReturnDocument.AFTER,
    )
    return _to_record(doc)


async def consume(record_id: str, otp_hash: str) -> bool:
    """Delete the record if it still holds `otp_hash`. True for the single winner."""
    res = await get_db()[OTPS_COLLECTION].delete_one({"_id": ObjectId(record_id), "otp_hash": otp_hash})
    return res.deleted_count == 1


async def discard(record_id: str, otp_hash: str) -> None:
    """Remove a dead code; a record reissued since then has a new hash and is left alone."""
    await get_db()[OTPS_COLLECTION].delete_one({"_id": ObjectId(record_id), "otp_hash": otp_hash})
