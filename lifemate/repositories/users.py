# lifemate/repositories/users.py
"""
All reads and writes of the `users` collection.

Every mutation is a single-document atomic update so concurrent requests
for the same user never overwrite each other's counters or token sets.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from lifemate.core.errors import AlreadyExistsError
from lifemate.db.mongo import USERS_COLLECTION, get_db
from lifemate.models.user import User, UserCreate


def _to_id(doc):
    if not doc:
        return None
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc["_id"])
        del doc["_id"]
    return doc


def _oid(user_id: str) -> Optional[ObjectId]:
    if isinstance(user_id, ObjectId):
        return user_id
    return ObjectId(user_id) if ObjectId.is_valid(user_id) else None


def _to_user(doc) -> Optional[User]:
    data = _to_id(doc)
    return User(**data) if data else None


async def insert(obj: UserCreate, now: datetime) -> User:
    db = get_db()
    payload = obj.model_dump()
    payload.update(
        {
            "is_active": True,
            "is_blocked": False,
            "login_attempts": 0,
            "lock_until": None,
            "refresh_tokens": [],
            "created_at": now,
            "updated_at": now,
        }
    )
    try:
        res = await db[USERS_COLLECTION].insert_one(payload)
    except DuplicateKeyError:
        raise AlreadyExistsError("User with this email already exists.")
    payload["_id"] = res.inserted_id
    return _to_user(payload)


async def find_by_id(user_id: str) -> Optional[User]:
    oid = _oid(user_id)
    if oid is None:
        return None
    doc = await get_db()[USERS_COLLECTION].find_one({"_id": oid})
    return _to_user(doc)


async def find_by_email(email: str) -> Optional[User]:
    doc = await get_db()[USERS_COLLECTION].find_one({"email": email})
    return _to_user(doc)


async def exists_by_email(email: str) -> bool:
    return await get_db()[USERS_COLLECTION].count_documents({"email": email}, limit=1) > 0


async def find_by_oauth(provider: str, oauth_id: str) -> Optional[User]:
    doc = await get_db()[USERS_COLLECTION].find_one({"oauth_provider": provider, "oauth_id": oauth_id})
    return _to_user(doc)


async def find_by_oauth_or_email(provider: str, oauth_id: str, email: str) -> Optional[User]:
    user = await find_by_oauth(provider, oauth_id)
    if user is None and email:
        user = await find_by_email(email)
    return user


async def find_by_verification_token(token: str, now: datetime) -> Optional[User]:
    doc = await get_db()[USERS_COLLECTION].find_one(
        {"email_verification_token": token, "email_verification_expires": {"$gt": now}}
    )
    return _to_user(doc)


async def find_by_reset_token(token: str, now: datetime) -> Optional[User]:
    doc = await get_db()[USERS_COLLECTION].find_one(
        {"password_reset_token": token, "password_reset_expires": {"$gt": now}}
    )
    return _to_user(doc)


async def update_fields(user_id: str, fields: Dict[str, Any], now: datetime) -> Optional[User]:
    """$set `fields` and return the updated user."""
    doc = await get_db()[USERS_COLLECTION].find_one_and_update(
        {"_id": _oid(user_id)},
        {"$set": {**fields, "updated_at": now}},
        return_document=ReturnDocument.AFTER,
    )
    return _to_user(doc)


async def delete(user_id: str) -> bool:
    res = await get_db()[USERS_COLLECTION].delete_one({"_id": _oid(user_id)})
    return res.deleted_count > 0


# --- login bookkeeping -----------------------------------------------------

async def reserve_login_attempt(user_id: str, now: datetime, max_attempts: int) -> Optional[User]:
    """
    Count one password attempt before the password is checked.

    A lock that has already expired restarts the counter. Returns the user
    after the increment, or None when the account is locked or out of
    attempts, so at most `max_attempts` guesses get checked per lock window.
    """
    users = get_db()[USERS_COLLECTION]
    oid = _oid(user_id)

    await users.update_one(
        {"_id": oid, "lock_until": {"$ne": None, "$lte": now}},
        {"$set": {"login_attempts": 0, "updated_at": now}, "$unset": {"lock_until": ""}},
    )
    doc = await users.find_one_and_update(
        {"_id": oid, "lock_until": None, "login_attempts": {"$lt": max_attempts}},
        {"$inc": {"login_attempts": 1}, "$set": {"updated_at": now}},
        return_document=ReturnDocument.AFTER,
    )
    return _to_user(doc)


async def lock_account(user_id: str, now: datetime, max_attempts: int, lock_duration: timedelta) -> None:
    """Open a lock window once the counter reached `max_attempts`; an active lock is never extended."""
    await get_db()[USERS_COLLECTION].update_one(
        {
            "_id": _oid(user_id),
            "login_attempts": {"$gte": max_attempts},
            "$or": [{"lock_until": None}, {"lock_until": {"$lte": now}}],
        },
        {"$set": {"lock_until": now + lock_duration}},
    )


async def reset_login_state(user_id: str, now: datetime) -> None:
    await get_db()[USERS_COLLECTION].update_one(
        {"_id": _oid(user_id)},
        {
            "$set": {"login_attempts": 0, "last_login": now, "updated_at": now},
            "$unset": {"lock_until": ""},
        },
    )


# --- refresh tokens --------------------------------------------------------

async def push_refresh_token(user_id: str, token: str, now: datetime, max_age: timedelta) -> None:
    users = get_db()[USERS_COLLECTION]
    oid = _oid(user_id)
    await users.update_one(
        {"_id": oid}, {"$pull": {"refresh_tokens": {"created_at": {"$lte": now - max_age}}}}
    )
    await users.update_one(
        {"_id": oid}, {"$push": {"refresh_tokens": {"token": token, "created_at": now}}}
    )


async def pull_refresh_token(user_id: str, token: str) -> None:
    await get_db()[USERS_COLLECTION].update_one(
        {"_id": _oid(user_id)}, {"$pull": {"refresh_tokens": {"token": token}}}
    )


async def rotate_refresh_token(user_id: str, old_token: str, new_token: str, now: datetime) -> bool:
    """
    Replace `old_token` with `new_token`. Returns False when `old_token` was
    no longer held (already rotated or revoked by a concurrent request).
    """
    users = get_db()[USERS_COLLECTION]
    oid = _oid(user_id)
    res = await users.update_one(
        {"_id": oid, "refresh_tokens.token": old_token},
        {"$pull": {"refresh_tokens": {"token": old_token}}},
    )
    if not res.modified_count:
        return False
    await users.update_one(
        {"_id": oid}, {"$push": {"refresh_tokens": {"token": new_token, "created_at": now}}}
    )
    return True


# --- credentials -----------------------------------------------------------

async def set_password(user_id: str, password_hash: str, now: datetime) -> None:
    """Replace the password, drop any reset token and revoke every session."""
    await get_db()[USERS_COLLECTION].update_one(
        {"_id": _oid(user_id)},
        {
            "$set": {"password_hash": password_hash, "refresh_tokens": [], "updated_at": now},
            "$unset": {"password_reset_token": "", "password_reset_expires": ""},
        },
    )


async def set_verification_token(user_id: str, token: str, expires: datetime, now: datetime) -> None:
    await get_db()[USERS_COLLECTION].update_one(
        {"_id": _oid(user_id)},
        {"$set": {"email_verification_token": token, "email_verification_expires": expires, "updated_at": now}},
    )


async def mark_email_verified(user_id: str, now: datetime) -> None:
    await get_db()[USERS_COLLECTION].update_one(
        {"_id": _oid(user_id)},
        {
            "$set": {"is_email_verified": True, "updated_at": now},
            "$unset": {"email_verification_token": "", "email_verification_expires": ""},
        },
    )


async def set_reset_token(user_id: str, token: str, expires: datetime, now: datetime) -> None:
    await get_db()[USERS_COLLECTION].update_one(
        {"_id": _oid(user_id)},
        {"$set": {"password_reset_token": token, "password_reset_expires": expires, "updated_at": now}},
    )
