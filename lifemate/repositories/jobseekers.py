# lifemate/repositories/jobseekers.py
from datetime import datetime
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo import ReturnDocument

from lifemate.db.mongo import JOBSEEKERS_COLLECTION, get_db
from lifemate.models.jobseeker import JobSeekerProfile

# embedded arrays whose items carry their own ids
ITEM_ARRAYS = ("projects", "languages")


def _to_profile(doc) -> Optional[JobSeekerProfile]:
    if not doc:
        return None
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    for field in ITEM_ARRAYS:
        items = []
        for item in doc.get(field) or []:
            item = dict(item)
            if "_id" in item:
                item["id"] = str(item.pop("_id"))
            items.append(item)
        doc[field] = items
    return JobSeekerProfile(**doc)


async def ensure_for_user(user_id: str, now: datetime) -> JobSeekerProfile:
    """Create an empty profile for `user_id` unless one exists; idempotent."""
    doc = await get_db()[JOBSEEKERS_COLLECTION].find_one_and_update(
        {"user_id": user_id},
        {
            "$setOnInsert": {
                "user_id": user_id,
                "projects": [],
                "languages": [],
                "profile_completion": 0,
                "created_at": now,
                "updated_at": now,
            }
        },
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return _to_profile(doc)


async def find_by_user(user_id: str) -> Optional[JobSeekerProfile]:
    doc = await get_db()[JOBSEEKERS_COLLECTION].find_one({"user_id": user_id})
    return _to_profile(doc)


async def set_fields(user_id: str, fields: Dict[str, Any], now: datetime) -> Optional[JobSeekerProfile]:
    doc = await get_db()[JOBSEEKERS_COLLECTION].find_one_and_update(
        {"user_id": user_id},
        {"$set": {**fields, "updated_at": now}},
        return_document=ReturnDocument.AFTER,
    )
    return _to_profile(doc)


async def unset_field(user_id: str, field: str, now: datetime) -> Optional[JobSeekerProfile]:
    doc = await get_db()[JOBSEEKERS_COLLECTION].find_one_and_update(
        {"user_id": user_id},
        {"$unset": {field: ""}, "$set": {"updated_at": now}},
        return_document=ReturnDocument.AFTER,
    )
    return _to_profile(doc)


async def push_item(user_id: str, array: str, item: Dict[str, Any], now: datetime) -> Optional[JobSeekerProfile]:
    doc = await get_db()[JOBSEEKERS_COLLECTION].find_one_and_update(
        {"user_id": user_id},
        {"$push": {array: {**item, "_id": ObjectId()}}, "$set": {"updated_at": now}},
        return_document=ReturnDocument.AFTER,
    )
    return _to_profile(doc)


async def update_item(
    user_id: str, array: str, item_id: str, changes: Dict[str, Any], now: datetime
) -> Optional[JobSeekerProfile]:
    """Apply `changes` to one embedded item; None when the item does not exist."""
    if not ObjectId.is_valid(item_id):
        return None
    update = {f"{array}.$.{key}": value for key, value in changes.items()}
    update["updated_at"] = now
    doc = await get_db()[JOBSEEKERS_COLLECTION].find_one_and_update(
        {"user_id": user_id, f"{array}._id": ObjectId(item_id)},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    return _to_profile(doc)


async def pull_item(user_id: str, array: str, item_id: str, now: datetime) -> Optional[JobSeekerProfile]:
    if not ObjectId.is_valid(item_id):
        return None
    doc = await get_db()[JOBSEEKERS_COLLECTION].find_one_and_update(
        {"user_id": user_id, f"{array}._id": ObjectId(item_id)},
        {"$pull": {array: {"_id": ObjectId(item_id)}}, "$set": {"updated_at": now}},
        return_document=ReturnDocument.AFTER,
    )
    return _to_profile(doc)

