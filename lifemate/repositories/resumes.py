# lifemate/repositories/resumes.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument

from lifemate.db.mongo import RESUMES_COLLECTION, get_db
from lifemate.models.resume import Resume, ResumeContent, ResumeSummary

_SUMMARY_PROJECTION = {
    "title": 1,
    "personal_info": 1,
    "is_default": 1,
    "stats": 1,
    "created_at": 1,
    "updated_at": 1,
}


def _to_id(doc):
    if not doc:
        return None
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return doc


def _owned(resume_id: str, user_id: str) -> Optional[Dict[str, Any]]:
    if not ObjectId.is_valid(resume_id):
        return None
    return {"_id": ObjectId(resume_id), "user_id": user_id}


async def create(user_id: str, content: ResumeContent, now: datetime) -> Resume:
    payload = content.model_dump()
    payload.update(
        {
            "user_id": user_id,
            "stats": {"views": 0, "downloads": 0},
            "is_default": False,
            "pdf_url": None,
            "pdf_file_id": None,
            "created_at": now,
            "updated_at": now,
        }
    )
    res = await get_db()[RESUMES_COLLECTION].insert_one(payload)
    payload["_id"] = res.inserted_id
    return Resume(**_to_id(payload))


async def list_for_user(user_id: str, limit: int = 100, skip: int = 0) -> List[ResumeSummary]:
    cur = (
        get_db()[RESUMES_COLLECTION]
        .find({"user_id": user_id}, _SUMMARY_PROJECTION)
        .sort("created_at", -1)
        .skip(skip)
        .limit(limit)
    )
    out = []
    async for d in cur:
        out.append(ResumeSummary(**_to_id(d)))
    return out


async def get(resume_id: str, user_id: str) -> Optional[Resume]:
    query = _owned(resume_id, user_id)
    if query is None:
        return None
    doc = await get_db()[RESUMES_COLLECTION].find_one(query)
    return Resume(**_to_id(doc)) if doc else None


async def update(resume_id: str, user_id: str, fields: Dict[str, Any], now: datetime) -> Optional[Resume]:
    query = _owned(resume_id, user_id)
    if query is None:
        return None
    doc = await get_db()[RESUMES_COLLECTION].find_one_and_update(
        query, {"$set": {**fields, "updated_at": now}}, return_document=ReturnDocument.AFTER
    )
    return Resume(**_to_id(doc)) if doc else None


async def increment_stat(resume_id: str, user_id: str, stat: str) -> Optional[Resume]:
    query = _owned(resume_id, user_id)
    if query is None:
        return None
    doc = await get_db()[RESUMES_COLLECTION].find_one_and_update(
        query, {"$inc": {f"stats.{stat}": 1}}, return_document=ReturnDocument.AFTER
    )
    return Resume(**_to_id(doc)) if doc else None


async def set_default(resume_id: str, user_id: str, now: datetime) -> bool:
    query = _owned(resume_id, user_id)
    if query is None:
        return False
    coll = get_db()[RESUMES_COLLECTION]
    if await coll.count_documents(query, limit=1) == 0:
        return False
    await coll.update_many(
        {"user_id": user_id, "_id": {"$ne": query["_id"]}},
        {"$set": {"is_default": False}},
    )
    res = await coll.update_one(query, {"$set": {"is_default": True, "updated_at": now}})
    return res.matched_count > 0


async def delete(resume_id: str, user_id: str) -> bool:
    query = _owned(resume_id, user_id)
    if query is None:
        return False
    res = await get_db()[RESUMES_COLLECTION].delete_one(query)
    return res.deleted_count > 0
