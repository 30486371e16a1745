# lifemate/repositories/employers.py
from lifemate.db.mongo import EMPLOYERS_COLLECTION, get_db


async def exists_for_user(user_id: str) -> bool:
    return await get_db()[EMPLOYERS_COLLECTION].count_documents({"user_id": user_id}, limit=1) > 0
