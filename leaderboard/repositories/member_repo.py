from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional, List

from leaderboard.config import MEMBERS_COLLECTION


class MemberRepository:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db[MEMBERS_COLLECTION]

    async def get_by_uid(self, uid: str) -> Optional[dict]:
        doc = await self.collection.find_one({"uid": uid})
        if doc is not None:
            doc.pop("_id", None)
        return doc

    async def upsert(self, uid: str, data: dict) -> None:
        # 既存ドキュメントは丸ごと置き換える
        await self.collection.replace_one({"uid": uid}, {**data, "uid": uid}, upsert=True)

    async def increment_points(self, uid: str, delta: int) -> bool:
        result = await self.collection.update_one({"uid": uid}, {"$inc": {"points": delta}})
        return result.matched_count == 1

    async def list_all(self) -> List[dict]:
        cursor = self.collection.find({})
        items = await cursor.to_list(length=None)
        for item in items:
            item.pop("_id", None)
        return items
