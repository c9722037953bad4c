# leaderboard/repositories/request_repo.py

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import DESCENDING, ReturnDocument
from typing import List, Optional
from datetime import datetime

from leaderboard.config import MEMBERS_COLLECTION, REQUESTS_COLLECTION
from leaderboard.errors import InvalidDataError, InvalidStateError
from leaderboard.models import RequestStatus


def _clean(doc: Optional[dict]) -> Optional[dict]:
    if doc is not None:
        doc.pop("_id", None)
    return doc


class PointRequestRepository:
    def __init__(self, db: AsyncIOMotorDatabase, client: AsyncIOMotorClient):
        self.collection = db[REQUESTS_COLLECTION]
        self.members = db[MEMBERS_COLLECTION]
        self.client = client

    async def create(self, data: dict) -> str:
        await self.collection.insert_one(data)
        return data["request_id"]

    async def get_by_id(self, request_id: str) -> Optional[dict]:
        return _clean(await self.collection.find_one({"request_id": request_id}))

    async def find_many(self, query: dict) -> List[dict]:
        cursor = self.collection.find(query).sort("requested_at", DESCENDING)
        items = await cursor.to_list(length=None)
        return [_clean(item) for item in items]

    async def set_status_if_pending(self, request_id: str, new_status: RequestStatus) -> Optional[dict]:
        """pending の場合のみステータスを更新し、更新後のドキュメントを返す"""
        doc = await self.collection.find_one_and_update(
            {"request_id": request_id, "status": RequestStatus.PENDING.value},
            {"$set": {"status": new_status.value, "processed_at": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        return _clean(doc)

    async def approve(self, request_id: str) -> dict:
        """ステータス更新とポイント加算を1トランザクションで行う

        The status filter is evaluated at commit time, so a concurrent
        approval of the same request aborts here instead of awarding twice.
        """

        async def _apply(session) -> dict:
            doc = await self.collection.find_one_and_update(
                {"request_id": request_id, "status": RequestStatus.PENDING.value},
                {"$set": {"status": RequestStatus.APPROVED.value, "processed_at": datetime.utcnow()}},
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if doc is None:
                raise InvalidStateError("Request is no longer pending")

            points = doc.get("points")
            if not isinstance(points, int) or points <= 0:
                raise InvalidDataError("Cannot approve request with invalid points value")

            result = await self.members.update_one(
                {"uid": doc["member_id"]},
                {"$inc": {"points": points}},
                session=session,
            )
            if result.matched_count != 1:
                raise InvalidDataError("Requesting member not found")
            return _clean(doc)

        async with await self.client.start_session() as session:
            return await session.with_transaction(_apply)
