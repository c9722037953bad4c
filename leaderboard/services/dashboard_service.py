from typing import Iterable, Optional

from leaderboard.errors import AuthError
from leaderboard.models import RequestStatus
from leaderboard.services.member_service import MemberService
from leaderboard.services.request_service import PointRequestService


class DashboardService:
    def __init__(self, member_service: MemberService, request_service: PointRequestService):
        self.members = member_service
        self.requests = request_service

    async def admin_view(self, online: Optional[Iterable[str]] = None) -> dict:
        leaderboard = await self.members.leaderboard(online)
        pending = await self.requests.list_requests(RequestStatus.PENDING.value)
        processed = [
            r for r in await self.requests.list_requests()
            if r.get("status") != RequestStatus.PENDING.value
        ]
        return {"leaderboard": leaderboard, "pending": pending, "processed": processed}

    async def member_view(self, uid: str, online: Optional[Iterable[str]] = None) -> dict:
        profile = await self.members.get_member_by_id(uid)
        if not profile:
            raise AuthError("Profile incomplete")
        return {
            "profile": profile,
            "leaderboard": await self.members.leaderboard(online),
            "requests": await self.requests.list_requests_for_member(uid),
        }

    # ─── 更新後は必ず再取得する ───

    async def approve_and_refresh(self, request_id: str, online: Optional[Iterable[str]] = None) -> dict:
        await self.requests.approve(request_id)
        return await self.admin_view(online)

    async def reject_and_refresh(self, request_id: str, online: Optional[Iterable[str]] = None) -> dict:
        await self.requests.reject(request_id)
        return await self.admin_view(online)

    async def submit_and_refresh(self, member: dict, description: str, points: int) -> dict:
        await self.requests.submit_request(member["uid"], member["name"], description, points)
        return await self.member_view(member["uid"])
