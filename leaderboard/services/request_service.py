import logging
import uuid
from datetime import datetime
from typing import List, Optional

from leaderboard.errors import InvalidDataError, InvalidStateError, NotFoundError, ValidationError
from leaderboard.models import (
    RequestStatus,
    PointRequestModel,
    DESCRIPTION_MIN_LENGTH,
    DESCRIPTION_MAX_LENGTH,
    POINTS_MIN,
    POINTS_MAX,
)
from leaderboard.repositories.request_repo import PointRequestRepository
from leaderboard.notify import send_ntfy_notification
from leaderboard.ws import broadcast_to_admins, send_event

logger = logging.getLogger(__name__)


def generate_request_id() -> str:
    return uuid.uuid4().hex


def validate_request(description: Optional[str], points: Optional[int]) -> None:
    if description is None or points is None:
        raise ValidationError("description and points are required")
    if not (DESCRIPTION_MIN_LENGTH <= len(description) <= DESCRIPTION_MAX_LENGTH):
        raise ValidationError(
            f"Description must be {DESCRIPTION_MIN_LENGTH}-{DESCRIPTION_MAX_LENGTH} characters"
        )
    if isinstance(points, bool) or not isinstance(points, int):
        raise ValidationError("Points must be an integer")
    if not (POINTS_MIN <= points <= POINTS_MAX):
        raise ValidationError(f"Points must be between {POINTS_MIN} and {POINTS_MAX}")


def _event(request: dict, event_type: str) -> dict:
    return {
        "type": event_type,
        "request_id": request["request_id"],
        "member_id": request["member_id"],
        "points": request["points"],
        "status": request["status"],
    }


class PointRequestService:
    def __init__(self, repo: PointRequestRepository):
        self.repo = repo

    async def submit_request(self, member_id: str, member_name: str, description: str, points: int) -> str:
        validate_request(description, points)
        if not member_id:
            raise ValidationError("member_id is required")

        request = PointRequestModel(
            request_id=generate_request_id(),
            member_id=member_id,
            member_name=member_name,
            description=description,
            points=points,
            requested_at=datetime.utcnow(),
            status=RequestStatus.PENDING,
        )
        request_id = await self.repo.create(request.dict())
        logger.info("Point request submitted: request_id=%s member_id=%s points=%s", request_id, member_id, points)

        await broadcast_to_admins(_event(request.dict(), "request_submitted"))
        await send_ntfy_notification(f"{member_name} requested {points} points: {description}")
        return request_id

    async def list_requests(self, status: Optional[str] = None) -> List[dict]:
        if status is None:
            return await self.repo.find_many({})
        try:
            status = RequestStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown status: {status}")
        return await self.repo.find_many({"status": status.value})

    async def list_requests_for_member(self, member_id: str) -> List[dict]:
        return await self.repo.find_many({"member_id": member_id})

    async def get_request(self, request_id: str) -> dict:
        request = await self.repo.get_by_id(request_id)
        if not request:
            raise NotFoundError("Request not found")
        return request

    async def approve(self, request_id: str) -> dict:
        request = await self.get_request(request_id)
        if request.get("status") != RequestStatus.PENDING.value:
            raise InvalidStateError(f"Request is already {request.get('status')}")
        points = request.get("points")
        if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
            raise InvalidDataError("Cannot approve request with invalid points value")
        if not request.get("member_id"):
            raise InvalidDataError("Cannot approve request without a member ID")

        approved = await self.repo.approve(request_id)
        logger.info("Point request approved: request_id=%s member_id=%s points=%s",
                    request_id, approved["member_id"], approved["points"])
        await send_event(approved["member_id"], _event(approved, "request_approved"))
        return approved

    async def reject(self, request_id: str) -> dict:
        request = await self.get_request(request_id)
        rejected = await self.repo.set_status_if_pending(request_id, RequestStatus.REJECTED)
        if rejected is None:
            # 他の管理者が先に処理した場合も含む
            raise InvalidStateError("Request is not pending")
        logger.info("Point request rejected: request_id=%s", request_id)
        await send_event(rejected["member_id"], _event(rejected, "request_rejected"))
        return rejected
