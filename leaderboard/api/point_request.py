from fastapi import APIRouter, Depends
from typing import List, Optional

from leaderboard.db import get_client, get_db, get_redis
from leaderboard.guard import Identity
from leaderboard.repositories.member_repo import MemberRepository
from leaderboard.repositories.request_repo import PointRequestRepository
from leaderboard.schemas import (
    AdminDashboardResponse,
    MemberDashboardResponse,
    PointRequestCreate,
    PointRequestResponse,
)
from leaderboard.services.dashboard_service import DashboardService
from leaderboard.services.member_service import MemberService
from leaderboard.services.request_service import PointRequestService
from leaderboard.utils import get_current_member, require_admin
from leaderboard.ws import online_uids

router = APIRouter()


def get_request_service(db=Depends(get_db), client=Depends(get_client)):
    return PointRequestService(PointRequestRepository(db, client))

def get_dashboard_service(
    db=Depends(get_db),
    service: PointRequestService = Depends(get_request_service),
):
    return DashboardService(MemberService(MemberRepository(db)), service)

@router.post("/requests", response_model=MemberDashboardResponse)
async def submit_request(
    data: PointRequestCreate,
    member: dict = Depends(get_current_member),
    dashboard: DashboardService = Depends(get_dashboard_service),
):
    return await dashboard.submit_and_refresh(member, data.description, data.points)

@router.get("/requests", response_model=List[PointRequestResponse])
async def list_requests(
    status: Optional[str] = None,
    admin: Identity = Depends(require_admin),
    service: PointRequestService = Depends(get_request_service),
):
    return await service.list_requests(status)

@router.get("/requests/me", response_model=List[PointRequestResponse])
async def list_my_requests(
    member: dict = Depends(get_current_member),
    service: PointRequestService = Depends(get_request_service),
):
    return await service.list_requests_for_member(member["uid"])

@router.post("/requests/{request_id}/approve", response_model=AdminDashboardResponse)
async def approve_request(
    request_id: str,
    admin: Identity = Depends(require_admin),
    dashboard: DashboardService = Depends(get_dashboard_service),
    redis=Depends(get_redis),
):
    return await dashboard.approve_and_refresh(request_id, await online_uids(redis))

@router.post("/requests/{request_id}/reject", response_model=AdminDashboardResponse)
async def reject_request(
    request_id: str,
    admin: Identity = Depends(require_admin),
    dashboard: DashboardService = Depends(get_dashboard_service),
    redis=Depends(get_redis),
):
    return await dashboard.reject_and_refresh(request_id, await online_uids(redis))
