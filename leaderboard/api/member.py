from fastapi import APIRouter, Depends
from typing import List

from leaderboard.db import get_db, get_redis
from leaderboard.errors import NotFoundError, PermissionDeniedError
from leaderboard.guard import Identity
from leaderboard.repositories.member_repo import MemberRepository
from leaderboard.schemas import LeaderboardEntry, MemberResponse
from leaderboard.services.member_service import MemberService
from leaderboard.services.role_service import RoleVerifier
from leaderboard.utils import get_current_identity, get_current_member, get_role_verifier
from leaderboard.ws import online_uids

router = APIRouter()


def get_member_service(db=Depends(get_db)):
    return MemberService(MemberRepository(db))

@router.get("/members", response_model=List[LeaderboardEntry])
async def list_members(
    with_online: int = 0,
    identity: Identity = Depends(get_current_identity),
    service: MemberService = Depends(get_member_service),
    redis=Depends(get_redis),
):
    online = await online_uids(redis) if with_online else None
    return await service.leaderboard(online)

@router.get("/members/me", response_model=MemberResponse)
async def get_me(member: dict = Depends(get_current_member)):
    return member

@router.get("/members/{uid}", response_model=MemberResponse)
async def get_member(
    uid: str,
    identity: Identity = Depends(get_current_identity),
    verifier: RoleVerifier = Depends(get_role_verifier),
    service: MemberService = Depends(get_member_service),
):
    # 他人のプロフィールは admin のみ
    if uid != identity.uid and await verifier.verify_role(identity) != "admin":
        raise PermissionDeniedError("Not allowed to view this member")
    member = await service.get_member_by_id(uid)
    if not member:
        raise NotFoundError("Member not found")
    return member
