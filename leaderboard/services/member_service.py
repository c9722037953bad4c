import logging
from typing import Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from leaderboard.config import ALLOW_ADMIN_SIGNUP
from leaderboard.errors import PermissionDeniedError, ValidationError
from leaderboard.models import MemberModel, Role
from leaderboard.repositories.member_repo import MemberRepository

logger = logging.getLogger(__name__)


def build_leaderboard(members: List[dict], online: Optional[Iterable[str]] = None) -> List[dict]:
    """ポイント降順に並べ替える。同点はストアの返却順のまま"""
    ranked = sorted(members, key=lambda m: m.get("points", 0), reverse=True)
    online_set = set(online) if online is not None else None
    board = []
    for rank, member in enumerate(ranked, start=1):
        entry = {
            "rank": rank,
            "uid": member["uid"],
            "name": member["name"],
            "points": member.get("points", 0),
            "role": member["role"],
        }
        if online_set is not None:
            entry["is_online"] = member["uid"] in online_set
        board.append(entry)
    return board


class MemberService:
    def __init__(self, repo: MemberRepository):
        self.repo = repo

    async def create_or_update_member(self, data: dict, uid: str) -> dict:
        # 呼び出し側は完全なレコードを渡すこと
        try:
            member = MemberModel(**{**data, "uid": uid})
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid member record: {e.errors()[0]['msg']}")
        record = member.dict()
        record.pop("uid")
        await self.repo.upsert(uid, record)
        return await self.repo.get_by_uid(uid)

    async def get_member_by_id(self, uid: str) -> Optional[dict]:
        return await self.repo.get_by_uid(uid)

    async def get_all_members(self) -> List[dict]:
        return await self.repo.list_all()

    async def add_points(self, uid: str, delta: int) -> None:
        if isinstance(delta, bool) or not isinstance(delta, int) or delta <= 0:
            logger.warning("Attempted to add non-positive points: uid=%s delta=%s", uid, delta)
            return
        if not await self.repo.increment_points(uid, delta):
            logger.warning("add_points target not found: uid=%s", uid)

    async def register_member(self, uid: str, email: Optional[str], name: str, role: Role) -> dict:
        # 既存プロフィールがあればそのまま返す（ロールの上書きはさせない）
        exists = await self.repo.get_by_uid(uid)
        if exists:
            return exists

        if role == Role.ADMIN:
            if not ALLOW_ADMIN_SIGNUP:
                raise PermissionDeniedError("Admin signup is disabled")
            logger.warning("Admin self-signup: uid=%s email=%s", uid, email)

        if not email:
            raise ValidationError("Identity has no email address")

        return await self.create_or_update_member(
            {"name": name.strip(), "email": email, "points": 0, "role": role},
            uid,
        )

    async def leaderboard(self, online: Optional[Iterable[str]] = None) -> List[dict]:
        return build_leaderboard(await self.repo.list_all(), online)
