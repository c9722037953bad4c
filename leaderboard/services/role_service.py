import logging
from typing import Optional

from pymongo.errors import PyMongoError

from leaderboard.errors import TransientError
from leaderboard.guard import Identity
from leaderboard.repositories.member_repo import MemberRepository

logger = logging.getLogger(__name__)


class RoleVerifier:
    def __init__(self, repo: MemberRepository):
        self.repo = repo

    async def verify_role(self, identity: Identity) -> Optional[str]:
        """プロフィールのロールを返す。プロフィールが無ければ None"""
        try:
            member = await self.repo.get_by_uid(identity.uid)
        except PyMongoError as e:
            logger.error("Role lookup failed: uid=%s error=%s", identity.uid, e)
            raise TransientError("Could not verify role")
        if not member:
            logger.warning("Member profile not found: uid=%s", identity.uid)
            return None
        return member.get("role")
